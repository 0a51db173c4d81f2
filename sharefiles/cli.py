"""
Command-line entry points for share-files.
"""

from __future__ import annotations

import argparse
import asyncio
import re
import sys
import uuid
from functools import partial
from pathlib import Path
from typing import Callable, Optional

from rich.text import Text

from . import __version__
from .client import SignalingError, create_room, run_signaling
from .config import (
    AppConfig,
    base_endpoint_url,
    build_room_url,
    build_ws_url,
    load_config,
    resolve_endpoint,
    resolve_output_dir,
    save_config,
)
from .framing import CompletedTransfer, FileDescriptor, load_file_descriptor
from .initiator import InitiatorOrchestrator
from .language import LANGUAGES, MESSAGES, get_message, render_message
from .responder import ResponderOrchestrator
from .rtc import TransportSession
from .session import Outbox, RoleMismatchError
from .ui import EventLog, ProgressTracker, TerminalUI, show_message
from .utils import format_size


def emit_message(
    ui: TerminalUI,
    language: str,
    key: str,
    quiet: bool,
    *,
    error: bool = False,
    **kwargs: object,
) -> None:
    if quiet and not error:
        return
    show_message(ui, key, language, **kwargs)


def emit_print(
    ui: TerminalUI,
    message: Text | str,
    quiet: bool,
    *,
    error: bool = False,
) -> None:
    if quiet and not error:
        return
    ui.print(message)


def emit_blank(ui: TerminalUI, quiet: bool) -> None:
    if quiet:
        return
    ui.blank()


class LocalizedArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that uses localized usage and error messages."""

    def __init__(self, *args, **kwargs) -> None:
        self._messages = kwargs.pop("messages", {})
        super().__init__(*args, **kwargs)

    def _render_usage(self) -> Optional[str]:
        template = self.usage or self._messages.get("cli_usage")
        if not template:
            return None
        if "%(prog)s" in template:
            try:
                body = template % {"prog": self.prog}
            except Exception:  # noqa: BLE001
                body = template
        else:
            try:
                body = template.format(prog=self.prog)
            except Exception:  # noqa: BLE001
                body = template
        prefix = self._messages.get("cli_usage_prefix")
        if prefix:
            return f"{prefix} {body}"
        return body

    def format_usage(self) -> str:
        rendered = self._render_usage()
        if rendered is not None:
            if not rendered.endswith("\n"):
                rendered += "\n"
            return rendered
        return super().format_usage()

    def print_usage(self, file=None) -> None:
        if file is None:
            file = sys.stderr
        self._print_message(self.format_usage(), file)

    def format_help(self) -> str:
        help_text = super().format_help()
        prefix = self._messages.get("cli_usage_prefix")
        if prefix and prefix != "usage:":
            help_text = help_text.replace("usage:", prefix, 1)
        help_text = re.sub(r"^\s+\{[^}]+}\n", "", help_text, flags=re.MULTILINE)
        return help_text

    def error(self, message: str) -> None:  # noqa: D401 - match argparse signature
        self.print_usage(sys.stderr)
        template = self._messages.get("cli_error", "Error: {error}")
        self.exit(2, template.format(error=message) + "\n")


def initialize_application() -> tuple[AppConfig, TerminalUI, str]:
    config = load_config()
    ui = TerminalUI()
    language = config.language if config.language in LANGUAGES else "en"
    return config, ui, language


def transport_factory(config: AppConfig) -> Callable[[], TransportSession]:
    return partial(TransportSession, list(config.ice_servers))


async def share_file(
    descriptor: FileDescriptor,
    room_id: str,
    base_url: str,
    config: AppConfig,
    log: EventLog,
) -> None:
    """Offer `descriptor` to every receiver that joins `room_id` until the relay hangs up."""

    ws_url = build_ws_url(base_url, room_id, str(uuid.uuid4()))

    def build(outbox: Outbox) -> InitiatorOrchestrator:
        return InitiatorOrchestrator(
            descriptor,
            outbox,
            log,
            transport_factory(config),
            negotiation_timeout=config.negotiation_timeout,
        )

    await run_signaling(ws_url, build, log)


async def receive_files(
    room_id: str,
    output_dir: Path,
    base_url: str,
    config: AppConfig,
    log: EventLog,
    tracker: Optional[ProgressTracker] = None,
) -> None:
    ws_url = build_ws_url(base_url, room_id, str(uuid.uuid4()))

    def report_progress(received: int, total: int) -> None:
        if tracker is not None:
            tracker.update(received, total)

    def finish_progress(_record: CompletedTransfer) -> None:
        if tracker is not None:
            tracker.finish()
            tracker.reset()

    def build(outbox: Outbox) -> ResponderOrchestrator:
        return ResponderOrchestrator(
            output_dir,
            outbox,
            log,
            transport_factory(config),
            negotiation_timeout=config.negotiation_timeout,
            progress_cb=report_progress,
            on_complete=finish_progress,
        )

    try:
        await run_signaling(ws_url, build, log)
    finally:
        if tracker is not None:
            tracker.finish()


def run_send_command(
    file_path_arg: str,
    room_id_arg: Optional[str] = None,
    endpoint_arg: Optional[str] = None,
    *,
    quiet: bool = False,
) -> int:
    config, ui, language = initialize_application()
    log = EventLog(ui, language, quiet=quiet)

    file_path = Path(file_path_arg).expanduser()
    try:
        descriptor = load_file_descriptor(file_path)
    except FileNotFoundError:
        emit_message(ui, language, "file_not_found", quiet, error=True, path=str(file_path))
        return 1
    except ValueError:
        emit_message(ui, language, "file_invalid", quiet, error=True, path=str(file_path))
        return 1

    try:
        base_url = resolve_endpoint(endpoint_arg, config)
    except ValueError as exc:
        emit_print(ui, render_message("endpoint_invalid", language, error=exc), quiet, error=True)
        return 1

    try:
        room_id = room_id_arg.strip() if room_id_arg and room_id_arg.strip() else None
        if room_id is None:
            try:
                room_id = asyncio.run(create_room(base_url))
            except SignalingError as exc:
                emit_print(ui, render_message("room_create_failed", language, error=exc), quiet, error=True)
                return 1
        log.event("log_room_id", room=room_id)
        log.event("log_room_url", url=build_room_url(base_url, room_id))
        emit_message(
            ui,
            language,
            "send_waiting",
            quiet,
            name=descriptor.name,
            size=format_size(descriptor.size),
        )
        asyncio.run(share_file(descriptor, room_id, base_url, config, log))
    except KeyboardInterrupt:
        emit_blank(ui, quiet)
        emit_message(ui, language, "send_shutdown", quiet)
        return 0
    except RoleMismatchError as exc:
        emit_message(ui, language, "role_mismatch_send", quiet, error=True, role=exc.role)
        return 1
    except Exception as exc:  # noqa: BLE001
        emit_print(ui, render_message("fatal_error", language, error=exc), quiet, error=True)
        return 1
    return 0


def run_receive_command(
    room_id: str,
    dir_arg: Optional[str] = None,
    endpoint_arg: Optional[str] = None,
    *,
    quiet: bool = False,
) -> int:
    config, ui, language = initialize_application()
    log = EventLog(ui, language, quiet=quiet)

    try:
        base_url = resolve_endpoint(endpoint_arg, config)
    except ValueError as exc:
        emit_print(ui, render_message("endpoint_invalid", language, error=exc), quiet, error=True)
        return 1

    try:
        output_dir = resolve_output_dir(dir_arg, config)
    except OSError as exc:
        emit_print(
            ui,
            render_message("receive_dir_error", language, error=exc),
            quiet,
            error=True,
        )
        return 1

    emit_print(
        ui,
        render_message("receive_dir_set", language, path=str(output_dir)),
        quiet,
    )
    emit_message(ui, language, "receive_waiting", quiet)

    tracker = None if quiet else ProgressTracker(ui, language)
    try:
        asyncio.run(receive_files(room_id.strip(), output_dir, base_url, config, log, tracker))
    except KeyboardInterrupt:
        emit_blank(ui, quiet)
        emit_message(ui, language, "receive_shutdown", quiet)
        return 0
    except RoleMismatchError as exc:
        emit_message(ui, language, "role_mismatch_receive", quiet, error=True, role=exc.role)
        return 1
    except Exception as exc:  # noqa: BLE001
        emit_print(ui, render_message("fatal_error", language, error=exc), quiet, error=True)
        return 1
    return 0


def run_settings_command(
    language_arg: Optional[str],
    endpoint_arg: Optional[str],
    output_dir_arg: Optional[str],
    *,
    quiet: bool = False,
) -> int:
    config, ui, language = initialize_application()
    exit_code = 0
    changed = False

    if language_arg is not None:
        candidate = language_arg.strip().lower()
        if candidate not in LANGUAGES:
            codes = ", ".join(sorted(LANGUAGES))
            emit_message(
                ui,
                language,
                "settings_language_invalid",
                quiet,
                error=True,
                value=language_arg,
                codes=codes,
            )
            exit_code = 1
        elif candidate != config.language:
            config.language = candidate
            language = candidate
            changed = True
            emit_message(
                ui,
                language,
                "settings_language_updated",
                quiet,
                language_name=LANGUAGES[candidate],
            )

    if endpoint_arg is not None:
        raw = endpoint_arg.strip()
        if not raw:
            config.endpoint = None
            changed = True
            emit_message(ui, language, "settings_endpoint_reset", quiet)
        else:
            try:
                endpoint = base_endpoint_url(raw)
            except ValueError as exc:
                emit_print(ui, render_message("endpoint_invalid", language, error=exc), quiet, error=True)
                exit_code = 1
            else:
                config.endpoint = endpoint
                changed = True
                emit_message(ui, language, "settings_endpoint_updated", quiet, endpoint=endpoint)

    if output_dir_arg is not None:
        raw = output_dir_arg.strip()
        config.output_dir = str(Path(raw).expanduser()) if raw else None
        changed = True
        emit_message(
            ui,
            language,
            "settings_output_updated",
            quiet,
            path=config.output_dir or ".",
        )

    if changed:
        save_config(config)
    elif exit_code == 0:
        emit_message(
            ui,
            language,
            "settings_current",
            quiet,
            language_name=LANGUAGES.get(config.language, config.language),
            endpoint=config.endpoint or "-",
            output_dir=config.output_dir or ".",
        )
    return exit_code


def build_parser(language: str) -> argparse.ArgumentParser:
    language_messages = MESSAGES.get(language, MESSAGES["en"])
    language_codes = ", ".join(sorted(LANGUAGES))
    parser = LocalizedArgumentParser(
        prog="share-files",
        description=get_message("cli_description", language),
        add_help=False,
        messages=language_messages,
    )
    parser.usage = get_message("cli_usage", language)
    parser._positionals.title = get_message("cli_positionals_title", language)
    parser._optionals.title = get_message("cli_optionals_title", language)
    parser.add_argument(
        "-h",
        "--help",
        action="help",
        help=get_message("cli_help_help", language),
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help=get_message("cli_version_help", language),
        version=get_message("cli_version_output", language, version=__version__),
    )
    subparsers = parser.add_subparsers(
        dest="command",
        title=get_message("cli_commands_title", language),
        parser_class=LocalizedArgumentParser,
    )
    subparsers.metavar = None

    send_parser = subparsers.add_parser(
        "send",
        help=get_message("cli_send_help", language),
        description=get_message("cli_send_help", language),
        add_help=False,
        messages=language_messages,
    )
    send_parser.prog = f"{parser.prog} send"
    send_parser.usage = get_message("cli_send_usage", language)
    send_parser._optionals.title = get_message("cli_optionals_title", language)
    send_parser.add_argument(
        "-h",
        "--help",
        action="help",
        help=get_message("cli_help_help", language),
    )
    send_parser.add_argument(
        "--room-id",
        help=get_message("cli_send_room_help", language),
    )
    send_parser.add_argument(
        "--file",
        required=True,
        help=get_message("cli_send_file_help", language),
    )
    send_parser.add_argument(
        "--endpoint",
        help=get_message("cli_endpoint_help", language),
    )
    send_parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help=get_message("cli_quiet_help", language),
    )

    receive_parser = subparsers.add_parser(
        "receive",
        help=get_message("cli_receive_help", language),
        description=get_message("cli_receive_help", language),
        add_help=False,
        messages=language_messages,
    )
    receive_parser.prog = f"{parser.prog} receive"
    receive_parser.usage = get_message("cli_receive_usage", language)
    receive_parser._optionals.title = get_message("cli_optionals_title", language)
    receive_parser.add_argument(
        "-h",
        "--help",
        action="help",
        help=get_message("cli_help_help", language),
    )
    receive_parser.add_argument(
        "--room-id",
        required=True,
        help=get_message("cli_receive_room_help", language),
    )
    receive_parser.add_argument(
        "--output-dir",
        help=get_message("cli_receive_output_help", language),
    )
    receive_parser.add_argument(
        "--endpoint",
        help=get_message("cli_endpoint_help", language),
    )
    receive_parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help=get_message("cli_quiet_help", language),
    )

    settings_parser = subparsers.add_parser(
        "settings",
        help=get_message("cli_settings_help", language),
        description=get_message("cli_settings_help", language),
        add_help=False,
        messages=language_messages,
    )
    settings_parser.prog = f"{parser.prog} settings"
    settings_parser._optionals.title = get_message("cli_optionals_title", language)
    settings_parser.add_argument(
        "-h",
        "--help",
        action="help",
        help=get_message("cli_help_help", language),
    )
    settings_parser.add_argument(
        "--language",
        help=get_message("cli_settings_language_help", language, codes=language_codes),
    )
    settings_parser.add_argument(
        "--endpoint",
        help=get_message("cli_settings_endpoint_help", language),
    )
    settings_parser.add_argument(
        "--output-dir",
        help=get_message("cli_settings_output_help", language),
    )
    settings_parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help=get_message("cli_quiet_help", language),
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    arguments = sys.argv[1:] if argv is None else argv
    config = load_config()
    language = config.language if config.language in LANGUAGES else "en"
    parser = build_parser(language)
    args = parser.parse_args(arguments)
    command = getattr(args, "command", None)
    if command == "send":
        return run_send_command(
            args.file,
            getattr(args, "room_id", None),
            getattr(args, "endpoint", None),
            quiet=bool(getattr(args, "quiet", False)),
        )
    if command == "receive":
        return run_receive_command(
            args.room_id,
            getattr(args, "output_dir", None),
            getattr(args, "endpoint", None),
            quiet=bool(getattr(args, "quiet", False)),
        )
    if command == "settings":
        return run_settings_command(
            getattr(args, "language", None),
            getattr(args, "endpoint", None),
            getattr(args, "output_dir", None),
            quiet=bool(getattr(args, "quiet", False)),
        )
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
