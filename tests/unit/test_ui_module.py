from __future__ import annotations

from contextlib import contextmanager
import types

import pytest

from sharefiles.ui import EventLog, ProgressTracker, TerminalUI, show_message


class DummyConsole:
    def __init__(self) -> None:
        self.print_calls: list[tuple] = []
        self.written: list[str] = []
        self.file = types.SimpleNamespace(write=self.written.append, flush=lambda: None)

    def print(self, *args, **kwargs):
        self.print_calls.append((args, kwargs))

    def capture(self):
        @contextmanager
        def _capture():
            class Capture:
                def get(self) -> str:
                    return "50%"

            yield Capture()

        return _capture()


class DummyUI(TerminalUI):
    def __init__(self) -> None:
        super().__init__(console=DummyConsole())
        self.carriage_calls: list[tuple] = []
        self.end_calls = 0
        self.console = self._console

    def carriage(self, message, padding: str = "") -> None:  # noqa: D401
        self.carriage_calls.append((message, padding))

    def end_carriage(self) -> None:  # noqa: D401
        self.end_calls += 1


def test_progress_tracker_update(monkeypatch: pytest.MonkeyPatch) -> None:
    ui = DummyUI()
    tracker = ProgressTracker(ui, "en", min_interval=0)
    times = iter([0.0, 0.5, 1.0, 1.5])
    monkeypatch.setattr("sharefiles.ui.time.time", lambda: next(times))

    assert tracker.update(5, 10) is True
    assert tracker.update(5, 10) is False  # no progress change
    assert tracker.update(10, 10) is True
    tracker.finish()
    tracker.finish()

    assert len(ui.carriage_calls) == 2
    assert ui.end_calls == 1


def test_progress_tracker_reset_forgets_previous_transfer(monkeypatch: pytest.MonkeyPatch) -> None:
    ui = DummyUI()
    tracker = ProgressTracker(ui, "en", min_interval=0)
    times = iter([0.0, 1.0, 2.0])
    monkeypatch.setattr("sharefiles.ui.time.time", lambda: next(times))

    tracker.update(10, 10)
    tracker.reset()

    assert tracker.last_bytes == 0 and tracker.last_total == 0
    assert tracker.update(10, 10) is True


def test_carriage_line_is_closed_before_next_print() -> None:
    console = DummyConsole()
    ui = TerminalUI(console=console)

    ui.carriage("50%")
    ui.print("done")

    assert console.written == ["\r50%", "\n"]
    assert console.print_calls[-1][0] == ("done",)


def test_show_message_renders_localized_text(monkeypatch: pytest.MonkeyPatch) -> None:
    ui = DummyUI()
    monkeypatch.setattr("sharefiles.ui.render_message", lambda key, lang, **kw: f"{key}:{lang}")

    show_message(ui, "receive_waiting", "ja")

    assert ui.console.print_calls[0][0] == ("receive_waiting:ja",)


def test_event_log_prefixes_timestamp_and_respects_quiet(monkeypatch: pytest.MonkeyPatch) -> None:
    ui = DummyUI()
    monkeypatch.setattr("sharefiles.ui.timestamp", lambda: "12:00:00.000")

    EventLog(ui, "en").event("log_ws_peers", count=2)
    quiet = EventLog(ui, "en", quiet=True)
    quiet.event("log_ws_peers", count=3)
    quiet.event("log_task_failed", error=True, reason="boom")

    lines = [call[0][0].plain for call in ui.console.print_calls]
    assert len(lines) == 2
    assert lines[0].startswith("[12:00:00.000] ") and "2" in lines[0]
    assert lines[1].startswith("[12:00:00.000] ") and "boom" in lines[1]
