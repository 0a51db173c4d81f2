"""
Configuration persistence and endpoint resolution for share-files.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional
from urllib.parse import quote, urlencode, urlsplit, urlunsplit

from .language import LANGUAGES

CONFIG_DIR = Path.home() / ".share-files"
CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULT_ENDPOINT = "https://share-files.karakuri-maker.com"
ENDPOINT_ENV = "SHARE_FILES_ENDPOINT"
DEFAULT_ICE_SERVERS = ["stun:stun.cloudflare.com:3478"]

# Canonical HTTP scheme for each accepted endpoint scheme.
_HTTP_SCHEMES = {"https": "https", "http": "http", "wss": "https", "ws": "http"}
_WS_SCHEMES = {"https": "wss", "http": "ws"}


@dataclass
class AppConfig:
    language: str = "en"
    endpoint: Optional[str] = None
    ice_servers: List[str] = field(default_factory=lambda: list(DEFAULT_ICE_SERVERS))
    output_dir: Optional[str] = None
    # None -> wait indefinitely for a data channel, otherwise seconds per session
    negotiation_timeout: Optional[float] = None


def load_config() -> AppConfig:
    if not CONFIG_FILE.exists():
        return AppConfig()
    try:
        with CONFIG_FILE.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (ValueError, OSError):
        return AppConfig()
    if not isinstance(data, dict):
        return AppConfig()

    language_raw = data.get("language")
    language = language_raw if language_raw in LANGUAGES else "en"

    endpoint_raw = data.get("endpoint")
    endpoint = endpoint_raw.strip() if isinstance(endpoint_raw, str) and endpoint_raw.strip() else None

    servers_raw = data.get("ice_servers")
    if isinstance(servers_raw, list):
        ice_servers = [item.strip() for item in servers_raw if isinstance(item, str) and item.strip()]
    else:
        ice_servers = list(DEFAULT_ICE_SERVERS)

    output_raw = data.get("output_dir")
    output_dir: Optional[str]
    if isinstance(output_raw, str) and output_raw.strip():
        output_dir = str(Path(output_raw).expanduser())
    else:
        output_dir = None

    timeout_raw = data.get("negotiation_timeout")
    if isinstance(timeout_raw, (int, float)) and not isinstance(timeout_raw, bool) and timeout_raw > 0:
        negotiation_timeout: Optional[float] = float(timeout_raw)
    else:
        negotiation_timeout = None

    return AppConfig(
        language=language,
        endpoint=endpoint,
        ice_servers=ice_servers,
        output_dir=output_dir,
        negotiation_timeout=negotiation_timeout,
    )


def save_config(config: AppConfig) -> None:
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    payload = asdict(config)
    with CONFIG_FILE.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)


def resolve_endpoint(
    flag_value: Optional[str],
    config: AppConfig,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Pick the service endpoint: flag, then environment, then config, then default."""

    env = os.environ if environ is None else environ
    for candidate in (flag_value, env.get(ENDPOINT_ENV), config.endpoint):
        if candidate and candidate.strip():
            return base_endpoint_url(candidate.strip())
    return base_endpoint_url(DEFAULT_ENDPOINT)


def base_endpoint_url(endpoint: str) -> str:
    """
    Normalize an endpoint to ``scheme://host[:port]`` with an HTTP scheme.

    ``ws``/``wss`` are mapped to ``http``/``https``; any path, query or fragment
    is discarded. Raises ValueError for unsupported schemes or a missing host.
    """

    parts = urlsplit(endpoint)
    scheme = _HTTP_SCHEMES.get(parts.scheme.lower())
    if scheme is None:
        raise ValueError(f"unsupported endpoint scheme: {parts.scheme or endpoint}")
    if not parts.netloc:
        raise ValueError(f"endpoint has no host: {endpoint}")
    return urlunsplit((scheme, parts.netloc, "", "", ""))


def build_ws_url(base_url: str, room_id: str, client_id: str) -> str:
    parts = urlsplit(base_url)
    scheme = _WS_SCHEMES[parts.scheme]
    path = "/ws/" + quote(room_id, safe="")
    return urlunsplit((scheme, parts.netloc, path, urlencode({"cid": client_id}), ""))


def build_room_url(base_url: str, room_id: str) -> str:
    parts = urlsplit(base_url)
    return urlunsplit((parts.scheme, parts.netloc, "/r/" + quote(room_id, safe=""), "", ""))


def build_rooms_api_url(base_url: str) -> str:
    parts = urlsplit(base_url)
    return urlunsplit((parts.scheme, parts.netloc, "/api/rooms", "", ""))


def resolve_output_dir(dir_arg: Optional[str], config: AppConfig) -> Path:
    """Return the absolute receive directory, creating it if necessary."""

    raw = dir_arg or config.output_dir or "."
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        candidate = (Path.cwd() / candidate).resolve()
    candidate.mkdir(parents=True, exist_ok=True)
    return candidate
