from __future__ import annotations

import os
import urllib.parse
from dataclasses import dataclass

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_WS_PATH = "/chat"


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    ws_path: str = DEFAULT_WS_PATH
    heartbeat_s: float = 20.0
    request_timeout_s: float = 10.0

    @property
    def api_base(self) -> str:
        return self.base_url.rstrip("/")

    @property
    def ws_base(self) -> str:
        base = self.api_base
        if base.startswith("https://"):
            return "wss://" + base[len("https://") :]
        if base.startswith("http://"):
            return "ws://" + base[len("http://") :]
        return base

    def ws_url(self, identity: str) -> str:
        query = urllib.parse.urlencode({"username": identity})
        return f"{self.ws_base}{self.ws_path}?{query}"


def _parse_positive_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be positive")
    return parsed


def load_config_from_env() -> ClientConfig:
    base_url = os.environ.get("CHAT_API_BASE") or DEFAULT_BASE_URL
    ws_path = os.environ.get("CHAT_WS_PATH") or DEFAULT_WS_PATH
    if not ws_path.startswith("/"):
        raise ValueError("CHAT_WS_PATH must start with '/'")
    return ClientConfig(
        base_url=base_url,
        ws_path=ws_path,
        heartbeat_s=_parse_positive_float("CHAT_WS_HEARTBEAT_S", 20.0),
        request_timeout_s=_parse_positive_float("CHAT_HTTP_TIMEOUT_S", 10.0),
    )
