from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .constants import DEFAULT_PORTS, LOGGER, SPOTIFY_ACCOUNTS_URL


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv_env(key: str) -> list[str]:
    raw = os.getenv(key, "")
    if not raw.strip():
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _get_env_int(key: str, default: int | None) -> int | None:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_ports(key: str) -> tuple[int, ...]:
    items = parse_csv_env(key)
    if not items:
        return DEFAULT_PORTS
    try:
        ports = tuple(int(item) for item in items)
    except ValueError:
        raise RuntimeError(f"{key} must be a comma-separated list of port numbers.")
    if any(not 0 < port < 65536 for port in ports):
        raise RuntimeError(f"{key} contains a port outside 1-65535.")
    return ports


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=False)


def validate_env() -> None:
    if not os.getenv("SPOTIFY_CLIENT_ID", "").strip():
        raise RuntimeError(
            "SPOTIFY_CLIENT_ID is not configured. Set it in the environment or in .env."
        )

    accounts_url = os.getenv("SPOTIFY_ACCOUNTS_URL", "").strip()
    if accounts_url and not accounts_url.startswith(("https://", "http://")):
        raise RuntimeError("SPOTIFY_ACCOUNTS_URL must be an http(s) URL.")


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("SPOTIFY_AUTH_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled


@dataclass
class AuthSettings:
    client_id: str
    accounts_url: str = SPOTIFY_ACCOUNTS_URL
    ports: tuple[int, ...] = DEFAULT_PORTS
    token_store_path: str = "auth.json"
    callback_timeout: int | None = None
    session_ttl: int | None = None

    @property
    def authorize_url(self) -> str:
        return f"{self.accounts_url}/authorize"

    @property
    def token_url(self) -> str:
        return f"{self.accounts_url}/api/token"

    @classmethod
    def from_env(cls) -> "AuthSettings":
        return cls(
            client_id=os.getenv("SPOTIFY_CLIENT_ID", "").strip(),
            accounts_url=(
                os.getenv("SPOTIFY_ACCOUNTS_URL", "").strip() or SPOTIFY_ACCOUNTS_URL
            ).rstrip("/"),
            ports=_get_env_ports("SPOTIFY_AUTH_PORTS"),
            token_store_path=os.getenv("SPOTIFY_TOKEN_STORE_PATH", "").strip() or "auth.json",
            callback_timeout=_get_env_int("SPOTIFY_AUTH_CALLBACK_TIMEOUT", None),
            session_ttl=_get_env_int("SPOTIFY_AUTH_SESSION_TTL", None),
        )
