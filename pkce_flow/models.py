from __future__ import annotations

import time
from dataclasses import dataclass

from pkce_flow.pkce import derive_challenge


@dataclass
class AuthSession:
    code_verifier: str
    state: str
    client_id: str
    port: int
    created_at: float

    @property
    def code_challenge(self) -> str:
        return derive_challenge(self.code_verifier)


@dataclass
class TokenRecord:
    access_token: str
    refresh_token: str | None
    expires_at: int

    def is_expired(self, *, buffer_seconds: int = 0, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return self.expires_at <= current + buffer_seconds

    @classmethod
    def from_payload(cls, payload: dict, *, now: float | None = None) -> "TokenRecord":
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        expires_in = payload.get("expires_in")

        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Token response missing access_token.")
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise ValueError("Token response refresh_token must be a string.")
        if not isinstance(expires_in, int) or isinstance(expires_in, bool):
            raise ValueError("Token response missing expires_in.")

        current = time.time() if now is None else now
        return cls(
            access_token=access_token,
            refresh_token=refresh_token or None,
            expires_at=int(current) + expires_in,
        )


@dataclass(frozen=True)
class AuthOutcome:
    success: bool
    access_token: str | None = None
    refresh_token: str | None = None
    error: str | None = None

    @classmethod
    def succeeded(cls, record: TokenRecord) -> "AuthOutcome":
        return cls(
            success=True,
            access_token=record.access_token,
            refresh_token=record.refresh_token,
        )

    @classmethod
    def failed(cls, error: str) -> "AuthOutcome":
        return cls(success=False, error=error)
