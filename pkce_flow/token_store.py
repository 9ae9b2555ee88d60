from __future__ import annotations

import asyncio
import json
import os
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import asdict
from pathlib import Path

from pkce_flow.errors import StoreError
from pkce_flow.models import TokenRecord
from spotify_login.constants import LOGGER, TOKEN_EXPIRY_BUFFER_SECONDS

TOKENS_KEY = "tokens"


class TokenStore(ABC):
    """Persistence for the single token record of the signed-in user.

    :meth:`load` only returns a record that stays valid for more than
    ``TOKEN_EXPIRY_BUFFER_SECONDS``; an older record is removed from the
    store.
    """

    async def load(self, *, now: float | None = None) -> TokenRecord | None:
        payload = await self._read()
        if payload is None:
            return None

        try:
            record = TokenRecord(
                access_token=payload["access_token"],
                refresh_token=payload.get("refresh_token"),
                expires_at=int(payload["expires_at"]),
            )
        except (KeyError, TypeError, ValueError) as error:
            raise StoreError(f"Failed to deserialize tokens: {error}") from error

        if record.is_expired(buffer_seconds=TOKEN_EXPIRY_BUFFER_SECONDS, now=now):
            LOGGER.info("Stored tokens expired at %s; clearing them", record.expires_at)
            await self.clear()
            return None
        return record

    async def save(self, record: TokenRecord) -> None:
        await self._write(asdict(record))

    async def save_tokens(
        self,
        access_token: str,
        refresh_token: str | None,
        expires_in: int,
        *,
        now: float | None = None,
    ) -> TokenRecord:
        current = time.time() if now is None else now
        record = TokenRecord(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=int(current) + expires_in,
        )
        await self.save(record)
        return record

    @abstractmethod
    async def clear(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def _read(self) -> dict | None:
        raise NotImplementedError

    @abstractmethod
    async def _write(self, payload: dict) -> None:
        raise NotImplementedError


class MemoryTokenStore(TokenStore):
    def __init__(self) -> None:
        self._payload: dict | None = None

    async def clear(self) -> None:
        self._payload = None

    async def _read(self) -> dict | None:
        return None if self._payload is None else dict(self._payload)

    async def _write(self, payload: dict) -> None:
        self._payload = dict(payload)


class FileTokenStore(TokenStore):
    def __init__(self, path: str | Path = "auth.json") -> None:
        self._path = Path(path)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear_sync)

    async def _read(self) -> dict | None:
        document = await asyncio.to_thread(self._read_all)
        payload = document.get(TOKENS_KEY)
        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise StoreError("Token store entry is invalid; expected a JSON object.")
        return payload

    async def _write(self, payload: dict) -> None:
        await asyncio.to_thread(self._write_sync, payload)

    def _clear_sync(self) -> None:
        document = self._read_all()
        if TOKENS_KEY not in document:
            return
        del document[TOKENS_KEY]
        self._write_all(document)

    def _write_sync(self, payload: dict) -> None:
        document = self._read_all()
        document[TOKENS_KEY] = payload
        self._write_all(document)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}

        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as error:
            raise StoreError(f"Failed to read token store: {error}") from error
        try:
            raw = json.loads(text)
        except ValueError as error:
            raise StoreError(f"Token store file is not valid JSON: {error}") from error
        if not isinstance(raw, dict):
            raise StoreError("Token store file is invalid; expected top-level JSON object.")
        return raw

    def _write_all(self, document: dict) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f"{self._path.name}.",
                suffix=".tmp",
                dir=self._path.parent,
            )
        except OSError as error:
            raise StoreError(f"Failed to save tokens: {error}") from error
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        except OSError as error:
            raise StoreError(f"Failed to save tokens: {error}") from error
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
