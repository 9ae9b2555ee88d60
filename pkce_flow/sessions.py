from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from pkce_flow.errors import LockFailure
from pkce_flow.models import AuthSession
from pkce_flow.pkce import generate_verifier
from pkce_flow.ports import PortAllocator
from spotify_login.constants import LOGGER, STATE_LENGTH, VERIFIER_LENGTH


class SessionRegistry:
    """In-flight authorization attempts keyed by their ``state`` token.

    One registry is shared by every flow of a process and handed to the
    coordinator and each callback listener. All access to the map goes through
    a single lock; :meth:`take` is the only way a session leaves the registry
    on the success path, so a callback can never be replayed.
    """

    def __init__(
        self,
        port_allocator: PortAllocator | None = None,
        *,
        session_ttl_seconds: int | None = None,
        lock_timeout: float = 5.0,
    ) -> None:
        self.port_allocator = port_allocator or PortAllocator()
        self.session_ttl_seconds = session_ttl_seconds
        self._lock_timeout = lock_timeout
        self._lock = threading.Lock()
        self._sessions: dict[str, AuthSession] = {}

    @contextmanager
    def _locked(self):
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise LockFailure()
        try:
            yield self._sessions
        finally:
            self._lock.release()

    def begin(self, client_id: str) -> AuthSession:
        self.sweep()

        code_verifier = generate_verifier(VERIFIER_LENGTH)
        port = self.port_allocator.allocate()

        with self._locked() as sessions:
            state = generate_verifier(STATE_LENGTH)
            while state in sessions:
                state = generate_verifier(STATE_LENGTH)
            session = AuthSession(
                code_verifier=code_verifier,
                state=state,
                client_id=client_id,
                port=port,
                created_at=time.time(),
            )
            sessions[state] = session

        LOGGER.info("Authorization session started port=%s", port)
        return session

    def take(self, state: str) -> AuthSession | None:
        with self._locked() as sessions:
            return sessions.pop(state, None)

    def discard_port(self, port: int) -> int:
        with self._locked() as sessions:
            stale = [state for state, session in sessions.items() if session.port == port]
            for state in stale:
                del sessions[state]
        return len(stale)

    def sweep(self, now: float | None = None) -> int:
        if self.session_ttl_seconds is None:
            return 0

        cutoff = (time.time() if now is None else now) - self.session_ttl_seconds
        with self._locked() as sessions:
            expired = [
                state for state, session in sessions.items() if session.created_at < cutoff
            ]
            for state in expired:
                del sessions[state]

        if expired:
            LOGGER.info("Dropped %s abandoned authorization session(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._locked() as sessions:
            return len(sessions)

    def __contains__(self, state: object) -> bool:
        with self._locked() as sessions:
            return state in sessions
