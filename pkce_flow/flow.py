from __future__ import annotations

import asyncio
import inspect
import webbrowser
from collections.abc import Awaitable, Callable

from pkce_flow import spotify_oauth2
from pkce_flow.callback_server import CallbackListener, ExchangeCodeFn
from pkce_flow.errors import PortExhausted, PortUnavailable, StoreError
from pkce_flow.models import AuthOutcome, AuthSession, TokenRecord
from pkce_flow.sessions import SessionRegistry
from pkce_flow.token_store import TokenStore
from spotify_login.constants import LOGGER, SPOTIFY_AUTHORIZE_URL, SPOTIFY_SCOPES

NotifyFn = Callable[[AuthOutcome], "Awaitable[None] | None"]

LISTENER_STOPPED = "Callback listener stopped before authorization completed"


class FlowCoordinator:
    """Drive Authorization Code + PKCE logins through a loopback redirect.

    A caller runs :meth:`start`, opens the returned URL in a browser and
    calls :meth:`run_callback_server` with the returned port. The listener
    task resolves one :class:`AuthOutcome`, hands it to ``notify`` once and
    stops. :meth:`login` does all of that in one call.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        notify: NotifyFn,
        exchange_code_fn: ExchangeCodeFn = spotify_oauth2.exchange_code,
        token_store: TokenStore | None = None,
        scopes: list[str] | tuple[str, ...] = SPOTIFY_SCOPES,
        authorize_url: str = SPOTIFY_AUTHORIZE_URL,
        callback_timeout: float | None = None,
    ) -> None:
        self.registry = registry
        self.token_store = token_store
        self.scopes = tuple(scopes)
        self.authorize_url = authorize_url
        self.callback_timeout = callback_timeout
        self._notify_fn = notify
        self._exchange_code_fn = exchange_code_fn
        self._pending_states: dict[int, list[str]] = {}

    def start(self, client_id: str) -> tuple[str, int]:
        authorization_url, session = self._begin(client_id)
        self._pending_states.setdefault(session.port, []).append(session.state)
        return authorization_url, session.port

    async def run_callback_server(self, port: int) -> asyncio.Task:
        """Start the listener for ``port`` and return its background task.

        The task result is the flow's :class:`AuthOutcome`, or ``None`` if the
        server stopped before a callback arrived.

        Raises:
            PortUnavailable: the port was taken since it was allocated.
        """
        _, task = await self._open_listener(port, self._claim_state(port))
        return task

    async def login(
        self,
        client_id: str,
        *,
        open_browser: Callable[[str], object] = webbrowser.open,
    ) -> AuthOutcome:
        candidates = self.registry.port_allocator.candidates
        for _ in range(max(1, len(candidates))):
            authorization_url, session = self._begin(client_id)
            try:
                listener, task = await self._open_listener(session.port, session.state)
            except PortUnavailable as error:
                LOGGER.warning("%s; retrying with another port", error)
                continue
            break
        else:
            raise PortExhausted(candidates)

        try:
            LOGGER.info("Opening browser for Spotify authorization port=%s", session.port)
            await asyncio.to_thread(open_browser, authorization_url)
            outcome = await task
        except BaseException:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            await listener.shutdown()
            self.registry.take(session.state)
            raise

        if outcome is None:
            return AuthOutcome.failed(LISTENER_STOPPED)
        return outcome

    def _begin(self, client_id: str) -> tuple[str, AuthSession]:
        session = self.registry.begin(client_id)
        authorization_url = spotify_oauth2.build_authorization_url(
            client_id=client_id,
            redirect_uri=spotify_oauth2.redirect_uri_for(session.port),
            scopes=self.scopes,
            state=session.state,
            code_challenge=session.code_challenge,
            authorize_url=self.authorize_url,
        )
        return authorization_url, session

    def _claim_state(self, port: int) -> str | None:
        # States handed out by start() for this port, oldest first.
        states = self._pending_states.get(port)
        if not states:
            return None
        state = states.pop(0)
        if not states:
            del self._pending_states[port]
        return state

    async def _open_listener(
        self, port: int, state: str | None
    ) -> tuple[CallbackListener, asyncio.Task]:
        listener = CallbackListener(
            port,
            self.registry,
            exchange_code_fn=self._exchange_and_store,
            state=state,
        )
        try:
            listener.start()
            await listener.wait_started()
        except PortUnavailable:
            await listener.shutdown()
            if state is None:
                self.registry.discard_port(port)
            else:
                self.registry.take(state)
            raise
        task = asyncio.create_task(self._serve_flow(listener), name=f"spotify-callback-{port}")
        return listener, task

    async def _serve_flow(self, listener: CallbackListener) -> AuthOutcome | None:
        try:
            outcome = await listener.wait_for_outcome(self.callback_timeout)
            if outcome is None:
                LOGGER.warning("Listener on port %s stopped without a callback", listener.port)
                return None
            await self._notify(outcome)
            return outcome
        finally:
            await listener.shutdown()

    async def _exchange_and_store(self, **kwargs) -> TokenRecord:
        record = await self._exchange_code_fn(**kwargs)
        if self.token_store is not None:
            try:
                await self.token_store.save(record)
            except StoreError:
                LOGGER.exception("Failed to save tokens")
        return record

    async def _notify(self, outcome: AuthOutcome) -> None:
        if outcome.success:
            LOGGER.info("Authorization succeeded")
        else:
            LOGGER.warning("Authorization failed: %s", outcome.error)

        try:
            result = self._notify_fn(outcome)
            if inspect.isawaitable(result):
                await result
        except Exception:
            LOGGER.exception("Outcome notification failed")
