from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.routing import Route

from pkce_flow import spotify_oauth2
from pkce_flow.errors import AuthFlowError, PortUnavailable, TokenExchangeError
from pkce_flow.models import AuthOutcome, TokenRecord
from pkce_flow.ports import PortAllocator
from pkce_flow.sessions import SessionRegistry
from spotify_login.constants import LOGGER

INVALID_STATE = "Invalid state parameter"
MISSING_CODE = "Missing authorization code"
TIMED_OUT = "Authorization timed out"
CALLBACK_FAILED = "Failed to handle authorization callback"

WAITING_PAGE = """<html>
    <body>
        <h1>Authentication in progress...</h1>
        <p>Please wait while we complete the authentication process.</p>
        <script>
            setTimeout(() => {
                window.close();
            }, 2000);
        </script>
    </body>
</html>
"""

COMPLETE_PAGE = """<html>
    <body>
        <h1>Authentication Complete!</h1>
        <p>You can now close this window and return to the app.</p>
        <script>
            setTimeout(() => {
                window.close();
            }, 2000);
        </script>
    </body>
</html>
"""

ExchangeCodeFn = Callable[..., Awaitable[TokenRecord]]


async def resolve_callback(
    params: Mapping[str, str],
    registry: SessionRegistry,
    exchange_code_fn: ExchangeCodeFn = spotify_oauth2.exchange_code,
) -> AuthOutcome:
    if "error" in params:
        return AuthOutcome.failed(f"Authorization error: {params['error']}")

    if "code" not in params or "state" not in params:
        return AuthOutcome.failed(MISSING_CODE)

    session = registry.take(params["state"])
    if session is None:
        LOGGER.warning("Callback carried an unknown or already used state")
        return AuthOutcome.failed(INVALID_STATE)

    try:
        record = await exchange_code_fn(
            code=params["code"],
            code_verifier=session.code_verifier,
            client_id=session.client_id,
            port=session.port,
        )
    except TokenExchangeError as error:
        LOGGER.warning("Token exchange failed kind=%s: %s", error.kind, error)
        return AuthOutcome.failed(f"Token exchange failed: {error}")

    return AuthOutcome.succeeded(record)


def build_callback_app(
    registry: SessionRegistry,
    on_outcome: Callable[[AuthOutcome], None],
    *,
    exchange_code_fn: ExchangeCodeFn = spotify_oauth2.exchange_code,
) -> Starlette:
    """Routes served on the loopback port while a flow waits for its redirect.

    Only the first request to ``/callback`` is processed; later ones get the
    same page without touching the registry.
    """
    handled = False

    async def waiting_route(request: Request) -> Response:
        return HTMLResponse(WAITING_PAGE)

    async def callback_route(request: Request) -> Response:
        nonlocal handled
        if not handled:
            handled = True
            try:
                outcome = await resolve_callback(request.query_params, registry, exchange_code_fn)
            except AuthFlowError as error:
                LOGGER.error("Callback handling failed: %s", error)
                outcome = AuthOutcome.failed(str(error))
            except Exception:
                LOGGER.exception("Callback handling failed")
                outcome = AuthOutcome.failed(CALLBACK_FAILED)
            on_outcome(outcome)
        return HTMLResponse(COMPLETE_PAGE)

    return Starlette(
        routes=[
            Route("/", waiting_route, methods=["GET"]),
            Route("/callback", callback_route, methods=["GET"]),
        ]
    )


class CallbackListener:
    """One-shot HTTP listener for a single authorization attempt."""

    def __init__(
        self,
        port: int,
        registry: SessionRegistry,
        *,
        exchange_code_fn: ExchangeCodeFn = spotify_oauth2.exchange_code,
        allocator: PortAllocator | None = None,
        state: str | None = None,
    ) -> None:
        self.port = port
        self.state = state
        self.registry = registry
        self._exchange_code_fn = exchange_code_fn
        self._allocator = allocator or registry.port_allocator
        self._outcome: asyncio.Future[AuthOutcome] | None = None
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task | None = None

    def start(self) -> None:
        if self._serve_task is not None:
            raise RuntimeError("Callback listener already started.")

        sock = self._allocator.bind_listener(self.port)
        self._outcome = asyncio.get_running_loop().create_future()
        app = build_callback_app(
            self.registry,
            self._resolve,
            exchange_code_fn=self._exchange_code_fn,
        )
        config = uvicorn.Config(
            app,
            log_level="warning",
            log_config=None,
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=5,
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))
        LOGGER.info("Callback listener bound on port %s", self.port)

    async def wait_started(self) -> None:
        self._require_started()
        while not self._server.started:
            if self._serve_task.done():
                raise PortUnavailable(self.port, "listener stopped during startup")
            await asyncio.sleep(0.01)

    async def wait_for_outcome(self, timeout: float | None = None) -> AuthOutcome | None:
        """Race the callback against the server stopping.

        Returns ``None`` when the server stops before any callback was handled.
        """
        self._require_started()
        done, _ = await asyncio.wait(
            {self._outcome, self._serve_task},
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )

        if self._outcome in done:
            return self._outcome.result()

        if not done:
            LOGGER.warning("No callback on port %s within %ss", self.port, timeout)
            self._discard_session()
            self._resolve(AuthOutcome.failed(TIMED_OUT))
            return self._outcome.result()

        if not self._serve_task.cancelled() and self._serve_task.exception() is not None:
            LOGGER.error(
                "Callback listener on port %s crashed",
                self.port,
                exc_info=self._serve_task.exception(),
            )
        return None

    async def shutdown(self) -> None:
        if self._server is None or self._serve_task is None:
            return
        self._server.should_exit = True
        await asyncio.gather(self._serve_task, return_exceptions=True)
        LOGGER.info("Callback listener on port %s stopped", self.port)

    def _discard_session(self) -> None:
        if self.state is None:
            self.registry.discard_port(self.port)
        else:
            self.registry.take(self.state)

    def _resolve(self, outcome: AuthOutcome) -> None:
        if self._outcome is not None and not self._outcome.done():
            self._outcome.set_result(outcome)

    def _require_started(self) -> None:
        if self._server is None or self._serve_task is None or self._outcome is None:
            raise RuntimeError("Callback listener has not been started.")
