import socket
import time

from pkce_flow.errors import TokenExchangeError
from pkce_flow.flow import FlowCoordinator
from pkce_flow.models import TokenRecord
from pkce_flow.ports import PortAllocator
from pkce_flow.sessions import SessionRegistry


def _hold_port() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen()
    return sock


def _reserve_ports(count: int) -> list[socket.socket]:
    return [_hold_port() for _ in range(count)]


def _free_ports(count: int) -> list[int]:
    held = _reserve_ports(count)
    ports = [sock.getsockname()[1] for sock in held]
    for sock in held:
        sock.close()
    return ports


class _RecordingExchange:
    def __init__(self, *, error: TokenExchangeError | None = None) -> None:
        self.calls: list[dict] = []
        self._error = error

    async def __call__(self, **kwargs) -> TokenRecord:
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return TokenRecord(
            access_token="spotify-access-token",
            refresh_token="spotify-refresh-token",
            expires_at=int(time.time()) + 3600,
        )


def _build_registry(ports: list[int] | None = None, **kwargs) -> SessionRegistry:
    return SessionRegistry(PortAllocator(ports or _free_ports(3)), **kwargs)


def _build_coordinator(
    *,
    exchange=None,
    token_store=None,
    callback_timeout=None,
    ports: list[int] | None = None,
):
    notified = []
    exchange = exchange or _RecordingExchange()
    coordinator = FlowCoordinator(
        _build_registry(ports),
        notify=notified.append,
        exchange_code_fn=exchange,
        token_store=token_store,
        callback_timeout=callback_timeout,
    )
    return coordinator, notified, exchange
