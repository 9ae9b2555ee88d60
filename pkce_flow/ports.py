from __future__ import annotations

import os
import socket

from pkce_flow.errors import PortExhausted, PortUnavailable
from spotify_login.constants import DEFAULT_PORTS, LOGGER, LOOPBACK_HOST


class PortAllocator:
    """Pick a loopback port for the callback listener from a fixed candidate list.

    The probe socket is released before the listener binds, so a port returned
    by :meth:`allocate` can still be lost to another process. The listener
    uses :meth:`bind_listener`, which reports that case as
    :class:`PortUnavailable`.
    """

    def __init__(
        self,
        candidates: tuple[int, ...] | list[int] = DEFAULT_PORTS,
        *,
        host: str = LOOPBACK_HOST,
    ) -> None:
        self.candidates = tuple(candidates)
        self.host = host

    def allocate(self) -> int:
        for port in self.candidates:
            try:
                probe = self._bind(port)
            except OSError as error:
                LOGGER.debug("Port %s unavailable: %s", port, error)
                continue
            probe.close()
            return port

        raise PortExhausted(self.candidates)

    def bind_listener(self, port: int) -> socket.socket:
        try:
            return self._bind(port)
        except OSError as error:
            raise PortUnavailable(port, str(error)) from error

    def _bind(self, port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            # A port still in TIME_WAIT from a finished flow is reusable; one
            # with a live listener is not.
            if os.name != "nt":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, port))
            sock.listen()
        except OSError:
            sock.close()
            raise
        return sock
