from __future__ import annotations


class AuthFlowError(RuntimeError):
    pass


class PortExhausted(AuthFlowError):
    def __init__(self, candidates: tuple[int, ...]) -> None:
        if candidates:
            detail = f"{candidates[0]}-{candidates[-1]}"
        else:
            detail = "(no candidates)"
        super().__init__(f"No available ports found in range {detail}")
        self.candidates = candidates


class PortUnavailable(AuthFlowError):
    """The allocated port was taken before the callback listener could bind it."""

    def __init__(self, port: int, reason: str = "") -> None:
        message = f"Port {port} is no longer available"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.port = port


class LockFailure(AuthFlowError):
    def __init__(self, message: str = "Failed to lock session registry.") -> None:
        super().__init__(message)


class TokenExchangeError(AuthFlowError):
    def __init__(self, message: str, *, kind: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class StoreError(AuthFlowError):
    pass
