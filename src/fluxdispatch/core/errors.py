from __future__ import annotations

from typing import Optional

from fluxdispatch.core.contracts import Token

__all__ = [
    "DispatcherError",
    "AlreadyDispatchingError",
    "NotDispatchingError",
    "InvalidTokenError",
    "CircularDependencyError",
]


class DispatcherError(RuntimeError):
    """Base class for dispatcher usage errors."""


class AlreadyDispatchingError(DispatcherError):
    def __init__(self, msg: str = "Cannot dispatch in the middle of a dispatch."):
        super().__init__(msg)


class NotDispatchingError(DispatcherError):
    def __init__(self, msg: str = "wait_for() must be invoked while dispatching."):
        super().__init__(msg)


class InvalidTokenError(DispatcherError):
    def __init__(self, token: Token, msg: Optional[str] = None):
        self.token = token
        super().__init__(msg or f"{token!r} does not map to a registered callback.")


class CircularDependencyError(DispatcherError):
    def __init__(self, token: Token, msg: Optional[str] = None):
        self.token = token
        super().__init__(msg or f"Circular dependency detected while waiting for {token!r}.")
