"""Exception types raised by the RPC layer and the discovery engine."""

from __future__ import annotations

from typing import Any


class RPCError(Exception):
    """Base class for failures talking to a Solana JSON-RPC provider."""

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        status: int | None = None,
        method: str | None = None,
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.method = method
        self.data = data


class RetryableProviderError(RPCError):
    """Rate limiting or a transient network/provider failure."""

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class FatalProviderError(RPCError):
    """Malformed request, authentication failure or other non-retryable error."""


class UnsupportedMethodError(FatalProviderError):
    """The provider does not implement the requested JSON-RPC method."""


class DeprioritizedError(RPCError):
    """The provider refused a bulk scan and asked for the paginated form."""


class ExhaustedError(RPCError):
    """Every endpoint was tried up to its attempt limit without success."""

    def __init__(
        self,
        message: str,
        *,
        last_error: BaseException | None = None,
        attempts: int = 0,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.last_error = last_error
        self.attempts = attempts


class DecodeError(ValueError):
    """An account payload is malformed or shorter than its layout requires."""


class NotFoundError(LookupError):
    """No account exists at the requested address."""


class ConfigError(ValueError):
    """Configuration values failed validation."""


__all__ = [
    "RPCError",
    "RetryableProviderError",
    "FatalProviderError",
    "UnsupportedMethodError",
    "DeprioritizedError",
    "ExhaustedError",
    "DecodeError",
    "NotFoundError",
    "ConfigError",
]
