"""Exceptions raised by LLM providers."""

from __future__ import annotations


class ProviderException(Exception):
    """A provider-level failure.  ``retryable`` tells the UI whether to offer a retry."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable


class RateLimitError(ProviderException):
    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after_ms: int | None = None,
    ) -> None:
        super().__init__(message, code="rate_limit", retryable=True)
        self.retry_after_ms = retry_after_ms


class AuthenticationError(ProviderException):
    def __init__(self, message: str = "Authentication required or failed") -> None:
        super().__init__(message, code="auth_error", retryable=False)
