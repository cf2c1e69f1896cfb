"""
Custom exceptions for the backend client layer.

Every backend client raises a BackendError subclass carrying the backend
identifier, an optional vendor error code and an optional HTTP status code.
The retry policy and the dispatchers use the concrete type to decide whether
a failure is worth retrying.
"""

from typing import Any, Optional

from llm_layer.models.enums import Backend


class LLMError(Exception):
    """
    Base exception for all LLM layer errors.

    str(error) is always the bare message so that callers can compare it with
    the message the backend produced.
    """
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class BackendError(LLMError):
    """
    Raised when a backend call fails.

    This is the transient-transport kind: the retry policy retries it up to
    the configured bound before the dispatcher moves to the next backend.
    """
    def __init__(
        self,
        message: str,
        backend: Backend,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.backend = backend
        self.code = code
        self.status_code = status_code

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, backend={self.backend.value}, "
            f"code={self.code!r}, status_code={self.status_code!r})"
        )


class BackendConnectionError(BackendError):
    """
    Raised when the backend cannot be reached.

    Includes DNS failures, refused connections and dropped sockets.
    """
    pass


class BackendTimeoutError(BackendConnectionError):
    """Raised when a backend call exceeds the transport timeout."""
    pass


class BackendRateLimitError(BackendError):
    """Raised on HTTP 429 from the backend."""
    pass


class UnsupportedOperationError(BackendError):
    """
    Raised when a backend cannot perform the requested operation at all.

    Never retried: the dispatcher skips straight to the next backend.
    """
    def __init__(self, operation: str, backend: Backend):
        super().__init__(
            f"{operation} not supported by {backend.value}",
            backend,
            code="NOT_SUPPORTED",
        )
        self.operation = operation


class MissingCredentialError(BackendError):
    """
    Raised when a backend cannot be initialized because its credentials are
    absent from the environment.

    Never retried and never cached by the registry.
    """
    def __init__(self, backend: Backend, env_vars: list[str]):
        names = " and ".join(env_vars)
        super().__init__(
            f"API key not found for {backend.value}. Please set {names} environment variable.",
            backend,
            code="MISSING_API_KEY",
        )
        self.env_vars = env_vars
