"""
Dispatcher-level exceptions.

Only ConfigurationError (raised before any attempt) and the final exhaustion
error ever leave a dispatcher; MalformedOutputError and ImageStoreError are
per-attempt failures that take the ordinary retry/fallback path.
"""

from typing import Any, Optional

from llm_layer.backends.exceptions import LLMError


class ConfigurationError(LLMError):
    """
    Raised when a request can never succeed as configured.

    Example: an image request whose fallback order names a backend that
    cannot generate images.
    """
    pass


class AllBackendsFailedError(LLMError):
    """Raised when every backend was skipped and none produced an error of its own."""

    def __init__(self, message: str = "All providers failed", details: dict[str, Any] | None = None):
        super().__init__(message, details)


class MalformedOutputError(LLMError):
    """
    Structured output could not be parsed or did not validate.

    Retried like a transport failure.
    """

    def __init__(
        self,
        message: str,
        raw_content: Optional[str] = None,
        parse_error: Optional[str] = None,
        validation_errors: Optional[list[str]] = None,
    ):
        details: dict[str, Any] = {}
        if raw_content:
            # First 500 chars are enough to debug, avoid excessive logging
            details["content_snippet"] = raw_content[:500]
        if parse_error:
            details["parse_error"] = parse_error
        if validation_errors:
            details["validation_errors"] = validation_errors
        super().__init__(message, details)
        self.raw_content = raw_content


class ImageStoreError(LLMError):
    """The image post-processing collaborator returned nothing or failed."""
    pass
