"""
Enumerations for LLM layer data models.

All enums are closed sets - values outside them are rejected at validation.
"""

from enum import Enum


class Backend(str, Enum):
    """Identifier of one independently operated generative AI service."""

    GOOGLE = "google"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    KLING = "kling"
    VENICE = "venice"
    XAI = "xai"


class OperationKind(str, Enum):
    """Kind of top-level operation; keys the model defaults and tracking."""

    TEXT = "text"
    IMAGE = "image"
    STRUCTURED = "structured"
    STREAM = "stream"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ContentType(str, Enum):
    TEXT = "text"
    IMAGE = "image"


class ErrorLevel(str, Enum):
    """
    Per-request verbosity of dispatcher diagnostics.

    Ordered from quiet to error (can be used for ordinal comparisons).
    QUIET keeps every diagnostic but logs it at DEBUG, so a root logger at
    INFO shows nothing; raising LOG_LEVEL to DEBUG reveals the full trace.
    The other levels drop messages below themselves.
    """

    QUIET = "quiet"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @classmethod
    def get_ordinal(cls, level: "ErrorLevel") -> int:
        """Get ordinal value for level (0=quiet, 1=info, 2=warn, 3=error)."""
        order = [cls.QUIET, cls.INFO, cls.WARN, cls.ERROR]
        return order.index(level)


class DeltaKind(str, Enum):
    """Kind of chunk a backend stream produces."""

    TEXT = "text"
    USAGE = "usage"


class StreamChunkKind(str, Enum):
    """Kind of chunk the streaming dispatcher yields to the caller."""

    TEXT = "text"
    SEGMENT_FAILURE = "segment_failure"
    EXHAUSTED = "exhausted"
