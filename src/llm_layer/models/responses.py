"""
Caller-facing result models.

LLMResponse is the terminal result of a one-shot operation; StreamResponse
is one element of the lazy sequence returned by the streaming operation.
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from llm_layer.models.backend_models import Usage
from llm_layer.models.enums import Backend, StreamChunkKind

T = TypeVar("T")


class ErrorInfo(BaseModel):
    """Serializable description of a backend failure."""
    model_config = ConfigDict(frozen=True)

    message: str
    backend: Backend
    code: Optional[str] = None
    status_code: Optional[int] = None


class LLMResponse(BaseModel, Generic[T]):
    """
    Terminal result of a successful one-shot operation.

    Exactly one of `text`, `image_url` or `data` is populated, depending on
    the operation kind.
    """

    text: Optional[str] = None
    image_url: Optional[str] = None
    data: Optional[T] = None
    backend: Backend
    model: str
    usage: Usage = Field(default_factory=Usage.unavailable)
    track_id: str


class StreamResponse(BaseModel):
    """
    One chunk of a streaming operation.

    - TEXT: a text delta from `backend`.
    - SEGMENT_FAILURE: `backend`'s stream broke; `text` holds everything it
      had delivered and `error` the cause. The next backend starts over.
    - EXHAUSTED: every backend failed; always the last chunk.
    """
    model_config = ConfigDict(frozen=True)

    kind: StreamChunkKind = StreamChunkKind.TEXT
    text: str = ""
    backend: Backend
    model: str
    error: Optional[ErrorInfo] = None

    @property
    def is_error(self) -> bool:
        return self.kind != StreamChunkKind.TEXT
