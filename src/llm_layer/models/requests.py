"""
Caller-facing request models, one per operation kind.

A request is never mutated by the dispatcher: it is merged with the
configured defaults into an internal DispatchConfig (see dispatch.config).
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from llm_layer.models.enums import Backend, ErrorLevel
from llm_layer.models.messages import Message

RetryCount = Annotated[int, Field(ge=0)]


class GenerationRequest(BaseModel):
    """
    Fields shared by every operation kind.

    `models` maps a backend to the model used on it; entries are merged over
    the per-operation defaults, and a backend that ends up without a model is
    skipped even when it appears in `fallback_order`.

    `retry` is either one count for every backend, a list of counts aligned
    with `fallback_order` (the last value repeats for trailing backends), or
    a mapping from backend to count.
    """
    model_config = ConfigDict(frozen=True)

    models: dict[Backend, str] = Field(default_factory=dict)
    fallback_order: Optional[list[Backend]] = Field(
        default=None, description="Backends to try, highest priority first"
    )
    retry: Optional[Union[RetryCount, list[RetryCount], dict[Backend, RetryCount]]] = None
    error_level: ErrorLevel = ErrorLevel.QUIET
    caller: Optional[str] = Field(default=None, description="Free-form caller tag for tracking")


class ConversationRequest(GenerationRequest):
    system: str = ""
    messages: list[Message] = Field(..., min_length=1)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)


class TextGenerationRequest(ConversationRequest):
    """Generate one text completion."""


class StreamGenerationRequest(ConversationRequest):
    """Generate a text completion delivered as a stream of deltas."""


class StructuredDataRequest(ConversationRequest):
    """
    Generate text that must parse as JSON.

    When `json_schema` is set the parsed document must also validate against
    it; a violation counts as malformed output and is retried.
    """

    json_schema: Optional[dict[str, Any]] = None


class ImageGenerationRequest(GenerationRequest):
    """Generate one image from a prompt and optional reference image(s)."""

    prompt: str = Field(..., min_length=1)
    system: Optional[str] = None
    reference_image: Optional[Union[str, list[str]]] = Field(
        default=None, description="Base64 payload(s) or data URL(s)"
    )
    width: Optional[int] = Field(default=None, ge=1)
    height: Optional[int] = Field(default=None, ge=1)
    quality: Optional[Literal["standard", "hd"]] = None

    def reference_images(self) -> list[str]:
        if self.reference_image is None:
            return []
        if isinstance(self.reference_image, str):
            return [self.reference_image]
        return list(self.reference_image)
