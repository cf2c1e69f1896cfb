"""
Backend-facing data models for the request/response cycle.

These models are internal to the backend layer: every client (Anthropic,
OpenAI, Google, ...) normalizes its vendor's wire format into them so the
dispatcher never sees provider-specific shapes.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from llm_layer.models.enums import DeltaKind


class Usage(BaseModel):
    """
    Token usage reported by a backend for one call.

    `available` is False when the backend does not expose usage at all, so
    that zero counts are never mistaken for a real measurement.
    """
    model_config = ConfigDict(frozen=True)

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    reasoning_tokens: int = Field(default=0, ge=0, description="Thinking tokens, when reported separately")
    available: bool = True

    @classmethod
    def unavailable(cls) -> "Usage":
        return cls(available=False)


class TextCompletion(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    usage: Usage


class ImageCompletion(BaseModel):
    model_config = ConfigDict(frozen=True)

    image_url: str = Field(..., description="Hosted URL or data URL")
    usage: Usage


class StreamDelta(BaseModel):
    """One chunk of a backend stream: a text delta or the final usage report."""
    model_config = ConfigDict(frozen=True)

    kind: DeltaKind
    text: Optional[str] = None
    usage: Optional[Usage] = None

    @classmethod
    def of_text(cls, text: str) -> "StreamDelta":
        return cls(kind=DeltaKind.TEXT, text=text)

    @classmethod
    def of_usage(cls, usage: Usage) -> "StreamDelta":
        return cls(kind=DeltaKind.USAGE, usage=usage)


class ImageGenerationOptions(BaseModel):
    """Normalized image request handed to a backend client."""
    model_config = ConfigDict(frozen=True)

    model: str
    prompt: str
    system: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    quality: Optional[str] = None
    reference_images: list[str] = Field(default_factory=list)
