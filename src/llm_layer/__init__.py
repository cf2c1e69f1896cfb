"""
LLM Layer: one async surface over several generative AI backends.

Routes text, image, structured-data and streaming requests to Google,
Anthropic, OpenAI, xAI, Venice or Kling, retrying failures with exponential
backoff and falling back to the next backend when one is exhausted.

Architecture: backend clients over httpx + fallback dispatcher + tracking
"""

__version__ = "0.1.0"

from llm_layer.client import (
    generate_image,
    generate_stream,
    generate_structured_data,
    generate_text,
    get_dispatcher,
)
from llm_layer.models import (
    Backend,
    ContentPart,
    ErrorLevel,
    ImageGenerationRequest,
    LLMResponse,
    Message,
    StreamGenerationRequest,
    StreamResponse,
    StructuredDataRequest,
    TextGenerationRequest,
    Usage,
)

__all__ = [
    "__version__",
    "generate_image",
    "generate_stream",
    "generate_structured_data",
    "generate_text",
    "get_dispatcher",
    "Backend",
    "ContentPart",
    "ErrorLevel",
    "ImageGenerationRequest",
    "LLMResponse",
    "Message",
    "StreamGenerationRequest",
    "StreamResponse",
    "StructuredDataRequest",
    "TextGenerationRequest",
    "Usage",
]
