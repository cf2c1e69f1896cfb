"""
Pydantic data models for the LLM layer.

Includes:
- Enums (Backend, OperationKind, Role, ErrorLevel, ...)
- Messages (Message, ContentPart)
- Requests (TextGenerationRequest, ImageGenerationRequest, ...)
- Backend models (Usage, TextCompletion, ImageCompletion, StreamDelta)
- Responses (LLMResponse, StreamResponse, ErrorInfo)
"""

from llm_layer.models.enums import (
    Backend,
    ContentType,
    DeltaKind,
    ErrorLevel,
    OperationKind,
    Role,
    StreamChunkKind,
)
from llm_layer.models.messages import ContentPart, Message
from llm_layer.models.requests import (
    GenerationRequest,
    ImageGenerationRequest,
    StreamGenerationRequest,
    StructuredDataRequest,
    TextGenerationRequest,
)
from llm_layer.models.backend_models import (
    ImageCompletion,
    ImageGenerationOptions,
    StreamDelta,
    TextCompletion,
    Usage,
)
from llm_layer.models.responses import ErrorInfo, LLMResponse, StreamResponse

__all__ = [
    # Enums
    "Backend",
    "ContentType",
    "DeltaKind",
    "ErrorLevel",
    "OperationKind",
    "Role",
    "StreamChunkKind",
    # Messages
    "ContentPart",
    "Message",
    # Requests
    "GenerationRequest",
    "ImageGenerationRequest",
    "StreamGenerationRequest",
    "StructuredDataRequest",
    "TextGenerationRequest",
    # Backend models
    "ImageCompletion",
    "ImageGenerationOptions",
    "StreamDelta",
    "TextCompletion",
    "Usage",
    # Responses
    "ErrorInfo",
    "LLMResponse",
    "StreamResponse",
]
