"""
Module-level convenience functions.

They share one process-wide dispatcher built from the global settings.
Applications that need isolation (tests, several configurations in one
process) should construct their own FallbackDispatcher instead.
"""

from functools import lru_cache
from typing import AsyncIterator, Optional, TypeVar

from llm_layer.backends.registry import BackendRegistry
from llm_layer.config import settings
from llm_layer.dispatch.dispatcher import FallbackDispatcher
from llm_layer.models.requests import (
    ImageGenerationRequest,
    StreamGenerationRequest,
    StructuredDataRequest,
    TextGenerationRequest,
)
from llm_layer.models.responses import LLMResponse, StreamResponse
from llm_layer.monitoring.tracking import LogTrackingSink, TrackingEmitter

T = TypeVar("T")


@lru_cache()
def get_dispatcher() -> FallbackDispatcher:
    """
    Get the shared dispatcher singleton.

    Uses @lru_cache so backend clients (and their connection pools) are
    built once per process.
    """
    return FallbackDispatcher(
        registry=BackendRegistry(settings),
        settings=settings,
        emitter=TrackingEmitter(LogTrackingSink(settings.TRACKING_LOGGER_NAME)),
    )


async def generate_text(request: TextGenerationRequest) -> LLMResponse[None]:
    return await get_dispatcher().generate_text(request)


async def generate_image(request: ImageGenerationRequest) -> LLMResponse[None]:
    return await get_dispatcher().generate_image(request)


async def generate_structured_data(
    request: StructuredDataRequest,
    output_type: Optional[type[T]] = None,
) -> LLMResponse[T]:
    return await get_dispatcher().generate_structured_data(request, output_type)


def generate_stream(request: StreamGenerationRequest) -> AsyncIterator[StreamResponse]:
    return get_dispatcher().generate_stream(request)
