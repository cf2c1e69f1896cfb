"""
HTTP routes for the LLM layer.

One POST endpoint per operation kind. Streaming answers with
newline-delimited JSON, one StreamResponse per line; stream failures are
reported in-band, so the status code of a stream is always 200.
"""

from typing import Any, AsyncIterator

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse

from llm_layer.api.dependencies import get_fallback_dispatcher, get_settings
from llm_layer.api.models import BackendStatus, HealthResponse
from llm_layer.config import Settings
from llm_layer.dispatch.dispatcher import FallbackDispatcher
from llm_layer.models.enums import Backend
from llm_layer.models.requests import (
    ImageGenerationRequest,
    StreamGenerationRequest,
    StructuredDataRequest,
    TextGenerationRequest,
)
from llm_layer.models.responses import LLMResponse, StreamResponse

logger = structlog.get_logger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"description": "Invalid request or configuration"},
    502: {"description": "Every backend failed"},
}


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    settings: Settings = Depends(get_settings),
    dispatcher: FallbackDispatcher = Depends(get_fallback_dispatcher),
) -> HealthResponse:
    """
    Report the structural capabilities of every known backend.

    No vendor is contacted: backends are only reachable per request.
    """
    registry = dispatcher.registry
    backends = {
        backend.value: BackendStatus(
            **registry.capabilities(backend),
            initialized=registry.is_initialized(backend),
        )
        for backend in Backend
    }
    return HealthResponse(status="healthy", version=settings.APP_VERSION, backends=backends)


@router.post(
    "/v1/generate/text",
    response_model=LLMResponse[None],
    status_code=status.HTTP_200_OK,
    summary="Generate text with fallback",
    responses=ERROR_RESPONSES,
)
async def generate_text(
    request: TextGenerationRequest,
    dispatcher: FallbackDispatcher = Depends(get_fallback_dispatcher),
) -> LLMResponse[None]:
    logger.info("Text generation requested", caller=request.caller, turns=len(request.messages))
    return await dispatcher.generate_text(request)


@router.post(
    "/v1/generate/image",
    response_model=LLMResponse[None],
    status_code=status.HTTP_200_OK,
    summary="Generate an image with fallback",
    responses=ERROR_RESPONSES,
)
async def generate_image(
    request: ImageGenerationRequest,
    dispatcher: FallbackDispatcher = Depends(get_fallback_dispatcher),
) -> LLMResponse[None]:
    logger.info(
        "Image generation requested",
        caller=request.caller,
        references=len(request.reference_images()),
    )
    return await dispatcher.generate_image(request)


@router.post(
    "/v1/generate/structured",
    response_model=LLMResponse[Any],
    status_code=status.HTTP_200_OK,
    summary="Generate JSON data with fallback",
    responses={**ERROR_RESPONSES, 422: {"description": "No backend produced valid JSON"}},
)
async def generate_structured(
    request: StructuredDataRequest,
    dispatcher: FallbackDispatcher = Depends(get_fallback_dispatcher),
) -> LLMResponse[Any]:
    logger.info(
        "Structured generation requested",
        caller=request.caller,
        has_schema=request.json_schema is not None,
    )
    return await dispatcher.generate_structured_data(request)


@router.post(
    "/v1/generate/stream",
    status_code=status.HTTP_200_OK,
    summary="Stream text with mid-stream failover",
    response_class=StreamingResponse,
    responses={200: {"content": {"application/x-ndjson": {}}}},
)
async def generate_stream(
    request: StreamGenerationRequest,
    dispatcher: FallbackDispatcher = Depends(get_fallback_dispatcher),
) -> StreamingResponse:
    logger.info("Stream requested", caller=request.caller, turns=len(request.messages))

    async def lines(chunks: AsyncIterator[StreamResponse]) -> AsyncIterator[str]:
        async for chunk in chunks:
            yield chunk.model_dump_json() + "\n"

    return StreamingResponse(
        lines(dispatcher.generate_stream(request)),
        media_type="application/x-ndjson",
    )
