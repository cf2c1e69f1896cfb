"""
HTTP surface for the LLM layer: FastAPI app wiring the fallback dispatcher.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from llm_layer.api.dependencies import get_fallback_dispatcher
from llm_layer.api.error_handlers import EXCEPTION_HANDLERS
from llm_layer.api.middleware import PROCESS_TIME_HEADER, REQUEST_ID_HEADER, RequestTracingMiddleware
from llm_layer.api.routes import router
from llm_layer.config import settings
from llm_layer.logging_config import configure_logging

configure_logging(settings.LOG_LEVEL, settings.ENVIRONMENT)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "LLM layer starting",
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        fallback_order=settings.DEFAULT_FALLBACK_ORDER,
        image_fallback_order=settings.DEFAULT_IMAGE_FALLBACK_ORDER,
    )
    yield
    # Overrides win so tests close their own registry, not the shared one
    provider = app.dependency_overrides.get(get_fallback_dispatcher, get_fallback_dispatcher)
    await provider().registry.aclose()
    logger.info("LLM layer stopped, backend pools closed")


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware, handlers and routes."""
    application = FastAPI(
        title=settings.APP_NAME,
        description="Multi-backend LLM generation with retry and fallback",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, PROCESS_TIME_HEADER],
    )
    # Outermost: added last
    application.add_middleware(RequestTracingMiddleware)

    for exc_class, handler in EXCEPTION_HANDLERS.items():
        application.add_exception_handler(exc_class, handler)

    application.include_router(router, tags=["generation"])

    if settings.PROMETHEUS_ENABLED:
        Instrumentator(excluded_handlers=["/metrics", "/health"]).instrument(application).expose(
            application, include_in_schema=False
        )

    @application.get("/", include_in_schema=False)
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics" if settings.PROMETHEUS_ENABLED else None,
        }

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("llm_layer.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
