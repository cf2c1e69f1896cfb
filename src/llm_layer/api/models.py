"""
API-specific response models for FastAPI endpoints.

Generation endpoints return the core LLMResponse / StreamResponse models
directly; only the service endpoints need their own shapes.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class BackendStatus(BaseModel):
    """Structural capabilities of one backend."""

    text: bool
    streaming: bool
    images: bool
    initialized: bool = Field(description="Whether a client has been built for this backend")


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: str = Field(
        description="Overall health status",
        examples=["healthy"]
    )
    version: str = Field(
        description="LLM layer version",
        examples=["0.1.0"]
    )
    backends: dict[str, BackendStatus] = Field(
        description="Capabilities per backend"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Health check timestamp (UTC)"
    )
