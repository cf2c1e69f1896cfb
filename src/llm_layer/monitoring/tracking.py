"""
Tracking events for usage and cost accounting.

Each dispatcher transition (a successful attempt, a raw structured attempt,
a terminal failure) produces one TrackingEvent that is handed to a sink.
Emission is fire-and-forget: a failing sink is logged and never affects the
operation.
"""

import time
import uuid
from typing import Optional, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict, Field

from llm_layer.models.backend_models import Usage
from llm_layer.models.enums import Backend, OperationKind
from llm_layer.monitoring.metrics import (
    llm_latency_seconds,
    llm_tokens_total,
)

logger = structlog.get_logger(__name__)


def generate_track_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    return int(time.time() * 1000)


class TrackingEvent(BaseModel):
    """
    One usage/accounting record.

    `started_at` is the start of the top-level call (epoch ms), so every
    event of one call shares it; `elapsed_ms` is measured from there.
    `retry_count` is the number of retries performed on `backend`.
    """
    model_config = ConfigDict(frozen=True)

    track_id: str
    backend: Backend
    model: str
    operation: OperationKind
    caller: str
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    reasoning_tokens: int = Field(default=0, ge=0)
    usage_available: bool = True
    started_at: int
    elapsed_ms: int = Field(default=0, ge=0)
    retry_count: int = Field(default=0, ge=0)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@runtime_checkable
class TrackingSink(Protocol):
    """Destination for tracking events."""

    def emit(self, event: TrackingEvent) -> None:
        ...


class LogTrackingSink:
    """Default sink: one structured log record per event."""

    def __init__(self, logger_name: str = "llm_tracking"):
        self._logger = structlog.get_logger(logger_name)

    def emit(self, event: TrackingEvent) -> None:
        self._logger.info("llm_usage", **event.model_dump(mode="json"))


class TrackingEmitter:
    """
    Builds tracking events and forwards them to a sink.

    Also feeds the Prometheus counters, so every tracked call is reflected in
    /metrics regardless of the sink.
    """

    def __init__(self, sink: Optional[TrackingSink] = None):
        self.sink: TrackingSink = sink or LogTrackingSink()

    def track(
        self,
        *,
        track_id: str,
        backend: Backend,
        model: str,
        operation: OperationKind,
        caller: str,
        started_at: int,
        usage: Optional[Usage] = None,
        retry_count: int = 0,
        error: Optional[str] = None,
    ) -> TrackingEvent:
        usage = usage or Usage.unavailable()
        event = TrackingEvent(
            track_id=track_id,
            backend=backend,
            model=model,
            operation=operation,
            caller=caller,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            reasoning_tokens=usage.reasoning_tokens,
            usage_available=usage.available,
            started_at=started_at,
            elapsed_ms=max(0, now_ms() - started_at),
            retry_count=retry_count,
            error=error,
        )
        self.emit(event)
        return event

    def emit(self, event: TrackingEvent) -> None:
        self._record_metrics(event)
        try:
            self.sink.emit(event)
        except Exception as e:
            logger.error(
                "Tracking sink failed",
                track_id=event.track_id,
                sink=type(self.sink).__name__,
                error=str(e),
            )

    @staticmethod
    def _record_metrics(event: TrackingEvent) -> None:
        backend = event.backend.value
        operation = event.operation.value

        llm_latency_seconds.labels(backend=backend, operation=operation).observe(
            event.elapsed_ms / 1000
        )
        if event.usage_available:
            llm_tokens_total.labels(backend=backend, token_type="input").inc(event.input_tokens)
            llm_tokens_total.labels(backend=backend, token_type="output").inc(event.output_tokens)
            llm_tokens_total.labels(backend=backend, token_type="reasoning").inc(
                event.reasoning_tokens
            )
