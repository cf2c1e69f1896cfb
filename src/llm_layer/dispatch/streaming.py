"""
Fallback dispatcher for streaming text.

Streams are not retried: a failing backend is reported in-band with a
SEGMENT_FAILURE chunk carrying what it had delivered, and the next backend
starts over from scratch. The generator never raises; when every backend
fails the last chunk is EXHAUSTED.
"""

from contextlib import aclosing
from typing import AsyncIterator, Optional

import structlog

from llm_layer.backends.exceptions import BackendError
from llm_layer.backends.registry import BackendRegistry
from llm_layer.config import Settings
from llm_layer.dispatch.config import resolve_dispatch_config
from llm_layer.dispatch.diagnostics import Diagnostics
from llm_layer.dispatch.exceptions import ConfigurationError
from llm_layer.models.backend_models import Usage
from llm_layer.models.enums import Backend, DeltaKind, OperationKind, StreamChunkKind
from llm_layer.models.requests import StreamGenerationRequest
from llm_layer.models.responses import ErrorInfo, StreamResponse
from llm_layer.monitoring.metrics import (
    llm_attempts_total,
    llm_requests_total,
    llm_stream_segment_failures_total,
)
from llm_layer.monitoring.tracking import TrackingEmitter, generate_track_id, now_ms

logger = structlog.get_logger(__name__)

OPERATION = OperationKind.STREAM


def describe_failure(exc: Exception, backend: Backend) -> ErrorInfo:
    """In-band description of a failed segment.

    Only BackendError carries a trusted vendor code and HTTP status; foreign
    exceptions contribute their message and are attributed to `backend`.
    """
    if isinstance(exc, BackendError):
        return ErrorInfo(
            message=exc.message or type(exc).__name__,
            backend=exc.backend,
            code=exc.code,
            status_code=exc.status_code,
        )
    return ErrorInfo(message=str(exc) or type(exc).__name__, backend=backend)


class StreamDispatcher:
    """Multiplexes backend streams into one sequence of StreamResponse chunks."""

    def __init__(self, registry: BackendRegistry, settings: Settings, emitter: TrackingEmitter):
        self.registry = registry
        self.settings = settings
        self.emitter = emitter

    def _exhausted(
        self, backend: Backend, model: str, last_error: Optional[BaseException]
    ) -> StreamResponse:
        message = str(last_error) if last_error is not None else "All providers failed"
        return StreamResponse(
            kind=StreamChunkKind.EXHAUSTED,
            backend=backend,
            model=model,
            error=ErrorInfo(message=message or "All providers failed", backend=backend, code="STREAM_FAILED"),
        )

    async def stream(self, request: StreamGenerationRequest) -> AsyncIterator[StreamResponse]:
        try:
            config = resolve_dispatch_config(request, OPERATION, self.settings)
        except ConfigurationError as e:
            llm_requests_total.labels(operation=OPERATION.value, outcome="config_error").inc()
            yield self._exhausted(Backend.GOOGLE, "unknown", e)
            return

        track_id = generate_track_id()
        started_at = now_ms()
        diagnostics = Diagnostics(config.error_level, track_id=track_id, operation=OPERATION.value)

        order = [b for b in config.fallback_order if self.registry.supports(b, OPERATION)]
        diagnostics.info("Starting stream", backends=[b.value for b in order], caller=config.caller)

        max_tokens = request.max_tokens or self.settings.DEFAULT_MAX_TOKENS
        temperature = (
            self.settings.DEFAULT_TEMPERATURE if request.temperature is None else request.temperature
        )
        last_error: Optional[Exception] = None

        for backend in order:
            model = config.model_for(backend)
            if not model:
                diagnostics.info("Skipping backend without model", backend=backend.value)
                continue

            try:
                client = self.registry.resolve(backend)
            except Exception as e:
                last_error = e
                diagnostics.warning("Backend unavailable", backend=backend.value, error=str(e))
                continue

            diagnostics.info("Opening stream", backend=backend.value, model=model)
            delivered: list[str] = []
            usage: Optional[Usage] = None
            try:
                deltas = client.generate_stream(
                    model, request.system, request.messages, max_tokens, temperature
                )
                async with aclosing(deltas) as stream:
                    async for delta in stream:
                        if delta.kind == DeltaKind.USAGE:
                            usage = delta.usage
                        elif delta.text:
                            delivered.append(delta.text)
                            yield StreamResponse(text=delta.text, backend=backend, model=model)
            except Exception as e:
                last_error = e
                llm_attempts_total.labels(
                    backend=backend.value, operation=OPERATION.value, success="false"
                ).inc()
                llm_stream_segment_failures_total.labels(backend=backend.value).inc()
                diagnostics.warning(
                    "Stream failed, falling back",
                    backend=backend.value,
                    delivered_chars=sum(len(t) for t in delivered),
                    error=str(e),
                )
                yield StreamResponse(
                    kind=StreamChunkKind.SEGMENT_FAILURE,
                    text="".join(delivered),
                    backend=backend,
                    model=model,
                    error=describe_failure(e, backend),
                )
                continue

            llm_attempts_total.labels(
                backend=backend.value, operation=OPERATION.value, success="true"
            ).inc()
            llm_requests_total.labels(operation=OPERATION.value, outcome="success").inc()
            self.emitter.track(
                track_id=track_id,
                backend=backend,
                model=model,
                operation=OPERATION,
                caller=config.caller,
                started_at=started_at,
                usage=usage or Usage.unavailable(),
            )
            diagnostics.info("Stream completed", backend=backend.value, model=model)
            return

        llm_requests_total.labels(operation=OPERATION.value, outcome="exhausted").inc()
        diagnostics.error(
            "All providers failed", error=str(last_error) if last_error else None
        )
        first = order[0] if order else Backend.GOOGLE
        yield self._exhausted(first, config.model_for(first) or "unknown", last_error)
