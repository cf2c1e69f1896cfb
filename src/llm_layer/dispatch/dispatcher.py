"""
Fallback dispatcher for one-shot operations.

Given a ranked list of backends, tries each in turn under its retry policy
and returns the first success. Every top-level call gets a track id; the
tracking emitter is invoked once per success, once per raw structured
attempt, and once when every backend is exhausted.

Usage:
    >>> dispatcher = FallbackDispatcher(BackendRegistry(settings), settings)
    >>> response = await dispatcher.generate_text(TextGenerationRequest(...))
"""

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Optional, TypeVar

import structlog

from llm_layer.backends.base_client import BaseBackendClient
from llm_layer.backends.registry import BackendRegistry
from llm_layer.config import Settings, settings as default_settings
from llm_layer.dispatch.config import DispatchConfig, resolve_dispatch_config
from llm_layer.dispatch.diagnostics import Diagnostics
from llm_layer.dispatch.exceptions import AllBackendsFailedError, ConfigurationError
from llm_layer.dispatch.image_store import DataUrlImageStore, ImageStore, finalize_image_url
from llm_layer.dispatch.streaming import StreamDispatcher
from llm_layer.dispatch.structured import StructuredOutputParser
from llm_layer.models.backend_models import ImageGenerationOptions, Usage
from llm_layer.models.enums import Backend, OperationKind
from llm_layer.models.requests import (
    GenerationRequest,
    ImageGenerationRequest,
    StreamGenerationRequest,
    StructuredDataRequest,
    TextGenerationRequest,
)
from llm_layer.models.responses import LLMResponse, StreamResponse
from llm_layer.monitoring.metrics import llm_attempts_total, llm_requests_total, llm_retries_total
from llm_layer.monitoring.tracking import TrackingEmitter, generate_track_id, now_ms
from llm_layer.retry.policy import RetryPolicy, Sleep

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class AttemptResult(Generic[T]):
    """
    Outcome of one successful backend attempt.

    `tracked` is set when the attempt already emitted its own tracking event
    (structured generation tracks every raw completion).
    """

    value: T
    usage: Usage
    tracked: bool = False


@dataclass
class CallContext:
    """State shared by the attempts of one top-level call."""

    config: DispatchConfig
    track_id: str
    started_at: int
    diagnostics: Diagnostics


# (client, backend, model, attempt number starting at 1, context) -> result
Operation = Callable[[BaseBackendClient, Backend, str, int, CallContext], Awaitable[AttemptResult]]


class FallbackDispatcher:
    """
    Retry-and-fallback orchestration over a BackendRegistry.

    Attributes:
        registry: Source of backend clients
        settings: Defaults merged into every request
        emitter: Tracking event emitter
        image_store: Post-processor for generated data URLs
    """

    def __init__(
        self,
        registry: BackendRegistry,
        settings: Optional[Settings] = None,
        emitter: Optional[TrackingEmitter] = None,
        image_store: Optional[ImageStore] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.registry = registry
        self.settings = settings or default_settings
        self.emitter = emitter or TrackingEmitter()
        self.image_store: ImageStore = image_store or DataUrlImageStore()
        self._sleep = sleep
        self._streams = StreamDispatcher(registry, self.settings, self.emitter)

    # === Public operations ===

    async def generate_text(self, request: TextGenerationRequest) -> LLMResponse[None]:
        """
        Generate one text completion.

        Raises:
            ConfigurationError: the request can never succeed as configured
            The last backend's error when every backend fails
        """

        async def operation(client, backend, model, attempt, ctx):
            completion = await client.generate(
                model,
                request.system,
                request.messages,
                self._max_tokens(request),
                self._temperature(request),
            )
            return AttemptResult(completion.text, completion.usage)

        return await self._dispatch(
            request,
            OperationKind.TEXT,
            operation,
            lambda value, **kw: LLMResponse[None](text=value, **kw),
        )

    async def generate_image(self, request: ImageGenerationRequest) -> LLMResponse[None]:
        """
        Generate one image.

        Raises:
            ConfigurationError: the fallback order names a backend that cannot
                generate images (checked before any attempt)
            The last backend's error when every backend fails
        """
        options_base = dict(
            prompt=request.prompt,
            system=request.system,
            width=request.width,
            height=request.height,
            quality=request.quality,
            reference_images=request.reference_images(),
        )

        async def operation(client, backend, model, attempt, ctx):
            completion = await client.generate_image(
                ImageGenerationOptions(model=model, **options_base)
            )
            image_url = await finalize_image_url(completion.image_url, self.image_store)
            return AttemptResult(image_url, completion.usage)

        return await self._dispatch(
            request,
            OperationKind.IMAGE,
            operation,
            lambda value, **kw: LLMResponse[None](image_url=value, **kw),
        )

    async def generate_structured_data(
        self,
        request: StructuredDataRequest,
        output_type: Optional[type[T]] = None,
    ) -> LLMResponse[T]:
        """
        Generate JSON data, retrying malformed output like a failed call.

        Every raw completion is tracked before it is parsed, so a backend
        that needed two tries to produce valid JSON yields two events.

        Args:
            request: Structured data request (optional json_schema)
            output_type: Type the parsed document is converted to

        Raises:
            ConfigurationError: json_schema is not a valid schema
            MalformedOutputError: the last backend produced unparseable output
        """
        parser: StructuredOutputParser[T] = StructuredOutputParser(
            json_schema=request.json_schema, output_type=output_type
        )

        async def operation(client, backend, model, attempt, ctx):
            completion = await client.generate(
                model,
                request.system,
                request.messages,
                self._max_tokens(request),
                self._temperature(request),
            )
            self.emitter.track(
                track_id=ctx.track_id,
                backend=backend,
                model=model,
                operation=OperationKind.STRUCTURED,
                caller=ctx.config.caller,
                started_at=ctx.started_at,
                usage=completion.usage,
                retry_count=attempt - 1,
            )
            return AttemptResult(parser.parse(completion.text), completion.usage, tracked=True)

        return await self._dispatch(
            request,
            OperationKind.STRUCTURED,
            operation,
            lambda value, **kw: LLMResponse[Any](data=value, **kw),
        )

    def generate_stream(self, request: StreamGenerationRequest) -> AsyncIterator[StreamResponse]:
        """Lazy, single-pass stream of chunks; failures are reported in-band."""
        return self._streams.stream(request)

    # === Fallback loop ===

    def _max_tokens(self, request) -> int:
        return request.max_tokens or self.settings.DEFAULT_MAX_TOKENS

    def _temperature(self, request) -> float:
        if request.temperature is None:
            return self.settings.DEFAULT_TEMPERATURE
        return request.temperature

    @staticmethod
    def _count_retries(backend: Backend, operation_kind: OperationKind, attempts: int) -> None:
        if attempts > 1:
            llm_retries_total.labels(backend=backend.value, operation=operation_kind.value).inc(
                attempts - 1
            )

    def _check_image_capabilities(self, config: DispatchConfig, request: GenerationRequest) -> None:
        # A model entry for a text-only backend is rejected even when it is not in the order
        named = dict.fromkeys([*config.fallback_order, *request.models])
        unsupported = [b.value for b in named if not self.registry.supports(b, OperationKind.IMAGE)]
        if unsupported:
            raise ConfigurationError(
                f"{', '.join(unsupported)} does not support image generation",
                {"backends": unsupported},
            )

    def _preresolve(
        self, config: DispatchConfig, diagnostics: Diagnostics
    ) -> tuple[dict[Backend, BaseBackendClient], dict[Backend, Exception]]:
        clients: dict[Backend, BaseBackendClient] = {}
        failures: dict[Backend, Exception] = {}
        for backend in config.fallback_order:
            try:
                clients[backend] = self.registry.resolve(backend)
            except Exception as e:
                failures[backend] = e
                diagnostics.warning("Backend initialization failed", backend=backend.value, error=str(e))
        return clients, failures

    async def _dispatch(
        self,
        request: GenerationRequest,
        operation_kind: OperationKind,
        operation: Operation,
        build: Callable[..., LLMResponse],
    ) -> LLMResponse:
        try:
            config = resolve_dispatch_config(request, operation_kind, self.settings)
            if operation_kind == OperationKind.IMAGE:
                self._check_image_capabilities(config, request)
        except ConfigurationError:
            llm_requests_total.labels(operation=operation_kind.value, outcome="config_error").inc()
            raise

        track_id = generate_track_id()
        diagnostics = Diagnostics(
            config.error_level, track_id=track_id, operation=operation_kind.value
        )
        ctx = CallContext(config, track_id, now_ms(), diagnostics)

        diagnostics.info(
            "Starting dispatch",
            backends=[b.value for b in config.fallback_order],
            caller=config.caller,
        )
        clients, init_failures = self._preresolve(config, diagnostics)

        last_error: Optional[Exception] = None
        total_attempts = 0

        for backend in config.fallback_order:
            model = config.model_for(backend)
            if not model:
                diagnostics.info("Skipping backend without model", backend=backend.value)
                continue

            if backend in init_failures:
                last_error = init_failures[backend]
                diagnostics.warning("Backend unavailable", backend=backend.value, error=str(last_error))
                continue

            client = clients[backend]
            attempts = 0

            async def attempt() -> AttemptResult:
                nonlocal attempts
                attempts += 1
                try:
                    result = await operation(client, backend, model, attempts, ctx)
                except Exception:
                    llm_attempts_total.labels(
                        backend=backend.value, operation=operation_kind.value, success="false"
                    ).inc()
                    raise
                llm_attempts_total.labels(
                    backend=backend.value, operation=operation_kind.value, success="true"
                ).inc()
                return result

            def on_retry(error: Exception, attempt_index: int, delay: float) -> None:
                diagnostics.info(
                    "Retrying backend",
                    backend=backend.value,
                    attempt=attempt_index + 1,
                    delay_seconds=delay,
                    error=str(error),
                )

            policy = RetryPolicy(
                max_retries=config.retries_for(backend),
                initial_delay=config.initial_delay,
                multiplier=config.multiplier,
                max_delay=config.max_delay,
                jitter=config.jitter,
            )

            diagnostics.info("Trying backend", backend=backend.value, model=model)
            try:
                result = await policy.run(attempt, sleep=self._sleep, on_retry=on_retry)
            except Exception as e:
                total_attempts += attempts
                last_error = e
                self._count_retries(backend, operation_kind, attempts)
                diagnostics.warning(
                    "Backend exhausted",
                    backend=backend.value,
                    model=model,
                    attempts=attempts,
                    error=str(e),
                )
                continue

            self._count_retries(backend, operation_kind, attempts)
            if not result.tracked:
                self.emitter.track(
                    track_id=track_id,
                    backend=backend,
                    model=model,
                    operation=operation_kind,
                    caller=config.caller,
                    started_at=ctx.started_at,
                    usage=result.usage,
                    retry_count=attempts - 1,
                )
            llm_requests_total.labels(operation=operation_kind.value, outcome="success").inc()
            diagnostics.info("Backend succeeded", backend=backend.value, model=model, attempts=attempts)

            return build(
                result.value,
                backend=backend,
                model=model,
                usage=result.usage,
                track_id=track_id,
            )

        error_message = str(last_error) if last_error is not None else "All providers failed"
        self.emitter.track(
            track_id=track_id,
            backend=config.fallback_order[0],
            model="unknown",
            operation=operation_kind,
            caller=config.caller,
            started_at=ctx.started_at,
            usage=Usage(),
            retry_count=max(0, total_attempts - 1),
            error=error_message,
        )
        llm_requests_total.labels(operation=operation_kind.value, outcome="exhausted").inc()
        diagnostics.error("All providers failed", error=error_message, attempts=total_attempts)

        if last_error is None:
            raise AllBackendsFailedError()
        raise last_error
