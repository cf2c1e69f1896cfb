"""
Merging a caller request with the configured defaults.

The request object is never mutated; the dispatcher works from the
DispatchConfig derived here.
"""

from dataclasses import dataclass
from typing import Union

from llm_layer.config import Settings
from llm_layer.dispatch.exceptions import ConfigurationError
from llm_layer.models.enums import Backend, ErrorLevel, OperationKind
from llm_layer.models.requests import GenerationRequest

# stream requests share the text model table
MODEL_TABLE_FOR: dict[OperationKind, str] = {
    OperationKind.TEXT: "text",
    OperationKind.STREAM: "text",
    OperationKind.STRUCTURED: "structured",
    OperationKind.IMAGE: "image",
}


@dataclass(frozen=True)
class DispatchConfig:
    """Effective settings for one top-level call."""

    operation: OperationKind
    fallback_order: list[Backend]
    models: dict[Backend, str]
    retries: dict[Backend, int]
    error_level: ErrorLevel
    caller: str
    initial_delay: float
    multiplier: float
    max_delay: float | None = None
    jitter: float = 0.0

    def model_for(self, backend: Backend) -> str | None:
        return self.models.get(backend)

    def retries_for(self, backend: Backend) -> int:
        return self.retries.get(backend, 0)


def dedupe(order: list[Backend]) -> list[Backend]:
    """Drop repeated backends, keeping the first occurrence."""
    seen: set[Backend] = set()
    result = []
    for backend in order:
        if backend not in seen:
            seen.add(backend)
            result.append(backend)
    return result


def default_models(operation: OperationKind, settings: Settings) -> dict[Backend, str]:
    table = settings.MODEL_DEFAULTS.get(MODEL_TABLE_FOR[operation], {})
    return {Backend(name): model for name, model in table.items()}


def default_fallback_order(operation: OperationKind, settings: Settings) -> list[Backend]:
    if operation == OperationKind.IMAGE:
        return [Backend(b) for b in settings.DEFAULT_IMAGE_FALLBACK_ORDER]
    return [Backend(b) for b in settings.DEFAULT_FALLBACK_ORDER]


def resolve_retries(
    retry: Union[int, list[int], dict[Backend, int], None],
    order: list[Backend],
    default: int,
) -> dict[Backend, int]:
    """
    Expand the request's retry setting into one count per backend.

    - None: the configured default for every backend
    - int: the same count for every backend
    - list: aligned with the fallback order; the last value repeats
    - dict: per backend, the default for backends not listed
    """
    if retry is None:
        return {b: default for b in order}
    if isinstance(retry, int):
        return {b: retry for b in order}
    if isinstance(retry, list):
        if not retry:
            return {b: default for b in order}
        return {b: retry[min(i, len(retry) - 1)] for i, b in enumerate(order)}
    return {b: retry.get(b, default) for b in order}


def resolve_dispatch_config(
    request: GenerationRequest,
    operation: OperationKind,
    settings: Settings,
) -> DispatchConfig:
    """
    Build the effective configuration of one call.

    Raises:
        ConfigurationError: the fallback order is empty
    """
    order = dedupe(request.fallback_order or default_fallback_order(operation, settings))
    if not order:
        raise ConfigurationError("Fallback order is empty", {"operation": operation.value})

    models = {**default_models(operation, settings), **request.models}

    return DispatchConfig(
        operation=operation,
        fallback_order=order,
        models=models,
        retries=resolve_retries(request.retry, order, settings.DEFAULT_RETRY),
        error_level=request.error_level,
        caller=request.caller or settings.DEFAULT_CALLER,
        initial_delay=settings.RETRY_INITIAL_DELAY,
        multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
        max_delay=settings.RETRY_MAX_DELAY,
        jitter=settings.RETRY_JITTER,
    )
