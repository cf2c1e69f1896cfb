"""Monitoring for the LLM layer.

Exports the Prometheus metrics and the tracking event emitter.
"""

from llm_layer.monitoring.metrics import (
    llm_attempts_total,
    llm_latency_seconds,
    llm_requests_total,
    llm_retries_total,
    llm_stream_segment_failures_total,
    llm_tokens_total,
)
from llm_layer.monitoring.tracking import (
    LogTrackingSink,
    TrackingEmitter,
    TrackingEvent,
    TrackingSink,
    generate_track_id,
)

__all__ = [
    "llm_requests_total",
    "llm_attempts_total",
    "llm_retries_total",
    "llm_latency_seconds",
    "llm_tokens_total",
    "llm_stream_segment_failures_total",
    "LogTrackingSink",
    "TrackingEmitter",
    "TrackingEvent",
    "TrackingSink",
    "generate_track_id",
]
