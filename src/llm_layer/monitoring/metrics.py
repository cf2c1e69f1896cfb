"""Custom Prometheus metrics for the LLM layer.

These metrics are exposed at /metrics endpoint and should be scraped by Prometheus.
Alert rules should be configured for:
- llm_requests_total{outcome="exhausted"} (every backend failing)
- llm_retries_total (high retry rate indicates vendor instability)
- llm_stream_segment_failures_total (mid-stream failovers)
"""

from prometheus_client import Counter, Histogram

# === Request Metrics ===

llm_requests_total = Counter(
    "llm_requests_total",
    "Top-level operations by kind and outcome",
    ["operation", "outcome"],
)
"""
Top-level operation counter.

Labels:
- operation: text, image, structured, stream
- outcome: success, exhausted, config_error

Alert thresholds:
- WARN: exhausted rate > 1% of total requests
"""

# === Attempt & Retry Metrics ===

llm_attempts_total = Counter(
    "llm_attempts_total",
    "Backend attempts by backend, operation and success",
    ["backend", "operation", "success"],
)

llm_retries_total = Counter(
    "llm_retries_total",
    "Retries performed on a backend",
    ["backend", "operation"],
)
"""
Retry counter.

Labels:
- backend: google, anthropic, openai, kling, venice, xai
- operation: text, image, structured

Alert thresholds:
- WARN: retry rate > 10% of attempts on one backend
"""

# === Performance Metrics ===

llm_latency_seconds = Histogram(
    "llm_latency_seconds",
    "Latency of a tracked backend call in seconds",
    ["backend", "operation"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 600.0],
)
"""
Latency histogram, measured from the start of the top-level call.

Buckets go up to 10 minutes to cover polled image backends.
"""

llm_tokens_total = Counter(
    "llm_tokens_total",
    "Total tokens consumed by backend and type",
    ["backend", "token_type"],
)
"""
Token consumption counter.

Labels:
- backend: Backend identifier
- token_type: input, output, reasoning

Only incremented when the backend reported usage.
"""

# === Streaming Metrics ===

llm_stream_segment_failures_total = Counter(
    "llm_stream_segment_failures_total",
    "Streams that failed mid-flight and fell over to the next backend",
    ["backend"],
)
