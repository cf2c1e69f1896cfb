"""
Unit tests for the LLM layer.

Test individual components in isolation:
- Data models (request validation, message folding)
- Backend clients (wire format via httpx.MockTransport, error mapping)
- Retry policy (bounds, backoff delays, non-retryable errors)
- Dispatch config (defaults merging, retry expansion)
- Fallback dispatcher (ordering, exhaustion, tracking events)
- Structured parsing and streaming failover
"""
