"""
Per-backend retry policy.

Main Components:
    - RetryPolicy: bounded retries with exponential backoff
    - with_retry: functional shorthand
    - is_retryable: default predicate (skips unsupported / missing credentials)

Usage:
    >>> from llm_layer.retry import with_retry
    >>> text = await with_retry(lambda: client.generate(...), max_retries=2)
"""

from llm_layer.retry.policy import RetryPolicy, is_retryable, with_retry

__all__ = [
    "RetryPolicy",
    "is_retryable",
    "with_retry",
]
