"""
FastAPI dependency injection for the LLM layer.

Provides the settings singleton and the shared dispatcher (which owns the
backend registry and its connection pools).
"""

from functools import lru_cache

from llm_layer.client import get_dispatcher
from llm_layer.config import Settings, settings
from llm_layer.dispatch.dispatcher import FallbackDispatcher


@lru_cache()
def get_settings() -> Settings:
    """
    Get settings singleton.

    Returns:
        Settings instance
    """
    return settings


def get_fallback_dispatcher() -> FallbackDispatcher:
    """
    Get the shared dispatcher.

    Tests replace it through app.dependency_overrides with a dispatcher
    built on an isolated registry.
    """
    return get_dispatcher()
