"""
Backend clients for the generative AI vendors.

Every client implements BaseBackendClient; the BackendRegistry builds them
lazily from settings and credentials.
"""

from llm_layer.backends.anthropic_client import AnthropicClient
from llm_layer.backends.base_client import BaseBackendClient
from llm_layer.backends.credentials import (
    clear_credential_cache,
    get_credential,
    get_kling_credentials,
)
from llm_layer.backends.exceptions import (
    BackendConnectionError,
    BackendError,
    BackendRateLimitError,
    BackendTimeoutError,
    LLMError,
    MissingCredentialError,
    UnsupportedOperationError,
)
from llm_layer.backends.google_client import GoogleClient
from llm_layer.backends.kling_client import KlingClient
from llm_layer.backends.openai_client import OpenAIClient, XAIClient
from llm_layer.backends.registry import BackendRegistry
from llm_layer.backends.venice_client import VeniceClient

__all__ = [
    # Clients
    "BaseBackendClient",
    "AnthropicClient",
    "GoogleClient",
    "KlingClient",
    "OpenAIClient",
    "VeniceClient",
    "XAIClient",
    "BackendRegistry",
    # Credentials
    "clear_credential_cache",
    "get_credential",
    "get_kling_credentials",
    # Exceptions
    "LLMError",
    "BackendError",
    "BackendConnectionError",
    "BackendTimeoutError",
    "BackendRateLimitError",
    "MissingCredentialError",
    "UnsupportedOperationError",
]
