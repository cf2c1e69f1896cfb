"""
Backend registry: lazily builds one client per backend and caches it.

The registry is passed explicitly to the dispatchers, so tests and embedding
applications can run isolated registries side by side and inject fakes with
register().
"""

from typing import Callable, Optional, Union

import structlog

from llm_layer.backends.anthropic_client import AnthropicClient
from llm_layer.backends.base_client import BaseBackendClient
from llm_layer.backends.credentials import get_credential, get_kling_credentials
from llm_layer.backends.exceptions import LLMError
from llm_layer.backends.google_client import GoogleClient
from llm_layer.backends.kling_client import KlingClient
from llm_layer.backends.openai_client import OpenAIClient, XAIClient
from llm_layer.backends.venice_client import VeniceClient
from llm_layer.config import Settings
from llm_layer.models.enums import Backend, OperationKind

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[Settings], BaseBackendClient]

CLIENT_CLASSES: dict[Backend, type[BaseBackendClient]] = {
    Backend.ANTHROPIC: AnthropicClient,
    Backend.GOOGLE: GoogleClient,
    Backend.OPENAI: OpenAIClient,
    Backend.XAI: XAIClient,
    Backend.VENICE: VeniceClient,
    Backend.KLING: KlingClient,
}


def _anthropic(settings: Settings) -> BaseBackendClient:
    return AnthropicClient(
        api_key=get_credential(Backend.ANTHROPIC, settings),
        base_url=settings.ANTHROPIC_BASE_URL,
        api_version=settings.ANTHROPIC_VERSION,
        timeout=settings.BACKEND_TIMEOUT,
    )


def _google(settings: Settings) -> BaseBackendClient:
    return GoogleClient(
        api_key=get_credential(Backend.GOOGLE, settings),
        base_url=settings.GOOGLE_BASE_URL,
        timeout=settings.BACKEND_TIMEOUT,
    )


def _openai(settings: Settings) -> BaseBackendClient:
    return OpenAIClient(
        api_key=get_credential(Backend.OPENAI, settings),
        base_url=settings.OPENAI_BASE_URL,
        timeout=settings.BACKEND_TIMEOUT,
    )


def _xai(settings: Settings) -> BaseBackendClient:
    return XAIClient(
        api_key=get_credential(Backend.XAI, settings),
        base_url=settings.XAI_BASE_URL,
        timeout=settings.BACKEND_TIMEOUT,
    )


def _venice(settings: Settings) -> BaseBackendClient:
    return VeniceClient(
        api_key=get_credential(Backend.VENICE, settings),
        base_url=settings.VENICE_BASE_URL,
        timeout=settings.BACKEND_TIMEOUT,
    )


def _kling(settings: Settings) -> BaseBackendClient:
    access_key_id, access_key_secret = get_kling_credentials(settings)
    return KlingClient(
        access_key_id=access_key_id,
        access_key_secret=access_key_secret,
        base_url=settings.KLING_BASE_URL,
        timeout=settings.BACKEND_TIMEOUT,
        poll_interval=settings.KLING_POLL_INTERVAL,
        max_polls=settings.KLING_MAX_POLLS,
        token_ttl=settings.KLING_TOKEN_TTL,
    )


DEFAULT_FACTORIES: dict[Backend, ClientFactory] = {
    Backend.ANTHROPIC: _anthropic,
    Backend.GOOGLE: _google,
    Backend.OPENAI: _openai,
    Backend.XAI: _xai,
    Backend.VENICE: _venice,
    Backend.KLING: _kling,
}


class BackendRegistry:
    """
    Maps backend identifiers to initialized clients.

    resolve() is idempotent: the first call runs the backend's factory
    (credential lookup + client construction) and caches the client; later
    calls return the cached instance. A factory failure is propagated and
    not cached, so a later call after fixing the configuration succeeds.

    Concurrent first resolutions may both run the factory; the last one to
    finish wins the cache slot. No lock is taken.
    """

    def __init__(
        self,
        settings: Settings,
        factories: Optional[dict[Backend, ClientFactory]] = None,
    ):
        self.settings = settings
        self._factories: dict[Backend, ClientFactory] = dict(DEFAULT_FACTORIES)
        if factories:
            self._factories.update(factories)
        self._clients: dict[Backend, BaseBackendClient] = {}

    def register(self, backend: Backend, client: BaseBackendClient) -> None:
        """Install a ready client (used by tests and custom deployments)."""
        self._clients[backend] = client

    def register_factory(self, backend: Backend, factory: ClientFactory) -> None:
        self._factories[backend] = factory
        self._clients.pop(backend, None)

    def resolve(self, backend: Backend) -> BaseBackendClient:
        """
        Get the client for a backend, initializing it on first use.

        Raises:
            MissingCredentialError: credentials for the backend are not set
            LLMError: no factory is known for the backend
        """
        client = self._clients.get(backend)
        if client is not None:
            return client

        factory = self._factories.get(backend)
        if factory is None:
            raise LLMError(f"Unknown provider: {backend.value}", {"code": "UNKNOWN_PROVIDER"})

        client = factory(self.settings)
        self._clients[backend] = client
        logger.info("Backend client initialized", backend=backend.value, client=repr(client))
        return client

    def is_initialized(self, backend: Backend) -> bool:
        return backend in self._clients

    def client_class(self, backend: Backend) -> Optional[type[BaseBackendClient]]:
        client = self._clients.get(backend)
        if client is not None:
            return type(client)
        return CLIENT_CLASSES.get(backend)

    def supports(self, backend: Backend, operation: Union[OperationKind, str]) -> bool:
        """
        Whether a backend can structurally perform an operation.

        Answered from the client class, without building a client. An
        injected client is asked directly, so fakes can declare their own
        capabilities.
        """
        operation = OperationKind(operation)
        client = self._clients.get(backend)
        if client is not None:
            return client.supports(operation)
        client_class = CLIENT_CLASSES.get(backend)
        return client_class is not None and client_class.supports(operation)

    def capabilities(self, backend: Backend) -> dict[str, bool]:
        return {
            "text": self.supports(backend, OperationKind.TEXT),
            "streaming": self.supports(backend, OperationKind.STREAM),
            "images": self.supports(backend, OperationKind.IMAGE),
        }

    async def aclose(self) -> None:
        """Close every cached client's HTTP pool."""
        for backend, client in list(self._clients.items()):
            try:
                await client.close()
            except Exception as e:
                logger.warning("Failed to close backend client", backend=backend.value, error=str(e))
        self._clients.clear()
