"""
Abstract base client for generative AI backends.

Defines the capability interface every backend client (Anthropic, OpenAI,
Google, ...) implements. The dispatchers only ever talk to this interface, so
adding a backend never touches the fallback logic.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, ClassVar, Optional

import httpx
import structlog

from llm_layer.backends.exceptions import (
    BackendConnectionError,
    BackendError,
    BackendRateLimitError,
    BackendTimeoutError,
    UnsupportedOperationError,
)
from llm_layer.models.backend_models import (
    ImageCompletion,
    ImageGenerationOptions,
    StreamDelta,
    TextCompletion,
)
from llm_layer.models.enums import Backend, OperationKind
from llm_layer.models.messages import Message


logger = structlog.get_logger(__name__)


class BaseBackendClient(ABC):
    """
    Abstract base class for backend clients.

    Responsibilities:
    - Convert unified messages/options to the vendor's wire format
    - Send requests over a pooled httpx.AsyncClient
    - Normalize responses and token usage
    - Map transport and HTTP failures to the BackendError family

    Does NOT handle:
    - Retries (that's the RetryPolicy's job)
    - Falling back to another backend (that's the dispatcher's job)

    Capability flags are class attributes so that the registry can answer
    "can this backend stream / make images?" without building a client.
    An unsupported operation raises UnsupportedOperationError immediately.

    Instances hold no per-request state and are shared by concurrent calls.
    """

    backend: ClassVar[Backend]
    supports_text: ClassVar[bool] = True
    supports_streaming: ClassVar[bool] = True
    supports_images: ClassVar[bool] = False

    def __init__(
        self,
        base_url: str,
        timeout: float = 120,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connection_limits: Optional[httpx.Limits] = None,
    ):
        """
        Initialize base client.

        Args:
            base_url: Base URL of the vendor API
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
            connection_limits: httpx pool limits (default: 10 max connections)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._connection_limits = connection_limits or httpx.Limits(
            max_keepalive_connections=5,
            max_connections=10,
            keepalive_expiry=30.0,
        )
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(
            "Initialized backend client",
            client_class=self.__class__.__name__,
            backend=self.backend.value,
            base_url=self.base_url,
            timeout=timeout,
        )

    @classmethod
    def supports(cls, operation: OperationKind) -> bool:
        """Whether this backend can structurally perform an operation kind."""
        if operation == OperationKind.IMAGE:
            return cls.supports_images
        if operation == OperationKind.STREAM:
            return cls.supports_streaming
        return cls.supports_text

    def _default_headers(self) -> dict[str, str]:
        """Headers sent with every request (authentication lives here)."""
        return {}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the pooled async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=httpx.Timeout(self.timeout),
                limits=self._connection_limits,
                transport=self._transport,
                follow_redirects=True,
            )
            logger.debug("Created new httpx AsyncClient", backend=self.backend.value)
        return self._client

    # === Capability interface ===

    @abstractmethod
    async def generate(
        self,
        model: str,
        system: str,
        messages: list[Message],
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> TextCompletion:
        """
        Generate one completion.

        Raises:
            BackendError (or subclass) on any failure
        """

    async def generate_stream(
        self,
        model: str,
        system: str,
        messages: list[Message],
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamDelta]:
        """
        Stream a completion as text deltas followed by at most one usage delta.

        Errors raised mid-stream propagate to the consumer after the deltas
        already yielded.
        """
        raise UnsupportedOperationError("Streaming", self.backend)
        yield  # pragma: no cover - marks this as an async generator

    async def generate_image(self, options: ImageGenerationOptions) -> ImageCompletion:
        """Generate one image; the URL may be a data URL."""
        raise UnsupportedOperationError("Image generation", self.backend)

    # === HTTP helpers ===

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and raise a BackendError for transport or HTTP failures."""
        client = await self._get_client()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(
                f"Request timeout after {self.timeout}s",
                self.backend,
                code="TIMEOUT",
                details={"error": str(e)},
            ) from e
        except httpx.TransportError as e:
            raise BackendConnectionError(
                f"Network error: {e}",
                self.backend,
                code="CONNECTION_ERROR",
                details={"error_type": type(e).__name__},
            ) from e

        if response.is_error:
            raise self._status_error(response)
        return response

    async def _post_json(self, url: str, payload: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        response = await self._request("POST", url, json=payload, **kwargs)
        return self._json(response)

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(
                f"Invalid JSON response from {self.backend.value}",
                self.backend,
                code="INVALID_RESPONSE",
                status_code=response.status_code,
                details={"parse_error": str(e)},
            ) from e

    async def _stream_events(
        self, url: str, payload: dict[str, Any], **kwargs: Any
    ) -> AsyncIterator[dict[str, Any]]:
        """
        POST and iterate the server-sent events of the response.

        Yields each `data:` payload decoded as JSON; stops at `[DONE]`.
        """
        client = await self._get_client()
        try:
            async with client.stream("POST", url, json=payload, **kwargs) as response:
                if response.is_error:
                    await response.aread()
                    raise self._status_error(response)

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if not data:
                        continue
                    if data == "[DONE]":
                        break
                    try:
                        yield json.loads(data)
                    except json.JSONDecodeError as e:
                        raise BackendError(
                            f"Malformed stream event from {self.backend.value}",
                            self.backend,
                            code="INVALID_STREAM_EVENT",
                            details={"event": data[:200]},
                        ) from e
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(
                f"Stream timeout after {self.timeout}s", self.backend, code="TIMEOUT"
            ) from e
        except httpx.TransportError as e:
            raise BackendConnectionError(
                f"Network error: {e}", self.backend, code="CONNECTION_ERROR"
            ) from e

    def _status_error(self, response: httpx.Response) -> BackendError:
        """Build the BackendError for an HTTP error response."""
        status_code = response.status_code
        message, code = self._extract_error(response)
        error_class = BackendRateLimitError if status_code == 429 else BackendError

        logger.warning(
            "Backend HTTP error",
            backend=self.backend.value,
            status_code=status_code,
            code=code,
        )
        return error_class(
            message or f"{self.backend.value} API error: {status_code}",
            self.backend,
            code=code,
            status_code=status_code,
            details={"body": response.text[:500]},
        )

    @staticmethod
    def _extract_error(response: httpx.Response) -> tuple[Optional[str], Optional[str]]:
        """Pull (message, code) out of the common vendor error envelopes."""
        try:
            body = response.json()
        except ValueError:
            return (response.text or None), None

        if not isinstance(body, dict):
            return (response.text or None), None

        error = body.get("error")
        if isinstance(error, dict):
            code = error.get("type") or error.get("status") or error.get("code")
            return error.get("message"), (str(code) if code is not None else None)
        if isinstance(error, str):
            return error, None
        if body.get("message"):
            code = body.get("code")
            return str(body["message"]), (str(code) if code is not None else None)
        return (response.text or None), None

    async def close(self) -> None:
        """Close the HTTP client connection."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed backend client connection", backend=self.backend.value)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"base_url={self.base_url}, "
            f"timeout={self.timeout}s)"
        )
