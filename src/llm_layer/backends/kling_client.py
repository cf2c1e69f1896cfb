"""
Kling image generation client.

Kling is asynchronous: a generation call submits a task, which is then polled
until it succeeds or fails. The resulting image is downloaded and returned as
a data URL. Requests are authenticated with a short-lived HS256 JWT signed
with the access key secret. Kling reports no token usage.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog
from jose import jwt

from llm_layer.backends.base_client import BaseBackendClient
from llm_layer.backends.exceptions import BackendError, UnsupportedOperationError
from llm_layer.backends.image_utils import bytes_to_data_url, nearest_aspect_ratio, split_data_url
from llm_layer.models.backend_models import (
    ImageCompletion,
    ImageGenerationOptions,
    TextCompletion,
    Usage,
)
from llm_layer.models.enums import Backend
from llm_layer.models.messages import Message

logger = structlog.get_logger(__name__)

DEFAULT_MODEL = "kling-v1-5"


class KlingClient(BaseBackendClient):
    """Image-only backend; text and streaming raise UnsupportedOperationError."""

    backend = Backend.KLING
    supports_text = False
    supports_streaming = False
    supports_images = True

    def __init__(
        self,
        access_key_id: str,
        access_key_secret: str,
        base_url: str = "https://api-singapore.klingai.com",
        timeout: float = 120,
        poll_interval: float = 10.0,
        max_polls: int = 60,
        token_ttl: int = 1800,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._access_key_id = access_key_id
        self._access_key_secret = access_key_secret
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.token_ttl = token_ttl
        self._sleep = sleep
        super().__init__(base_url, timeout=timeout, transport=transport)

    def _token(self) -> str:
        now = int(time.time())
        claims = {
            "iss": self._access_key_id,
            "exp": now + self.token_ttl,
            "nbf": now - 5,
        }
        return jwt.encode(
            claims,
            self._access_key_secret,
            algorithm="HS256",
            headers={"typ": "JWT"},
        )

    async def generate(
        self,
        model: str,
        system: str,
        messages: list[Message],
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> TextCompletion:
        raise UnsupportedOperationError("Text generation", self.backend)

    async def generate_image(self, options: ImageGenerationOptions) -> ImageCompletion:
        token = self._token()
        headers = {"Authorization": f"Bearer {token}"}

        payload: dict[str, Any] = {
            "model_name": options.model or DEFAULT_MODEL,
            "prompt": (
                f"{options.system}\n\nDescription: {options.prompt}"
                if options.system
                else options.prompt
            ),
            "n": 1,
            "aspect_ratio": nearest_aspect_ratio(options.width, options.height),
        }
        if options.reference_images:
            _, image = split_data_url(options.reference_images[0])
            payload.update({
                "image": image,
                "image_reference": "face",
                "image_fidelity": 0.3,
                "human_fidelity": 0.9,
            })

        data = self._check(
            await self._post_json("/v1/images/generations", payload, headers=headers),
            "Failed to generate image",
        )
        task = data.get("data") or {}
        task_id = task.get("task_id")
        if not task_id or not task.get("task_status"):
            raise BackendError("Missing task data in response", self.backend, code="INVALID_RESPONSE")

        logger.info("Kling task submitted", task_id=task_id, aspect_ratio=payload["aspect_ratio"])
        image_url = await self._poll(task_id, headers)
        return ImageCompletion(image_url=image_url, usage=Usage.unavailable())

    def _check(self, data: dict[str, Any], fallback_message: str) -> dict[str, Any]:
        """Kling reports failures in-band with a non-zero `code`."""
        if data.get("code") != 0:
            raise BackendError(
                data.get("message") or fallback_message,
                self.backend,
                code=str(data.get("code")),
            )
        return data

    async def _poll(self, task_id: str, headers: dict[str, str]) -> str:
        for attempt in range(self.max_polls):
            response = await self._request(
                "GET",
                "/v1/images/get-result",
                params={"task_id": task_id},
                headers=headers,
            )
            data = self._check(self._json(response), "Failed to get task status")
            task = data.get("data") or {}
            status = task.get("task_status")
            images = (task.get("task_result") or {}).get("images") or []

            if status == "succeed" and images and images[0].get("url"):
                return await self._download(images[0]["url"])
            if status == "failed":
                raise BackendError("Image generation failed", self.backend, code="GENERATION_FAILED")

            logger.debug("Kling task pending", task_id=task_id, status=status, poll=attempt + 1)
            await self._sleep(self.poll_interval)

        raise BackendError("Image generation timed out", self.backend, code="TIMEOUT")

    async def _download(self, url: str) -> str:
        try:
            response = await self._request("GET", url, timeout=30.0)
        except BackendError as e:
            raise BackendError(
                "Failed to download image from Kling",
                self.backend,
                code="DOWNLOAD_FAILED",
                status_code=e.status_code,
            ) from e
        return bytes_to_data_url(response.content, response.headers.get("content-type"))
