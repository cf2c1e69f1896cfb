"""
Venice client.

Chat goes through the OpenAI-compatible endpoints with thinking disabled;
images use Venice's own /image/generate and /image/edit endpoints.
"""

from typing import Any, Optional

import httpx
import structlog

from llm_layer.backends.exceptions import BackendError
from llm_layer.backends.image_utils import bytes_to_data_url, split_data_url, to_data_url
from llm_layer.backends.openai_client import OpenAIClient
from llm_layer.models.backend_models import ImageCompletion, ImageGenerationOptions, Usage
from llm_layer.models.enums import Backend
from llm_layer.models.messages import Message

logger = structlog.get_logger(__name__)

MAX_IMAGE_DIMENSION = 1280
DEFAULT_IMAGE_MODEL = "lustify-sdxl"


class VeniceClient(OpenAIClient):
    """Venice text, streaming and image generation."""

    backend = Backend.VENICE
    supports_images = True

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.venice.ai/api/v1",
        timeout: float = 120,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key, base_url=base_url, timeout=timeout, transport=transport)

    def _chat_payload(
        self,
        model: str,
        system: str,
        messages: list[Message],
        max_tokens: int,
        temperature: float,
    ) -> dict[str, Any]:
        payload = super()._chat_payload(model, system, messages, max_tokens, temperature)
        payload["venice_parameters"] = {"disable_thinking": True}
        return payload

    async def generate_image(self, options: ImageGenerationOptions) -> ImageCompletion:
        if options.reference_images:
            return await self._edit_image(options)

        payload: dict[str, Any] = {
            "model": options.model or DEFAULT_IMAGE_MODEL,
            "prompt": options.prompt,
            "variants": 1,
            "safe_mode": False,
            "format": "png",
        }
        if options.width:
            payload["width"] = min(options.width, MAX_IMAGE_DIMENSION)
        if options.height:
            payload["height"] = min(options.height, MAX_IMAGE_DIMENSION)

        data = await self._post_json("/image/generate", payload)
        images = data.get("images") or []
        if not images:
            raise BackendError("No images generated", self.backend, code="EMPTY_RESPONSE")

        return ImageCompletion(image_url=to_data_url(images[0]), usage=Usage.unavailable())

    async def _edit_image(self, options: ImageGenerationOptions) -> ImageCompletion:
        if len(options.reference_images) > 1:
            logger.warning(
                "Image edit accepts a single reference image, using the first one",
                backend=self.backend.value,
                references=len(options.reference_images),
            )
        _, image = split_data_url(options.reference_images[0])

        # /image/edit answers with the PNG bytes, not JSON
        response = await self._request(
            "POST", "/image/edit", json={"prompt": options.prompt, "image": image}
        )
        return ImageCompletion(
            image_url=bytes_to_data_url(response.content, "image/png"),
            usage=Usage.unavailable(),
        )
