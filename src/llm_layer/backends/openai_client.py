"""
OpenAI-compatible client.

Chat completions (plain and streamed with include_usage) plus the images
endpoints. xAI exposes the same wire format, so XAIClient only changes the
backend identifier and base URL.
"""

from contextlib import aclosing
from typing import Any, AsyncIterator, Optional

import httpx
import structlog

from llm_layer.backends.base_client import BaseBackendClient
from llm_layer.backends.exceptions import BackendError
from llm_layer.backends.image_utils import (
    bytes_to_data_url,
    decode_image,
    nearest_size,
    to_data_url,
)
from llm_layer.models.backend_models import (
    ImageCompletion,
    ImageGenerationOptions,
    StreamDelta,
    TextCompletion,
    Usage,
)
from llm_layer.models.enums import Backend, ContentType, Role
from llm_layer.models.messages import Message

logger = structlog.get_logger(__name__)

DALL_E_3_SIZES = [(1024, 1024), (1792, 1024), (1024, 1792)]
DALL_E_2_SIZES = [(256, 256), (512, 512), (1024, 1024)]


def usage_from_openai(usage: Optional[dict[str, Any]]) -> Usage:
    """Normalize an OpenAI `usage` object; absent usage is reported as unavailable."""
    if not usage:
        return Usage.unavailable()
    details = usage.get("completion_tokens_details") or {}
    return Usage(
        input_tokens=usage.get("prompt_tokens") or 0,
        output_tokens=usage.get("completion_tokens") or 0,
        reasoning_tokens=details.get("reasoning_tokens") or 0,
    )


class OpenAIClient(BaseBackendClient):
    """Text, streaming and image generation against the OpenAI REST API."""

    backend = Backend.OPENAI
    supports_images = True

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 120,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        super().__init__(base_url, timeout=timeout, transport=transport)

    def _default_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    # === Chat ===

    def _chat_payload(
        self,
        model: str,
        system: str,
        messages: list[Message],
        max_tokens: int,
        temperature: float,
    ) -> dict[str, Any]:
        wire_messages = []
        if system:
            wire_messages.append({"role": Role.SYSTEM.value, "content": system})
        wire_messages.extend(self._convert_message(m) for m in messages)
        return {
            "model": model,
            "messages": wire_messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

    @staticmethod
    def _convert_message(message: Message) -> dict[str, Any]:
        if isinstance(message.content, str):
            return {"role": message.role.value, "content": message.content}

        content = []
        for part in message.parts():
            if part.type == ContentType.IMAGE:
                content.append({
                    "type": "image_url",
                    "image_url": {"url": to_data_url(part.image or "")},
                })
            else:
                content.append({"type": "text", "text": part.text or ""})
        return {"role": message.role.value, "content": content}

    async def generate(
        self,
        model: str,
        system: str,
        messages: list[Message],
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> TextCompletion:
        payload = self._chat_payload(model, system, messages, max_tokens, temperature)
        logger.debug("Sending chat completion", backend=self.backend.value, model=model)

        data = await self._post_json("/chat/completions", payload)

        choices = data.get("choices") or []
        if not choices:
            raise BackendError(
                f"No choices in {self.backend.value} response",
                self.backend,
                code="EMPTY_RESPONSE",
            )
        text = (choices[0].get("message") or {}).get("content") or ""
        return TextCompletion(text=text, usage=usage_from_openai(data.get("usage")))

    async def generate_stream(
        self,
        model: str,
        system: str,
        messages: list[Message],
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamDelta]:
        payload = self._chat_payload(model, system, messages, max_tokens, temperature)
        payload["stream"] = True
        payload["stream_options"] = {"include_usage": True}

        async with aclosing(self._stream_events("/chat/completions", payload)) as events:
            async for event in events:
                if event.get("error"):
                    error = event["error"]
                    raise BackendError(
                        error.get("message") or f"{self.backend.value} stream error",
                        self.backend,
                        code=error.get("code") or error.get("type"),
                    )
                for choice in event.get("choices") or []:
                    content = (choice.get("delta") or {}).get("content")
                    if content:
                        yield StreamDelta.of_text(content)
                # The usage chunk arrives last, with an empty choices list
                if event.get("usage"):
                    yield StreamDelta.of_usage(usage_from_openai(event["usage"]))

    # === Images ===

    def _image_size(self, options: ImageGenerationOptions) -> str:
        if options.model == "dall-e-3":
            return nearest_size(options.width, options.height, DALL_E_3_SIZES)
        if options.model == "dall-e-2":
            return nearest_size(options.width, options.height, DALL_E_2_SIZES)
        if options.width and options.height:
            return f"{options.width}x{options.height}"
        return "auto"

    def _image_quality(self, options: ImageGenerationOptions) -> Optional[str]:
        if options.model == "dall-e-3":
            return options.quality or "standard"
        if options.model == "gpt-image-1":
            return "auto"
        return None

    @staticmethod
    def _image_prompt(options: ImageGenerationOptions) -> str:
        if options.system:
            return f"{options.system}\n\n{options.prompt}"
        return options.prompt

    async def generate_image(self, options: ImageGenerationOptions) -> ImageCompletion:
        if options.reference_images:
            return await self._edit_image(options)

        payload: dict[str, Any] = {
            "model": options.model,
            "prompt": self._image_prompt(options),
            "n": 1,
            "size": self._image_size(options),
        }
        quality = self._image_quality(options)
        if quality:
            payload["quality"] = quality
        # gpt-image-1 always answers with b64_json and rejects response_format
        if options.model != "gpt-image-1":
            payload["response_format"] = "b64_json"

        logger.debug(
            "Sending image generation",
            backend=self.backend.value,
            model=options.model,
            size=payload["size"],
        )
        data = await self._post_json("/images/generations", payload)
        return ImageCompletion(
            image_url=await self._image_from_response(data),
            usage=self._image_usage(data),
        )

    async def _edit_image(self, options: ImageGenerationOptions) -> ImageCompletion:
        if options.model != "gpt-image-1":
            raise BackendError(
                f"Reference images require gpt-image-1, got {options.model}",
                self.backend,
                code="UNSUPPORTED_MODEL",
            )

        files = []
        for index, reference in enumerate(options.reference_images):
            mime_type, content = decode_image(reference)
            extension = mime_type.split("/")[-1]
            files.append(("image[]", (f"reference_{index}.{extension}", content, mime_type)))

        form = {
            "model": options.model,
            "prompt": self._image_prompt(options),
            "n": "1",
            "size": self._image_size(options),
            "quality": "auto",
        }
        logger.debug(
            "Sending image edit",
            backend=self.backend.value,
            model=options.model,
            references=len(files),
        )
        response = await self._request("POST", "/images/edits", data=form, files=files)
        data = self._json(response)
        return ImageCompletion(
            image_url=await self._image_from_response(data),
            usage=self._image_usage(data),
        )

    async def _image_from_response(self, data: dict[str, Any]) -> str:
        images = data.get("data") or []
        if not images:
            raise BackendError(
                f"No image data in {self.backend.value} response",
                self.backend,
                code="EMPTY_RESPONSE",
            )

        image = images[0]
        if image.get("b64_json"):
            return to_data_url(image["b64_json"])
        if image.get("url"):
            return await self._download_image(image["url"])
        raise BackendError(
            f"No image data in {self.backend.value} response",
            self.backend,
            code="EMPTY_RESPONSE",
        )

    async def _download_image(self, url: str) -> str:
        response = await self._request("GET", url)
        return bytes_to_data_url(response.content, response.headers.get("content-type"))

    @staticmethod
    def _image_usage(data: dict[str, Any]) -> Usage:
        usage = data.get("usage")
        if not usage:
            return Usage.unavailable()
        return Usage(
            input_tokens=usage.get("input_tokens") or 0,
            output_tokens=usage.get("output_tokens") or 0,
        )


class XAIClient(OpenAIClient):
    """xAI (Grok) over its OpenAI-compatible API."""

    backend = Backend.XAI

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.x.ai/v1",
        timeout: float = 120,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key, base_url=base_url, timeout=timeout, transport=transport)

    async def generate_image(self, options: ImageGenerationOptions) -> ImageCompletion:
        # grok image models take neither size nor quality nor reference images
        if options.reference_images:
            logger.warning("Reference images ignored", backend=self.backend.value)
        payload: dict[str, Any] = {
            "model": options.model,
            "prompt": self._image_prompt(options),
            "n": 1,
            "response_format": "b64_json",
        }
        data = await self._post_json("/images/generations", payload)
        return ImageCompletion(
            image_url=await self._image_from_response(data),
            usage=self._image_usage(data),
        )
