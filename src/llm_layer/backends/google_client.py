"""
Google Gemini client (Generative Language API).

Text via :generateContent, streaming via :streamGenerateContent?alt=sse, and
image generation for Gemini models whose name contains "image" (they answer
with inline base64 parts when the IMAGE response modality is requested).
"""

from contextlib import aclosing
from typing import Any, AsyncIterator, Optional

import httpx
import structlog

from llm_layer.backends.base_client import BaseBackendClient
from llm_layer.backends.exceptions import BackendError
from llm_layer.backends.image_utils import split_data_url, to_data_url
from llm_layer.models.backend_models import (
    ImageCompletion,
    ImageGenerationOptions,
    StreamDelta,
    TextCompletion,
    Usage,
)
from llm_layer.models.enums import Backend, ContentType, Role
from llm_layer.models.messages import Message, split_system

logger = structlog.get_logger(__name__)

DEFAULT_ILLUSTRATION_PROMPT = (
    "Hi, can you create a simple illustration based on the following description?\n"
    "In any case, never include text in the image. If image has text, it will be rejected.\n"
    "Please create a clean, simple image without any text or writing."
)


def usage_from_gemini(metadata: Optional[dict[str, Any]]) -> Usage:
    if not metadata:
        return Usage.unavailable()
    return Usage(
        input_tokens=metadata.get("promptTokenCount") or 0,
        output_tokens=metadata.get("candidatesTokenCount") or 0,
        reasoning_tokens=metadata.get("thoughtsTokenCount") or 0,
    )


def _candidate_parts(data: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = data.get("candidates") or []
    if not candidates:
        return []
    return (candidates[0].get("content") or {}).get("parts") or []


class GoogleClient(BaseBackendClient):
    """Gemini text, streaming and image generation."""

    backend = Backend.GOOGLE
    supports_images = True

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 120,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        super().__init__(base_url, timeout=timeout, transport=transport)

    def _default_headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self._api_key}

    @staticmethod
    def _convert_message(message: Message) -> dict[str, Any]:
        parts = []
        for part in message.parts():
            if part.type == ContentType.IMAGE:
                mime_type, data = split_data_url(part.image or "")
                parts.append({"inlineData": {"mimeType": mime_type, "data": data}})
            else:
                parts.append({"text": part.text or ""})
        role = "user" if message.role == Role.USER else "model"
        return {"role": role, "parts": parts}

    def _payload(
        self,
        system: str,
        messages: list[Message],
        max_tokens: int,
        temperature: float,
    ) -> dict[str, Any]:
        system_prompt, turns = split_system(system, messages)
        payload: dict[str, Any] = {
            "contents": [self._convert_message(m) for m in turns],
            "generationConfig": {
                "maxOutputTokens": max_tokens,
                "temperature": temperature,
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    async def generate(
        self,
        model: str,
        system: str,
        messages: list[Message],
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> TextCompletion:
        payload = self._payload(system, messages, max_tokens, temperature)
        logger.debug("Sending Gemini request", model=model, turns=len(payload["contents"]))

        data = await self._post_json(f"/models/{model}:generateContent", payload)

        text = "".join(p.get("text", "") for p in _candidate_parts(data) if not p.get("thought"))
        return TextCompletion(text=text, usage=usage_from_gemini(data.get("usageMetadata")))

    async def generate_stream(
        self,
        model: str,
        system: str,
        messages: list[Message],
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamDelta]:
        payload = self._payload(system, messages, max_tokens, temperature)
        url = f"/models/{model}:streamGenerateContent"

        # Every chunk repeats cumulative usageMetadata; only the last one counts
        last_metadata: Optional[dict[str, Any]] = None
        async with aclosing(self._stream_events(url, payload, params={"alt": "sse"})) as events:
            async for event in events:
                for part in _candidate_parts(event):
                    if part.get("text") and not part.get("thought"):
                        yield StreamDelta.of_text(part["text"])
                if event.get("usageMetadata"):
                    last_metadata = event["usageMetadata"]

        if last_metadata:
            yield StreamDelta.of_usage(usage_from_gemini(last_metadata))

    async def generate_image(self, options: ImageGenerationOptions) -> ImageCompletion:
        if "image" not in options.model:
            raise BackendError(
                f"Image generation not supported for model: {options.model}",
                self.backend,
                code="UNSUPPORTED_MODEL",
            )

        if options.reference_images:
            parts: list[dict[str, Any]] = [{"text": options.prompt}]
            for reference in options.reference_images:
                mime_type, data = split_data_url(reference)
                parts.append({"inlineData": {"mimeType": mime_type, "data": data}})
        else:
            instructions = options.system or DEFAULT_ILLUSTRATION_PROMPT
            parts = [{"text": f"{instructions}\n\nDescription: {options.prompt}"}]

        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }
        logger.debug(
            "Sending Gemini image request",
            model=options.model,
            references=len(options.reference_images),
        )
        data = await self._post_json(f"/models/{options.model}:generateContent", payload)

        for part in _candidate_parts(data):
            inline = part.get("inlineData") or {}
            if inline.get("data"):
                return ImageCompletion(
                    image_url=to_data_url(inline["data"], inline.get("mimeType") or "image/png"),
                    usage=usage_from_gemini(data.get("usageMetadata")),
                )

        raise BackendError("No image data in response", self.backend, code="EMPTY_RESPONSE")
