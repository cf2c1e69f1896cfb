"""
Anthropic Messages API client.

POST /v1/messages, with server-sent events when streaming. Anthropic does
not generate images; thinking tokens are not reported separately (they are
included in output_tokens), so reasoning_tokens is always 0.
"""

from contextlib import aclosing
from typing import Any, AsyncIterator, Optional

import httpx
import structlog

from llm_layer.backends.base_client import BaseBackendClient
from llm_layer.backends.exceptions import BackendError
from llm_layer.backends.image_utils import split_data_url
from llm_layer.models.backend_models import StreamDelta, TextCompletion, Usage
from llm_layer.models.enums import Backend, ContentType
from llm_layer.models.messages import Message, split_system


logger = structlog.get_logger(__name__)


class AnthropicClient(BaseBackendClient):
    """Text and streaming generation against the Anthropic Messages API."""

    backend = Backend.ANTHROPIC
    supports_images = False

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.anthropic.com",
        api_version: str = "2023-06-01",
        timeout: float = 120,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self.api_version = api_version
        super().__init__(base_url, timeout=timeout, transport=transport)

    def _default_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": self.api_version,
            "content-type": "application/json",
        }

    def _payload(
        self,
        model: str,
        system: str,
        messages: list[Message],
        max_tokens: int,
        temperature: float,
    ) -> dict[str, Any]:
        system_prompt, turns = split_system(system, messages)
        payload: dict[str, Any] = {
            "model": model,
            "messages": [self._convert_message(m) for m in turns],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system_prompt:
            payload["system"] = system_prompt
        return payload

    @staticmethod
    def _convert_message(message: Message) -> dict[str, Any]:
        if isinstance(message.content, str):
            return {"role": message.role.value, "content": message.content}

        content = []
        for part in message.parts():
            if part.type == ContentType.IMAGE:
                media_type, data = split_data_url(part.image or "")
                content.append({
                    "type": "image",
                    "source": {"type": "base64", "media_type": media_type, "data": data},
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
        payload = self._payload(model, system, messages, max_tokens, temperature)
        logger.debug("Sending Anthropic request", model=model, turns=len(payload["messages"]))

        data = await self._post_json("/v1/messages", payload)

        blocks = data.get("content") or []
        text = "".join(b.get("text", "") for b in blocks if b.get("type") == "text")
        usage = data.get("usage") or {}

        return TextCompletion(
            text=text,
            usage=Usage(
                input_tokens=usage.get("input_tokens") or 0,
                output_tokens=usage.get("output_tokens") or 0,
                reasoning_tokens=0,
            ),
        )

    async def generate_stream(
        self,
        model: str,
        system: str,
        messages: list[Message],
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamDelta]:
        payload = self._payload(model, system, messages, max_tokens, temperature)
        payload["stream"] = True

        input_tokens: Optional[int] = None
        output_tokens = 0

        async with aclosing(self._stream_events("/v1/messages", payload)) as events:
            async for event in events:
                event_type = event.get("type")

                if event_type == "message_start":
                    usage = (event.get("message") or {}).get("usage") or {}
                    input_tokens = usage.get("input_tokens") or 0
                    output_tokens = usage.get("output_tokens") or 0
                elif event_type == "content_block_delta":
                    delta = event.get("delta") or {}
                    if delta.get("type") == "text_delta" and delta.get("text"):
                        yield StreamDelta.of_text(delta["text"])
                elif event_type == "message_delta":
                    usage = event.get("usage") or {}
                    if usage.get("output_tokens") is not None:
                        output_tokens = usage["output_tokens"]
                elif event_type == "message_stop":
                    if input_tokens is not None:
                        yield StreamDelta.of_usage(
                            Usage(input_tokens=input_tokens, output_tokens=output_tokens)
                        )
                    break
                elif event_type == "error":
                    error = event.get("error") or {}
                    raise BackendError(
                        error.get("message") or "Anthropic stream error",
                        self.backend,
                        code=error.get("type"),
                    )
