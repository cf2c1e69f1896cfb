"""
Conversation message models.

Messages are owned by the caller and read-only to the dispatcher and the
backend clients; every model here is frozen.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from llm_layer.models.enums import ContentType, Role


class ContentPart(BaseModel):
    """
    One part of a multimodal message.

    Text parts carry `text`; image parts carry `image` as raw base64 or as a
    data URL. Part order within a message is meaningful.
    """
    model_config = ConfigDict(frozen=True)

    type: ContentType
    text: Optional[str] = None
    image: Optional[str] = Field(default=None, description="Base64 payload or data URL")

    @model_validator(mode="after")
    def check_payload(self) -> "ContentPart":
        if self.type == ContentType.TEXT and self.text is None:
            raise ValueError("text part requires 'text'")
        if self.type == ContentType.IMAGE and not self.image:
            raise ValueError("image part requires 'image'")
        return self

    @classmethod
    def of_text(cls, text: str) -> "ContentPart":
        return cls(type=ContentType.TEXT, text=text)

    @classmethod
    def of_image(cls, image: str) -> "ContentPart":
        return cls(type=ContentType.IMAGE, image=image)


class Message(BaseModel):
    """A single conversation turn."""
    model_config = ConfigDict(frozen=True)

    role: Role
    content: Union[str, list[ContentPart]]

    def parts(self) -> list[ContentPart]:
        """Content as an ordered list of parts (plain strings become one text part)."""
        if isinstance(self.content, str):
            return [ContentPart.of_text(self.content)]
        return list(self.content)

    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(p.text or "" for p in self.parts() if p.type == ContentType.TEXT)


def split_system(system: str, messages: list[Message]) -> tuple[str, list[Message]]:
    """
    Fold system-role messages into the system prompt.

    Returns the combined system prompt and the remaining user/assistant turns
    in their original order.
    """
    prompts = [system] if system else []
    turns: list[Message] = []
    for message in messages:
        if message.role == Role.SYSTEM:
            prompts.append(message.text())
        else:
            turns.append(message)
    return "\n\n".join(p for p in prompts if p), turns
