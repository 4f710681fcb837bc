"""Multi-modal chat message model.

Messages are immutable. A message always carries at least one content part,
and every part is exactly one of text, inline image bytes or image reference.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union


class Role(str, Enum):
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TextPart:
    text: str

    def __post_init__(self) -> None:
        if not self.text:
            raise ValueError("Text part must not be empty")


@dataclass(frozen=True)
class ImagePart:
    """Inline image bytes with their media type (e.g. ``image/png``)."""

    data: bytes
    media_type: str

    def __post_init__(self) -> None:
        if not self.data:
            raise ValueError("Image part must carry non-empty bytes")
        if not self.media_type:
            raise ValueError("Image part requires a media type")

    def __repr__(self) -> str:
        return f"ImagePart(media_type={self.media_type!r}, size={len(self.data)})"


@dataclass(frozen=True)
class ImageRefPart:
    """Image addressed by URL (typically a presigned object storage link)."""

    url: str

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("Image reference requires a URL")


ContentPart = Union[TextPart, ImagePart, ImageRefPart]


@dataclass(frozen=True)
class ChatMessage:
    """
    A single chat message.

    Use the ``text`` and ``create`` factories; both reject empty content.
    """

    role: Role
    content: tuple[ContentPart, ...]

    def __post_init__(self) -> None:
        if not self.content:
            raise ValueError("Chat message content must not be empty")
        if not isinstance(self.content, tuple):
            object.__setattr__(self, "content", tuple(self.content))

    @classmethod
    def text(cls, role: Role | str, text: str) -> "ChatMessage":
        return cls(Role(role), (TextPart(text),))

    @classmethod
    def create(cls, role: Role | str, parts: Iterable[ContentPart]) -> "ChatMessage":
        return cls(Role(role), tuple(parts))

    @classmethod
    def system(cls, text: str) -> "ChatMessage":
        return cls.text(Role.SYSTEM, text)

    @classmethod
    def user(cls, text: str, images: Iterable[ImagePart | ImageRefPart] = ()) -> "ChatMessage":
        return cls(Role.USER, (TextPart(text), *images))

    @classmethod
    def assistant(cls, text: str) -> "ChatMessage":
        return cls.text(Role.ASSISTANT, text)

    @property
    def text_content(self) -> str:
        """Concatenated text of all text parts."""
        return "\n".join(part.text for part in self.content if isinstance(part, TextPart))

    @property
    def has_images(self) -> bool:
        return any(isinstance(part, (ImagePart, ImageRefPart)) for part in self.content)


class ResponseFormat(str, Enum):
    TEXT = "text"
    JSON_OBJECT = "json_object"


@dataclass(frozen=True)
class CompletionOptions:
    """Pass-through generation hints; backends may ignore any of them."""

    temperature: float | None = None
    max_tokens: int | None = None
    response_format: ResponseFormat = ResponseFormat.TEXT
    model: str | None = None

    @classmethod
    def json(cls, temperature: float | None = None, max_tokens: int | None = None) -> "CompletionOptions":
        return cls(temperature, max_tokens, ResponseFormat.JSON_OBJECT)
