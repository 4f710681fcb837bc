"""Multi-modal chat completion abstraction."""

from marketplace_agent.llm.json import parse_json_object
from marketplace_agent.llm.messages import (
    ChatMessage,
    CompletionOptions,
    ContentPart,
    ImagePart,
    ImageRefPart,
    ResponseFormat,
    Role,
    TextPart,
)
from marketplace_agent.llm.providers.base import ChatCompletionGateway

__all__ = [
    "ChatCompletionGateway",
    "ChatMessage",
    "CompletionOptions",
    "ContentPart",
    "ImagePart",
    "ImageRefPart",
    "ResponseFormat",
    "Role",
    "TextPart",
    "parse_json_object",
]
