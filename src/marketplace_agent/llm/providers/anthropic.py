"""Anthropic direct API gateway.

Resilience patterns applied:
- Circuit breaker to stop hammering an overloaded API
- Error classification (recoverable failures become an absent reply)

No retry decorator: the pipeline orchestrator owns retry policy.
"""

import base64
from typing import Any

from anthropic import AsyncAnthropic

from marketplace_agent.core.resilience import llm_circuit_breaker, wrap_anthropic_errors
from marketplace_agent.llm.messages import (
    ChatMessage,
    CompletionOptions,
    ImagePart,
    ImageRefPart,
    ResponseFormat,
    Role,
    TextPart,
)
from marketplace_agent.llm.providers.base import ChatCompletionGateway
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)

JSON_INSTRUCTION = (
    "Respond with a single valid JSON object only. "
    "Do not wrap it in markdown and do not add any text before or after it."
)

DEFAULT_MAX_TOKENS = 4096


class AnthropicGateway(ChatCompletionGateway):
    """
    Direct Anthropic API gateway.

    Uses the official Anthropic Python SDK. System messages are lifted into
    the ``system`` parameter, inline images are sent as base64 blocks and
    image references as URL blocks.
    """

    def __init__(
        self,
        api_key: str,
        default_model: str = "sonnet",
        timeout: float | None = None,
        client: AsyncAnthropic | None = None,
    ):
        """
        Initialize Anthropic gateway.

        Args:
            api_key: Anthropic API key
            default_model: Model name or alias used when options carry none
            timeout: Per-call timeout in seconds
            client: Preconfigured SDK client (tests)
        """
        super().__init__(default_model=default_model, timeout=timeout)
        self._client = client or AsyncAnthropic(api_key=api_key)

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def build_request(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions,
    ) -> dict[str, Any]:
        """Translate messages and options into Messages API parameters."""
        system_parts = [m.text_content for m in messages if m.role is Role.SYSTEM]
        if options.response_format is ResponseFormat.JSON_OBJECT:
            system_parts.append(JSON_INSTRUCTION)

        params: dict[str, Any] = {
            "model": self.resolve_model(options.model),
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": [
                {"role": m.role.value, "content": [self._content_block(p) for p in m.content]}
                for m in messages
                if m.role is not Role.SYSTEM
            ],
        }
        if system_parts:
            params["system"] = "\n\n".join(part for part in system_parts if part)
        if options.temperature is not None:
            params["temperature"] = options.temperature
        return params

    @staticmethod
    def _content_block(part: TextPart | ImagePart | ImageRefPart) -> dict[str, Any]:
        if isinstance(part, TextPart):
            return {"type": "text", "text": part.text}
        if isinstance(part, ImagePart):
            return {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": part.media_type,
                    "data": base64.b64encode(part.data).decode("ascii"),
                },
            }
        return {"type": "image", "source": {"type": "url", "url": part.url}}

    @llm_circuit_breaker
    @wrap_anthropic_errors
    async def _send(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions,
    ) -> str | None:
        params = self.build_request(messages, options)

        logger.debug(
            "Calling Anthropic API",
            model=params["model"],
            messages=len(params["messages"]),
            json_mode=options.response_format is ResponseFormat.JSON_OBJECT,
        )

        response = await self._client.messages.create(**params)

        content = "".join(block.text for block in response.content if block.type == "text")

        logger.debug(
            "Anthropic response received",
            model=params["model"],
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )
        return content or None

    async def aclose(self) -> None:
        await self._client.close()
