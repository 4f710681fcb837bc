"""Shared base for tools backed by the chat completion gateway."""

from typing import Any, Iterable, TypeVar

from pydantic import BaseModel, ValidationError

from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import GatewayError, ToolError
from marketplace_agent.llm.json import parse_json_object
from marketplace_agent.llm.messages import (
    ChatMessage,
    CompletionOptions,
    ImagePart,
    ImageRefPart,
)
from marketplace_agent.llm.providers.base import ChatCompletionGateway
from marketplace_agent.tools.base import Tool

M = TypeVar("M", bound=BaseModel)


class LLMTool(Tool):
    """
    Tool that performs exactly one gateway round-trip per invocation.

    An absent reply (recoverable backend failure) becomes
    UPSTREAM_UNAVAILABLE so the orchestrator may retry; a non-recoverable
    GatewayError becomes UPSTREAM_REJECTED.
    """

    temperature: float | None = 0.3
    max_tokens: int | None = 2048

    def __init__(self, gateway: ChatCompletionGateway, model: str | None = None):
        self.gateway = gateway
        self.model = model

    async def ask(
        self,
        system: str,
        prompt: str,
        cancellation: CancellationToken,
        images: Iterable[ImagePart | ImageRefPart] = (),
        json_mode: bool = False,
    ) -> str:
        """Send system + user prompt and return the reply text."""
        messages = [ChatMessage.system(system), ChatMessage.user(prompt, images)]
        options = (
            CompletionOptions.json(self.temperature, self.max_tokens)
            if json_mode
            else CompletionOptions(self.temperature, self.max_tokens)
        )
        if self.model:
            options = CompletionOptions(
                options.temperature, options.max_tokens, options.response_format, self.model
            )

        try:
            reply = await self.gateway.complete(messages, options, cancellation)
        except GatewayError as e:
            raise ToolError.rejected(str(e), cause=e, tool_name=self.name) from e

        if reply is None:
            raise ToolError.unavailable("Chat completion backend unavailable", tool_name=self.name)
        return reply

    async def ask_json(
        self,
        system: str,
        prompt: str,
        result_model: type[M],
        cancellation: CancellationToken,
        images: Iterable[ImagePart | ImageRefPart] = (),
        **overrides: Any,
    ) -> M:
        """Ask for a JSON object and validate it into ``result_model``."""
        reply = await self.ask(system, prompt, cancellation, images=images, json_mode=True)
        data = parse_json_object(reply, tool_name=self.name)
        data.update(overrides)
        try:
            return result_model.model_validate(data)
        except ValidationError as e:
            raise ToolError.rejected(
                f"Model reply does not match {result_model.__name__}",
                cause=e,
                tool_name=self.name,
                detail={"reply": data},
            ) from e
