"""Conversational agent backed by the memory store."""

from typing import Iterable

from marketplace_agent.config import prompts
from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import ChatTurnError, GatewayError, MemoryStoreError
from marketplace_agent.events.emitter import EventEmitter
from marketplace_agent.events.models import ChatTurnEvent
from marketplace_agent.llm.messages import (
    ChatMessage,
    CompletionOptions,
    ImagePart,
    ImageRefPart,
    Role,
)
from marketplace_agent.llm.providers.base import ChatCompletionGateway
from marketplace_agent.memory.base import MemoryEntry, MemoryStore
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)

_ROLES = {role.value: role for role in Role}


class ChatAgent:
    """
    Answers one user message at a time.

    The conversation window comes from the memory store, which owns its
    size and TTL bounds. A turn is recorded only after the gateway replied,
    and the user and assistant entries are written together, so a failed turn
    leaves memory untouched.
    """

    def __init__(
        self,
        gateway: ChatCompletionGateway,
        memory: MemoryStore,
        user_id: str | None = None,
        window_size: int | None = None,
        emitter: EventEmitter | None = None,
        system_prompt: str = prompts.CHAT_SYSTEM_PROMPT,
        options: CompletionOptions | None = None,
    ):
        self.gateway = gateway
        self.memory = memory
        self.user_id = user_id
        self.window_size = window_size or memory.window_size
        self.emitter = emitter
        self.system_prompt = system_prompt
        self.options = options or CompletionOptions(temperature=0.5)

    def resolve_conversation_id(self, conversation_id: str | None) -> str:
        if conversation_id:
            return conversation_id
        if self.user_id:
            return f"global-{self.user_id}"
        raise ValueError("conversation_id is required when no user id is configured")

    @staticmethod
    def _to_message(entry: MemoryEntry) -> ChatMessage | None:
        role = _ROLES.get(entry.role, Role.USER)
        if role is Role.SYSTEM or not entry.content:
            return None
        return ChatMessage.text(role, entry.content)

    def build_messages(
        self,
        window: list[MemoryEntry],
        user_message: str,
        images: Iterable[ImagePart | ImageRefPart] = (),
    ) -> list[ChatMessage]:
        """System preamble, then the window oldest-first, then the new message."""
        messages = [ChatMessage.system(self.system_prompt)]
        for entry in window:
            message = self._to_message(entry)
            if message is not None:
                messages.append(message)
        messages.append(ChatMessage.user(user_message, images))
        return messages

    async def next_turn(
        self,
        conversation_id: str | None,
        user_message: str,
        cancellation: CancellationToken | None = None,
        images: Iterable[ImagePart | ImageRefPart] = (),
    ) -> ChatMessage:
        """
        Process one chat turn.

        Args:
            conversation_id: Memory key; empty falls back to ``global-{user_id}``
            user_message: Text of the user turn
            cancellation: Token for the gateway call
            images: Optional image parts attached to the user turn

        Returns:
            The assistant reply

        Raises:
            ChatTurnError: The gateway failed or returned nothing, or memory
                could not be read or written
        """
        conversation_id = self.resolve_conversation_id(conversation_id)
        try:
            window = await self.memory.window(conversation_id, limit=self.window_size)
        except MemoryStoreError as e:
            raise ChatTurnError(
                f"Could not read chat history: {e}", conversation_id=conversation_id
            ) from e
        messages = self.build_messages(window, user_message, images)

        try:
            reply = await self.gateway.complete(messages, self.options, cancellation)
        except GatewayError as e:
            raise ChatTurnError(
                f"Chat completion failed: {e}", conversation_id=conversation_id
            ) from e
        if not reply:
            raise ChatTurnError(
                "Chat completion returned no reply", conversation_id=conversation_id
            )

        try:
            await self.memory.store_many(
                conversation_id,
                [(Role.USER.value, user_message), (Role.ASSISTANT.value, reply)],
            )
        except MemoryStoreError as e:
            raise ChatTurnError(
                f"Could not record chat turn: {e}", conversation_id=conversation_id
            ) from e

        logger.info(
            "Chat turn completed",
            conversation_id=conversation_id,
            window=len(window),
            reply_length=len(reply),
        )
        if self.emitter:
            await self.emitter.emit_async(
                ChatTurnEvent.create(conversation_id, len(window), len(reply))
            )
        return ChatMessage.assistant(reply)
