"""Tests for the chat agent."""

import pytest

from marketplace_agent.agents.chat import ChatAgent
from marketplace_agent.config import prompts
from marketplace_agent.core.exceptions import ChatTurnError, GatewayError, MemoryStoreError
from marketplace_agent.llm.messages import ImageRefPart, Role
from marketplace_agent.memory.in_memory import InMemoryMemoryStore

from tests.stubs import StubGateway


class TestChatAgent:
    @pytest.mark.asyncio
    async def test_turn_builds_messages_and_records(self, memory, clock):
        await memory.store("conv", "Hi", role="user")
        clock.advance(1)
        await memory.store("conv", "Hello! How can I help?", role="assistant")
        clock.advance(1)

        gateway = StubGateway(default="It costs 350 UAH.")
        agent = ChatAgent(gateway, memory)

        reply = await agent.next_turn("conv", "How much is the mug?")

        assert reply.role is Role.ASSISTANT
        assert reply.text_content == "It costs 350 UAH."
        messages, _ = gateway.calls[0]
        assert [m.role for m in messages] == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.USER]
        assert messages[0].text_content == prompts.CHAT_SYSTEM_PROMPT
        assert messages[-1].text_content == "How much is the mug?"

        window = await memory.window("conv")
        assert [(e.role, e.content) for e in window][-2:] == [
            ("user", "How much is the mug?"),
            ("assistant", "It costs 350 UAH."),
        ]

    @pytest.mark.asyncio
    async def test_window_is_bounded(self, memory, clock):
        for n in range(10):
            await memory.store("conv", f"m{n}")
            clock.advance(1)

        gateway = StubGateway(default="ok")
        await ChatAgent(gateway, memory, window_size=3).next_turn("conv", "latest")

        messages, _ = gateway.calls[0]
        assert [m.text_content for m in messages[1:]] == ["m7", "m8", "m9", "latest"]

    @pytest.mark.asyncio
    async def test_expired_history_not_sent(self, memory, clock):
        await memory.store("conv", "old", ttl=10)
        clock.advance(10)

        gateway = StubGateway(default="ok")
        await ChatAgent(gateway, memory).next_turn("conv", "new")
        assert len(gateway.calls[0][0]) == 2

    @pytest.mark.asyncio
    async def test_images_attached_to_user_turn(self, memory):
        gateway = StubGateway(default="A mug.")
        await ChatAgent(gateway, memory).next_turn(
            "conv", "What is this?", images=[ImageRefPart("https://cdn/mug.png")]
        )
        assert gateway.calls[0][0][-1].has_images

    @pytest.mark.asyncio
    async def test_absent_reply_writes_nothing(self, memory):
        agent = ChatAgent(StubGateway(default=None), memory)
        with pytest.raises(ChatTurnError) as exc_info:
            await agent.next_turn("conv", "Hello?")
        assert exc_info.value.conversation_id == "conv"
        assert await memory.window("conv") == []

    @pytest.mark.asyncio
    async def test_gateway_error_writes_nothing(self, memory):
        class RefusingGateway(StubGateway):
            async def _send(self, messages, options):
                raise GatewayError("invalid api key", provider="stub")

        with pytest.raises(ChatTurnError):
            await ChatAgent(RefusingGateway(), memory).next_turn("conv", "Hello?")
        assert await memory.conversation_ids() == []

    @pytest.mark.asyncio
    async def test_default_conversation_id(self, memory):
        agent = ChatAgent(StubGateway(default="hi"), memory, user_id="seller-9")
        await agent.next_turn("", "Hello")
        assert await memory.conversation_ids() == ["global-seller-9"]

    @pytest.mark.asyncio
    async def test_missing_conversation_id_without_user(self, memory):
        with pytest.raises(ValueError):
            await ChatAgent(StubGateway(), memory).next_turn(None, "Hello")

    @pytest.mark.asyncio
    async def test_turn_event_emitted(self, memory, emitter):
        events = []
        emitter.subscribe("chat.turn", events.append)
        await ChatAgent(StubGateway(default="four"), memory, emitter=emitter).next_turn("c", "2+2?")

        assert events[0].data == {"conversation_id": "c", "window_size": 0, "reply_length": 4}


class RecordingStore(InMemoryMemoryStore):
    """Records the size of every write."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.batches: list[int] = []
        self.single_puts = 0

    async def put(self, entry):
        self.single_puts += 1
        return await super().put(entry)

    async def put_many(self, entries):
        self.batches.append(len(entries))
        return await super().put_many(entries)


class BrokenWriteStore(InMemoryMemoryStore):
    async def put_many(self, entries):
        raise MemoryStoreError("connection reset")


class TestChatTurnPersistence:
    @pytest.mark.asyncio
    async def test_turn_written_as_one_batch(self, clock):
        store = RecordingStore(clock=clock)
        await ChatAgent(StubGateway(default="hi"), store).next_turn("c1", "hello")

        assert store.batches == [2]
        assert store.single_puts == 0
        window = await store.window("c1")
        assert [(e.role, e.content) for e in window] == [("user", "hello"), ("assistant", "hi")]
        assert window[0].created_at < window[1].created_at

    @pytest.mark.asyncio
    async def test_failed_write_persists_nothing(self, clock, emitter):
        events = []
        emitter.subscribe("chat.turn", events.append)
        store = BrokenWriteStore(clock=clock)
        agent = ChatAgent(StubGateway(default="hi"), store, emitter=emitter)

        with pytest.raises(ChatTurnError) as exc_info:
            await agent.next_turn("c1", "hello")

        assert exc_info.value.conversation_id == "c1"
        assert isinstance(exc_info.value.__cause__, MemoryStoreError)
        assert await store.window("c1") == []
        assert events == []
