"""Tests for event system."""

import json

import pytest

from marketplace_agent.events.emitter import EventEmitter
from marketplace_agent.events.models import (
    ChatTurnEvent,
    PipelineCompletedEvent,
    StageFailedEvent,
    StageStartedEvent,
)
from marketplace_agent.events.types import EventType


class TestEventModels:
    """Tests for event models."""

    def test_event_to_json(self):
        event = StageStartedEvent.create("vision_pipeline", "vision_pipeline", run_id="run-1")
        payload = json.loads(event.to_json())
        assert payload["type"] == "stage.started"
        assert payload["run_id"] == "run-1"
        assert payload["data"] == {"stage": "vision_pipeline", "tool": "vision_pipeline"}

    def test_stage_failed_event(self):
        event = StageFailedEvent.create("web_scraper", "timeout", "slow", 3, False)
        assert event.event_type == EventType.STAGE_FAILED
        assert event.data["attempts"] == 3
        assert event.data["critical"] is False

    def test_pipeline_completed_event(self):
        event = PipelineCompletedEvent.create("listing", "succeeded", partial=True)
        assert event.data["partial"] is True
        assert event.data["failed_stage"] is None

    def test_timestamp_is_timezone_aware(self):
        assert ChatTurnEvent.create("c", 0, 5).timestamp.tzinfo is not None


class TestEventEmitter:
    """Tests for event emitter."""

    @pytest.mark.asyncio
    async def test_pattern_subscriptions(self):
        emitter = EventEmitter()
        stage_events, all_events, exact = [], [], []
        emitter.subscribe("stage.*", stage_events.append)
        emitter.subscribe("*", all_events.append)
        emitter.subscribe("pipeline.completed", exact.append)

        await emitter.emit_async(StageStartedEvent.create("a", "a"))
        await emitter.emit_async(PipelineCompletedEvent.create("p", "failed"))

        assert len(stage_events) == 1
        assert len(all_events) == 2
        assert len(exact) == 1

    @pytest.mark.asyncio
    async def test_async_handlers_awaited(self):
        emitter = EventEmitter()
        received = []

        async def handler(event):
            received.append(event.event_type)

        emitter.subscribe("chat.turn", handler)
        await emitter.emit_async(ChatTurnEvent.create("c", 2, 10))
        assert received == [EventType.CHAT_TURN]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        emitter = EventEmitter()
        received = []
        sub_id = emitter.subscribe("*", received.append)

        assert emitter.unsubscribe(sub_id)
        assert not emitter.unsubscribe(sub_id)
        await emitter.emit_async(ChatTurnEvent.create("c", 0, 1))
        assert received == []

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_stop_delivery(self):
        emitter = EventEmitter()
        received = []

        def broken(event):
            raise RuntimeError("handler bug")

        emitter.subscribe("*", broken)
        emitter.subscribe("*", received.append)
        await emitter.emit_async(ChatTurnEvent.create("c", 0, 1))
        assert len(received) == 1
