"""Progress events."""

from .emitter import EventEmitter, EventHandler
from .models import (
    ChatTurnEvent,
    Event,
    PipelineCompletedEvent,
    PipelineStartedEvent,
    StageCompletedEvent,
    StageFailedEvent,
    StageRetryingEvent,
    StageStartedEvent,
)
from .types import EventType

__all__ = [
    "EventType",
    "Event",
    "EventEmitter",
    "EventHandler",
    "PipelineStartedEvent",
    "PipelineCompletedEvent",
    "StageStartedEvent",
    "StageRetryingEvent",
    "StageCompletedEvent",
    "StageFailedEvent",
    "ChatTurnEvent",
]
