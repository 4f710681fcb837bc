"""Event type enumerations."""

from enum import Enum


class EventType(str, Enum):
    """All progress event types."""

    # Pipeline events
    PIPELINE_STARTED = "pipeline.started"
    PIPELINE_COMPLETED = "pipeline.completed"

    # Stage events
    STAGE_STARTED = "stage.started"
    STAGE_RETRYING = "stage.retrying"
    STAGE_COMPLETED = "stage.completed"
    STAGE_FAILED = "stage.failed"

    # Chat events
    CHAT_TURN = "chat.turn"
