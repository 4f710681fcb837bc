"""Event data models."""

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from .types import EventType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(BaseModel):
    """Base event model."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: EventType
    timestamp: datetime = Field(default_factory=_utcnow)
    run_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps({
            "id": self.id,
            "type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "run_id": self.run_id,
            "data": self.data,
        })


class PipelineStartedEvent(Event):
    """Emitted once when a pipeline run begins."""

    event_type: EventType = EventType.PIPELINE_STARTED

    @classmethod
    def create(cls, pipeline: str, stages: list[str], run_id: str | None = None) -> "PipelineStartedEvent":
        return cls(run_id=run_id, data={"pipeline": pipeline, "stages": stages})


class PipelineCompletedEvent(Event):
    """Emitted once when a pipeline run reaches a terminal state."""

    event_type: EventType = EventType.PIPELINE_COMPLETED

    @classmethod
    def create(
        cls,
        pipeline: str,
        status: str,
        partial: bool = False,
        failed_stage: str | None = None,
        duration_ms: float = 0.0,
        run_id: str | None = None,
    ) -> "PipelineCompletedEvent":
        return cls(
            run_id=run_id,
            data={
                "pipeline": pipeline,
                "status": status,
                "partial": partial,
                "failed_stage": failed_stage,
                "duration_ms": duration_ms,
            },
        )


class StageStartedEvent(Event):
    event_type: EventType = EventType.STAGE_STARTED

    @classmethod
    def create(cls, stage: str, tool: str, run_id: str | None = None) -> "StageStartedEvent":
        return cls(run_id=run_id, data={"stage": stage, "tool": tool})


class StageRetryingEvent(Event):
    event_type: EventType = EventType.STAGE_RETRYING

    @classmethod
    def create(
        cls,
        stage: str,
        attempt: int,
        error_kind: str | None = None,
        run_id: str | None = None,
    ) -> "StageRetryingEvent":
        return cls(
            run_id=run_id,
            data={"stage": stage, "attempt": attempt, "error_kind": error_kind},
        )


class StageCompletedEvent(Event):
    event_type: EventType = EventType.STAGE_COMPLETED

    @classmethod
    def create(
        cls,
        stage: str,
        attempts: int,
        duration_ms: float,
        run_id: str | None = None,
    ) -> "StageCompletedEvent":
        return cls(
            run_id=run_id,
            data={"stage": stage, "attempts": attempts, "duration_ms": duration_ms},
        )


class StageFailedEvent(Event):
    event_type: EventType = EventType.STAGE_FAILED

    @classmethod
    def create(
        cls,
        stage: str,
        error_kind: str,
        error_message: str,
        attempts: int,
        critical: bool,
        run_id: str | None = None,
    ) -> "StageFailedEvent":
        return cls(
            run_id=run_id,
            data={
                "stage": stage,
                "error_kind": error_kind,
                "error_message": error_message,
                "attempts": attempts,
                "critical": critical,
            },
        )


class ChatTurnEvent(Event):
    """Emitted after a chat turn has been answered and recorded."""

    event_type: EventType = EventType.CHAT_TURN

    @classmethod
    def create(
        cls,
        conversation_id: str,
        window_size: int,
        reply_length: int,
    ) -> "ChatTurnEvent":
        return cls(
            data={
                "conversation_id": conversation_id,
                "window_size": window_size,
                "reply_length": reply_length,
            },
        )
