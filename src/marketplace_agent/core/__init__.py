"""Core orchestration: exceptions, cancellation, resilience and pipelines."""

from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import (
    ChatTurnError,
    GatewayError,
    MarketplaceAgentError,
    MemoryStoreError,
    OperationCancelled,
    PipelineDefinitionError,
    PipelineStateError,
    ToolError,
    ToolErrorKind,
)
from marketplace_agent.core.pipeline import (
    ContextView,
    PipelineContext,
    PipelineResult,
    PipelineStatus,
    Stage,
    StageOutcome,
    StageStatus,
)
from marketplace_agent.core.pipeline_executor import Pipeline
from marketplace_agent.core.resilience import RetryPolicy

__all__ = [
    "CancellationToken",
    "ChatTurnError",
    "ContextView",
    "GatewayError",
    "MarketplaceAgentError",
    "MemoryStoreError",
    "OperationCancelled",
    "Pipeline",
    "PipelineContext",
    "PipelineDefinitionError",
    "PipelineResult",
    "PipelineStateError",
    "PipelineStatus",
    "RetryPolicy",
    "Stage",
    "StageOutcome",
    "StageStatus",
    "ToolError",
    "ToolErrorKind",
]
