"""Pipeline definition and result models."""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable

from marketplace_agent.core.exceptions import (
    PipelineDefinitionError,
    PipelineStateError,
    ToolError,
)

if TYPE_CHECKING:
    from marketplace_agent.tools.base import Tool


class PipelineStatus(str, Enum):
    """Status of a pipeline run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (
            PipelineStatus.SUCCEEDED,
            PipelineStatus.FAILED,
            PipelineStatus.CANCELLED,
        )


class StageStatus(str, Enum):
    """Status of one stage within a run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self not in (StageStatus.PENDING, StageStatus.RUNNING)


_ALLOWED_TRANSITIONS: dict[PipelineStatus, set[PipelineStatus]] = {
    PipelineStatus.PENDING: {PipelineStatus.RUNNING, PipelineStatus.CANCELLED},
    PipelineStatus.RUNNING: {
        PipelineStatus.SUCCEEDED,
        PipelineStatus.FAILED,
        PipelineStatus.CANCELLED,
    },
    PipelineStatus.SUCCEEDED: set(),
    PipelineStatus.FAILED: set(),
    PipelineStatus.CANCELLED: set(),
}


class PipelineState:
    """
    State machine of one pipeline run.

    PENDING is the only initial state; terminal states are final.
    """

    def __init__(self) -> None:
        self._status = PipelineStatus.PENDING
        self.running: set[str] = set()

    @property
    def status(self) -> PipelineStatus:
        return self._status

    def transition(self, target: PipelineStatus) -> None:
        """
        Move to ``target``.

        Raises:
            PipelineStateError: If the transition is not allowed
        """
        if target not in _ALLOWED_TRANSITIONS[self._status]:
            raise PipelineStateError(
                f"Illegal pipeline transition {self._status.value} -> {target.value}"
            )
        self._status = target


class PipelineContext(Mapping):
    """
    Write-once mapping of stage name to stage output.

    Iteration order is completion order. Stages only ever see a read-only
    view through ``view()``.
    """

    def __init__(self, request: Any = None) -> None:
        self.request = request
        self._outputs: dict[str, Any] = {}

    def publish(self, stage_name: str, output: Any) -> None:
        """
        Record a stage's output.

        Raises:
            PipelineStateError: If the stage already published
        """
        if stage_name in self._outputs:
            raise PipelineStateError(
                f"Stage output already published: {stage_name}", stage=stage_name
            )
        self._outputs[stage_name] = output

    def view(self) -> "ContextView":
        return ContextView(self.request, MappingProxyType(self._outputs))

    def snapshot(self) -> dict[str, Any]:
        return dict(self._outputs)

    def __getitem__(self, key: str) -> Any:
        return self._outputs[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._outputs)

    def __len__(self) -> int:
        return len(self._outputs)


@dataclass(frozen=True)
class ContextView:
    """Read-only view handed to stage input builders."""

    request: Any
    outputs: Mapping[str, Any]

    def get(self, stage_name: str, default: Any = None) -> Any:
        return self.outputs.get(stage_name, default)

    def __getitem__(self, stage_name: str) -> Any:
        return self.outputs[stage_name]

    def __contains__(self, stage_name: object) -> bool:
        return stage_name in self.outputs


InputBuilder = Callable[[ContextView], Any]


def _request_as_input(view: ContextView) -> Any:
    return view.request


@dataclass
class Stage:
    """
    A single stage of a pipeline.

    Attributes:
        name: Unique stage name, also the context key of its output
        tool: Tool executed by the stage
        depends_on: Names of stages that must be terminal before this one starts
        critical: Whether failure aborts the run (False degrades it)
        build_input: Maps the read-only context view to the tool input
        timeout: Per-attempt timeout in seconds (None uses the pipeline default)
        max_retries: Override of the pipeline retry count
    """

    name: str
    tool: "Tool"
    depends_on: tuple[str, ...] = ()
    critical: bool = True
    build_input: InputBuilder = _request_as_input
    timeout: float | None = None
    max_retries: int | None = None

    def __post_init__(self) -> None:
        self.depends_on = tuple(self.depends_on)


@dataclass
class StageOutcome:
    """Result of a single stage."""

    stage_name: str
    status: StageStatus
    error: ToolError | None = None
    attempts: int = 0
    duration_ms: float = 0.0
    critical: bool = True

    @property
    def succeeded(self) -> bool:
        return self.status is StageStatus.SUCCEEDED


@dataclass
class PipelineResult:
    """Complete pipeline run result."""

    pipeline: str
    run_id: str
    status: PipelineStatus
    stages: list[StageOutcome] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
    failed_stage: str | None = None
    cancel_reason: str | None = None
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status is PipelineStatus.SUCCEEDED

    @property
    def degraded_stages(self) -> list[str]:
        """Non-critical stages that failed without aborting the run."""
        return [
            outcome.stage_name
            for outcome in self.stages
            if outcome.status is StageStatus.FAILED and not outcome.critical
        ]

    @property
    def partial(self) -> bool:
        return bool(self.degraded_stages)

    @property
    def error(self) -> ToolError | None:
        if self.failed_stage is None:
            return None
        return self.stage(self.failed_stage).error

    def stage(self, name: str) -> StageOutcome:
        for outcome in self.stages:
            if outcome.stage_name == name:
                return outcome
        raise KeyError(f"Stage not found: {name}")

    def output(self, name: str, default: Any = None) -> Any:
        return self.context.get(name, default)

    def stage_statuses(self) -> dict[str, StageStatus]:
        return {outcome.stage_name: outcome.status for outcome in self.stages}


def validate_stages(name: str, stages: list[Stage]) -> list[Stage]:
    """
    Check a stage graph and return it in declared order.

    Raises:
        PipelineDefinitionError: Empty graph, duplicate names, unknown
            dependencies or cycles
    """
    if not stages:
        raise PipelineDefinitionError("Pipeline has no stages", pipeline=name)

    names: set[str] = set()
    for stage in stages:
        if stage.name in names:
            raise PipelineDefinitionError(f"Duplicate stage name: {stage.name}", pipeline=name)
        names.add(stage.name)

    for stage in stages:
        for dep in stage.depends_on:
            if dep not in names:
                raise PipelineDefinitionError(
                    f"Stage {stage.name} depends on unknown stage {dep}", pipeline=name
                )
            if dep == stage.name:
                raise PipelineDefinitionError(
                    f"Stage {stage.name} depends on itself", pipeline=name
                )

    # Kahn's algorithm
    remaining = {stage.name: set(stage.depends_on) for stage in stages}
    while remaining:
        ready = [stage_name for stage_name, deps in remaining.items() if not deps]
        if not ready:
            raise PipelineDefinitionError(
                f"Dependency cycle among stages: {', '.join(sorted(remaining))}",
                pipeline=name,
            )
        for stage_name in ready:
            del remaining[stage_name]
        for deps in remaining.values():
            deps.difference_update(ready)

    return list(stages)
