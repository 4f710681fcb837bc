"""Pipeline executor for dependency-ordered stage execution."""

import asyncio
import time
from typing import Any
from uuid import uuid4

from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import OperationCancelled, ToolError
from marketplace_agent.core.pipeline import (
    PipelineContext,
    PipelineResult,
    PipelineState,
    PipelineStatus,
    Stage,
    StageOutcome,
    StageStatus,
    validate_stages,
)
from marketplace_agent.core.resilience import RetryPolicy
from marketplace_agent.events.emitter import EventEmitter
from marketplace_agent.events.models import (
    Event,
    PipelineCompletedEvent,
    PipelineStartedEvent,
    StageCompletedEvent,
    StageFailedEvent,
    StageRetryingEvent,
    StageStartedEvent,
)
from marketplace_agent.utils.logging import bind_run_context, get_logger


logger = get_logger(__name__)

DEFAULT_STAGE_TIMEOUT = 60.0


class Pipeline:
    """
    Executes stages respecting dependencies.

    Features:
    - Concurrent execution of independent stages
    - Retry with exponential backoff for UPSTREAM_UNAVAILABLE / TIMEOUT
    - Per-attempt timeouts
    - Partial success for non-critical stages, abort for critical ones
    - Cooperative cancellation through one token per run
    - Progress events per stage

    Design Pattern: State Machine (PENDING -> RUNNING -> terminal)

    A stage starts once every stage it depends on is terminal. Its output
    is published into the write-once context only after it succeeds.
    """

    def __init__(
        self,
        name: str,
        stages: list[Stage],
        retry_policy: RetryPolicy | None = None,
        default_timeout: float = DEFAULT_STAGE_TIMEOUT,
        emitter: EventEmitter | None = None,
    ):
        """
        Initialize pipeline.

        Args:
            name: Pipeline name, used in logs and events
            stages: Stage declarations; order is fixed here
            retry_policy: Retry policy applied to every stage
            default_timeout: Per-attempt timeout for stages without their own
            emitter: Event emitter for progress events

        Raises:
            PipelineDefinitionError: If the stage graph is invalid
        """
        self.name = name
        self.stages = validate_stages(name, stages)
        self.retry_policy = retry_policy or RetryPolicy()
        self.default_timeout = default_timeout
        self._emitter = emitter
        self._order = {stage.name: index for index, stage in enumerate(self.stages)}

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    async def run(
        self,
        request: Any,
        cancellation: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> PipelineResult:
        """
        Execute the pipeline for one request.

        Args:
            request: Request object handed to stage input builders
            cancellation: Token threading the whole invocation
            run_id: Identifier for logs and events (generated if omitted)

        Returns:
            PipelineResult with per-stage outcomes and the context snapshot
        """
        token = cancellation or CancellationToken()
        run_id = run_id or uuid4().hex[:12]

        with bind_run_context(pipeline=self.name, run_id=run_id):
            return await self._run(request, token, run_id)

    async def _run(
        self,
        request: Any,
        token: CancellationToken,
        run_id: str,
    ) -> PipelineResult:
        state = PipelineState()
        context = PipelineContext(request)
        outcomes = {
            stage.name: StageOutcome(stage.name, StageStatus.PENDING, critical=stage.critical)
            for stage in self.stages
        }
        running: dict[asyncio.Task, Stage] = {}
        halt: PipelineStatus | None = None
        failed_stage: str | None = None
        started = time.monotonic()

        state.transition(PipelineStatus.RUNNING)
        logger.info("Pipeline started", stages=len(self.stages))
        await self._emit(PipelineStartedEvent.create(self.name, self.stage_names, run_id=run_id))

        try:
            while True:
                if halt is None and token.cancelled:
                    logger.info("Cancellation observed", reason=token.reason)
                    halt = PipelineStatus.CANCELLED

                if halt is None:
                    for stage in self._ready_stages(outcomes):
                        outcomes[stage.name].status = StageStatus.RUNNING
                        state.running.add(stage.name)
                        task = asyncio.create_task(
                            self._execute_stage(stage, context, token, outcomes[stage.name], run_id),
                            name=f"{self.name}:{stage.name}",
                        )
                        running[task] = stage

                if not running:
                    break

                done, _ = await asyncio.wait(set(running), return_when=asyncio.FIRST_COMPLETED)

                for task in sorted(done, key=lambda t: self._order[running[t].name]):
                    stage = running.pop(task)
                    state.running.discard(stage.name)
                    outcome = outcomes[stage.name]

                    try:
                        output = task.result()
                    except OperationCancelled:
                        outcome.status = StageStatus.CANCELLED
                        outcome.error = None
                        logger.info("Stage cancelled", stage=stage.name, attempts=outcome.attempts)
                        if halt is None:
                            halt = PipelineStatus.CANCELLED
                        continue
                    except ToolError as e:
                        outcome.status = StageStatus.FAILED
                        outcome.error = e
                        await self._report_failure(stage, outcome, run_id)
                        if stage.critical and halt is None:
                            halt = PipelineStatus.FAILED
                            failed_stage = stage.name
                        continue

                    context.publish(stage.name, output)
                    outcome.status = StageStatus.SUCCEEDED
                    outcome.error = None
                    logger.info(
                        "Stage completed",
                        stage=stage.name,
                        attempts=outcome.attempts,
                        duration_ms=round(outcome.duration_ms, 1),
                    )
                    await self._emit(
                        StageCompletedEvent.create(
                            stage.name, outcome.attempts, outcome.duration_ms, run_id=run_id
                        )
                    )

        except asyncio.CancelledError:
            for task in running:
                task.cancel()
            await asyncio.gather(*running, return_exceptions=True)
            raise

        for outcome in outcomes.values():
            if outcome.status is StageStatus.PENDING:
                outcome.status = StageStatus.SKIPPED

        final = halt or PipelineStatus.SUCCEEDED
        state.transition(final)
        result = PipelineResult(
            pipeline=self.name,
            run_id=run_id,
            status=final,
            stages=[outcomes[stage.name] for stage in self.stages],
            context=context.snapshot(),
            failed_stage=failed_stage,
            cancel_reason=token.reason if final is PipelineStatus.CANCELLED else None,
            duration_ms=(time.monotonic() - started) * 1000,
        )

        logger.info(
            "Pipeline completed",
            status=final.value,
            partial=result.partial,
            failed_stage=failed_stage,
            degraded=result.degraded_stages,
            duration_ms=round(result.duration_ms, 1),
        )
        await self._emit(
            PipelineCompletedEvent.create(
                self.name,
                final.value,
                partial=result.partial,
                failed_stage=failed_stage,
                duration_ms=result.duration_ms,
                run_id=run_id,
            )
        )
        return result

    def _ready_stages(self, outcomes: dict[str, StageOutcome]) -> list[Stage]:
        """Pending stages whose predecessors are all terminal, in declared order."""
        return [
            stage
            for stage in self.stages
            if outcomes[stage.name].status is StageStatus.PENDING
            and all(outcomes[dep].status.terminal for dep in stage.depends_on)
        ]

    async def _execute_stage(
        self,
        stage: Stage,
        context: PipelineContext,
        token: CancellationToken,
        outcome: StageOutcome,
        run_id: str,
    ) -> Any:
        """Run one stage through the retry policy."""
        policy = self.retry_policy.with_max_retries(stage.max_retries)
        timeout = stage.timeout if stage.timeout is not None else self.default_timeout

        logger.info("Stage started", stage=stage.name, tool=stage.tool.name)
        await self._emit(StageStartedEvent.create(stage.name, stage.tool.name, run_id=run_id))

        started = time.monotonic()
        try:
            async for attempt in policy.retrying(sleep=token.sleep):
                with attempt:
                    outcome.attempts = attempt.retry_state.attempt_number
                    if outcome.attempts > 1:
                        kind = outcome.error.kind.value if outcome.error else None
                        logger.warning(
                            "Retrying stage",
                            stage=stage.name,
                            attempt=outcome.attempts,
                            error_kind=kind,
                        )
                        await self._emit(
                            StageRetryingEvent.create(
                                stage.name, outcome.attempts, error_kind=kind, run_id=run_id
                            )
                        )
                    token.raise_if_cancelled()
                    try:
                        return await self._attempt(stage, context, token, timeout)
                    except ToolError as e:
                        outcome.error = e
                        raise
        finally:
            outcome.duration_ms = (time.monotonic() - started) * 1000

    async def _attempt(
        self,
        stage: Stage,
        context: PipelineContext,
        token: CancellationToken,
        timeout: float,
    ) -> Any:
        """Single attempt: build input from the context view and run the tool."""
        try:
            stage_input = stage.build_input(context.view())
        except ToolError:
            raise
        except Exception as e:
            raise ToolError.invalid_input(
                f"Could not build input for stage {stage.name}: {e}",
                cause=e,
                tool_name=stage.tool.name,
            ) from e

        try:
            return await asyncio.wait_for(stage.tool.run(stage_input, token), timeout=timeout)
        except (OperationCancelled, ToolError):
            raise
        except asyncio.TimeoutError as e:
            raise ToolError.timeout(
                f"Stage {stage.name} timed out after {timeout}s",
                cause=e,
                tool_name=stage.tool.name,
            ) from e
        except Exception as e:
            raise ToolError.normalize(e, stage.tool.name) from e

    async def _report_failure(self, stage: Stage, outcome: StageOutcome, run_id: str) -> None:
        error = outcome.error
        log = logger.error if stage.critical else logger.warning
        log(
            "Stage failed",
            stage=stage.name,
            critical=stage.critical,
            error_kind=error.kind.value,
            error=error.message,
            attempts=outcome.attempts,
        )
        await self._emit(
            StageFailedEvent.create(
                stage.name,
                error.kind.value,
                error.message,
                outcome.attempts,
                stage.critical,
                run_id=run_id,
            )
        )

    async def _emit(self, event: Event) -> None:
        """Emit event if emitter is configured."""
        if self._emitter:
            await self._emitter.emit_async(event)
