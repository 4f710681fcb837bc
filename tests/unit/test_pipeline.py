"""Tests for the pipeline orchestrator."""

import asyncio
from typing import Any, Awaitable, Callable

import pytest

from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import (
    PipelineDefinitionError,
    PipelineStateError,
    ToolError,
    ToolErrorKind,
)
from marketplace_agent.core.pipeline import (
    PipelineContext,
    PipelineState,
    PipelineStatus,
    Stage,
    StageStatus,
)
from marketplace_agent.core.pipeline_executor import Pipeline
from marketplace_agent.core.resilience import RetryPolicy
from marketplace_agent.events.emitter import EventEmitter
from marketplace_agent.tools.base import Tool


Behaviour = Callable[[Any, CancellationToken], Awaitable[Any]]


class ScriptedTool(Tool):
    """Tool whose behaviour is a coroutine function; records start/end in a shared log."""

    def __init__(self, name: str, behaviour: Behaviour | None = None, log: list | None = None):
        self.name = name
        self.behaviour = behaviour
        self.log = log if log is not None else []
        self.calls = 0

    async def invoke(self, input: Any, cancellation: CancellationToken) -> Any:
        self.calls += 1
        self.log.append(("start", self.name))
        result = await self.behaviour(input, cancellation) if self.behaviour else f"{self.name}-out"
        self.log.append(("end", self.name))
        return result


def returning(value: Any, delay: float = 0.0) -> Behaviour:
    async def behaviour(input, cancellation):
        if delay:
            await asyncio.sleep(delay)
        return value

    return behaviour


def failing(error_factory: Callable[[], ToolError], times: int | None = None) -> Behaviour:
    """Raise ``times`` times (forever if None), then return "recovered"."""
    remaining = {"count": times}

    async def behaviour(input, cancellation):
        if remaining["count"] is None or remaining["count"] > 0:
            if remaining["count"] is not None:
                remaining["count"] -= 1
            raise error_factory()
        return "recovered"

    return behaviour


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_retries=2, backoff_base=0, backoff_max=0)


class TestStageOrdering:
    """Dependency order and concurrent fan-out/fan-in."""

    @pytest.mark.asyncio
    async def test_linear_order_and_context(self, policy):
        log: list = []
        stages = [
            Stage("a", ScriptedTool("a", log=log)),
            Stage("b", ScriptedTool("b", log=log), ("a",), build_input=lambda v: v["a"]),
            Stage("c", ScriptedTool("c", log=log), ("b",)),
        ]
        result = await Pipeline("linear", stages, retry_policy=policy).run("request")

        assert result.status is PipelineStatus.SUCCEEDED
        assert [name for event, name in log if event == "start"] == ["a", "b", "c"]
        assert result.context == {"a": "a-out", "b": "b-out", "c": "c-out"}
        assert all(outcome.attempts == 1 for outcome in result.stages)

    @pytest.mark.asyncio
    async def test_join_waits_for_both_siblings(self, policy):
        log: list = []
        seen: dict = {}

        async def join(input, cancellation):
            seen.update(input)
            return "joined"

        stages = [
            Stage("root", ScriptedTool("root", log=log)),
            Stage("slow", ScriptedTool("slow", returning("s", 0.05), log), ("root",)),
            Stage("fast", ScriptedTool("fast", returning("f", 0.01), log), ("root",)),
            Stage(
                "join",
                ScriptedTool("join", join, log),
                ("slow", "fast"),
                build_input=lambda v: {"slow": v["slow"], "fast": v["fast"]},
            ),
        ]
        result = await Pipeline("fan", stages, retry_policy=policy).run(None)

        assert result.succeeded
        assert seen == {"slow": "s", "fast": "f"}
        join_start = log.index(("start", "join"))
        assert log.index(("end", "slow")) < join_start
        assert log.index(("end", "fast")) < join_start
        # both siblings started before either finished
        assert log.index(("start", "fast")) < log.index(("end", "slow"))

    @pytest.mark.asyncio
    async def test_request_reaches_first_stage(self, policy):
        received = []

        async def capture(input, cancellation):
            received.append(input)
            return input

        stages = [Stage("only", ScriptedTool("only", capture))]
        await Pipeline("req", stages, retry_policy=policy).run({"sku": "X"})
        assert received == [{"sku": "X"}]


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_before_stage_k(self, policy):
        token = CancellationToken()

        async def cancel_after(input, cancellation):
            token.cancel("user aborted")
            return "two"

        tools = [
            ScriptedTool("one"),
            ScriptedTool("two", cancel_after),
            ScriptedTool("three"),
            ScriptedTool("four"),
        ]
        stages = [
            Stage("one", tools[0]),
            Stage("two", tools[1], ("one",)),
            Stage("three", tools[2], ("two",)),
            Stage("four", tools[3], ("three",)),
        ]
        result = await Pipeline("cancel", stages, retry_policy=policy).run(None, token)

        assert result.status is PipelineStatus.CANCELLED
        assert result.cancel_reason == "user aborted"
        assert set(result.context) == {"one", "two"}
        assert tools[2].calls == 0
        assert result.stage("three").attempts == 0
        assert result.stage("three").status is StageStatus.SKIPPED
        assert result.stage("four").status is StageStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_cancel_while_stage_running(self, policy):
        token = CancellationToken()

        async def waits(input, cancellation):
            await cancellation.guard(asyncio.sleep(10))
            return "never"

        stages = [Stage("blocking", ScriptedTool("blocking", waits)), Stage("after", ScriptedTool("after"), ("blocking",))]
        pipeline = Pipeline("cancel-running", stages, retry_policy=policy)

        asyncio.get_running_loop().call_later(0.02, token.cancel, "shutdown")
        result = await pipeline.run(None, token)

        assert result.status is PipelineStatus.CANCELLED
        assert result.stage("blocking").status is StageStatus.CANCELLED
        assert result.stage("after").status is StageStatus.SKIPPED
        assert result.context == {}

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_clears_error(self):
        token = CancellationToken()
        tool = ScriptedTool("flaky", failing(lambda: ToolError.unavailable("down")))
        slow_backoff = RetryPolicy(max_retries=2, backoff_base=10, backoff_max=10)
        pipeline = Pipeline("backoff", [Stage("flaky", tool)], retry_policy=slow_backoff)

        asyncio.get_running_loop().call_later(0.02, token.cancel, "shutdown")
        result = await pipeline.run(None, token)

        assert result.status is PipelineStatus.CANCELLED
        outcome = result.stage("flaky")
        assert outcome.status is StageStatus.CANCELLED
        assert outcome.attempts == 1
        assert outcome.error is None
        assert tool.calls == 1

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self, policy):
        token = CancellationToken()
        token.cancel("too late")
        tool = ScriptedTool("first")
        result = await Pipeline("pre", [Stage("first", tool)], retry_policy=policy).run(None, token)

        assert result.status is PipelineStatus.CANCELLED
        assert tool.calls == 0


class TestRetries:
    @pytest.mark.asyncio
    async def test_timeout_attempted_one_plus_max_retries(self, policy):
        tool = ScriptedTool("flaky", failing(lambda: ToolError.timeout("slow upstream")))
        result = await Pipeline("retry", [Stage("flaky", tool)], retry_policy=policy).run(None)

        outcome = result.stage("flaky")
        assert tool.calls == 3
        assert outcome.attempts == 3
        assert outcome.status is StageStatus.FAILED
        assert outcome.error.kind is ToolErrorKind.TIMEOUT
        assert result.status is PipelineStatus.FAILED

    @pytest.mark.asyncio
    async def test_stage_timeout_enforced(self):
        async def hangs(input, cancellation):
            await asyncio.sleep(10)

        tool = ScriptedTool("hangs", hangs)
        stages = [Stage("hangs", tool, timeout=0.01, max_retries=1)]
        policy = RetryPolicy(max_retries=5, backoff_base=0, backoff_max=0)
        result = await Pipeline("deadline", stages, retry_policy=policy).run(None)

        outcome = result.stage("hangs")
        assert outcome.attempts == 2
        assert outcome.error.kind is ToolErrorKind.TIMEOUT
        assert outcome.error.tool_name == "hangs"

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self, policy):
        tool = ScriptedTool("flaky", failing(lambda: ToolError.unavailable("503"), times=2))
        result = await Pipeline("recover", [Stage("flaky", tool)], retry_policy=policy).run(None)

        assert result.succeeded
        assert result.output("flaky") == "recovered"
        assert result.stage("flaky").attempts == 3
        assert result.stage("flaky").error is None

    @pytest.mark.parametrize(
        "factory",
        [
            lambda: ToolError.rejected("duplicate"),
            lambda: ToolError.invalid_input("bad"),
            lambda: ToolError.unknown("?"),
        ],
    )
    @pytest.mark.asyncio
    async def test_non_retryable_attempted_once(self, policy, factory):
        tool = ScriptedTool("strict", failing(factory))
        result = await Pipeline("once", [Stage("strict", tool)], retry_policy=policy).run(None)
        assert tool.calls == 1
        assert result.stage("strict").attempts == 1

    @pytest.mark.asyncio
    async def test_unclassified_exception_becomes_unknown(self, policy):
        async def broken(input, cancellation):
            raise RuntimeError("bug")

        tool = ScriptedTool("broken", broken)
        result = await Pipeline("bug", [Stage("broken", tool)], retry_policy=policy).run(None)
        assert result.error.kind is ToolErrorKind.UNKNOWN
        assert tool.calls == 1

    @pytest.mark.asyncio
    async def test_input_builder_failure_is_invalid_input(self, policy):
        def bad_builder(view):
            return view["missing"]

        tool = ScriptedTool("needs-input")
        stages = [Stage("needs-input", tool, build_input=bad_builder)]
        result = await Pipeline("builder", stages, retry_policy=policy).run(None)

        assert result.error.kind is ToolErrorKind.INVALID_INPUT
        assert tool.calls == 0

    @pytest.mark.asyncio
    async def test_retry_events_emitted(self, policy):
        emitter = EventEmitter()
        received = []
        emitter.subscribe("stage.*", lambda event: received.append(event))

        tool = ScriptedTool("flaky", failing(lambda: ToolError.unavailable("503"), times=1))
        await Pipeline("events", [Stage("flaky", tool)], retry_policy=policy, emitter=emitter).run(None)

        types = [event.event_type.value for event in received]
        assert types == ["stage.started", "stage.retrying", "stage.completed"]
        assert received[1].data["attempt"] == 2
        assert received[1].data["error_kind"] == "upstream_unavailable"


class TestFailurePropagation:
    @pytest.mark.asyncio
    async def test_non_critical_failure_degrades(self, policy):
        seen = {}

        async def join(input, cancellation):
            seen.update(input)
            return "merged"

        stages = [
            Stage("root", ScriptedTool("root")),
            Stage("optional", ScriptedTool("optional", failing(lambda: ToolError.unavailable("down"))), ("root",), critical=False),
            Stage("solid", ScriptedTool("solid"), ("root",), critical=False),
            Stage(
                "join",
                ScriptedTool("join", join),
                ("optional", "solid"),
                build_input=lambda v: {"optional": v.get("optional"), "solid": v.get("solid")},
            ),
        ]
        result = await Pipeline("partial", stages, retry_policy=policy).run(None)

        assert result.status is PipelineStatus.SUCCEEDED
        assert result.partial
        assert result.degraded_stages == ["optional"]
        assert result.stage("optional").attempts == 3
        assert seen == {"optional": None, "solid": "solid-out"}
        assert "optional" not in result.context

    @pytest.mark.asyncio
    async def test_critical_failure_aborts(self, policy):
        downstream = ScriptedTool("downstream")
        stages = [
            Stage("first", ScriptedTool("first")),
            Stage("gate", ScriptedTool("gate", failing(lambda: ToolError.rejected("no"))), ("first",)),
            Stage("downstream", downstream, ("gate",)),
        ]
        result = await Pipeline("abort", stages, retry_policy=policy).run(None)

        assert result.status is PipelineStatus.FAILED
        assert result.failed_stage == "gate"
        assert result.error.kind is ToolErrorKind.UPSTREAM_REJECTED
        assert result.stage_statuses() == {
            "first": StageStatus.SUCCEEDED,
            "gate": StageStatus.FAILED,
            "downstream": StageStatus.SKIPPED,
        }
        assert downstream.calls == 0
        assert result.context == {"first": "first-out"}

    @pytest.mark.asyncio
    async def test_critical_failure_lets_running_sibling_finish(self, policy):
        stages = [
            Stage("bad", ScriptedTool("bad", failing(lambda: ToolError.rejected("no")))),
            Stage("slow", ScriptedTool("slow", returning("done", 0.03))),
        ]
        result = await Pipeline("siblings", stages, retry_policy=policy).run(None)

        assert result.status is PipelineStatus.FAILED
        assert result.stage("slow").status is StageStatus.SUCCEEDED
        assert result.output("slow") == "done"


class TestContextAndState:
    def test_context_is_write_once(self):
        context = PipelineContext("req")
        context.publish("a", 1)
        with pytest.raises(PipelineStateError):
            context.publish("a", 2)
        assert context["a"] == 1

    def test_view_is_read_only(self):
        context = PipelineContext("req")
        context.publish("a", 1)
        view = context.view()
        assert view.request == "req"
        assert "a" in view and view.get("b") is None
        with pytest.raises(TypeError):
            view.outputs["b"] = 2  # type: ignore[index]

    def test_snapshot_is_a_copy(self):
        context = PipelineContext()
        context.publish("a", 1)
        snapshot = context.snapshot()
        snapshot["b"] = 2
        assert "b" not in context

    def test_state_transitions(self):
        state = PipelineState()
        assert state.status is PipelineStatus.PENDING
        with pytest.raises(PipelineStateError):
            state.transition(PipelineStatus.SUCCEEDED)
        state.transition(PipelineStatus.RUNNING)
        state.transition(PipelineStatus.FAILED)
        assert state.status.terminal
        with pytest.raises(PipelineStateError):
            state.transition(PipelineStatus.RUNNING)


class TestDefinition:
    def test_empty_pipeline(self):
        with pytest.raises(PipelineDefinitionError):
            Pipeline("empty", [])

    def test_duplicate_names(self):
        with pytest.raises(PipelineDefinitionError):
            Pipeline("dup", [Stage("a", ScriptedTool("a")), Stage("a", ScriptedTool("a"))])

    def test_unknown_dependency(self):
        with pytest.raises(PipelineDefinitionError):
            Pipeline("unknown", [Stage("a", ScriptedTool("a"), ("ghost",))])

    def test_self_dependency(self):
        with pytest.raises(PipelineDefinitionError):
            Pipeline("self", [Stage("a", ScriptedTool("a"), ("a",))])

    def test_cycle(self):
        stages = [
            Stage("a", ScriptedTool("a"), ("c",)),
            Stage("b", ScriptedTool("b"), ("a",)),
            Stage("c", ScriptedTool("c"), ("b",)),
        ]
        with pytest.raises(PipelineDefinitionError):
            Pipeline("cycle", stages)
