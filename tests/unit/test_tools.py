"""Tests for the tool contract and registry."""

import asyncio

import pytest
from pydantic import BaseModel

import marketplace_agent.tools.builtin  # noqa: F401
from marketplace_agent.agents.listing import STAGE_ORDER
from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import OperationCancelled, ToolError, ToolErrorKind
from marketplace_agent.tools.base import Tool
from marketplace_agent.tools.registry import ToolRegistry


class EchoInput(BaseModel):
    text: str
    repeat: int = 1


class EchoTool(Tool[EchoInput, str]):
    name = "echo"
    description = "Repeats text."
    input_model = EchoInput

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.received: list[EchoInput] = []

    async def invoke(self, input: EchoInput, cancellation: CancellationToken) -> str:
        self.received.append(input)
        if self.error:
            raise self.error
        return input.text * input.repeat


class TestToolContract:
    @pytest.mark.asyncio
    async def test_dict_input_is_validated(self):
        tool = EchoTool()
        assert await tool.run({"text": "ab", "repeat": 2}) == "abab"
        assert isinstance(tool.received[0], EchoInput)

    @pytest.mark.asyncio
    async def test_invalid_input(self):
        tool = EchoTool()
        with pytest.raises(ToolError) as exc_info:
            await tool.run({"repeat": "many"})
        error = exc_info.value
        assert error.kind is ToolErrorKind.INVALID_INPUT
        assert error.tool_name == "echo"
        assert error.detail["errors"]
        assert tool.received == []

    @pytest.mark.asyncio
    async def test_tool_errors_get_tool_name(self):
        tool = EchoTool(error=ToolError.rejected("nope"))
        with pytest.raises(ToolError) as exc_info:
            await tool.run(EchoInput(text="x"))
        assert exc_info.value.tool_name == "echo"
        assert exc_info.value.kind is ToolErrorKind.UPSTREAM_REJECTED

    @pytest.mark.asyncio
    async def test_unclassified_errors_become_unknown(self):
        tool = EchoTool(error=ZeroDivisionError("oops"))
        with pytest.raises(ToolError) as exc_info:
            await tool.run(EchoInput(text="x"))
        assert exc_info.value.kind is ToolErrorKind.UNKNOWN
        assert isinstance(exc_info.value.cause, ZeroDivisionError)

    @pytest.mark.asyncio
    async def test_connection_errors_become_unavailable(self):
        tool = EchoTool(error=ConnectionRefusedError("refused"))
        with pytest.raises(ToolError) as exc_info:
            await tool.run(EchoInput(text="x"))
        assert exc_info.value.kind is ToolErrorKind.UPSTREAM_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_cancelled_token_short_circuits(self):
        tool = EchoTool()
        token = CancellationToken()
        token.cancel("stop")
        with pytest.raises(OperationCancelled):
            await tool.run(EchoInput(text="x"), token)
        assert tool.received == []

    @pytest.mark.asyncio
    async def test_cancellation_passes_through(self):
        tool = EchoTool(error=OperationCancelled("stop"))
        with pytest.raises(OperationCancelled):
            await tool.run(EchoInput(text="x"))

    @pytest.mark.asyncio
    async def test_asyncio_cancellation_passes_through(self):
        tool = EchoTool(error=asyncio.CancelledError())
        with pytest.raises(asyncio.CancelledError):
            await tool.run(EchoInput(text="x"))


class TestToolRegistry:
    @pytest.fixture(autouse=True)
    def restore_registry(self):
        saved = dict(ToolRegistry._tools)
        yield
        ToolRegistry._tools.clear()
        ToolRegistry._tools.update(saved)

    def test_builtin_tools_registered(self):
        for name in STAGE_ORDER:
            assert ToolRegistry.exists(name)

    def test_register_and_create(self):
        ToolRegistry.register("echo")(EchoTool)
        tool = ToolRegistry.create("echo", error=None)
        assert isinstance(tool, EchoTool)
        assert "echo" in ToolRegistry.list_tools()

    def test_unknown_tool(self):
        with pytest.raises(KeyError):
            ToolRegistry.create("missing")

    def test_clear(self):
        ToolRegistry.clear()
        assert ToolRegistry.list_tools() == []
