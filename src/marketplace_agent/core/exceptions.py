"""Domain exceptions for the marketplace agent."""

from enum import Enum
from typing import Any


class MarketplaceAgentError(Exception):
    """Base exception for all marketplace agent errors."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class ToolErrorKind(str, Enum):
    """Failure classification shared by every tool."""

    INVALID_INPUT = "invalid_input"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    TIMEOUT = "timeout"
    UPSTREAM_REJECTED = "upstream_rejected"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in (ToolErrorKind.UPSTREAM_UNAVAILABLE, ToolErrorKind.TIMEOUT)


class ToolError(MarketplaceAgentError):
    """
    Error raised by a tool invocation.

    The kind drives the orchestrator's retry decision; the message and cause
    are diagnostic only. ``detail`` carries structured upstream information
    (for example the marketplace rejection reason).
    """

    def __init__(
        self,
        kind: ToolErrorKind,
        message: str,
        cause: BaseException | None = None,
        tool_name: str | None = None,
        detail: dict[str, Any] | None = None,
    ):
        super().__init__(message, recoverable=kind.retryable)
        self.kind = kind
        self.message = message
        self.cause = cause
        self.tool_name = tool_name
        self.detail = detail or {}

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __repr__(self) -> str:
        return f"ToolError(kind={self.kind.value!r}, message={self.message!r}, tool={self.tool_name!r})"

    @classmethod
    def invalid_input(cls, message: str, **kwargs: Any) -> "ToolError":
        return cls(ToolErrorKind.INVALID_INPUT, message, **kwargs)

    @classmethod
    def unavailable(cls, message: str, **kwargs: Any) -> "ToolError":
        return UpstreamUnavailableError(ToolErrorKind.UPSTREAM_UNAVAILABLE, message, **kwargs)

    @classmethod
    def timeout(cls, message: str, **kwargs: Any) -> "ToolError":
        return ToolTimeoutError(ToolErrorKind.TIMEOUT, message, **kwargs)

    @classmethod
    def rejected(cls, message: str, **kwargs: Any) -> "ToolError":
        return cls(ToolErrorKind.UPSTREAM_REJECTED, message, **kwargs)

    @classmethod
    def unknown(cls, message: str, **kwargs: Any) -> "ToolError":
        return cls(ToolErrorKind.UNKNOWN, message, **kwargs)

    @classmethod
    def normalize(cls, exc: BaseException, tool_name: str | None = None) -> "ToolError":
        """
        Map any exception to a ToolError.

        Args:
            exc: Exception raised by a tool or one of its collaborators
            tool_name: Name of the tool, attached when not already set

        Returns:
            The exception itself if it already is a ToolError, otherwise a
            new ToolError classified by exception type
        """
        if isinstance(exc, ToolError):
            if exc.tool_name is None:
                exc.tool_name = tool_name
            return exc
        if isinstance(exc, TimeoutError):
            return cls.timeout(str(exc) or "Operation timed out", cause=exc, tool_name=tool_name)
        if isinstance(exc, ConnectionError):
            return cls.unavailable(str(exc) or "Connection failed", cause=exc, tool_name=tool_name)
        return cls.unknown(
            f"{type(exc).__name__}: {exc}", cause=exc, tool_name=tool_name
        )


class UpstreamUnavailableError(ToolError):
    """Transient upstream failure (connection, overload, open circuit)."""


class ToolTimeoutError(ToolError):
    """Tool call did not finish within its deadline."""


class GatewayError(MarketplaceAgentError):
    """Non-recoverable chat completion backend failure."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        recoverable: bool = False,
    ):
        super().__init__(message, recoverable)
        self.provider = provider


class OperationCancelled(MarketplaceAgentError):
    """Raised when a cancellation token is observed."""

    def __init__(self, reason: str | None = None):
        super().__init__(reason or "Operation cancelled", recoverable=False)
        self.reason = reason


class PipelineDefinitionError(MarketplaceAgentError):
    """Invalid stage graph."""

    def __init__(self, message: str, pipeline: str | None = None):
        super().__init__(message, recoverable=False)
        self.pipeline = pipeline


class PipelineStateError(MarketplaceAgentError):
    """Illegal pipeline state transition or context write."""

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message, recoverable=False)
        self.stage = stage


class MemoryStoreError(MarketplaceAgentError):
    """Memory backend unreachable or returned malformed data."""


class ChatTurnError(MarketplaceAgentError):
    """A chat turn could not be completed."""

    def __init__(
        self,
        message: str,
        conversation_id: str | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message, recoverable)
        self.conversation_id = conversation_id
