"""Base tool class.

A tool is a named, described, asynchronous unit of work that turns one typed
input into one typed output or fails with a classified ToolError. Tools never
retry; retry policy belongs to the pipeline orchestrator.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import OperationCancelled, ToolError
from marketplace_agent.utils.logging import get_logger

logger = get_logger(__name__)

InT = TypeVar("InT")
OutT = TypeVar("OutT")


class Tool(ABC, Generic[InT, OutT]):
    """
    Base class for all tools.

    Design Pattern: Strategy Pattern

    Subclasses set ``name``, ``description`` and ``input_model`` and
    implement ``invoke``. Callers go through ``run``, which validates the
    input and guarantees that every failure leaves as a ToolError (or as a
    cancellation).
    """

    # Metadata - must be set by subclasses
    name: str
    description: str = ""

    # Pydantic model used to validate/coerce input; None accepts anything
    input_model: type[BaseModel] | None = None

    @abstractmethod
    async def invoke(self, input: InT, cancellation: CancellationToken) -> OutT:
        """
        Perform the tool's work.

        Args:
            input: Validated input
            cancellation: Token to observe at I/O boundaries

        Returns:
            Tool output

        Raises:
            ToolError: Classified failure
        """
        ...

    async def run(
        self,
        input: Any,
        cancellation: CancellationToken | None = None,
    ) -> OutT:
        """
        Validate input and invoke the tool.

        Args:
            input: Raw or already-typed input
            cancellation: Optional cancellation token

        Returns:
            Tool output

        Raises:
            ToolError: On any tool failure (unclassified exceptions become UNKNOWN)
            OperationCancelled: If the token fired
        """
        token = cancellation or CancellationToken()
        token.raise_if_cancelled()

        payload = self._validate(input)
        try:
            return await self.invoke(payload, token)
        except (OperationCancelled, asyncio.CancelledError):
            raise
        except ToolError as e:
            raise ToolError.normalize(e, self.name)
        except Exception as e:
            logger.warning(
                "Unclassified tool failure",
                tool=self.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ToolError.normalize(e, self.name) from e

    def _validate(self, input: Any) -> Any:
        if self.input_model is None or isinstance(input, self.input_model):
            return input
        try:
            if isinstance(input, BaseModel):
                return self.input_model.model_validate(input.model_dump())
            return self.input_model.model_validate(input)
        except ValidationError as e:
            raise ToolError.invalid_input(
                f"Invalid input for {self.name}: {e.error_count()} validation error(s)",
                cause=e,
                tool_name=self.name,
                detail={"errors": e.errors(include_url=False)},
            ) from e

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
