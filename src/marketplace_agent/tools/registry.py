"""Tool registry with factory method for wiring."""

from typing import Any, Type

from marketplace_agent.tools.base import Tool
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)


class ToolRegistry:
    """
    Registry with factory method for tool creation.

    Design Pattern: Factory + Registry Pattern

    Used only for wiring; the orchestrator receives tool instances.

    Usage:
        @ToolRegistry.register("vision_pipeline")
        class VisionPipelineTool(Tool):
            ...

        # Later
        tool = ToolRegistry.create("vision_pipeline", gateway=gateway)
    """

    _tools: dict[str, Type[Tool]] = {}

    @classmethod
    def register(cls, name: str):
        """
        Decorator to register tools.

        Args:
            name: Unique tool name

        Returns:
            Decorator function
        """

        def decorator(tool_class: Type[Tool]) -> Type[Tool]:
            if name in cls._tools:
                logger.warning("Overwriting tool", tool=name)
            cls._tools[name] = tool_class
            logger.debug("Registered tool", tool=name)
            return tool_class

        return decorator

    @classmethod
    def create(cls, name: str, **kwargs: Any) -> Tool:
        """
        Factory method to create tool instances.

        Args:
            name: Tool name
            **kwargs: Collaborators to pass to the tool constructor

        Returns:
            Tool instance

        Raises:
            KeyError: If tool not registered
        """
        return cls.get(name)(**kwargs)

    @classmethod
    def get(cls, name: str) -> Type[Tool]:
        """
        Get tool class by name.

        Raises:
            KeyError: If tool not registered
        """
        if name not in cls._tools:
            raise KeyError(f"Tool not found: {name}")
        return cls._tools[name]

    @classmethod
    def exists(cls, name: str) -> bool:
        """Check if tool is registered."""
        return name in cls._tools

    @classmethod
    def list_tools(cls) -> list[str]:
        """Get list of registered tool names."""
        return list(cls._tools.keys())

    @classmethod
    def clear(cls) -> None:
        """Clear all registered tools (useful for testing)."""
        cls._tools.clear()
