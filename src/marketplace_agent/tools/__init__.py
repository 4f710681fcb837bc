"""Tool contract, registry and I/O models.

Concrete tools live in ``marketplace_agent.tools.builtin``; importing that
package registers them with ``ToolRegistry``.
"""

from marketplace_agent.tools.base import Tool
from marketplace_agent.tools.registry import ToolRegistry

__all__ = ["Tool", "ToolRegistry"]
