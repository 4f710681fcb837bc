"""Utility modules."""

from marketplace_agent.utils.logging import bind_run_context, get_logger, setup_logging

__all__ = [
    "bind_run_context",
    "setup_logging",
    "get_logger",
]
