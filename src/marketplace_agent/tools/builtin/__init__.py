"""Built-in listing tools.

Importing this package registers every tool with ToolRegistry.
"""

from marketplace_agent.tools.builtin.content import (
    AudienceDefinitionTool,
    CaptionTool,
    MarketAnalysisTool,
    RefineContentTool,
)
from marketplace_agent.tools.builtin.llm_tool import LLMTool
from marketplace_agent.tools.builtin.photo import PhotoCorrectionTool
from marketplace_agent.tools.builtin.publishing import (
    PublishingTool,
    ValidationTool,
    validate_draft,
)
from marketplace_agent.tools.builtin.research import ReverseImageSearchTool, WebScraperTool
from marketplace_agent.tools.builtin.vision import VisionPipelineTool

__all__ = [
    "AudienceDefinitionTool",
    "CaptionTool",
    "LLMTool",
    "MarketAnalysisTool",
    "PhotoCorrectionTool",
    "PublishingTool",
    "RefineContentTool",
    "ReverseImageSearchTool",
    "ValidationTool",
    "VisionPipelineTool",
    "WebScraperTool",
    "validate_draft",
]
