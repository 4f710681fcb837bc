"""Vision pipeline tool."""

from marketplace_agent.config import prompts
from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.llm.messages import ImageRefPart
from marketplace_agent.tools.builtin.llm_tool import LLMTool
from marketplace_agent.tools.models import VisionInput, VisionResult
from marketplace_agent.tools.registry import ToolRegistry


@ToolRegistry.register("vision_pipeline")
class VisionPipelineTool(LLMTool):
    """Describe the product from its corrected photos in one multi-modal call."""

    name = "vision_pipeline"
    description = "Names and describes the product shown in the photos."
    input_model = VisionInput

    async def invoke(self, input: VisionInput, cancellation: CancellationToken) -> VisionResult:
        hints = f"Seller hints: {input.hints}" if input.hints else ""
        prompt = prompts.VISION_PROMPT.format(language=input.language, hints=hints)
        return await self.ask_json(
            prompts.VISION_SYSTEM_PROMPT,
            prompt,
            VisionResult,
            cancellation,
            images=[ImageRefPart(url) for url in input.image_urls],
        )
