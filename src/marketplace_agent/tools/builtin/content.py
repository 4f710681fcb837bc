"""Content tools: market analysis, copy refinement, audience and caption."""

import json

from pydantic import BaseModel

from marketplace_agent.config import prompts
from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import ToolError
from marketplace_agent.tools.builtin.llm_tool import LLMTool
from marketplace_agent.tools.models import (
    AudienceInput,
    AudienceResult,
    CaptionInput,
    CaptionResult,
    MarketAnalysisInput,
    MarketAnalysisResult,
    PriceRange,
    RefineContentInput,
    RefineContentResult,
)
from marketplace_agent.tools.registry import ToolRegistry
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)

NOT_AVAILABLE = "(not available)"


class _PriceReply(BaseModel):
    recommended_price: float
    min_price: float | None = None
    max_price: float | None = None
    rationale: str = ""


@ToolRegistry.register("market_analysis")
class MarketAnalysisTool(LLMTool):
    """
    Recommend a price from the product description and competitor research.

    Either research input may be missing (its stage failed); the analysis
    runs with whatever is available.
    """

    name = "market_analysis"
    description = "Recommends a price from competitor research."
    input_model = MarketAnalysisInput
    temperature = 0.0

    async def invoke(
        self,
        input: MarketAnalysisInput,
        cancellation: CancellationToken,
    ) -> MarketAnalysisResult:
        matches = input.reverse_image_search.matches if input.reverse_image_search else None
        offers = input.web_scraper.offers if input.web_scraper else None

        if matches is None or offers is None:
            logger.info(
                "Market analysis with partial research",
                has_matches=matches is not None,
                has_offers=offers is not None,
            )

        prompt = prompts.MARKET_ANALYSIS_PROMPT.format(
            product_name=input.vision.product_name,
            description=input.vision.description,
            features=", ".join(input.vision.key_features) or "-",
            currency=input.currency,
            matches=self._format_matches(matches),
            offers=self._format_offers(offers),
        )
        if input.hints:
            prompt = f"{prompt}\n\nSeller hints: {input.hints}"

        reply = await self.ask_json(
            prompts.MARKET_ANALYSIS_SYSTEM_PROMPT, prompt, _PriceReply, cancellation
        )

        price_range = None
        if reply.min_price is not None and reply.max_price is not None:
            price_range = PriceRange(min=reply.min_price, max=reply.max_price)

        sources = [m.url for m in matches or []] + [o.url for o in offers or []]
        return MarketAnalysisResult(
            recommended_price=reply.recommended_price,
            price_range=price_range,
            rationale=reply.rationale,
            sources=sources,
            currency=input.currency,
        )

    @staticmethod
    def _format_matches(matches) -> str:
        if matches is None:
            return NOT_AVAILABLE
        if not matches:
            return "(no matches)"
        lines = []
        for match in matches:
            price = f" - {match.price} {match.currency or ''}".rstrip() if match.price is not None else ""
            lines.append(f"- {match.title or match.url}{price} ({match.url})")
        return "\n".join(lines)

    @staticmethod
    def _format_offers(offers) -> str:
        if offers is None:
            return NOT_AVAILABLE
        if not offers:
            return "(no offers)"
        return "\n".join(f"- {o.title}: {o.price} {o.currency} ({o.url})" for o in offers)


@ToolRegistry.register("refine_content")
class RefineContentTool(LLMTool):
    name = "refine_content"
    description = "Produces the final title, description and keywords."
    input_model = RefineContentInput

    async def invoke(
        self,
        input: RefineContentInput,
        cancellation: CancellationToken,
    ) -> RefineContentResult:
        prompt = prompts.REFINE_CONTENT_PROMPT.format(
            language=input.language,
            title=input.vision.product_name,
            description=input.vision.description,
            features=", ".join(input.vision.key_features) or "-",
            analysis=json.dumps(
                {
                    "recommended_price": input.market.recommended_price,
                    "currency": input.market.currency,
                    "rationale": input.market.rationale,
                },
                ensure_ascii=False,
            ),
        )
        return await self.ask_json(
            prompts.REFINE_CONTENT_SYSTEM_PROMPT, prompt, RefineContentResult, cancellation
        )


@ToolRegistry.register("audience_definition")
class AudienceDefinitionTool(LLMTool):
    name = "audience_definition"
    description = "Defines the target customer segment."
    input_model = AudienceInput

    async def invoke(self, input: AudienceInput, cancellation: CancellationToken) -> AudienceResult:
        prompt = prompts.AUDIENCE_PROMPT.format(
            title=input.content.title,
            description=input.content.description,
            price=input.price,
            currency=input.currency,
        )
        return await self.ask_json(
            prompts.AUDIENCE_SYSTEM_PROMPT, prompt, AudienceResult, cancellation
        )


@ToolRegistry.register("caption")
class CaptionTool(LLMTool):
    name = "caption"
    description = "Writes a social caption with hashtags."
    input_model = CaptionInput
    temperature = 0.7

    async def invoke(self, input: CaptionInput, cancellation: CancellationToken) -> CaptionResult:
        prompt = prompts.CAPTION_PROMPT.format(
            language=input.language,
            title=input.content.title,
            description=input.content.description,
            audience=input.audience.segment,
        )
        reply = (await self.ask(prompts.CAPTION_SYSTEM_PROMPT, prompt, cancellation)).strip()
        if not reply:
            raise ToolError.rejected("Model returned an empty caption", tool_name=self.name)
        return CaptionResult(caption=reply)
