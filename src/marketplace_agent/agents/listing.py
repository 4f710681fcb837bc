"""Listing agent: from raw product photos to a published marketplace listing.

Stage graph:

    photo_correction -> vision_pipeline -> {reverse_image_search, web_scraper}
        -> market_analysis -> refine_content -> audience_definition -> caption
        -> validation -> publishing

The two research stages run concurrently and are non-critical; market
analysis joins both and tolerates either being missing.
"""

import json
from dataclasses import dataclass
from uuid import uuid4

from pydantic import BaseModel, Field

from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import MemoryStoreError
from marketplace_agent.core.pipeline import ContextView, PipelineResult, Stage
from marketplace_agent.core.pipeline_executor import DEFAULT_STAGE_TIMEOUT, Pipeline
from marketplace_agent.core.resilience import RetryPolicy
from marketplace_agent.events.emitter import EventEmitter
from marketplace_agent.memory.base import MemoryStore
from marketplace_agent.tools.base import Tool
from marketplace_agent.tools.models import (
    AudienceInput,
    CaptionInput,
    CorrectionOptions,
    ListingDraft,
    MarketAnalysisInput,
    PhotoCorrectionInput,
    ProductImage,
    PublishInput,
    RefineContentInput,
    ReverseImageSearchInput,
    VisionInput,
    WebScraperInput,
)
from marketplace_agent.tools.registry import ToolRegistry
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)

PHOTO_CORRECTION = "photo_correction"
VISION = "vision_pipeline"
REVERSE_IMAGE_SEARCH = "reverse_image_search"
WEB_SCRAPER = "web_scraper"
MARKET_ANALYSIS = "market_analysis"
REFINE_CONTENT = "refine_content"
AUDIENCE = "audience_definition"
CAPTION = "caption"
VALIDATION = "validation"
PUBLISHING = "publishing"

STAGE_ORDER = [
    PHOTO_CORRECTION,
    VISION,
    REVERSE_IMAGE_SEARCH,
    WEB_SCRAPER,
    MARKET_ANALYSIS,
    REFINE_CONTENT,
    AUDIENCE,
    CAPTION,
    VALIDATION,
    PUBLISHING,
]

MAX_SCRAPED_OFFERS = 5


class ListingRequest(BaseModel):
    """One listing job."""

    images: list[ProductImage] = Field(..., min_length=1)
    sku: str | None = None
    language: str = "ukr"
    currency: str = "UAH"
    user_hints: str | None = None
    conversation_id: str | None = None
    run_id: str = Field(default_factory=lambda: uuid4().hex[:12])
    correction: CorrectionOptions = Field(default_factory=CorrectionOptions)


class StageTiming(BaseModel):
    stage: str
    status: str
    attempts: int
    duration_ms: float


class ListingSummary(BaseModel):
    """Caller-facing digest of a listing run."""

    run_id: str
    status: str
    listing_id: str | None = None
    title: str | None = None
    price: float | None = None
    currency: str | None = None
    partial: bool = False
    degraded_stages: list[str] = Field(default_factory=list)
    failed_stage: str | None = None
    error: str | None = None
    timings: list[StageTiming] = Field(default_factory=list)


@dataclass
class ListingTools:
    """Tool instances used by the listing pipeline."""

    photo_correction: Tool
    vision_pipeline: Tool
    reverse_image_search: Tool
    web_scraper: Tool
    market_analysis: Tool
    refine_content: Tool
    audience_definition: Tool
    caption: Tool
    validation: Tool
    publishing: Tool

    @classmethod
    def from_registry(cls, **dependencies: dict) -> "ListingTools":
        """
        Build every tool through ToolRegistry.

        Args:
            **dependencies: Constructor kwargs per tool name, e.g.
                ``vision_pipeline={"gateway": gateway}``
        """
        return cls(**{
            name: ToolRegistry.create(name, **dependencies.get(name, {}))
            for name in STAGE_ORDER
        })


# =============================================================================
# INPUT BUILDERS
# =============================================================================


def _photo_input(view: ContextView) -> PhotoCorrectionInput:
    request: ListingRequest = view.request
    return PhotoCorrectionInput(
        run_id=request.run_id, images=request.images, options=request.correction
    )


def _vision_input(view: ContextView) -> VisionInput:
    return VisionInput(
        image_urls=view[PHOTO_CORRECTION].urls,
        language=view.request.language,
        hints=view.request.user_hints,
    )


def _reverse_search_input(view: ContextView) -> ReverseImageSearchInput:
    return ReverseImageSearchInput(image_url=view[PHOTO_CORRECTION].urls[0])


def _scraper_input(view: ContextView) -> WebScraperInput:
    return WebScraperInput(query=view[VISION].product_name, max_results=MAX_SCRAPED_OFFERS)


def _market_input(view: ContextView) -> MarketAnalysisInput:
    return MarketAnalysisInput(
        vision=view[VISION],
        reverse_image_search=view.get(REVERSE_IMAGE_SEARCH),
        web_scraper=view.get(WEB_SCRAPER),
        currency=view.request.currency,
        hints=view.request.user_hints,
    )


def _refine_input(view: ContextView) -> RefineContentInput:
    return RefineContentInput(
        vision=view[VISION], market=view[MARKET_ANALYSIS], language=view.request.language
    )


def _audience_input(view: ContextView) -> AudienceInput:
    market = view[MARKET_ANALYSIS]
    return AudienceInput(
        content=view[REFINE_CONTENT], price=market.recommended_price, currency=market.currency
    )


def _caption_input(view: ContextView) -> CaptionInput:
    return CaptionInput(
        content=view[REFINE_CONTENT], audience=view[AUDIENCE], language=view.request.language
    )


def build_draft(view: ContextView) -> ListingDraft:
    """Combine refined content, price, images, audience and caption."""
    content = view[REFINE_CONTENT]
    market = view[MARKET_ANALYSIS]
    audience = view.get(AUDIENCE)
    caption = view.get(CAPTION)
    return ListingDraft(
        sku=view.request.sku,
        title=content.title,
        description=content.description,
        price=market.recommended_price,
        currency=view.request.currency,
        keywords=content.keywords,
        image_urls=view[PHOTO_CORRECTION].urls,
        audience=audience.segment if audience else None,
        caption=caption.caption if caption else None,
        category=view[VISION].category,
    )


def _publish_input(view: ContextView) -> PublishInput:
    return PublishInput(draft=view[VALIDATION].draft)


# =============================================================================
# AGENT
# =============================================================================


class ListingAgent:
    """
    Generates and publishes one marketplace listing per request.

    Design Pattern: Facade over the pipeline orchestrator
    """

    def __init__(
        self,
        tools: ListingTools,
        retry_policy: RetryPolicy | None = None,
        stage_timeout: float = DEFAULT_STAGE_TIMEOUT,
        emitter: EventEmitter | None = None,
        memory: MemoryStore | None = None,
    ):
        self.tools = tools
        self.memory = memory
        self.pipeline = Pipeline(
            "listing",
            self.build_stages(tools),
            retry_policy=retry_policy,
            default_timeout=stage_timeout,
            emitter=emitter,
        )

    @staticmethod
    def build_stages(tools: ListingTools) -> list[Stage]:
        return [
            Stage(PHOTO_CORRECTION, tools.photo_correction, build_input=_photo_input),
            Stage(VISION, tools.vision_pipeline, (PHOTO_CORRECTION,), build_input=_vision_input),
            Stage(
                REVERSE_IMAGE_SEARCH,
                tools.reverse_image_search,
                (PHOTO_CORRECTION, VISION),
                critical=False,
                build_input=_reverse_search_input,
            ),
            Stage(
                WEB_SCRAPER,
                tools.web_scraper,
                (VISION,),
                critical=False,
                build_input=_scraper_input,
            ),
            Stage(
                MARKET_ANALYSIS,
                tools.market_analysis,
                (VISION, REVERSE_IMAGE_SEARCH, WEB_SCRAPER),
                build_input=_market_input,
            ),
            Stage(REFINE_CONTENT, tools.refine_content, (MARKET_ANALYSIS,), build_input=_refine_input),
            Stage(AUDIENCE, tools.audience_definition, (REFINE_CONTENT,), build_input=_audience_input),
            Stage(CAPTION, tools.caption, (AUDIENCE,), build_input=_caption_input),
            Stage(
                VALIDATION,
                tools.validation,
                (PHOTO_CORRECTION, VISION, MARKET_ANALYSIS, REFINE_CONTENT, AUDIENCE, CAPTION),
                build_input=build_draft,
                max_retries=0,
            ),
            Stage(PUBLISHING, tools.publishing, (VALIDATION,), build_input=_publish_input),
        ]

    async def run_pipeline(
        self,
        request: ListingRequest,
        cancellation: CancellationToken | None = None,
    ) -> PipelineResult:
        """
        Run the listing pipeline for one request.

        Args:
            request: Listing request
            cancellation: Token threading the whole run

        Returns:
            PipelineResult; ``result.output("publishing").listing_id`` on success
        """
        result = await self.pipeline.run(request, cancellation, run_id=request.run_id)
        await self._record(request, result)
        return result

    async def _record(self, request: ListingRequest, result: PipelineResult) -> None:
        """Append a status-only run record to memory when a store is configured."""
        if self.memory is None:
            return
        summary = self.summarize(result)
        record = {
            "kind": "listing.run",
            "run_id": summary.run_id,
            "status": summary.status,
            "listing_id": summary.listing_id,
            "failed_stage": summary.failed_stage,
            "partial": summary.partial,
        }
        key = f"listing-runs-{request.conversation_id or 'default'}"
        try:
            await self.memory.store(key, json.dumps(record), role="system")
        except MemoryStoreError as e:
            logger.warning("Could not record listing run", run_id=request.run_id, error=str(e))

    @staticmethod
    def summarize(result: PipelineResult) -> ListingSummary:
        published = result.output(PUBLISHING)
        content = result.output(REFINE_CONTENT)
        market = result.output(MARKET_ANALYSIS)
        error = result.error
        return ListingSummary(
            run_id=result.run_id,
            status=result.status.value,
            listing_id=published.listing_id if published else None,
            title=content.title if content else None,
            price=market.recommended_price if market else None,
            currency=market.currency if market else None,
            partial=result.partial,
            degraded_stages=result.degraded_stages,
            failed_stage=result.failed_stage,
            error=error.message if error else None,
            timings=[
                StageTiming(
                    stage=outcome.stage_name,
                    status=outcome.status.value,
                    attempts=outcome.attempts,
                    duration_ms=round(outcome.duration_ms, 1),
                )
                for outcome in result.stages
            ],
        )
