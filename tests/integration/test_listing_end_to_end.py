"""End-to-end listing runs against stub collaborators."""

import json

import pytest

from marketplace_agent.agents.listing import (
    MARKET_ANALYSIS,
    PUBLISHING,
    REVERSE_IMAGE_SEARCH,
    STAGE_ORDER,
    VALIDATION,
    WEB_SCRAPER,
    ListingAgent,
)
from marketplace_agent.clients.marketplace import MarketplaceRejection
from marketplace_agent.config import prompts
from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import ToolError, ToolErrorKind
from marketplace_agent.core.pipeline import PipelineStatus, StageStatus
from marketplace_agent.tools.models import CompetitorOffer

from tests.stubs import (
    StubMarketplace,
    StubReverseSearch,
    StubScraper,
    build_listing_tools,
)


OFFERS = [
    CompetitorOffer(title="City backpack", price=2300, currency="UAH", url="https://shop.test/1"),
    CompetitorOffer(title="Leather bag", price=2700, currency="UAH", url="https://shop.test/2"),
]


class TestListingHappyPath:
    @pytest.mark.asyncio
    async def test_publishes_listing(self, listing_gateway, storage, listing_request, fast_retry, memory, emitter):
        marketplace = StubMarketplace(listing_id="12345")
        tools = build_listing_tools(
            listing_gateway,
            storage,
            reverse_search=StubReverseSearch(matches=[]),
            scraper=StubScraper(offers=OFFERS),
            marketplace=marketplace,
        )
        completed = []
        emitter.subscribe("pipeline.completed", completed.append)
        agent = ListingAgent(tools, retry_policy=fast_retry, emitter=emitter, memory=memory)

        result = await agent.run_pipeline(listing_request)

        assert result.status is PipelineStatus.SUCCEEDED
        assert not result.partial
        assert result.output(PUBLISHING).listing_id == "12345"
        assert [outcome.stage_name for outcome in result.stages] == STAGE_ORDER
        assert all(outcome.status is StageStatus.SUCCEEDED for outcome in result.stages)
        assert result.output(REVERSE_IMAGE_SEARCH).matches == []

        payload = marketplace.payloads[0]
        assert payload["name"] == "Brown Leather Backpack"
        assert payload["price"] == 2499
        assert payload["sku"] == "BP-001"
        assert payload["images"][0]["url"].startswith("memory://storage/listings/processed/run-1/")
        assert "processed/run-1/image-1.png" in storage.keys("listings")

        summary = agent.summarize(result)
        assert summary.listing_id == "12345"
        assert summary.title == "Brown Leather Backpack"
        assert len(summary.timings) == len(STAGE_ORDER)

        assert completed[0].data["status"] == "succeeded"
        record = json.loads(await memory.get("listing-runs-seller-1"))
        assert record == {
            "kind": "listing.run",
            "run_id": "run-1",
            "status": "succeeded",
            "listing_id": "12345",
            "failed_stage": None,
            "partial": False,
        }

    @pytest.mark.asyncio
    async def test_market_analysis_sees_both_research_results(self, listing_gateway, storage, listing_request, fast_retry):
        tools = build_listing_tools(listing_gateway, storage, scraper=StubScraper(offers=OFFERS))
        result = await ListingAgent(tools, retry_policy=fast_retry).run_pipeline(listing_request)

        assert result.output(MARKET_ANALYSIS).sources == ["https://shop.test/1", "https://shop.test/2"]
        prompt = listing_gateway.calls_for(prompts.MARKET_ANALYSIS_SYSTEM_PROMPT)[0][-1].text_content
        assert "City backpack" in prompt
        assert "(no matches)" in prompt


class TestListingDegraded:
    @pytest.mark.asyncio
    async def test_scraper_exhausts_retries(self, listing_gateway, storage, listing_request, fast_retry):
        scraper = StubScraper(error=ToolError.unavailable("scraper down"))
        tools = build_listing_tools(
            listing_gateway,
            storage,
            reverse_search=StubReverseSearch(matches=[]),
            scraper=scraper,
        )

        result = await ListingAgent(tools, retry_policy=fast_retry).run_pipeline(listing_request)

        assert result.status is PipelineStatus.SUCCEEDED
        assert result.partial
        assert result.degraded_stages == [WEB_SCRAPER]
        scraper_outcome = result.stage(WEB_SCRAPER)
        assert scraper_outcome.status is StageStatus.FAILED
        assert scraper_outcome.attempts == 3
        assert len(scraper.calls) == 3
        assert scraper_outcome.error.kind is ToolErrorKind.UPSTREAM_UNAVAILABLE

        assert WEB_SCRAPER not in result.context
        assert result.output(REVERSE_IMAGE_SEARCH) is not None
        prompt = listing_gateway.calls_for(prompts.MARKET_ANALYSIS_SYSTEM_PROMPT)[0][-1].text_content
        assert "(not available)" in prompt
        assert result.output(PUBLISHING).listing_id == "12345"

    @pytest.mark.asyncio
    async def test_llm_outage_fails_vision(self, storage, listing_request, fast_retry):
        from tests.stubs import StubGateway

        gateway = StubGateway(default=None)
        tools = build_listing_tools(gateway, storage)
        result = await ListingAgent(tools, retry_policy=fast_retry).run_pipeline(listing_request)

        assert result.status is PipelineStatus.FAILED
        assert result.failed_stage == "vision_pipeline"
        assert result.stage("vision_pipeline").attempts == 3
        assert result.stage(PUBLISHING).status is StageStatus.SKIPPED


class TestListingRejected:
    @pytest.mark.asyncio
    async def test_duplicate_sku(self, listing_gateway, storage, listing_request, fast_retry, memory):
        marketplace = StubMarketplace(
            error=MarketplaceRejection("SKU already exists", code="duplicate_sku", status_code=409)
        )
        tools = build_listing_tools(listing_gateway, storage, marketplace=marketplace)
        agent = ListingAgent(tools, retry_policy=fast_retry, memory=memory)

        result = await agent.run_pipeline(listing_request)

        assert result.status is PipelineStatus.FAILED
        assert result.failed_stage == PUBLISHING
        assert result.error.kind is ToolErrorKind.UPSTREAM_REJECTED
        assert result.error.detail["reason"] == "SKU already exists"
        assert result.stage(PUBLISHING).attempts == 1
        assert len(marketplace.payloads) == 1
        assert set(result.context) == set(STAGE_ORDER) - {PUBLISHING}
        assert len(result.context) == 9

        summary = agent.summarize(result)
        assert summary.failed_stage == PUBLISHING
        assert summary.listing_id is None
        record = json.loads(await memory.get("listing-runs-seller-1"))
        assert record["status"] == "failed"

    @pytest.mark.asyncio
    async def test_invalid_draft_stops_before_publishing(self, storage, listing_request, fast_retry):
        from tests.stubs import StubGateway, listing_replies

        replies = listing_replies()
        replies[prompts.MARKET_ANALYSIS_SYSTEM_PROMPT] = json.dumps({"recommended_price": 0})
        marketplace = StubMarketplace()
        tools = build_listing_tools(StubGateway(replies), storage, marketplace=marketplace)

        result = await ListingAgent(tools, retry_policy=fast_retry).run_pipeline(listing_request)

        assert result.failed_stage == VALIDATION
        assert result.error.kind is ToolErrorKind.INVALID_INPUT
        assert result.stage(VALIDATION).attempts == 1
        assert marketplace.payloads == []


class TestListingCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_run(self, listing_gateway, storage, listing_request, fast_retry):
        token = CancellationToken()

        class CancellingScraper(StubScraper):
            async def scrape(self, query, max_results=5):
                token.cancel("seller aborted")
                return await super().scrape(query, max_results)

        tools = build_listing_tools(listing_gateway, storage, scraper=CancellingScraper())
        result = await ListingAgent(tools, retry_policy=fast_retry).run_pipeline(listing_request, token)

        assert result.status is PipelineStatus.CANCELLED
        assert result.cancel_reason == "seller aborted"
        assert result.stage(MARKET_ANALYSIS).attempts == 0
        assert result.stage(PUBLISHING).status is StageStatus.SKIPPED
