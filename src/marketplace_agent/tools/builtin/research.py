"""Competitor research tools: reverse image search and web scraping."""

from marketplace_agent.clients.search import ReverseImageSearchBackend, ScrapeBackend
from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.tools.base import Tool
from marketplace_agent.tools.models import (
    ReverseImageSearchInput,
    ReverseImageSearchResult,
    WebScraperInput,
    WebScraperResult,
)
from marketplace_agent.tools.registry import ToolRegistry
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)


@ToolRegistry.register("reverse_image_search")
class ReverseImageSearchTool(Tool[ReverseImageSearchInput, ReverseImageSearchResult]):
    name = "reverse_image_search"
    description = "Finds web pages showing the same product photo."
    input_model = ReverseImageSearchInput

    def __init__(self, backend: ReverseImageSearchBackend):
        self.backend = backend

    async def invoke(
        self,
        input: ReverseImageSearchInput,
        cancellation: CancellationToken,
    ) -> ReverseImageSearchResult:
        matches = await cancellation.guard(self.backend.search(input.image_url))
        logger.info("Reverse image search matches", count=len(matches))
        return ReverseImageSearchResult(matches=matches)


@ToolRegistry.register("web_scraper")
class WebScraperTool(Tool[WebScraperInput, WebScraperResult]):
    """Collect competitor offers for the product name."""

    name = "web_scraper"
    description = "Scrapes competitor offers (title, price, currency, url)."
    input_model = WebScraperInput

    def __init__(self, backend: ScrapeBackend):
        self.backend = backend

    async def invoke(self, input: WebScraperInput, cancellation: CancellationToken) -> WebScraperResult:
        offers = await cancellation.guard(self.backend.scrape(input.query, input.max_results))
        logger.info("Competitor offers scraped", query=input.query, count=len(offers))
        return WebScraperResult(offers=offers[: input.max_results])
