"""Reverse image search and competitor scraping clients."""

from abc import ABC, abstractmethod

import httpx
from pydantic import ValidationError

from marketplace_agent.core.exceptions import ToolError
from marketplace_agent.core.resilience import (
    guard_breaker,
    reverse_search_circuit_breaker,
    scrape_circuit_breaker,
    wrap_httpx_errors,
)
from marketplace_agent.tools.models import CompetitorOffer, ImageMatch
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)


class ReverseImageSearchBackend(ABC):
    @abstractmethod
    async def search(self, image_url: str) -> list[ImageMatch]:
        """Pages showing the same product (possibly none)."""
        ...


class ScrapeBackend(ABC):
    @abstractmethod
    async def scrape(self, query: str, max_results: int = 5) -> list[CompetitorOffer]:
        """Competitor offers for a product query."""
        ...


class HttpReverseImageSearchClient(ReverseImageSearchBackend):
    """Reverse image search service: ``GET url?image_url=...`` -> ``{"matches": [...]}``."""

    def __init__(self, client: httpx.AsyncClient, url: str):
        self._client = client
        self._url = url

    @guard_breaker("reverse-image-search")
    @reverse_search_circuit_breaker
    @wrap_httpx_errors
    async def search(self, image_url: str) -> list[ImageMatch]:
        response = await self._client.get(self._url, params={"image_url": image_url})
        response.raise_for_status()
        try:
            matches = [ImageMatch.model_validate(m) for m in response.json().get("matches", [])]
        except (ValueError, ValidationError, AttributeError) as e:
            raise ToolError.rejected(f"Malformed search response: {e}", cause=e) from e

        logger.debug("Reverse image search finished", matches=len(matches))
        return matches


class HttpScrapeClient(ScrapeBackend):
    """Scraper service: ``POST url {"query", "limit"}`` -> ``{"offers": [...]}``."""

    def __init__(self, client: httpx.AsyncClient, url: str):
        self._client = client
        self._url = url

    @guard_breaker("scraper")
    @scrape_circuit_breaker
    @wrap_httpx_errors
    async def scrape(self, query: str, max_results: int = 5) -> list[CompetitorOffer]:
        response = await self._client.post(self._url, json={"query": query, "limit": max_results})
        response.raise_for_status()
        try:
            offers = [CompetitorOffer.model_validate(o) for o in response.json().get("offers", [])]
        except (ValueError, ValidationError, AttributeError) as e:
            raise ToolError.rejected(f"Malformed scrape response: {e}", cause=e) from e

        logger.debug("Scrape finished", query=query, offers=len(offers))
        return offers[:max_results]
