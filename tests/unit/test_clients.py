"""Tests for HTTP collaborators using httpx.MockTransport."""

import json

import httpx
import pytest

from marketplace_agent.clients.http import HttpClientPool
from marketplace_agent.clients.imaging import HttpImageCorrectionClient
from marketplace_agent.clients.marketplace import HttpMarketplaceClient, MarketplaceRejection
from marketplace_agent.clients.search import HttpReverseImageSearchClient, HttpScrapeClient
from marketplace_agent.clients.storage import InMemoryObjectStorage
from marketplace_agent.core.exceptions import ToolError, ToolErrorKind
from marketplace_agent.tools.models import CorrectionOptions, ProductImage


MARKETPLACE_URL = "https://marketplace.test/api/v1/products/edit"


def pool_with(handler) -> HttpClientPool:
    return HttpClientPool(timeout=5, transport=httpx.MockTransport(handler))


class TestHttpMarketplaceClient:
    @pytest.mark.asyncio
    async def test_create_listing(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": 12345})

        pool = pool_with(handler)
        client = HttpMarketplaceClient(pool.client(), MARKETPLACE_URL)

        listing_id = await client.create_listing({"name": "Bag", "sku": "BP-001"}, "secret")

        assert listing_id == "12345"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {"product": {"name": "Bag", "sku": "BP-001"}}
        await pool.aclose()

    @pytest.mark.asyncio
    async def test_duplicate_sku_rejected(self):
        def handler(request):
            return httpx.Response(
                409,
                json={"errors": [{"code": "duplicate_sku", "message": "SKU already exists"}]},
            )

        pool = pool_with(handler)
        client = HttpMarketplaceClient(pool.client(), MARKETPLACE_URL)

        with pytest.raises(MarketplaceRejection) as exc_info:
            await client.create_listing({"sku": "BP-001"}, "secret")
        assert exc_info.value.reason == "SKU already exists"
        assert exc_info.value.code == "duplicate_sku"
        assert exc_info.value.status_code == 409
        await pool.aclose()

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        pool = pool_with(lambda request: httpx.Response(503, text="maintenance"))
        client = HttpMarketplaceClient(pool.client(), MARKETPLACE_URL)

        with pytest.raises(ToolError) as exc_info:
            await client.create_listing({"sku": "X"}, "secret")
        assert exc_info.value.kind is ToolErrorKind.UPSTREAM_UNAVAILABLE
        await pool.aclose()

    @pytest.mark.asyncio
    async def test_missing_id_rejected(self):
        pool = pool_with(lambda request: httpx.Response(200, json={"status": "ok"}))
        client = HttpMarketplaceClient(pool.client(), MARKETPLACE_URL)

        with pytest.raises(ToolError) as exc_info:
            await client.create_listing({"sku": "X"}, "secret")
        assert exc_info.value.kind is ToolErrorKind.UPSTREAM_REJECTED
        await pool.aclose()

    @pytest.mark.asyncio
    async def test_missing_credential(self):
        pool = pool_with(lambda request: httpx.Response(200, json={"id": 1}))
        client = HttpMarketplaceClient(pool.client(), MARKETPLACE_URL)

        with pytest.raises(ToolError) as exc_info:
            await client.create_listing({"sku": "X"}, "")
        assert exc_info.value.kind is ToolErrorKind.INVALID_INPUT
        await pool.aclose()


class TestSearchClients:
    @pytest.mark.asyncio
    async def test_reverse_image_search(self):
        def handler(request):
            assert request.url.params["image_url"] == "https://cdn/a.png"
            return httpx.Response(
                200,
                json={"matches": [{"url": "https://shop/1", "title": "Bag", "price": 2400}]},
            )

        pool = pool_with(handler)
        matches = await HttpReverseImageSearchClient(pool.client(), "https://ris.test/search").search(
            "https://cdn/a.png"
        )
        assert matches[0].price == 2400
        await pool.aclose()

    @pytest.mark.asyncio
    async def test_malformed_search_response(self):
        pool = pool_with(lambda request: httpx.Response(200, json={"matches": [{"title": "no url"}]}))
        with pytest.raises(ToolError) as exc_info:
            await HttpReverseImageSearchClient(pool.client(), "https://ris.test/search").search("u")
        assert exc_info.value.kind is ToolErrorKind.UPSTREAM_REJECTED
        await pool.aclose()

    @pytest.mark.asyncio
    async def test_scrape(self):
        def handler(request):
            assert json.loads(request.content) == {"query": "leather bag", "limit": 2}
            offers = [
                {"title": f"Bag {n}", "price": 1000 + n, "currency": "UAH", "url": f"https://s/{n}"}
                for n in range(4)
            ]
            return httpx.Response(200, json={"offers": offers})

        pool = pool_with(handler)
        offers = await HttpScrapeClient(pool.client(), "https://scraper.test").scrape("leather bag", 2)
        assert [offer.title for offer in offers] == ["Bag 0", "Bag 1"]
        await pool.aclose()

    @pytest.mark.asyncio
    async def test_scraper_bad_request_is_invalid_input(self):
        pool = pool_with(lambda request: httpx.Response(400, json={"error": "empty query"}))
        with pytest.raises(ToolError) as exc_info:
            await HttpScrapeClient(pool.client(), "https://scraper.test").scrape("x")
        assert exc_info.value.kind is ToolErrorKind.INVALID_INPUT
        assert exc_info.value.detail == {"status_code": 400}
        await pool.aclose()

    @pytest.mark.asyncio
    async def test_scraper_outage_leaves_search_working(self):
        def handler(request):
            if request.url.path == "/scrape":
                return httpx.Response(503)
            return httpx.Response(200, json={"matches": [{"url": "https://shop/1"}]})

        pool = pool_with(handler)
        scraper = HttpScrapeClient(pool.client(), "https://research.test/scrape")
        search = HttpReverseImageSearchClient(pool.client(), "https://research.test/search")

        kinds = []
        for _ in range(6):
            with pytest.raises(ToolError) as exc_info:
                await scraper.scrape("bag")
            kinds.append(exc_info.value.kind)
        assert set(kinds) == {ToolErrorKind.UPSTREAM_UNAVAILABLE}
        assert "Circuit open" in str(exc_info.value)

        matches = await search.search("https://cdn/a.png")
        assert [match.url for match in matches] == ["https://shop/1"]
        await pool.aclose()


class TestImageCorrectionClient:
    @pytest.mark.asyncio
    async def test_posts_multipart(self):
        seen = {}

        def handler(request):
            seen["body"] = request.content
            return httpx.Response(200, content=b"PNGDATA")

        pool = pool_with(handler)
        client = HttpImageCorrectionClient(pool.client(), "https://imaging.test/correct")
        corrected = await client.correct(
            ProductImage(data=b"raw", filename="front.png"),
            CorrectionOptions(watermark="shop", width=800),
        )

        assert corrected == b"PNGDATA"
        assert b'name="watermark"' in seen["body"]
        assert b"800" in seen["body"]
        await pool.aclose()


class TestHttpClientPool:
    @pytest.mark.asyncio
    async def test_reuses_clients_per_base_url(self):
        pool = HttpClientPool()
        first = pool.client("https://a.test")
        assert pool.client("https://a.test") is first
        assert pool.client("https://b.test") is not first

        await pool.aclose()
        assert first.is_closed
        assert pool.client("https://a.test") is not first
        await pool.aclose()


class TestInMemoryObjectStorage:
    @pytest.mark.asyncio
    async def test_roundtrip_and_presign(self):
        storage = InMemoryObjectStorage(base_url="https://files.test/")
        assert await storage.upload("b", "dir/a b.png", b"data", "image/png") == "dir/a b.png"
        assert await storage.download("b", "dir/a b.png") == b"data"
        assert await storage.download("b", "missing") is None
        assert await storage.presign("b", "dir/a b.png", 60) == "https://files.test/b/dir/a%20b.png?expires=60"
        assert storage.keys("b") == ["dir/a b.png"]
