"""Pytest fixtures for testing."""

import pytest

from marketplace_agent.agents.listing import ListingRequest
from marketplace_agent.clients.storage import InMemoryObjectStorage
from marketplace_agent.config.settings import Settings
from marketplace_agent.core.resilience import RetryPolicy, reset_circuit_breakers
from marketplace_agent.events.emitter import EventEmitter
from marketplace_agent.memory.in_memory import InMemoryMemoryStore
from marketplace_agent.tools.models import ProductImage

from tests.stubs import FakeClock, StubGateway, listing_replies


@pytest.fixture(autouse=True)
def closed_breakers():
    """Start and leave every test with closed circuit breakers."""
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        anthropic_api_key="test-key",
        marketplace_token="test-token",
        log_level="DEBUG",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory(clock: FakeClock) -> InMemoryMemoryStore:
    """Create memory store on the fake clock."""
    return InMemoryMemoryStore(default_ttl=3600, window_size=5, clock=clock)


@pytest.fixture
def storage() -> InMemoryObjectStorage:
    return InMemoryObjectStorage()


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy with the default attempt count and no backoff."""
    return RetryPolicy(max_retries=2, backoff_base=0, backoff_max=0)


@pytest.fixture
def listing_gateway() -> StubGateway:
    return StubGateway(listing_replies())


@pytest.fixture
def listing_request() -> ListingRequest:
    return ListingRequest(
        images=[ProductImage(data=b"\x89PNG-front", filename="front.png")],
        sku="BP-001",
        conversation_id="seller-1",
        run_id="run-1",
    )
