"""Service composition with startup/shutdown lifecycle."""

from dataclasses import dataclass, field
from typing import Any

# Registers the builtin tools with ToolRegistry
import marketplace_agent.tools.builtin  # noqa: F401
from marketplace_agent.agents.chat import ChatAgent
from marketplace_agent.agents.listing import ListingAgent, ListingRequest, ListingTools
from marketplace_agent.agents.product_description import ProductDescriptionAgent
from marketplace_agent.clients.http import HttpClientPool
from marketplace_agent.clients.imaging import HttpImageCorrectionClient
from marketplace_agent.clients.marketplace import HttpMarketplaceClient
from marketplace_agent.clients.search import HttpReverseImageSearchClient, HttpScrapeClient
from marketplace_agent.clients.storage import ObjectStorage, S3ObjectStorage
from marketplace_agent.config.settings import Settings, get_settings
from marketplace_agent.core.resilience import RetryPolicy
from marketplace_agent.events.emitter import EventEmitter
from marketplace_agent.llm.providers import create_gateway
from marketplace_agent.llm.providers.base import ChatCompletionGateway
from marketplace_agent.memory.base import MemoryStore
from marketplace_agent.memory.in_memory import InMemoryMemoryStore
from marketplace_agent.memory.reconciliation import MemoryReconciler, ReconciliationScheduler
from marketplace_agent.tools.models import CorrectionOptions, ProductImage
from marketplace_agent.utils.logging import get_logger, setup_logging


logger = get_logger(__name__)


@dataclass
class AgentServices:
    """
    Everything a host process needs to run the agents.

    Handles:
    - Durable memory bootstrap and the reconciliation loop
    - Closing pooled HTTP clients, the gateway and memory stores
    """

    settings: Settings
    gateway: ChatCompletionGateway
    http: HttpClientPool
    storage: ObjectStorage
    memory: MemoryStore
    emitter: EventEmitter
    listing: ListingAgent
    descriptions: ProductDescriptionAgent
    chat: ChatAgent
    durable_memory: Any = None
    scheduler: ReconciliationScheduler | None = None
    _started: bool = field(default=False, repr=False)

    def listing_request(self, images: list[ProductImage], **overrides: Any) -> ListingRequest:
        """Build a listing request filled with the configured defaults."""
        values: dict[str, Any] = {
            "images": images,
            "language": self.settings.listing_language,
            "currency": self.settings.listing_currency,
            "correction": CorrectionOptions(
                width=self.settings.image_width,
                height=self.settings.image_height,
                watermark=self.settings.watermark_text or None,
            ),
        }
        values.update(overrides)
        return ListingRequest(**values)

    async def start(self) -> None:
        """Initialize durable memory and start reconciliation."""
        if self._started:
            return
        logger.info("Starting services...")
        if self.durable_memory is not None:
            await self.durable_memory.initialize()
        if self.scheduler is not None:
            self.scheduler.start()
        self._started = True
        logger.info("Services started")

    async def aclose(self) -> None:
        """Stop background work and release every pooled resource."""
        logger.info("Shutdown initiated...")
        if self.scheduler is not None:
            await self.scheduler.stop()
        await self.gateway.aclose()
        await self.http.aclose()
        await self.memory.aclose()
        if self.durable_memory is not None:
            await self.durable_memory.aclose()
        self._started = False
        logger.info("Shutdown complete")


def _build_memory(settings: Settings) -> MemoryStore:
    if settings.memory_backend == "redis":
        from marketplace_agent.memory.redis_store import RedisMemoryStore

        return RedisMemoryStore(
            url=settings.redis_url,
            default_ttl=settings.memory_ttl_seconds,
            window_size=settings.memory_window_size,
        )
    return InMemoryMemoryStore(
        default_ttl=settings.memory_ttl_seconds,
        window_size=settings.memory_window_size,
    )


def build_services(
    settings: Settings | None = None,
    gateway: ChatCompletionGateway | None = None,
    storage: ObjectStorage | None = None,
    http: HttpClientPool | None = None,
    memory: MemoryStore | None = None,
) -> AgentServices:
    """
    Wire gateway, collaborators, tools, memory and the three agents.

    Any of the collaborators can be passed in to replace the configured one.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    gateway = gateway or create_gateway(settings=settings)
    http = http or HttpClientPool(
        timeout=settings.http_timeout_seconds,
        max_connections=settings.http_max_connections,
    )
    storage = storage or S3ObjectStorage(
        region_name=settings.storage_region,
        profile_name=settings.bedrock_profile,
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
    )
    memory = memory or _build_memory(settings)
    emitter = EventEmitter()

    client = http.client()
    tools = ListingTools.from_registry(
        photo_correction={
            "storage": storage,
            "corrector": HttpImageCorrectionClient(client, settings.image_correction_url),
            "bucket": settings.storage_bucket,
            "presign_ttl": settings.presign_ttl_seconds,
        },
        vision_pipeline={"gateway": gateway, "model": settings.vision_model},
        reverse_image_search={
            "backend": HttpReverseImageSearchClient(client, settings.reverse_image_search_url)
        },
        web_scraper={"backend": HttpScrapeClient(client, settings.scraper_url)},
        market_analysis={"gateway": gateway},
        refine_content={"gateway": gateway},
        audience_definition={"gateway": gateway},
        caption={"gateway": gateway},
        publishing={
            "client": HttpMarketplaceClient(client, settings.marketplace_api_url),
            "credential": settings.marketplace_token,
        },
    )

    listing = ListingAgent(
        tools,
        retry_policy=RetryPolicy.from_settings(settings),
        stage_timeout=settings.stage_timeout_seconds,
        emitter=emitter,
        memory=memory,
    )
    descriptions = ProductDescriptionAgent(gateway, memory=memory)
    chat = ChatAgent(
        gateway,
        memory,
        user_id=settings.chat_user_id,
        window_size=settings.memory_window_size,
        emitter=emitter,
    )

    durable_memory = None
    scheduler = None
    if settings.memory_db_enabled:
        from marketplace_agent.memory.postgres_store import PostgresMemoryStore

        durable_memory = PostgresMemoryStore(
            dsn=settings.memory_database_url,
            pool_size=settings.memory_db_pool_size,
            default_ttl=settings.memory_ttl_seconds,
            window_size=settings.memory_window_size,
        )
        scheduler = ReconciliationScheduler(
            MemoryReconciler(memory, durable_memory),
            interval_seconds=settings.reconciliation_interval_seconds,
        )

    logger.info(
        "Services built",
        llm_provider=settings.llm_provider,
        memory_backend=settings.memory_backend,
        durable_memory=settings.memory_db_enabled,
    )
    return AgentServices(
        settings=settings,
        gateway=gateway,
        http=http,
        storage=storage,
        memory=memory,
        emitter=emitter,
        listing=listing,
        descriptions=descriptions,
        chat=chat,
        durable_memory=durable_memory,
        scheduler=scheduler,
    )
