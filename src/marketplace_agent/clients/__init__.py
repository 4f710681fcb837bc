"""External collaborators behind narrow interfaces."""

from marketplace_agent.clients.http import HttpClientPool
from marketplace_agent.clients.imaging import HttpImageCorrectionClient, ImageCorrectionBackend
from marketplace_agent.clients.marketplace import (
    HttpMarketplaceClient,
    MarketplaceClient,
    MarketplaceRejection,
)
from marketplace_agent.clients.search import (
    HttpReverseImageSearchClient,
    HttpScrapeClient,
    ReverseImageSearchBackend,
    ScrapeBackend,
)
from marketplace_agent.clients.storage import (
    InMemoryObjectStorage,
    ObjectStorage,
    S3ObjectStorage,
)

__all__ = [
    "HttpClientPool",
    "HttpImageCorrectionClient",
    "HttpMarketplaceClient",
    "HttpReverseImageSearchClient",
    "HttpScrapeClient",
    "ImageCorrectionBackend",
    "InMemoryObjectStorage",
    "MarketplaceClient",
    "MarketplaceRejection",
    "ObjectStorage",
    "ReverseImageSearchBackend",
    "S3ObjectStorage",
    "ScrapeBackend",
]
