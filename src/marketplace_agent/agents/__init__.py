"""Agents built on the pipeline orchestrator and the chat gateway."""

from marketplace_agent.agents.chat import ChatAgent
from marketplace_agent.agents.listing import (
    ListingAgent,
    ListingRequest,
    ListingSummary,
    ListingTools,
    STAGE_ORDER,
)
from marketplace_agent.agents.product_description import Product, ProductDescriptionAgent

__all__ = [
    "ChatAgent",
    "ListingAgent",
    "ListingRequest",
    "ListingSummary",
    "ListingTools",
    "Product",
    "ProductDescriptionAgent",
    "STAGE_ORDER",
]
