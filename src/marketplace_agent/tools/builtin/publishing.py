"""Listing validation and publishing tools."""

from marketplace_agent.clients.marketplace import MarketplaceClient, MarketplaceRejection
from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import ToolError
from marketplace_agent.tools.base import Tool
from marketplace_agent.tools.models import (
    ListingDraft,
    PublishInput,
    PublishResult,
    ValidationReport,
)
from marketplace_agent.tools.registry import ToolRegistry
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)


def validate_draft(draft: ListingDraft) -> list[str]:
    """Return the list of problems preventing publication (empty if none)."""
    problems = []
    if not draft.title.strip():
        problems.append("Title is required")
    if not draft.description.strip():
        problems.append("Description is required")
    if not draft.image_urls:
        problems.append("At least one image is required")
    if draft.price <= 0:
        problems.append("Price must be greater than zero")
    if not [keyword for keyword in draft.keywords if keyword.strip()]:
        problems.append("At least one keyword is required")
    return problems


@ToolRegistry.register("validation")
class ValidationTool(Tool[ListingDraft, ValidationReport]):
    """Check a listing draft before publishing; no collaborators."""

    name = "validation"
    description = "Checks that a listing draft is complete."
    input_model = ListingDraft

    async def invoke(self, input: ListingDraft, cancellation: CancellationToken) -> ValidationReport:
        problems = validate_draft(input)
        if problems:
            logger.warning("Listing draft invalid", problems=problems)
            raise ToolError.invalid_input(
                "Listing draft failed validation: " + "; ".join(problems),
                tool_name=self.name,
                detail={"problems": problems},
            )
        return ValidationReport(valid=True, draft=input)


@ToolRegistry.register("publishing")
class PublishingTool(Tool[PublishInput, PublishResult]):
    """Create the listing on the marketplace."""

    name = "publishing"
    description = "Publishes a product to the marketplace."
    input_model = PublishInput

    def __init__(self, client: MarketplaceClient, credential: str):
        self.client = client
        self.credential = credential

    async def invoke(self, input: PublishInput, cancellation: CancellationToken) -> PublishResult:
        payload = input.draft.to_payload()
        try:
            listing_id = await cancellation.guard(
                self.client.create_listing(payload, self.credential)
            )
        except MarketplaceRejection as e:
            raise ToolError.rejected(
                f"Marketplace rejected listing: {e.reason}",
                cause=e,
                tool_name=self.name,
                detail={"reason": e.reason, "code": e.code, "status_code": e.status_code},
            ) from e

        return PublishResult(listing_id=listing_id, response={"sku": input.draft.sku})
