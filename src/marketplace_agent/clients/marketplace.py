"""Marketplace listing API client."""

import json
from abc import ABC, abstractmethod
from typing import Any

import httpx

from marketplace_agent.core.exceptions import MarketplaceAgentError, ToolError
from marketplace_agent.core.resilience import (
    classify_http_status,
    guard_breaker,
    http_status_error,
    marketplace_circuit_breaker,
    wrap_httpx_errors,
)
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)


class MarketplaceRejection(MarketplaceAgentError):
    """The marketplace refused the listing (duplicate SKU, policy, bad field)."""

    def __init__(self, reason: str, code: str | None = None, status_code: int | None = None):
        super().__init__(reason, recoverable=False)
        self.reason = reason
        self.code = code
        self.status_code = status_code


class MarketplaceClient(ABC):
    @abstractmethod
    async def create_listing(self, payload: dict[str, Any], credential: str) -> str:
        """
        Create a listing.

        Returns:
            Listing id assigned by the marketplace

        Raises:
            MarketplaceRejection: The marketplace refused the listing
            ToolError: Transient failure (UPSTREAM_UNAVAILABLE / TIMEOUT)
        """
        ...


def _rejection_reason(response: httpx.Response) -> tuple[str, str | None]:
    """Extract a readable reason from ``errors[].message`` or ``message``."""
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        return response.text or f"HTTP {response.status_code}", None

    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            messages = [
                str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
            ]
            first = errors[0]
            code = first.get("code") if isinstance(first, dict) else None
            return "; ".join(messages), code
        if body.get("message"):
            return str(body["message"]), body.get("code")
    return response.text or f"HTTP {response.status_code}", None


class HttpMarketplaceClient(MarketplaceClient):
    """Posts ``{"product": payload}`` with a bearer token."""

    def __init__(self, client: httpx.AsyncClient, url: str):
        self._client = client
        self._url = url

    @guard_breaker("marketplace")
    @marketplace_circuit_breaker
    @wrap_httpx_errors
    async def create_listing(self, payload: dict[str, Any], credential: str) -> str:
        if not credential:
            raise ToolError.invalid_input("Marketplace token not configured")

        logger.info("Publishing listing", url=self._url, sku=payload.get("sku"))
        response = await self._client.post(
            self._url,
            json={"product": payload},
            headers={"Authorization": f"Bearer {credential}"},
        )

        if response.is_error:
            reason, code = _rejection_reason(response)
            kind = classify_http_status(response.status_code)
            if kind.retryable:
                raise http_status_error(
                    response.status_code,
                    f"Marketplace unavailable (HTTP {response.status_code}): {reason}",
                )
            logger.warning(
                "Marketplace rejected listing",
                status_code=response.status_code,
                reason=reason,
                code=code,
            )
            raise MarketplaceRejection(reason, code=code, status_code=response.status_code)

        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ToolError.rejected(
                "Marketplace returned a non-JSON success response", cause=e
            ) from e

        listing_id = (body.get("id") or body.get("product_id")) if isinstance(body, dict) else None
        if listing_id is None:
            raise ToolError.rejected(
                "Marketplace response carries no listing id", detail={"response": body}
            )

        logger.info("Listing published", listing_id=str(listing_id))
        return str(listing_id)
