"""Centralized resilience patterns using hyx and tenacity.

Circuit breakers (hyx) protect each external collaborator family so a dead
upstream fails fast instead of burning every retry attempt. Retries are NOT
applied here: the retry policy lives only in the pipeline orchestrator, which
evaluates ``RetryPolicy`` with tenacity.

Usage:
    from marketplace_agent.core.resilience import (
        marketplace_circuit_breaker,
        wrap_httpx_errors,
        guard_breaker,
    )

    @guard_breaker("marketplace")
    @marketplace_circuit_breaker
    @wrap_httpx_errors
    async def create_listing(...):
        ...
"""

from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, TypeVar

import httpx
from hyx.circuitbreaker.api import consecutive_breaker
from hyx.circuitbreaker.exceptions import BreakerFailing
from hyx.circuitbreaker.states import WorkingState
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from marketplace_agent.core.exceptions import (
    GatewayError,
    ToolError,
    ToolErrorKind,
    ToolTimeoutError,
    UpstreamUnavailableError,
)

# Alias for clarity
BreakerOpen = BreakerFailing

__all__ = [
    "BreakerOpen",
    "TransientGatewayError",
    "ResilienceConfig",
    "RetryPolicy",
    "llm_circuit_breaker",
    "marketplace_circuit_breaker",
    "reverse_search_circuit_breaker",
    "scrape_circuit_breaker",
    "reset_circuit_breakers",
    "imaging_circuit_breaker",
    "guard_breaker",
    "classify_http_status",
    "wrap_httpx_errors",
    "wrap_anthropic_errors",
    "wrap_aws_errors",
]


class TransientGatewayError(Exception):
    """Recoverable chat completion backend failure (rate limit, overload, network)."""


# =============================================================================
# CONFIGURATION
# =============================================================================


class ResilienceConfig:
    """Centralized configuration for resilience patterns."""

    # LLM gateway
    LLM_CIRCUIT_FAILURE_THRESHOLD: int = 5
    LLM_CIRCUIT_RECOVERY_TIME: float = 60.0  # seconds
    LLM_CIRCUIT_RECOVERY_THRESHOLD: int = 1

    # Marketplace API
    MARKETPLACE_CIRCUIT_FAILURE_THRESHOLD: int = 5
    MARKETPLACE_CIRCUIT_RECOVERY_TIME: float = 30.0
    MARKETPLACE_CIRCUIT_RECOVERY_THRESHOLD: int = 1

    # Reverse image search
    REVERSE_SEARCH_CIRCUIT_FAILURE_THRESHOLD: int = 5
    REVERSE_SEARCH_CIRCUIT_RECOVERY_TIME: float = 30.0
    REVERSE_SEARCH_CIRCUIT_RECOVERY_THRESHOLD: int = 2

    # Competitor scraping
    SCRAPE_CIRCUIT_FAILURE_THRESHOLD: int = 5
    SCRAPE_CIRCUIT_RECOVERY_TIME: float = 30.0
    SCRAPE_CIRCUIT_RECOVERY_THRESHOLD: int = 2

    # Image correction service
    IMAGING_CIRCUIT_FAILURE_THRESHOLD: int = 5
    IMAGING_CIRCUIT_RECOVERY_TIME: float = 30.0
    IMAGING_CIRCUIT_RECOVERY_THRESHOLD: int = 1


_TRANSIENT = (UpstreamUnavailableError, ToolTimeoutError)


# =============================================================================
# CIRCUIT BREAKERS
# =============================================================================


llm_circuit_breaker = consecutive_breaker(
    exceptions=(TransientGatewayError,),
    failure_threshold=ResilienceConfig.LLM_CIRCUIT_FAILURE_THRESHOLD,
    recovery_time_secs=ResilienceConfig.LLM_CIRCUIT_RECOVERY_TIME,
    recovery_threshold=ResilienceConfig.LLM_CIRCUIT_RECOVERY_THRESHOLD,
)

marketplace_circuit_breaker = consecutive_breaker(
    exceptions=_TRANSIENT,
    failure_threshold=ResilienceConfig.MARKETPLACE_CIRCUIT_FAILURE_THRESHOLD,
    recovery_time_secs=ResilienceConfig.MARKETPLACE_CIRCUIT_RECOVERY_TIME,
    recovery_threshold=ResilienceConfig.MARKETPLACE_CIRCUIT_RECOVERY_THRESHOLD,
)

reverse_search_circuit_breaker = consecutive_breaker(
    exceptions=_TRANSIENT,
    failure_threshold=ResilienceConfig.REVERSE_SEARCH_CIRCUIT_FAILURE_THRESHOLD,
    recovery_time_secs=ResilienceConfig.REVERSE_SEARCH_CIRCUIT_RECOVERY_TIME,
    recovery_threshold=ResilienceConfig.REVERSE_SEARCH_CIRCUIT_RECOVERY_THRESHOLD,
)

scrape_circuit_breaker = consecutive_breaker(
    exceptions=_TRANSIENT,
    failure_threshold=ResilienceConfig.SCRAPE_CIRCUIT_FAILURE_THRESHOLD,
    recovery_time_secs=ResilienceConfig.SCRAPE_CIRCUIT_RECOVERY_TIME,
    recovery_threshold=ResilienceConfig.SCRAPE_CIRCUIT_RECOVERY_THRESHOLD,
)

imaging_circuit_breaker = consecutive_breaker(
    exceptions=_TRANSIENT,
    failure_threshold=ResilienceConfig.IMAGING_CIRCUIT_FAILURE_THRESHOLD,
    recovery_time_secs=ResilienceConfig.IMAGING_CIRCUIT_RECOVERY_TIME,
    recovery_threshold=ResilienceConfig.IMAGING_CIRCUIT_RECOVERY_THRESHOLD,
)

CIRCUIT_BREAKERS = (
    llm_circuit_breaker,
    marketplace_circuit_breaker,
    reverse_search_circuit_breaker,
    scrape_circuit_breaker,
    imaging_circuit_breaker,
)


def reset_circuit_breakers() -> None:
    """Close every breaker (useful for testing)."""
    for breaker in CIRCUIT_BREAKERS:
        manager = breaker._manager
        manager._state = WorkingState(manager._config)


# Type variable for generic functions
F = TypeVar("F", bound=Callable[..., Any])


def guard_breaker(upstream: str) -> Callable[[F], F]:
    """Report an open circuit as a retryable UPSTREAM_UNAVAILABLE tool error."""

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except BreakerOpen as e:
                raise ToolError.unavailable(
                    f"Circuit open for {upstream}", cause=e
                ) from e

        return wrapper  # type: ignore

    return decorator


# =============================================================================
# ERROR CLASSIFICATION
# =============================================================================


def classify_http_status(status_code: int) -> ToolErrorKind:
    """
    Classify an HTTP status code into a tool error kind.

    Args:
        status_code: HTTP status code of a failed response

    Returns:
        TIMEOUT for 408, UPSTREAM_UNAVAILABLE for 429 and 5xx, INVALID_INPUT
        for 400/422, UPSTREAM_REJECTED for 409 and any other 4xx, UNKNOWN
        otherwise
    """
    if status_code == 408:
        return ToolErrorKind.TIMEOUT
    if status_code == 429 or status_code >= 500:
        return ToolErrorKind.UPSTREAM_UNAVAILABLE
    if status_code in (400, 422):
        return ToolErrorKind.INVALID_INPUT
    if status_code >= 400:
        return ToolErrorKind.UPSTREAM_REJECTED
    return ToolErrorKind.UNKNOWN


def http_status_error(status_code: int, message: str, **kwargs: Any) -> ToolError:
    """Build the ToolError matching an HTTP status."""
    kind = classify_http_status(status_code)
    if kind is ToolErrorKind.TIMEOUT:
        return ToolError.timeout(message, **kwargs)
    if kind is ToolErrorKind.UPSTREAM_UNAVAILABLE:
        return ToolError.unavailable(message, **kwargs)
    return ToolError(kind, message, **kwargs)


def wrap_httpx_errors(func: F) -> F:
    """
    Decorator to convert httpx exceptions to ToolErrors.

    Applied below the circuit breaker so the breaker only counts transient
    kinds.
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except httpx.TimeoutException as e:
            raise ToolError.timeout(f"Request timeout: {e}", cause=e) from e
        except httpx.HTTPStatusError as e:
            raise http_status_error(
                e.response.status_code,
                f"HTTP {e.response.status_code} from {e.request.url}",
                cause=e,
                detail={"status_code": e.response.status_code},
            ) from e
        except httpx.TransportError as e:
            raise ToolError.unavailable(f"Connection error: {e}", cause=e) from e

    return wrapper  # type: ignore


def wrap_anthropic_errors(func: F) -> F:
    """
    Decorator to convert Anthropic API exceptions.

    Rate limits, connection failures, 5xx and overload (529) become
    TransientGatewayError; authentication and bad requests become a
    non-recoverable GatewayError.
    """
    import anthropic

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except anthropic.RateLimitError as e:
            raise TransientGatewayError(f"Anthropic rate limit: {e}") from e
        except anthropic.APIConnectionError as e:
            raise TransientGatewayError(f"Anthropic connection error: {e}") from e
        except anthropic.InternalServerError as e:
            raise TransientGatewayError(f"Anthropic server error: {e}") from e
        except anthropic.APIStatusError as e:
            if e.status_code == 529:  # Overloaded
                raise TransientGatewayError(f"Anthropic overloaded: {e}") from e
            raise GatewayError(
                f"Anthropic rejected request (HTTP {e.status_code}): {e}",
                provider="anthropic",
            ) from e

    return wrapper  # type: ignore


def wrap_aws_errors(func: F) -> F:
    """
    Decorator to convert AWS/Bedrock exceptions.
    """
    from botocore.exceptions import ClientError, EndpointConnectionError

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except EndpointConnectionError as e:
            raise TransientGatewayError(f"AWS connection error: {e}") from e
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in (
                "ThrottlingException",
                "TooManyRequestsException",
                "ServiceUnavailableException",
                "InternalServerException",
                "ModelNotReadyException",
            ):
                raise TransientGatewayError(f"AWS service error: {e}") from e
            raise GatewayError(f"Bedrock rejected request: {e}", provider="bedrock") from e

    return wrapper  # type: ignore


# =============================================================================
# RETRY POLICY
# =============================================================================


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ToolError) and exc.retryable


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy for pipeline stages.

    ``max_retries`` counts additional attempts after the first; a stage is
    attempted at most ``1 + max_retries`` times. Only retryable ToolErrors
    (UPSTREAM_UNAVAILABLE, TIMEOUT) are retried.
    """

    max_retries: int = 2
    backoff_base: float = 0.5
    backoff_max: float = 8.0

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        return cls(
            max_retries=settings.stage_max_retries,
            backoff_base=settings.stage_backoff_base_seconds,
            backoff_max=settings.stage_backoff_max_seconds,
        )

    def with_max_retries(self, max_retries: int | None) -> "RetryPolicy":
        if max_retries is None:
            return self
        return RetryPolicy(max_retries, self.backoff_base, self.backoff_max)

    def retrying(self, sleep: Callable[[float], Any]) -> AsyncRetrying:
        """
        Build a tenacity controller for one stage.

        Args:
            sleep: Awaitable sleep used for backoff (the cancellation token's)
        """
        return AsyncRetrying(
            stop=stop_after_attempt(1 + max(self.max_retries, 0)),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            retry=retry_if_exception(_is_retryable),
            sleep=sleep,
            reraise=True,
        )
