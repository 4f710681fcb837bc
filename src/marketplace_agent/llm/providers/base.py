"""Base interface for chat completion gateways."""

import asyncio
from abc import ABC, abstractmethod
from typing import Sequence

from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.resilience import BreakerOpen, TransientGatewayError
from marketplace_agent.llm.messages import ChatMessage, CompletionOptions
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)


class ChatCompletionGateway(ABC):
    """
    Abstract base class for chat completion backends.

    All gateways (Anthropic, Bedrock, test stubs) implement this interface.
    ``complete`` returns the reply text, or None when the backend failed in
    a recoverable way (rate limit, overload, network, open circuit,
    timeout). Non-recoverable failures raise GatewayError. The gateway never
    retries; callers decide.
    """

    # Model aliases mapping - override in subclasses if different
    MODEL_ALIASES: dict[str, str] = {
        "haiku": "claude-3-5-haiku-20241022",
        "sonnet": "claude-3-5-sonnet-20241022",
        "opus": "claude-3-opus-20240229",
    }

    def __init__(self, default_model: str = "sonnet", timeout: float | None = None):
        self.default_model = default_model
        self.timeout = timeout

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'anthropic', 'bedrock')."""
        ...

    def resolve_model(self, model: str | None) -> str:
        """Resolve model alias to full model ID."""
        model = model or self.default_model
        return self.MODEL_ALIASES.get(model, model)

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        options: CompletionOptions | None = None,
        cancellation: CancellationToken | None = None,
    ) -> str | None:
        """
        Send an ordered message sequence and return the reply text.

        Args:
            messages: Non-empty message sequence, oldest first
            options: Generation hints
            cancellation: Optional cancellation token

        Returns:
            Reply text, or None on a recoverable backend failure

        Raises:
            GatewayError: Non-recoverable backend failure
            OperationCancelled: If the token fired
        """
        if not messages:
            raise ValueError("At least one message is required")
        options = options or CompletionOptions()
        token = cancellation or CancellationToken()

        call = self._send(list(messages), options)
        if self.timeout is not None:
            call = asyncio.wait_for(call, timeout=self.timeout)

        try:
            return await token.guard(call)
        except TransientGatewayError as e:
            logger.warning("Recoverable gateway failure", provider=self.provider_name, error=str(e))
            return None
        except BreakerOpen:
            logger.warning("Gateway circuit open", provider=self.provider_name)
            return None
        except asyncio.TimeoutError:
            logger.warning("Gateway call timed out", provider=self.provider_name, timeout=self.timeout)
            return None

    @abstractmethod
    async def _send(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions,
    ) -> str | None:
        """
        Provider-specific call.

        Raises:
            TransientGatewayError: Recoverable backend failure
            GatewayError: Non-recoverable backend failure
        """
        ...

    async def aclose(self) -> None:
        """Release provider resources."""
        return None
