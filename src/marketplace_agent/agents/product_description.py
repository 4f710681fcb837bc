"""Product description agent.

Every operation is exactly one gateway round-trip and keeps no state of its
own. Refinement is driven by the caller: call ``refine_description`` as many
times as the user asks for changes, then generate hashtags and a call to
action from the final text in any order.
"""

from pydantic import BaseModel, Field

from marketplace_agent.config import prompts
from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import GatewayError, MemoryStoreError, ToolError
from marketplace_agent.llm.messages import ChatMessage, CompletionOptions
from marketplace_agent.llm.providers.base import ChatCompletionGateway
from marketplace_agent.memory.base import MemoryStore
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)

HISTORY_LIMIT = 3


class Product(BaseModel):
    id: str | int | None = None
    name: str
    price: float
    old_price: float | None = None
    description: str = ""
    properties: dict[str, str] = Field(default_factory=dict)
    keywords: list[str] = Field(default_factory=list)


def history_key(product: Product) -> str:
    """Memory key holding previous descriptions of a product."""
    return f"product_{product.id}_context"


class ProductDescriptionAgent:
    """
    Writes, refines and decorates product descriptions.

    Args:
        gateway: Chat completion gateway
        memory: Optional store for description history per product
        temperature: Sampling temperature for every call
    """

    def __init__(
        self,
        gateway: ChatCompletionGateway,
        memory: MemoryStore | None = None,
        temperature: float | None = 0.7,
        max_tokens: int | None = 1500,
    ):
        self.gateway = gateway
        self.memory = memory
        self.options = CompletionOptions(temperature=temperature, max_tokens=max_tokens)

    async def _complete(self, prompt: str, cancellation: CancellationToken | None) -> str:
        messages = [
            ChatMessage.system(prompts.DESCRIPTION_SYSTEM_PROMPT),
            ChatMessage.user(prompt),
        ]
        try:
            reply = await self.gateway.complete(messages, self.options, cancellation)
        except GatewayError as e:
            raise ToolError.rejected(str(e), cause=e, tool_name="product_description") from e
        if reply is None:
            raise ToolError.unavailable(
                "Chat completion backend unavailable", tool_name="product_description"
            )
        return reply.strip()

    async def _history(self, product: Product) -> str:
        if self.memory is None or product.id is None:
            return ""
        try:
            entries = await self.memory.window(history_key(product), limit=HISTORY_LIMIT)
        except MemoryStoreError as e:
            logger.warning("Description history unavailable", product_id=product.id, error=str(e))
            return ""
        if not entries:
            return ""
        lines = "\n".join(f"- {entry.content}" for entry in entries)
        return f"\nPrevious descriptions of this product for reference:\n{lines}\n"

    async def generate_description(
        self,
        product: Product,
        user_preferences: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> str:
        """
        Create a description from the product's attributes.

        Previous descriptions stored under ``product_{id}_context`` are
        included for reference, and the new one is appended there.
        """
        properties = ""
        if product.properties:
            properties = "Properties:\n" + "\n".join(
                f"- {name}: {value}" for name, value in product.properties.items()
            ) + "\n"

        prompt = prompts.GENERATE_DESCRIPTION_PROMPT.format(
            name=product.name,
            price=f"{product.price:,.0f}",
            old_price=f"Old price: {product.old_price:,.0f}\n" if product.old_price else "",
            description=product.description,
            properties=properties,
            preferences=f"Additional wishes: {user_preferences}\n" if user_preferences else "",
            history=await self._history(product),
        )
        description = await self._complete(prompt, cancellation)

        if self.memory is not None and product.id is not None:
            try:
                await self.memory.store(history_key(product), description, role="assistant")
            except MemoryStoreError as e:
                logger.warning("Could not save description history", product_id=product.id, error=str(e))

        logger.info("Description generated", product=product.name, length=len(description))
        return description

    async def refine_description(
        self,
        current_description: str,
        feedback: str,
        cancellation: CancellationToken | None = None,
    ) -> str:
        """Apply user feedback to a description; reads and writes no state."""
        prompt = prompts.REFINE_DESCRIPTION_PROMPT.format(
            description=current_description, feedback=feedback
        )
        return await self._complete(prompt, cancellation)

    async def generate_hashtags(
        self,
        description: str,
        cancellation: CancellationToken | None = None,
    ) -> str:
        return await self._complete(prompts.HASHTAGS_PROMPT.format(description=description), cancellation)

    async def generate_call_to_action(
        self,
        description: str,
        cancellation: CancellationToken | None = None,
    ) -> str:
        return await self._complete(
            prompts.CALL_TO_ACTION_PROMPT.format(description=description), cancellation
        )
