"""AWS Bedrock gateway for Claude models using the Converse API."""

from typing import Any

import aioboto3
import httpx

from marketplace_agent.core.resilience import (
    TransientGatewayError,
    llm_circuit_breaker,
    wrap_aws_errors,
)
from marketplace_agent.llm.messages import (
    ChatMessage,
    CompletionOptions,
    ImagePart,
    ImageRefPart,
    ResponseFormat,
    Role,
    TextPart,
)
from marketplace_agent.llm.providers.anthropic import DEFAULT_MAX_TOKENS, JSON_INSTRUCTION
from marketplace_agent.llm.providers.base import ChatCompletionGateway
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)

_IMAGE_FORMATS = {
    "image/png": "png",
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/gif": "gif",
    "image/webp": "webp",
}


class BedrockGateway(ChatCompletionGateway):
    """
    AWS Bedrock gateway for Claude models using the Converse API.

    The Converse API only accepts inline image bytes, so image references
    are downloaded through the shared httpx client before the call.

    Note: Requires AWS credentials configured via:
    - Environment variables (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY)
    - AWS credentials file (~/.aws/credentials)
    - IAM role (when running on AWS)
    """

    MODEL_ALIASES: dict[str, str] = {
        "haiku": "anthropic.claude-3-5-haiku-20241022-v1:0",
        "sonnet": "anthropic.claude-3-5-sonnet-20241022-v2:0",
        "opus": "anthropic.claude-3-opus-20240229-v1:0",
    }

    def __init__(
        self,
        region_name: str = "us-east-1",
        profile_name: str | None = None,
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
        default_model: str = "sonnet",
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize Bedrock gateway.

        Args:
            region_name: AWS region for Bedrock (default: us-east-1)
            profile_name: AWS profile name (optional)
            aws_access_key_id: AWS access key ID (optional, uses default chain if not provided)
            aws_secret_access_key: AWS secret access key (optional)
            default_model: Model name or alias used when options carry none
            timeout: Per-call timeout in seconds
            http_client: Client used to download referenced images
        """
        super().__init__(default_model=default_model, timeout=timeout)
        self._region_name = region_name
        self._session_kwargs: dict = {}

        if profile_name:
            self._session_kwargs["profile_name"] = profile_name
        if aws_access_key_id and aws_secret_access_key:
            self._session_kwargs["aws_access_key_id"] = aws_access_key_id
            self._session_kwargs["aws_secret_access_key"] = aws_secret_access_key

        self._http = http_client or httpx.AsyncClient(timeout=30.0)
        self._owns_http = http_client is None

    @property
    def provider_name(self) -> str:
        return "bedrock"

    def _create_session(self):
        """Create a new aioboto3 session."""
        return aioboto3.Session(**self._session_kwargs)

    async def _content_block(self, part: TextPart | ImagePart | ImageRefPart) -> dict[str, Any]:
        if isinstance(part, TextPart):
            return {"text": part.text}
        if isinstance(part, ImageRefPart):
            part = await self._download(part)
        image_format = _IMAGE_FORMATS.get(part.media_type.lower(), "png")
        return {"image": {"format": image_format, "source": {"bytes": part.data}}}

    async def _download(self, ref: ImageRefPart) -> ImagePart:
        try:
            response = await self._http.get(ref.url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransientGatewayError(f"Could not fetch image {ref.url}: {e}") from e
        media_type = response.headers.get("content-type", "image/png").split(";")[0]
        return ImagePart(response.content, media_type)

    async def build_request(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions,
    ) -> dict[str, Any]:
        """Translate messages and options into Converse API parameters."""
        system = [{"text": m.text_content} for m in messages if m.role is Role.SYSTEM]
        if options.response_format is ResponseFormat.JSON_OBJECT:
            system.append({"text": JSON_INSTRUCTION})

        converse_messages = []
        for message in messages:
            if message.role is Role.SYSTEM:
                continue
            converse_messages.append({
                "role": message.role.value,
                "content": [await self._content_block(p) for p in message.content],
            })

        inference_config: dict[str, Any] = {
            "maxTokens": options.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if options.temperature is not None:
            inference_config["temperature"] = options.temperature

        request_kwargs: dict[str, Any] = {
            "modelId": self.resolve_model(options.model),
            "messages": converse_messages,
            "inferenceConfig": inference_config,
        }
        if system:
            request_kwargs["system"] = system
        return request_kwargs

    @llm_circuit_breaker
    @wrap_aws_errors
    async def _send(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions,
    ) -> str | None:
        request_kwargs = await self.build_request(messages, options)

        logger.debug(
            "Calling Bedrock Converse API",
            model=request_kwargs["modelId"],
            region=self._region_name,
            messages=len(request_kwargs["messages"]),
        )

        session = self._create_session()
        async with session.client(
            "bedrock-runtime",
            region_name=self._region_name,
        ) as client:
            response = await client.converse(**request_kwargs)

        content_blocks = response.get("output", {}).get("message", {}).get("content", [])
        content = "".join(block["text"] for block in content_blocks if "text" in block)

        usage = response.get("usage", {})
        logger.debug(
            "Bedrock Converse response received",
            model=request_kwargs["modelId"],
            input_tokens=usage.get("inputTokens", 0),
            output_tokens=usage.get("outputTokens", 0),
            stop_reason=response.get("stopReason", "unknown"),
        )
        return content or None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
