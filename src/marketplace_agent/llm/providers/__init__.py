"""Chat completion gateway implementations.

Supports multiple backends with a unified interface:
- Anthropic: Direct API access to Claude models
- Bedrock: AWS Bedrock access to Claude models

Usage:
    from marketplace_agent.llm.providers import create_gateway

    # Create gateway based on settings
    gateway = create_gateway()

    # Or explicitly create a specific gateway
    gateway = create_gateway("bedrock", region_name="us-west-2")
"""

from typing import Any

from marketplace_agent.llm.providers.base import ChatCompletionGateway
from marketplace_agent.llm.providers.anthropic import AnthropicGateway
from marketplace_agent.llm.providers.bedrock import BedrockGateway


def create_gateway(
    provider: str | None = None,
    settings: Any = None,
    **kwargs: Any,
) -> ChatCompletionGateway:
    """
    Factory function to create a chat completion gateway based on configuration.

    Args:
        provider: Provider name ("anthropic" or "bedrock"). If None, uses settings.
        settings: Settings instance (defaults to the cached settings)
        **kwargs: Provider-specific arguments

    Returns:
        Configured gateway instance

    Raises:
        ValueError: If unknown provider specified or credentials are missing
    """
    if settings is None:
        from marketplace_agent.config.settings import get_settings

        settings = get_settings()

    provider_name = provider or settings.llm_provider
    default_model = kwargs.get("default_model") or settings.default_model
    timeout = kwargs.get("timeout", settings.llm_timeout_seconds)

    if provider_name == "anthropic":
        api_key = kwargs.get("api_key") or settings.anthropic_api_key
        if not api_key:
            raise ValueError(
                "Anthropic API key required. Set ANTHROPIC_API_KEY environment variable."
            )
        return AnthropicGateway(api_key=api_key, default_model=default_model, timeout=timeout)

    elif provider_name == "bedrock":
        return BedrockGateway(
            region_name=kwargs.get("region_name") or settings.bedrock_region,
            profile_name=kwargs.get("profile_name") or settings.bedrock_profile,
            aws_access_key_id=kwargs.get("aws_access_key_id") or settings.aws_access_key_id,
            aws_secret_access_key=kwargs.get("aws_secret_access_key") or settings.aws_secret_access_key,
            default_model=default_model,
            timeout=timeout,
            http_client=kwargs.get("http_client"),
        )

    else:
        raise ValueError(
            f"Unknown LLM provider: {provider_name}. "
            f"Supported providers: anthropic, bedrock"
        )


__all__ = [
    "ChatCompletionGateway",
    "AnthropicGateway",
    "BedrockGateway",
    "create_gateway",
]
