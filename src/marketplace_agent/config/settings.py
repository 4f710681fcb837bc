"""Application settings via environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings via environment variables."""

    # LLM Provider Selection
    # Options: "anthropic" (direct API) or "bedrock" (AWS Bedrock)
    llm_provider: Literal["anthropic", "bedrock"] = "anthropic"

    # Anthropic Direct API
    anthropic_api_key: str = ""
    default_model: str = "claude-3-5-sonnet-20241022"
    vision_model: str = "claude-3-5-sonnet-20241022"
    llm_timeout_seconds: float = 120.0

    # AWS (Bedrock gateway and S3 object storage)
    bedrock_region: str = "us-east-1"
    bedrock_profile: str | None = None  # AWS profile name (optional)
    aws_access_key_id: str | None = None  # Optional, uses default credential chain
    aws_secret_access_key: str | None = None

    # Pipeline policy
    stage_max_retries: int = 2
    stage_backoff_base_seconds: float = 0.5
    stage_backoff_max_seconds: float = 8.0
    stage_timeout_seconds: float = 60.0

    # Memory
    memory_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    memory_ttl_seconds: int = 7 * 24 * 3600  # 7 days
    memory_window_size: int = 20
    memory_db_enabled: bool = False
    memory_db_host: str = "localhost"
    memory_db_port: int = 5432
    memory_db_name: str = "marketplace_agent"
    memory_db_user: str = "postgres"
    memory_db_password: str = ""
    memory_db_pool_size: int = 5
    reconciliation_interval_seconds: float = 3600.0

    # Object storage
    storage_bucket: str = "marketplace-listings"
    storage_region: str = "eu-central-1"
    presign_ttl_seconds: int = 3600

    # External collaborators
    marketplace_api_url: str = "https://my.prom.ua/api/v1/products/edit"
    marketplace_token: str = ""
    image_correction_url: str = "http://localhost:8090/correct"
    reverse_image_search_url: str = "http://localhost:8091/search"
    scraper_url: str = "http://localhost:8092/scrape"
    http_timeout_seconds: float = 30.0
    http_max_connections: int = 20

    # Listing defaults
    listing_language: str = "ukr"
    listing_currency: str = "UAH"
    watermark_text: str = "©Tsintra"
    image_width: int = 1280
    image_height: int = 960

    # Chat
    chat_user_id: str | None = None

    # Logging
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def memory_database_url(self) -> str:
        """Get PostgreSQL connection URL for the durable memory store."""
        return (
            f"postgresql://{self.memory_db_user}:{self.memory_db_password}"
            f"@{self.memory_db_host}:{self.memory_db_port}/{self.memory_db_name}"
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
