from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Loading priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values below
    """

    # Environment
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Application
    app_name: str = "Shortlink"
    app_version: str = "1.0.0"

    # Database (source of truth for URL entities)
    database_url: str = "sqlite:///./shortlink.db"

    # Short URL creation
    base_url: str = "http://127.0.0.1:8000"
    short_code_length: int = 7  # Clamped to [4, 12] by the generator
    short_code_strategy: str = "random"  # Options: "random", "snowflake"
    instance_id: int = 0  # Snowflake partition, 0-1023
    max_create_attempts: int = 5
    uniqueness_probes: int = 3  # Advisory lookups before each persist attempt
    blacklisted_domains: List[str] = ["bit.ly", "tinyurl.com"]

    # Persistent store
    storage_backend: str = "sqlalchemy"  # Options: "sqlalchemy", "memory"

    # Cache settings
    cache_backend: str = "redis"  # Options: "redis", "memory", "null"
    redis_url: str = "redis://localhost:6379/0"
    entity_cache_ttl: int = 86400  # Entity cache TTL when the URL never expires (24h)
    response_cache_ttl: int = 300  # Response cache TTL (5 minutes)
    memory_cache_max_entries: int = 10000  # Cap for the in-memory backend

    # Event sink settings
    event_sink_backend: str = "redis_streams"  # Options: "redis_streams", "memory", "null"
    event_stream_prefix: str = "shortlink"
    memory_event_buffer: int = 10000  # Events kept by the in-memory sink

    # Detached click recording
    click_workers: int = 4
    click_queue_size: int = 1000
    click_task_timeout: float = 10.0
    click_drain_timeout: float = 5.0

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Create settings instance
settings = Settings()
