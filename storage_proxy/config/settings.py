"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables (or a .env file) with
sensible defaults. Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Mock mode enables local development without object storage.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..infrastructure.storage.client import StorageConfig


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables
    (BUCKET_NAME, KEY_PREFIX, BIND_PORT, ...).
    """

    # Proxy
    bucket_name: str = Field(
        default="",
        description="Bucket served by the proxy. Required unless in mock mode."
    )
    key_prefix: str = Field(
        default="",
        description="Prefix prepended verbatim to every request path to form the object key."
    )
    bind_address: str = Field(
        default="127.0.0.1",
        description="Address the HTTP listener binds to"
    )
    bind_port: int = Field(
        default=8080,
        ge=0,
        le=65535,
        description="Port the HTTP listener binds to. 0 picks a free port."
    )

    # S3-compatible Storage
    storage_endpoint_url: Optional[str] = Field(
        default=None,
        description="Endpoint for S3-compatible storage (R2, MinIO). AWS S3 if not set."
    )
    storage_access_key_id: str = Field(
        default="",
        description="Access key ID. Empty uses the boto3 credential chain."
    )
    storage_secret_access_key: str = Field(
        default="",
        description="Secret access key"
    )
    storage_region: str = Field(
        default="us-east-1",
        description="Storage region. R2 uses 'auto'."
    )
    storage_mock_mode: bool = Field(
        default=False,
        description="Use an in-memory bucket instead of real storage."
    )

    # Streaming
    chunk_size_kb: int = Field(
        default=64,
        gt=0,
        description="Chunk size for streaming object bodies in and out"
    )
    upload_spool_max_mb: int = Field(
        default=8,
        ge=0,
        description="Uploads larger than this spool to a temp file before being committed"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def chunk_size(self) -> int:
        """Streaming chunk size in bytes."""
        return self.chunk_size_kb * 1024

    def storage_config(self) -> StorageConfig:
        """Build the storage client configuration from these settings."""
        return StorageConfig(
            bucket_name=self.bucket_name,
            endpoint_url=self.storage_endpoint_url,
            access_key_id=self.storage_access_key_id,
            secret_access_key=self.storage_secret_access_key,
            region=self.storage_region,
            spool_max_bytes=self.upload_spool_max_mb * 1024 * 1024,
        )

    def validate_required_fields(self) -> list[str]:
        """
        Return the names of required settings that are missing.

        Separate from Pydantic validation because what's required
        depends on mock mode.
        """
        missing = []

        if not self.storage_mock_mode and not self.bucket_name:
            missing.append("BUCKET_NAME")

        # a secret without its key id (or vice versa) is a typo, not a choice
        if bool(self.storage_access_key_id) != bool(self.storage_secret_access_key):
            missing.append(
                "STORAGE_SECRET_ACCESS_KEY" if self.storage_access_key_id
                else "STORAGE_ACCESS_KEY_ID"
            )

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process. For tests, call
    get_settings.cache_clear() to reset.
    """
    return Settings()
