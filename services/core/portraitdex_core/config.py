"""Configuration management for Portraitdex."""

import json
from functools import lru_cache
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

UNPUBLISH_POLICIES = {"retain", "evict"}
SEARCH_BACKENDS = {"sqlite", "elasticsearch"}
RATE_LIMIT_BACKENDS = {"local", "redis"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./portraits.sqlite",
        description="SQLAlchemy URL of the portrait store (sync driver)",
    )

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Celery
    celery_broker_url: str = Field(default="redis://localhost:6379/1")
    celery_result_backend: str = Field(default="redis://localhost:6379/2")

    # Chain
    chain_rpc_urls: Annotated[list[str], NoDecode] = Field(
        default=[
            "https://sepolia.base.org",
            "https://1rpc.io/base-sepolia",
            "https://base-sepolia.blockpi.network/v1/rpc/public",
        ],
        description="RPC endpoints tried in order",
    )
    chain_id_registry_address: str = Field(default="0x3cDc03BEb79ba3b9FD3b687C67BFDE70AFf46eBF")
    chain_name_registry_address: str = Field(default="0xc788716466009AD7219c78d8e547819f6092ec8F")
    chain_state_registry_address: str = Field(default="0x320C9E64c9a68492A1EB830e64EE881D75ac5efd")
    chain_rpc_timeout_seconds: float = Field(default=20.0)
    chain_batch_size: int = Field(default=500, ge=1)
    chain_batch_pause_seconds: float = Field(default=0.1, ge=0)

    # Profile API
    profile_api_url: str = Field(default="https://api.portrait.so/api/v2/user/latestportrait")
    profile_timeout_seconds: float = Field(default=20.0)
    profile_min_interval_seconds: float = Field(default=1.0, ge=0)
    profile_rate_limit_backend: str = Field(default="local")

    # Public links
    public_profile_base_url: str = Field(default="https://portrait.so/")
    ipfs_gateway_url: str = Field(default="https://ipfs.io/ipfs/")
    arweave_gateway_url: str = Field(default="https://irys.portrait.host/")

    # Fetch job
    fetch_job_name: str = Field(default="fetch-job")
    fetch_lock_ttl_seconds: int = Field(default=3600)
    unpublish_policy: str = Field(default="retain")

    # Search
    search_backend: str = Field(default="sqlite")
    elastic_url: str = Field(default="http://localhost:9200")
    elastic_index: str = Field(default="portraitdex_portraits_v1")

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)

    # Web
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(default=["*"])

    @field_validator("chain_rpc_urls", "cors_allow_origins", mode="before")
    @classmethod
    def split_comma_separated(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("chain_rpc_urls")
    @classmethod
    def validate_rpc_urls(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("CHAIN_RPC_URLS needs at least one endpoint")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v:
            raise ValueError("DATABASE_URL is required")
        return v

    @field_validator("unpublish_policy")
    @classmethod
    def validate_unpublish_policy(cls, v: str) -> str:
        v = v.lower()
        if v not in UNPUBLISH_POLICIES:
            raise ValueError(f"unpublish_policy must be one of {sorted(UNPUBLISH_POLICIES)}")
        return v

    @field_validator("search_backend")
    @classmethod
    def validate_search_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in SEARCH_BACKENDS:
            raise ValueError(f"search_backend must be one of {sorted(SEARCH_BACKENDS)}")
        return v

    @field_validator("profile_rate_limit_backend")
    @classmethod
    def validate_rate_limit_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in RATE_LIMIT_BACKENDS:
            raise ValueError(
                f"profile_rate_limit_backend must be one of {sorted(RATE_LIMIT_BACKENDS)}"
            )
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
