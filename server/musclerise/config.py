"""
Configuration and settings for the persistence layer.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PersistenceMode(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


class Settings(BaseSettings):
    """Environment-backed settings for the backend and the operator scripts."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Remote document store (MongoDB)
    enable_mongodb: bool = Field(default=False)
    mongo_uri: Optional[str] = Field(default=None)
    db_name: Optional[str] = Field(default=None)
    # None picks TLS for every endpoint that is not on the loopback interface.
    mongo_tls: Optional[bool] = Field(default=None)
    # Only for diagnosing broken certificate chains; never enable in production.
    mongo_tls_allow_invalid_certificates: bool = Field(default=False)
    mongo_connect_timeout_ms: int = Field(default=15000, gt=0)
    mongo_operation_timeout_ms: int = Field(default=15000, gt=0)

    # Local JSON files
    data_dir: str = Field(default="data")

    @property
    def remote_configured(self) -> bool:
        return bool(self.mongo_uri and self.db_name)

    @property
    def persistence_mode(self) -> PersistenceMode:
        if self.enable_mongodb and self.remote_configured:
            return PersistenceMode.REMOTE
        return PersistenceMode.LOCAL


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
