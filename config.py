from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeploymentContext(str, Enum):
    """Where the service runs; decides which upload size ceiling applies."""
    SERVERLESS = "serverless"
    CONVENTIONAL = "conventional"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables or .env."""

    # Set by the Vercel runtime; any non-empty value means serverless hosting
    vercel: Optional[str] = Field(None, alias="VERCEL")
    max_file_size_mb: int = Field(25, gt=0, alias="MAX_FILE_SIZE_MB")
    required_columns: List[str] = Field(default_factory=list, alias="REQUIRED_COLUMNS")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    @property
    def deployment_context(self) -> DeploymentContext:
        if self.vercel:
            return DeploymentContext.SERVERLESS
        return DeploymentContext.CONVENTIONAL


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
