"""Application settings loaded from the environment."""
import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field


def _split_csv(value: Optional[str]) -> list[str]:
    if not value:
        return ["*"]
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    """Runtime configuration for the API, store and GitHub collaborator."""

    database_url: str = "sqlite:///./agentflow.db"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    # GitHub collaborator
    github_token: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    github_timeout: float = 30.0

    # Audit log defaults
    audit_log_default_limit: int = 50
    audit_log_max_limit: int = 500

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from AGENTFLOW_* / GITHUB_* environment variables."""
        return cls(
            database_url=os.getenv("AGENTFLOW_DATABASE_URL", "sqlite:///./agentflow.db"),
            cors_origins=_split_csv(os.getenv("AGENTFLOW_CORS_ORIGINS")),
            log_level=os.getenv("AGENTFLOW_LOG_LEVEL", "INFO").upper(),
            github_token=os.getenv("GITHUB_TOKEN") or None,
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            github_timeout=float(os.getenv("GITHUB_TIMEOUT", "30")),
            audit_log_default_limit=int(os.getenv("AGENTFLOW_AUDIT_LOG_DEFAULT_LIMIT", "50")),
            audit_log_max_limit=int(os.getenv("AGENTFLOW_AUDIT_LOG_MAX_LIMIT", "500")),
        )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings (cached after first load)."""
    return Settings.from_env()
