import os
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from repohub.application.aggregation_service import ADAPTER_TIMEOUT_SECONDS
from repohub.application.scheduler import REFRESH_INTERVAL_SECONDS
from repohub.domain.models import Platform

TOKEN_ENV_VARS = {
    Platform.GITHUB: "GITHUB_TOKEN",
    Platform.GITLAB: "GITLAB_TOKEN",
    Platform.BITBUCKET: "BITBUCKET_TOKEN",
}


class Settings(BaseModel):
    """Runtime configuration read from the environment (and a .env file, if present)."""

    database_url: str = Field("sqlite:///repohub.db", description="SQLAlchemy URL of the key/value store")
    refresh_interval: float = Field(REFRESH_INTERVAL_SECONDS, gt=0, description="Seconds between periodic refreshes")
    adapter_timeout: float = Field(ADAPTER_TIMEOUT_SECONDS, gt=0, description="Seconds allowed per platform call")
    log_level: str = Field("INFO")
    platform_tokens: Dict[Platform, str] = Field(
        default_factory=dict, description="Tokens to register at startup, keyed by platform"
    )


def load_settings(env_file: Optional[str] = None) -> Settings:
    # Load environment variables from .env file
    load_dotenv(env_file)

    values = {
        "database_url": os.getenv("REPOHUB_DATABASE_URL"),
        "refresh_interval": os.getenv("REPOHUB_REFRESH_INTERVAL"),
        "adapter_timeout": os.getenv("REPOHUB_ADAPTER_TIMEOUT"),
        "log_level": os.getenv("REPOHUB_LOG_LEVEL"),
    }
    settings = {key: value for key, value in values.items() if value}
    settings["platform_tokens"] = {
        platform: os.environ[var] for platform, var in TOKEN_ENV_VARS.items() if os.getenv(var)
    }
    return Settings(**settings)
