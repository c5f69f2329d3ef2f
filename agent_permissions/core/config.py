"""
Application Configuration
Environment variables and settings management
"""

from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Permission client settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    ENVIRONMENT: str = Field(default="development", description="Application environment")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Permission authority
    PERMISSION_AUTHORITY_URL: str = Field(
        default="http://localhost:3000/api/agent/get-module-permissions",
        description="Endpoint returning the stored permission record for a module",
    )
    PERMISSION_CHECK_URL: str = Field(
        default="http://localhost:3000/api/agent/check-permission",
        description="Endpoint answering a single action check",
    )
    MY_PERMISSIONS_URL: str = Field(
        default="http://localhost:3000/api/agent/my-permissions",
        description="Endpoint returning every permission record of the agent",
    )
    HTTP_TIMEOUT_SECONDS: Optional[float] = Field(
        default=None,
        description="Request timeout; unset keeps the HTTP client's default",
    )

    # Identity
    AGENT_ROUTE_PREFIXES: Annotated[List[str], NoDecode] = Field(
        default=["/agent/"],
        description="Navigation path prefixes that mark agent views",
    )

    # Record validation
    REJECT_MODULE_MISMATCH: bool = Field(
        default=False,
        description="Treat a record stored under another module key as not found",
    )

    @field_validator("AGENT_ROUTE_PREFIXES", mode="before")
    @classmethod
    def parse_route_prefixes(cls, v):
        """Parse route prefixes from string or list"""
        if isinstance(v, str):
            return [prefix.strip() for prefix in v.split(",") if prefix.strip()]
        return v if isinstance(v, list) else []


settings = Settings()
