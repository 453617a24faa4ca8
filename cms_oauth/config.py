import os
from functools import lru_cache
from typing import Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


PROVIDER_NAMES = ("github", "gitlab", "bitbucket")

LOG_LEVELS = {"fatal", "critical", "error", "warn", "warning", "info", "debug", "trace"}


class ProviderCredentials(BaseModel):
    """Client credentials and hostname of one OAuth app."""

    model_config = ConfigDict(frozen=True)

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    hostname: str

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


class Settings(BaseModel):
    """
    Process configuration.

    Field names match the environment variables they are read from, so
    ``Settings.from_env()`` is a straight copy of the relevant keys followed
    by pydantic validation. Once built, the value is immutable and is handed
    to the request handlers explicitly.
    """

    model_config = ConfigDict(frozen=True)

    # Server
    APP_ENV: Literal["development", "production", "test"] = "development"
    HOST: str = "localhost"
    PORT: int = 3000
    FORWARDED_ALLOW_IPS: str = "127.0.0.1"

    # Empty list means every domain is allowed
    ALLOWED_DOMAINS: list[str] = Field(default_factory=lambda: ["localhost"])

    # GitHub
    GITHUB_CLIENT_ID: Optional[str] = None
    GITHUB_CLIENT_SECRET: Optional[str] = None
    GITHUB_HOSTNAME: str = "github.com"

    # GitLab
    GITLAB_CLIENT_ID: Optional[str] = None
    GITLAB_CLIENT_SECRET: Optional[str] = None
    GITLAB_HOSTNAME: str = "gitlab.com"

    # Bitbucket
    BITBUCKET_CLIENT_ID: Optional[str] = None
    BITBUCKET_CLIENT_SECRET: Optional[str] = None
    BITBUCKET_HOSTNAME: str = "bitbucket.com"

    # Security
    INSECURE_COOKIES: bool = False

    # Outbound token exchange, in seconds
    TOKEN_REQUEST_TIMEOUT: float = Field(default=10.0, gt=0)

    # Logging
    LOG_LEVEL: str = "info"
    # Optional rotating log file next to console output
    LOG_FILE: Optional[str] = None

    @field_validator("ALLOWED_DOMAINS", mode="before")
    @classmethod
    def _split_domains(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [domain.strip() for domain in value.split(",") if domain.strip()]
        return value

    @field_validator(
        "GITHUB_CLIENT_ID",
        "GITHUB_CLIENT_SECRET",
        "GITLAB_CLIENT_ID",
        "GITLAB_CLIENT_SECRET",
        "BITBUCKET_CLIENT_ID",
        "BITBUCKET_CLIENT_SECRET",
        "LOG_FILE",
        mode="before",
    )
    @classmethod
    def _blank_as_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("INSECURE_COOKIES", mode="before")
    @classmethod
    def _parse_flag(cls, value):
        if isinstance(value, str):
            return value.strip() == "1"
        return value

    @field_validator("LOG_LEVEL")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(LOG_LEVELS)}")
        return level

    @model_validator(mode="after")
    def _require_one_provider(self) -> "Settings":
        if not any(self.credentials_for(name).is_configured for name in PROVIDER_NAMES):
            raise ValueError(
                "At least one OAuth provider must be configured (GitHub, GitLab, or Bitbucket)"
            )
        return self

    def credentials_for(self, provider: str) -> ProviderCredentials:
        prefix = provider.upper()
        return ProviderCredentials(
            client_id=getattr(self, f"{prefix}_CLIENT_ID"),
            client_secret=getattr(self, f"{prefix}_CLIENT_SECRET"),
            hostname=getattr(self, f"{prefix}_HOSTNAME"),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables (``os.environ`` by default)."""
        if environ is None:
            environ = os.environ
        values = {name: environ[name] for name in cls.model_fields if name in environ}
        return cls.model_validate(values)


@lru_cache
def get_settings() -> Settings:
    """
    Returns the process-wide settings, reading a ``.env`` file first if present.
    Validation errors propagate so a misconfigured process fails at startup.
    """
    load_dotenv()
    return Settings.from_env()
