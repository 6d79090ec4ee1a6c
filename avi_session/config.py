"""Session configuration for the Avi Controller client."""

import dataclasses
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_AVI_VERSION = "17.1.2"
DEFAULT_API_TIMEOUT = 60.0
DEFAULT_API_TENANT = "admin"


@dataclass
class SessionConfig:
    """Connection, credential and scoping settings for one controller session."""

    host: str
    username: str

    # Credentials. Token mode is selected when a token or a refresh callback is set.
    password: str = ""
    auth_token: str = ""
    refresh_auth_token: Optional[Callable[[], str]] = None

    # Request scoping
    tenant: str = ""
    version: str = ""

    insecure: bool = False
    # Per-phase limit in seconds: connect, read, write and pool wait are each capped
    # at this value; a slow response that keeps streaming can take longer overall.
    timeout: float = DEFAULT_API_TIMEOUT
    transport: Optional[httpx.BaseTransport] = None

    def __post_init__(self):
        """Initialize default values."""
        if not self.tenant:
            self.tenant = DEFAULT_API_TENANT
        if not self.version:
            self.version = DEFAULT_AVI_VERSION
        if not self.timeout or self.timeout <= 0:
            self.timeout = DEFAULT_API_TIMEOUT

    @property
    def prefix(self) -> str:
        """Base URL of the controller, also sent as the Referer header."""
        return "https://" + self.host + "/"

    @property
    def is_token_auth(self) -> bool:
        return self.auth_token != "" or self.refresh_auth_token is not None

    def with_tenant(self, tenant: str) -> "SessionConfig":
        """Create a new config scoped to a different default tenant."""
        return dataclasses.replace(self, tenant=tenant)

    def with_version(self, version: str) -> "SessionConfig":
        """Create a new config pinned to a different API version."""
        return dataclasses.replace(self, version=version)


class AviSettings(BaseSettings):
    """Controller connection settings loaded from AVI_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="AVI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    controller: str = ""
    username: str = "admin"
    password: SecretStr | None = None
    auth_token: SecretStr | None = None
    tenant: str = DEFAULT_API_TENANT
    version: str = DEFAULT_AVI_VERSION
    insecure: bool = False
    timeout: float = DEFAULT_API_TIMEOUT

    def to_session_config(self, **overrides) -> SessionConfig:
        """Build a SessionConfig from these settings, applying keyword overrides."""
        values = {
            "host": self.controller,
            "username": self.username,
            "password": self.password.get_secret_value() if self.password else "",
            "auth_token": self.auth_token.get_secret_value() if self.auth_token else "",
            "tenant": self.tenant,
            "version": self.version,
            "insecure": self.insecure,
            "timeout": self.timeout,
        }
        values.update(overrides)
        return SessionConfig(**values)


_settings: Optional[AviSettings] = None


def get_settings() -> AviSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = AviSettings()
    return _settings
