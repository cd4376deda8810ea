"""
Configuration module for the Altinn authentication demo service.

This module uses Pydantic Settings to load and validate environment variables
for the ID-porten / Ansattporten client registration, the optional Rich
Authorization Request, downstream Altinn APIs and session cookie behaviour.

Environment variables are loaded from .env file or system environment.
"""

import json
import logging
from functools import lru_cache
from typing import Any, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every option has a development default so the service starts without a
    .env file; real credentials are required to complete a login.
    """

    # =========================================================================
    # OIDC Client Registration
    # =========================================================================

    CLIENT_ID: str = Field(
        default="demo-client-id",
        description="Client ID registered with ID-porten / Ansattporten",
        min_length=1,
    )

    CLIENT_SECRET: str = Field(
        default="demo-client-secret",
        description="Client secret used for HTTP Basic client authentication",
    )

    BASE_URL: str = Field(
        default="http://localhost:3000",
        description="Public base URL of this service (redirect URI is derived from it)",
        min_length=1,
    )

    IDPORTEN_DISCOVERY_URL: str = Field(
        default="https://test.idporten.no/.well-known/openid-configuration",
        description="OpenID Connect discovery document URL",
        min_length=1,
    )

    OAUTH_SCOPES: str = Field(
        default="openid profile altinn:instances.read",
        description="Space-separated scopes requested at login",
    )

    RAR_AUTHORIZATION_DETAILS: Optional[str] = Field(
        default=None,
        description="JSON for the authorization_details parameter (Rich Authorization Requests)",
    )

    # =========================================================================
    # Downstream Altinn APIs
    # =========================================================================

    ALTINN_PLATFORM_URL: str = Field(
        default="https://platform.altinn.no",
        description="Altinn Platform base URL (storage, profile)",
    )

    ALTINN_ORG: Optional[str] = Field(
        default=None,
        description="Service owner org code for the App API (e.g. 'ttd')",
    )

    ALTINN_APP_NAME: Optional[str] = Field(
        default=None,
        description="App name for the App API",
    )

    # =========================================================================
    # Runtime
    # =========================================================================

    ENVIRONMENT: str = Field(
        default="development",
        description="Deployment environment; 'production' marks cookies Secure",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level",
    )

    ALLOWED_ORIGINS: Optional[str] = Field(
        default=None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    HTTP_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        description="Timeout applied to every outbound HTTP call",
        gt=0,
        le=60,
    )

    MAX_LOGS: int = Field(
        default=1000,
        description="Capacity of the in-memory request log",
        ge=1,
    )

    DISCOVERY_PREWARM: bool = Field(
        default=True,
        description="Fetch the discovery document in the background at startup",
    )

    HOST: str = Field(default="0.0.0.0", description="Host to bind the server")

    PORT: int = Field(default=3000, description="Port to bind the server", ge=1, le=65535)

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def redirect_uri(self) -> str:
        """Callback URL registered with the identity provider."""
        return f"{self.BASE_URL}/auth/callback"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def app_api_url(self) -> Optional[str]:
        """
        Base URL of the configured Altinn app, or None when ALTINN_ORG or
        ALTINN_APP_NAME is missing.
        """
        if not self.ALTINN_ORG or not self.ALTINN_APP_NAME:
            return None
        return (
            f"https://{self.ALTINN_ORG}.apps.altinn.no/"
            f"{self.ALTINN_ORG}/{self.ALTINN_APP_NAME}"
        )

    @property
    def platform_url(self) -> str:
        return self.ALTINN_PLATFORM_URL.rstrip("/")

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return []

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def rar_authorization_details(self) -> Optional[Any]:
        """
        Parsed RAR_AUTHORIZATION_DETAILS.

        Invalid JSON is logged and treated as unset so that login still
        proceeds without the parameter.
        """
        if not self.RAR_AUTHORIZATION_DETAILS:
            return None

        try:
            return json.loads(self.RAR_AUTHORIZATION_DETAILS)
        except ValueError as e:
            logger.error(f"Error parsing RAR_AUTHORIZATION_DETAILS: {e}")
            return None

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("BASE_URL", "ALTINN_PLATFORM_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """
        Validate LOG_LEVEL is a standard logging level name.

        Raises:
            ValueError: If the level is unknown
        """
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.upper()

        if level not in allowed_levels:
            raise ValueError(
                f"LOG_LEVEL must be one of {allowed_levels}, got: {v}"
            )

        return level

    @field_validator("ALTINN_ORG", "ALTINN_APP_NAME", "RAR_AUTHORIZATION_DETAILS")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If an environment variable has an invalid value.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup; nothing here is fatal because the demo
    defaults are meant to boot without credentials.

    Returns:
        Dictionary with validation status and any warnings.
    """
    errors = []
    warnings = []

    if settings.CLIENT_ID == "demo-client-id":
        warnings.append("CLIENT_ID is the demo placeholder; login will be rejected by the provider")

    if not settings.CLIENT_SECRET or settings.CLIENT_SECRET == "demo-client-secret":
        warnings.append("CLIENT_SECRET is not set (required for token exchange)")

    if not settings.BASE_URL.startswith(("http://", "https://")):
        errors.append(f"BASE_URL must be an absolute http(s) URL, got: {settings.BASE_URL}")

    if settings.is_production and not settings.BASE_URL.startswith("https://"):
        warnings.append("Production cookies are Secure but BASE_URL is not https")

    if settings.RAR_AUTHORIZATION_DETAILS and settings.rar_authorization_details is None:
        warnings.append("RAR_AUTHORIZATION_DETAILS is not valid JSON and will be ignored")

    if not settings.app_api_url:
        warnings.append("App API not configured (set ALTINN_ORG and ALTINN_APP_NAME)")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "discovery_url": settings.IDPORTEN_DISCOVERY_URL,
        "redirect_uri": settings.redirect_uri,
    }
