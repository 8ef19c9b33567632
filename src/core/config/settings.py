# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the
provisioning back office. Settings are loaded from environment variables
with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.provisioning.default_trial_days)
    7
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Datastore configuration.

    The datastore holds tenants, locations, users, purchase records and the
    program/course catalog.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        dsn: Full connection URL override. When set, the component fields
            are ignored (used for SQLite in tests and local runs).
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
        echo: Whether to log emitted SQL.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "tenancy"
    password: SecretStr = SecretStr("tenancy_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "tenancy"
    dsn: str | None = None
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        if self.dsn:
            return self.dsn
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class IdentitySettings(BaseSettings):
    """Identity service configuration.

    The identity service speaks the Identity Toolkit REST protocol. Point
    base_url at the auth emulator for local development.

    Attributes:
        base_url: Identity service REST root.
        api_key: Web API key appended to every request.
        service_account_email: Issuer of minted custom login tokens.
        private_key: Signing key for custom login tokens (PEM for RS256).
        token_algorithm: JWS algorithm for custom login tokens.
        token_audience: Audience claim of custom login tokens.
        token_ttl_seconds: Lifetime of custom login tokens.
        timeout: Request timeout in seconds.
        context_prefix: Default prefix for ephemeral context names.
    """

    model_config = SettingsConfigDict(
        env_prefix="IDENTITY_",
        extra="ignore",
    )

    base_url: str = "https://identitytoolkit.googleapis.com"
    api_key: SecretStr = SecretStr("")
    service_account_email: str = ""
    private_key: SecretStr = SecretStr("")
    token_algorithm: str = "RS256"
    token_audience: str = (
        "https://identitytoolkit.googleapis.com/"
        "google.identity.identitytoolkit.v1.IdentityToolkit"
    )
    token_ttl_seconds: int = 3600
    timeout: float = 15.0
    context_prefix: str = "provisioning"


class SMTPSettings(BaseSettings):
    """SMTP configuration for welcome emails.

    Attributes:
        host: SMTP server host. Empty disables email delivery.
        port: SMTP server port.
        username: SMTP login.
        password: SMTP password.
        use_tls: Whether to connect with implicit TLS.
        start_tls: Whether to upgrade a plain connection with STARTTLS.
        from_address: Sender address.
        from_name: Sender display name.
        login_url: Login page advertised in the welcome email.
        timeout: Send timeout in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="SMTP_",
        extra="ignore",
    )

    host: str = ""
    port: int = 587
    username: str = ""
    password: SecretStr = SecretStr("")
    use_tls: bool = False
    start_tls: bool = True
    from_address: str = "no-reply@localhost"
    from_name: str = "Course Platform"
    login_url: str = "http://localhost:3000/login"
    timeout: float = 30.0

    @property
    def enabled(self) -> bool:
        """Check whether an SMTP server is configured."""
        return bool(self.host)


class RetrySettings(BaseSettings):
    """Retry policy configuration for datastore and identity calls.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay_ms: Base backoff delay in milliseconds.
        max_delay_ms: Upper bound for a single backoff delay.
    """

    model_config = SettingsConfigDict(
        env_prefix="RETRY_",
        extra="ignore",
    )

    max_attempts: int = Field(default=3, ge=1)
    base_delay_ms: int = Field(default=500, ge=0)
    max_delay_ms: int = Field(default=10_000, ge=0)


class ProvisioningSettings(BaseSettings):
    """Provisioning flow defaults.

    Attributes:
        saga_timeout_seconds: Upper bound for one provisioning run.
        default_trial_days: Trial length when the caller gives none.
        public_signup_max_users: Seat limit for self-service tenants.
        default_location_name: Name of the location created per tenant.
        temporary_password_length: Length of generated admin passwords.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROVISIONING_",
        extra="ignore",
    )

    saga_timeout_seconds: float = Field(default=60.0, gt=0)
    default_trial_days: int = Field(default=7, ge=1)
    public_signup_max_users: int = Field(default=5, ge=1)
    default_location_name: str = "Main Location"
    temporary_password_length: int = Field(default=12, ge=8)


class CORSSettings(BaseSettings):
    """CORS configuration for API.

    Attributes:
        origins: Comma-separated list of allowed origins.
        allow_credentials: Whether to allow credentials.
        allow_methods: Allowed HTTP methods.
        allow_headers: Allowed HTTP headers.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000"
    allow_credentials: bool = True
    allow_methods: list[str] = ["*"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class APISettings(BaseSettings):
    """HTTP surface configuration.

    Attributes:
        operator_api_key: Shared secret expected in ``X-Operator-Key`` on
            the operator endpoints.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    operator_api_key: SecretStr = SecretStr("change-this-in-production")


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        database: Datastore settings.
        identity: Identity service settings.
        smtp: Welcome email settings.
        retry: Retry policy settings.
        provisioning: Provisioning flow defaults.
        cors: CORS settings.
        api: API server settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    identity: IdentitySettings = Field(default_factory=IdentitySettings)
    smtp: SMTPSettings = Field(default_factory=SMTPSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    provisioning: ProvisioningSettings = Field(default_factory=ProvisioningSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    api: APISettings = Field(default_factory=APISettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production":
            default_key = "change-this-in-production"
            if self.api.operator_api_key.get_secret_value() == default_key:
                raise ValueError(
                    "Operator API key must be changed from default in production. "
                    "Set API_OPERATOR_API_KEY environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
