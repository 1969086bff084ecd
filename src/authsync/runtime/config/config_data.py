"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, computed_field, field_validator


class CORSConfig(BaseModel):
    """CORS configuration for the application."""

    origins: list[str] = Field(default=["http://localhost:3000"])
    allow_credentials: bool = True
    allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    )
    allow_headers: list[str] = Field(default=["*"])


class OAuthProviderConfig(BaseModel):
    """A social login option offered through the identity provider."""

    provider: str | None = Field(
        default=None, description="Provider value sent to the authorization endpoint"
    )
    connection_id: str | None = Field(
        default=None,
        description="Connection id; takes precedence over the provider value",
    )
    enabled: bool = Field(default=True, description="Offer this login option")


class IdentityProviderConfig(BaseModel):
    """Remote identity provider (user management API) configuration."""

    name: str = Field(
        default="workos", description="Provider tag stored on linked identities"
    )
    api_base_url: str = Field(
        default="https://api.workos.com", description="Base URL of the provider API"
    )
    client_id: str | None = Field(default=None, description="Client identifier")
    api_key: str | None = Field(
        default=None, description="API key used as client secret on grant calls"
    )
    jwks_url: str | None = Field(
        default=None,
        description="Override for the signing key document URL",
    )
    redirect_uri: str | None = Field(
        default=None, description="OAuth redirect URI registered with the provider"
    )
    allowed_issuer_hosts: list[str] = Field(
        default_factory=lambda: ["api.workos.com", "auth.workos.com"],
        description="Hosts accepted in the access token issuer claim (https only)",
    )
    allowed_algorithms: list[str] = Field(
        default_factory=lambda: ["RS256"],
        description="Asymmetric signing algorithms accepted on access tokens",
    )
    request_timeout_seconds: float = Field(
        default=10.0, description="Timeout for provider API calls"
    )
    jwks_timeout_seconds: float = Field(
        default=5.0, description="Timeout for signing key fetches"
    )
    jwks_cache_ttl_seconds: int = Field(
        default=3600, description="Signing key cache lifetime in seconds"
    )
    oauth_providers: dict[str, OAuthProviderConfig] = Field(
        default_factory=dict,
        description="Social login options keyed by the route name",
    )

    @field_validator("allowed_algorithms")
    @classmethod
    def _asymmetric_only(cls, value: list[str]) -> list[str]:
        for alg in value:
            if alg.lower() == "none" or alg.upper().startswith("HS"):
                raise ValueError(f"Algorithm {alg} is not allowed for access tokens")
        return value

    @computed_field
    @property
    def resolved_jwks_url(self) -> str:
        """Signing key document URL, derived from the client id unless overridden."""
        if self.jwks_url:
            return self.jwks_url
        return f"{self.api_base_url.rstrip('/')}/sso/jwks/{self.client_id or ''}"


class AuthConfig(BaseModel):
    """Session transport and credential method configuration."""

    methods: list[Literal["password", "oauth", "delegated"]] = Field(
        default_factory=lambda: ["password", "oauth", "delegated"],
        description="Credential verifiers enabled for this deployment",
    )
    verification_strategy: Literal["provider"] = Field(
        default="provider",
        description="Email verification strategy; exactly one per deployment",
    )
    cookie_encryption_key: str | None = Field(
        default=None,
        description="Fernet key protecting the session bundle and OAuth state",
    )
    access_cookie_name: str = Field(default="access_token")
    session_cookie_name: str = Field(default="session_bundle")
    access_cookie_min_max_age_seconds: int = Field(
        default=3600, description="Access cookie max-age for tokens without remaining lifetime"
    )
    refresh_cookie_max_age_seconds: int = Field(
        default=30 * 24 * 3600, description="Session bundle cookie max-age"
    )
    oauth_state_ttl_seconds: int = Field(
        default=600, description="Lifetime of an encrypted OAuth state value"
    )
    cookie_domain: str | None = Field(default=None, description="Cookie domain")
    skip_paths: list[str] = Field(
        default_factory=lambda: [
            "/health",
            "/health/ready",
            "/docs",
            "/redoc",
            "/openapi.json",
            "/auth/login",
            "/auth/signup",
            "/auth/authorize",
            "/auth/callback",
            "/auth/refresh",
            "/auth/logout",
            "/auth/password/reset",
            "/auth/password/confirm",
            "/auth/verify/confirm",
            "/auth/verify/resend",
        ],
        description="Paths served without an authenticated session",
    )
    skip_path_patterns: list[str] = Field(
        default_factory=lambda: [r"^/auth/[^/]+/(authorize|callback)$"],
        description="Regular expressions for additional unauthenticated paths",
    )


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="plain", description="Log format")
    file: str | None = Field(default=None, description="Log file path")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class DatabaseConfig(BaseModel):
    """Database configuration model."""

    url: str = Field(
        default="sqlite:///./authsync.db", description="Database connection URL"
    )
    pool_size: int = Field(default=20, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum pool overflow")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    pool_recycle: int = Field(default=1800, description="Pool recycle time in seconds")
    echo: bool = Field(default=False, description="Echo SQL statements")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


class AppConfig(BaseModel):
    """Application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    host: str = Field(default="0.0.0.0", description="Application host")
    port: int = Field(default=8000, description="Application port")
    app_url: str = Field(
        default="http://localhost:3000",
        description="Frontend origin used for post-login redirects",
    )
    post_login_path: str = Field(
        default="/auth/ready", description="Default path after a successful login"
    )
    cors: CORSConfig = Field(
        default_factory=CORSConfig, description="CORS configuration"
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


class ConfigData(BaseModel):
    """Root configuration model that matches the config.yaml structure."""

    app: AppConfig = Field(
        default_factory=AppConfig, description="Application configuration"
    )
    identity_provider: IdentityProviderConfig = Field(
        default_factory=IdentityProviderConfig,
        description="Remote identity provider configuration",
    )
    auth: AuthConfig = Field(
        default_factory=AuthConfig, description="Session and credential configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
