# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the LMS
access core. Settings are loaded from environment variables with sensible
defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirebaseSettings(BaseSettings):
    """Hosted backend configuration (document store + identity provider).

    The same project hosts the Firestore database, the Identity Toolkit
    accounts and the callable provisioning functions.

    Attributes:
        project_id: Backend project identifier.
        api_key: Public web API key used by the Identity Toolkit REST API.
        auth_domain: Authentication domain of the project.
        database: Firestore database name.
        identity_base_url: Identity Toolkit REST base URL.
        token_certs_url: URL publishing the identity token signing certificates.
        token_algorithms: Accepted identity token signing algorithms.
        functions_region: Region hosting the callable functions.
        request_timeout: HTTP timeout in seconds for identity/function calls.
    """

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        extra="ignore",
    )

    project_id: str = "somoxlean"
    api_key: SecretStr = SecretStr("")
    auth_domain: str = "somoxlean.firebaseapp.com"
    database: str = "(default)"
    identity_base_url: str = "https://identitytoolkit.googleapis.com/v1"
    token_certs_url: str = (
        "https://www.googleapis.com/robot/v1/metadata/x509/"
        "securetoken@system.gserviceaccount.com"
    )
    token_algorithms: list[str] = ["RS256"]
    functions_region: str = "us-central1"
    request_timeout: float = 30.0

    @property
    def functions_base_url(self) -> str:
        """Build the callable functions base URL."""
        return f"https://{self.functions_region}-{self.project_id}.cloudfunctions.net"

    @property
    def token_issuer(self) -> str:
        """Expected issuer claim of identity tokens."""
        return f"https://securetoken.google.com/{self.project_id}"


class QuerySettings(BaseSettings):
    """Document query configuration.

    Attributes:
        default_limit: Result cap applied when a query has no explicit limit.
    """

    model_config = SettingsConfigDict(
        env_prefix="QUERY_",
        extra="ignore",
    )

    default_limit: int = 50


class CacheSettings(BaseSettings):
    """Read-through query cache configuration.

    Attributes:
        backend: Cache storage backend ("memory" is process-local).
        ttl_seconds: Lifetime of a cached query result.
        key_prefix: Prefix applied to keys in shared backends.
    """

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        extra="ignore",
    )

    backend: Literal["memory", "redis"] = "memory"
    ttl_seconds: int = 300
    key_prefix: str = "lms:query"


class RedisSettings(BaseSettings):
    """Redis configuration for the shared cache backend.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
        url: Full Redis connection URL.
        max_connections: Maximum connection pool size.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 6379
    password: SecretStr | None = None
    database: int = 0
    max_connections: int = 20

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        if self.password is None:
            return f"redis://{self.host}:{self.port}/{self.database}"
        pwd = self.password.get_secret_value()
        return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"


class ProvisioningSettings(BaseSettings):
    """User provisioning configuration.

    Attributes:
        secondary_client_name: Name of the isolated identity client used to
            create accounts without replacing the acting session.
        min_password_length: Minimum accepted password length.
        use_server_function: Create accounts through the callable function
            instead of the secondary client instance.
        create_user_function: Name of the account creation function.
        set_password_function: Name of the administrative password function.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROVISIONING_",
        extra="ignore",
    )

    secondary_client_name: str = "temp-user-creation"
    min_password_length: int = 6
    use_server_function: bool = False
    create_user_function: str = "createUser"
    set_password_function: str = "adminSetPassword"


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        firebase: Hosted backend settings.
        query: Document query settings.
        cache: Query cache settings.
        redis: Redis settings.
        provisioning: User provisioning settings.
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
    firebase: FirebaseSettings = Field(default_factory=FirebaseSettings)
    query: QuerySettings = Field(default_factory=QuerySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    provisioning: ProvisioningSettings = Field(default_factory=ProvisioningSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production without backend credentials.
        """
        if self.environment == "production":
            if not self.firebase.project_id:
                raise ValueError(
                    "Backend project id must be set in production. "
                    "Set FIREBASE_PROJECT_ID environment variable."
                )
            if not self.firebase.api_key.get_secret_value():
                raise ValueError(
                    "Backend API key must be set in production. "
                    "Set FIREBASE_API_KEY environment variable."
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
