"""
Configuration management for the session store.

This module provides centralized configuration loading and validation using
Pydantic settings. Values are read from ``SESSION_``-prefixed environment
variables or .env files, with environment-specific files layered on top.
"""

import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from errors.codes import ErrorCode
from errors.exceptions import EncryptionConfigError, SessionException
from resilience.retry import DEFAULT_RETRIES, DEFAULT_RETRY_DELAY_MS
from session.cookies import DEFAULT_LIFETIME, SAMESITE_VALUES, CookieConfig
from session.encryption import EncryptionKeySet, normalize_key

DRIVERS = ("memory", "file", "cache", "redis", "redis_sentinel", "redis_cluster")
REDIS_URL_DRIVERS = ("redis", "redis_cluster")


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the list of .env files to load for the given environment.

    The base .env file is loaded first, then the environment-specific file,
    so later files override earlier ones.
    """
    env_file_map = {
        Environment.DEVELOPMENT: ".env.development",
        Environment.STAGING: ".env.staging",
        Environment.PRODUCTION: ".env.production",
    }
    return (".env", env_file_map.get(environment, ".env.development"))


class SessionSettings(BaseSettings):
    """
    Session store settings loaded from environment variables.

    Every field can be set through a ``SESSION_``-prefixed variable, e.g.
    ``SESSION_DRIVER=redis`` or ``SESSION_ENCRYPTION_KEY=<64 hex chars>``.
    List fields take JSON arrays.
    """

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Backend selection
    driver: str = Field(
        default="file",
        description="Storage backend: memory, file, cache, redis, redis_sentinel or redis_cluster"
    )
    file_path: str = Field(
        default_factory=lambda: os.path.join(tempfile.gettempdir(), "sessions"),
        description="Directory for the file backend"
    )
    gc_max_lifetime: int = Field(
        default=DEFAULT_LIFETIME,
        ge=1,
        description="Age in seconds after which the file backend's gc() removes records"
    )

    # Redis
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL for the redis and redis_cluster drivers"
    )
    redis_prefix: str = Field(
        default="sess_",
        description="Key prefix for session records in Redis or a cache"
    )
    redis_ttl: int = Field(
        default=0,
        ge=0,
        description="Store-level record expiry in seconds (0 = no expiry)"
    )
    sentinel_hosts: List[str] = Field(
        default_factory=list,
        description="Sentinel addresses as host:port strings"
    )
    sentinel_service: Optional[str] = Field(
        default=None,
        description="Sentinel service (master group) name"
    )
    redis_password: Optional[str] = Field(
        default=None,
        description="Password for the Sentinel-managed master"
    )
    redis_db: Optional[int] = Field(
        default=None,
        ge=0,
        description="Database index for the Sentinel-managed master"
    )

    # Retry policy for network backends
    retries: int = Field(
        default=DEFAULT_RETRIES,
        ge=0,
        le=10,
        description="Additional attempts after a failed backend call"
    )
    retry_delay_ms: int = Field(
        default=DEFAULT_RETRY_DELAY_MS,
        ge=0,
        le=10000,
        description="Fixed pause between backend attempts in milliseconds"
    )

    # Cookie attributes
    cookie_path: str = Field(default="/", description="Session cookie path")
    cookie_domain: Optional[str] = Field(default=None, description="Session cookie domain")
    cookie_secure: Optional[bool] = Field(
        default=None,
        description="Force the Secure flag; unset follows the request scheme"
    )
    cookie_httponly: bool = Field(default=True, description="Session cookie HttpOnly flag")
    cookie_samesite: str = Field(default="Lax", description="SameSite policy: Lax, Strict or None")
    cookie_lifetime: int = Field(
        default=DEFAULT_LIFETIME,
        ge=0,
        description="Cookie lifetime in seconds"
    )
    cookie_expires: Optional[int] = Field(
        default=None,
        description="Fixed cookie expiry as a unix timestamp (overrides lifetime)"
    )

    # Encryption
    encryption_key: Optional[str] = Field(
        default=None,
        description="Primary key: 64 hex chars or base64 of 32 bytes"
    )
    previous_encryption_keys: List[str] = Field(
        default_factory=list,
        description="Older keys still accepted for decryption"
    )
    allow_plaintext: bool = Field(
        default=False,
        description="Accept and upgrade payloads written before encryption was enabled"
    )

    # Observability
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    model_config = SettingsConfigDict(
        env_prefix="SESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("driver")
    @classmethod
    def validate_driver(cls, v: str) -> str:
        """Validate that driver names a known backend."""
        v = v.strip().lower()
        if v not in DRIVERS:
            raise ValueError(f"driver must be one of: {', '.join(DRIVERS)}")
        return v

    @field_validator("cookie_samesite")
    @classmethod
    def validate_cookie_samesite(cls, v: str) -> str:
        """Normalize SameSite to its canonical capitalization."""
        for value in SAMESITE_VALUES:
            if v.strip().lower() == value.lower():
                return value
        raise ValueError(f"cookie_samesite must be one of: {', '.join(SAMESITE_VALUES)}")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v: Optional[str]) -> Optional[str]:
        """Reject key material that does not resolve to 32 bytes."""
        if v is None or not v.strip():
            return None
        try:
            normalize_key(v)
        except EncryptionConfigError as e:
            raise ValueError(e.message) from e
        return v.strip()

    @field_validator("previous_encryption_keys")
    @classmethod
    def validate_previous_encryption_keys(cls, v: List[str]) -> List[str]:
        """Each previous key must resolve to 32 bytes as well."""
        validated = []
        for key in v:
            try:
                normalize_key(key)
            except EncryptionConfigError as e:
                raise ValueError(f"previous_encryption_keys: {e.message}") from e
            validated.append(key.strip())
        return validated

    @field_validator("sentinel_hosts")
    @classmethod
    def validate_sentinel_hosts(cls, v: List[str]) -> List[str]:
        """Validate host:port format of sentinel addresses."""
        for address in v:
            host, _, port = address.strip().rpartition(":")
            if not host or not port.isdigit():
                raise ValueError(f"Invalid sentinel address: {address}. Expected host:port")
        return [address.strip() for address in v]

    @model_validator(mode="after")
    def validate_backend_config(self) -> "SessionSettings":
        """Validate that the selected driver has what it needs."""
        if self.driver in REDIS_URL_DRIVERS and not self.redis_url:
            if self.environment != Environment.DEVELOPMENT:
                raise ValueError(
                    f"redis_url is required when driver is '{self.driver}' "
                    "in non-development environments"
                )
        if self.driver == "redis_sentinel":
            if not self.sentinel_hosts or not self.sentinel_service:
                raise ValueError(
                    "sentinel_hosts and sentinel_service are required "
                    "when driver is 'redis_sentinel'"
                )
        if self.previous_encryption_keys and not self.encryption_key:
            raise ValueError("previous_encryption_keys requires encryption_key")
        return self

    def sentinel_addresses(self) -> List[Tuple[str, int]]:
        """Sentinel hosts as (host, port) pairs."""
        addresses = []
        for address in self.sentinel_hosts:
            host, _, port = address.rpartition(":")
            addresses.append((host, int(port)))
        return addresses

    def cookie_config(self) -> CookieConfig:
        """Cookie attributes described by these settings."""
        return CookieConfig(
            path=self.cookie_path,
            secure=self.cookie_secure,
            httponly=self.cookie_httponly,
            samesite=self.cookie_samesite,
            lifetime=self.cookie_lifetime,
            expires=self.cookie_expires,
            domain=self.cookie_domain,
        )

    def encryption_keyset(self) -> Optional[EncryptionKeySet]:
        """Key set for the encryption layer, or None when encryption is off."""
        if not self.encryption_key:
            return None
        return EncryptionKeySet.from_config(
            self.encryption_key,
            self.previous_encryption_keys,
            self.allow_plaintext,
        )


class ConfigurationError(SessionException):
    """Exception raised when configuration validation fails."""

    default_code = ErrorCode.CONFIGURATION_ERROR

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(
            self.format_error_message(message),
            details={"missing_fields": self.missing_fields, "invalid_fields": self.invalid_fields},
        )

    def format_error_message(self, message: str) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> SessionSettings:
    """
    Factory function to create SessionSettings for a specific environment.

    Detects the environment from the ENVIRONMENT variable (if not provided)
    and loads the matching environment-specific .env file.

    Raises:
        ConfigurationError: If settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)
    existing_env_files = [f for f in env_files if Path(f).exists()] or list(env_files)

    try:
        class EnvironmentSettings(SessionSettings):
            model_config = SettingsConfigDict(
                env_prefix="SESSION_",
                env_file=tuple(existing_env_files),
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings(environment=environment)
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        # Extract field-level errors from Pydantic ValidationError
        if hasattr(e, "errors"):
            for error in e.errors():
                field_name = ".".join(str(loc) for loc in error.get("loc", [])) or "__root__"
                if error.get("type", "") == "missing":
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name] = error.get("msg", str(error))

        raise ConfigurationError(
            f"Failed to load session configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[SessionSettings] = None


def get_settings() -> SessionSettings:
    """
    Get the session settings singleton.

    Settings are loaded once and cached for subsequent calls.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    This is primarily useful for testing to allow reloading settings
    with different environment variables.
    """
    global _settings_cache
    _settings_cache = None


def validate_startup(settings: Optional[SessionSettings] = None) -> None:
    """
    Validate settings that depend on the runtime environment.

    Raises:
        ConfigurationError: If any check fails.
    """
    settings = settings or get_settings()
    validation_errors = {}

    if settings.driver == "file":
        path = Path(settings.file_path)
        if path.exists() and not path.is_dir():
            validation_errors["file_path"] = f"Session path is not a directory: {path}"

    if settings.environment == Environment.PRODUCTION:
        if settings.cookie_secure is False:
            validation_errors["cookie_secure"] = (
                "Production environment must not disable the Secure cookie flag."
            )
        if settings.driver == "memory":
            validation_errors["driver"] = (
                "The memory driver loses sessions on restart and is not allowed in production."
            )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )
