"""Central Configuration System for MomentSense.

This module is the single source of truth for application configuration.
Every other module that needs settings imports from here.

The configuration system supports:
- Multi-source configuration (config file > environment variables > defaults)
- API key lookup for the narrative model and weather service (env > keyring)
- Tunable quotas, cache lifetimes and external call timeouts

Example:
    >>> from momentsense.config import get_config, get_api_key
    >>>
    >>> cfg = get_config()
    >>> print(cfg.rate_limit.max_requests)  # 30
    >>>
    >>> if cfg.is_ai_available():
    ...     key = get_api_key("gemini")

Config File Format (YAML):
    ```yaml
    ai:
      mode: enabled  # enabled | disabled
      narrative_model: gemini-2.0-flash
      temperature: 0.7
      max_output_tokens: 2000
      timeout_seconds: 30

    rate_limit:
      max_requests: 30
      window_seconds: 60
      sweep_interval_seconds: 300

    cache:
      default_ttl_seconds: 300
      venue_ttl_seconds: 86400
      sweep_interval_seconds: 30

    enrichment:
      search_timeout_seconds: 8
      page_timeout_seconds: 8
      weather_timeout_seconds: 10

    server:
      host: 127.0.0.1
      port: 8000

    debug: false
    log_level: INFO
    ```
"""

from __future__ import annotations

import functools
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import keyring
import keyring.errors
import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings

# Configure module logger - never log secrets
logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigFileError(ConfigError):
    """Exception raised for YAML config file issues."""

    pass


class APIKeyNotFoundError(ConfigError):
    """No API key is configured for a service.

    Attributes:
        service: The service whose key is missing.
    """

    def __init__(self, service: str, message: str | None = None) -> None:
        self.service = service
        super().__init__(message or f"No API key found for {service}")


# =============================================================================
# Enums
# =============================================================================


class AIMode(str, Enum):
    """Narrative model activation mode.

    DISABLED keeps every request on the local fallback path.
    """

    ENABLED = "enabled"
    DISABLED = "disabled"


class KeySource(str, Enum):
    """Where an API key was found."""

    ENVIRONMENT = "environment"
    KEYRING = "keyring"
    NONE = "none"


# =============================================================================
# Configuration Models
# =============================================================================


class AIConfig(BaseModel):
    """Configuration for the narrative model (Gemini).

    Attributes:
        mode: Activation mode. When disabled every moment is synthesized locally.
        narrative_model: Gemini model identifier used for moment narratives.
        temperature: Sampling temperature (0.0=deterministic, 2.0=creative).
        max_output_tokens: Maximum tokens in a model response.
        timeout_seconds: Hard deadline for one narrative call.

    Example:
        >>> ai_config = AIConfig(mode=AIMode.DISABLED)
        >>> ai_config.is_enabled()
        False
    """

    mode: AIMode = Field(default=AIMode.ENABLED, description="Narrative model mode.")
    narrative_model: str = Field(
        default="gemini-2.0-flash",
        description="Model used for moment narrative synthesis.",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=2000, ge=100, le=32000)
    timeout_seconds: float = Field(default=30.0, gt=0, le=600)

    def is_enabled(self) -> bool:
        """Check if the narrative model may be called at all."""
        return self.mode == AIMode.ENABLED


class RateLimitConfig(BaseModel):
    """Fixed-window request quota settings.

    Attributes:
        max_requests: Requests admitted per identifier per window.
        window_seconds: Window length.
        sweep_interval_seconds: How often expired windows are purged.
        bypass_token: When set, quota enforcement is disabled (load testing).
    """

    max_requests: int = Field(default=30, ge=1)
    window_seconds: float = Field(default=60.0, gt=0)
    sweep_interval_seconds: float = Field(default=300.0, gt=0)
    bypass_token: SecretStr | None = Field(default=None)

    @property
    def bypass_enabled(self) -> bool:
        return self.bypass_token is not None and bool(self.bypass_token.get_secret_value())


class CacheConfig(BaseModel):
    """Venue enrichment cache lifetimes."""

    default_ttl_seconds: float = Field(default=300.0, gt=0)
    venue_ttl_seconds: float = Field(default=86400.0, gt=0)
    sweep_interval_seconds: float = Field(default=30.0, gt=0)


class EnrichmentConfig(BaseModel):
    """External enrichment endpoints and deadlines."""

    wikipedia_api_url: str = Field(default="https://en.wikipedia.org/w/api.php")
    openweather_api_url: str = Field(
        default="https://api.openweathermap.org/data/2.5/weather"
    )
    search_timeout_seconds: float = Field(default=8.0, gt=0)
    page_timeout_seconds: float = Field(default=8.0, gt=0)
    weather_timeout_seconds: float = Field(default=10.0, gt=0)
    user_agent: str = Field(
        default="MomentSense/0.1 (https://github.com/momentsense/moment-sense)"
    )


class ServerConfig(BaseModel):
    """HTTP server settings used by `momentsense serve`."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1, le=65535)


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Combines all configuration sections and supports loading from environment
    variables with the MOMENTSENSE_ prefix (nested with ``__``, for example
    ``MOMENTSENSE_RATE_LIMIT__MAX_REQUESTS=100``).

    Attributes:
        ai: Narrative model settings.
        rate_limit: Request quota settings.
        cache: Venue cache settings.
        enrichment: External source settings.
        server: HTTP server settings.
        debug: Enable debug mode (verbose logging, tracebacks with locals).
        verbose: Enable verbose output to console.
        log_level: Default log level.
    """

    ai: AIConfig = Field(default_factory=AIConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    debug: bool = Field(default=False, description="Enable debug mode.")
    verbose: bool = Field(default=False, description="Enable verbose output.")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    model_config = {
        "env_prefix": "MOMENTSENSE_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v

    def is_ai_available(self) -> bool:
        """Check if the narrative model is enabled AND a key is configured."""
        if not self.ai.is_enabled():
            return False
        return APIKeyManager("gemini").get_key() is not None

    def to_summary(self) -> dict[str, Any]:
        """Flatten the configuration for display, without secrets."""
        summary = self.model_dump(mode="json", exclude={"rate_limit": {"bypass_token"}})
        summary["rate_limit"]["bypass_enabled"] = self.rate_limit.bypass_enabled
        return summary


# =============================================================================
# API Key Management
# =============================================================================


class APIKeyManager:
    """Lookup of API keys for the external services MomentSense calls.

    Retrieves keys trying sources in priority order:
    1. Environment variable (GEMINI_API_KEY / OPENWEATHER_API_KEY)
    2. System keyring (macOS Keychain, Windows Credential Manager, etc.)

    Keys are wrapped in SecretStr to prevent accidental logging.

    Example:
        >>> manager = APIKeyManager("openweather")
        >>> key = manager.get_key()
        >>> if key:
        ...     print(manager.get_key_source())
    """

    KEYRING_SERVICE = "moment-sense"
    ENV_VARS = {
        "gemini": "GEMINI_API_KEY",
        "openweather": "OPENWEATHER_API_KEY",
    }

    def __init__(self, service: str) -> None:
        if service not in self.ENV_VARS:
            raise ConfigError(f"Unknown API key service: {service}")
        self.service = service
        self._cached_key: SecretStr | None = None
        self._key_source: KeySource = KeySource.NONE

    def get_key(self) -> SecretStr | None:
        """Retrieve the key, or None if no source has one."""
        if self._cached_key is not None:
            return self._cached_key

        key = self._read_from_environment()
        if key:
            self._cached_key = SecretStr(key)
            self._key_source = KeySource.ENVIRONMENT
            logger.debug(f"{self.service} API key loaded from environment variable")
            return self._cached_key

        key = self._read_from_keyring()
        if key:
            self._cached_key = SecretStr(key)
            self._key_source = KeySource.KEYRING
            logger.debug(f"{self.service} API key loaded from system keyring")
            return self._cached_key

        self._key_source = KeySource.NONE
        return None

    def get_key_source(self) -> KeySource:
        return self._key_source

    def store_key(self, key: str) -> bool:
        """Store a key in the system keyring.

        Returns:
            True if the key was stored.
        """
        try:
            keyring.set_password(self.KEYRING_SERVICE, self.service, key)
        except keyring.errors.KeyringError as e:
            logger.warning(f"Could not store {self.service} key in keyring: {type(e).__name__}")
            return False
        self._cached_key = None
        return True

    def _read_from_environment(self) -> str | None:
        value = os.environ.get(self.ENV_VARS[self.service], "").strip()
        return value or None

    def _read_from_keyring(self) -> str | None:
        try:
            return keyring.get_password(self.KEYRING_SERVICE, self.service)
        except keyring.errors.KeyringError as e:
            logger.debug(f"Keyring lookup failed: {type(e).__name__}")
            return None


# =============================================================================
# Module-Level Functions
# =============================================================================

CONFIG_SEARCH_PATHS = [
    Path("./momentsense.yaml"),
    Path("./momentsense.yml"),
    Path.home() / ".momentsense" / "config.yaml",
]


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from file, environment, and defaults.

    Configuration priority (highest wins):
    1. Config file (if provided or found at a default location)
    2. Environment variables (MOMENTSENSE_*)
    3. In-code defaults

    If no config file is found, uses environment and defaults only.
    If the config file is malformed, logs a warning and ignores it.

    Args:
        path: Optional path to a config file. If None, searches default locations.

    Returns:
        Fully-populated AppConfig instance.

    Example:
        >>> config = load_config(Path("./momentsense.yaml"))
    """
    config_data: dict[str, Any] = {}

    config_file: Path | None = None
    for search_path in [path, *CONFIG_SEARCH_PATHS]:
        if search_path is not None and search_path.exists():
            config_file = search_path
            break

    if config_file is not None:
        try:
            config_data = _read_config_file(config_file)
        except ConfigFileError as e:
            logger.warning(f"{e}. Using defaults.")

    try:
        return AppConfig(**config_data)
    except ValueError as e:
        logger.warning(f"Error parsing config values: {e}. Using defaults.")
        return AppConfig()


def _read_config_file(config_file: Path) -> dict[str, Any]:
    try:
        content = config_file.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigFileError(
            f"Failed to read config file {config_file}: {type(e).__name__}"
        ) from e

    if not content.strip():
        return {}

    try:
        loaded = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigFileError(f"Failed to parse config file {config_file}: {e}") from e

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigFileError(f"Config file {config_file} has unexpected format")
    return loaded


@functools.lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Get the cached configuration singleton."""
    return load_config()


def get_api_key(service: str) -> SecretStr:
    """Get the API key for a service.

    Args:
        service: "gemini" or "openweather".

    Raises:
        APIKeyNotFoundError: If no key is configured in any source.
    """
    key = APIKeyManager(service).get_key()
    if key is None:
        env_var = APIKeyManager.ENV_VARS[service]
        raise APIKeyNotFoundError(
            service,
            f"No {service} API key found. Set {env_var} or store it in the system keyring.",
        )
    return key


def reset_config() -> None:
    """Clear the configuration cache for testing."""
    get_config.cache_clear()
