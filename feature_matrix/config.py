"""
Feature Matrix Configuration - Endpoints, concurrency and cache settings.

Endpoint URLs can be overridden from the environment.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Optional

from .exceptions import ConfigurationError
from .models import SUPPORTED_SIGNALS


DEFAULT_VIZ_URL = "http://localhost:8000/viz"
DEFAULT_API_URL = "http://localhost:8000/api"
DEFAULT_CONCURRENCY_LIMIT = 5
DEFAULT_CACHE_TTL_SECONDS = 300  # 5 minutes

ENV_VIZ_URL = "FEATURE_MATRIX_VIZ_URL"
ENV_API_URL = "FEATURE_MATRIX_API_URL"
ENV_TIMEOUT = "FEATURE_MATRIX_TIMEOUT"


@dataclass
class FeatureMatrixConfig:
    """Main configuration for the feature matrix loader."""

    # Endpoints
    viz_base_url: str = DEFAULT_VIZ_URL
    api_base_url: str = DEFAULT_API_URL

    # Scheduling
    concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT

    # Cache settings
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS

    # None means no client-side timeout; a hung request holds its slot
    request_timeout_seconds: Optional[float] = None

    supported_signals: tuple[str, ...] = field(default=SUPPORTED_SIGNALS)

    @classmethod
    def from_env(cls) -> "FeatureMatrixConfig":
        """
        Build configuration, taking endpoint overrides from the environment.

        Raises:
            ConfigurationError: FEATURE_MATRIX_TIMEOUT is not a number
        """
        timeout = os.environ.get(ENV_TIMEOUT)
        try:
            timeout_seconds = float(timeout) if timeout else None
        except ValueError as e:
            raise ConfigurationError(
                f"{ENV_TIMEOUT} must be a number of seconds, got {timeout!r}",
                config_key=ENV_TIMEOUT,
                original_error=e,
            )
        return cls(
            viz_base_url=os.environ.get(ENV_VIZ_URL, DEFAULT_VIZ_URL),
            api_base_url=os.environ.get(ENV_API_URL, DEFAULT_API_URL),
            request_timeout_seconds=timeout_seconds,
        )

    def validate(self) -> list[str]:
        """Validate configuration. Returns a list of error messages."""
        errors = []
        if not self.viz_base_url.startswith(("http://", "https://")):
            errors.append(f"viz_base_url must be an http(s) URL: {self.viz_base_url!r}")
        if not self.api_base_url.startswith(("http://", "https://")):
            errors.append(f"api_base_url must be an http(s) URL: {self.api_base_url!r}")
        if self.concurrency_limit < 1:
            errors.append("concurrency_limit must be at least 1")
        if self.cache_ttl_seconds <= 0:
            errors.append("cache_ttl_seconds must be positive")
        if self.request_timeout_seconds is not None and self.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")
        return errors

    def filter_signals(self, signals: list[str]) -> list[str]:
        """Keep only signals the viz service can compute features for."""
        return [s for s in signals if s in self.supported_signals]

    def to_dict(self) -> dict[str, Any]:
        return {
            "viz_base_url": self.viz_base_url,
            "api_base_url": self.api_base_url,
            "concurrency_limit": self.concurrency_limit,
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "request_timeout_seconds": self.request_timeout_seconds,
            "supported_signals": list(self.supported_signals),
        }


# Default configuration instance
_default_config: Optional[FeatureMatrixConfig] = None


def get_config() -> FeatureMatrixConfig:
    """Get the default configuration."""
    global _default_config
    if _default_config is None:
        _default_config = FeatureMatrixConfig.from_env()
    return _default_config


def set_config(config: FeatureMatrixConfig) -> None:
    """Set the default configuration."""
    global _default_config
    _default_config = config
