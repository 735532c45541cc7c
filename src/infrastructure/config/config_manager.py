"""
Centralized Configuration Manager
=================================
All runtime settings of the expansion planner in one place.

Main features:
- load from environment variables (after python-dotenv)
- validate at startup (validate)
- per-dependency resilience settings
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.core.rate_limiter import RateLimitConfig
from src.core.resilient_client import (
    GEOCODING_RESILIENCE,
    MARKET_DATA_RESILIENCE,
    REASONING_RESILIENCE,
    CircuitBreakerConfig,
    ResilienceConfig,
)

logger = logging.getLogger(__name__)

CACHE_BACKENDS = ("sqlite", "memory")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


@dataclass
class AppConfig:
    """
    Application settings

    Loaded from the environment; every field has a working default except
    the API keys.
    """

    # Paths
    feature_flags_path: Path = field(default_factory=lambda: Path.cwd() / "config" / "feature_flags.json")

    # API Keys (from env)
    openai_api_key: str | None = None
    geocoding_api_key: str | None = None
    geocoding_base_url: str = "https://maps.googleapis.com/maps/api/geocode/json"

    # Cache
    cache_backend: str = "sqlite"
    cache_db_path: str = "data/expansion_cache.db"

    # Timeouts (seconds)
    market_analysis_timeout: float = 90.0
    geocoding_timeout: float = 10.0

    # Resilience, one block per external dependency
    reasoning: ResilienceConfig = REASONING_RESILIENCE
    market_data: ResilienceConfig = MARKET_DATA_RESILIENCE
    geocoding: ResilienceConfig = GEOCODING_RESILIENCE

    # Server
    host: str = "0.0.0.0"
    port: int = 8001

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load settings from environment variables"""
        config = cls()

        config.openai_api_key = os.environ.get("OPENAI_API_KEY")
        config.geocoding_api_key = os.environ.get("GEOCODING_API_KEY")
        config.geocoding_base_url = os.environ.get("GEOCODING_BASE_URL", config.geocoding_base_url)
        config.cache_backend = os.environ.get("EXPANSION_CACHE_BACKEND", config.cache_backend).lower()
        config.cache_db_path = os.environ.get("EXPANSION_CACHE_DB", config.cache_db_path)
        config.market_analysis_timeout = _env_float("MARKET_ANALYSIS_TIMEOUT", config.market_analysis_timeout)
        config.geocoding_timeout = _env_float("GEOCODING_TIMEOUT", config.geocoding_timeout)
        config.host = os.environ.get("HOST", config.host)
        config.port = _env_int("PORT", config.port)
        if os.environ.get("FEATURE_FLAGS_PATH"):
            config.feature_flags_path = Path(os.environ["FEATURE_FLAGS_PATH"])

        config.reasoning = cls._resilience_from_env("REASONING", config.reasoning)
        config.market_data = cls._resilience_from_env("MARKET_DATA", config.market_data)
        config.geocoding = cls._resilience_from_env("GEOCODING", config.geocoding)

        return config

    @staticmethod
    def _resilience_from_env(prefix: str, default: ResilienceConfig) -> ResilienceConfig:
        """{PREFIX}_RPS, _RETRIES, _BASE_DELAY, _MAX_DELAY, _FAILURE_THRESHOLD, _RESET_TIMEOUT"""
        limit = default.rate_limit
        breaker = default.circuit_breaker
        return ResilienceConfig(
            rate_limit=RateLimitConfig(
                requests_per_second=_env_float(f"{prefix}_RPS", limit.requests_per_second),
                retry_attempts=_env_int(f"{prefix}_RETRIES", limit.retry_attempts),
                base_delay=_env_float(f"{prefix}_BASE_DELAY", limit.base_delay),
                max_delay=_env_float(f"{prefix}_MAX_DELAY", limit.max_delay),
            ),
            circuit_breaker=CircuitBreakerConfig(
                failure_threshold=_env_int(f"{prefix}_FAILURE_THRESHOLD", breaker.failure_threshold),
                reset_timeout=_env_float(f"{prefix}_RESET_TIMEOUT", breaker.reset_timeout),
                success_threshold=breaker.success_threshold,
            ),
        )

    def validate(self) -> list[str]:
        """Validate settings

        Returns the list of errors; an empty list means the configuration is
        usable. Missing optional pieces are logged as warnings.
        """
        errors: list[str] = []
        warnings: list[str] = []

        # === required ===
        if not self.openai_api_key:
            errors.append("OPENAI_API_KEY is not set")

        # === optional ===
        if not self.geocoding_api_key:
            warnings.append("GEOCODING_API_KEY is not set; simple expansion cannot geocode suggestions")

        if not self.feature_flags_path.exists():
            warnings.append(f"feature_flags.json not found, using defaults: {self.feature_flags_path}")

        # === ranges ===
        if self.cache_backend not in CACHE_BACKENDS:
            errors.append(f"EXPANSION_CACHE_BACKEND must be one of {CACHE_BACKENDS}, got {self.cache_backend}")

        if self.port < 1 or self.port > 65535:
            errors.append(f"PORT out of range: 1-65535 required, got {self.port}")

        if self.market_analysis_timeout <= 0:
            errors.append(f"MARKET_ANALYSIS_TIMEOUT must be positive, got {self.market_analysis_timeout}")

        for name, resilience in (
            ("REASONING", self.reasoning),
            ("MARKET_DATA", self.market_data),
            ("GEOCODING", self.geocoding),
        ):
            if resilience.rate_limit.requests_per_second <= 0:
                errors.append(f"{name}_RPS must be positive")
            if resilience.rate_limit.retry_attempts < 0:
                errors.append(f"{name}_RETRIES must not be negative")
            if resilience.circuit_breaker.failure_threshold < 1:
                errors.append(f"{name}_FAILURE_THRESHOLD must be at least 1")

        for w in warnings:
            logger.warning(f"[Config Warning] {w}")

        return errors

    @classmethod
    def from_env_validated(cls, fail_fast: bool = True) -> "AppConfig":
        """Load from environment and validate

        Args:
            fail_fast: raise RuntimeError when required settings are missing;
                       otherwise log the errors and return the config.

        Raises:
            RuntimeError: fail_fast=True and validation failed
        """
        config = cls.from_env()
        errors = config.validate()

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            if fail_fast:
                raise RuntimeError(error_msg)
            logger.error(error_msg)

        return config

    def to_dict(self) -> dict[str, Any]:
        """Non-secret view of the settings"""
        return {
            "cache_backend": self.cache_backend,
            "cache_db_path": self.cache_db_path,
            "geocoding_base_url": self.geocoding_base_url,
            "market_analysis_timeout": self.market_analysis_timeout,
            "openai_api_key_set": bool(self.openai_api_key),
            "geocoding_api_key_set": bool(self.geocoding_api_key),
            "port": self.port,
        }
