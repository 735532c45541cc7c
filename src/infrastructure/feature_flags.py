"""Feature flags for the expansion planner.

Three levels of override (highest priority first):
1. Environment variable: FF_{SECTION}_{KEY} (e.g., FF_EXPANSION_USE_SIMPLE_EXPANSION=false)
2. JSON config file: config/feature_flags.json
3. Default value passed to get_flag()

Usage:
    from src.infrastructure.feature_flags import FeatureFlags

    flags = FeatureFlags()
    if flags.use_simple_expansion():
        # single-call generation
    else:
        # full pipeline
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

PIPELINE_STAGES = (
    "market_analysis",
    "zone_identification",
    "location_discovery",
    "viability_validation",
    "strategic_scoring",
)


class FeatureFlags:
    """Feature flag reader with ENV > JSON > default precedence."""

    def __init__(self, config_path: str | Path | None = None) -> None:
        self._config_path = Path(config_path) if config_path is not None else self._find_config_path()
        self._config: dict[str, dict[str, Any]] = {}
        self._load_config()

    @staticmethod
    def _find_config_path() -> Path:
        """Find feature_flags.json by walking up from this file's location."""
        current = Path(__file__).resolve().parent
        for _ in range(5):
            candidate = current / "config" / "feature_flags.json"
            if candidate.exists():
                return candidate
            current = current.parent
        return Path("config/feature_flags.json")

    def _load_config(self) -> None:
        """Load JSON config file. A missing file means an empty config."""
        if not self._config_path.exists():
            self._config = {}
            return
        try:
            with open(self._config_path, encoding="utf-8") as f:
                self._config = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable feature flag file {self._config_path}: {e}")
            self._config = {}

    def reload(self) -> None:
        """Reload config from disk."""
        self._load_config()

    def get_flag(self, section: str, key: str, default: bool = False) -> bool:
        """Get a feature flag value with ENV > JSON > default precedence.

        Args:
            section: Config section (e.g., "expansion", "pipeline")
            key: Flag key (e.g., "use_simple_expansion")
            default: Default value if not found anywhere
        """
        env_val = os.environ.get(f"FF_{section.upper()}_{key.upper()}")
        if env_val is not None:
            return env_val.lower() in ("true", "1", "yes", "on")

        section_config = self._config.get(section, {})
        if key in section_config:
            return bool(section_config[key])

        return default

    # ── Convenience methods ──────────────────────────────────────────

    def use_simple_expansion(self) -> bool:
        """Single-call generation instead of the five-stage pipeline."""
        return self.get_flag("expansion", "use_simple_expansion", default=True)

    def enable_ai_rationale(self) -> bool:
        """Whether AI-backed candidate generation is allowed at all."""
        return self.get_flag("expansion", "enable_ai_rationale", default=True)

    def is_stage_enabled(self, stage: str) -> bool:
        if stage not in PIPELINE_STAGES:
            raise ValueError(f"Unknown pipeline stage: {stage}")
        return self.get_flag("pipeline", f"enable_{stage}", default=True)

    def snapshot(self) -> dict[str, bool]:
        """Effective values of every known flag (health endpoint)."""
        flags = {
            "expansion.use_simple_expansion": self.use_simple_expansion(),
            "expansion.enable_ai_rationale": self.enable_ai_rationale(),
        }
        for stage in PIPELINE_STAGES:
            flags[f"pipeline.enable_{stage}"] = self.is_stage_enabled(stage)
        return flags
