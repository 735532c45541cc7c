"""
Model / Operation Registry
==========================
Maps a logical operation ("market analysis", "strategic scoring", ...) to a
concrete model identifier and call parameters.

Resolution order for the model of an operation:
1. AI_<OPERATION>_MODEL environment variable (e.g. AI_MARKET_ANALYSIS_MODEL)
2. AI_PREMIUM_ANALYSIS_MODEL when premium=True
3. the operation's default model
"""

import logging
import os
from dataclasses import dataclass, replace
from enum import Enum

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    MARKET_ANALYSIS = "market_analysis"
    ZONE_IDENTIFICATION = "zone_identification"
    LOCATION_DISCOVERY = "location_discovery"
    VIABILITY_VALIDATION = "viability_validation"
    VIABILITY_ESCALATION = "viability_escalation"
    STRATEGIC_SCORING = "strategic_scoring"
    SCENARIO_NARRATIVE = "scenario_narrative"
    PORTFOLIO_INSIGHTS = "portfolio_insights"
    SIMPLE_EXPANSION = "simple_expansion"
    RATIONALE_GENERATION = "rationale_generation"


class UseCase(str, Enum):
    DEFAULT = "default"
    CONTINUOUS_INTELLIGENCE = "continuous_intelligence"
    NETWORK_ANALYSIS = "network_analysis"


@dataclass(frozen=True)
class ModelPricing:
    """USD per 1M tokens"""

    input_per_million: float
    output_per_million: float


@dataclass(frozen=True)
class ModelConfig:
    model: str
    max_tokens: int
    temperature: float
    reasoning_effort: str
    timeout: float = 60.0


@dataclass(frozen=True)
class OperationProfile:
    default_model: str
    max_tokens: int | None = None
    reasoning_effort: str | None = None
    timeout: float = 60.0


PRICING: dict[str, ModelPricing] = {
    "gpt-5.2": ModelPricing(2.50, 10.00),
    "gpt-5-mini": ModelPricing(0.25, 2.00),
    "gpt-5-nano": ModelPricing(0.05, 0.40),
    "o1": ModelPricing(15.00, 60.00),
    "o1-mini": ModelPricing(3.00, 12.00),
}

BASE_CONFIGS: dict[str, ModelConfig] = {
    "gpt-5.2": ModelConfig("gpt-5.2", 16000, 0.3, "medium"),
    "gpt-5-mini": ModelConfig("gpt-5-mini", 16000, 0.3, "low"),
    "gpt-5-nano": ModelConfig("gpt-5-nano", 8000, 0.2, "low"),
    # o-series models only accept temperature 1.0
    "o1": ModelConfig("o1", 32000, 1.0, "high"),
    "o1-mini": ModelConfig("o1-mini", 16000, 1.0, "medium"),
}

OPERATION_PROFILES: dict[OperationType, OperationProfile] = {
    OperationType.MARKET_ANALYSIS: OperationProfile("gpt-5-mini", 4000, "medium", timeout=90.0),
    OperationType.ZONE_IDENTIFICATION: OperationProfile("gpt-5-mini", 4000, "medium", timeout=90.0),
    OperationType.LOCATION_DISCOVERY: OperationProfile("gpt-5-nano", 6000, "low", timeout=60.0),
    OperationType.VIABILITY_VALIDATION: OperationProfile("gpt-5-nano", 1000, "low", timeout=30.0),
    OperationType.VIABILITY_ESCALATION: OperationProfile("gpt-5-mini", 1500, "medium", timeout=45.0),
    OperationType.STRATEGIC_SCORING: OperationProfile("gpt-5-mini", 2000, "medium", timeout=60.0),
    OperationType.SCENARIO_NARRATIVE: OperationProfile("gpt-5-mini", 1500, "low", timeout=45.0),
    OperationType.PORTFOLIO_INSIGHTS: OperationProfile("gpt-5-mini", 1500, "low", timeout=45.0),
    OperationType.SIMPLE_EXPANSION: OperationProfile("gpt-5-mini", 16000, "medium", timeout=120.0),
    OperationType.RATIONALE_GENERATION: OperationProfile("gpt-5-nano", 800, "low", timeout=30.0),
}

DEFAULT_PREMIUM_MODEL = "gpt-5.2"


class ModelRegistry:
    """
    Resolves call parameters for an operation

    Usage:
        registry = ModelRegistry()
        cfg = registry.get_config(OperationType.MARKET_ANALYSIS)
        cost = registry.calculate_cost(cfg.model, 1200, 800)
    """

    def __init__(
        self,
        environ: dict[str, str] | None = None,
        timeouts: dict[OperationType, float] | None = None,
    ):
        """
        Args:
            environ: environment mapping for model overrides (defaults to os.environ)
            timeouts: per-operation timeout overrides in seconds
        """
        self._environ = environ if environ is not None else os.environ
        self._timeouts = dict(timeouts or {})

    def resolve_model(self, operation: OperationType, premium: bool = False) -> str:
        env_key = f"AI_{operation.value.upper()}_MODEL"
        override = self._environ.get(env_key)
        if override:
            model = override
        elif premium:
            model = self._environ.get("AI_PREMIUM_ANALYSIS_MODEL", DEFAULT_PREMIUM_MODEL)
        else:
            model = OPERATION_PROFILES[operation].default_model

        if model not in BASE_CONFIGS:
            logger.warning(f"Unknown model '{model}' for {operation.value}, using gpt-5-mini")
            model = "gpt-5-mini"
        return model

    def get_config(
        self,
        operation: OperationType,
        premium: bool = False,
        use_case: UseCase = UseCase.DEFAULT,
    ) -> ModelConfig:
        """
        Build the call parameters for one operation.

        The operation profile narrows the model's base token budget and effort;
        the use case then adjusts the result (continuous intelligence is capped
        at 8000 tokens with low effort, network analysis doubles up to 32000).
        """
        profile = OPERATION_PROFILES[operation]
        model = self.resolve_model(operation, premium)
        config = replace(
            BASE_CONFIGS[model], timeout=self._timeouts.get(operation, profile.timeout)
        )

        if profile.max_tokens is not None:
            config = replace(config, max_tokens=min(config.max_tokens, profile.max_tokens))
        if profile.reasoning_effort is not None:
            config = replace(config, reasoning_effort=profile.reasoning_effort)

        if use_case == UseCase.CONTINUOUS_INTELLIGENCE:
            config = replace(config, max_tokens=min(config.max_tokens, 8000), reasoning_effort="low")
        elif use_case == UseCase.NETWORK_ANALYSIS:
            config = replace(config, max_tokens=min(config.max_tokens * 2, 32000))

        return config

    @staticmethod
    def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
        pricing = PRICING.get(model, PRICING["gpt-5-mini"])
        input_cost = (input_tokens / 1_000_000) * pricing.input_per_million
        output_cost = (output_tokens / 1_000_000) * pricing.output_per_million
        return input_cost + output_cost

    @staticmethod
    def list_models() -> list[str]:
        return list(BASE_CONFIGS)
