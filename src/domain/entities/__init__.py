"""
Domain Entities
===============
Core business entities

All entities here are:
- pydantic BaseModel based
- free of infrastructure dependencies
- immutable where produced by a pipeline stage
"""

from src.domain.entities.candidate import ExpansionCandidate, ViabilityCheck
from src.domain.entities.market import (
    CompetitiveGap,
    CompetitorLocation,
    DemographicInsight,
    MarketAnalysis,
    MarketAnalysisPayload,
    MarketOpportunity,
    MarketSaturation,
    RegionBounds,
    SaturationLevel,
    StoreLocation,
    StrategicZone,
)
from src.domain.entities.portfolio import (
    OptimizationConstraints,
    OptimizationResult,
    OptimizationStrategy,
    PortfolioCandidate,
    PortfolioSummary,
    SelectedStore,
)
from src.domain.entities.scenario import (
    ComparisonMatrix,
    ComparisonMetric,
    FinancialProjections,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    ScenarioComparison,
    ScenarioConfig,
    ScenarioResult,
    TimelineConfig,
    TimelineProjection,
    TimelineYear,
)

__all__ = [
    # Candidate
    "ExpansionCandidate",
    "ViabilityCheck",
    # Market
    "CompetitiveGap",
    "CompetitorLocation",
    "DemographicInsight",
    "MarketAnalysis",
    "MarketAnalysisPayload",
    "MarketOpportunity",
    "MarketSaturation",
    "RegionBounds",
    "SaturationLevel",
    "StoreLocation",
    "StrategicZone",
    # Portfolio
    "OptimizationConstraints",
    "OptimizationResult",
    "OptimizationStrategy",
    "PortfolioCandidate",
    "PortfolioSummary",
    "SelectedStore",
    # Scenario
    "ComparisonMatrix",
    "ComparisonMetric",
    "FinancialProjections",
    "RiskAssessment",
    "RiskFactor",
    "RiskLevel",
    "ScenarioComparison",
    "ScenarioConfig",
    "ScenarioResult",
    "TimelineConfig",
    "TimelineProjection",
    "TimelineYear",
]
