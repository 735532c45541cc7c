"""
Portfolio Domain Entities
=========================
Optimizer inputs and outputs: PortfolioCandidate, OptimizationConstraints,
SelectedStore, PortfolioSummary, OptimizationResult
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from src.domain.entities.candidate import ExpansionCandidate

# Assumed operating margin used to derive financials from a pipeline candidate
DEFAULT_OPERATING_MARGIN = 0.2
NPV_DISCOUNT_RATE = 0.10
NPV_HORIZON_YEARS = 5


class OptimizationStrategy(str, Enum):
    MAXIMIZE_ROI = "maximize_roi"
    MAXIMIZE_COUNT = "maximize_count"
    BALANCED = "balanced"


class OptimizationConstraints(BaseModel):
    """Admission constraints (percentages)"""
    min_roi: float = Field(default=15.0, description="Minimum ROI %")
    max_cannibalization: float = Field(default=10.0, ge=0, description="Maximum cannibalization %")
    region_filter: Optional[str] = Field(default=None, description="e.g. EMEA, AMER")
    country_filter: Optional[str] = None


class PortfolioCandidate(BaseModel):
    """
    A candidate with the financial figures the optimizer ranks on

    Attributes:
        roi: annual ROI in percent
        cost: initial investment
        cannibalization: revenue diverted from existing stores, percent of own revenue
        expected_revenue: expected annual revenue
        payback_years: payback period in years
        npv: net present value
        confidence: 0-100
    """
    id: str
    name: str = ""
    city: str = ""
    country: str = ""
    region: Optional[str] = None
    roi: float
    cost: float = Field(..., gt=0)
    cannibalization: float = Field(default=0.0, ge=0)
    expected_revenue: float = Field(default=0.0, ge=0)
    payback_years: float = Field(default=0.0, ge=0)
    npv: float = 0.0
    confidence: float = Field(default=50.0, ge=0, le=100)

    model_config = {"frozen": True}

    @classmethod
    def from_expansion_candidate(
        cls,
        candidate: ExpansionCandidate,
        operating_margin: float = DEFAULT_OPERATING_MARGIN,
        region: Optional[str] = None,
    ) -> "PortfolioCandidate":
        """
        Derive optimizer figures from a pipeline candidate.

        Investment is what the predicted payback implies at the given margin:
        cost = payback_months * monthly_profit. Supply penalty stands in for
        cannibalization of the own network.
        """
        annual_profit = candidate.predicted_auv * operating_margin
        payback_months = max(candidate.payback_months, 1)
        cost = max(payback_months * annual_profit / 12, 1.0)
        npv = -cost + sum(
            annual_profit / (1 + NPV_DISCOUNT_RATE) ** year
            for year in range(1, NPV_HORIZON_YEARS + 1)
        )
        return cls(
            id=candidate.id,
            name=candidate.city or candidate.id,
            city=candidate.city or "",
            country=candidate.country or "",
            region=region or candidate.region,
            roi=annual_profit / cost * 100,
            cost=cost,
            cannibalization=candidate.supply_penalty * 100,
            expected_revenue=candidate.predicted_auv,
            payback_years=payback_months / 12,
            npv=npv,
            confidence=candidate.confidence * 100,
        )


class SelectedStore(BaseModel):
    candidate_id: str
    rank: int
    name: str = ""
    city: str = ""
    country: str = ""
    roi: float
    cost: float
    expected_revenue: float
    cannibalization_impact: float
    payback_period: float
    npv: float
    reasoning: str

    model_config = {"frozen": True}


class PortfolioSummary(BaseModel):
    total_stores: int = 0
    total_investment: float = 0.0
    budget_remaining: float = 0.0
    average_roi: float = 0.0
    average_payback: float = 0.0
    network_cannibalization: float = 0.0
    expected_annual_revenue: float = 0.0


class OptimizationResult(BaseModel):
    """Selected portfolio in admission order plus aggregates"""
    selected_stores: List[SelectedStore] = Field(default_factory=list)
    summary: PortfolioSummary = Field(default_factory=PortfolioSummary)
    ai_insights: str = ""
    warnings: List[str] = Field(default_factory=list)
