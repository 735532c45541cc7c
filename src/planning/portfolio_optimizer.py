"""
Portfolio Optimizer
===================
Budget-constrained selection of expansion candidates.

Selection:
1. filter: roi >= min_roi, cannibalization <= max_cannibalization,
   optional region / country filter
2. rank by the strategy key
   - maximize_roi:   ROI descending
   - maximize_count: cost ascending, then ROI descending
   - balanced:       composite score descending
                     (ROI 0.4, payback 0.3, NPV 0.2, confidence 0.1)
3. greedy admission in ranked order; a candidate that does not fit the
   remaining budget is skipped. maximize_roi stops at 30 stores, every
   strategy stops once less than $500k is left.

The AI insights text is the only soft-failing part: a dependency error
returns a static text, the numeric result is unaffected.
"""

import logging
from typing import Iterable, Optional

from pydantic import BaseModel

from src.domain.entities.portfolio import (
    OptimizationConstraints,
    OptimizationResult,
    OptimizationStrategy,
    PortfolioCandidate,
    PortfolioSummary,
    SelectedStore,
)
from src.domain.exceptions import DataValidationError, DependencyError
from src.shared.constants import (
    MAX_ROI_STORE_CAP,
    MIN_REMAINING_BUDGET,
    PORTFOLIO_FALLBACK_TEXT,
)
from src.shared.llm_client import ReasoningClient
from src.shared.model_registry import OperationType

logger = logging.getLogger(__name__)

NO_STORES_INSIGHT = "No stores selected. Consider relaxing constraints or increasing budget."

SYSTEM_PROMPT = (
    "You are an expert franchise expansion strategist. Answer with a JSON object "
    'of the form {"insights": "<2-3 concise executive insights>"}.'
)

BALANCED_WEIGHTS = {"roi": 0.4, "payback": 0.3, "npv": 0.2, "confidence": 0.1}


class PortfolioInsightsPayload(BaseModel):
    insights: str


def balanced_score(candidate: PortfolioCandidate) -> float:
    """Composite 0-100 score; ROI saturates at 50%, NPV at $5M, payback loses 20 points a year."""
    roi_score = min(candidate.roi / 50, 1) * 100
    payback_score = max(100 - candidate.payback_years * 20, 0)
    npv_score = min(candidate.npv / 5_000_000, 1) * 100
    return (
        roi_score * BALANCED_WEIGHTS["roi"]
        + payback_score * BALANCED_WEIGHTS["payback"]
        + npv_score * BALANCED_WEIGHTS["npv"]
        + candidate.confidence * BALANCED_WEIGHTS["confidence"]
    )


def rank_candidates(
    candidates: Iterable[PortfolioCandidate], strategy: OptimizationStrategy
) -> list[PortfolioCandidate]:
    """Stable sort, so equal keys keep input order."""
    if strategy == OptimizationStrategy.MAXIMIZE_COUNT:
        return sorted(candidates, key=lambda c: (c.cost, -c.roi))
    if strategy == OptimizationStrategy.BALANCED:
        return sorted(candidates, key=balanced_score, reverse=True)
    return sorted(candidates, key=lambda c: c.roi, reverse=True)


def _matches(value: Optional[str], wanted: Optional[str]) -> bool:
    if not wanted or wanted.lower() == "global":
        return True
    return (value or "").strip().lower() == wanted.strip().lower()


def satisfies_constraints(candidate: PortfolioCandidate, constraints: OptimizationConstraints) -> bool:
    return (
        candidate.roi >= constraints.min_roi
        and candidate.cannibalization <= constraints.max_cannibalization
        and _matches(candidate.region, constraints.region_filter)
        and _matches(candidate.country, constraints.country_filter)
    )


class PortfolioOptimizer:
    """
    Usage:
        optimizer = PortfolioOptimizer(reasoning_client)
        result = await optimizer.optimize(candidates, budget=50_000_000,
                                          strategy=OptimizationStrategy.MAXIMIZE_ROI)
    """

    def __init__(self, client: Optional[ReasoningClient] = None):
        self.client = client

    async def optimize(
        self,
        candidates: list[PortfolioCandidate],
        budget: float,
        strategy: OptimizationStrategy = OptimizationStrategy.MAXIMIZE_ROI,
        constraints: Optional[OptimizationConstraints] = None,
        max_stores: Optional[int] = None,
        generate_insights: bool = True,
    ) -> OptimizationResult:
        """
        Select a portfolio and describe it.

        Raises:
            DataValidationError: non-positive budget or no candidates at all
        """
        constraints = constraints or OptimizationConstraints()
        self.validate_request(candidates, budget)

        selected = self.select_portfolio(candidates, budget, strategy, constraints, max_stores)
        summary = self.calculate_summary(selected, budget)
        warnings = self.generate_warnings(selected, summary)

        if generate_insights:
            insights = await self.generate_insights(selected, summary, budget, constraints)
        else:
            insights = NO_STORES_INSIGHT if not selected else ""

        logger.info(
            f"Portfolio optimized: strategy={strategy.value} selected={summary.total_stores}/"
            f"{len(candidates)} invested={summary.total_investment:.0f} budget={budget:.0f}"
        )
        return OptimizationResult(
            selected_stores=selected,
            summary=summary,
            ai_insights=insights,
            warnings=warnings,
        )

    @staticmethod
    def validate_request(candidates: list[PortfolioCandidate], budget: float) -> None:
        if budget <= 0:
            raise DataValidationError(
                "Budget must be positive", field="budget", value=budget, constraint="budget > 0"
            )
        if not candidates:
            raise DataValidationError(
                "No candidates found matching criteria",
                field="candidates",
                value=0,
                constraint="at least one candidate",
            )

    def select_portfolio(
        self,
        candidates: list[PortfolioCandidate],
        budget: float,
        strategy: OptimizationStrategy,
        constraints: OptimizationConstraints,
        max_stores: Optional[int] = None,
    ) -> list[SelectedStore]:
        eligible = [c for c in candidates if satisfies_constraints(c, constraints)]
        ranked = rank_candidates(eligible, strategy)

        cap = MAX_ROI_STORE_CAP if strategy == OptimizationStrategy.MAXIMIZE_ROI else None
        if max_stores is not None:
            cap = min(cap, max_stores) if cap is not None else max_stores

        selected: list[SelectedStore] = []
        remaining = budget
        for candidate in ranked:
            if cap is not None and len(selected) >= cap:
                break
            if candidate.cost > remaining:
                continue

            selected.append(self._to_selected(candidate, rank=len(selected) + 1))
            remaining -= candidate.cost

            if remaining < MIN_REMAINING_BUDGET:
                break

        return selected

    @staticmethod
    def _to_selected(candidate: PortfolioCandidate, rank: int) -> SelectedStore:
        return SelectedStore(
            candidate_id=candidate.id,
            rank=rank,
            name=candidate.name,
            city=candidate.city,
            country=candidate.country,
            roi=round(candidate.roi, 2),
            cost=candidate.cost,
            expected_revenue=candidate.expected_revenue,
            cannibalization_impact=candidate.expected_revenue * candidate.cannibalization / 100,
            payback_period=round(candidate.payback_years, 1),
            npv=candidate.npv,
            reasoning=(
                f"Strong ROI ({round(candidate.roi)}%) with minimal "
                f"cannibalization ({round(candidate.cannibalization)}%)"
            ),
        )

    @staticmethod
    def calculate_summary(selected: list[SelectedStore], budget: float) -> PortfolioSummary:
        if not selected:
            return PortfolioSummary(budget_remaining=budget)

        count = len(selected)
        # both figures come from the same cent-rounded total
        total_investment = round(sum(s.cost for s in selected), 2)
        revenue = sum(s.expected_revenue for s in selected)
        loss = sum(s.cannibalization_impact for s in selected)

        if revenue > 0:
            network_cannibalization = loss / revenue * 100
        else:
            network_cannibalization = 0.0

        return PortfolioSummary(
            total_stores=count,
            total_investment=total_investment,
            budget_remaining=max(round(budget - total_investment, 2), 0),
            average_roi=round(sum(s.roi for s in selected) / count, 2),
            average_payback=round(sum(s.payback_period for s in selected) / count, 1),
            network_cannibalization=round(network_cannibalization, 1),
            expected_annual_revenue=round(revenue),
        )

    @staticmethod
    def generate_warnings(selected: list[SelectedStore], summary: PortfolioSummary) -> list[str]:
        if not selected:
            return ["No stores selected. Budget or constraints may be too restrictive."]

        warnings = []
        if summary.average_roi < 20:
            warnings.append("Average ROI below 20%. Consider raising minimum ROI threshold.")
        if summary.network_cannibalization > 8:
            warnings.append(
                "Network cannibalization above 8%. Some stores may impact existing locations."
            )
        if summary.average_payback > 4:
            warnings.append(
                "Average payback period above 4 years. Consider focusing on faster-return locations."
            )
        if len({s.country for s in selected}) == 1 and len(selected) > 10:
            warnings.append(
                "All stores in one country. Consider geographic diversification to reduce risk."
            )
        return warnings

    async def generate_insights(
        self,
        selected: list[SelectedStore],
        summary: PortfolioSummary,
        budget: float,
        constraints: OptimizationConstraints,
    ) -> str:
        if not selected:
            return NO_STORES_INSIGHT
        if self.client is None:
            return PORTFOLIO_FALLBACK_TEXT

        try:
            response = await self.client.request_json(
                OperationType.PORTFOLIO_INSIGHTS,
                system_prompt=SYSTEM_PROMPT,
                user_prompt=self.build_prompt(selected, summary, budget, constraints),
                schema=PortfolioInsightsPayload,
            )
        except DependencyError as e:
            logger.warning(f"Portfolio insights unavailable: {e}")
            return PORTFOLIO_FALLBACK_TEXT

        return response.data.get("insights") or PORTFOLIO_FALLBACK_TEXT

    @staticmethod
    def build_prompt(
        selected: list[SelectedStore],
        summary: PortfolioSummary,
        budget: float,
        constraints: OptimizationConstraints,
    ) -> str:
        top = "\n".join(
            f"- {s.name} ({s.city}, {s.country}): ROI {s.roi}%, Cost ${s.cost / 1_000_000:.1f}M"
            for s in selected[:5]
        )
        return (
            "Analyze this portfolio:\n\n"
            "PORTFOLIO SUMMARY:\n"
            f"- Stores selected: {summary.total_stores}\n"
            f"- Total investment: ${summary.total_investment / 1_000_000:.1f}M\n"
            f"- Average ROI: {summary.average_roi}%\n"
            f"- Average payback: {summary.average_payback} years\n"
            f"- Network cannibalization: {summary.network_cannibalization}%\n\n"
            f"TOP 5 LOCATIONS:\n{top}\n\n"
            "CONSTRAINTS:\n"
            f"- Budget: ${budget / 1_000_000:.1f}M\n"
            f"- Min ROI: {constraints.min_roi}%\n"
            f"- Max Cannibalization: {constraints.max_cannibalization}%\n\n"
            "Provide 2-3 concise strategic insights covering geographic distribution, "
            "risk factors and opportunities, and one actionable recommendation."
        )
