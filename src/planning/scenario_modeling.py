"""
Scenario Modeling Service
=========================
Multi-year projections for expansion scenarios and head-to-head comparison.

generate_scenario(config, candidates):
    portfolio optimizer -> timeline -> risk -> financials -> narrative

compare_scenarios(configs, candidates):
    2-5 scenarios generated concurrently, a comparison matrix and a
    comparative narrative. The winner maximizes ROI x (1 - risk/100); ties
    go to the earlier scenario.

Narratives are the only soft-failing step; every number is computed locally.
"""

import asyncio
import logging
import math
from typing import Any, Optional

from pydantic import BaseModel

from src.domain.entities.portfolio import (
    OptimizationConstraints,
    OptimizationResult,
    OptimizationStrategy,
    PortfolioCandidate,
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
from src.domain.exceptions import DataValidationError, DependencyError
from src.planning.portfolio_optimizer import PortfolioOptimizer
from src.shared.constants import (
    COMPARISON_FALLBACK_TEXT,
    MAX_COMPARE_SCENARIOS,
    MAX_TIMELINE_YEARS,
    MIN_COMPARE_SCENARIOS,
    MIN_SCENARIO_BUDGET,
    MIN_TIMELINE_YEARS,
    NPV_DISCOUNT_RATE,
    SCENARIO_FALLBACK_TEXT,
)
from src.shared.llm_client import ReasoningClient
from src.shared.model_registry import OperationType

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a senior strategy consultant advising a global restaurant franchise on expansion. "
    'Answer with a JSON object of the form {"recommendation": "<text>"}.'
)

QUICK_SCENARIO_TYPES = ("budget", "store_count", "timeline", "geographic")


class NarrativePayload(BaseModel):
    recommendation: str


def validate_scenario_config(config: ScenarioConfig) -> None:
    """
    Raises:
        DataValidationError: empty name, budget below $1M, timeline outside 1-10 years
    """
    if not config.name or not config.name.strip():
        raise DataValidationError("Scenario name is required", field="name", value=config.name)
    if config.budget <= 0:
        raise DataValidationError(
            "Budget must be greater than 0", field="budget", value=config.budget, constraint="budget > 0"
        )
    if config.budget < MIN_SCENARIO_BUDGET:
        raise DataValidationError(
            "Budget must be at least $1M",
            field="budget",
            value=config.budget,
            constraint=f"budget >= {MIN_SCENARIO_BUDGET}",
        )
    years = config.timeline.years
    if years < MIN_TIMELINE_YEARS or years > MAX_TIMELINE_YEARS:
        raise DataValidationError(
            "Timeline must be between 1 and 10 years",
            field="timeline.years",
            value=years,
            constraint=f"{MIN_TIMELINE_YEARS} <= years <= {MAX_TIMELINE_YEARS}",
        )


def validate_comparison(configs: list[ScenarioConfig]) -> None:
    if len(configs) < MIN_COMPARE_SCENARIOS:
        raise DataValidationError(
            "At least 2 scenarios required for comparison",
            field="scenarios",
            value=len(configs),
            constraint=f">= {MIN_COMPARE_SCENARIOS}",
        )
    if len(configs) > MAX_COMPARE_SCENARIOS:
        raise DataValidationError(
            "Maximum 5 scenarios can be compared at once",
            field="scenarios",
            value=len(configs),
            constraint=f"<= {MAX_COMPARE_SCENARIOS}",
        )
    for config in configs:
        validate_scenario_config(config)


def project_timeline(portfolio: OptimizationResult, timeline: TimelineConfig) -> TimelineProjection:
    """
    Year-by-year rollout.

    Phased: ceil(stores / years) per year, investment proportional to stores
    opened, revenue scaled by the cumulative share of stores open. Not phased:
    everything lands in year 1 and later years carry full revenue.
    """
    years = timeline.years
    total_stores = len(portfolio.selected_stores)
    total_investment = portfolio.summary.total_investment
    annual_revenue = portfolio.summary.expected_annual_revenue

    rows: list[TimelineYear] = []
    if timeline.phased_rollout:
        per_year = math.ceil(total_stores / years) if total_stores else 0
        cumulative_stores = 0
        cumulative_investment = 0.0
        cumulative_revenue = 0.0
        for year in range(1, years + 1):
            opened = min(per_year, total_stores - cumulative_stores)
            share_opened = opened / total_stores if total_stores else 0.0
            investment = share_opened * total_investment
            cumulative_stores += opened
            cumulative_investment += investment
            share_open = cumulative_stores / total_stores if total_stores else 0.0
            revenue = share_open * annual_revenue
            cumulative_revenue += revenue
            rows.append(
                TimelineYear(
                    year=year,
                    stores_opened=opened,
                    investment=round(investment),
                    cumulative_stores=cumulative_stores,
                    cumulative_investment=round(cumulative_investment),
                    annual_revenue=round(revenue),
                    cumulative_revenue=round(cumulative_revenue),
                    cash_flow=round(revenue - investment),
                )
            )
    else:
        rows.append(
            TimelineYear(
                year=1,
                stores_opened=total_stores,
                investment=total_investment,
                cumulative_stores=total_stores,
                cumulative_investment=total_investment,
                annual_revenue=annual_revenue,
                cumulative_revenue=annual_revenue,
                cash_flow=annual_revenue - total_investment,
            )
        )
        for year in range(2, years + 1):
            rows.append(
                TimelineYear(
                    year=year,
                    stores_opened=0,
                    investment=0,
                    cumulative_stores=total_stores,
                    cumulative_investment=total_investment,
                    annual_revenue=annual_revenue,
                    cumulative_revenue=annual_revenue * year,
                    cash_flow=annual_revenue,
                )
            )

    return TimelineProjection(
        years=rows,
        break_even_month=break_even_month(total_investment, annual_revenue, years),
        peak_cash_requirement=total_investment,
    )


def break_even_month(total_investment: float, annual_revenue: float, years: int) -> int:
    """First month with non-negative cumulative cash, else the last month of the horizon."""
    horizon = years * 12
    monthly = annual_revenue / 12
    cash = -total_investment
    for month in range(1, horizon + 1):
        cash += monthly
        if cash >= 0:
            return month
    return horizon


def herfindahl_index(countries: list[str]) -> float:
    """Sum of squared per-country shares; 0 for an empty portfolio."""
    if not countries:
        return 0.0
    counts: dict[str, int] = {}
    for country in countries:
        counts[country] = counts.get(country, 0) + 1
    total = len(countries)
    return sum((count / total) ** 2 for count in counts.values())


def assess_risks(portfolio: OptimizationResult, config: ScenarioConfig) -> RiskAssessment:
    factors: list[RiskFactor] = []
    total = 0
    summary = portfolio.summary
    stores = portfolio.selected_stores

    concentration = herfindahl_index([s.country for s in stores])
    if concentration > 0.5:
        factors.append(
            RiskFactor(
                factor="Market Saturation",
                severity=RiskLevel.HIGH,
                impact="High concentration in few markets may limit growth potential",
                mitigation="Diversify across more geographic markets",
            )
        )
        total += 30
    elif concentration > 0.3:
        factors.append(
            RiskFactor(
                factor="Market Saturation",
                severity=RiskLevel.MEDIUM,
                impact="Moderate concentration in key markets",
                mitigation="Monitor market share and adjust expansion pace",
            )
        )
        total += 15

    if summary.network_cannibalization > 10:
        factors.append(
            RiskFactor(
                factor="Cannibalization",
                severity=RiskLevel.HIGH,
                impact=f"{summary.network_cannibalization:.1f}% revenue loss to existing stores",
                mitigation="Increase geographic spacing between new stores",
            )
        )
        total += 25
    elif summary.network_cannibalization > 5:
        factors.append(
            RiskFactor(
                factor="Cannibalization",
                severity=RiskLevel.MEDIUM,
                impact=f"{summary.network_cannibalization:.1f}% impact on existing stores",
                mitigation="Monitor and adjust locations if needed",
            )
        )
        total += 10

    stores_per_year = len(stores) / config.timeline.years
    if stores_per_year > 20:
        factors.append(
            RiskFactor(
                factor="Execution Risk",
                severity=RiskLevel.HIGH,
                impact=f"Opening {round(stores_per_year)} stores/year requires strong operational capacity",
                mitigation="Ensure adequate resources, processes and management bandwidth",
            )
        )
        total += 20
    elif stores_per_year > 10:
        factors.append(
            RiskFactor(
                factor="Execution Risk",
                severity=RiskLevel.MEDIUM,
                impact="Moderate operational complexity",
                mitigation="Plan resources and timelines carefully",
            )
        )
        total += 10

    if summary.average_roi < 20:
        factors.append(
            RiskFactor(
                factor="ROI Risk",
                severity=RiskLevel.MEDIUM,
                impact=f"{summary.average_roi:.1f}% ROI below typical 20% target",
                mitigation="Focus on higher-ROI locations or adjust strategy",
            )
        )
        total += 15

    utilization = summary.total_investment / config.budget * 100
    if utilization < 70:
        factors.append(
            RiskFactor(
                factor="Budget Underutilization",
                severity=RiskLevel.LOW,
                impact=f"Only {utilization:.0f}% of budget allocated",
                mitigation="Consider relaxing constraints or increasing target stores",
            )
        )
        total += 5

    score = max(0, min(total, 100))
    if score > 50:
        overall = RiskLevel.HIGH
    elif score > 25:
        overall = RiskLevel.MEDIUM
    else:
        overall = RiskLevel.LOW

    return RiskAssessment(
        overall_risk=overall,
        risk_score=score,
        factors=factors,
        confidence_level=100 - score,
    )


def calculate_financials(portfolio: OptimizationResult, timeline: TimelineProjection) -> FinancialProjections:
    rows = timeline.years
    year1 = rows[0]
    year3 = rows[min(2, len(rows) - 1)]
    year5 = rows[min(4, len(rows) - 1)]

    if year5.cumulative_investment > 0:
        roi5 = (year5.cumulative_revenue - year5.cumulative_investment) / year5.cumulative_investment * 100
    else:
        roi5 = 0.0

    npv = -portfolio.summary.total_investment + sum(
        row.annual_revenue / (1 + NPV_DISCOUNT_RATE) ** row.year for row in rows
    )

    return FinancialProjections(
        year1_revenue=year1.annual_revenue,
        year3_revenue=year3.annual_revenue,
        year5_revenue=year5.annual_revenue,
        year5_roi=round(roi5, 1),
        year5_npv=round(npv),
        payback_period=round(timeline.break_even_month / 12, 1),
        irr=round(portfolio.summary.average_roi, 1),
    )


def scenario_score(result: ScenarioResult) -> float:
    return result.portfolio.summary.average_roi * (1 - result.risk_assessment.risk_score / 100)


def build_comparison_matrix(results: list[ScenarioResult]) -> ComparisonMatrix:
    metrics = [
        ComparisonMetric(
            name="Total Stores",
            values=[len(r.portfolio.selected_stores) for r in results],
            unit="stores",
            format="number",
        ),
        ComparisonMetric(
            name="Total Investment",
            values=[r.portfolio.summary.total_investment for r in results],
            unit="$",
            format="currency",
        ),
        ComparisonMetric(
            name="Year 1 Revenue",
            values=[r.financial_projections.year1_revenue for r in results],
            unit="$",
            format="currency",
        ),
        ComparisonMetric(
            name="Year 5 Revenue",
            values=[r.financial_projections.year5_revenue for r in results],
            unit="$",
            format="currency",
        ),
        ComparisonMetric(
            name="Average ROI",
            values=[r.portfolio.summary.average_roi for r in results],
            unit="%",
            format="percentage",
        ),
        ComparisonMetric(
            name="Payback Period",
            values=[r.financial_projections.payback_period for r in results],
            unit="years",
            format="number",
        ),
        ComparisonMetric(
            name="Risk Score",
            values=[r.risk_assessment.risk_score for r in results],
            unit="/100",
            format="number",
        ),
    ]

    winner = 0
    best = scenario_score(results[0]) if results else 0.0
    for index, result in enumerate(results[1:], start=1):
        score = scenario_score(result)
        if score > best:
            best = score
            winner = index

    return ComparisonMatrix(metrics=metrics, winner=winner)


def build_quick_scenarios(scenario_type: str, base_config: Optional[dict[str, Any]] = None) -> list[ScenarioConfig]:
    """
    Preset scenario sets.

    base_config supplies the shared settings (strategy, constraints, timeline,
    budget); the dimension a preset varies always keeps the preset value.

    Raises:
        DataValidationError: unknown scenario type
    """
    base = dict(base_config or {})
    shared: dict[str, Any] = {
        "timeline": {"years": 3, "phased_rollout": True},
        "strategy": OptimizationStrategy.MAXIMIZE_ROI,
        "constraints": {"min_roi": 15, "max_cannibalization": 10},
        "budget": 50_000_000,
    }
    shared.update({k: v for k, v in base.items() if k in shared or k == "target_stores"})

    def _constraints(**extra: Any) -> dict[str, Any]:
        constraints = shared["constraints"]
        if isinstance(constraints, OptimizationConstraints):
            constraints = constraints.model_dump()
        return {**constraints, **extra}

    if scenario_type == "budget":
        presets = [
            {"name": "Conservative", "budget": 25_000_000},
            {"name": "Moderate", "budget": 50_000_000},
            {"name": "Aggressive", "budget": 75_000_000},
        ]
    elif scenario_type == "store_count":
        presets = [
            {"name": "Small Scale (25 stores)", "budget": 40_000_000, "target_stores": 25},
            {"name": "Medium Scale (50 stores)", "budget": 75_000_000, "target_stores": 50},
            {"name": "Large Scale (75 stores)", "budget": 110_000_000, "target_stores": 75},
        ]
    elif scenario_type == "timeline":
        presets = [
            {"name": "Fast Rollout (1 year)", "timeline": {"years": 1, "phased_rollout": False}},
            {"name": "Moderate Rollout (3 years)", "timeline": {"years": 3, "phased_rollout": True}},
            {"name": "Slow Rollout (5 years)", "timeline": {"years": 5, "phased_rollout": True}},
        ]
    elif scenario_type == "geographic":
        presets = [
            {"name": "EMEA Focus", "constraints": _constraints(region_filter="EMEA")},
            {"name": "AMER Focus", "constraints": _constraints(region_filter="AMER")},
            {"name": "Global Mix", "constraints": _constraints(region_filter=None)},
        ]
    else:
        raise DataValidationError(
            "Invalid quick scenario type",
            field="type",
            value=scenario_type,
            constraint=f"one of {QUICK_SCENARIO_TYPES}",
        )

    return [ScenarioConfig.model_validate({**shared, **preset}) for preset in presets]


class ScenarioModelingService:
    """
    Usage:
        service = ScenarioModelingService(optimizer, reasoning_client)
        result = await service.generate_scenario(config, candidates)
        comparison = await service.compare_scenarios([a, b, c], candidates)
    """

    def __init__(self, optimizer: PortfolioOptimizer, client: Optional[ReasoningClient] = None):
        self.optimizer = optimizer
        self.client = client

    async def generate_scenario(
        self, config: ScenarioConfig, candidates: list[PortfolioCandidate]
    ) -> ScenarioResult:
        validate_scenario_config(config)

        portfolio = await self.optimizer.optimize(
            candidates,
            budget=config.budget,
            strategy=config.strategy,
            constraints=config.constraints,
            max_stores=config.target_stores,
        )
        timeline = project_timeline(portfolio, config.timeline)
        risk = assess_risks(portfolio, config)
        financials = calculate_financials(portfolio, timeline)
        recommendation = await self.generate_recommendation(config, portfolio, timeline, risk, financials)

        logger.info(
            f"Scenario generated: name={config.name} stores={len(portfolio.selected_stores)} "
            f"risk={risk.overall_risk.value}"
        )
        return ScenarioResult(
            config=config,
            portfolio=portfolio,
            timeline=timeline,
            risk_assessment=risk,
            financial_projections=financials,
            ai_recommendation=recommendation,
        )

    async def compare_scenarios(
        self, configs: list[ScenarioConfig], candidates: list[PortfolioCandidate]
    ) -> ScenarioComparison:
        validate_comparison(configs)

        results = await asyncio.gather(*(self.generate_scenario(c, candidates) for c in configs))
        results = list(results)
        comparison = build_comparison_matrix(results)
        recommendation = await self.generate_comparative_recommendation(results)

        logger.info(f"Scenarios compared: count={len(results)} winner={comparison.winner}")
        return ScenarioComparison(scenarios=results, comparison=comparison, recommendation=recommendation)

    async def generate_quick_scenarios(
        self,
        scenario_type: str,
        candidates: list[PortfolioCandidate],
        base_config: Optional[dict[str, Any]] = None,
    ) -> ScenarioComparison:
        return await self.compare_scenarios(build_quick_scenarios(scenario_type, base_config), candidates)

    async def _narrative(self, prompt: str, fallback: str) -> str:
        if self.client is None:
            return fallback
        try:
            response = await self.client.request_json(
                OperationType.SCENARIO_NARRATIVE,
                system_prompt=SYSTEM_PROMPT,
                user_prompt=prompt,
                schema=NarrativePayload,
            )
        except DependencyError as e:
            logger.warning(f"Scenario narrative unavailable: {e}")
            return fallback
        return response.data.get("recommendation") or fallback

    async def generate_recommendation(
        self,
        config: ScenarioConfig,
        portfolio: OptimizationResult,
        timeline: TimelineProjection,
        risk: RiskAssessment,
        financials: FinancialProjections,
    ) -> str:
        rollout = "phased rollout" if config.timeline.phased_rollout else "all at once"
        years = "\n".join(
            f"- Year {y.year}: {y.stores_opened} stores, ${y.investment / 1e6:.0f}M invested, "
            f"${y.annual_revenue / 1e6:.0f}M revenue"
            for y in timeline.years[:3]
        )
        prompt = (
            f"SCENARIO: {config.name}\n"
            f"Budget: ${config.budget / 1e6:.0f}M\n"
            f"Stores: {len(portfolio.selected_stores)}\n"
            f"Timeline: {config.timeline.years} years ({rollout})\n"
            f"Strategy: {config.strategy.value.replace('_', ' ')}\n\n"
            "FINANCIAL PROJECTIONS:\n"
            f"- Year 1 Revenue: ${financials.year1_revenue / 1e6:.0f}M\n"
            f"- Year 5 Revenue: ${financials.year5_revenue / 1e6:.0f}M\n"
            f"- 5-Year ROI: {financials.year5_roi:.0f}%\n"
            f"- Payback Period: {financials.payback_period:.1f} years\n"
            f"- 5-Year NPV: ${financials.year5_npv / 1e6:.0f}M\n\n"
            "RISK ASSESSMENT:\n"
            f"- Overall Risk: {risk.overall_risk.value}\n"
            f"- Risk Score: {risk.risk_score}/100\n"
            f"- Key Risk Factors: {', '.join(f.factor for f in risk.factors)}\n\n"
            f"TIMELINE:\n{years}\n\n"
            "Provide a concise executive recommendation (2-3 sentences) considering ROI, "
            "risk and execution feasibility."
        )
        return await self._narrative(prompt, SCENARIO_FALLBACK_TEXT)

    async def generate_comparative_recommendation(self, results: list[ScenarioResult]) -> str:
        blocks = "\n".join(
            f"{i}. {r.config.name}\n"
            f"   - Budget: ${r.config.budget / 1e6:.0f}M\n"
            f"   - Stores: {len(r.portfolio.selected_stores)}\n"
            f"   - Year 5 Revenue: ${r.financial_projections.year5_revenue / 1e6:.0f}M\n"
            f"   - ROI: {r.portfolio.summary.average_roi:.0f}%\n"
            f"   - Risk: {r.risk_assessment.overall_risk.value} ({r.risk_assessment.risk_score}/100)\n"
            f"   - Payback: {r.financial_projections.payback_period:.1f} years"
            for i, r in enumerate(results, start=1)
        )
        indices = range(len(results))
        highest_roi = max(indices, key=lambda i: results[i].portfolio.summary.average_roi) + 1
        lowest_risk = min(indices, key=lambda i: results[i].risk_assessment.risk_score) + 1
        highest_revenue = max(indices, key=lambda i: results[i].financial_projections.year5_revenue) + 1
        prompt = (
            f"Compare these {len(results)} expansion scenarios.\n\n"
            f"SCENARIOS:\n{blocks}\n\n"
            "COMPARISON INSIGHTS:\n"
            f"- Highest ROI: Scenario {highest_roi}\n"
            f"- Lowest Risk: Scenario {lowest_risk}\n"
            f"- Highest Revenue: Scenario {highest_revenue}\n\n"
            "Provide an executive recommendation (3-4 sentences): which scenario is recommended "
            "and why, the key tradeoffs, and one specific action to take."
        )
        return await self._narrative(prompt, COMPARISON_FALLBACK_TEXT)
