"""
Portfolio optimizer tests
"""

import pytest

from src.domain.entities.candidate import ExpansionCandidate
from src.domain.entities.portfolio import (
    OptimizationConstraints,
    OptimizationStrategy,
    PortfolioCandidate,
    PortfolioSummary,
    SelectedStore,
)
from src.domain.exceptions import DataValidationError, LLMAPIError
from src.planning.portfolio_optimizer import (
    NO_STORES_INSIGHT,
    PortfolioOptimizer,
    balanced_score,
    rank_candidates,
    satisfies_constraints,
)
from src.shared.constants import PORTFOLIO_FALLBACK_TEXT
from src.shared.model_registry import OperationType


class TestSelection:
    """Budget-constrained greedy admission"""

    @pytest.mark.asyncio
    async def test_maximize_roi_with_default_constraints(self, portfolio_candidates):
        result = await PortfolioOptimizer().optimize(
            portfolio_candidates, budget=50_000_000, generate_insights=False
        )

        assert [s.candidate_id for s in result.selected_stores] == ["c1", "c3"]
        assert [s.rank for s in result.selected_stores] == [1, 2]
        assert result.summary.total_stores == 2
        assert result.summary.total_investment == 5_000_000
        assert result.summary.budget_remaining == 45_000_000
        assert result.summary.average_roi == 20
        assert result.summary.average_payback == 3.5
        # (36k + 99k) / 2.0M
        assert result.summary.network_cannibalization == 6.8
        assert result.summary.expected_annual_revenue == 2_000_000
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_candidate_too_expensive_is_skipped(self, portfolio_candidates):
        result = await PortfolioOptimizer().optimize(
            portfolio_candidates,
            budget=4_000_000,
            constraints=OptimizationConstraints(min_roi=10),
            generate_insights=False,
        )
        assert [s.candidate_id for s in result.selected_stores] == ["c1", "c2"]
        assert result.summary.budget_remaining == 1_000_000

    @pytest.mark.asyncio
    async def test_stops_below_minimum_remaining_budget(self, portfolio_candidates):
        result = await PortfolioOptimizer().optimize(
            portfolio_candidates,
            budget=2_400_000,
            constraints=OptimizationConstraints(min_roi=0),
            generate_insights=False,
        )
        # 400k left after c1
        assert [s.candidate_id for s in result.selected_stores] == ["c1"]

    @pytest.mark.asyncio
    async def test_never_exceeds_budget(self, portfolio_candidates):
        for budget in (1_000_000, 2_500_000, 3_000_000, 5_500_000, 6_000_000):
            result = await PortfolioOptimizer().optimize(
                portfolio_candidates,
                budget=budget,
                constraints=OptimizationConstraints(min_roi=0),
                generate_insights=False,
            )
            assert sum(s.cost for s in result.selected_stores) <= budget

    @pytest.mark.asyncio
    async def test_maximize_count_prefers_cheap(self, portfolio_candidates):
        result = await PortfolioOptimizer().optimize(
            portfolio_candidates,
            budget=50_000_000,
            strategy=OptimizationStrategy.MAXIMIZE_COUNT,
            constraints=OptimizationConstraints(min_roi=10),
            generate_insights=False,
        )
        assert [s.candidate_id for s in result.selected_stores] == ["c2", "c1", "c3"]

    @pytest.mark.asyncio
    async def test_max_stores(self, portfolio_candidates):
        result = await PortfolioOptimizer().optimize(
            portfolio_candidates, budget=50_000_000, max_stores=1, generate_insights=False
        )
        assert len(result.selected_stores) == 1

    @pytest.mark.asyncio
    async def test_maximize_roi_caps_at_thirty(self):
        candidates = [
            PortfolioCandidate(id=f"c{i}", roi=20 + i * 0.1, cost=100_000, country="Germany")
            for i in range(40)
        ]
        result = await PortfolioOptimizer().optimize(candidates, budget=100_000_000, generate_insights=False)
        assert len(result.selected_stores) == 30
        assert result.selected_stores[0].candidate_id == "c39"

    @pytest.mark.asyncio
    async def test_region_filter_excludes_everything(self, portfolio_candidates):
        result = await PortfolioOptimizer().optimize(
            portfolio_candidates,
            budget=50_000_000,
            constraints=OptimizationConstraints(region_filter="AMER"),
        )
        assert result.selected_stores == []
        assert result.summary.budget_remaining == 50_000_000
        assert result.warnings == ["No stores selected. Budget or constraints may be too restrictive."]
        assert result.ai_insights == NO_STORES_INSIGHT


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("budget", [0, -5])
    async def test_budget_must_be_positive(self, portfolio_candidates, budget):
        with pytest.raises(DataValidationError) as exc_info:
            await PortfolioOptimizer().optimize(portfolio_candidates, budget=budget)
        assert exc_info.value.field == "budget"

    @pytest.mark.asyncio
    async def test_candidates_required(self):
        with pytest.raises(DataValidationError):
            await PortfolioOptimizer().optimize([], budget=1_000_000)


class TestRanking:
    def test_balanced_score(self, portfolio_candidates):
        c1, _, c3 = portfolio_candidates
        assert balanced_score(c1) == pytest.approx(41.2)
        assert balanced_score(c3) == pytest.approx(32.2)

    def test_balanced_ordering(self, portfolio_candidates):
        ranked = rank_candidates(portfolio_candidates, OptimizationStrategy.BALANCED)
        assert ranked[0].id == "c1"

    def test_ties_keep_input_order(self):
        a = PortfolioCandidate(id="a", roi=20, cost=1_000_000)
        b = PortfolioCandidate(id="b", roi=20, cost=1_000_000)
        assert [c.id for c in rank_candidates([a, b], OptimizationStrategy.MAXIMIZE_ROI)] == ["a", "b"]

    @pytest.mark.parametrize("region_filter,expected", [(None, True), ("global", True), ("emea", True), ("APAC", False)])
    def test_region_filter(self, portfolio_candidates, region_filter, expected):
        constraints = OptimizationConstraints(region_filter=region_filter)
        assert satisfies_constraints(portfolio_candidates[0], constraints) is expected

    def test_country_filter(self, portfolio_candidates):
        assert satisfies_constraints(portfolio_candidates[0], OptimizationConstraints(country_filter="Germany"))
        assert not satisfies_constraints(portfolio_candidates[0], OptimizationConstraints(country_filter="France"))


class TestWarnings:
    def _store(self, cid, country="Germany"):
        return SelectedStore(
            candidate_id=cid, rank=1, country=country, roi=12, cost=1_000_000, expected_revenue=500_000,
            cannibalization_impact=0, payback_period=5, npv=0, reasoning="",
        )

    def test_all_thresholds(self):
        stores = [self._store(f"s{i}") for i in range(11)]
        summary = PortfolioSummary(
            total_stores=11, average_roi=12, network_cannibalization=9, average_payback=5
        )
        warnings = PortfolioOptimizer.generate_warnings(stores, summary)
        assert len(warnings) == 4
        assert warnings[-1].startswith("All stores in one country")

    def test_diversified_portfolio(self):
        stores = [self._store(f"s{i}", country="Germany" if i % 2 else "France") for i in range(11)]
        summary = PortfolioSummary(total_stores=11, average_roi=25, network_cannibalization=2, average_payback=3)
        assert PortfolioOptimizer.generate_warnings(stores, summary) == []

    def test_zero_revenue_means_zero_cannibalization(self):
        store = self._store("s").model_copy(update={"expected_revenue": 0})
        assert PortfolioOptimizer.calculate_summary([store], 5_000_000).network_cannibalization == 0



class TestSummary:
    @pytest.mark.asyncio
    async def test_fractional_costs_add_up_to_budget(self):
        candidates = [
            PortfolioCandidate.from_expansion_candidate(
                ExpansionCandidate(id=f"x{i}", lat=52.5, lng=13.4, predicted_auv=auv, payback_months=months)
            )
            for i, (auv, months) in enumerate([(333_333, 7), (555_557, 13), (421_009, 11)])
        ]
        assert any(c.cost != round(c.cost, 2) for c in candidates)

        result = await PortfolioOptimizer().optimize(candidates, budget=1_000_000, generate_insights=False)
        summary = result.summary

        assert summary.total_stores == 3
        assert summary.total_investment == round(sum(c.cost for c in candidates), 2)
        assert summary.total_investment + summary.budget_remaining == pytest.approx(1_000_000, abs=1e-6)

    def test_remaining_never_negative(self):
        store = SelectedStore(
            candidate_id="s", rank=1, roi=20, cost=999_999.999, expected_revenue=1,
            cannibalization_impact=0, payback_period=1, npv=0, reasoning="",
        )
        summary = PortfolioOptimizer.calculate_summary([store], 999_999.998)
        assert summary.total_investment == 1_000_000.0
        assert summary.budget_remaining == 0

class TestInsights:
    @pytest.mark.asyncio
    async def test_ai_insights(self, reasoning_client, make_response, portfolio_candidates):
        reasoning_client.request_json.return_value = make_response({"insights": "Concentrate on Berlin first."})

        result = await PortfolioOptimizer(reasoning_client).optimize(portfolio_candidates, budget=50_000_000)

        assert result.ai_insights == "Concentrate on Berlin first."
        args, kwargs = reasoning_client.request_json.call_args
        assert args[0] == OperationType.PORTFOLIO_INSIGHTS
        assert "Stores selected: 2" in kwargs["user_prompt"]
        assert "Min ROI: 15.0%" in kwargs["user_prompt"]

    @pytest.mark.asyncio
    async def test_reasoning_failure_keeps_numbers(self, reasoning_client, portfolio_candidates):
        reasoning_client.request_json.side_effect = LLMAPIError("down")

        result = await PortfolioOptimizer(reasoning_client).optimize(portfolio_candidates, budget=50_000_000)

        assert result.ai_insights == PORTFOLIO_FALLBACK_TEXT
        assert result.summary.total_stores == 2

    @pytest.mark.asyncio
    async def test_without_client(self, portfolio_candidates):
        result = await PortfolioOptimizer().optimize(portfolio_candidates, budget=50_000_000)
        assert result.ai_insights == PORTFOLIO_FALLBACK_TEXT

    @pytest.mark.asyncio
    async def test_insights_disabled(self, reasoning_client, portfolio_candidates):
        result = await PortfolioOptimizer(reasoning_client).optimize(
            portfolio_candidates, budget=50_000_000, generate_insights=False
        )
        assert result.ai_insights == ""
        reasoning_client.request_json.assert_not_called()


class TestFromExpansionCandidate:
    def test_derived_financials(self):
        candidate = ExpansionCandidate(
            id="x", lat=52.5, lng=13.4, city="Berlin", country="Germany",
            predicted_auv=600_000, payback_months=24, supply_penalty=0.05, confidence=0.8,
        )
        portfolio = PortfolioCandidate.from_expansion_candidate(candidate, region="EMEA")

        # annual profit 120k, cost = 24 months of 10k
        assert portfolio.cost == pytest.approx(240_000)
        assert portfolio.roi == pytest.approx(50)
        assert portfolio.payback_years == 2
        assert portfolio.cannibalization == pytest.approx(5)
        assert portfolio.confidence == pytest.approx(80)
        assert portfolio.region == "EMEA"
