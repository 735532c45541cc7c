"""
API route tests (FastAPI TestClient against create_app)
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from src.api.app_factory import create_app
from src.api.dependencies import limiter
from src.application.workflows.expansion_workflow import ExpansionResult
from src.domain.entities.candidate import ExpansionCandidate
from src.domain.exceptions import LLMAPIError, StageFailure
from src.infrastructure.config.config_manager import AppConfig
from src.infrastructure.container import Container
from src.pipeline.controller import PipelineController


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def container(tmp_path, reasoning_client, make_response):
    container = Container(
        AppConfig(
            openai_api_key="sk-test",
            cache_backend="memory",
            feature_flags_path=tmp_path / "missing.json",
        )
    )
    reasoning_client.request_json.return_value = make_response(
        {"insights": "Lead with Berlin.", "recommendation": "Go ahead."}
    )
    container.override("reasoning_client", reasoning_client)
    return container


@pytest.fixture
def client(container):
    return TestClient(create_app(container))


@pytest.fixture
def candidates_json(portfolio_candidates):
    return [c.model_dump(mode="json") for c in portfolio_candidates]


class TestHealth:
    def test_healthy(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["resilience"]) == {"reasoning", "market_data", "geocoding"}
        assert data["feature_flags"]["expansion.use_simple_expansion"] is True

    def test_degraded_when_circuit_open(self, client, container):
        breaker = container.get_resilient_client("geocoding").circuit_breaker
        for _ in range(breaker.failure_threshold):
            breaker.record_failure()

        assert client.get("/api/health").json()["status"] == "degraded"

    def test_request_id_and_headers(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Process-Time-Ms" in response.headers

    def test_generated_request_id(self, client):
        assert len(client.get("/api/health").headers["X-Request-ID"]) == 12


class TestPortfolio:
    def test_optimize(self, client, candidates_json):
        response = client.post(
            "/api/expansion/optimize-portfolio",
            json={"candidates": candidates_json, "budget": 50_000_000},
        )

        assert response.status_code == 200
        data = response.json()
        assert [s["candidate_id"] for s in data["selected_stores"]] == ["c1", "c3"]
        assert data["summary"]["budget_remaining"] == 45_000_000
        assert data["ai_insights"] == "Lead with Berlin."

    def test_reasoning_outage_is_not_an_error(self, client, reasoning_client, candidates_json):
        reasoning_client.request_json.side_effect = LLMAPIError("down")
        response = client.post(
            "/api/expansion/optimize-portfolio",
            json={"candidates": candidates_json, "budget": 50_000_000},
        )
        assert response.status_code == 200
        assert response.json()["summary"]["total_stores"] == 2

    def test_invalid_budget(self, client, candidates_json):
        response = client.post(
            "/api/expansion/optimize-portfolio", json={"candidates": candidates_json, "budget": 0}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["type"] == "DataValidationError"
        assert body["detail"]["field"] == "budget"

    def test_schema_error(self, client):
        response = client.post("/api/expansion/optimize-portfolio", json={"candidates": []})
        assert response.status_code == 422


class TestScenarios:
    def _config(self, name="Moderate", budget=50_000_000):
        return {"name": name, "budget": budget, "timeline": {"years": 3, "phased_rollout": True}}

    def test_generate(self, client, candidates_json):
        response = client.post(
            "/api/expansion/scenarios", json={"config": self._config(), "candidates": candidates_json}
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["timeline"]["years"]) == 3
        assert data["risk_assessment"]["risk_score"] == 45
        assert data["ai_recommendation"] == "Go ahead."

    def test_budget_below_minimum(self, client, candidates_json):
        response = client.post(
            "/api/expansion/scenarios",
            json={"config": self._config(budget=500_000), "candidates": candidates_json},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Budget must be at least $1M"

    def test_compare(self, client, candidates_json):
        response = client.post(
            "/api/expansion/scenarios/compare",
            json={"scenarios": [self._config("A"), self._config("B")], "candidates": candidates_json},
        )
        assert response.status_code == 200
        assert response.json()["comparison"]["winner"] == 0

    def test_compare_needs_two(self, client, candidates_json):
        response = client.post(
            "/api/expansion/scenarios/compare",
            json={"scenarios": [self._config("A")], "candidates": candidates_json},
        )
        assert response.status_code == 400

    def test_quick(self, client, candidates_json):
        response = client.post(
            "/api/expansion/scenarios/quick", json={"type": "budget", "candidates": candidates_json}
        )
        assert response.status_code == 200
        assert [s["config"]["name"] for s in response.json()["scenarios"]] == [
            "Conservative",
            "Moderate",
            "Aggressive",
        ]

    def test_quick_unknown_type(self, client, candidates_json):
        response = client.post(
            "/api/expansion/scenarios/quick", json={"type": "weather", "candidates": candidates_json}
        )
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "type"


class TestCandidates:
    def test_fallback_generation(self, client):
        response = client.post(
            "/api/expansion/candidates",
            json={"region": {"country": "Germany"}, "target_count": 3, "enable_ai_rationale": False},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["mode"] == "fallback"
        assert len(data["candidates"]) == 3
        assert data["candidates"][0]["has_ai_analysis"] is False

    def test_empty_region(self, client):
        response = client.post("/api/expansion/candidates", json={"region": {}})
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "region"

    def test_generated_candidates(self, client, container):
        workflow = MagicMock()
        workflow.generate = AsyncMock(
            return_value=ExpansionResult(
                candidates=[ExpansionCandidate(id="simple-ai-1", lat=48.1, lng=11.5)],
                mode="simple",
                target_count=1,
                tokens_used=1200,
                cost=0.0123456789,
            )
        )
        container.override("expansion_workflow", workflow)

        response = client.post("/api/expansion/candidates", json={"region": {"country": "Germany"}})

        assert response.status_code == 200
        data = response.json()
        assert data["candidates"][0]["id"] == "simple-ai-1"
        assert data["cost"] == 0.012346

    def test_dependency_failure_is_502(self, client, container):
        workflow = MagicMock()
        workflow.generate = AsyncMock(side_effect=LLMAPIError("rate limited", error_code="429"))
        container.override("expansion_workflow", workflow)

        response = client.post("/api/expansion/candidates", json={"region": {"country": "Germany"}})

        assert response.status_code == 502
        body = response.json()
        assert body["type"] == "LLMAPIError"
        assert body["detail"] == {"dependency": "reasoning", "retryable": True}

    def test_stage_failure_is_500(self, client, container):
        workflow = MagicMock()
        workflow.generate = AsyncMock(side_effect=StageFailure("Location Discovery", "timeout"))
        container.override("expansion_workflow", workflow)

        response = client.post("/api/expansion/candidates", json={"region": {"country": "Germany"}})

        assert response.status_code == 500
        assert response.json()["detail"]["stage"] == "Location Discovery"


class TestPipelines:
    def test_unknown_pipeline(self, client):
        assert client.get("/api/expansion/pipelines/nope").status_code == 404
        assert client.delete("/api/expansion/pipelines/nope").status_code == 404

    def test_status_and_cancel(self, client, container):
        controller = MagicMock()
        controller.get_pipeline_status.return_value = {
            "pipeline_id": "p-1",
            "region": "Berlin",
            "status": "RUNNING",
            "current_stage": "Location Discovery",
            "progress": 40,
            "cancel_requested": False,
        }
        controller.cancel_pipeline.return_value = True
        container.override("pipeline_controller", controller)

        status = client.get("/api/expansion/pipelines/p-1")
        assert status.status_code == 200
        assert status.json()["progress"] == 40

        cancel = client.delete("/api/expansion/pipelines/p-1")
        assert cancel.json() == {"pipeline_id": "p-1", "cancelled": True}
        controller.cancel_pipeline.assert_called_once_with("p-1")



class TestInFlightCancellation:
    """A client-chosen pipeline_id lets a running pipeline be polled and cancelled"""

    @pytest.fixture
    def gate(self):
        return SimpleNamespace(entered=asyncio.Event(), release=asyncio.Event())

    @pytest.fixture
    def stage_services(self, gate):
        async def slow_market_analysis(request):
            gate.entered.set()
            await gate.release.wait()
            return SimpleNamespace(analysis=MagicMock(), strategic_zones=[], tokens_used=100, cost=0.01)

        market = MagicMock()
        market.analyze_market = AsyncMock(side_effect=slow_market_analysis)
        found = [ExpansionCandidate(id="b1", lat=52.52, lng=13.40, strategic_score=0.7)]
        zones = MagicMock()
        zones.identify_zones = AsyncMock(return_value=SimpleNamespace(zones=[], tokens_used=0, cost=0.0))
        discovery = MagicMock()
        discovery.discover_locations = AsyncMock(
            return_value=SimpleNamespace(candidates=found, tokens_used=0, cost=0.0)
        )
        viability = MagicMock()
        viability.validate = AsyncMock(return_value=SimpleNamespace(candidates=found, tokens_used=0, cost=0.0))
        scoring = MagicMock()
        scoring.score_candidates = AsyncMock(
            return_value=SimpleNamespace(candidates=found, tokens_used=0, cost=0.0)
        )
        return SimpleNamespace(market=market, zones=zones, discovery=discovery, viability=viability, scoring=scoring)

    @pytest.fixture
    def pipeline_app(self, container, stage_services, quiet_logger, monkeypatch):
        monkeypatch.setenv("FF_EXPANSION_USE_SIMPLE_EXPANSION", "false")
        controller = PipelineController(
            stage_services.market,
            stage_services.zones,
            stage_services.discovery,
            stage_services.viability,
            stage_services.scoring,
            logger=quiet_logger,
        )
        container.override("pipeline_controller", controller)
        return create_app(container)

    @pytest.mark.asyncio
    async def test_cancel_running_pipeline(self, pipeline_app, gate, stage_services):
        payload = {
            "region": {"city": "Berlin", "country": "Germany"},
            "target_count": 5,
            "bounds": {"north": 52.7, "south": 52.3, "east": 13.8, "west": 13.1},
            "pipeline_id": "berlin-q3",
        }
        transport = httpx.ASGITransport(app=pipeline_app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
            generation = asyncio.create_task(http.post("/api/expansion/candidates", json=payload))
            await asyncio.wait_for(gate.entered.wait(), timeout=5)

            status = await http.get("/api/expansion/pipelines/berlin-q3")
            assert status.status_code == 200
            assert status.json()["status"] == "RUNNING"
            assert status.json()["current_stage"] == "Market Analysis"

            cancel = await http.delete("/api/expansion/pipelines/berlin-q3")
            assert cancel.json() == {"pipeline_id": "berlin-q3", "cancelled": True}

            gate.release.set()
            response = await asyncio.wait_for(generation, timeout=5)

            final = await http.get("/api/expansion/pipelines/berlin-q3")

        assert response.status_code == 409
        assert response.json()["type"] == "PipelineCancelledError"
        assert response.json()["detail"] == {"pipeline_id": "berlin-q3"}
        assert final.json()["status"] == "CANCELLED"
        stage_services.zones.identify_zones.assert_not_called()
        stage_services.discovery.discover_locations.assert_not_called()

    @pytest.mark.asyncio
    async def test_finished_pipeline_cannot_be_cancelled(self, pipeline_app, gate):
        gate.release.set()
        payload = {
            "region": {"country": "Germany"},
            "target_count": 5,
            "bounds": {"north": 52.7, "south": 52.3, "east": 13.8, "west": 13.1},
            "pipeline_id": "done-1",
        }
        transport = httpx.ASGITransport(app=pipeline_app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
            response = await http.post("/api/expansion/candidates", json=payload)
            cancel = await http.delete("/api/expansion/pipelines/done-1")

        assert response.status_code == 200
        assert response.json()["pipeline_id"] == "done-1"
        assert cancel.json() == {"pipeline_id": "done-1", "cancelled": False}

class TestRateLimit:
    def test_generation_limit(self, client):
        payload = {"region": {"country": "Germany"}, "target_count": 1, "enable_ai_rationale": False}
        codes = [client.post("/api/expansion/candidates", json=payload).status_code for _ in range(11)]
        assert codes[:10] == [200] * 10
        assert codes[10] == 429
