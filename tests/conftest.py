import os
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from dotenv import load_dotenv

from src.domain.entities.portfolio import PortfolioCandidate
from src.monitoring.logger import AgentLogger


def pytest_configure(config):
    """Load environment settings before the test run"""
    project_root = Path(__file__).parent.parent

    main_env_path = project_root / ".env"
    if main_env_path.exists():
        load_dotenv(main_env_path, override=False)

    env_file = os.environ.get("ENV_FILE", ".env.test")
    env_path = project_root / env_file
    if env_path.exists():
        load_dotenv(env_path, override=True)


@pytest.fixture(autouse=True)
def clear_logger_instances():
    """AgentLogger caches one instance per name"""
    AgentLogger._instances.clear()
    yield
    AgentLogger._instances.clear()


@pytest.fixture
def quiet_logger(tmp_path):
    return AgentLogger("test", log_dir=str(tmp_path / "logs"))


def _make_response(data, model="gpt-5-mini", total_tokens=150, cost=0.001):
    response = MagicMock()
    response.data = data
    response.model = model
    response.usage.total_tokens = total_tokens
    response.cost = cost
    return response


@pytest.fixture
def make_response():
    """Builds ParsedResponse look-alikes for a mocked ReasoningClient.request_json"""
    return _make_response


@pytest.fixture
def reasoning_client():
    """ReasoningClient mock; set request_json.return_value / side_effect per test"""
    client = MagicMock()
    client.request_json = AsyncMock()
    return client


@pytest.fixture
def portfolio_candidates():
    """Three candidates; the second fails the default 15% minimum ROI"""
    return [
        PortfolioCandidate(
            id="c1", name="Berlin Mitte", city="Berlin", country="Germany", region="EMEA",
            roi=22, cost=2_000_000, cannibalization=4, expected_revenue=900_000,
            payback_years=3.2, npv=1_200_000, confidence=80,
        ),
        PortfolioCandidate(
            id="c2", name="Hamburg Altona", city="Hamburg", country="Germany", region="EMEA",
            roi=12, cost=1_000_000, cannibalization=2, expected_revenue=400_000,
            payback_years=5.0, npv=200_000, confidence=60,
        ),
        PortfolioCandidate(
            id="c3", name="Munich Schwabing", city="Munich", country="Germany", region="EMEA",
            roi=18, cost=3_000_000, cannibalization=9, expected_revenue=1_100_000,
            payback_years=3.8, npv=900_000, confidence=70,
        ),
    ]
