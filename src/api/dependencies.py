"""
API Dependencies
================
Shared route dependencies: the slowapi rate limiter and container access.

Routes never build services themselves; they pull them from the Container
stored on app.state by create_app().
"""

import logging

from fastapi import Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.application.workflows.expansion_workflow import ExpansionWorkflow
from src.infrastructure.container import Container
from src.pipeline.controller import PipelineController
from src.planning.portfolio_optimizer import PortfolioOptimizer
from src.planning.scenario_modeling import ScenarioModelingService

logger = logging.getLogger(__name__)

# ============= Rate Limiter =============

limiter = Limiter(key_func=get_remote_address)

HEALTH_LIMIT = "60/minute"
PLANNING_LIMIT = "30/minute"
GENERATION_LIMIT = "10/minute"


# ============= Container access =============


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_portfolio_optimizer(container: Container = Depends(get_container)) -> PortfolioOptimizer:
    return container.get_portfolio_optimizer()


def get_scenario_service(container: Container = Depends(get_container)) -> ScenarioModelingService:
    return container.get_scenario_service()


def get_expansion_workflow(container: Container = Depends(get_container)) -> ExpansionWorkflow:
    return container.get_expansion_workflow()


def get_pipeline_controller(container: Container = Depends(get_container)) -> PipelineController:
    return container.get_pipeline_controller()
