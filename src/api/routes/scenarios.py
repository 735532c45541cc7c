"""
Scenario Routes
===============
Scenario generation, comparison and preset sets (/api/expansion/scenarios*)
"""

import logging

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import PLANNING_LIMIT, get_scenario_service, limiter
from src.api.models import CompareScenariosRequest, QuickScenariosRequest, ScenarioRequest
from src.domain.entities.scenario import ScenarioComparison, ScenarioResult
from src.planning.scenario_modeling import ScenarioModelingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/expansion/scenarios", tags=["Scenarios"])


@router.post("", response_model=ScenarioResult)
@limiter.limit(PLANNING_LIMIT)
async def generate_scenario(
    request: Request,
    body: ScenarioRequest,
    service: ScenarioModelingService = Depends(get_scenario_service),
):
    return await service.generate_scenario(body.config, body.candidates)


@router.post("/compare", response_model=ScenarioComparison)
@limiter.limit(PLANNING_LIMIT)
async def compare_scenarios(
    request: Request,
    body: CompareScenariosRequest,
    service: ScenarioModelingService = Depends(get_scenario_service),
):
    return await service.compare_scenarios(body.scenarios, body.candidates)


@router.post("/quick", response_model=ScenarioComparison)
@limiter.limit(PLANNING_LIMIT)
async def quick_scenarios(
    request: Request,
    body: QuickScenariosRequest,
    service: ScenarioModelingService = Depends(get_scenario_service),
):
    """Preset sets: budget (25/50/75M), store_count, timeline (1/3/5y), geographic"""
    return await service.generate_quick_scenarios(body.type, body.candidates, body.base_config)
