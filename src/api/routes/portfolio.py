"""
Portfolio Routes
================
Budget-constrained store selection (/api/expansion/optimize-portfolio)
"""

import logging

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import PLANNING_LIMIT, get_portfolio_optimizer, limiter
from src.api.models import OptimizePortfolioRequest
from src.domain.entities.portfolio import OptimizationResult
from src.planning.portfolio_optimizer import PortfolioOptimizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/expansion", tags=["Portfolio"])


@router.post("/optimize-portfolio", response_model=OptimizationResult)
@limiter.limit(PLANNING_LIMIT)
async def optimize_portfolio(
    request: Request,
    body: OptimizePortfolioRequest,
    optimizer: PortfolioOptimizer = Depends(get_portfolio_optimizer),
):
    return await optimizer.optimize(
        body.candidates,
        budget=body.budget,
        strategy=body.strategy,
        constraints=body.constraints,
        max_stores=body.max_stores,
        generate_insights=body.generate_insights,
    )
