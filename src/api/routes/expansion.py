"""
Expansion Routes
================
Candidate generation and pipeline status/cancel

- POST   /api/expansion/candidates
- GET    /api/expansion/pipelines/{pipeline_id}
- DELETE /api/expansion/pipelines/{pipeline_id}
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from src.api.dependencies import (
    GENERATION_LIMIT,
    PLANNING_LIMIT,
    get_expansion_workflow,
    get_pipeline_controller,
    limiter,
)
from src.api.models import ExpansionResponse, PipelineCancelResponse, PipelineStatusResponse
from src.application.workflows.expansion_workflow import ExpansionRequest, ExpansionWorkflow
from src.pipeline.controller import PipelineController

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/expansion", tags=["Expansion"])


@router.post("/candidates", response_model=ExpansionResponse)
@limiter.limit(GENERATION_LIMIT)
async def generate_candidates(
    request: Request,
    body: ExpansionRequest,
    workflow: ExpansionWorkflow = Depends(get_expansion_workflow),
):
    result = await workflow.generate(body)
    return ExpansionResponse(
        candidates=result.candidates,
        mode=result.mode,
        target_count=result.target_count,
        tokens_used=result.tokens_used,
        cost=round(result.cost, 6),
        generation_time_ms=round(result.generation_time_ms, 1),
        pipeline_id=result.pipeline_id,
        stages=result.stages,
    )


@router.get("/pipelines/{pipeline_id}", response_model=PipelineStatusResponse)
@limiter.limit(PLANNING_LIMIT)
async def get_pipeline_status(
    request: Request,
    pipeline_id: str,
    controller: PipelineController = Depends(get_pipeline_controller),
):
    status = controller.get_pipeline_status(pipeline_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"Pipeline not found: {pipeline_id}")
    return PipelineStatusResponse(**status)


@router.delete("/pipelines/{pipeline_id}", response_model=PipelineCancelResponse)
@limiter.limit(PLANNING_LIMIT)
async def cancel_pipeline(
    request: Request,
    pipeline_id: str,
    controller: PipelineController = Depends(get_pipeline_controller),
):
    """Stops issuing further stages; a stage already in flight finishes on its own."""
    if controller.get_pipeline_status(pipeline_id) is None:
        raise HTTPException(status_code=404, detail=f"Pipeline not found: {pipeline_id}")
    cancelled = controller.cancel_pipeline(pipeline_id)
    return PipelineCancelResponse(pipeline_id=pipeline_id, cancelled=cancelled)
