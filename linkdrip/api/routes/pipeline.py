"""Pipeline routes: admin trigger and status for the discovery pipeline."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from linkdrip.services.scheduler import get_pipeline_lock
from linkdrip.workers.tasks import run_discovery_pipeline

router = APIRouter()


class PipelineRunResponse(BaseModel):
    task_id: str
    status: str = "queued"


class PipelineStatusResponse(BaseModel):
    running: bool


@router.post("/run", response_model=PipelineRunResponse, status_code=status.HTTP_202_ACCEPTED)
async def run_pipeline() -> PipelineRunResponse:
    """Queue a pipeline run. Overlapping runs are skipped by the worker."""
    task = run_discovery_pipeline.delay()
    return PipelineRunResponse(task_id=task.id)


@router.get("/status", response_model=PipelineStatusResponse)
async def pipeline_status() -> PipelineStatusResponse:
    return PipelineStatusResponse(running=get_pipeline_lock().is_locked())
