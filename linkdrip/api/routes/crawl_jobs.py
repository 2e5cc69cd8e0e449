"""Crawl job routes: submit a discovery crawl and poll its status."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from linkdrip.api.deps import AppSettings, DbSession
from linkdrip.models import CrawlJob
from linkdrip.repositories import PostgresCrawlJobRepository
from linkdrip.services.frontier import build_crawl_job
from linkdrip.services.url_validator import URLValidator, ensure_scheme
from linkdrip.workers.tasks import run_crawl_job

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateCrawlJobRequest(BaseModel):
    """Request to start a discovery crawl."""

    category: str = "all"
    seed_urls: list[str] = Field(min_length=1, max_length=100)
    max_depth: int | None = Field(default=None, ge=0, le=3)


class CrawlJobResponse(BaseModel):
    """Crawl job information response."""

    id: str
    category: str
    seed_urls: list[str]
    max_depth: int
    status: str
    trigger_reason: str
    created_at: str
    started_at: str | None = None
    completed_at: str | None = None
    error_message: str | None = None
    results: dict[str, Any] | None = None


class CrawlJobListResponse(BaseModel):
    jobs: list[CrawlJobResponse]
    total: int


def _to_response(job: CrawlJob) -> CrawlJobResponse:
    return CrawlJobResponse(
        id=job.id,
        category=job.category,
        seed_urls=job.seed_urls,
        max_depth=job.max_depth,
        status=job.status,
        trigger_reason=job.trigger_reason,
        created_at=job.created_at.isoformat(),
        started_at=job.started_at.isoformat() if job.started_at else None,
        completed_at=job.completed_at.isoformat() if job.completed_at else None,
        error_message=job.error_message,
        results=job.results,
    )


@router.post("", response_model=CrawlJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_crawl_job(
    request: CreateCrawlJobRequest,
    db: DbSession,
    settings: AppSettings,
) -> CrawlJobResponse:
    """Create a crawl job and run it in the background."""
    validator = URLValidator()
    for url in request.seed_urls:
        error = validator.validate_format(ensure_scheme(url))
        if error:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{url}: {error}",
            )

    max_depth = request.max_depth if request.max_depth is not None else settings.frontier_max_depth
    try:
        job = build_crawl_job(request.category, request.seed_urls, max_depth, "manual")
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    job_repo = PostgresCrawlJobRepository(db)
    await job_repo.save(job)

    # Commit before dispatching so the worker can see the job
    await db.commit()

    task = run_crawl_job.delay(job.id)
    job.celery_task_id = task.id
    await job_repo.save(job)

    logger.info(f"Queued crawl job {job.id} ({job.category}, {len(job.seed_urls)} seeds)")
    return _to_response(job)


@router.get("", response_model=CrawlJobListResponse)
async def list_crawl_jobs(db: DbSession, limit: int = 50) -> CrawlJobListResponse:
    """List recent crawl jobs."""
    jobs = await PostgresCrawlJobRepository(db).get_recent(limit=min(limit, 200))
    return CrawlJobListResponse(jobs=[_to_response(j) for j in jobs], total=len(jobs))


@router.get("/{job_id}", response_model=CrawlJobResponse)
async def get_crawl_job(job_id: str, db: DbSession) -> CrawlJobResponse:
    """Get a crawl job's status and, once finished, its results."""
    job = await PostgresCrawlJobRepository(db).get_by_id(job_id)
    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Crawl job not found",
        )
    return _to_response(job)
