"""Website routes: trigger profiling of a subscriber's site."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from linkdrip.api.deps import DbSession
from linkdrip.repositories import PostgresWebsiteRepository
from linkdrip.services.url_validator import URLValidator
from linkdrip.workers.tasks import analyze_website

router = APIRouter()


class AnalyzeWebsiteResponse(BaseModel):
    website_id: str
    task_id: str
    status: str = "queued"


@router.post(
    "/{website_id}/analyze",
    response_model=AnalyzeWebsiteResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def analyze(website_id: str, db: DbSession) -> AnalyzeWebsiteResponse:
    """Check the site is reachable, then queue profiling."""
    website = await PostgresWebsiteRepository(db).get_by_id(website_id)
    if not website:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Website not found",
        )

    validation = await URLValidator().validate(website.url)
    if not validation.is_valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=validation.error_message,
        )

    task = analyze_website.delay(website.id)
    return AnalyzeWebsiteResponse(website_id=website.id, task_id=task.id)
