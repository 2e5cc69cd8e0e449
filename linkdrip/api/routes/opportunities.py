"""Opportunity routes: enrichment trigger, daily drips and match explanations."""

from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ConfigDict

from linkdrip.api.deps import AppSettings, DbSession
from linkdrip.repositories import PostgresOpportunityRepository, PostgresUserRepository
from linkdrip.services.opportunity_matcher import OpportunityMatcher
from linkdrip.workers.tasks import enrich_opportunities

router = APIRouter()


class EnrichRequest(BaseModel):
    opportunity_ids: list[str] | None = None


class TaskQueuedResponse(BaseModel):
    task_id: str
    status: str = "queued"


class OpportunityResponse(BaseModel):
    """A discovered opportunity as shown on the dashboard."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    url: str
    domain: str
    source_type: str
    title: str | None = None
    description: str | None = None
    contact_email: str | None = None
    has_contact_form: bool
    domain_authority: int | None = None
    page_authority: int | None = None
    spam_score: int | None = None
    is_premium: bool
    status: str


class DailyOpportunitiesResponse(BaseModel):
    opportunities: list[OpportunityResponse]
    total: int


class MatchExplanationResponse(BaseModel):
    reasons: list[str]
    score: int
    metrics: dict[str, Any]


@router.post(
    "/opportunities/enrich",
    response_model=TaskQueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enrich(request: EnrichRequest) -> TaskQueuedResponse:
    """Queue metrics enrichment for the given (or all discovered) opportunities."""
    task = enrich_opportunities.delay(request.opportunity_ids)
    return TaskQueuedResponse(task_id=task.id)


@router.get("/users/{user_id}/daily-opportunities", response_model=DailyOpportunitiesResponse)
async def get_daily_opportunities(
    user_id: str,
    db: DbSession,
    settings: AppSettings,
    website_id: str | None = None,
) -> DailyOpportunitiesResponse:
    """Today's drip for a user, optionally for one website."""
    user = await PostgresUserRepository(db).get_by_id(user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    opportunities = await db.run_sync(
        lambda session: OpportunityMatcher(session, settings).get_user_daily_opportunities(
            user_id, website_id
        )
    )
    items = [OpportunityResponse.model_validate(o) for o in opportunities]
    return DailyOpportunitiesResponse(opportunities=items, total=len(items))


@router.get("/opportunities/{opportunity_id}/explain", response_model=MatchExplanationResponse)
async def explain_match(
    opportunity_id: str,
    website_id: str,
    db: DbSession,
    settings: AppSettings,
) -> MatchExplanationResponse:
    """Why an opportunity matches a website."""
    opportunity = await PostgresOpportunityRepository(db).get_by_id(opportunity_id)
    if not opportunity:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Opportunity not found",
        )

    explanation = await db.run_sync(
        lambda session: OpportunityMatcher(session, settings).explain_match(opportunity_id, website_id)
    )
    return MatchExplanationResponse(
        reasons=explanation.reasons,
        score=explanation.score,
        metrics=explanation.metrics,
    )
