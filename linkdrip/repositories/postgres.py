"""PostgreSQL repository implementations for the async API path."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linkdrip.models import CrawlJob, DiscoveredOpportunity, User, Website


class PostgresCrawlJobRepository:
    """PostgreSQL implementation of crawl job repository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, job_id: str) -> CrawlJob | None:
        """Get a crawl job by ID."""
        result = await self.session.execute(
            select(CrawlJob).where(CrawlJob.id == job_id)
        )
        return result.scalar_one_or_none()

    async def get_recent(self, limit: int = 50) -> list[CrawlJob]:
        """Most recently created jobs first."""
        result = await self.session.execute(
            select(CrawlJob).order_by(CrawlJob.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def save(self, job: CrawlJob) -> CrawlJob:
        """Save a crawl job."""
        self.session.add(job)
        await self.session.flush()
        return job


class PostgresOpportunityRepository:
    """PostgreSQL implementation of discovered opportunity repository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, opportunity_id: str) -> DiscoveredOpportunity | None:
        result = await self.session.execute(
            select(DiscoveredOpportunity).where(DiscoveredOpportunity.id == opportunity_id)
        )
        return result.scalar_one_or_none()


class PostgresWebsiteRepository:
    """PostgreSQL implementation of website repository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, website_id: str) -> Website | None:
        result = await self.session.execute(
            select(Website).where(Website.id == website_id)
        )
        return result.scalar_one_or_none()


class PostgresUserRepository:
    """PostgreSQL implementation of user repository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()
