"""Crawl frontier: bounded breadth-first discovery over seed URLs.

A job walks its seeds breadth-first, hands every URL to the fetch &
classify engine, and upserts a DiscoveredOpportunity (keyed by URL) for
each page that matches the job's category and exposes a contact
channel. The job's results are written once, when it finishes.
"""

import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from linkdrip.config import Settings
from linkdrip.database import utcnow
from linkdrip.exceptions import PersistenceConflict
from linkdrip.models import CrawlJob, DiscoveredOpportunity
from linkdrip.services.crawler import CrawlError, CrawlResult, OpportunityCrawler
from linkdrip.services.page_classifier import OPPORTUNITY_CATEGORIES
from linkdrip.services.url_validator import extract_domain, normalize_url

logger = logging.getLogger(__name__)

STALLED_JOB_MESSAGE = "Job automatically terminated due to exceeding maximum runtime"


def build_crawl_job(
    category: str,
    seed_urls: list[str],
    max_depth: int,
    trigger_reason: str = "manual",
) -> CrawlJob:
    """Create an unsaved pending job with normalized, de-duplicated seeds."""
    if category != "all" and category not in OPPORTUNITY_CATEGORIES:
        raise ValueError(f"Unknown opportunity category: {category}")
    if max_depth < 0:
        raise ValueError("max_depth must be >= 0")

    seeds: list[str] = []
    for url in seed_urls:
        normalized = normalize_url(url)
        if normalized not in seeds:
            seeds.append(normalized)
    if not seeds:
        raise ValueError("At least one seed URL is required")

    return CrawlJob(
        category=category,
        seed_urls=seeds,
        max_depth=max_depth,
        trigger_reason=trigger_reason,
        status="pending",
    )


class CrawlFrontier:
    """Runs discovery crawl jobs against the database."""

    def __init__(
        self,
        session: Session,
        settings: Settings,
        crawler: OpportunityCrawler | None = None,
    ):
        self.session = session
        self.settings = settings
        self.crawler = crawler or OpportunityCrawler(settings)
        self._owns_crawler = crawler is None

    def __enter__(self) -> "CrawlFrontier":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Release the HTTP client of a crawler this frontier created."""
        if self._owns_crawler:
            self.crawler.close()

    # =========================================================================
    # Job lifecycle
    # =========================================================================

    def create_job(
        self,
        category: str,
        seed_urls: list[str],
        max_depth: int | None = None,
        trigger_reason: str = "manual",
    ) -> CrawlJob:
        """Persist a pending job without dispatching it."""
        if max_depth is None:
            max_depth = self.settings.frontier_max_depth
        job = build_crawl_job(category, seed_urls, max_depth, trigger_reason)
        self.session.add(job)
        self.session.commit()
        return job

    def start_discovery_crawl(
        self,
        category: str,
        seed_urls: list[str],
        max_depth: int | None = None,
        trigger_reason: str = "manual",
    ) -> CrawlJob:
        """Create a job and hand it to a worker. Returns the pending job immediately."""
        from linkdrip.workers.tasks import run_crawl_job

        job = self.create_job(category, seed_urls, max_depth, trigger_reason)

        # Commit happens in create_job so the worker can see the row
        task = run_crawl_job.delay(job.id)
        job.celery_task_id = task.id
        self.session.commit()

        logger.info(
            f"Dispatched crawl job {job.id} ({category}, {len(job.seed_urls)} seeds, "
            f"max_depth={job.max_depth})"
        )
        return job

    def execute_job(self, job_id: str) -> dict[str, Any]:
        """Run a pending job to completion. Errors end up on the job, not raised."""
        job = self.session.get(CrawlJob, job_id)
        if job is None:
            logger.warning(f"Crawl job {job_id} not found")
            return {"error": "Crawl job not found"}

        if job.status != "pending":
            logger.info(f"Crawl job {job_id} is {job.status}, skipping")
            return {"skipped": True, "status": job.status}

        job.start()
        self.session.commit()
        logger.info(f"Starting crawl job {job.id}: {job.category}, {len(job.seed_urls)} seeds")

        try:
            results = self._traverse(job)
        except Exception as e:
            self.session.rollback()
            logger.exception(f"Crawl job {job.id} failed: {e}")
            job = self.session.get(CrawlJob, job_id)
            job.fail(str(e))
            self.session.commit()
            return {"error": str(e)}

        job.complete(results)
        self.session.commit()
        logger.info(
            f"Crawl job {job.id} completed: crawled={results['crawled']} "
            f"discovered={results['discovered']} updated={results['updated']} "
            f"errors={results['errors']}"
        )
        return results

    def fail_stalled_jobs(self, max_runtime_hours: int | None = None) -> int:
        """Fail jobs stuck in progress for longer than the maximum runtime."""
        if max_runtime_hours is None:
            max_runtime_hours = self.settings.stalled_job_max_runtime_hours
        cutoff = utcnow() - timedelta(hours=max_runtime_hours)

        stalled = self.session.scalars(
            select(CrawlJob).where(
                CrawlJob.status == "in_progress",
                CrawlJob.started_at < cutoff,
            )
        ).all()

        for job in stalled:
            job.fail(STALLED_JOB_MESSAGE)
            logger.warning(f"Crawl job {job.id} exceeded {max_runtime_hours}h, marked failed")

        self.session.commit()
        return len(stalled)

    # =========================================================================
    # Traversal
    # =========================================================================

    def _traverse(self, job: CrawlJob) -> dict[str, Any]:
        visited: set[str] = set()
        queued: set[str] = set()
        to_visit: deque[tuple[str, int]] = deque()

        stats: dict[str, Any] = {
            "crawled": 0,
            "discovered": 0,
            "updated": 0,
            "errors": 0,
            "details": [],
            "opportunity_ids": [],
        }

        for seed in job.seed_urls:
            normalized = normalize_url(seed)
            if normalized not in queued:
                queued.add(normalized)
                to_visit.append((normalized, 0))

        while to_visit:
            url, depth = to_visit.popleft()
            if url in visited:
                continue
            visited.add(url)

            result = self.crawler.crawl(url, depth=depth, max_depth=job.max_depth)
            stats["crawled"] += 1

            if isinstance(result, CrawlError):
                stats["errors"] += 1
                stats["details"].append({
                    "url": result.url,
                    "depth": result.depth,
                    "error": result.message,
                    "kind": result.kind,
                    "status_code": result.status_code,
                })
                continue

            # Redirect targets count as visited too
            visited.add(normalize_url(result.final_url))

            if self._should_persist(job.category, result):
                opportunity, created = self.upsert_opportunity(result)
                if opportunity.status != "expired":
                    stats["discovered" if created else "updated"] += 1
                    if opportunity.id not in stats["opportunity_ids"]:
                        stats["opportunity_ids"].append(opportunity.id)

            if depth < job.max_depth:
                for link in result.follow_links:
                    normalized = normalize_url(link)
                    if normalized not in visited and normalized not in queued:
                        queued.add(normalized)
                        to_visit.append((normalized, depth + 1))

        return stats

    def _should_persist(self, category: str, result: CrawlResult) -> bool:
        if category != "all" and result.category != category:
            return False
        return result.page.has_contact_channel

    # =========================================================================
    # Opportunity upsert
    # =========================================================================

    def upsert_opportunity(self, result: CrawlResult) -> tuple[DiscoveredOpportunity, bool]:
        """Insert or freshen the opportunity for a crawled page.

        Returns the row and whether it was newly created. Expired rows are
        terminal and come back untouched.
        """
        url = normalize_url(result.final_url)
        existing = self._get_by_url(url)
        if existing is not None:
            self._merge(existing, result)
            self.session.commit()
            return existing, False

        try:
            opportunity = self._insert_opportunity(url, result)
        except PersistenceConflict:
            # Lost an insert race, the other writer's row wins
            existing = self._get_by_url(url)
            self._merge(existing, result)
            self.session.commit()
            return existing, False

        self.session.commit()
        return opportunity, True

    def _get_by_url(self, url: str) -> DiscoveredOpportunity | None:
        return self.session.scalars(
            select(DiscoveredOpportunity).where(DiscoveredOpportunity.url == url)
        ).first()

    def _insert_opportunity(self, url: str, result: CrawlResult) -> DiscoveredOpportunity:
        page = result.page
        now = utcnow()
        opportunity = DiscoveredOpportunity(
            url=url,
            domain=extract_domain(url),
            source_type=result.category,
            title=page.title,
            description=page.description,
            content=page.summary,
            categories=page.categories,
            contact_email=page.emails[0] if page.emails else None,
            contact_emails=page.emails,
            has_contact_form=page.has_contact_form,
            relevance_prescore=result.prescore,
            status="discovered",
            discovered_at=now,
            last_checked_at=now,
        )
        try:
            with self.session.begin_nested():
                self.session.add(opportunity)
        except IntegrityError as e:
            raise PersistenceConflict(f"Opportunity already exists for {url}") from e
        return opportunity

    def _merge(self, opportunity: DiscoveredOpportunity, result: CrawlResult) -> None:
        """Overwrite fields the new crawl saw; keep the rest."""
        if opportunity.status == "expired":
            logger.debug(f"Opportunity {opportunity.url} is expired, leaving it as is")
            return

        page = result.page
        opportunity.source_type = result.category
        opportunity.title = page.title or opportunity.title
        opportunity.description = page.description or opportunity.description
        opportunity.content = page.summary or opportunity.content
        if page.categories:
            opportunity.categories = page.categories
        if page.emails:
            opportunity.contact_emails = page.emails
            opportunity.contact_email = page.emails[0]
        opportunity.has_contact_form = page.has_contact_form or opportunity.has_contact_form
        opportunity.relevance_prescore = result.prescore
        opportunity.last_checked_at = utcnow()

    # =========================================================================
    # Refresh sweep
    # =========================================================================

    def find_stale_opportunities(
        self,
        batch_size: int,
        max_age_days: int,
        now: datetime | None = None,
    ) -> list[DiscoveredOpportunity]:
        cutoff = (now or utcnow()) - timedelta(days=max_age_days)
        return list(
            self.session.scalars(
                select(DiscoveredOpportunity)
                .where(
                    DiscoveredOpportunity.status != "expired",
                    or_(
                        DiscoveredOpportunity.last_checked_at.is_(None),
                        DiscoveredOpportunity.last_checked_at < cutoff,
                    ),
                )
                .order_by(DiscoveredOpportunity.last_checked_at.asc().nulls_first())
                .limit(batch_size)
            ).all()
        )

    def refresh_stale_opportunities(
        self,
        enricher=None,
        batch_size: int | None = None,
        max_age_days: int | None = None,
    ) -> dict[str, int]:
        """Re-crawl stale opportunities at depth 0.

        Unreachable pages are expired with the error recorded; reachable
        ones are freshened and, when an enricher is given, get new metrics.
        """
        batch_size = batch_size or self.settings.refresh_batch_size
        max_age_days = max_age_days or self.settings.refresh_max_age_days

        stale = self.find_stale_opportunities(batch_size, max_age_days)
        logger.info(f"Refreshing {len(stale)} stale opportunities")

        stats = {"checked": 0, "expired": 0, "refreshed": 0, "errors": 0}
        refreshed: list[DiscoveredOpportunity] = []

        for opportunity in stale:
            stats["checked"] += 1
            try:
                result = self.crawler.crawl(opportunity.url, depth=0, max_depth=0)
                if isinstance(result, CrawlError):
                    opportunity.expire(f"{result.kind}: {result.message}")
                    stats["expired"] += 1
                    logger.info(f"Expired {opportunity.url}: {result.message}")
                else:
                    self._merge(opportunity, result)
                    refreshed.append(opportunity)
                    stats["refreshed"] += 1
                self.session.commit()
            except Exception as e:
                self.session.rollback()
                stats["errors"] += 1
                logger.error(f"Refresh failed for {opportunity.url}: {e}")

        if enricher is not None and refreshed:
            enricher.refresh_metrics(refreshed)

        return stats
