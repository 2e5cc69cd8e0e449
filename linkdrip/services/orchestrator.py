"""Discovery orchestrator: one full pipeline run.

Stages run in order - profile, crawl, enrich, match, allocate - and each
catches its own errors so a failing stage never stops the ones after it.
Only one run may be in flight at a time.
"""

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from linkdrip.config import Settings
from linkdrip.database import utcnow
from linkdrip.exceptions import ScheduleConflict
from linkdrip.models import Website
from linkdrip.services.crawler import OpportunityCrawler
from linkdrip.services.enrichment import OpportunityEnricher
from linkdrip.services.frontier import CrawlFrontier
from linkdrip.services.metrics_provider import MetricsProvider
from linkdrip.services.opportunity_matcher import OpportunityMatcher
from linkdrip.services.scheduler import PipelineLock
from linkdrip.services.seeds import SeedRotation
from linkdrip.services.website_profiler import WebsiteProfiler

logger = logging.getLogger(__name__)

STAGES = ("profile", "crawl", "enrich", "match", "allocate")


@dataclass
class PipelineResult:
    status: str  # completed, skipped
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"


class DiscoveryOrchestrator:
    """Sequences the discovery pipeline under a single-flight lock."""

    def __init__(
        self,
        session: Session,
        settings: Settings,
        lock: PipelineLock,
        metrics_provider: MetricsProvider,
        crawler: OpportunityCrawler | None = None,
        profiler: WebsiteProfiler | None = None,
        seeds: SeedRotation | None = None,
        rng: random.Random | None = None,
    ):
        self.session = session
        self.settings = settings
        self.lock = lock
        self.rng = rng or random.Random()
        self.frontier = CrawlFrontier(session, settings, crawler)
        self.enricher = OpportunityEnricher(session, metrics_provider)
        self.matcher = OpportunityMatcher(session, settings)
        self.profiler = profiler or WebsiteProfiler(session, settings)
        self._owns_profiler = profiler is None
        self.seeds = seeds or SeedRotation(
            seeds_per_category=settings.seeds_per_category,
            default_max_depth=settings.frontier_max_depth,
            deep_crawl_probability=settings.deep_crawl_probability,
            deep_crawl_max_depth=settings.deep_crawl_max_depth,
        )

    def __enter__(self) -> "DiscoveryOrchestrator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.frontier.close()
        if self._owns_profiler:
            self.profiler.close()

    def run_pipeline(self, now: datetime | None = None) -> PipelineResult:
        """Run every stage once. Reports ``skipped`` if a run is already in flight."""
        try:
            with self.lock.hold():
                return PipelineResult(status="completed", stats=self._run(now or utcnow()))
        except ScheduleConflict:
            logger.info("[Pipeline] Run already in progress, skipping")
            return PipelineResult(status="skipped", stats={"skipped": True})

    def _run(self, now: datetime) -> dict[str, Any]:
        started = time.monotonic()
        stats: dict[str, Any] = {
            "started_at": now.isoformat(),
            "websites_profiled": 0,
            "crawl_jobs": 0,
            "opportunities_discovered": 0,
            "opportunities_analyzed": 0,
            "matches_created": 0,
            "allocations_assigned": 0,
            "errors": 0,
            "stage_errors": {stage: 0 for stage in STAGES},
        }
        logger.info("[Pipeline] Starting discovery pipeline run")

        stages: list[tuple[str, Callable[[dict[str, Any]], None]]] = [
            ("profile", lambda s: self._profile_websites(s, now)),
            ("crawl", lambda s: self._crawl(s, now)),
            ("enrich", self._enrich),
            ("match", self._match),
            ("allocate", lambda s: self._allocate(s, now)),
        ]
        for name, stage in stages:
            self._run_stage(name, stage, stats)

        stats["finished_at"] = utcnow().isoformat()
        stats["duration_seconds"] = round(time.monotonic() - started, 2)
        logger.info(
            f"[Pipeline] Finished in {stats['duration_seconds']}s: "
            f"discovered={stats['opportunities_discovered']} "
            f"analyzed={stats['opportunities_analyzed']} "
            f"matches={stats['matches_created']} "
            f"assigned={stats['allocations_assigned']} errors={stats['errors']}"
        )
        return stats

    def _run_stage(
        self,
        name: str,
        stage: Callable[[dict[str, Any]], None],
        stats: dict[str, Any],
    ) -> None:
        logger.info(f"[Pipeline] Stage {name} starting")
        try:
            stage(stats)
        except Exception as e:
            self.session.rollback()
            self._record_error(stats, name)
            logger.exception(f"[Pipeline] Stage {name} failed: {e}")

    @staticmethod
    def _record_error(stats: dict[str, Any], stage: str, count: int = 1) -> None:
        if count:
            stats["errors"] += count
            stats["stage_errors"][stage] += count

    # =========================================================================
    # Stages
    # =========================================================================

    def _profile_websites(self, stats: dict[str, Any], now: datetime) -> None:
        websites = self.session.scalars(
            select(Website).where(Website.is_active.is_(True)).order_by(Website.created_at)
        ).all()

        for website in websites:
            if not self.profiler.needs_refresh(website.profile, now):
                continue
            try:
                self.profiler.analyze_website(website.id, website.url)
                stats["websites_profiled"] += 1
            except Exception as e:
                self.session.rollback()
                self._record_error(stats, "profile")
                logger.warning(f"[Pipeline] Profiling {website.url} failed: {e}")

    def _crawl(self, stats: dict[str, Any], now: datetime) -> None:
        for plan in self.seeds.select(now, self.rng):
            job = self.frontier.create_job(
                plan.category,
                plan.seed_urls,
                max_depth=plan.max_depth,
                trigger_reason=plan.trigger_reason,
            )
            stats["crawl_jobs"] += 1
            logger.info(
                f"[Pipeline] Crawling {plan.category} ({plan.trigger_reason}, "
                f"max_depth={plan.max_depth}, {len(plan.seed_urls)} seeds)"
            )

            results = self.frontier.execute_job(job.id)
            if "error" in results:
                self._record_error(stats, "crawl")
                continue
            stats["opportunities_discovered"] += results.get("discovered", 0)

    def _enrich(self, stats: dict[str, Any]) -> None:
        result = self.enricher.process_discovered_batch()
        stats["opportunities_analyzed"] += result.analyzed

    def _match(self, stats: dict[str, Any]) -> None:
        stats["matches_created"] += self.matcher.process_new_opportunities()
        self._record_error(stats, "match", self.matcher.errors)

    def _allocate(self, stats: dict[str, Any], now: datetime) -> None:
        stats["allocations_assigned"] += self.matcher.assign_daily_opportunities(now.date())
        self._record_error(stats, "allocate", self.matcher.errors)
