"""
Tests for a full discovery pipeline run.
"""

import random
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from conftest import RESOURCE_PAGE_HTML, MockSite, make_user, make_website
from sqlalchemy import select

from linkdrip.exceptions import TransientFetchError
from linkdrip.models import CrawlJob, DailyAllocation
from linkdrip.services.crawler import OpportunityCrawler
from linkdrip.services.metrics_provider import MetricsProvider
from linkdrip.services.orchestrator import STAGES, DiscoveryOrchestrator
from linkdrip.services.scheduler import PIPELINE_LOCK_KEY, PipelineLock
from linkdrip.services.seeds import SeedRotation

NOW = datetime(2026, 10, 18, 1, 0, tzinfo=timezone.utc)
SEED = "https://gardenhub-links.org/resources"


@pytest.fixture
def site() -> MockSite:
    return MockSite({SEED: RESOURCE_PAGE_HTML})


@pytest.fixture
def profiler() -> MagicMock:
    profiler = MagicMock()
    profiler.needs_refresh.return_value = False
    return profiler


@pytest.fixture
def lock(fake_redis) -> PipelineLock:
    return PipelineLock(fake_redis, ttl_seconds=60)


@pytest.fixture
def subscriber(db_session):
    user = make_user(db_session, subscription_plan="starter")
    website = make_website(db_session, user, keywords=["gardening", "organic", "resources"])
    db_session.commit()
    return user, website


def _orchestrator(db_session, settings, lock, site, profiler, metrics_provider=None) -> DiscoveryOrchestrator:
    return DiscoveryOrchestrator(
        db_session,
        settings,
        lock=lock,
        metrics_provider=metrics_provider or MetricsProvider(sources=[]),
        crawler=OpportunityCrawler(settings, client=site.client(), rng=random.Random(1)),
        profiler=profiler,
        seeds=SeedRotation(
            seeds_per_category=1,
            default_max_depth=0,
            deep_crawl_probability=0,
            seed_urls={"resource_page": [SEED]},
        ),
        rng=random.Random(1),
    )


class TestRunPipeline:

    def test_end_to_end(self, db_session, settings, lock, site, profiler, subscriber, fake_redis):
        user, _ = subscriber

        result = _orchestrator(db_session, settings, lock, site, profiler).run_pipeline(NOW)

        assert result.status == "completed"
        assert not result.skipped
        stats = result.stats
        assert stats["crawl_jobs"] == 1
        assert stats["opportunities_discovered"] == 1
        assert stats["opportunities_analyzed"] == 1
        assert stats["matches_created"] == 1
        assert stats["allocations_assigned"] == 1
        assert stats["errors"] == 0
        assert set(stats["stage_errors"]) == set(STAGES)

        job = db_session.scalars(select(CrawlJob)).one()
        assert job.trigger_reason == "scheduled"
        assert job.status == "completed"

        allocation = db_session.scalars(select(DailyAllocation)).one()
        assert allocation.user_id == user.id
        assert allocation.allocation_date == NOW.date()
        assert PIPELINE_LOCK_KEY not in fake_redis.store

    def test_skipped_while_another_run_holds_the_lock(self, db_session, settings, lock, site, profiler, fake_redis):
        fake_redis.set(PIPELINE_LOCK_KEY, "other-run")

        result = _orchestrator(db_session, settings, lock, site, profiler).run_pipeline(NOW)

        assert result.skipped
        assert result.stats == {"skipped": True}
        assert site.requested == []
        assert fake_redis.get(PIPELINE_LOCK_KEY) == "other-run"

    def test_failing_stage_does_not_stop_later_stages(
        self, db_session, settings, lock, site, profiler, subscriber, fake_redis
    ):
        broken_metrics = MagicMock()
        broken_metrics.get_batch_metrics.side_effect = RuntimeError("metrics backend exploded")

        result = _orchestrator(db_session, settings, lock, site, profiler, broken_metrics).run_pipeline(NOW)

        stats = result.stats
        assert result.status == "completed"
        assert stats["opportunities_discovered"] == 1
        assert stats["stage_errors"]["enrich"] == 1
        assert stats["errors"] == 1
        # Nothing was analyzed, so nothing to match, but the stages still ran
        assert stats["matches_created"] == 0
        assert stats["allocations_assigned"] == 0
        assert db_session.scalars(select(DailyAllocation)).one().delivered_count == 0
        assert PIPELINE_LOCK_KEY not in fake_redis.store

    def test_profiling_failures_are_counted(self, db_session, settings, lock, site, profiler, subscriber):
        profiler.needs_refresh.return_value = True
        profiler.analyze_website.side_effect = TransientFetchError("https://gardenhub.org", "HTTP 503", 503, "status")

        stats = _orchestrator(db_session, settings, lock, site, profiler).run_pipeline(NOW).stats

        assert stats["websites_profiled"] == 0
        assert stats["stage_errors"]["profile"] == 1
        assert stats["opportunities_discovered"] == 1
        assert stats["matches_created"] == 1

    def test_profiles_stale_websites(self, db_session, settings, lock, site, profiler, subscriber):
        _, website = subscriber
        profiler.needs_refresh.return_value = True

        stats = _orchestrator(db_session, settings, lock, site, profiler).run_pipeline(NOW).stats

        assert stats["websites_profiled"] == 1
        profiler.analyze_website.assert_called_once_with(website.id, website.url)


class TestClientOwnership:

    def test_close_releases_own_clients(self, db_session, settings, lock):
        orchestrator = DiscoveryOrchestrator(
            db_session, settings, lock=lock, metrics_provider=MetricsProvider(sources=[])
        )
        crawl_client = orchestrator.frontier.crawler._get_client()
        profile_client = orchestrator.profiler._get_client()

        with orchestrator:
            pass

        assert crawl_client.is_closed
        assert profile_client.is_closed

    def test_injected_collaborators_are_not_closed(self, db_session, settings, lock, site, profiler):
        orchestrator = _orchestrator(db_session, settings, lock, site, profiler)

        orchestrator.close()

        profiler.close.assert_not_called()
        assert not orchestrator.frontier.crawler._client.is_closed
        orchestrator.frontier.crawler._client.close()
