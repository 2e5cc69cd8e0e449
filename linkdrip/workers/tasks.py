"""Celery task definitions.

These tasks are thin wrappers that call into the service layer.
The actual business logic lives in the services module.
"""

import logging
import random
from dataclasses import asdict
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from linkdrip.config import get_settings
from linkdrip.database import utcnow
from linkdrip.models import Website
from linkdrip.services.enrichment import OpportunityEnricher
from linkdrip.services.frontier import CrawlFrontier
from linkdrip.services.metrics_provider import MetricsProvider, build_metrics_provider
from linkdrip.services.orchestrator import DiscoveryOrchestrator
from linkdrip.services.scheduler import get_pipeline_lock
from linkdrip.services.seeds import SeedRotation
from linkdrip.services.website_profiler import WebsiteProfiler
from linkdrip.workers.celery_app import celery_app

settings = get_settings()
logger = logging.getLogger(__name__)

# Sync engine for Celery tasks (Celery doesn't support async well)
sync_database_url = settings.database_url.replace("+asyncpg", "").replace("+aiosqlite", "")
sync_engine = create_engine(sync_database_url, pool_pre_ping=True)
SyncSessionLocal = sessionmaker(bind=sync_engine)


@lru_cache
def get_metrics_provider() -> MetricsProvider:
    """One metrics provider per worker process."""
    return build_metrics_provider(settings)


@celery_app.task(bind=True, soft_time_limit=1800, time_limit=1860)
def run_crawl_job(self, crawl_job_id: str) -> dict:
    """Execute a pending crawl job created by the API or the crawl cycle."""
    session = SyncSessionLocal()
    try:
        with CrawlFrontier(session, settings) as frontier:
            results = frontier.execute_job(crawl_job_id)
        return {k: v for k, v in results.items() if k != "details"}

    except Exception as e:
        session.rollback()
        logger.error(f"run_crawl_job failed for {crawl_job_id}: {e}")
        return {"error": str(e)}

    finally:
        session.close()


@celery_app.task
def run_crawl_cycle() -> dict:
    """Periodic task: dispatch crawl jobs for this hour's seed rotation."""
    session = SyncSessionLocal()
    try:
        rotation = SeedRotation(
            seeds_per_category=settings.seeds_per_category,
            default_max_depth=settings.frontier_max_depth,
            deep_crawl_probability=settings.deep_crawl_probability,
            deep_crawl_max_depth=settings.deep_crawl_max_depth,
        )
        job_ids = []
        with CrawlFrontier(session, settings) as frontier:
            for plan in rotation.select(utcnow(), random.Random()):
                job = frontier.start_discovery_crawl(
                    plan.category,
                    plan.seed_urls,
                    max_depth=plan.max_depth,
                    trigger_reason=plan.trigger_reason,
                )
                job_ids.append(job.id)

        logger.info(f"Crawl cycle dispatched {len(job_ids)} jobs")
        return {"jobs_dispatched": len(job_ids), "job_ids": job_ids}

    except Exception as e:
        session.rollback()
        logger.error(f"run_crawl_cycle failed: {e}")
        return {"error": str(e)}

    finally:
        session.close()


@celery_app.task(soft_time_limit=600, time_limit=660)
def enrich_opportunities(opportunity_ids: list[str] | None = None) -> dict:
    """Attach metrics to discovered opportunities (all of them when no ids are given)."""
    session = SyncSessionLocal()
    try:
        stats = OpportunityEnricher(session, get_metrics_provider()).process_discovered_batch(
            opportunity_ids
        )
        return asdict(stats)

    except Exception as e:
        session.rollback()
        logger.error(f"enrich_opportunities failed: {e}")
        return {"error": str(e)}

    finally:
        session.close()


@celery_app.task(soft_time_limit=120, time_limit=150)
def analyze_website(website_id: str) -> dict:
    """Build or rebuild one website's profile."""
    session = SyncSessionLocal()
    try:
        website = session.get(Website, website_id)
        if not website:
            logger.warning(f"Website {website_id} not found for analysis")
            return {"error": "Website not found"}

        with WebsiteProfiler(session, settings) as profiler:
            profile = profiler.analyze_website(website.id, website.url)
        return {
            "website_id": website_id,
            "keywords": len(profile.keywords),
            "topics": len(profile.topics),
        }

    except Exception as e:
        session.rollback()
        logger.error(f"analyze_website failed for {website_id}: {e}")
        return {"error": str(e)}

    finally:
        session.close()


@celery_app.task(soft_time_limit=1800, time_limit=1860)
def refresh_stale_opportunities() -> dict:
    """Periodic task: re-check opportunities not seen for a week."""
    session = SyncSessionLocal()
    try:
        enricher = OpportunityEnricher(session, get_metrics_provider())
        with CrawlFrontier(session, settings) as frontier:
            return frontier.refresh_stale_opportunities(enricher)

    except Exception as e:
        session.rollback()
        logger.error(f"refresh_stale_opportunities failed: {e}")
        return {"error": str(e)}

    finally:
        session.close()


@celery_app.task(soft_time_limit=7000, time_limit=7200)
def run_discovery_pipeline() -> dict:
    """Periodic task: profile, crawl, enrich, match and allocate."""
    session = SyncSessionLocal()
    try:
        orchestrator = DiscoveryOrchestrator(
            session,
            settings,
            lock=get_pipeline_lock(),
            metrics_provider=get_metrics_provider(),
        )
        with orchestrator:
            result = orchestrator.run_pipeline()
        return {"status": result.status, **result.stats}

    except Exception as e:
        session.rollback()
        logger.error(f"run_discovery_pipeline failed: {e}")
        return {"error": str(e)}

    finally:
        session.close()


@celery_app.task
def fail_stalled_crawl_jobs() -> dict:
    """Periodic task: fail crawl jobs that have been running too long."""
    session = SyncSessionLocal()
    try:
        with CrawlFrontier(session, settings) as frontier:
            return {"failed": frontier.fail_stalled_jobs()}

    except Exception as e:
        session.rollback()
        logger.error(f"fail_stalled_crawl_jobs failed: {e}")
        return {"error": str(e)}

    finally:
        session.close()
