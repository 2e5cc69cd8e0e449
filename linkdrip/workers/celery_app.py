"""Celery application configuration."""

import json
import logging
import sys
from datetime import datetime, timezone

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from linkdrip.config import get_settings

settings = get_settings()


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    One JSON object per line so log platforms can pick up the level.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra"):
            log_data["extra"] = record.extra

        return json.dumps(log_data)


@setup_logging.connect
def configure_logging(**kwargs):
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)

    for name in ("celery", "linkdrip"):
        named_logger = logging.getLogger(name)
        named_logger.handlers.clear()
        named_logger.addHandler(handler)
        named_logger.setLevel(logging.INFO)
        named_logger.propagate = False


celery_app = Celery(
    "linkdrip",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["linkdrip.workers.tasks"],
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
    worker_hijack_root_logger=False,
    worker_redirect_stdouts=True,
    worker_redirect_stdouts_level="INFO",
    # Result backend
    result_expires=3600,
    beat_schedule={
        "crawl-cycle": {
            "task": "linkdrip.workers.tasks.run_crawl_cycle",
            "schedule": crontab(minute=0),  # Hourly
        },
        "refresh-stale-opportunities": {
            "task": "linkdrip.workers.tasks.refresh_stale_opportunities",
            "schedule": crontab(minute=30, hour=settings.refresh_hour_utc),  # Daily
        },
        "discovery-pipeline": {
            "task": "linkdrip.workers.tasks.run_discovery_pipeline",
            "schedule": crontab(minute=0, hour=settings.pipeline_hour_utc),  # Daily
        },
        "fail-stalled-crawl-jobs": {
            "task": "linkdrip.workers.tasks.fail_stalled_crawl_jobs",
            "schedule": crontab(minute=f"*/{settings.stalled_job_check_minutes}"),
        },
    },
)
