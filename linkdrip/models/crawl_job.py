"""CrawlJob model for tracking discovery crawls."""

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from linkdrip.database import Base, utcnow
from linkdrip.exceptions import InvalidJobTransition

TERMINAL_JOB_STATUSES = ("completed", "failed")


class CrawlJob(Base):
    """One discovery crawl over a set of seed URLs."""

    __tablename__ = "crawl_jobs"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    # What to crawl
    category: Mapped[str] = mapped_column(String(50), default="all")
    seed_urls: Mapped[list[str]] = mapped_column(JSON, default=list)
    max_depth: Mapped[int] = mapped_column(Integer, default=1)
    trigger_reason: Mapped[str] = mapped_column(
        String(50), default="manual"
    )  # manual, scheduled, deep_crawl, pipeline

    # Job status
    status: Mapped[str] = mapped_column(
        String(50), default="pending"
    )  # pending, in_progress, completed, failed

    # Written once when the job reaches a terminal state
    results: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timing
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    # Celery task ID for status tracking
    celery_task_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    def _ensure_not_terminal(self, action: str) -> None:
        if self.is_terminal:
            raise InvalidJobTransition(
                f"Cannot {action} crawl job {self.id}: already {self.status}"
            )

    def start(self) -> None:
        """Mark the job as started."""
        self._ensure_not_terminal("start")
        self.status = "in_progress"
        self.started_at = utcnow()

    def complete(self, results: dict[str, Any]) -> None:
        """Mark the job as completed and record its results."""
        self._ensure_not_terminal("complete")
        self.status = "completed"
        self.completed_at = utcnow()
        self.results = results

    def fail(self, error_message: str, results: dict[str, Any] | None = None) -> None:
        """Mark the job as failed."""
        self._ensure_not_terminal("fail")
        self.status = "failed"
        self.completed_at = utcnow()
        self.error_message = error_message
        self.results = results
