"""DiscoveredOpportunity model for candidate backlink targets."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from linkdrip.database import Base, utcnow

PREMIUM_MIN_DOMAIN_AUTHORITY = 40
PREMIUM_MAX_SPAM_SCORE = 2

# discovered -> analyzed -> matched -> assigned | premium -> expired
OPPORTUNITY_STATUSES = (
    "discovered",
    "analyzed",
    "matched",
    "assigned",
    "premium",
    "expired",
)


class DiscoveredOpportunity(Base):
    """A page where a backlink could plausibly be obtained."""

    __tablename__ = "discovered_opportunities"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    url: Mapped[str] = mapped_column(String(2048), unique=True)
    domain: Mapped[str] = mapped_column(String(255), index=True)
    source_type: Mapped[str] = mapped_column(String(50))

    # Page metadata
    title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    categories: Mapped[list[str]] = mapped_column(JSON, default=list)

    # Contact channels
    contact_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    contact_emails: Mapped[list[str]] = mapped_column(JSON, default=list)
    has_contact_form: Mapped[bool] = mapped_column(Boolean, default=False)

    # Discovery-time pre-score (0-10)
    relevance_prescore: Mapped[int] = mapped_column(Integer, default=0)

    # Domain metrics
    domain_authority: Mapped[int | None] = mapped_column(Integer, nullable=True)
    page_authority: Mapped[int | None] = mapped_column(Integer, nullable=True)
    spam_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    metrics_synthetic: Mapped[bool] = mapped_column(Boolean, default=False)
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False)

    # Status
    status: Mapped[str] = mapped_column(String(50), default="discovered", index=True)
    status_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    discovered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    last_checked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def attach_metrics(
        self,
        domain_authority: int,
        page_authority: int,
        spam_score: int,
        synthetic: bool = False,
    ) -> None:
        """Store domain metrics and recompute the premium flag."""
        self.domain_authority = domain_authority
        self.page_authority = page_authority
        self.spam_score = spam_score
        self.metrics_synthetic = synthetic
        self.is_premium = (
            domain_authority >= PREMIUM_MIN_DOMAIN_AUTHORITY
            and spam_score <= PREMIUM_MAX_SPAM_SCORE
        )

    def expire(self, reason: str) -> None:
        """Mark the opportunity as no longer reachable."""
        self.status = "expired"
        self.status_note = reason
        self.last_checked_at = utcnow()

    def text_blob(self) -> str:
        """Lower-cased searchable text used for matching."""
        parts = [self.title, self.description, self.content, " ".join(self.categories or [])]
        return " ".join(p for p in parts if p).lower()
