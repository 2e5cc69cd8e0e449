"""OpportunityMatch model: a scored opportunity/website pairing."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from linkdrip.database import Base, utcnow


class OpportunityMatch(Base):
    """One opportunity scored against one subscriber website."""

    __tablename__ = "opportunity_matches"
    __table_args__ = (
        UniqueConstraint("opportunity_id", "website_id", name="uq_match_opportunity_website"),
    )

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    opportunity_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("discovered_opportunities.id", ondelete="CASCADE"),
        index=True,
    )
    website_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("websites.id", ondelete="CASCADE"),
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )

    match_score: Mapped[int] = mapped_column(Integer)
    match_reasons: Mapped[list[str]] = mapped_column(JSON, default=list)
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False)

    status: Mapped[str] = mapped_column(
        String(50), default="pending"
    )  # pending, assigned (standard drip), active (premium splash)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    assigned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    opportunity: Mapped["DiscoveredOpportunity"] = relationship("DiscoveredOpportunity")

    def assign(self) -> None:
        """Mark the match as delivered."""
        self.status = "active" if self.is_premium else "assigned"
        self.assigned_at = utcnow()


# Forward reference
from linkdrip.models.discovered_opportunity import DiscoveredOpportunity  # noqa: E402
