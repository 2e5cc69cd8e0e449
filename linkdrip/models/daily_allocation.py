"""DailyAllocation model: the batch of opportunities delivered to a user on one day."""

from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from linkdrip.database import Base, utcnow


class DailyAllocation(Base):
    """At most one per (user, calendar day)."""

    __tablename__ = "daily_allocations"
    __table_args__ = (
        UniqueConstraint("user_id", "allocation_date", name="uq_allocation_user_date"),
    )

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    user_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    allocation_date: Mapped[date] = mapped_column(Date)

    # Plan-derived limits at allocation time
    daily_limit: Mapped[int] = mapped_column(Integer)
    premium_limit: Mapped[int] = mapped_column(Integer, default=0)
    delivered_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    entries: Mapped[list["DailyAllocationEntry"]] = relationship(
        "DailyAllocationEntry", back_populates="allocation", cascade="all, delete-orphan"
    )


class DailyAllocationEntry(Base):
    """One delivered opportunity within a daily allocation."""

    __tablename__ = "daily_allocation_entries"
    __table_args__ = (
        UniqueConstraint("allocation_id", "opportunity_id", name="uq_entry_allocation_opportunity"),
    )

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    allocation_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("daily_allocations.id", ondelete="CASCADE"),
        index=True,
    )
    match_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("opportunity_matches.id", ondelete="CASCADE"),
    )
    opportunity_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("discovered_opportunities.id", ondelete="CASCADE"),
    )
    website_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("websites.id", ondelete="CASCADE"),
    )
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False)

    allocation: Mapped["DailyAllocation"] = relationship("DailyAllocation", back_populates="entries")
