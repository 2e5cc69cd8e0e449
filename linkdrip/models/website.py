"""Website and User models.

Both are owned by the surrounding application; the pipeline only reads
them, apart from the splash counters consumed during allocation.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from linkdrip.database import Base, utcnow


class User(Base):
    """A subscriber."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    email: Mapped[str] = mapped_column(String(320), unique=True)

    # Subscription
    subscription_plan: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )  # starter, grow, pro
    subscription_status: Mapped[str] = mapped_column(String(50), default="active")

    # Premium allowance
    splash_credits: Mapped[int] = mapped_column(Integer, default=0)  # Purchased, never reset
    splashes_used_this_month: Mapped[int] = mapped_column(Integer, default=0)
    splash_period_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    websites: Mapped[list["Website"]] = relationship(
        "Website", back_populates="user", cascade="all, delete-orphan"
    )


class Website(Base):
    """A subscriber's own site, the target of matching."""

    __tablename__ = "websites"

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
    url: Mapped[str] = mapped_column(String(2048))
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Declared niches
    niche: Mapped[str | None] = mapped_column(String(100), nullable=True)
    target_niches: Mapped[list[str]] = mapped_column(JSON, default=list)
    avoid_niches: Mapped[list[str]] = mapped_column(JSON, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    user: Mapped["User"] = relationship("User", back_populates="websites")
    profile: Mapped["WebsiteProfile | None"] = relationship(
        "WebsiteProfile", back_populates="website", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def all_target_niches(self) -> list[str]:
        niches = [self.niche] if self.niche else []
        niches.extend(n for n in self.target_niches or [] if n not in niches)
        return niches


# Forward reference
from linkdrip.models.website_profile import WebsiteProfile  # noqa: E402
