"""WebsiteProfile model: content fingerprint of a subscriber site."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from linkdrip.database import Base, utcnow


class WebsiteProfile(Base):
    """Keywords and topics extracted from a website's homepage."""

    __tablename__ = "website_profiles"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    website_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("websites.id", ondelete="CASCADE"),
        unique=True,
    )

    # Ranked by frequency, most frequent first
    keywords: Mapped[list[str]] = mapped_column(JSON, default=list)
    topics: Mapped[list[str]] = mapped_column(JSON, default=list)

    # Raw metadata
    page_title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    meta_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    word_count: Mapped[int] = mapped_column(Integer, default=0)

    last_analyzed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    website: Mapped["Website"] = relationship("Website", back_populates="profile")


# Forward reference
from linkdrip.models.website import Website  # noqa: E402
