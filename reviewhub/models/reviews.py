"""
Review model - guest/host reviews ingested from booking channels.
"""
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    event,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from reviewhub.lib.db import Base, UTCDateTime, utcnow


DEFAULT_CHANNEL = "hostaway"

# hostaway_id is a signed 64-bit column
MAX_HOSTAWAY_ID = 2**63 - 1


class ReviewType(str, enum.Enum):
    """Direction of the review."""
    HOST_TO_GUEST = "host-to-guest"
    GUEST_TO_HOST = "guest-to-host"


class ReviewStatus(str, enum.Enum):
    """Publication status reported by the channel."""
    PUBLISHED = "published"
    PENDING = "pending"
    DRAFT = "draft"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def compute_average_rating(ratings: Iterable[float]) -> float:
    """
    Mean of category ratings rounded to 2 decimals, 0 when there are none.
    """
    values = [float(r) for r in ratings]
    if not values:
        return 0.0
    return round(sum(values) / len(values), 2)


class ReviewCategory(Base):
    """
    One (category, rating) pair of a review, kept in submission order.
    """
    __tablename__ = "review_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    review_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("reviews.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    rating: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "rating >= 0 AND rating <= 10",
            name="review_category_rating_range",
        ),
    )

    def __repr__(self) -> str:
        return f"<ReviewCategory(category={self.category}, rating={self.rating})>"


class Review(Base):
    """
    Review entity - canonical, channel-independent shape of a review.

    average_category_rating is owned by the entity: it is recomputed from
    the category list whenever the review is flushed.
    """
    __tablename__ = "reviews"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    # External identifier from the channel (upsert key)
    hostaway_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
        index=True,
    )

    type: Mapped[ReviewType] = mapped_column(
        SQLEnum(ReviewType, name="review_type", values_callable=_enum_values),
        nullable=False,
    )
    status: Mapped[ReviewStatus] = mapped_column(
        SQLEnum(ReviewStatus, name="review_status", values_callable=_enum_values),
        nullable=False,
        index=True,
    )

    # Overall rating (0-10), absent for most host-to-guest reviews
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    public_review: Mapped[str] = mapped_column(Text, nullable=False, default="")
    private_review: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    categories: Mapped[List[ReviewCategory]] = relationship(
        ReviewCategory,
        order_by=ReviewCategory.position,
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    guest_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Property
    listing_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    listing_name: Mapped[str] = mapped_column(String(255), nullable=False)

    channel: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=DEFAULT_CHANNEL,
        index=True,
    )

    # Manager approval metadata
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    manager_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Derived
    average_category_rating: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        index=True,
        comment="Mean of category ratings, rounded to 2 decimals",
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        CheckConstraint(
            "rating IS NULL OR (rating >= 0 AND rating <= 10)",
            name="review_rating_range",
        ),
        Index("ix_reviews_listing_submitted", "listing_id", "submitted_at"),
    )

    @property
    def category_pairs(self) -> List[Tuple[str, float]]:
        return [(c.category, c.rating) for c in self.categories]

    def set_categories(self, pairs: Sequence[Tuple[str, float]]) -> None:
        """Replace the category list and refresh the derived average."""
        self.categories = [
            ReviewCategory(position=index, category=category, rating=float(rating))
            for index, (category, rating) in enumerate(pairs)
        ]
        self.recompute_average()

    def recompute_average(self) -> None:
        self.average_category_rating = compute_average_rating(
            c.rating for c in self.categories
        )

    def approve(self, approved_by: Optional[str], when: datetime) -> bool:
        """
        Mark the review approved. Returns False (metadata untouched) if it
        already was.
        """
        if self.is_approved:
            return False
        self.is_approved = True
        self.approved_by = approved_by or "admin"
        self.approved_at = when
        return True

    def unapprove(self) -> None:
        self.is_approved = False
        self.approved_by = None
        self.approved_at = None

    def __repr__(self) -> str:
        return (
            f"<Review(id={self.id}, hostaway_id={self.hostaway_id}, "
            f"listing_id={self.listing_id}, avg={self.average_category_rating})>"
        )


@event.listens_for(Session, "before_flush")
def _refresh_average_category_rating(session, flush_context, instances):
    """Keep average_category_rating in step with the category list on every write."""
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, Review):
            obj.recompute_average()
