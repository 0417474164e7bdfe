"""
Review request/response models.
"""
from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import Field, field_validator

from reviewhub.models.reviews import DEFAULT_CHANNEL, MAX_HOSTAWAY_ID, Review, ReviewStatus, ReviewType
from reviewhub.schemas.common import CamelModel, parse_timestamp


SortField = Literal["submittedAt", "rating", "averageCategoryRating"]
SortOrder = Literal["asc", "desc"]

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class ReviewCategoryRating(CamelModel):
    """One category score."""
    category: str = Field(min_length=1, max_length=100, examples=["cleanliness"])
    rating: float = Field(ge=0, le=10, examples=[9])


class ReviewCreate(CamelModel):
    """Canonical review as accepted by create and sync."""
    hostaway_id: int = Field(
        ge=0,
        le=MAX_HOSTAWAY_ID,
        description="External channel identifier",
        examples=[7453],
    )
    type: ReviewType
    status: ReviewStatus
    rating: Optional[float] = Field(default=None, ge=0, le=10)
    public_review: str = Field(default="")
    private_review: Optional[str] = None
    review_categories: List[ReviewCategoryRating] = Field(default_factory=list)
    submitted_at: datetime
    guest_name: str = Field(min_length=1, max_length=255)
    listing_id: str = Field(min_length=1, max_length=100)
    listing_name: str = Field(min_length=1, max_length=255)
    channel: str = Field(default=DEFAULT_CHANNEL, max_length=50)

    @field_validator("submitted_at", mode="before")
    @classmethod
    def _parse_submitted_at(cls, value):
        if isinstance(value, (str, datetime)):
            return parse_timestamp(value)
        return value

    def category_pairs(self) -> List[tuple]:
        return [(c.category, c.rating) for c in self.review_categories]


class NormalizedReview(ReviewCreate):
    """Output of the normalizer: canonical review plus its derived average."""
    average_category_rating: float = Field(ge=0, le=10)


class ReviewUpdate(CamelModel):
    """Partial update from the dashboard. Only these fields are writable."""
    is_approved: Optional[bool] = None
    manager_notes: Optional[str] = None
    approved_by: Optional[str] = Field(default=None, max_length=255)


class ApproveRequest(CamelModel):
    approved_by: Optional[str] = Field(default=None, max_length=255)


class BulkApproveRequest(CamelModel):
    review_ids: List[str] = Field(description="Internal UUIDs or numeric external ids")
    approved_by: Optional[str] = Field(default=None, max_length=255)


class ReviewFilter(CamelModel):
    """Listing filter; all predicates are combined with AND."""
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    listing_id: Optional[str] = None
    channel: Optional[str] = None
    status: Optional[ReviewStatus] = None
    min_rating: Optional[float] = Field(default=None, ge=0, le=10)
    is_approved: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    guest_name: Optional[str] = None
    sort_by: SortField = "submittedAt"
    sort_order: SortOrder = "desc"


class ReviewResponse(CamelModel):
    """Full review as seen by the dashboard."""
    id: UUID
    hostaway_id: int
    type: ReviewType
    status: ReviewStatus
    rating: Optional[float]
    public_review: str
    private_review: Optional[str]
    review_categories: List[ReviewCategoryRating]
    submitted_at: datetime
    guest_name: str
    listing_id: str
    listing_name: str
    channel: str
    is_approved: bool
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    manager_notes: Optional[str]
    average_category_rating: float
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, review: Review) -> "ReviewResponse":
        return cls(
            id=review.id,
            hostaway_id=review.hostaway_id,
            type=review.type,
            status=review.status,
            rating=review.rating,
            public_review=review.public_review,
            private_review=review.private_review,
            review_categories=[
                ReviewCategoryRating(category=category, rating=rating)
                for category, rating in review.category_pairs
            ],
            submitted_at=review.submitted_at,
            guest_name=review.guest_name,
            listing_id=review.listing_id,
            listing_name=review.listing_name,
            channel=review.channel,
            is_approved=review.is_approved,
            approved_by=review.approved_by,
            approved_at=review.approved_at,
            manager_notes=review.manager_notes,
            average_category_rating=review.average_category_rating,
            created_at=review.created_at,
            updated_at=review.updated_at,
        )


class PublicReviewResponse(CamelModel):
    """Review as shown on the public site: no manager-only fields."""
    id: UUID
    hostaway_id: int
    type: ReviewType
    rating: Optional[float]
    public_review: str
    review_categories: List[ReviewCategoryRating]
    submitted_at: datetime
    guest_name: str
    listing_id: str
    listing_name: str
    channel: str
    average_category_rating: float
    approved_at: Optional[datetime]

    @classmethod
    def from_entity(cls, review: Review) -> "PublicReviewResponse":
        return cls(
            id=review.id,
            hostaway_id=review.hostaway_id,
            type=review.type,
            rating=review.rating,
            public_review=review.public_review,
            review_categories=[
                ReviewCategoryRating(category=category, rating=rating)
                for category, rating in review.category_pairs
            ],
            submitted_at=review.submitted_at,
            guest_name=review.guest_name,
            listing_id=review.listing_id,
            listing_name=review.listing_name,
            channel=review.channel,
            average_category_rating=review.average_category_rating,
            approved_at=review.approved_at,
        )


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=(total + limit - 1) // limit if total else 0,
            has_next_page=page * limit < total,
            has_prev_page=page > 1,
        )


class ReviewListResponse(CamelModel):
    data: List[ReviewResponse]
    pagination: Pagination


# ===== Statistics =====

class StatisticsOverview(CamelModel):
    total_reviews: int
    average_rating: float
    approved_count: int
    pending_count: int


class ChannelCount(CamelModel):
    channel: str
    count: int
    avg_rating: float


class TopProperty(CamelModel):
    listing_id: str
    listing_name: str
    review_count: int
    avg_rating: float
    approved_count: int
    approval_rate: float


class RatingBucket(CamelModel):
    range: str = Field(examples=["8-10"])
    min: float
    max: float
    count: int


class StatisticsResponse(CamelModel):
    overview: StatisticsOverview
    by_channel: List[ChannelCount]
    top_properties: List[TopProperty]
    rating_distribution: List[RatingBucket]


class TrendPoint(CamelModel):
    date: str = Field(description="UTC calendar day, YYYY-MM-DD")
    count: int
    avg_rating: float


# ===== Mutation results =====

class HostawayReviewsResponse(CamelModel):
    status: str
    source: str = Field(description="api, fixture or builtin")
    count: int
    reviews: List[NormalizedReview]
    message: str


class SyncResponse(CamelModel):
    message: str
    inserted: int
    updated: int
    total: int


class ApproveResponse(CamelModel):
    message: str
    review: ReviewResponse


class BulkApproveResponse(CamelModel):
    message: str
    approved_count: int


class DeleteResponse(CamelModel):
    message: str
    deleted_review: ReviewResponse
