"""
Normalizer - raw channel records to canonical reviews.

Raw Hostaway payloads are validated at this edge (RawHostawayReview) and
then mapped to NormalizedReview. Nothing loosely typed passes beyond it.

Everything here is pure: no I/O, no clock, no randomness.
"""
import re
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reviewhub.models.reviews import (
    DEFAULT_CHANNEL,
    MAX_HOSTAWAY_ID,
    ReviewStatus,
    ReviewType,
    compute_average_rating,
)
from reviewhub.schemas.common import parse_timestamp
from reviewhub.schemas.reviews import NormalizedReview, ReviewCategoryRating


LISTING_ID_MAX_LENGTH = 50

_DISALLOWED_SLUG_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RUN = re.compile(r"\s+")


class RawReviewCategory(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category: str = Field(min_length=1)
    rating: float = Field(ge=0, le=10)


class RawHostawayReview(BaseModel):
    """
    A review record as the Hostaway API returns it.

    Unknown keys are ignored; a wrong shape (missing id, bad enum, rating
    out of range) raises pydantic.ValidationError.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int = Field(ge=0, le=MAX_HOSTAWAY_ID)
    type: ReviewType
    status: ReviewStatus
    rating: Optional[float] = Field(default=None, ge=0, le=10)
    public_review: Optional[str] = Field(default=None, alias="publicReview")
    private_review: Optional[str] = Field(default=None, alias="privateReview")
    review_category: List[RawReviewCategory] = Field(default_factory=list, alias="reviewCategory")
    submitted_at: datetime = Field(alias="submittedAt")
    guest_name: str = Field(alias="guestName", min_length=1)
    listing_name: str = Field(alias="listingName", min_length=1)
    listing_id: Optional[str] = Field(default=None, alias="listingId")
    channel: Optional[str] = None
    channel_id: Optional[int] = Field(default=None, alias="channelId")

    @field_validator("submitted_at", mode="before")
    @classmethod
    def _parse_submitted_at(cls, value):
        if isinstance(value, (str, datetime)):
            return parse_timestamp(value)
        return value

    @field_validator("listing_id", mode="before")
    @classmethod
    def _listing_id_as_text(cls, value):
        # Hostaway sends numeric listing ids
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("review_category", mode="before")
    @classmethod
    def _null_categories(cls, value):
        return [] if value is None else value


def slugify_listing_name(listing_name: str) -> str:
    """
    Derive a listing id from its display name.

    Lowercases, strips anything but letters, digits, whitespace and hyphens,
    turns whitespace runs into a single hyphen and truncates to 50 chars.

    Example:
        >>> slugify_listing_name("2B N1 A - 29 Shoreditch Heights")
        '2b-n1-a---29-shoreditch-heights'
    """
    slug = _DISALLOWED_SLUG_CHARS.sub("", listing_name.lower())
    slug = _WHITESPACE_RUN.sub("-", slug)
    return slug[:LISTING_ID_MAX_LENGTH]


def normalize(raw: Union[RawHostawayReview, Mapping[str, Any]]) -> NormalizedReview:
    """
    Map one raw record to the canonical shape.

    Args:
        raw: Validated record, or a mapping to validate first

    Returns:
        NormalizedReview with the derived averageCategoryRating

    Raises:
        pydantic.ValidationError: If a mapping does not fit RawHostawayReview
    """
    if not isinstance(raw, RawHostawayReview):
        raw = RawHostawayReview.model_validate(raw)

    categories = [
        ReviewCategoryRating(category=c.category, rating=c.rating)
        for c in raw.review_category
    ]

    return NormalizedReview(
        hostaway_id=raw.id,
        type=raw.type,
        status=raw.status,
        rating=raw.rating,
        public_review=raw.public_review or "",
        private_review=raw.private_review or None,
        review_categories=categories,
        submitted_at=raw.submitted_at,
        guest_name=raw.guest_name,
        listing_id=raw.listing_id or slugify_listing_name(raw.listing_name),
        listing_name=raw.listing_name,
        channel=raw.channel or DEFAULT_CHANNEL,
        average_category_rating=compute_average_rating(c.rating for c in categories),
    )


def normalize_many(raws: Iterable[Union[RawHostawayReview, Mapping[str, Any]]]) -> List[NormalizedReview]:
    return [normalize(raw) for raw in raws]
