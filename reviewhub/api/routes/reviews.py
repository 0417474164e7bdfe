"""
Review Routes - channel ingestion, listing and approval.

Provides:
- GET /reviews/hostaway: Fetch and normalize channel reviews (with fallback)
- POST /reviews/sync: Upsert a batch of normalized reviews
- POST /reviews, GET /reviews: Create and list (filters, sort, pagination)
- GET /reviews/public, /statistics, /trend: Cached reads
- POST /reviews/bulk-approve, PATCH /reviews/{id}/approve: Approval workflow
- GET/PATCH/DELETE /reviews/{id}: Single review

Review ids are internal UUIDs or numeric external (Hostaway) ids.
"""
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from reviewhub.api.dependencies import get_cache, get_db
from reviewhub.api.middleware.error_handler import ValidationException
from reviewhub.lib.cache import CacheService
from reviewhub.lib.logging import get_logger
from reviewhub.models.reviews import ReviewStatus
from reviewhub.schemas.common import parse_date_bound
from reviewhub.schemas.reviews import (
    ApproveRequest,
    ApproveResponse,
    BulkApproveRequest,
    BulkApproveResponse,
    DEFAULT_PAGE_SIZE,
    DeleteResponse,
    HostawayReviewsResponse,
    MAX_PAGE_SIZE,
    PublicReviewResponse,
    ReviewCreate,
    ReviewFilter,
    ReviewListResponse,
    ReviewResponse,
    ReviewUpdate,
    SortField,
    SortOrder,
    StatisticsResponse,
    SyncResponse,
    TrendPoint,
)
from reviewhub.services.hostaway_client import HostawayClient, get_hostaway_client
from reviewhub.services.review_service import ReviewService


logger = get_logger(__name__)
router = APIRouter(prefix="/reviews", tags=["reviews"])


# Dependency to get ReviewService
def get_review_service(
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    client: HostawayClient = Depends(get_hostaway_client),
) -> ReviewService:
    """Get ReviewService instance with database session, cache and channel client."""
    return ReviewService(db, cache, client)


def get_review_filter(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page"),
    listing_id: Optional[str] = Query(None, alias="listingId"),
    channel: Optional[str] = Query(None),
    review_status: Optional[ReviewStatus] = Query(None, alias="status"),
    min_rating: Optional[float] = Query(None, alias="minRating", ge=0, le=10),
    is_approved: Optional[bool] = Query(None, alias="isApproved"),
    start_date: Optional[str] = Query(None, alias="startDate", examples=["2024-01-01"]),
    end_date: Optional[str] = Query(None, alias="endDate", examples=["2024-12-31"]),
    guest_name: Optional[str] = Query(None, alias="guestName", description="Case-insensitive substring"),
    sort_by: SortField = Query("submittedAt", alias="sortBy"),
    sort_order: SortOrder = Query("desc", alias="sortOrder"),
) -> ReviewFilter:
    """Collect listing query parameters into a ReviewFilter."""
    try:
        start = parse_date_bound(start_date)
        end = parse_date_bound(end_date, end=True)
    except ValueError as e:
        raise ValidationException("Invalid date filter", errors={"date": str(e)})
    if start and end and start > end:
        raise ValidationException(
            "Invalid date filter",
            errors={"date": "startDate must not be after endDate"},
        )

    return ReviewFilter(
        page=page,
        limit=limit,
        listing_id=listing_id,
        channel=channel,
        status=review_status,
        min_rating=min_rating,
        is_approved=is_approved,
        start_date=start,
        end_date=end,
        guest_name=guest_name,
        sort_by=sort_by,
        sort_order=sort_order,
    )


# ===== Channel ingestion =====

@router.get(
    "/hostaway",
    response_model=HostawayReviewsResponse,
    summary="Fetch Hostaway reviews",
    description="Fetch reviews from Hostaway and normalize them; falls back to bundled data",
)
def fetch_hostaway_reviews(
    service: ReviewService = Depends(get_review_service),
) -> HostawayReviewsResponse:
    logger.info("GET /reviews/hostaway")
    return service.fetch_and_normalize()


@router.post(
    "/sync",
    response_model=SyncResponse,
    summary="Sync normalized reviews",
    description="Insert or update each review by its Hostaway id",
)
def sync_reviews(
    reviews: List[ReviewCreate] = Body(..., description="Normalized reviews"),
    service: ReviewService = Depends(get_review_service),
) -> SyncResponse:
    logger.info(f"POST /reviews/sync ({len(reviews)} reviews)")
    return service.sync(reviews)


# ===== Collection =====

@router.post(
    "",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create review",
)
def create_review(
    payload: ReviewCreate,
    service: ReviewService = Depends(get_review_service),
) -> ReviewResponse:
    return service.create(payload)


@router.get(
    "",
    response_model=ReviewListResponse,
    summary="List reviews",
    description="Filtered, sorted and paginated reviews",
)
def list_reviews(
    filters: ReviewFilter = Depends(get_review_filter),
    service: ReviewService = Depends(get_review_service),
) -> ReviewListResponse:
    logger.info(
        f"GET /reviews (page={filters.page}, limit={filters.limit})",
        extra={"filters": filters.model_dump(mode="json", by_alias=True, exclude_none=True)},
    )
    return service.list(filters)


@router.get(
    "/public",
    response_model=List[PublicReviewResponse],
    summary="Approved reviews for the public site",
)
def public_reviews(
    listing_id: Optional[str] = Query(None, alias="listingId"),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    service: ReviewService = Depends(get_review_service),
):
    return service.approved_reviews(listing_id, limit)


@router.get(
    "/statistics",
    response_model=StatisticsResponse,
    summary="Review statistics",
)
def review_statistics(
    service: ReviewService = Depends(get_review_service),
):
    return service.statistics()


@router.get(
    "/trend",
    response_model=List[TrendPoint],
    summary="Daily review trend",
)
def review_trend(
    days: int = Query(30, ge=1, le=365, description="Days to look back"),
    service: ReviewService = Depends(get_review_service),
):
    return service.trend(days)


@router.post(
    "/bulk-approve",
    response_model=BulkApproveResponse,
    summary="Approve many reviews",
)
def bulk_approve_reviews(
    request: BulkApproveRequest,
    service: ReviewService = Depends(get_review_service),
) -> BulkApproveResponse:
    return service.bulk_approve(request.review_ids, request.approved_by)


# ===== Single review =====

@router.get(
    "/{review_id}",
    response_model=ReviewResponse,
    summary="Get review",
)
def get_review(
    review_id: str,
    service: ReviewService = Depends(get_review_service),
) -> ReviewResponse:
    return service.get(review_id)


@router.patch(
    "/{review_id}",
    response_model=ReviewResponse,
    summary="Update review",
    description="Partial update of approval state and manager notes",
)
def update_review(
    review_id: str,
    changes: ReviewUpdate,
    service: ReviewService = Depends(get_review_service),
) -> ReviewResponse:
    return service.update(review_id, changes)


@router.patch(
    "/{review_id}/approve",
    response_model=ApproveResponse,
    summary="Approve review",
)
def approve_review(
    review_id: str,
    request: Optional[ApproveRequest] = Body(None),
    service: ReviewService = Depends(get_review_service),
) -> ApproveResponse:
    return service.approve(review_id, request.approved_by if request else None)


@router.delete(
    "/{review_id}",
    response_model=DeleteResponse,
    summary="Delete review",
)
def delete_review(
    review_id: str,
    service: ReviewService = Depends(get_review_service),
) -> DeleteResponse:
    return service.delete(review_id)
