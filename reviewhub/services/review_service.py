"""
Review Service - ingestion, listing and the approval workflow.

Sits between the routes and ReviewRepository:
- Pulls raw reviews from the channel client and normalizes them
- Syncs normalized batches (upsert by external id)
- Applies the approval metadata rules on single and bulk approval
- Serves cached public listings, statistics and trends

Every mutation invalidates the review caches after it commits.
"""
from typing import Any, Dict, List, Optional, Sequence, Union
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from reviewhub.api.middleware.error_handler import (
    DuplicateReviewException,
    NotFoundException,
    ValidationException,
)
from reviewhub.lib.cache import CacheService, build_cache_key
from reviewhub.lib.db import utcnow
from reviewhub.lib.logging import get_logger
from reviewhub.lib.metrics import get_metrics_collector
from reviewhub.lib.settings import settings
from reviewhub.models.reviews import Review
from reviewhub.repositories.review_repository import (
    DuplicateReviewError,
    ReviewRepository,
    parse_hostaway_id,
)
from reviewhub.schemas.reviews import (
    ApproveResponse,
    BulkApproveResponse,
    DeleteResponse,
    HostawayReviewsResponse,
    NormalizedReview,
    Pagination,
    PublicReviewResponse,
    ReviewCreate,
    ReviewFilter,
    ReviewListResponse,
    ReviewResponse,
    ReviewUpdate,
    StatisticsResponse,
    SyncResponse,
    TrendPoint,
)
from reviewhub.services.hostaway_client import HostawayClient
from reviewhub.services.normalizer import normalize


logger = get_logger(__name__)


STATISTICS_KEY = "reviews:statistics"
APPROVED_PREFIX = "reviews:approved"
TREND_PREFIX = "reviews:trend"


class ReviewService:
    """Service for review ingestion, queries and approval."""

    def __init__(
        self,
        db: Session,
        cache: CacheService,
        client: Optional[HostawayClient] = None,
    ):
        self.db = db
        self.repository = ReviewRepository(db)
        self.cache = cache
        self.client = client or HostawayClient()
        self.metrics = get_metrics_collector()

    # ===== Channel ingestion =====

    def fetch_and_normalize(self) -> HostawayReviewsResponse:
        """
        Fetch reviews from the channel and normalize them.

        Channel failures never reach the caller; they show up as a fallback
        source in the response. Records that fail validation are skipped.
        """
        fetched = self.client.fetch_raw_reviews()

        reviews: List[NormalizedReview] = []
        skipped = 0
        for record in fetched.records:
            try:
                reviews.append(normalize(record))
            except ValidationError as e:
                skipped += 1
                logger.warning(
                    "Skipping malformed channel review",
                    extra={
                        "hostaway_id": record.get("id") if isinstance(record, dict) else None,
                        "error_count": e.error_count(),
                    },
                )

        if fetched.is_fallback:
            message = f"Hostaway API unavailable, serving {fetched.source} data"
        else:
            message = "Reviews fetched from Hostaway API"

        logger.info(
            "Normalized channel reviews",
            extra={"source": fetched.source, "count": len(reviews), "skipped": skipped},
        )

        return HostawayReviewsResponse(
            status="success",
            source=fetched.source,
            count=len(reviews),
            reviews=reviews,
            message=message,
        )

    def sync(self, reviews: Sequence[ReviewCreate]) -> SyncResponse:
        """
        Upsert a batch of normalized reviews.

        Raises:
            ValidationException: If the batch is empty
        """
        if not reviews:
            raise ValidationException(
                "No reviews provided for sync",
                errors={"reviews": "must contain at least one review"},
            )

        counts = self.repository.bulk_upsert(reviews)
        self.metrics.increment_synced("inserted", counts["inserted"])
        self.metrics.increment_synced("updated", counts["updated"])

        self.invalidate_review_caches()

        logger.info("Synced reviews", extra=counts)
        return SyncResponse(
            message="Reviews synced successfully",
            inserted=counts["inserted"],
            updated=counts["updated"],
            total=len(reviews),
        )

    # ===== CRUD =====

    def create(self, payload: ReviewCreate) -> ReviewResponse:
        """
        Create a review.

        The existence check is a fast path; the unique index on the external
        id is what actually guarantees uniqueness.

        Raises:
            DuplicateReviewException: If the external id already exists
        """
        if self.repository.get_by_hostaway_id(payload.hostaway_id) is not None:
            raise DuplicateReviewException(payload.hostaway_id)

        try:
            review = self.repository.create(payload)
        except DuplicateReviewError:
            raise DuplicateReviewException(payload.hostaway_id)

        self.invalidate_review_caches()
        logger.info(
            "Created review",
            extra={"review_id": str(review.id), "hostaway_id": review.hostaway_id},
        )
        return ReviewResponse.from_entity(review)

    def list(self, filters: ReviewFilter) -> ReviewListResponse:
        reviews, total = self.repository.find_with_filters(filters)
        return ReviewListResponse(
            data=[ReviewResponse.from_entity(r) for r in reviews],
            pagination=Pagination.build(filters.page, filters.limit, total),
        )

    def _resolve(self, identifier: Union[str, UUID]) -> Review:
        """
        Look a review up by external id (numeric string) or internal UUID.

        Raises:
            NotFoundException: If neither matches, including malformed UUIDs
        """
        review: Optional[Review] = None
        text = str(identifier).strip()
        if text.isdecimal():
            hostaway_id = parse_hostaway_id(text)
            if hostaway_id is not None:
                review = self.repository.get_by_hostaway_id(hostaway_id)
        else:
            try:
                review = self.repository.get(UUID(text))
            except ValueError:
                review = None

        if review is None:
            raise NotFoundException("Review", text)
        return review

    def get(self, identifier: Union[str, UUID]) -> ReviewResponse:
        return ReviewResponse.from_entity(self._resolve(identifier))

    def update(self, identifier: Union[str, UUID], changes: ReviewUpdate) -> ReviewResponse:
        """
        Partial update from the dashboard.

        isApproved false->true stamps approvedAt/approvedBy, ->false clears
        them. approvedBy is only read when the call approves.
        """
        review = self._resolve(identifier)
        data = changes.model_dump(exclude_unset=True)

        if "manager_notes" in data:
            review.manager_notes = data["manager_notes"]

        is_approved = data.get("is_approved")
        if is_approved is True:
            if review.approve(data.get("approved_by"), utcnow()):
                self.metrics.increment_approved("update")
        elif is_approved is False:
            review.unapprove()

        self.repository.save(review)
        self.invalidate_review_caches()
        return ReviewResponse.from_entity(review)

    def approve(self, identifier: Union[str, UUID], approved_by: Optional[str] = None) -> ApproveResponse:
        """
        Approve one review for public display.

        Approving an already-approved review keeps its original metadata.
        """
        review = self._resolve(identifier)

        if review.approve(approved_by, utcnow()):
            self.repository.save(review)
            self.metrics.increment_approved("single")
            self.invalidate_review_caches()
            message = "Review approved successfully"
            logger.info(
                "Approved review",
                extra={"review_id": str(review.id), "approved_by": review.approved_by},
            )
        else:
            message = "Review already approved"

        return ApproveResponse(message=message, review=ReviewResponse.from_entity(review))

    def bulk_approve(self, review_ids: Sequence[str], approved_by: Optional[str] = None) -> BulkApproveResponse:
        """
        Approve many reviews; unknown and already-approved ids are skipped.

        Raises:
            ValidationException: If no ids are given
        """
        if not review_ids:
            raise ValidationException(
                "No review ids provided",
                errors={"reviewIds": "must contain at least one id"},
            )

        approved_count = self.repository.bulk_approve(review_ids, approved_by, utcnow())
        self.metrics.increment_approved("bulk", approved_count)
        self.invalidate_review_caches()

        logger.info(
            "Bulk approved reviews",
            extra={"requested": len(review_ids), "approved": approved_count},
        )
        return BulkApproveResponse(
            message=f"{approved_count} reviews approved successfully",
            approved_count=approved_count,
        )

    def delete(self, identifier: Union[str, UUID]) -> DeleteResponse:
        review = self._resolve(identifier)
        snapshot = ReviewResponse.from_entity(review)

        self.repository.delete(review)
        self.invalidate_review_caches()

        logger.info("Deleted review", extra={"review_id": str(snapshot.id)})
        return DeleteResponse(message="Review deleted successfully", deleted_review=snapshot)

    # ===== Cached reads =====

    def approved_reviews(self, listing_id: Optional[str] = None, limit: int = 10) -> List[Dict[str, Any]]:
        """Public listing of approved, published reviews (cached)."""
        key = build_cache_key(APPROVED_PREFIX, "public", {"listingId": listing_id, "limit": limit})

        def compute() -> List[Dict[str, Any]]:
            reviews = self.repository.find_approved_for_public(listing_id, limit)
            return [
                PublicReviewResponse.from_entity(r).model_dump(mode="json", by_alias=True)
                for r in reviews
            ]

        return self.cache.get_or_set(
            key,
            compute,
            ttl=settings.cache_approved_ttl_seconds,
            prefix=APPROVED_PREFIX,
        )

    def statistics(self) -> Dict[str, Any]:
        """Dashboard statistics (cached)."""

        def compute() -> Dict[str, Any]:
            stats = StatisticsResponse.model_validate(self.repository.aggregate_statistics())
            return stats.model_dump(mode="json", by_alias=True)

        return self.cache.get_or_set(
            STATISTICS_KEY,
            compute,
            ttl=settings.cache_default_ttl_seconds,
        )

    def trend(self, days: int = 30) -> List[Dict[str, Any]]:
        """Daily review counts for the trailing window (cached)."""
        key = build_cache_key(TREND_PREFIX, "daily", {"days": days})

        def compute() -> List[Dict[str, Any]]:
            return [
                TrendPoint.model_validate(point).model_dump(mode="json", by_alias=True)
                for point in self.repository.trend(days)
            ]

        return self.cache.get_or_set(
            key,
            compute,
            ttl=settings.cache_approved_ttl_seconds,
            prefix=TREND_PREFIX,
        )

    def invalidate_review_caches(self) -> None:
        """
        Drop statistics, every public listing and every trend entry.

        Analytics reports are keyed by their filters and only expire by TTL.
        """
        self.cache.invalidate(STATISTICS_KEY)
        dropped = self.cache.invalidate_prefix(APPROVED_PREFIX)
        dropped += self.cache.invalidate_prefix(TREND_PREFIX)
        logger.debug("Invalidated review caches", extra={"registered_keys_dropped": dropped})
