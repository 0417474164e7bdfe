"""
Review repository - persistence and grouping queries for reviews.

All SQL lives here; services work with entities and plain dicts.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import ColumnElement, and_, case, func, literal_column, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from reviewhub.lib.db import utcnow
from reviewhub.lib.logging import get_logger
from reviewhub.models.reviews import MAX_HOSTAWAY_ID, Review, ReviewCategory, ReviewStatus
from reviewhub.schemas.analytics import AnalyticsFilter
from reviewhub.schemas.reviews import ReviewCreate, ReviewFilter


logger = get_logger(__name__)


TOP_PROPERTIES_LIMIT = 10

# Histogram over averageCategoryRating; the last bucket includes 10
RATING_BUCKETS: List[Tuple[float, float]] = [(0, 2), (2, 4), (4, 6), (6, 8), (8, 10)]

_SORT_COLUMNS = {
    "submittedAt": Review.submitted_at,
    "rating": Review.rating,
    "averageCategoryRating": Review.average_category_rating,
}


class DuplicateReviewError(Exception):
    """Raised when the unique external id constraint rejects an insert."""

    def __init__(self, hostaway_id: int):
        self.hostaway_id = hostaway_id
        super().__init__(f"Review with hostawayId {hostaway_id} already exists")


def _round(value: Optional[float]) -> float:
    return round(float(value), 2) if value is not None else 0.0


def _rate(part: int, total: int) -> float:
    """Percentage rounded to 2 decimals, 0 for an empty total."""
    return round(part / total * 100, 2) if total else 0.0


def parse_hostaway_id(text: str) -> Optional[int]:
    """External id from a numeric string, or None if it is not one the column can hold."""
    if not text.isdecimal() or len(text) > len(str(MAX_HOSTAWAY_ID)):
        return None
    value = int(text)
    return value if value <= MAX_HOSTAWAY_ID else None


def split_identifiers(identifiers: Iterable[str]) -> Tuple[List[int], List[UUID]]:
    """
    Split caller-supplied ids into external ids (numeric strings) and UUIDs.

    Anything that is neither is dropped.
    """
    hostaway_ids: List[int] = []
    uuids: List[UUID] = []
    for identifier in identifiers:
        text = str(identifier).strip()
        if text.isdecimal():
            hostaway_id = parse_hostaway_id(text)
            if hostaway_id is not None:
                hostaway_ids.append(hostaway_id)
            continue
        try:
            uuids.append(UUID(text))
        except ValueError:
            logger.debug("Skipping unparseable review id", extra={"review_id": text})
    return hostaway_ids, uuids


class ReviewRepository:
    """Data access for Review and its categories."""

    def __init__(self, db: Session):
        self.db = db

    # ===== Single-record operations =====

    def get(self, review_id: UUID) -> Optional[Review]:
        return self.db.get(Review, review_id)

    def get_by_hostaway_id(self, hostaway_id: int) -> Optional[Review]:
        stmt = select(Review).where(Review.hostaway_id == hostaway_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def create(self, data: ReviewCreate) -> Review:
        """
        Insert a new review.

        Raises:
            DuplicateReviewError: If the external id is already stored
        """
        review = Review(hostaway_id=data.hostaway_id)
        self._apply_content(review, data)
        self.db.add(review)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateReviewError(data.hostaway_id) from e
        return review

    def update(self, review: Review, changes: Dict[str, Any]) -> Review:
        """Set plain attributes on a review and commit."""
        for attr, value in changes.items():
            setattr(review, attr, value)
        self.db.commit()
        return review

    def save(self, review: Review) -> Review:
        """Commit pending changes made through entity methods."""
        self.db.commit()
        return review

    def delete(self, review: Review) -> None:
        self.db.delete(review)
        self.db.commit()

    @staticmethod
    def _apply_content(review: Review, data: ReviewCreate) -> None:
        # Approval metadata is owned by the dashboard and never copied from input
        review.type = data.type
        review.status = data.status
        review.rating = data.rating
        review.public_review = data.public_review
        review.private_review = data.private_review
        review.submitted_at = data.submitted_at
        review.guest_name = data.guest_name
        review.listing_id = data.listing_id
        review.listing_name = data.listing_name
        review.channel = data.channel
        review.set_categories(data.category_pairs())

    # ===== Batch operations =====

    def bulk_upsert(self, reviews: Sequence[ReviewCreate]) -> Dict[str, int]:
        """
        Insert or update each review by external id.

        Each record is committed on its own, so a failure midway keeps the
        records already written. Every matched record counts as updated.

        Returns:
            {"inserted": n, "updated": m}
        """
        inserted = 0
        updated = 0

        for data in reviews:
            existing = self.get_by_hostaway_id(data.hostaway_id)
            try:
                if existing is not None:
                    self._apply_content(existing, data)
                    self.db.commit()
                    updated += 1
                    continue

                review = Review(hostaway_id=data.hostaway_id)
                self._apply_content(review, data)
                self.db.add(review)
                self.db.commit()
                inserted += 1
            except IntegrityError:
                # Inserted concurrently since the lookup; update it instead
                self.db.rollback()
                existing = self.get_by_hostaway_id(data.hostaway_id)
                if existing is None:
                    raise
                self._apply_content(existing, data)
                self.db.commit()
                updated += 1
            except SQLAlchemyError:
                self.db.rollback()
                logger.error(
                    "Upsert failed",
                    extra={"hostaway_id": data.hostaway_id},
                    exc_info=True,
                )
                raise

        return {"inserted": inserted, "updated": updated}

    def bulk_approve(
        self,
        identifiers: Iterable[str],
        approved_by: Optional[str],
        when: Optional[datetime] = None,
    ) -> int:
        """
        Approve every matching review that is not approved yet.

        Returns:
            Number of reviews whose state changed
        """
        hostaway_ids, uuids = split_identifiers(identifiers)
        matchers: List[ColumnElement[bool]] = []
        if hostaway_ids:
            matchers.append(Review.hostaway_id.in_(hostaway_ids))
        if uuids:
            matchers.append(Review.id.in_(uuids))
        if not matchers:
            return 0

        when = when or utcnow()
        stmt = (
            update(Review)
            .where(or_(*matchers), Review.is_approved.is_(False))
            .values(
                is_approved=True,
                approved_by=approved_by or "admin",
                approved_at=when,
                updated_at=when,
            )
            .returning(Review.id)
            .execution_options(synchronize_session="fetch")
        )
        changed = self.db.execute(stmt).scalars().all()
        self.db.commit()
        return len(changed)

    # ===== Queries =====

    @staticmethod
    def _filter_conditions(filters: ReviewFilter) -> List[ColumnElement[bool]]:
        conditions: List[ColumnElement[bool]] = []
        if filters.listing_id:
            conditions.append(Review.listing_id == filters.listing_id)
        if filters.channel:
            conditions.append(Review.channel == filters.channel)
        if filters.status is not None:
            conditions.append(Review.status == filters.status)
        if filters.min_rating is not None:
            conditions.append(Review.average_category_rating >= filters.min_rating)
        if filters.is_approved is not None:
            conditions.append(Review.is_approved.is_(filters.is_approved))
        if filters.start_date is not None:
            conditions.append(Review.submitted_at >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(Review.submitted_at <= filters.end_date)
        if filters.guest_name:
            conditions.append(Review.guest_name.icontains(filters.guest_name, autoescape=True))
        return conditions

    def find_with_filters(self, filters: ReviewFilter) -> Tuple[List[Review], int]:
        """
        Filtered, sorted page of reviews.

        Ties on the sort key are broken by hostawayId in the same direction.

        Returns:
            (reviews on the requested page, total matching count)
        """
        conditions = self._filter_conditions(filters)

        total = self.db.execute(
            select(func.count(Review.id)).where(*conditions)
        ).scalar() or 0

        column = _SORT_COLUMNS[filters.sort_by]
        if filters.sort_order == "asc":
            order = [column.asc().nulls_last(), Review.hostaway_id.asc()]
        else:
            order = [column.desc().nulls_last(), Review.hostaway_id.desc()]

        stmt = (
            select(Review)
            .where(*conditions)
            .order_by(*order)
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        reviews = list(self.db.execute(stmt).scalars().all())
        return reviews, total

    def find_approved_for_public(self, listing_id: Optional[str] = None, limit: int = 10) -> List[Review]:
        conditions = [
            Review.is_approved.is_(True),
            Review.status == ReviewStatus.PUBLISHED,
        ]
        if listing_id:
            conditions.append(Review.listing_id == listing_id)

        stmt = (
            select(Review)
            .where(*conditions)
            .order_by(Review.submitted_at.desc(), Review.hostaway_id.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def aggregate_statistics(self) -> Dict[str, Any]:
        """
        Dashboard statistics over all reviews.

        Returns:
            Dict with overview, byChannel, topProperties and ratingDistribution
        """
        approved = func.sum(case((Review.is_approved.is_(True), 1), else_=0))

        row = self.db.execute(
            select(
                func.count(Review.id).label("total"),
                func.avg(Review.average_category_rating).label("avg_rating"),
                approved.label("approved"),
            )
        ).one()
        total = row.total or 0
        approved_count = int(row.approved or 0)

        channel_rows = self.db.execute(
            select(
                Review.channel,
                func.count(Review.id).label("count"),
                func.avg(Review.average_category_rating).label("avg_rating"),
            )
            .group_by(Review.channel)
            .order_by(func.count(Review.id).desc(), Review.channel.asc())
        ).all()

        property_rows = self.db.execute(
            select(
                Review.listing_id,
                func.max(Review.listing_name).label("listing_name"),
                func.count(Review.id).label("count"),
                func.avg(Review.average_category_rating).label("avg_rating"),
                approved.label("approved"),
            )
            .group_by(Review.listing_id)
            .order_by(func.count(Review.id).desc(), Review.listing_id.asc())
            .limit(TOP_PROPERTIES_LIMIT)
        ).all()

        return {
            "overview": {
                "totalReviews": total,
                "averageRating": _round(row.avg_rating),
                "approvedCount": approved_count,
                "pendingCount": total - approved_count,
            },
            "byChannel": [
                {
                    "channel": r.channel,
                    "count": r.count,
                    "avgRating": _round(r.avg_rating),
                }
                for r in channel_rows
            ],
            "topProperties": [
                {
                    "listingId": r.listing_id,
                    "listingName": r.listing_name,
                    "reviewCount": r.count,
                    "avgRating": _round(r.avg_rating),
                    "approvedCount": int(r.approved or 0),
                    "approvalRate": _rate(int(r.approved or 0), r.count),
                }
                for r in property_rows
            ],
            "ratingDistribution": self.rating_distribution(),
        }

    def rating_distribution(self, conditions: Sequence[ColumnElement[bool]] = ()) -> List[Dict[str, Any]]:
        """Count reviews per rating bucket; empty buckets are reported as 0."""
        avg = Review.average_category_rating
        bucket = case(
            *[(avg < upper, index) for index, (_, upper) in enumerate(RATING_BUCKETS[:-1])],
            else_=len(RATING_BUCKETS) - 1,
        ).label("bucket")

        rows = self.db.execute(
            select(bucket, func.count(Review.id).label("count"))
            .where(*conditions)
            .group_by(literal_column("bucket"))
        ).all()
        counts = {int(r.bucket): r.count for r in rows}

        return [
            {
                "range": f"{lower:g}-{upper:g}",
                "min": float(lower),
                "max": float(upper),
                "count": counts.get(index, 0),
            }
            for index, (lower, upper) in enumerate(RATING_BUCKETS)
        ]

    def _day_expression(self):
        """UTC calendar day of submitted_at as 'YYYY-MM-DD'."""
        if self.db.get_bind().dialect.name == "postgresql":
            return func.to_char(func.timezone("UTC", Review.submitted_at), "YYYY-MM-DD")
        return func.date(Review.submitted_at)

    def trend(self, days: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Daily {date, count, avgRating} for the trailing window, oldest first."""
        since = (now or utcnow()) - timedelta(days=days)
        return [
            {"date": point["date"], "count": point["count"], "avgRating": point["avgRating"]}
            for point in self.daily_trend([Review.submitted_at >= since])
        ]

    # ===== Analytics grouping helpers =====

    @staticmethod
    def analytics_conditions(
        filters: AnalyticsFilter,
        since: Optional[datetime] = None,
    ) -> List[ColumnElement[bool]]:
        """Predicates for an analytics report; since adds a trailing-window bound."""
        conditions: List[ColumnElement[bool]] = []
        if filters.start_date is not None:
            conditions.append(Review.submitted_at >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(Review.submitted_at <= filters.end_date)
        if since is not None:
            conditions.append(Review.submitted_at >= since)
        if filters.listing_id:
            conditions.append(Review.listing_id == filters.listing_id)
        if filters.channel:
            conditions.append(Review.channel == filters.channel)
        return conditions

    def overview(
        self,
        conditions: Sequence[ColumnElement[bool]],
        pending_only: bool = False,
    ) -> Dict[str, Any]:
        where = list(conditions)
        if pending_only:
            where.append(Review.is_approved.is_(False))

        approved = func.sum(case((Review.is_approved.is_(True), 1), else_=0))
        row = self.db.execute(
            select(
                func.count(Review.id).label("total"),
                func.avg(Review.average_category_rating).label("avg_rating"),
                approved.label("approved"),
                func.count(func.distinct(Review.listing_id)).label("properties"),
            ).where(*where)
        ).one()
        total = row.total or 0
        approved_count = int(row.approved or 0)
        return {
            "totalReviews": total,
            "avgRating": _round(row.avg_rating),
            "approvedCount": approved_count,
            "pendingCount": total - approved_count,
            "uniquePropertiesCount": row.properties or 0,
            "approvalRate": _rate(approved_count, total),
        }

    def recent_reviews(
        self,
        conditions: Sequence[ColumnElement[bool]],
        limit: int,
        pending_only: bool = False,
    ) -> List[Review]:
        where = list(conditions)
        if pending_only:
            where.append(Review.is_approved.is_(False))
        stmt = (
            select(Review)
            .where(*where)
            .order_by(Review.submitted_at.desc(), Review.hostaway_id.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def channel_breakdown(self, conditions: Sequence[ColumnElement[bool]]) -> List[Dict[str, Any]]:
        approved = func.sum(case((Review.is_approved.is_(True), 1), else_=0))
        rows = self.db.execute(
            select(
                Review.channel,
                func.count(Review.id).label("count"),
                func.avg(Review.average_category_rating).label("avg_rating"),
                approved.label("approved"),
            )
            .where(*conditions)
            .group_by(Review.channel)
            .order_by(func.count(Review.id).desc(), Review.channel.asc())
        ).all()
        return [
            {
                "channel": r.channel,
                "count": r.count,
                "avgRating": _round(r.avg_rating),
                "approvedCount": int(r.approved or 0),
                "approvalRate": _rate(int(r.approved or 0), r.count),
            }
            for r in rows
        ]

    def property_breakdown(self, conditions: Sequence[ColumnElement[bool]]) -> List[Dict[str, Any]]:
        """Per-listing aggregates, unsorted; avg/min/max rounded to 2 decimals."""
        approved = func.sum(case((Review.is_approved.is_(True), 1), else_=0))
        rows = self.db.execute(
            select(
                Review.listing_id,
                func.max(Review.listing_name).label("listing_name"),
                func.count(Review.id).label("total"),
                approved.label("approved"),
                func.avg(Review.average_category_rating).label("avg_rating"),
                func.min(Review.average_category_rating).label("min_rating"),
                func.max(Review.average_category_rating).label("max_rating"),
                func.max(Review.submitted_at).label("latest"),
            )
            .where(*conditions)
            .group_by(Review.listing_id)
        ).all()
        return [
            {
                "listingId": r.listing_id,
                "listingName": r.listing_name,
                "totalReviews": r.total,
                "approvedReviews": int(r.approved or 0),
                "pendingReviews": r.total - int(r.approved or 0),
                "avgRating": _round(r.avg_rating),
                "minRating": _round(r.min_rating),
                "maxRating": _round(r.max_rating),
                "approvalRate": _rate(int(r.approved or 0), r.total),
                "latestReviewDate": r.latest,
            }
            for r in rows
        ]

    def category_breakdown(self, conditions: Sequence[ColumnElement[bool]]) -> List[Dict[str, Any]]:
        """Per-category stats over the categories of matching reviews, unsorted."""
        rows = self.db.execute(
            select(
                ReviewCategory.category,
                func.avg(ReviewCategory.rating).label("avg_rating"),
                func.min(ReviewCategory.rating).label("min_rating"),
                func.max(ReviewCategory.rating).label("max_rating"),
                func.count(ReviewCategory.id).label("count"),
            )
            .join(Review, ReviewCategory.review_id == Review.id)
            .where(*conditions)
            .group_by(ReviewCategory.category)
        ).all()
        return [
            {
                "category": r.category,
                "avgRating": _round(r.avg_rating),
                "minRating": _round(r.min_rating),
                "maxRating": _round(r.max_rating),
                "count": r.count,
            }
            for r in rows
        ]

    def daily_trend(self, conditions: Sequence[ColumnElement[bool]]) -> List[Dict[str, Any]]:
        day = self._day_expression().label("day")
        approved = func.sum(case((Review.is_approved.is_(True), 1), else_=0))
        rows = self.db.execute(
            select(
                day,
                func.count(Review.id).label("count"),
                func.avg(Review.average_category_rating).label("avg_rating"),
                approved.label("approved"),
            )
            .where(*conditions)
            .group_by(literal_column("day"))
            .order_by(literal_column("day").asc())
        ).all()
        return [
            {
                "date": str(r.day),
                "count": r.count,
                "avgRating": _round(r.avg_rating),
                "approvedCount": int(r.approved or 0),
            }
            for r in rows
        ]

    def rated_reviews(
        self,
        conditions: Sequence[ColumnElement[bool]],
        below: Optional[float] = None,
        at_least: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> Tuple[List[Review], int]:
        """
        Reviews under `below` (lowest first) or at/over `at_least` (highest first).

        Returns:
            (up to limit reviews, total matching count)
        """
        where = list(conditions)
        if below is not None:
            where.append(Review.average_category_rating < below)
            order = [Review.average_category_rating.asc(), Review.submitted_at.desc()]
        else:
            where.append(Review.average_category_rating >= (at_least or 0))
            order = [Review.average_category_rating.desc(), Review.submitted_at.desc()]

        total = self.db.execute(select(func.count(Review.id)).where(and_(*where))).scalar() or 0

        stmt = select(Review).where(*where).order_by(*order, Review.hostaway_id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.db.execute(stmt).scalars().all()), total
