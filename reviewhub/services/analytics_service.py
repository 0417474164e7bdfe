"""
Analytics Service - dashboard reports over stored reviews.

Reports:
- summary: overview, recent activity, pending approvals, channel mix
- property_breakdown: per-listing aggregates with a performance tier
- channel_breakdown: per-channel counts and approval rates
- trends: daily counts over a trailing window
- category_breakdown: per-category rating stats
- insights: rule-based alerts, strengths and recommendations

Each report is cache-aside: the key is the report name plus the serialized
filter, computed on a miss and written through with the default TTL.
Mutations do not invalidate these entries; they expire by TTL.
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from reviewhub.lib.cache import CacheService, build_cache_key
from reviewhub.lib.config_flags import AnalyticsThresholds, get_analytics_thresholds
from reviewhub.lib.db import utcnow
from reviewhub.lib.logging import get_logger
from reviewhub.lib.settings import settings
from reviewhub.models.reviews import Review
from reviewhub.repositories.review_repository import ReviewRepository
from reviewhub.schemas.analytics import (
    ActivityItem,
    Alert,
    AnalyticsFilter,
    ApprovalStats,
    CategoryBreakdownReport,
    CategoryStats,
    ChannelBreakdownItem,
    ChannelBreakdownReport,
    DailyTrendPoint,
    InsightReview,
    InsightsReport,
    PropertyBreakdownReport,
    PropertyPerformance,
    Recommendation,
    Strength,
    SummaryOverview,
    SummaryReport,
    TrendsReport,
)


logger = get_logger(__name__)


CACHE_PREFIX = "analytics"


def _activity_item(review: Review) -> ActivityItem:
    return ActivityItem(
        id=str(review.id),
        hostaway_id=review.hostaway_id,
        listing_name=review.listing_name,
        guest_name=review.guest_name,
        average_category_rating=review.average_category_rating,
        submitted_at=review.submitted_at,
        is_approved=review.is_approved,
    )


def _insight_review(review: Review) -> InsightReview:
    return InsightReview(
        id=str(review.id),
        hostaway_id=review.hostaway_id,
        listing_name=review.listing_name,
        guest_name=review.guest_name,
        public_review=review.public_review,
        average_category_rating=review.average_category_rating,
        submitted_at=review.submitted_at,
    )


class AnalyticsService:
    """Service for computing cached dashboard analytics."""

    def __init__(
        self,
        db: Session,
        cache: CacheService,
        thresholds: Optional[AnalyticsThresholds] = None,
    ):
        self.db = db
        self.repository = ReviewRepository(db)
        self.cache = cache
        self.thresholds = thresholds or get_analytics_thresholds()
        self.ttl = settings.cache_default_ttl_seconds

    def _cached(self, method: str, filters: AnalyticsFilter, compute: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        key = build_cache_key(CACHE_PREFIX, method, filters.cache_params())
        return self.cache.get_or_set(key, compute, ttl=self.ttl)

    def _conditions(self, filters: AnalyticsFilter, now: datetime):
        since = now - timedelta(days=filters.days) if filters.days else None
        return self.repository.analytics_conditions(filters, since=since)

    # ===== Reports =====

    def summary(self, filters: AnalyticsFilter) -> Dict[str, Any]:
        """
        Dashboard summary in one report.

        Recent activity covers the caller's window, or the last 30 days when
        no window is given.
        """
        def compute() -> Dict[str, Any]:
            now = utcnow()
            conditions = self._conditions(filters, now)

            if filters.has_date_range or filters.days:
                activity_conditions = conditions
            else:
                since = now - timedelta(days=self.thresholds.recent_activity_days)
                activity_conditions = self.repository.analytics_conditions(filters, since=since)

            overview = self.repository.overview(conditions)
            pending = self.repository.recent_reviews(
                conditions, self.thresholds.pending_list_size, pending_only=True
            )
            pending_overview = self.repository.overview(conditions, pending_only=True)

            report = SummaryReport(
                overview=SummaryOverview.model_validate(overview),
                recent_activity=[
                    _activity_item(r)
                    for r in self.repository.recent_reviews(
                        activity_conditions, self.thresholds.recent_activity_size
                    )
                ],
                approval_stats=ApprovalStats(
                    pending_count=overview["pendingCount"],
                    avg_pending_rating=pending_overview["avgRating"],
                    pending_reviews=[_activity_item(r) for r in pending],
                ),
                channel_breakdown=[
                    ChannelBreakdownItem.model_validate(row)
                    for row in self.repository.channel_breakdown(conditions)
                ],
                generated_at=now,
            )
            logger.info("Computed analytics summary", extra={"filters": filters.cache_params()})
            return report.model_dump(mode="json", by_alias=True)

        return self._cached("summary", filters, compute)

    def property_breakdown(self, filters: AnalyticsFilter) -> Dict[str, Any]:
        """
        Per-listing performance, best first.

        Sorted by avgRating desc, then totalReviews desc, then listingId.
        """
        def compute() -> Dict[str, Any]:
            now = utcnow()
            rows = self.repository.property_breakdown(self._conditions(filters, now))
            rows.sort(key=lambda row: (-row["avgRating"], -row["totalReviews"], row["listingId"]))

            properties = [
                PropertyPerformance.model_validate({
                    **row,
                    "performance": self.thresholds.performance_tier(row["avgRating"]),
                })
                for row in rows
            ]
            report = PropertyBreakdownReport(
                properties=properties,
                total_properties=len(properties),
                generated_at=now,
            )
            return report.model_dump(mode="json", by_alias=True)

        return self._cached("by-property", filters, compute)

    def channel_breakdown(self, filters: AnalyticsFilter) -> Dict[str, Any]:
        def compute() -> Dict[str, Any]:
            now = utcnow()
            report = ChannelBreakdownReport(
                channels=[
                    ChannelBreakdownItem.model_validate(row)
                    for row in self.repository.channel_breakdown(self._conditions(filters, now))
                ],
                generated_at=now,
            )
            return report.model_dump(mode="json", by_alias=True)

        return self._cached("by-channel", filters, compute)

    def trends(self, filters: AnalyticsFilter) -> Dict[str, Any]:
        """Daily trend over the trailing `days` (default 30), oldest day first."""
        days = filters.days or self.thresholds.default_trend_days

        def compute() -> Dict[str, Any]:
            end_date = utcnow()
            start_date = end_date - timedelta(days=days)
            conditions = self.repository.analytics_conditions(filters, since=start_date)

            report = TrendsReport(
                daily_trend=[
                    DailyTrendPoint.model_validate(point)
                    for point in self.repository.daily_trend(conditions)
                ],
                period=f"{days} days",
                start_date=start_date,
                end_date=end_date,
                generated_at=end_date,
            )
            return report.model_dump(mode="json", by_alias=True)

        return self._cached("trends", filters, compute)

    def category_breakdown(self, filters: AnalyticsFilter) -> Dict[str, Any]:
        def compute() -> Dict[str, Any]:
            now = utcnow()
            rows = self.repository.category_breakdown(self._conditions(filters, now))
            rows.sort(key=lambda row: (-row["avgRating"], row["category"]))

            report = CategoryBreakdownReport(
                categories=[CategoryStats.model_validate(row) for row in rows],
                generated_at=now,
            )
            return report.model_dump(mode="json", by_alias=True)

        return self._cached("categories", filters, compute)

    def insights(self, filters: AnalyticsFilter) -> Dict[str, Any]:
        """Rule-based alerts, strengths and recommendations."""
        def compute() -> Dict[str, Any]:
            now = utcnow()
            conditions = self._conditions(filters, now)
            t = self.thresholds

            low_reviews, low_total = self.repository.rated_reviews(
                conditions, below=t.low_rating_threshold, limit=t.insight_sample_size
            )
            high_reviews, high_total = self.repository.rated_reviews(
                conditions, at_least=t.high_rating_threshold, limit=t.insight_sample_size
            )

            categories = self.repository.category_breakdown(conditions)
            properties = sorted(
                self.repository.property_breakdown(conditions),
                key=lambda row: (row["avgRating"], row["listingId"]),
            )[:t.insight_property_count]

            low_categories = sorted(
                (c for c in categories if c["avgRating"] < t.low_rating_threshold),
                key=lambda c: (c["avgRating"], c["category"]),
            )
            top_categories = sorted(
                (c for c in categories if c["avgRating"] >= t.high_rating_threshold),
                key=lambda c: (-c["avgRating"], c["category"]),
            )

            report = InsightsReport(
                alerts=self._alerts(low_total, low_categories),
                strengths=self._strengths(high_total, top_categories),
                recommendations=self._recommendations(low_categories, properties),
                low_rated_reviews=[_insight_review(r) for r in low_reviews],
                high_rated_reviews=[_insight_review(r) for r in high_reviews],
                generated_at=now,
            )
            return report.model_dump(mode="json", by_alias=True)

        return self._cached("insights", filters, compute)

    # ===== Insight rules =====

    def _alerts(self, low_total: int, low_categories: List[Dict[str, Any]]) -> List[Alert]:
        threshold = self.thresholds.low_rating_threshold
        alerts: List[Alert] = []

        if low_total > 0:
            alerts.append(Alert(
                title="Low-Rated Reviews Detected",
                message=f"{low_total} reviews with ratings below {threshold:.1f} require attention",
                priority="high",
                count=low_total,
            ))

        if low_categories:
            names = ", ".join(c["category"] for c in low_categories)
            alerts.append(Alert(
                title="Category Performance Issues",
                message=f"{names} ratings are below {threshold:.1f}",
                priority="medium",
                count=len(low_categories),
            ))

        return alerts

    def _strengths(self, high_total: int, top_categories: List[Dict[str, Any]]) -> List[Strength]:
        threshold = self.thresholds.high_rating_threshold
        strengths: List[Strength] = []

        if high_total > 0:
            strengths.append(Strength(
                title="Excellent Guest Satisfaction",
                message=f"{high_total} reviews with {threshold:g}+ ratings",
                count=high_total,
            ))

        if top_categories:
            names = ", ".join(c["category"] for c in top_categories)
            strengths.append(Strength(
                title="Outstanding Category Performance",
                message=f"{names} exceed {threshold:.1f} average",
                count=len(top_categories),
            ))

        return strengths

    def _recommendations(
        self,
        low_categories: List[Dict[str, Any]],
        lowest_properties: List[Dict[str, Any]],
    ) -> List[Recommendation]:
        threshold = self.thresholds.low_rating_threshold
        recommendations: List[Recommendation] = []

        for category in low_categories:
            recommendations.append(Recommendation(
                category=category["category"],
                current_rating=category["avgRating"],
                recommendation=(
                    f"Focus on improving {category['category']} - "
                    "consider guest feedback and implement action plan"
                ),
                expected_impact="Could increase overall rating by 0.5-1.0 points",
            ))

        for prop in lowest_properties:
            if prop["avgRating"] < threshold:
                recommendations.append(Recommendation(
                    listing_id=prop["listingId"],
                    listing_name=prop["listingName"],
                    current_rating=prop["avgRating"],
                    recommendation="Schedule property inspection and address common issues",
                    expected_impact="Improve property rating to 8+",
                ))

        return recommendations
