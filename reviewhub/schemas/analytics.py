"""
Analytics report models and the shared report filter.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator

from reviewhub.schemas.common import CamelModel


class AnalyticsFilter(CamelModel):
    """
    Filter shared by every analytics report.

    start_date/end_date bound submittedAt (inclusive); days sizes the
    trailing window for trend reports.
    """
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    listing_id: Optional[str] = None
    channel: Optional[str] = None
    days: Optional[int] = Field(default=None, ge=1, le=365)

    @model_validator(mode="after")
    def _check_range(self) -> "AnalyticsFilter":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        return self

    def cache_params(self) -> Dict[str, Any]:
        """Filter values for the cache key, in wire names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @property
    def has_date_range(self) -> bool:
        return self.start_date is not None or self.end_date is not None


# ===== Summary =====

class SummaryOverview(CamelModel):
    total_reviews: int
    avg_rating: float
    approved_count: int
    pending_count: int
    unique_properties_count: int
    approval_rate: float


class ActivityItem(CamelModel):
    id: str
    hostaway_id: int
    listing_name: str
    guest_name: str
    average_category_rating: float
    submitted_at: datetime
    is_approved: bool


class ApprovalStats(CamelModel):
    pending_count: int
    avg_pending_rating: float
    pending_reviews: List[ActivityItem]


class ChannelBreakdownItem(CamelModel):
    channel: str
    count: int
    avg_rating: float
    approved_count: int
    approval_rate: float


class SummaryReport(CamelModel):
    overview: SummaryOverview
    recent_activity: List[ActivityItem]
    approval_stats: ApprovalStats
    channel_breakdown: List[ChannelBreakdownItem]
    generated_at: datetime


# ===== Properties =====

class PropertyPerformance(CamelModel):
    listing_id: str
    listing_name: str
    total_reviews: int
    approved_reviews: int
    pending_reviews: int
    avg_rating: float
    min_rating: float
    max_rating: float
    approval_rate: float
    latest_review_date: Optional[datetime]
    performance: str = Field(description="excellent, good, fair or needs_improvement")


class PropertyBreakdownReport(CamelModel):
    properties: List[PropertyPerformance]
    total_properties: int
    generated_at: datetime


class ChannelBreakdownReport(CamelModel):
    channels: List[ChannelBreakdownItem]
    generated_at: datetime


# ===== Trends =====

class DailyTrendPoint(CamelModel):
    date: str
    count: int
    avg_rating: float
    approved_count: int


class TrendsReport(CamelModel):
    daily_trend: List[DailyTrendPoint]
    period: str = Field(examples=["30 days"])
    start_date: datetime
    end_date: datetime
    generated_at: datetime


# ===== Categories =====

class CategoryStats(CamelModel):
    category: str
    avg_rating: float
    min_rating: float
    max_rating: float
    count: int


class CategoryBreakdownReport(CamelModel):
    categories: List[CategoryStats]
    generated_at: datetime


# ===== Insights =====

class InsightReview(CamelModel):
    id: str
    hostaway_id: int
    listing_name: str
    guest_name: str
    public_review: str
    average_category_rating: float
    submitted_at: datetime


class Alert(CamelModel):
    type: str = "warning"
    title: str
    message: str
    priority: str
    count: int


class Strength(CamelModel):
    title: str
    message: str
    impact: str = "positive"
    count: int


class Recommendation(CamelModel):
    category: Optional[str] = None
    listing_id: Optional[str] = None
    listing_name: Optional[str] = None
    current_rating: float
    recommendation: str
    expected_impact: str


class InsightsReport(CamelModel):
    alerts: List[Alert]
    strengths: List[Strength]
    recommendations: List[Recommendation]
    low_rated_reviews: List[InsightReview]
    high_rated_reviews: List[InsightReview]
    generated_at: datetime
