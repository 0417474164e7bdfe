"""
Tunable thresholds for review analytics.

Provides centralized configuration for:
- Property performance tiers (excellent / good / fair / needs_improvement)
- Insight rules (low-rated and high-rated cut-offs)
- Report sizes and default windows
"""
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from reviewhub.lib.logging import get_logger


logger = get_logger(__name__)


class PerformanceTier:
    """Property performance tier labels."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    NEEDS_IMPROVEMENT = "needs_improvement"


class AnalyticsThresholds(BaseModel):
    """
    Rating thresholds used by the analytics reports.

    All bounds are inclusive lower bounds on a 0-10 scale.
    """

    excellent_min: float = Field(default=8.5, ge=0, le=10, description="Lowest average for 'excellent'")
    good_min: float = Field(default=7.0, ge=0, le=10, description="Lowest average for 'good'")
    fair_min: float = Field(default=5.0, ge=0, le=10, description="Lowest average for 'fair'")

    low_rating_threshold: float = Field(
        default=7.0,
        ge=0,
        le=10,
        description="Reviews, categories and properties below this raise alerts"
    )
    high_rating_threshold: float = Field(
        default=9.0,
        ge=0,
        le=10,
        description="Reviews and categories at or above this count as strengths"
    )

    insight_sample_size: int = Field(default=5, ge=1, le=50, description="Reviews listed per insight bucket")
    insight_property_count: int = Field(default=5, ge=1, le=50, description="Lowest-rated properties examined")
    recent_activity_size: int = Field(default=10, ge=1, le=100)
    pending_list_size: int = Field(default=10, ge=1, le=100)
    recent_activity_days: int = Field(default=30, ge=1, le=365)
    default_trend_days: int = Field(default=30, ge=1, le=365)

    @model_validator(mode="after")
    def _check_tier_order(self) -> "AnalyticsThresholds":
        if not (self.excellent_min >= self.good_min >= self.fair_min):
            raise ValueError("tier bounds must satisfy excellent_min >= good_min >= fair_min")
        return self

    def performance_tier(self, avg_rating: Optional[float]) -> str:
        """Bucket a property's average rating into a performance tier."""
        rating = avg_rating or 0.0
        if rating >= self.excellent_min:
            return PerformanceTier.EXCELLENT
        if rating >= self.good_min:
            return PerformanceTier.GOOD
        if rating >= self.fair_min:
            return PerformanceTier.FAIR
        return PerformanceTier.NEEDS_IMPROVEMENT


# Global configuration instance (can be overridden)
_analytics_thresholds: Optional[AnalyticsThresholds] = None


def get_analytics_thresholds() -> AnalyticsThresholds:
    """Get analytics thresholds, creating defaults on first use."""
    global _analytics_thresholds
    if _analytics_thresholds is None:
        _analytics_thresholds = AnalyticsThresholds()
        logger.info("Initialized default analytics thresholds")
    return _analytics_thresholds


def set_analytics_thresholds(thresholds: AnalyticsThresholds) -> None:
    """Override analytics thresholds."""
    global _analytics_thresholds
    _analytics_thresholds = thresholds
    logger.info("Updated analytics thresholds", extra={
        "excellent_min": thresholds.excellent_min,
        "low_rating_threshold": thresholds.low_rating_threshold,
    })


def reset_all_configs() -> None:
    """Reset all configurations to defaults (useful for testing)."""
    global _analytics_thresholds
    _analytics_thresholds = None
    logger.info("Reset all configurations to defaults")
