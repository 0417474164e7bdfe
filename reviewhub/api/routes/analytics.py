"""
Analytics Routes - cached dashboard reports.

Every report accepts the same filter: startDate, endDate, listingId,
channel, days.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session

from reviewhub.api.dependencies import get_cache, get_db
from reviewhub.api.middleware.error_handler import ValidationException
from reviewhub.lib.cache import CacheService
from reviewhub.lib.logging import get_logger
from reviewhub.schemas.analytics import (
    AnalyticsFilter,
    CategoryBreakdownReport,
    ChannelBreakdownReport,
    InsightsReport,
    PropertyBreakdownReport,
    SummaryReport,
    TrendsReport,
)
from reviewhub.schemas.common import parse_date_bound
from reviewhub.services.analytics_service import AnalyticsService


logger = get_logger(__name__)
router = APIRouter(prefix="/analytics", tags=["analytics"])


def get_analytics_service(
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
) -> AnalyticsService:
    """Get AnalyticsService instance with database session and cache."""
    return AnalyticsService(db, cache)


def get_analytics_filter(
    start_date: Optional[str] = Query(None, alias="startDate", examples=["2024-01-01"]),
    end_date: Optional[str] = Query(None, alias="endDate", examples=["2024-12-31"]),
    listing_id: Optional[str] = Query(None, alias="listingId"),
    channel: Optional[str] = Query(None),
    days: Optional[int] = Query(None, ge=1, le=365, description="Trailing window in days"),
) -> AnalyticsFilter:
    try:
        return AnalyticsFilter(
            start_date=parse_date_bound(start_date),
            end_date=parse_date_bound(end_date, end=True),
            listing_id=listing_id,
            channel=channel,
            days=days,
        )
    except ValidationError as e:
        raise ValidationException(
            "Invalid analytics filter",
            errors={"filter": [err["msg"] for err in e.errors()]},
        )
    except ValueError as e:
        raise ValidationException("Invalid date filter", errors={"date": str(e)})


@router.get("/summary", response_model=SummaryReport, summary="Dashboard summary")
def summary(
    filters: AnalyticsFilter = Depends(get_analytics_filter),
    service: AnalyticsService = Depends(get_analytics_service),
) -> Dict[str, Any]:
    logger.info("GET /analytics/summary", extra={"filters": filters.cache_params()})
    return service.summary(filters)


@router.get("/by-property", response_model=PropertyBreakdownReport, summary="Per-property performance")
def by_property(
    filters: AnalyticsFilter = Depends(get_analytics_filter),
    service: AnalyticsService = Depends(get_analytics_service),
) -> Dict[str, Any]:
    return service.property_breakdown(filters)


@router.get("/by-channel", response_model=ChannelBreakdownReport, summary="Per-channel breakdown")
def by_channel(
    filters: AnalyticsFilter = Depends(get_analytics_filter),
    service: AnalyticsService = Depends(get_analytics_service),
) -> Dict[str, Any]:
    return service.channel_breakdown(filters)


@router.get("/trends", response_model=TrendsReport, summary="Daily trends")
def trends(
    filters: AnalyticsFilter = Depends(get_analytics_filter),
    service: AnalyticsService = Depends(get_analytics_service),
) -> Dict[str, Any]:
    return service.trends(filters)


@router.get("/category-breakdown", response_model=CategoryBreakdownReport, summary="Per-category ratings")
def category_breakdown(
    filters: AnalyticsFilter = Depends(get_analytics_filter),
    service: AnalyticsService = Depends(get_analytics_service),
) -> Dict[str, Any]:
    return service.category_breakdown(filters)


@router.get("/insights", response_model=InsightsReport, summary="Alerts, strengths and recommendations")
def insights(
    filters: AnalyticsFilter = Depends(get_analytics_filter),
    service: AnalyticsService = Depends(get_analytics_service),
) -> Dict[str, Any]:
    return service.insights(filters)
