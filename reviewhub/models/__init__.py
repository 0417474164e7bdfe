"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from reviewhub.models.reviews import (
    DEFAULT_CHANNEL,
    Review,
    ReviewCategory,
    ReviewStatus,
    ReviewType,
    compute_average_rating,
)

__all__ = [
    "DEFAULT_CHANNEL",
    "Review",
    "ReviewCategory",
    "ReviewStatus",
    "ReviewType",
    "compute_average_rating",
]
