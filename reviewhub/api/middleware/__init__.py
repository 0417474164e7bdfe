"""
API middleware module.
"""
from reviewhub.api.middleware.error_handler import (
    AppException,
    NotFoundException,
    BadRequestException,
    DuplicateReviewException,
    ValidationException,
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)

__all__ = [
    "AppException",
    "NotFoundException",
    "BadRequestException",
    "DuplicateReviewException",
    "ValidationException",
    "app_exception_handler",
    "validation_exception_handler",
    "http_exception_handler",
    "unhandled_exception_handler",
]
