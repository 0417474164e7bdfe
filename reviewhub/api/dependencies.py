"""
API dependencies for FastAPI dependency injection.

Provides the database session and the per-process cache.
"""
from fastapi import Request

from reviewhub.lib.cache import CacheService
from reviewhub.lib.db import get_db as get_db_session


# Re-export get_db for convenience
get_db = get_db_session


def get_cache(request: Request) -> CacheService:
    """
    Cache created by the application lifespan.

    Usage:
        @router.get("/example")
        def example(cache: CacheService = Depends(get_cache)):
            ...
    """
    return request.app.state.cache
