"""
Shared fixtures.

Tests run against an in-memory SQLite database; the URL has to be in the
environment before reviewhub.lib.settings is first imported.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("HOSTAWAY_BASE_URL", "http://hostaway.test/v1")

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

import reviewhub.models  # noqa: F401
from reviewhub.lib.cache import CacheService, InMemoryCacheBackend
from reviewhub.lib.config_flags import reset_all_configs
from reviewhub.lib.db import SessionLocal, drop_db, init_db
from reviewhub.lib.metrics import reset_metrics


@pytest.fixture(autouse=True)
def clean_globals():
    """Reset metrics and thresholds around every test."""
    reset_metrics()
    reset_all_configs()
    yield
    reset_metrics()
    reset_all_configs()


@pytest.fixture
def db_session():
    """Session on a freshly created schema."""
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        drop_db()


@pytest.fixture
def cache() -> CacheService:
    return CacheService(InMemoryCacheBackend(), default_ttl=300)


@pytest.fixture
def client():
    """TestClient with the lifespan running (tables and cache created)."""
    from reviewhub.api.app import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    drop_db()


def review_payload(
    hostaway_id: int,
    categories: Optional[List[Tuple[str, float]]] = None,
    submitted_at: Optional[datetime] = None,
    **overrides: Any,
) -> Dict[str, Any]:
    """Canonical review in wire (camelCase) form."""
    if categories is None:
        categories = [("cleanliness", 10), ("communication", 8)]
    if submitted_at is None:
        submitted_at = datetime.now(timezone.utc) - timedelta(days=1)

    payload = {
        "hostawayId": hostaway_id,
        "type": "guest-to-host",
        "status": "published",
        "rating": 9,
        "publicReview": f"Review {hostaway_id}",
        "privateReview": None,
        "reviewCategories": [{"category": c, "rating": r} for c, r in categories],
        "submittedAt": submitted_at.isoformat(),
        "guestName": "Emma Thompson",
        "listingId": "luxury-studio-central-london",
        "listingName": "Luxury Studio - Central London",
        "channel": "hostaway",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_review():
    return review_payload
