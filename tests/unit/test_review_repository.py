"""
Unit tests for ReviewRepository against SQLite.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from reviewhub.models.reviews import Review, ReviewCategory, ReviewStatus
from reviewhub.repositories.review_repository import (
    DuplicateReviewError,
    ReviewRepository,
    parse_hostaway_id,
    split_identifiers,
)
from reviewhub.schemas.reviews import ReviewCreate, ReviewFilter


@pytest.fixture
def repository(db_session):
    return ReviewRepository(db_session)


@pytest.fixture
def create(repository, make_review):
    def _create(hostaway_id, **kwargs):
        return repository.create(ReviewCreate.model_validate(make_review(hostaway_id, **kwargs)))
    return _create


@pytest.mark.unit
def test_create_derives_average_and_keeps_category_order(repository, create):
    review = create(1, categories=[("value", 6), ("cleanliness", 10), ("location", 8)])

    stored = repository.get_by_hostaway_id(1)
    assert stored is review
    assert stored.average_category_rating == 8.0
    assert stored.category_pairs == [("value", 6.0), ("cleanliness", 10.0), ("location", 8.0)]
    assert stored.is_approved is False
    assert stored.approved_by is None
    assert repository.get(review.id) is review


@pytest.mark.unit
def test_create_duplicate_hostaway_id_rejected(repository, create):
    create(1)

    with pytest.raises(DuplicateReviewError) as exc_info:
        create(1)

    assert exc_info.value.hostaway_id == 1
    assert repository.get_by_hostaway_id(1) is not None


@pytest.mark.unit
def test_bulk_upsert_inserts_then_updates(repository, make_review, db_session):
    """Matching external ids are updated, new ones inserted."""
    first = [ReviewCreate.model_validate(make_review(1))]
    assert repository.bulk_upsert(first) == {"inserted": 1, "updated": 0}

    second = [
        ReviewCreate.model_validate(make_review(1, categories=[("cleanliness", 6)], guestName="Renamed")),
        ReviewCreate.model_validate(make_review(2)),
    ]
    assert repository.bulk_upsert(second) == {"inserted": 1, "updated": 1}

    updated = repository.get_by_hostaway_id(1)
    assert updated.guest_name == "Renamed"
    assert updated.category_pairs == [("cleanliness", 6.0)]
    assert updated.average_category_rating == 6.0
    assert db_session.execute(select(func.count(Review.id))).scalar() == 2
    assert db_session.execute(select(func.count(ReviewCategory.id))).scalar() == 3


@pytest.mark.unit
def test_bulk_upsert_preserves_approval(repository, create, make_review):
    """Channel data never overwrites the manager's decision."""
    review = create(1)
    review.approve("manager@example.com", datetime(2024, 1, 1, tzinfo=timezone.utc))
    repository.save(review)

    repository.bulk_upsert([ReviewCreate.model_validate(make_review(1, publicReview="Edited"))])

    stored = repository.get_by_hostaway_id(1)
    assert stored.public_review == "Edited"
    assert stored.is_approved is True
    assert stored.approved_by == "manager@example.com"


@pytest.mark.unit
def test_bulk_upsert_unchanged_record_counts_as_updated(repository, make_review):
    batch = [ReviewCreate.model_validate(make_review(1))]
    repository.bulk_upsert(batch)

    assert repository.bulk_upsert(batch) == {"inserted": 0, "updated": 1}


@pytest.mark.unit
def test_min_rating_filter_is_inclusive(repository, create):
    create(1, categories=[("cleanliness", 10), ("communication", 8)])

    matched, total = repository.find_with_filters(ReviewFilter(min_rating=9))
    assert total == 1
    assert matched[0].hostaway_id == 1

    matched, total = repository.find_with_filters(ReviewFilter(min_rating=9.5))
    assert total == 0
    assert matched == []


@pytest.mark.unit
def test_filters_combine(repository, create):
    create(1, listingId="a", channel="airbnb")
    create(2, listingId="a", channel="hostaway", status="pending")
    create(3, listingId="b", channel="airbnb")

    _, total = repository.find_with_filters(ReviewFilter(listing_id="a"))
    assert total == 2

    matched, total = repository.find_with_filters(ReviewFilter(listing_id="a", channel="airbnb"))
    assert total == 1
    assert matched[0].hostaway_id == 1

    matched, _ = repository.find_with_filters(ReviewFilter(status=ReviewStatus.PENDING))
    assert [r.hostaway_id for r in matched] == [2]


@pytest.mark.unit
def test_guest_name_filter_is_case_insensitive_substring(repository, create):
    create(1, guestName="Emma Thompson")
    create(2, guestName="James Smith")
    create(3, guestName="100% Guest")

    matched, _ = repository.find_with_filters(ReviewFilter(guest_name="emma"))
    assert [r.hostaway_id for r in matched] == [1]

    matched, _ = repository.find_with_filters(ReviewFilter(guest_name="%"))
    assert [r.hostaway_id for r in matched] == [3]


@pytest.mark.unit
def test_date_range_filter(repository, create):
    create(1, submitted_at=datetime(2024, 9, 1, 12, tzinfo=timezone.utc))
    create(2, submitted_at=datetime(2024, 9, 15, 23, 59, tzinfo=timezone.utc))
    create(3, submitted_at=datetime(2024, 10, 1, tzinfo=timezone.utc))

    matched, _ = repository.find_with_filters(ReviewFilter(
        start_date=datetime(2024, 9, 10, tzinfo=timezone.utc),
        end_date=datetime(2024, 9, 15, 23, 59, 59, 999999, tzinfo=timezone.utc),
    ))
    assert [r.hostaway_id for r in matched] == [2]


@pytest.mark.unit
def test_is_approved_filter(repository, create):
    approved = create(1)
    create(2)
    approved.approve(None, datetime.now(timezone.utc))
    repository.save(approved)

    matched, _ = repository.find_with_filters(ReviewFilter(is_approved=True))
    assert [r.hostaway_id for r in matched] == [1]
    matched, _ = repository.find_with_filters(ReviewFilter(is_approved=False))
    assert [r.hostaway_id for r in matched] == [2]


@pytest.mark.unit
def test_default_sort_is_newest_first(repository, create):
    now = datetime.now(timezone.utc)
    create(1, submitted_at=now - timedelta(days=3))
    create(2, submitted_at=now - timedelta(days=1))
    create(3, submitted_at=now - timedelta(days=2))

    matched, _ = repository.find_with_filters(ReviewFilter())
    assert [r.hostaway_id for r in matched] == [2, 3, 1]


@pytest.mark.unit
def test_sort_by_average_rating_with_tiebreak(repository, create):
    create(1, categories=[("cleanliness", 8)])
    create(2, categories=[("cleanliness", 6)])
    create(3, categories=[("cleanliness", 8)])

    matched, _ = repository.find_with_filters(
        ReviewFilter(sort_by="averageCategoryRating", sort_order="asc")
    )
    assert [r.hostaway_id for r in matched] == [2, 1, 3]

    matched, _ = repository.find_with_filters(
        ReviewFilter(sort_by="averageCategoryRating", sort_order="desc")
    )
    assert [r.hostaway_id for r in matched] == [3, 1, 2]


@pytest.mark.unit
def test_sort_by_rating_puts_missing_last(repository, create):
    create(1, rating=None)
    create(2, rating=5)
    create(3, rating=9)

    matched, _ = repository.find_with_filters(ReviewFilter(sort_by="rating", sort_order="asc"))
    assert [r.hostaway_id for r in matched] == [2, 3, 1]


@pytest.mark.unit
def test_pagination(repository, create):
    for hostaway_id in range(1, 6):
        create(hostaway_id)

    matched, total = repository.find_with_filters(ReviewFilter(page=2, limit=2))
    assert total == 5
    assert len(matched) == 2

    matched, total = repository.find_with_filters(ReviewFilter(page=4, limit=2))
    assert total == 5
    assert matched == []


@pytest.mark.unit
def test_split_identifiers():
    hostaway_ids, uuids = split_identifiers(
        ["7453", "a1b2c3d4-0000-4000-8000-000000000000", "nope", " 12 "]
    )

    assert hostaway_ids == [7453, 12]
    assert [str(u) for u in uuids] == ["a1b2c3d4-0000-4000-8000-000000000000"]


@pytest.mark.unit
def test_split_identifiers_drops_out_of_range_numbers():
    hostaway_ids, uuids = split_identifiers(["99999999999999999999999", str(2**63), "5"])

    assert hostaway_ids == [5]
    assert uuids == []


@pytest.mark.unit
@pytest.mark.parametrize(
    "text,expected",
    [
        ("7453", 7453),
        (str(2**63 - 1), 2**63 - 1),
        (str(2**63), None),
        ("9" * 5000, None),
        ("-3", None),
        ("abc", None),
    ],
)
def test_parse_hostaway_id(text, expected):
    assert parse_hostaway_id(text) == expected


@pytest.mark.unit
def test_bulk_approve_counts_only_changes(repository, create):
    """Already-approved and unknown ids are skipped."""
    first = create(1)
    second = create(2)
    third = create(3)
    first.approve("earlier", datetime(2024, 1, 1, tzinfo=timezone.utc))
    repository.save(first)

    when = datetime(2024, 6, 1, tzinfo=timezone.utc)
    count = repository.bulk_approve(
        ["1", str(second.id), "99999", "not-an-id"], "manager", when
    )

    assert count == 1
    assert repository.get_by_hostaway_id(1).approved_by == "earlier"
    assert repository.get_by_hostaway_id(2).is_approved is True
    assert repository.get_by_hostaway_id(2).approved_by == "manager"
    assert repository.get_by_hostaway_id(2).approved_at == when
    assert repository.get_by_hostaway_id(3).is_approved is False
    assert third.is_approved is False


@pytest.mark.unit
def test_bulk_approve_defaults_approver(repository, create):
    create(1)

    assert repository.bulk_approve(["1"], None) == 1
    assert repository.get_by_hostaway_id(1).approved_by == "admin"


@pytest.mark.unit
def test_bulk_approve_nothing_parseable(repository):
    assert repository.bulk_approve(["abc"], None) == 0


@pytest.mark.unit
def test_delete_removes_categories(repository, create, db_session):
    review = create(1)

    repository.delete(review)

    assert repository.get_by_hostaway_id(1) is None
    assert db_session.execute(select(func.count(ReviewCategory.id))).scalar() == 0


@pytest.mark.unit
def test_rating_distribution_buckets(repository, create):
    """Buckets are half-open except the last, which includes 10."""
    create(1, categories=[("cleanliness", 1)])
    create(2, categories=[("cleanliness", 2)])
    create(3, categories=[("cleanliness", 7.99)])
    create(4, categories=[("cleanliness", 8)])
    create(5, categories=[("cleanliness", 10)])
    create(6, categories=[])

    buckets = repository.rating_distribution()

    assert [b["range"] for b in buckets] == ["0-2", "2-4", "4-6", "6-8", "8-10"]
    assert [b["count"] for b in buckets] == [2, 1, 0, 1, 2]
    assert buckets[4]["min"] == 8.0
    assert buckets[4]["max"] == 10.0


@pytest.mark.unit
def test_aggregate_statistics(repository, create):
    approved = create(1, categories=[("cleanliness", 10)], channel="airbnb")
    create(2, categories=[("cleanliness", 8)], listingId="other", listingName="Other Flat")
    create(3, categories=[("cleanliness", 6)])
    approved.approve(None, datetime.now(timezone.utc))
    repository.save(approved)

    stats = repository.aggregate_statistics()

    assert stats["overview"] == {
        "totalReviews": 3,
        "averageRating": 8.0,
        "approvedCount": 1,
        "pendingCount": 2,
    }
    assert stats["byChannel"][0] == {"channel": "hostaway", "count": 2, "avgRating": 7.0}
    top = stats["topProperties"][0]
    assert top["listingId"] == "luxury-studio-central-london"
    assert top["reviewCount"] == 2
    assert top["approvalRate"] == 50.0


@pytest.mark.unit
def test_aggregate_statistics_empty(repository):
    stats = repository.aggregate_statistics()

    assert stats["overview"]["totalReviews"] == 0
    assert stats["overview"]["averageRating"] == 0.0
    assert stats["byChannel"] == []
    assert sum(b["count"] for b in stats["ratingDistribution"]) == 0


@pytest.mark.unit
def test_trend_groups_by_utc_day(repository, create):
    now = datetime(2024, 9, 20, 12, tzinfo=timezone.utc)
    create(1, submitted_at=datetime(2024, 9, 18, 9, tzinfo=timezone.utc), categories=[("c", 10)])
    create(2, submitted_at=datetime(2024, 9, 18, 23, tzinfo=timezone.utc), categories=[("c", 8)])
    create(3, submitted_at=datetime(2024, 9, 19, 1, tzinfo=timezone.utc))
    create(4, submitted_at=datetime(2024, 8, 1, tzinfo=timezone.utc))

    points = repository.trend(7, now=now)

    assert points == [
        {"date": "2024-09-18", "count": 2, "avgRating": 9.0},
        {"date": "2024-09-19", "count": 1, "avgRating": 9.0},
    ]
