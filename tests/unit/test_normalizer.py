"""
Unit tests for the channel review normalizer.
"""
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from reviewhub.models.reviews import ReviewStatus, ReviewType
from reviewhub.services.normalizer import (
    RawHostawayReview,
    normalize,
    normalize_many,
    slugify_listing_name,
)


def raw_review(**overrides):
    record = {
        "id": 7453,
        "type": "host-to-guest",
        "status": "published",
        "rating": None,
        "publicReview": "Shane and family are wonderful! Would definitely host again :)",
        "reviewCategory": [
            {"category": "cleanliness", "rating": 10},
            {"category": "communication", "rating": 10},
            {"category": "respect_house_rules", "rating": 10},
        ],
        "submittedAt": "2020-08-21 22:45:14",
        "guestName": "Shane Finkelstein",
        "listingName": "2B N1 A - 29 Shoreditch Heights",
    }
    record.update(overrides)
    return record


@pytest.mark.unit
def test_normalize_maps_fields():
    """Raw Hostaway fields map onto the canonical review."""
    review = normalize(raw_review())

    assert review.hostaway_id == 7453
    assert review.type == ReviewType.HOST_TO_GUEST
    assert review.status == ReviewStatus.PUBLISHED
    assert review.rating is None
    assert review.guest_name == "Shane Finkelstein"
    assert review.listing_name == "2B N1 A - 29 Shoreditch Heights"
    assert review.submitted_at == datetime(2020, 8, 21, 22, 45, 14, tzinfo=timezone.utc)


@pytest.mark.unit
def test_normalize_preserves_category_order():
    review = normalize(raw_review(reviewCategory=[
        {"category": "value", "rating": 6},
        {"category": "cleanliness", "rating": 9},
    ]))

    assert [(c.category, c.rating) for c in review.review_categories] == [
        ("value", 6),
        ("cleanliness", 9),
    ]


@pytest.mark.unit
@pytest.mark.parametrize(
    "ratings,expected",
    [
        ([10, 8], 9.0),
        ([9, 10, 10, 8], 9.25),
        ([10, 9, 8], 9.0),
        ([7, 8, 8], 7.67),
        ([], 0.0),
    ],
)
def test_average_category_rating(ratings, expected):
    """Average is the mean of category ratings rounded to 2 decimals, 0 when empty."""
    categories = [{"category": f"c{i}", "rating": r} for i, r in enumerate(ratings)]
    review = normalize(raw_review(reviewCategory=categories))

    assert review.average_category_rating == expected


@pytest.mark.unit
def test_missing_category_list_means_zero_average():
    record = raw_review()
    del record["reviewCategory"]

    review = normalize(record)

    assert review.review_categories == []
    assert review.average_category_rating == 0.0


@pytest.mark.unit
def test_listing_id_derived_from_name_when_missing():
    review = normalize(raw_review())

    assert review.listing_id == "2b-n1-a---29-shoreditch-heights"


@pytest.mark.unit
def test_listing_id_kept_when_present():
    review = normalize(raw_review(listingId="listing-123"))

    assert review.listing_id == "listing-123"


@pytest.mark.unit
def test_numeric_listing_id_becomes_text():
    review = normalize(raw_review(listingId=155613))

    assert review.listing_id == "155613"


@pytest.mark.unit
def test_slugify_listing_name_rules():
    assert slugify_listing_name("Luxury Studio - Central London") == "luxury-studio---central-london"
    assert slugify_listing_name("Café  &  Bar!!") == "caf-bar"
    assert slugify_listing_name("Tabs\tand\nnewlines") == "tabs-and-newlines"


@pytest.mark.unit
def test_slugify_truncates_to_50_chars():
    slug = slugify_listing_name("A" * 80)

    assert slug == "a" * 50


@pytest.mark.unit
def test_slugify_is_deterministic():
    name = "Penthouse Suite - Tower Bridge View"

    assert slugify_listing_name(name) == slugify_listing_name(name)


@pytest.mark.unit
def test_private_review_absent_is_explicit_null():
    review = normalize(raw_review())

    assert review.private_review is None
    assert '"privateReview":null' in review.model_dump_json(by_alias=True)


@pytest.mark.unit
def test_empty_private_review_is_null():
    review = normalize(raw_review(privateReview=""))

    assert review.private_review is None


@pytest.mark.unit
def test_missing_public_review_becomes_empty_string():
    record = raw_review()
    del record["publicReview"]

    review = normalize(record)

    assert review.public_review == ""


@pytest.mark.unit
def test_channel_defaults_to_hostaway():
    assert normalize(raw_review()).channel == "hostaway"
    assert normalize(raw_review(channel="airbnb")).channel == "airbnb"


@pytest.mark.unit
def test_iso_timestamp_accepted():
    review = normalize(raw_review(submittedAt="2024-09-15T14:30:22Z"))

    assert review.submitted_at == datetime(2024, 9, 15, 14, 30, 22, tzinfo=timezone.utc)


@pytest.mark.unit
def test_normalize_is_pure():
    """Same input gives equal output and byte-identical JSON."""
    record = raw_review(privateReview="Left the place very clean.")
    snapshot = dict(record)

    first = normalize(record)
    second = normalize(record)

    assert first == second
    assert first.model_dump_json() == second.model_dump_json()
    assert record == snapshot


@pytest.mark.unit
def test_normalize_accepts_validated_record():
    validated = RawHostawayReview.model_validate(raw_review())

    assert normalize(validated) == normalize(raw_review())


@pytest.mark.unit
@pytest.mark.parametrize(
    "overrides",
    [
        {"type": "guest-to-guest"},
        {"status": "archived"},
        {"rating": 11},
        {"reviewCategory": [{"category": "cleanliness", "rating": -1}]},
        {"submittedAt": "yesterday"},
        {"id": 2**70},
        {"id": -1},
    ],
)
def test_malformed_records_rejected(overrides):
    with pytest.raises(ValidationError):
        normalize(raw_review(**overrides))


@pytest.mark.unit
def test_missing_required_field_rejected():
    record = raw_review()
    del record["guestName"]

    with pytest.raises(ValidationError):
        normalize(record)


@pytest.mark.unit
def test_unknown_keys_ignored():
    review = normalize(raw_review(departureDate="2020-08-25", displayOnWebsite=True))

    assert review.hostaway_id == 7453


@pytest.mark.unit
def test_normalize_many():
    reviews = normalize_many([raw_review(id=1), raw_review(id=2)])

    assert [r.hostaway_id for r in reviews] == [1, 2]
