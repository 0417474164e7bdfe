"""Hostaway channel client.

Makes a single GET against the Hostaway reviews endpoint with a fixed
timeout. The public sandbox answers 403, so any failure or empty result
falls back to a known dataset: first the bundled fixture file, then a small
in-code dataset. The source of the data is always reported to the caller.
"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from reviewhub.lib.logging import get_logger
from reviewhub.lib.metrics import get_metrics_collector
from reviewhub.lib.settings import settings


logger = get_logger(__name__)


SOURCE_API = "api"
SOURCE_FIXTURE = "fixture"
SOURCE_BUILTIN = "builtin"


# Last-resort dataset when neither the API nor the fixture file is usable
BUILTIN_REVIEWS: List[Dict[str, Any]] = [
    {
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
    },
    {
        "id": 7454,
        "type": "guest-to-host",
        "status": "published",
        "rating": 9,
        "publicReview": "Amazing property in a great location. Would definitely stay again!",
        "reviewCategory": [
            {"category": "cleanliness", "rating": 9},
            {"category": "communication", "rating": 10},
            {"category": "location", "rating": 10},
            {"category": "value", "rating": 8},
        ],
        "submittedAt": "2024-09-15 14:30:22",
        "guestName": "Emma Thompson",
        "listingName": "Luxury Studio - Central London",
    },
    {
        "id": 7457,
        "type": "guest-to-host",
        "status": "published",
        "rating": 7,
        "publicReview": "Decent stay. Location was great but the apartment could use some updates.",
        "reviewCategory": [
            {"category": "cleanliness", "rating": 7},
            {"category": "communication", "rating": 8},
            {"category": "location", "rating": 9},
            {"category": "value", "rating": 6},
            {"category": "amenities", "rating": 6},
        ],
        "submittedAt": "2024-09-20 11:20:15",
        "guestName": "David Wilson",
        "listingName": "Studio Flat - Camden Town",
    },
    {
        "id": 7460,
        "type": "guest-to-host",
        "status": "published",
        "rating": 6,
        "publicReview": "Average stay. Street noise was an issue.",
        "reviewCategory": [
            {"category": "cleanliness", "rating": 7},
            {"category": "communication", "rating": 6},
            {"category": "location", "rating": 8},
            {"category": "value", "rating": 5},
            {"category": "amenities", "rating": 5},
        ],
        "submittedAt": "2024-09-12 10:00:00",
        "guestName": "Amanda Brown",
        "listingName": "Compact Studio - Kings Cross",
    },
    {
        "id": 7461,
        "type": "guest-to-host",
        "status": "published",
        "rating": 10,
        "publicReview": "This place is a gem! Can't wait to come back!",
        "reviewCategory": [
            {"category": "cleanliness", "rating": 10},
            {"category": "communication", "rating": 10},
            {"category": "location", "rating": 9},
            {"category": "value", "rating": 10},
            {"category": "amenities", "rating": 10},
        ],
        "submittedAt": "2024-10-02 18:20:45",
        "guestName": "Lisa Anderson",
        "listingName": "Designer Apartment - Soho",
    },
]


@dataclass
class ChannelFetch:
    """Raw records plus where they came from (api, fixture or builtin)."""
    records: List[Dict[str, Any]] = field(default_factory=list)
    source: str = SOURCE_API

    @property
    def is_fallback(self) -> bool:
        return self.source != SOURCE_API


class HostawayClient:
    """
    Thin client for the Hostaway reviews endpoint.

    Usage:
        client = HostawayClient()
        fetched = client.fetch_raw_reviews()
        if fetched.is_fallback:
            ...
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        account_id: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        mock_data_path: Optional[Path] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url or settings.hostaway_base_url
        self.account_id = account_id if account_id is not None else settings.hostaway_account_id
        self.api_key = api_key if api_key is not None else settings.hostaway_api_key
        self.timeout_seconds = timeout_seconds or settings.hostaway_timeout_seconds
        self.mock_data_path = Path(mock_data_path or settings.hostaway_mock_data_path)
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(self.timeout_seconds),
            transport=self._transport,
        )

    def fetch_raw_reviews(self) -> ChannelFetch:
        """
        Fetch raw review records, falling back when the API is unusable.

        Never raises for channel problems: HTTP errors, transport errors,
        malformed bodies and empty results all lead to fallback data.

        Returns:
            ChannelFetch with the records and their source
        """
        metrics = get_metrics_collector()
        logger.info("Fetching reviews from Hostaway API", extra={"base_url": self.base_url})

        try:
            with self._client() as client:
                response = client.get("/reviews", params={"accountId": self.account_id})
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 403:
                logger.warning("Hostaway API access restricted (403), using fallback data")
            else:
                logger.warning(
                    "Hostaway API returned an error, using fallback data",
                    extra={"status_code": e.response.status_code},
                )
            return self._fallback()
        except httpx.HTTPError as e:
            logger.warning(
                "Hostaway API request failed, using fallback data",
                extra={"error": str(e)},
            )
            return self._fallback()
        except ValueError as e:
            logger.warning(
                "Hostaway API returned a malformed body, using fallback data",
                extra={"error": str(e)},
            )
            return self._fallback()

        records = body.get("result") if isinstance(body, dict) else None
        if not isinstance(records, list) or not records:
            logger.warning("Hostaway API returned no reviews, using fallback data")
            return self._fallback()

        logger.info("Fetched reviews from Hostaway API", extra={"count": len(records)})
        metrics.increment_channel_fetch(SOURCE_API)
        return ChannelFetch(records=records, source=SOURCE_API)

    def _fallback(self) -> ChannelFetch:
        metrics = get_metrics_collector()
        records = self._load_fixture()
        if records:
            metrics.increment_channel_fetch(SOURCE_FIXTURE)
            return ChannelFetch(records=records, source=SOURCE_FIXTURE)

        logger.warning(
            "Using built-in fallback reviews",
            extra={"count": len(BUILTIN_REVIEWS)},
        )
        metrics.increment_channel_fetch(SOURCE_BUILTIN)
        # Copy so callers can't mutate the module-level dataset
        return ChannelFetch(records=json.loads(json.dumps(BUILTIN_REVIEWS)), source=SOURCE_BUILTIN)

    def _load_fixture(self) -> List[Dict[str, Any]]:
        if not self.mock_data_path.exists():
            logger.warning("Fixture file not found", extra={"path": str(self.mock_data_path)})
            return []

        try:
            with self.mock_data_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(
                "Failed to load fixture file",
                extra={"path": str(self.mock_data_path), "error": str(e)},
            )
            return []

        records = data.get("result") if isinstance(data, dict) else data
        if not isinstance(records, list):
            logger.error("Fixture file has no result list", extra={"path": str(self.mock_data_path)})
            return []

        logger.info("Loaded fixture reviews", extra={"count": len(records)})
        return records


def get_hostaway_client() -> HostawayClient:
    """Factory for dependency injection."""
    return HostawayClient()
