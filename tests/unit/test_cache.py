"""
Unit tests for the read-through cache.
"""
import pytest

from reviewhub.lib.cache import (
    CacheBackend,
    CacheService,
    InMemoryCacheBackend,
    build_cache_key,
)
from reviewhub.lib.metrics import get_metrics_collector


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class BrokenBackend(CacheBackend):
    """Backend whose every operation fails."""

    def get(self, key):
        raise ConnectionError("cache down")

    def set(self, key, value, ttl_seconds):
        raise ConnectionError("cache down")

    def delete(self, key):
        raise ConnectionError("cache down")

    def clear(self):
        raise ConnectionError("cache down")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return CacheService(InMemoryCacheBackend(clock=clock), default_ttl=300)


@pytest.mark.unit
def test_set_and_get(service):
    service.set("reviews:statistics", {"totalReviews": 3})

    assert service.get("reviews:statistics") == {"totalReviews": 3}


@pytest.mark.unit
def test_entries_expire_after_ttl(service, clock):
    """Entries are served until their TTL elapses."""
    service.set("analytics:summary:{}", {"x": 1}, ttl=60)

    clock.advance(59)
    assert service.get("analytics:summary:{}") == {"x": 1}

    clock.advance(1)
    assert service.get("analytics:summary:{}") is None


@pytest.mark.unit
def test_default_ttl_used(service, clock):
    service.set("reviews:statistics", [1, 2])

    clock.advance(299)
    assert service.get("reviews:statistics") == [1, 2]
    clock.advance(1)
    assert service.get("reviews:statistics") is None


@pytest.mark.unit
def test_values_are_detached_copies(service):
    service.set("k:v", {"items": [1]})

    first = service.get("k:v")
    first["items"].append(2)

    assert service.get("k:v") == {"items": [1]}


@pytest.mark.unit
def test_get_or_set_computes_once(service):
    calls = []

    def compute():
        calls.append(1)
        return {"value": len(calls)}

    assert service.get_or_set("analytics:x:{}", compute) == {"value": 1}
    assert service.get_or_set("analytics:x:{}", compute) == {"value": 1}
    assert len(calls) == 1


@pytest.mark.unit
def test_get_or_set_returns_json_shape_on_miss(service):
    """A miss hands back the same shape a later hit would."""
    value = service.get_or_set("k:tuple", lambda: {"pair": (1, 2)})

    assert value == {"pair": [1, 2]}
    assert service.get("k:tuple") == value


@pytest.mark.unit
def test_invalidate_single_key(service):
    service.set("reviews:statistics", 1)
    service.invalidate("reviews:statistics")

    assert service.get("reviews:statistics") is None


@pytest.mark.unit
def test_invalidate_prefix_drops_registered_keys(service):
    """Keys written under a prefix are dropped together."""
    a = build_cache_key("reviews:approved", "public", {"listingId": "a"})
    b = build_cache_key("reviews:approved", "public", {"listingId": "b"})
    service.set(a, [1], prefix="reviews:approved")
    service.set(b, [2], prefix="reviews:approved")
    service.set("reviews:statistics", {"n": 1})

    assert service.registered_keys("reviews:approved") == {a, b}
    assert service.invalidate_prefix("reviews:approved") == 2

    assert service.get(a) is None
    assert service.get(b) is None
    assert service.get("reviews:statistics") == {"n": 1}
    assert service.registered_keys("reviews:approved") == set()


@pytest.mark.unit
def test_expired_keys_leave_the_registry(service, clock):
    keys = [build_cache_key("reviews:approved", "public", {"listingId": str(i)}) for i in range(100)]
    for key in keys:
        service.set(key, [], ttl=60, prefix="reviews:approved")

    clock.advance(10_000)
    for key in keys:
        assert service.get(key) is None

    assert service.registered_keys("reviews:approved") == set()
    assert service.invalidate_prefix("reviews:approved") == 0


@pytest.mark.unit
def test_invalidate_unknown_prefix(service):
    assert service.invalidate_prefix("nothing") == 0


@pytest.mark.unit
def test_clear(service):
    service.set("a:b", 1, prefix="a")
    service.clear()

    assert service.get("a:b") is None
    assert service.registered_keys("a") == set()


@pytest.mark.unit
def test_lookups_recorded_in_metrics(service):
    metrics = get_metrics_collector()

    service.get("analytics:summary:{}")
    service.set("analytics:summary:{}", 1)
    service.get("analytics:summary:{}")

    assert metrics.get_counter_value(
        "cache_requests_total", {"namespace": "analytics", "result": "miss"}
    ) == 1
    assert metrics.get_counter_value(
        "cache_requests_total", {"namespace": "analytics", "result": "hit"}
    ) == 1


@pytest.mark.unit
def test_failing_backend_degrades_to_miss():
    """Backend errors never propagate to the caller."""
    service = CacheService(BrokenBackend())

    assert service.get("reviews:statistics") is None
    service.set("reviews:statistics", 1, prefix="reviews")
    service.invalidate("reviews:statistics")
    service.clear()

    assert service.get_or_set("reviews:statistics", lambda: {"n": 2}) == {"n": 2}
    assert get_metrics_collector().get_counter_value(
        "cache_requests_total", {"namespace": "reviews", "result": "error"}
    ) == 2


@pytest.mark.unit
def test_build_cache_key_is_order_independent():
    first = build_cache_key("analytics", "summary", {"days": 7, "channel": "airbnb"})
    second = build_cache_key("analytics", "summary", {"channel": "airbnb", "days": 7})

    assert first == second
    assert first == 'analytics:summary:{"channel": "airbnb", "days": 7}'


@pytest.mark.unit
def test_build_cache_key_drops_none():
    assert build_cache_key("analytics", "trends", {"days": None}) == "analytics:trends:{}"
    assert build_cache_key("analytics", "trends") == "analytics:trends:{}"


class CorruptBackend(InMemoryCacheBackend):
    """Backend that hands back payloads that are not JSON."""

    def get(self, key):
        return "{not json"


@pytest.mark.unit
def test_corrupt_payload_is_a_miss():
    service = CacheService(CorruptBackend())

    assert service.get("reviews:statistics") is None
    assert service.get_or_set("reviews:statistics", lambda: {"n": 1}) == {"n": 1}
    assert get_metrics_collector().get_counter_value(
        "cache_requests_total", {"namespace": "reviews", "result": "error"}
    ) == 2
