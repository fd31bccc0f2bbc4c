from utils.cache import AvailabilityCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_get_set_and_expiry():
    clock = FakeClock()
    cache = AvailabilityCache(ttl_seconds=10, clock=clock)
    cache.set("tent", ("d1", "d3", 1), "result")

    assert cache.get("tent", ("d1", "d3", 1)) == "result"
    assert cache.get("tent", ("d1", "d3", 2)) is None
    assert cache.get("kayak", ("d1", "d3", 1)) is None

    clock.now = 10.5
    assert cache.get("tent", ("d1", "d3", 1)) is None
    assert len(cache) == 0


def test_invalidate_drops_only_that_listing():
    cache = AvailabilityCache()
    cache.set("tent", "a", 1)
    cache.set("tent", "b", 2)
    cache.set("kayak", "a", 3)

    assert cache.invalidate("tent") == 2
    assert cache.invalidate("tent") == 0
    assert cache.get("kayak", "a") == 3
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_zero_ttl_disables_cache():
    cache = AvailabilityCache(ttl_seconds=0)
    cache.set("tent", "a", 1)
    assert cache.get("tent", "a") is None
    assert len(cache) == 0
