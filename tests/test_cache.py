import threading

import pytest

from cache import CacheService, TtlLruCache, course_key, department_key
from errors import CACHE_MISS, ValidationError
from update_bus import COURSE_TOPIC, PLAN_TOPIC, CourseUpdated, PlanUpdated, UpdateBus


class FakeClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestTtl:
    def test_hit_before_expiry(self, clock):
        cache = TtlLruCache(max_size=4, default_ttl=0.1, clock=clock)
        cache.set("k", "v")
        assert cache.get("k") == "v"

    def test_miss_after_expiry(self, clock):
        cache = TtlLruCache(max_size=4, default_ttl=0.1, clock=clock)
        cache.set("k", "v")
        clock.advance(0.15)
        assert cache.get("k") is CACHE_MISS
        assert len(cache) == 0
        assert cache.stats()["expirations"] == 1

    def test_reads_do_not_extend_ttl(self, clock):
        cache = TtlLruCache(max_size=4, default_ttl=1.0, clock=clock)
        cache.set("k", "v")
        clock.advance(0.8)
        assert cache.get("k") == "v"
        clock.advance(0.3)
        assert cache.get("k") is CACHE_MISS

    def test_per_entry_ttl(self, clock):
        cache = TtlLruCache(max_size=4, default_ttl=1.0, clock=clock)
        cache.set("short", 1, ttl=0.5)
        cache.set("long", 2)
        clock.advance(0.7)
        assert cache.get("short") is CACHE_MISS
        assert cache.get("long") == 2

    def test_contains_respects_expiry(self, clock):
        cache = TtlLruCache(max_size=4, default_ttl=0.1, clock=clock)
        cache.set("k", "v")
        assert "k" in cache
        clock.advance(0.2)
        assert "k" not in cache

    def test_falsy_values_are_hits(self, clock):
        cache = TtlLruCache(max_size=4, default_ttl=1.0, clock=clock)
        cache.set("empty", [])
        assert cache.get("empty") == []
        assert cache.get("empty") is not CACHE_MISS


class TestLru:
    def test_evicts_least_recently_used(self, clock):
        cache = TtlLruCache(max_size=3, default_ttl=60, clock=clock)
        for key in ("a", "b", "c"):
            cache.set(key, key.upper())
        cache.get("a")
        cache.set("d", "D")
        assert cache.get("b") is CACHE_MISS
        assert [cache.get(k) for k in ("a", "c", "d")] == ["A", "C", "D"]
        assert cache.stats()["evictions"] == 1

    def test_overwrite_does_not_evict(self, clock):
        cache = TtlLruCache(max_size=2, default_ttl=60, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 3)
        assert len(cache) == 2
        assert cache.get("a") == 3
        assert cache.get("b") == 2

    def test_never_exceeds_max_size(self, clock):
        cache = TtlLruCache(max_size=5, default_ttl=60, clock=clock)
        for n in range(20):
            cache.set(f"k{n}", n)
            assert len(cache) <= 5


class TestKeysAndInvalidation:
    def test_keys_are_normalized(self, clock):
        cache = TtlLruCache(max_size=4, default_ttl=60, clock=clock)
        cache.set("Course:  MATH 101", "math")
        assert cache.get("course: math 101") == "math"

    def test_invalidate_single_key(self, clock):
        cache = TtlLruCache(max_size=4, default_ttl=60, clock=clock)
        cache.set("k", 1)
        assert cache.invalidate("k") is True
        assert cache.invalidate("k") is False

    def test_invalidate_pattern(self, clock):
        cache = TtlLruCache(max_size=8, default_ttl=60, clock=clock)
        cache.set(course_key("MATH 101"), 1)
        cache.set(course_key("CS 110"), 2)
        cache.set(department_key("MATH"), 3)
        assert cache.invalidate_pattern("course:*") == 2
        assert cache.get(department_key("MATH")) == 3

    def test_get_or_compute_writes_through(self, clock):
        cache = TtlLruCache(max_size=4, default_ttl=60, clock=clock)
        calls = []

        def factory():
            calls.append(1)
            return "computed"

        assert cache.get_or_compute("k", factory) == "computed"
        assert cache.get_or_compute("k", factory) == "computed"
        assert len(calls) == 1

    def test_stats_count_hits_and_misses(self, clock):
        cache = TtlLruCache(max_size=4, default_ttl=60, clock=clock)
        cache.set("k", 1)
        cache.get("k")
        cache.get("missing")
        stats = cache.stats()
        assert (stats["hits"], stats["misses"], stats["size"]) == (1, 1, 1)

    @pytest.mark.parametrize("size, ttl", [(0, 1.0), (4, 0), (4, -1)])
    def test_bad_configuration(self, size, ttl):
        with pytest.raises(ValidationError):
            TtlLruCache(max_size=size, default_ttl=ttl)


def test_concurrent_writers_stay_bounded():
    cache = TtlLruCache(max_size=16, default_ttl=60)

    def writer(offset):
        for n in range(200):
            cache.set(f"{offset}:{n}", n)
            cache.get(f"{offset}:{n // 2}")

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(cache) <= 16


class TestCacheService:
    @pytest.fixture
    def service(self, clock):
        service = CacheService(object_size=8, object_ttl=60, response_size=8, response_ttl=60, clock=clock)
        service.objects.set(course_key("MATH 101"), "math")
        service.objects.set(course_key("CS 110"), "cs")
        service.objects.set(department_key("MATH"), ["MATH 101"])
        service.responses.set("plan:abc", {"plan": 1})
        service.responses.set("recommend:abc", {"rec": 1})
        return service

    def test_course_update_drops_course_and_responses(self, service):
        service.on_course_updated(CourseUpdated("updated", course_id="MATH 101", department="MATH"))
        assert service.objects.get(course_key("MATH 101")) is CACHE_MISS
        assert service.objects.get(department_key("MATH")) is CACHE_MISS
        assert service.objects.get(course_key("CS 110")) == "cs"
        assert len(service.responses) == 0

    def test_reload_clears_everything(self, service):
        service.on_course_updated(CourseUpdated("reload"))
        assert len(service.objects) == 0
        assert len(service.responses) == 0

    def test_plan_update_drops_plan_responses_only(self, service):
        service.on_plan_updated(PlanUpdated("saved", student_id="s1"))
        assert service.responses.get("plan:abc") is CACHE_MISS
        assert service.responses.get("recommend:abc") == {"rec": 1}

    def test_invalidate_all_with_pattern(self, service):
        counts = service.invalidate_all("course:*")
        assert counts == {"objects": 2, "responses": 0}

    def test_attached_to_bus(self, service):
        bus = UpdateBus()
        service.attach(bus)
        bus.publish(COURSE_TOPIC, CourseUpdated("reload"))
        assert len(service.objects) == 0
        service.detach()
        assert bus.subscriber_count(PLAN_TOPIC) == 0
