"""
Two-policy cache: lazy TTL expiry plus LRU eviction.

Keys are normalized (case-folded, whitespace-collapsed) before every lookup.
Values are opaque; the cache never inspects them. A single lock guards all
reads, writes and evictions, so a concurrent eviction cannot race a read.
"""

import fnmatch
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass

from config import OBJECT_CACHE_SIZE, OBJECT_CACHE_TTL_S, RESPONSE_CACHE_SIZE, RESPONSE_CACHE_TTL_S
from errors import CACHE_MISS, ValidationError
from normalizer import normalize_cache_key
from update_bus import COURSE_TOPIC, PLAN_TOPIC, SEMESTER_TOPIC


@dataclass
class CacheEntry:
    key: str
    value: object
    inserted_at: float
    ttl: float
    last_accessed: float

    def expired(self, now: float) -> bool:
        return now - self.inserted_at > self.ttl


class TtlLruCache:
    """
    Thread-safe bounded cache. ``get`` returns ``CACHE_MISS`` for absent or
    expired entries; expired entries are dropped on that read.

    `clock` returns seconds and defaults to ``time.monotonic``; tests pass a
    simulated clock.
    """

    def __init__(self, max_size: int, default_ttl: float, clock=time.monotonic):
        if int(max_size) < 1:
            raise ValidationError("Cache max_size must be at least 1.", field="max_size")
        if default_ttl <= 0:
            raise ValidationError("Cache TTL must be positive.", field="ttl")
        self.max_size = int(max_size)
        self.default_ttl = float(default_ttl)
        self._clock = clock
        self._lock = threading.Lock()
        # Ordered by last access, oldest first.
        self._items: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key):
        norm = normalize_cache_key(key)
        with self._lock:
            entry = self._items.get(norm)
            if entry is None:
                self._misses += 1
                return CACHE_MISS
            now = self._clock()
            if entry.expired(now):
                del self._items[norm]
                self._expirations += 1
                self._misses += 1
                return CACHE_MISS
            entry.last_accessed = now
            self._items.move_to_end(norm)
            self._hits += 1
            return entry.value

    def set(self, key, value, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else float(ttl)
        if ttl <= 0:
            raise ValidationError("Cache TTL must be positive.", field="ttl")
        norm = normalize_cache_key(key)
        with self._lock:
            now = self._clock()
            if norm in self._items:
                del self._items[norm]
            while len(self._items) >= self.max_size:
                self._items.popitem(last=False)
                self._evictions += 1
            self._items[norm] = CacheEntry(norm, value, now, ttl, now)

    def get_or_compute(self, key, factory, ttl: float | None = None):
        """Cached value, or factory() stored with write-through on a miss."""
        value = self.get(key)
        if value is CACHE_MISS:
            value = factory()
            self.set(key, value, ttl)
        return value

    def invalidate(self, key) -> bool:
        norm = normalize_cache_key(key)
        with self._lock:
            return self._items.pop(norm, None) is not None

    def invalidate_pattern(self, pattern: str) -> int:
        """Drop every key matching a shell-style pattern ('course:*'). Returns the count."""
        norm = normalize_cache_key(pattern)
        with self._lock:
            doomed = [k for k in self._items if fnmatch.fnmatchcase(k, norm)]
            for k in doomed:
                del self._items[k]
            return len(doomed)

    def clear(self) -> int:
        with self._lock:
            dropped = len(self._items)
            self._items.clear()
            return dropped

    def __contains__(self, key) -> bool:
        norm = normalize_cache_key(key)
        with self._lock:
            entry = self._items.get(norm)
            return entry is not None and not entry.expired(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._items),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "expirations": self._expirations,
            }


def course_key(course_id: str) -> str:
    return f"course:{course_id}"


def department_key(department: str) -> str:
    return f"dept:{department}"


def level_key(level: int) -> str:
    return f"level:{level}"


class CacheService:
    """
    Object tier (catalog lookups) and response tier (recommendation and plan
    payloads). Constructed once per process and handed to the components that
    need it.
    """

    def __init__(
        self,
        object_size: int = OBJECT_CACHE_SIZE,
        object_ttl: float = OBJECT_CACHE_TTL_S,
        response_size: int = RESPONSE_CACHE_SIZE,
        response_ttl: float = RESPONSE_CACHE_TTL_S,
        clock=time.monotonic,
    ):
        self.objects = TtlLruCache(object_size, object_ttl, clock=clock)
        self.responses = TtlLruCache(response_size, response_ttl, clock=clock)
        self._subscriptions = []

    def invalidate_all(self, pattern: str | None = None) -> dict:
        """Sync-job hook. No pattern clears both tiers."""
        if pattern is None or not str(pattern).strip():
            return {"objects": self.objects.clear(), "responses": self.responses.clear()}
        return {
            "objects": self.objects.invalidate_pattern(pattern),
            "responses": self.responses.invalidate_pattern(pattern),
        }

    def on_course_updated(self, event) -> None:
        if event.action == "reload" or not event.course_id:
            self.invalidate_all()
            return
        self.objects.invalidate(course_key(event.course_id))
        if event.department:
            self.objects.invalidate(department_key(event.department))
        else:
            self.objects.invalidate_pattern("dept:*")
        self.objects.invalidate_pattern("level:*")
        self.responses.clear()

    def on_plan_updated(self, event) -> None:
        self.responses.invalidate_pattern("plan:*")

    def on_semester_updated(self, event) -> None:
        self.responses.clear()

    def attach(self, bus) -> None:
        """Subscribe the invalidation handlers to `bus`."""
        self._subscriptions.extend([
            bus.subscribe(COURSE_TOPIC, self.on_course_updated),
            bus.subscribe(PLAN_TOPIC, self.on_plan_updated),
            bus.subscribe(SEMESTER_TOPIC, self.on_semester_updated),
        ])

    def detach(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions.clear()

    def stats(self) -> dict:
        return {"objects": self.objects.stats(), "responses": self.responses.stats()}
