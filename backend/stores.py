"""
Boundaries to the Course Data Store and the Plan Persistence Store.

The planner only talks to these interfaces. Failures of the backing storage
surface as UpstreamUnavailable and are never retried here.
"""

import json
import os
import re
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from cache import course_key, department_key, level_key
from errors import CACHE_MISS, UpstreamUnavailable, ValidationError

_STUDENT_ID_RE = re.compile(r"[A-Za-z0-9_-]+")


class CourseDataStore(ABC):
    @abstractmethod
    def get_course(self, course_id: str):
        """Course or None when not found."""

    @abstractmethod
    def list_by_department(self, department: str) -> list:
        ...

    @abstractmethod
    def list_by_level(self, level: int) -> list:
        ...

    @abstractmethod
    def snapshot(self) -> dict:
        """Full catalog as {id: Course}."""


class PlanStore(ABC):
    @abstractmethod
    def save_plan(self, student_id: str, plan) -> dict:
        """Persist a finalized plan; returns an acknowledgement payload."""


class CatalogStore(CourseDataStore):
    """Read-only store over an in-memory catalog produced by data_loader."""

    def __init__(self, catalog: dict):
        self._catalog = dict(catalog)

    def get_course(self, course_id: str):
        return self._catalog.get(course_id)

    def list_by_department(self, department: str) -> list:
        dept = str(department or "").strip().upper()
        return [self._catalog[c] for c in sorted(self._catalog) if self._catalog[c].department.upper() == dept]

    def list_by_level(self, level: int) -> list:
        return [self._catalog[c] for c in sorted(self._catalog) if self._catalog[c].level == int(level)]

    def snapshot(self) -> dict:
        return dict(self._catalog)


class CachedCourseStore(CourseDataStore):
    """Fronts another store with the object tier of a CacheService."""

    def __init__(self, inner: CourseDataStore, cache):
        self._inner = inner
        self._cache = cache

    def _cached(self, key: str, loader):
        value = self._cache.get(key)
        if value is not CACHE_MISS:
            return value
        value = loader()
        self._cache.set(key, value)
        return value

    def get_course(self, course_id: str):
        value = self._cached(course_key(course_id), lambda: self._inner.get_course(course_id))
        return value

    def list_by_department(self, department: str) -> list:
        return list(self._cached(
            department_key(department),
            lambda: tuple(self._inner.list_by_department(department)),
        ))

    def list_by_level(self, level: int) -> list:
        return list(self._cached(level_key(level), lambda: tuple(self._inner.list_by_level(level))))

    def snapshot(self) -> dict:
        return self._inner.snapshot()


class JsonPlanStore(PlanStore):
    """One JSON file per student under `directory`. Writes are atomic per file."""

    def __init__(self, directory: str):
        self.directory = directory
        self._lock = threading.Lock()

    def _path(self, student_id: str) -> str:
        """Ids map to file names one to one, so anything unusual is refused."""
        sid = str(student_id)
        if not _STUDENT_ID_RE.fullmatch(sid):
            raise ValidationError(
                "student_id may only contain letters, digits, '-' or '_'.",
                field="student_id",
            )
        return os.path.join(self.directory, f"{sid}.json")

    def save_plan(self, student_id: str, plan) -> dict:
        path = self._path(student_id)
        payload = {
            "student_id": student_id,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "plan": plan.to_dict(),
        }
        tmp_path = f"{path}.tmp"
        with self._lock:
            try:
                os.makedirs(self.directory, exist_ok=True)
                with open(tmp_path, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh, indent=2, sort_keys=True)
                os.replace(tmp_path, path)
            except OSError as exc:
                raise UpstreamUnavailable(f"Plan store write failed for {student_id}: {exc}") from exc
            finally:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
        return {"saved": True, "student_id": student_id, "path": path, "saved_at": payload["saved_at"]}
