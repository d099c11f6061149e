"""
Planner error taxonomy.

Every error carries a stable ``code`` used in HTTP payloads and in the
``unplaced`` list of a generated plan. ``PrerequisiteUnmetError`` and
``ScheduleConflictError`` are recovered per course by the optimizer;
``PrerequisiteGraphError`` aborts a run; ``UpstreamUnavailable`` passes
through unchanged.
"""


class PlannerError(Exception):
    code = "planner_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(PlannerError):
    """Malformed input: negative credits, missing course code, bad option."""

    code = "validation_error"

    def __init__(self, message: str, course_id: str | None = None, field: str | None = None):
        super().__init__(message)
        self.course_id = course_id
        self.field = field

    def to_dict(self) -> dict:
        out = super().to_dict()
        if self.course_id:
            out["course_id"] = self.course_id
        if self.field:
            out["field"] = self.field
        return out


class PrerequisiteGraphError(PlannerError):
    """The catalog's prerequisite graph contains a cycle or a dangling reference."""

    code = "prerequisite_graph_error"

    def __init__(self, cycles: list | None = None, dangling: dict | None = None):
        self.cycles = [list(c) for c in (cycles or [])]
        self.dangling = {k: list(v) for k, v in (dangling or {}).items()}
        parts = []
        for cycle in self.cycles:
            parts.append("cycle " + " -> ".join(cycle))
        for course_id, missing in sorted(self.dangling.items()):
            parts.append(f"{course_id} references unknown {', '.join(missing)}")
        super().__init__("Catalog prerequisite graph is corrupt: " + "; ".join(parts))

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["cycles"] = self.cycles
        out["dangling"] = self.dangling
        return out


class PrerequisiteUnmetError(PlannerError):
    code = "prerequisite_unmet"

    def __init__(self, course_id: str, missing: list[str], pending: list[str] | None = None):
        self.course_id = course_id
        self.missing = list(missing)
        self.pending = list(pending or [])
        if self.missing:
            message = f"{course_id} is missing prerequisite(s): {', '.join(self.missing)}."
        elif self.pending:
            message = f"{course_id} waits on in-progress prerequisite(s): {', '.join(self.pending)}."
        else:
            message = f"{course_id} prerequisites are not satisfied."
        super().__init__(message)

    def to_dict(self) -> dict:
        out = super().to_dict()
        out.update({"course_id": self.course_id, "missing": self.missing, "pending": self.pending})
        return out


class ScheduleConflictError(PlannerError):
    code = "schedule_conflict"

    def __init__(self, course_id: str, conflicts: list, term_label: str | None = None):
        self.course_id = course_id
        self.conflicts = list(conflicts)
        self.term_label = term_label
        others = sorted({c.other_id(course_id) for c in self.conflicts})
        where = f" in {term_label}" if term_label else ""
        super().__init__(f"{course_id} conflicts with {', '.join(others)}{where}.")

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["course_id"] = self.course_id
        out["term"] = self.term_label
        out["conflicts"] = [c.to_dict() for c in self.conflicts]
        return out


class PlanHorizonError(PlannerError):
    """No term with room (offering, credits) was found before the plan horizon."""

    code = "plan_horizon_exceeded"

    def __init__(self, course_id: str, message: str | None = None):
        self.course_id = course_id
        super().__init__(message or f"{course_id} could not be placed before the plan horizon.")

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["course_id"] = self.course_id
        return out


class UpstreamUnavailable(PlannerError):
    """The Course Data Store or Plan Persistence Store failed."""

    code = "upstream_unavailable"


class PublishError(PlannerError):
    """One or more update-bus handlers raised; every handler still ran."""

    code = "publish_error"

    def __init__(self, topic: str, failures: list[tuple[object, BaseException]]):
        self.topic = topic
        self.failures = list(failures)
        details = "; ".join(f"{type(exc).__name__}: {exc}" for _, exc in self.failures)
        super().__init__(f"{len(self.failures)} handler(s) failed for topic '{topic}': {details}")


class CacheMiss:
    """Sentinel returned by cache reads that find nothing usable. Not an error."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "CACHE_MISS"


CACHE_MISS = CacheMiss()
