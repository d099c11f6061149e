import os
from dataclasses import dataclass, field

from errors import ValidationError
from normalizer import normalize_course_id


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


# ── Credit load per term ───────────────────────────────────────────────────────
MIN_CREDITS_PER_TERM = _env_int("PLANNER_MIN_CREDITS", 12)
TARGET_CREDITS_PER_TERM = _env_int("PLANNER_TARGET_CREDITS", 15)
MAX_CREDITS_PER_TERM = _env_int("PLANNER_MAX_CREDITS", 18)
# Never exceeded; MAX_CREDITS_PER_TERM only produces a warning.
HARD_CREDIT_CEILING = _env_int("PLANNER_HARD_CEILING", 18)
DEFAULT_MAX_YEARS = _env_int("PLANNER_MAX_YEARS", 4)
DEFAULT_START_TERM = os.environ.get("PLANNER_START_TERM", "Fall 2026")

# ── Recommendation weights ─────────────────────────────────────────────────────
# Base weights used when no strategy flag is set. Scores are normalized by the
# sum of active weights, so only the ratios matter.
GRADE_WEIGHT = _env_float("PLANNER_GRADE_WEIGHT", 0.25)
WORKLOAD_WEIGHT = _env_float("PLANNER_WORKLOAD_WEIGHT", 0.25)
REQUIREMENT_WEIGHT = _env_float("PLANNER_REQUIREMENT_WEIGHT", 0.5)
# prioritizeGrades raises the grade weight above the other two combined.
GRADE_PRIORITY_WEIGHT = _env_float("PLANNER_GRADE_PRIORITY_WEIGHT", 1.0)
WORKLOAD_PRIORITY_WEIGHT = _env_float("PLANNER_WORKLOAD_PRIORITY_WEIGHT", 0.75)
# Requirement factor for a course that fills no outstanding category.
REQUIREMENT_FLOOR = min(1.0, _env_float("PLANNER_REQUIREMENT_FLOOR", 0.25))

MAX_RESULTS_LIMIT = 50

# ── Cache tiers ────────────────────────────────────────────────────────────────
OBJECT_CACHE_SIZE = _env_int("OBJECT_CACHE_SIZE", 512)
OBJECT_CACHE_TTL_S = _env_float("OBJECT_CACHE_TTL_S", 300.0, minimum=0.001)
RESPONSE_CACHE_SIZE = _env_int("RESPONSE_CACHE_SIZE", 128)

# Requests slower than this are logged with a [SLOW] line.
SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0)
RESPONSE_CACHE_TTL_S = _env_float("RESPONSE_CACHE_TTL_S", 600.0, minimum=0.001)

# ── Grades ─────────────────────────────────────────────────────────────────────
# Letter grades that count a completed course as satisfied. Plus/minus
# suffixes are stripped before lookup.
PASSING_GRADES = {"A", "B", "C", "D", "P", "CR", "S"}
FAILING_GRADES = {"F", "NP", "NC", "W", "I", "U"}

STRATEGY_FLAGS = {
    "grades": {"prioritize_grades": True, "balance_workload": False, "include_requirements": True},
    "workload": {"prioritize_grades": False, "balance_workload": True, "include_requirements": True},
    "requirements": {"prioritize_grades": False, "balance_workload": False, "include_requirements": True},
}

_TRUTHY = {"true", "1", "yes", "y", "on"}
_FALSY = {"false", "0", "no", "n", "off", ""}


def _coerce_bool(value, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    raise ValidationError(f"'{name}' must be a boolean.", field=name)


def _coerce_int(value, name: str, minimum: int, maximum: int) -> int:
    try:
        if isinstance(value, bool):
            raise ValueError
        number = int(value)
        if not (minimum <= number <= maximum):
            raise ValueError
    except (TypeError, ValueError):
        raise ValidationError(
            f"'{name}' must be an integer between {minimum} and {maximum}.",
            field=name,
        ) from None
    return number


def _pick(payload: dict, *names):
    for name in names:
        if name in payload and payload[name] not in (None, ""):
            return payload[name]
    return None


@dataclass(frozen=True)
class PlannerOptions:
    """Strategy flags shared by the recommendation and plan surfaces."""

    prioritize_grades: bool = False
    balance_workload: bool = False
    include_requirements: bool = True
    max_results: int | None = None

    def weights(self) -> dict[str, float]:
        return {
            "grade": GRADE_PRIORITY_WEIGHT if self.prioritize_grades else GRADE_WEIGHT,
            "workload": WORKLOAD_PRIORITY_WEIGHT if self.balance_workload else WORKLOAD_WEIGHT,
            "requirement": REQUIREMENT_WEIGHT if self.include_requirements else 0.0,
        }

    def to_dict(self) -> dict:
        return {
            "prioritizeGrades": self.prioritize_grades,
            "balanceWorkload": self.balance_workload,
            "includeRequirements": self.include_requirements,
            "maxResults": self.max_results,
        }

    @classmethod
    def from_payload(cls, payload: dict | None) -> "PlannerOptions":
        """Accepts camelCase (UI) and snake_case keys plus a ``strategy`` shorthand."""
        payload = payload or {}
        flags = {"prioritize_grades": False, "balance_workload": False, "include_requirements": True}

        strategy = _pick(payload, "strategy", "planningStrategy")
        if strategy is not None:
            key = str(strategy).strip().lower()
            key = {"gpa": "grades", "balance": "requirements"}.get(key, key)
            if key not in STRATEGY_FLAGS:
                raise ValidationError(
                    f"Unknown strategy '{strategy}'. Use one of: {', '.join(sorted(STRATEGY_FLAGS))}.",
                    field="strategy",
                )
            flags.update(STRATEGY_FLAGS[key])

        for attr, names in (
            ("prioritize_grades", ("prioritizeGrades", "prioritize_grades")),
            ("balance_workload", ("balanceWorkload", "balance_workload")),
            ("include_requirements", ("includeRequirements", "include_requirements")),
        ):
            raw = _pick(payload, *names)
            if raw is not None:
                flags[attr] = _coerce_bool(raw, names[0])

        max_results = None
        raw_max = _pick(payload, "maxResults", "max_results")
        if raw_max is not None:
            max_results = _coerce_int(raw_max, "maxResults", 1, MAX_RESULTS_LIMIT)
        return cls(max_results=max_results, **flags)


@dataclass(frozen=True)
class PlanConfig:
    """Horizon, credit bounds and target courses for one optimization run."""

    start_term: str = DEFAULT_START_TERM
    max_years: int = DEFAULT_MAX_YEARS
    include_summer: bool = False
    min_credits: int = MIN_CREDITS_PER_TERM
    target_credits: int = TARGET_CREDITS_PER_TERM
    max_credits: int = MAX_CREDITS_PER_TERM
    hard_ceiling: int = HARD_CREDIT_CEILING
    required_courses: tuple[str, ...] = ()
    elective_courses: tuple[str, ...] = ()
    options: PlannerOptions = field(default_factory=PlannerOptions)

    def __post_init__(self):
        if self.max_years < 1:
            raise ValidationError("max_years must be at least 1.", field="max_years")
        if not (0 < self.min_credits <= self.target_credits <= self.max_credits):
            raise ValidationError(
                "Credit bounds must satisfy 0 < min <= target <= max.",
                field="credits",
            )
        if self.hard_ceiling < self.target_credits:
            raise ValidationError("hard_ceiling cannot be below target_credits.", field="hard_ceiling")

    @classmethod
    def from_payload(cls, payload: dict | None) -> "PlanConfig":
        # Imported here: models depends on config for grade constants.
        from models import parse_term_label

        payload = payload or {}
        kwargs = {"options": PlannerOptions.from_payload(payload)}

        start = _pick(payload, "start_semester", "startTerm", "start_term")
        if start is not None:
            season, year = parse_term_label(str(start))
            kwargs["start_term"] = f"{season} {year}"

        raw_years = _pick(payload, "max_years", "maxYears")
        if raw_years is not None:
            kwargs["max_years"] = _coerce_int(raw_years, "max_years", 1, 8)

        raw_summer = _pick(payload, "include_summer", "includeSummer")
        if raw_summer is not None:
            kwargs["include_summer"] = _coerce_bool(raw_summer, "include_summer")

        for attr, names in (
            ("min_credits", ("min_credits", "minCredits")),
            ("target_credits", ("target_credits", "targetCredits")),
            ("max_credits", ("max_credits", "maxCredits")),
            ("hard_ceiling", ("hard_ceiling", "hardCeiling")),
        ):
            raw = _pick(payload, *names)
            if raw is not None:
                kwargs[attr] = _coerce_int(raw, names[0], 1, 40)
        if "hard_ceiling" not in kwargs and "max_credits" in kwargs:
            kwargs["hard_ceiling"] = max(HARD_CREDIT_CEILING, kwargs["max_credits"])

        for attr, names in (
            ("required_courses", ("required_courses", "requiredCourses")),
            ("elective_courses", ("elective_courses", "electiveCourses")),
        ):
            raw = _pick(payload, *names)
            if raw is None:
                continue
            if isinstance(raw, str):
                raw = [t for t in raw.replace(";", ",").split(",")]
            if not isinstance(raw, list):
                raise ValidationError(f"'{names[0]}' must be a list of course ids.", field=names[0])
            ids = [normalize_course_id(item) for item in raw if str(item or "").strip()]
            kwargs[attr] = tuple(dict.fromkeys(ids))
        return cls(**kwargs)
