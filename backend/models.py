"""
Planner value types.

Catalog entities are frozen snapshots: the planner never mutates a Course,
TimeSlot or StudentHistory it was handed. Plans are assembled from local
working state and only frozen into a ``Plan`` once an optimization run ends.
"""

import re
from dataclasses import dataclass, field
from typing import Iterator

from config import FAILING_GRADES, PASSING_GRADES
from errors import PlannerError, ValidationError

SEM_RE = re.compile(r"^(Spring|Summer|Fall)\s+(\d{4})$", re.IGNORECASE)
SEASONS = ("Fall", "Spring", "Summer")
DAYS = ("MON", "TUE", "WED", "THU", "FRI")
_CLOCK_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
# Calendar order inside one year: Spring < Summer < Fall.
_SEASON_RANK = {"Spring": 0, "Summer": 1, "Fall": 2}


# ── Terms ──────────────────────────────────────────────────────────────────────

def parse_term_label(label: str) -> tuple[str, int]:
    """'fall 2026' -> ('Fall', 2026). Raises ValidationError on anything else."""
    m = SEM_RE.match(str(label or "").strip())
    if not m:
        raise ValidationError(
            f"'{label}' is not a valid semester (e.g. 'Fall 2026').",
            field="term",
        )
    return m.group(1).capitalize(), int(m.group(2))


def normalize_semester_label(label: str) -> str:
    season, year = parse_term_label(label)
    return f"{season} {year}"


def term_sort_key(label: str) -> tuple[int, int]:
    season, year = parse_term_label(label)
    return year, _SEASON_RANK[season]


def next_term(label: str, include_summer: bool = False) -> str:
    """
    Chronological successor:
    - Fall YYYY   -> Spring YYYY+1
    - Spring YYYY -> Summer YYYY (or Fall YYYY when summers are skipped)
    - Summer YYYY -> Fall YYYY
    """
    season, year = parse_term_label(label)
    if season == "Fall":
        return f"Spring {year + 1}"
    if season == "Spring":
        return f"Summer {year}" if include_summer else f"Fall {year}"
    return f"Fall {year}"


def iter_terms(start_label: str, max_years: int, include_summer: bool = False) -> Iterator[tuple[int, str]]:
    """
    Yields (year_index, term_label) from start_label for max_years academic
    years. An academic year begins in Fall; the start term is year 0.
    """
    label = normalize_semester_label(start_label)
    if not include_summer and label.startswith("Summer"):
        label = next_term(label, include_summer=False)
    year_index = 0
    first = True
    while True:
        if label.startswith("Fall") and not first:
            year_index += 1
        if year_index >= max_years:
            return
        yield year_index, label
        first = False
        label = next_term(label, include_summer=include_summer)


# ── Catalog entities ───────────────────────────────────────────────────────────

def parse_clock(text: str) -> int:
    """'09:30' -> 570 minutes after midnight."""
    m = _CLOCK_RE.match(str(text or "").strip())
    if not m:
        raise ValidationError(f"Invalid time format: {text!r} (expected HH:MM).", field="meetings")
    return int(m.group(1)) * 60 + int(m.group(2))


def _format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True, order=True)
class TimeSlot:
    """One weekly meeting, half-open: [start, end)."""

    day: str
    start_minutes: int
    end_minutes: int

    def __post_init__(self):
        if self.day not in DAYS:
            raise ValidationError(f"Unknown meeting day {self.day!r}.", field="meetings")
        if not (0 <= self.start_minutes < self.end_minutes <= 24 * 60):
            raise ValidationError(
                f"Meeting on {self.day} must start before it ends.",
                field="meetings",
            )

    @classmethod
    def from_strings(cls, day: str, start: str, end: str) -> "TimeSlot":
        return cls(str(day).strip().upper()[:3], parse_clock(start), parse_clock(end))

    def overlaps(self, other: "TimeSlot") -> bool:
        return (
            self.day == other.day
            and self.start_minutes < other.end_minutes
            and other.start_minutes < self.end_minutes
        )

    def label(self) -> str:
        return f"{self.day} {_format_clock(self.start_minutes)}-{_format_clock(self.end_minutes)}"

    def to_dict(self) -> dict:
        return {
            "day": self.day,
            "start": _format_clock(self.start_minutes),
            "end": _format_clock(self.end_minutes),
        }


@dataclass(frozen=True)
class Course:
    """
    Catalog snapshot of one course.

    ``prereqs`` is the parsed required expression (see prereq_parser);
    ``alternatives`` holds parsed alternative groups, any one of which
    satisfies the course on its own.
    """

    id: str
    code: str
    name: str = ""
    credits: int = 3
    department: str = ""
    level: int = 100
    prereqs: dict = field(default_factory=lambda: {"type": "none"}, compare=False)
    alternatives: tuple = field(default=(), compare=False)
    meetings: tuple[TimeSlot, ...] = ()
    grade_distribution: tuple[tuple[str, float], ...] = ()
    terms_offered: frozenset = frozenset(SEASONS)
    # Set when the catalog row had meeting text that could not be read.
    meeting_error: str = field(default="", compare=False)

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def grades(self) -> dict[str, float]:
        return dict(self.grade_distribution)

    def offered_in(self, season: str) -> bool:
        return season in self.terms_offered

    def summary(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "credits": self.credits,
            "department": self.department,
            "level": self.level,
        }

    def to_dict(self) -> dict:
        out = self.summary()
        out["terms_offered"] = [s for s in SEASONS if s in self.terms_offered]
        out["meetings"] = [slot.to_dict() for slot in self.meetings]
        out["grade_distribution"] = self.grades
        return out


def _grade_letter(grade) -> str:
    text = str(grade or "").strip().upper()
    if text in PASSING_GRADES or text in FAILING_GRADES:
        return text
    return text.rstrip("+-")


@dataclass(frozen=True)
class StudentHistory:
    """Completed courses (id -> earned grade, None when unknown) and in-progress ids."""

    completed: dict = field(default_factory=dict)
    in_progress: frozenset = frozenset()

    def completed_ids(self) -> set[str]:
        """Ids that satisfy prerequisites: passing grade or no grade recorded."""
        out = set()
        for course_id, grade in self.completed.items():
            if grade is None or str(grade).strip() == "":
                out.add(course_id)
                continue
            if _grade_letter(grade) not in FAILING_GRADES:
                out.add(course_id)
        return out

    def failed_ids(self) -> set[str]:
        return set(self.completed) - self.completed_ids()

    def in_progress_ids(self) -> set[str]:
        return set(self.in_progress)


# ── Optimizer output ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScheduleConflict:
    course_a: str
    course_b: str
    slot_a: TimeSlot
    slot_b: TimeSlot

    def involves(self, course_id: str) -> bool:
        return course_id in (self.course_a, self.course_b)

    def other_id(self, course_id: str) -> str:
        return self.course_b if course_id == self.course_a else self.course_a

    def to_dict(self) -> dict:
        return {
            "courses": [self.course_a, self.course_b],
            "slots": [self.slot_a.to_dict(), self.slot_b.to_dict()],
            "message": (
                f"{self.course_a} ({self.slot_a.label()}) overlaps "
                f"{self.course_b} ({self.slot_b.label()})"
            ),
        }


@dataclass(frozen=True)
class TermAssignment:
    year_index: int
    term: str
    label: str
    courses: tuple[Course, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def total_credits(self) -> int:
        return sum(c.credits for c in self.courses)

    def course_ids(self) -> list[str]:
        return [c.id for c in self.courses]

    def to_dict(self) -> dict:
        return {
            "year_index": self.year_index,
            "term": self.term,
            "label": self.label,
            "courses": [c.summary() for c in self.courses],
            "total_credits": self.total_credits,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class PlanYear:
    index: int
    terms: tuple[TermAssignment, ...] = ()

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "label": f"Year {self.index + 1}",
            "terms": [t.to_dict() for t in self.terms],
        }


@dataclass(frozen=True)
class Plan:
    years: tuple[PlanYear, ...] = ()

    def terms(self) -> list[TermAssignment]:
        return [t for y in self.years for t in y.terms]

    def term_index_of(self) -> dict[str, int]:
        """course id -> position of its term in chronological order."""
        out = {}
        for idx, term in enumerate(self.terms()):
            for course in term.courses:
                out[course.id] = idx
        return out

    def course_ids(self) -> list[str]:
        return [c.id for t in self.terms() for c in t.courses]

    def total_credits(self) -> int:
        return sum(t.total_credits for t in self.terms())

    def to_dict(self) -> dict:
        return {
            "years": [y.to_dict() for y in self.years],
            "total_credits": self.total_credits(),
        }


@dataclass(frozen=True)
class UnplacedCourse:
    course: Course
    error: PlannerError

    @property
    def reason(self) -> str:
        return self.error.code

    def to_dict(self) -> dict:
        return {"course": self.course.summary(), "reason": self.reason, "detail": self.error.to_dict()}


@dataclass(frozen=True)
class PlanResult:
    plan: Plan
    unplaced: tuple[UnplacedCourse, ...] = ()
    excluded: tuple[dict, ...] = ()
    warnings: tuple[str, ...] = ()
    layers: dict = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict:
        return {
            "plan": self.plan.to_dict(),
            "unplaced": [u.to_dict() for u in self.unplaced],
            "excluded": list(self.excluded),
            "warnings": list(self.warnings),
            "layers": dict(sorted(self.layers.items())),
        }


@dataclass(frozen=True)
class RecommendationResult:
    course_id: str
    score: float
    factors: dict
    weights: dict = field(default_factory=dict)
    course: Course | None = field(default=None, compare=False)
    fills_categories: tuple[str, ...] = ()
    unlocks: tuple[str, ...] = ()
    chain_depth: int = 0

    def to_dict(self) -> dict:
        out = {
            "course_id": self.course_id,
            "score": round(self.score, 6),
            "factors": {k: round(v, 6) for k, v in self.factors.items()},
            "weights": dict(self.weights),
            "fills_categories": list(self.fills_categories),
            "unlocks": list(self.unlocks),
            "chain_depth": self.chain_depth,
        }
        if self.course is not None:
            out["course"] = self.course.summary()
        return out
