"""
Pure input-validation helpers for catalog courses and student history.
No Flask or data-loader imports.
"""

import math
from typing import Dict, List, Optional, Set, Tuple

from errors import ValidationError
from prereq_parser import required_course_codes

_GRADE_SUM_TOLERANCE = 0.02


def validate_course(course, hard_ceiling: Optional[int] = None) -> None:
    """
    Raise ValidationError when a catalog course cannot be planned.

    Checks: non-empty id and code, positive integer credits, credits within the
    hard ceiling (when given), at least one offered term, readable meeting
    times, grade fractions that sum to 1.0.
    """
    course_id = str(getattr(course, "id", "") or "").strip()
    if not course_id:
        raise ValidationError("Course is missing an id.", field="id")
    if not str(course.code or "").strip():
        raise ValidationError(f"{course_id} is missing a course code.", course_id=course_id, field="code")

    credits = course.credits
    if isinstance(credits, bool) or not isinstance(credits, int) or credits <= 0:
        raise ValidationError(
            f"{course_id} has invalid credits ({credits!r}); credits must be a positive integer.",
            course_id=course_id,
            field="credits",
        )
    if hard_ceiling is not None and credits > hard_ceiling:
        raise ValidationError(
            f"{course_id} carries {credits} credits, above the {hard_ceiling}-credit term ceiling.",
            course_id=course_id,
            field="credits",
        )
    if not course.terms_offered:
        raise ValidationError(f"{course_id} is not offered in any term.", course_id=course_id, field="terms_offered")
    if course.meeting_error:
        raise ValidationError(
            f"{course_id} has unreadable meeting times: {course.meeting_error}",
            course_id=course_id,
            field="meetings",
        )

    grades = course.grades
    if grades:
        if any(v < 0 or math.isnan(v) for v in grades.values()):
            raise ValidationError(
                f"{course_id} has a negative or unreadable grade fraction.",
                course_id=course_id,
                field="grade_distribution",
            )
        total = sum(grades.values())
        if abs(total - 1.0) > _GRADE_SUM_TOLERANCE:
            raise ValidationError(
                f"{course_id} grade distribution sums to {total:.3f}, expected 1.0.",
                course_id=course_id,
                field="grade_distribution",
            )


def partition_valid_courses(
    catalog: Dict[str, object],
    hard_ceiling: Optional[int] = None,
) -> Tuple[Dict[str, object], List[dict]]:
    """
    Split a catalog into (valid courses, exclusion rows).

    Exclusion row shape:
      {"course_id": str, "reason": "validation_error", "message": str, "field": str}
    """
    valid: Dict[str, object] = {}
    excluded: List[dict] = []
    for course_id in sorted(catalog):
        course = catalog[course_id]
        try:
            validate_course(course, hard_ceiling=hard_ceiling)
        except ValidationError as exc:
            excluded.append({
                "course_id": course_id,
                "reason": exc.code,
                "message": exc.message,
                "field": exc.field,
            })
            continue
        valid[course_id] = course
    return valid, excluded


def _get_all_required_prereqs(
    course_code: str,
    prereq_map: Dict[str, dict],
) -> Set[str]:
    """
    Every prerequisite `course_code` cannot avoid, transitively.

    Follows single and plain AND members only. OR clauses, choose-n lists and
    unsupported text are choices or unknowns, so the walk stops there.
    Cycles terminate because each course is expanded once.
    """
    found: Set[str] = set()
    stack = [course_code]
    expanded: Set[str] = set()
    while stack:
        current = stack.pop()
        if current in expanded:
            continue
        expanded.add(current)
        for prereq in required_course_codes(prereq_map.get(current, {"type": "none"})):
            if prereq != course_code:
                found.add(prereq)
            stack.append(prereq)
    return found


def expand_required_with_prereqs(
    required: List[str],
    prereq_map: Dict[str, dict],
    satisfied: Set[str],
) -> Tuple[List[str], List[dict]]:
    """
    Extend `required` with the unavoidable prerequisites it still lacks.
    Original order is kept; inferred additions follow, sorted.

    Returns (expanded_required, provenance_rows), one row per source course
    that pulled something in: {"source_required": str, "added_prereqs": [str]}.
    """
    ordered = list(dict.fromkeys(required))
    present = set(ordered)
    inferred: Set[str] = set()
    rows: List[dict] = []

    for source in ordered:
        added = sorted(
            c for c in _get_all_required_prereqs(source, prereq_map)
            if c not in satisfied and c not in present
        )
        if added:
            rows.append({"source_required": source, "added_prereqs": added})
            inferred.update(added)

    return ordered + sorted(inferred), rows


def find_inconsistent_completed_courses(
    completed: List[str],
    in_progress: List[str],
    prereq_map: Dict[str, dict],
) -> List[dict]:
    """
    Completed courses whose unavoidable prerequisites are still in progress,
    as {"course_code": str, "prereqs_in_progress": [str]} rows.
    """
    pending = set(in_progress)
    issues: List[dict] = []
    for course_code in completed:
        blocking = sorted(pending & _get_all_required_prereqs(course_code, prereq_map))
        if blocking:
            issues.append({"course_code": course_code, "prereqs_in_progress": blocking})
    return issues
