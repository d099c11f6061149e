from models import SEM_RE, term_sort_key
from prereq_parser import (
    build_prereq_check_string,
    missing_course_codes,
    prereq_course_codes,
    prereqs_satisfied,
)


def parse_term(s: str) -> str:
    """'Fall 2026' → 'Fall'. Year is ignored."""
    for t in ("Fall", "Spring", "Summer"):
        if t.lower() in str(s or "").lower():
            return t
    raise ValueError(f"Cannot parse term from: {s!r}")


def build_prereq_map(catalog: dict) -> dict[str, dict]:
    return {course_id: course.prereqs for course_id, course in catalog.items()}


def referenced_prereq_ids(course) -> list[str]:
    """Every id named by the course's required expression or alternative groups."""
    ids = prereq_course_codes(course.prereqs)
    for group in course.alternatives:
        ids.extend(prereq_course_codes(group))
    return list(dict.fromkeys(ids))


def has_unsupported_prereqs(course) -> bool:
    if course.prereqs.get("type") == "unsupported":
        return True
    return any(g.get("type") == "unsupported" for g in course.alternatives)


def prereq_expression_satisfied(course, source: set) -> bool:
    """
    Required expression satisfied, OR any alternative group fully satisfied.
    A course whose only prerequisites are alternative groups needs one group.
    """
    has_required = course.prereqs.get("type", "none") != "none"
    if not course.alternatives:
        return prereqs_satisfied(course.prereqs, source)
    if has_required and prereqs_satisfied(course.prereqs, source):
        return True
    return any(prereqs_satisfied(group, source) for group in course.alternatives)


def missing_prereq_ids(course, source: set) -> list[str]:
    """Ids still needed, following the required path (or the closest alternative)."""
    if prereq_expression_satisfied(course, source):
        return []
    if course.prereqs.get("type", "none") != "none":
        return missing_course_codes(course.prereqs, source)
    options = [missing_course_codes(group, source) for group in course.alternatives]
    options = [o for o in options if o]
    if not options:
        return []
    return min(options, key=lambda o: (len(o), o))


def _pending_counts(target_term: str, current_term: str | None) -> bool:
    """In-progress courses satisfy prereqs only for terms after the current one."""
    if current_term is None:
        return False
    if not SEM_RE.match(str(target_term).strip()) or not SEM_RE.match(str(current_term).strip()):
        return False
    return term_sort_key(target_term) > term_sort_key(current_term)


def check_can_take(
    course,
    completed: set,
    in_progress: set,
    target_term: str,
    current_term: str | None = None,
    catalog_ids: set | None = None,
) -> dict:
    """
    Returns an eligibility assessment for one course in one term.

    `target_term` is a season ('Fall') or a full label ('Fall 2026').
    `current_term` is the term the in-progress courses belong to; when the
    target term is strictly later, in-progress prerequisites count as done.

    Returns:
    {
      "course_id": str,
      "eligible": True | False | None,   # None = unknown (unsupported prereq)
      "reason": str | None,
      "missing_prereqs": [str],          # in the catalog, not taken
      "pending_prereqs": [str],          # in progress, blocks this term only
      "unknown_prereqs": [str],          # not in the catalog at all
      "not_offered_this_term": bool,
      "unsupported_prereq_format": bool,
      "prereq_check": str,
    }
    """
    completed_set = set(completed)
    in_progress_set = set(in_progress)
    season = parse_term(target_term)
    course_id = course.id

    result = {
        "course_id": course_id,
        "eligible": False,
        "reason": None,
        "missing_prereqs": [],
        "pending_prereqs": [],
        "unknown_prereqs": [],
        "not_offered_this_term": False,
        "unsupported_prereq_format": False,
        "prereq_check": build_prereq_check_string(course.prereqs, completed_set, in_progress_set),
    }

    if course_id in completed_set:
        result["reason"] = f"You have already completed {course_id}."
        return result
    if course_id in in_progress_set:
        result["reason"] = f"{course_id} is already in progress."
        return result

    if not course.offered_in(season):
        result["reason"] = f"{course_id} is not offered in {season}."
        result["not_offered_this_term"] = True
        return result

    if has_unsupported_prereqs(course):
        result["eligible"] = None
        result["reason"] = "Cannot determine eligibility: prerequisite format requires manual review."
        result["unsupported_prereq_format"] = True
        return result

    pending_ok = _pending_counts(target_term, current_term)
    source = completed_set | in_progress_set if pending_ok else completed_set
    if prereq_expression_satisfied(course, source):
        result["eligible"] = True
        return result

    with_pending = completed_set | in_progress_set
    missing = missing_prereq_ids(course, with_pending)
    if not missing:
        # Only in-progress prerequisites stand in the way.
        pending = [
            c for c in missing_prereq_ids(course, completed_set)
            if c in in_progress_set
        ]
        result["pending_prereqs"] = pending
        result["reason"] = (
            f"Prerequisite(s) {', '.join(pending)} are still in progress; "
            f"{course_id} can be taken in a later term."
        )
        return result

    if catalog_ids is not None:
        result["unknown_prereqs"] = [m for m in missing if m not in catalog_ids and m not in with_pending]
        missing = [m for m in missing if m not in result["unknown_prereqs"]]
    result["missing_prereqs"] = missing

    parts = []
    if missing:
        parts.append(f"Missing prerequisite(s): {', '.join(missing)}.")
    if result["unknown_prereqs"]:
        parts.append(f"Prerequisite(s) not in the catalog: {', '.join(result['unknown_prereqs'])}.")
    result["reason"] = " ".join(parts) or "Prerequisites not satisfied."
    return result


def get_eligible_courses(
    catalog: dict,
    completed: set,
    in_progress: set,
    target_term: str,
    current_term: str | None = None,
) -> list[dict]:
    """
    Assess every catalog course for `target_term` and keep the eligible ones.
    Completed and in-progress courses are excluded. Sorted by course id.
    """
    catalog_ids = set(catalog)
    eligible = []
    for course_id in sorted(catalog):
        assessment = check_can_take(
            catalog[course_id],
            completed,
            in_progress,
            target_term,
            current_term=current_term,
            catalog_ids=catalog_ids,
        )
        if assessment["eligible"] is True:
            eligible.append(assessment)
    return eligible
