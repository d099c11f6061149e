from models import ScheduleConflict


def slots_conflict(slot_a, slot_b) -> bool:
    """Same day and half-open overlap; back-to-back meetings do not conflict."""
    return slot_a.overlaps(slot_b)


def find_conflicts(candidate, term_courses) -> list[ScheduleConflict]:
    """
    Every overlapping meeting pair between `candidate` and the courses already
    in the term. Each conflict names the candidate first. Courses without
    meetings (asynchronous/online) never conflict.
    """
    conflicts: list[ScheduleConflict] = []
    if not candidate.meetings:
        return conflicts
    for other in term_courses:
        if other.id == candidate.id or not other.meetings:
            continue
        for slot_a in sorted(candidate.meetings):
            for slot_b in sorted(other.meetings):
                if slots_conflict(slot_a, slot_b):
                    conflicts.append(ScheduleConflict(candidate.id, other.id, slot_a, slot_b))
    return conflicts


def validate_term_schedule(courses, max_credits: int) -> dict:
    """
    Whole-term check: credit total against `max_credits` plus every pairwise
    conflict (each pair reported once).

    Returns:
      {"is_valid": bool, "total_credits": int, "conflicts": [ScheduleConflict], "messages": [str]}
    """
    courses = list(courses)
    total = sum(c.credits for c in courses)
    messages: list[str] = []
    conflicts: list[ScheduleConflict] = []

    if total > max_credits:
        messages.append(f"Total credits ({total}) exceed maximum allowed ({max_credits})")

    for idx, course in enumerate(courses):
        pair_conflicts = find_conflicts(course, courses[idx + 1:])
        conflicts.extend(pair_conflicts)
        for other_id in dict.fromkeys(c.course_b for c in pair_conflicts):
            messages.append(f"Schedule conflict between {course.id} and {other_id}")

    return {
        "is_valid": not messages,
        "total_credits": total,
        "conflicts": conflicts,
        "messages": messages,
    }
