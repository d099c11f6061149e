"""
Reverse prerequisite lookups: what a course opens up, and how far down the
catalog its influence reaches.
"""

from eligibility import referenced_prereq_ids


def build_reverse_prereq_map(catalog: dict) -> dict[str, list[str]]:
    """
    {prereq id: [course ids naming it]}, from required expressions and
    alternative groups alike. One level only; dependents are sorted by id.
    """
    reverse: dict[str, list[str]] = {}
    for course_id in sorted(catalog):
        for prereq_id in referenced_prereq_ids(catalog[course_id]):
            dependents = reverse.setdefault(prereq_id, [])
            if course_id not in dependents:
                dependents.append(course_id)
    return reverse


def compute_chain_depths(reverse_map: dict[str, list[str]]) -> dict[str, int]:
    """
    Longest run of dependents hanging off each course in `reverse_map`.

    MATH 101 -> MATH 201 -> MATH 301 -> MATH 401 puts MATH 101 at 3 and
    MATH 401 at 0. Back edges count as 0 so a cycle still terminates.
    """
    depths: dict[str, int] = {}
    visiting: set[str] = set()

    def depth_of(course_id: str) -> int:
        if course_id in depths:
            return depths[course_id]
        if course_id in visiting:
            return 0
        visiting.add(course_id)
        best = 0
        for dependent in reverse_map.get(course_id, ()):
            best = max(best, depth_of(dependent) + 1)
        visiting.remove(course_id)
        depths[course_id] = best
        return best

    for course_id in reverse_map:
        depth_of(course_id)
    return depths


def get_direct_unlocks(course_id: str, reverse_map: dict[str, list[str]], limit: int = 3) -> list[str]:
    """First `limit` dependents of `course_id`."""
    return list(reverse_map.get(course_id, ()))[:limit]


def get_blocking_warnings(
    remaining_required: list[str],
    reverse_map: dict[str, list[str]],
    pool_courses: list[str],
    satisfied: set,
    threshold: int = 2,
) -> list[str]:
    """
    One warning per remaining required course that directly gates at least
    `threshold` pool courses the student has not satisfied yet.
    """
    open_pool = set(pool_courses) - set(satisfied)
    warnings: list[str] = []
    for course_id in remaining_required:
        gated = sum(1 for c in reverse_map.get(course_id, ()) if c in open_pool)
        if gated >= threshold:
            warnings.append(
                f"Completing {course_id} would unlock {gated} elective courses you can't yet take."
            )
    return warnings
