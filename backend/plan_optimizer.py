"""
Plan Optimizer: greedy term-by-term assignment.

For each term in order, the courses whose prerequisites are met by history or
by strictly earlier terms are ranked by the Recommendation Scorer and added
until the term reaches its target load. A course that would break the hard
credit ceiling or collide with an already-placed meeting is skipped for that
term. Past terms are never revisited.

All working state is local to one ``generate_plan`` call; the returned
``PlanResult`` is frozen.
"""

from config import PlanConfig
from eligibility import build_prereq_map, missing_prereq_ids, prereq_expression_satisfied
from errors import PlanHorizonError, PrerequisiteUnmetError, ScheduleConflictError, ValidationError
from models import Plan, PlanResult, PlanYear, TermAssignment, UnplacedCourse, iter_terms, parse_term_label
from prereq_graph import assert_plannable, topological_layers
from recommender import ScoringContext, rank_courses
from requirements import core_courses, elective_pool, outstanding_categories
from schedule import find_conflicts
from unlocks import build_reverse_prereq_map
from validators import (
    expand_required_with_prereqs,
    find_inconsistent_completed_courses,
    partition_valid_courses,
)

UNDER_MIN_CREDITS = "under_min_credits"
OVER_MAX_CREDITS = "over_max_credits"


def _resolve_explicit(
    ids,
    catalog: dict,
    valid: dict,
    excluded: list[dict],
    field: str,
    strict: bool,
) -> list[str]:
    """
    Keep explicitly named ids that are plannable. A required id that is unknown
    or invalid raises ValidationError; an unknown elective is recorded as an
    exclusion and skipped.
    """
    out = []
    excluded_by_id = {row["course_id"]: row for row in excluded}
    for course_id in ids:
        if course_id in valid:
            out.append(course_id)
            continue
        if course_id in catalog:
            if strict:
                row = excluded_by_id.get(course_id, {})
                raise ValidationError(
                    row.get("message") or f"{course_id} failed validation.",
                    course_id=course_id,
                    field=row.get("field") or field,
                )
            continue
        message = f"{course_id} is not in the catalog."
        if strict:
            raise ValidationError(message, course_id=course_id, field=field)
        excluded.append({"course_id": course_id, "reason": "not_in_catalog", "message": message, "field": field})
    return out


def _select_targets(catalog, valid, excluded, satisfied, config: PlanConfig, categories: dict):
    """
    Returns (committed ids in report order, required id set, pool ids).

    Committed courses are reported as unplaced when they do not fit. Pool
    courses (choose-n category members) are placed only while a category
    they count toward is still outstanding.
    """
    required = _resolve_explicit(config.required_courses, catalog, valid, excluded, "required_courses", True)
    electives = _resolve_explicit(config.elective_courses, catalog, valid, excluded, "elective_courses", False)
    required += [c for c in core_courses(categories) if c in valid and c not in required]

    if not required and not electives and not categories:
        required = sorted(c for c in valid if c not in satisfied)

    required = [c for c in required if c not in satisfied]
    electives = [c for c in electives if c not in satisfied and c not in required]

    # Courses already reachable through an alternative group pull in no chain.
    named = required + electives
    blocked = [c for c in named if not prereq_expression_satisfied(valid[c], satisfied)]
    _, provenance = expand_required_with_prereqs(blocked, build_prereq_map(valid), satisfied)
    inferred = sorted({c for row in provenance for c in row["added_prereqs"]} - set(named))
    committed = [c for c in named + inferred if c in valid]
    required_set = {c for c in committed if c not in electives}

    pool = sorted(
        c for c in elective_pool(categories)
        if c in valid and c not in satisfied and c not in committed
    )
    return committed, required_set, pool


def _course_categories(categories: dict) -> dict[str, list[str]]:
    out: dict[str, list[str]] = {}
    for category_id, cat in categories.items():
        for course_id in cat["courses"]:
            out.setdefault(course_id, []).append(category_id)
    return out


def _term_warnings(credits: int, has_courses: bool, config: PlanConfig) -> tuple[str, ...]:
    warnings = []
    if has_courses and credits < config.min_credits:
        warnings.append(UNDER_MIN_CREDITS)
    if credits > config.max_credits:
        warnings.append(OVER_MAX_CREDITS)
    return tuple(warnings)


def _unplaced_error(course, rejection, final_source: set, seasons_seen: set):
    if rejection is not None:
        return rejection
    if not prereq_expression_satisfied(course, final_source):
        return PrerequisiteUnmetError(course.id, missing_prereq_ids(course, final_source))
    if not any(course.offered_in(s) for s in seasons_seen):
        return PlanHorizonError(course.id, f"{course.id} is not offered in any term before the plan horizon.")
    return PlanHorizonError(course.id)


def generate_plan(
    catalog: dict,
    history,
    config: PlanConfig | None = None,
    categories: dict | None = None,
) -> PlanResult:
    """
    Plan generation surface.

    `catalog` maps course id -> Course, `history` is a StudentHistory whose
    in-progress courses are treated as finished before `config.start_term`.
    Raises PrerequisiteGraphError on a cycle or an unsatisfiable dangling
    reference, and ValidationError when an explicitly required course is
    unknown or invalid. Everything else is reported inside the result.
    """
    config = config or PlanConfig()
    categories = categories or {}
    parse_term_label(config.start_term)

    valid, excluded = partition_valid_courses(catalog, config.hard_ceiling)
    completed = history.completed_ids()
    in_progress = history.in_progress_ids()
    satisfied = completed | in_progress

    committed, required_set, pool = _select_targets(catalog, valid, excluded, satisfied, config, categories)
    targets = committed + pool
    assert_plannable(catalog, targets, satisfied)
    layers = topological_layers(valid, targets, satisfied)

    weights = config.options.weights()
    reverse_map = build_reverse_prereq_map(valid)
    course_categories = _course_categories(categories)
    remaining_by_category = outstanding_categories(categories, satisfied)
    pool_set = set(pool)

    placed: dict[str, int] = {}
    rejections: dict = {}
    working_terms: list[dict] = []
    seasons_seen: set[str] = set()

    for term_idx, (year_index, label) in enumerate(iter_terms(
        config.start_term, config.max_years, config.include_summer
    )):
        open_commitments = [c for c in committed if c not in placed]
        open_categories = {k: v for k, v in remaining_by_category.items() if v > 0}
        if not open_commitments and not open_categories:
            break

        season = label.split()[0]
        seasons_seen.add(season)
        source = satisfied | set(placed)
        term = {"year_index": year_index, "term": season, "label": label, "courses": [], "credits": 0}
        working_terms.append(term)

        candidates = []
        for course_id in targets:
            if course_id in placed:
                continue
            course = valid[course_id]
            if not course.offered_in(season) or not prereq_expression_satisfied(course, source):
                continue
            if course_id in pool_set and not any(
                open_categories.get(cat, 0) > 0 for cat in course_categories.get(course_id, [])
            ):
                continue
            candidates.append(course)

        context = ScoringContext(
            weights=weights,
            max_credits=config.max_credits,
            categories=categories,
            outstanding=open_categories,
            required_ids=frozenset(required_set),
            reverse_map=reverse_map,
        )
        for rec in rank_courses(candidates, context):
            if term["credits"] >= config.target_credits:
                break
            course = rec.course
            if course.id in pool_set and not any(
                remaining_by_category.get(cat, 0) > 0 for cat in course_categories.get(course.id, [])
            ):
                continue
            if term["credits"] + course.credits > config.hard_ceiling:
                rejections[course.id] = PlanHorizonError(
                    course.id,
                    f"{course.id} would push {label} over the {config.hard_ceiling}-credit ceiling.",
                )
                continue
            conflicts = find_conflicts(course, term["courses"])
            if conflicts:
                rejections[course.id] = ScheduleConflictError(course.id, conflicts, term_label=label)
                continue

            term["courses"].append(course)
            term["credits"] += course.credits
            placed[course.id] = term_idx
            rejections.pop(course.id, None)
            for cat in course_categories.get(course.id, []):
                if remaining_by_category.get(cat, 0) > 0:
                    remaining_by_category[cat] -= 1

    while working_terms and not working_terms[-1]["courses"]:
        working_terms.pop()

    final_source = satisfied | set(placed)
    unplaced = []
    for course_id in committed:
        if course_id in placed:
            continue
        course = valid[course_id]
        error = _unplaced_error(course, rejections.get(course_id), final_source, seasons_seen)
        unplaced.append(UnplacedCourse(course=course, error=error))

    warnings = []
    for category_id, remaining in remaining_by_category.items():
        if remaining > 0:
            warnings.append(
                f"Requirement category '{categories[category_id]['label']}' still needs "
                f"{remaining} course(s) at the plan horizon."
            )
    for issue in find_inconsistent_completed_courses(
        sorted(completed), sorted(in_progress), build_prereq_map(catalog)
    ):
        warnings.append(
            f"{issue['course_code']} is marked completed but its prerequisite(s) "
            f"{', '.join(issue['prereqs_in_progress'])} are still in progress."
        )

    years: dict[int, list[TermAssignment]] = {}
    for term in working_terms:
        years.setdefault(term["year_index"], []).append(TermAssignment(
            year_index=term["year_index"],
            term=term["term"],
            label=term["label"],
            courses=tuple(term["courses"]),
            warnings=_term_warnings(term["credits"], bool(term["courses"]), config),
        ))
    plan = Plan(years=tuple(PlanYear(index=idx, terms=tuple(terms)) for idx, terms in sorted(years.items())))

    return PlanResult(
        plan=plan,
        unplaced=tuple(unplaced),
        excluded=tuple(excluded),
        warnings=tuple(warnings),
        layers=dict(layers),
    )
