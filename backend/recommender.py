"""
Recommendation Scorer.

score = (w_grade * grade + w_workload * workload + w_requirement * requirement)
        / (w_grade + w_workload + w_requirement)

Every factor is normalized to [0, 1]. Ranking is by score descending, then
course code ascending, so identical input always yields identical order.
"""

from dataclasses import dataclass, field

from config import MAX_CREDITS_PER_TERM, REQUIREMENT_FLOOR, PlannerOptions
from eligibility import get_eligible_courses, has_unsupported_prereqs
from models import RecommendationResult
from requirements import categories_filled_by, core_courses, outstanding_categories
from unlocks import compute_chain_depths, get_blocking_warnings, get_direct_unlocks

# Scores are compared after rounding so float noise cannot reorder ties.
_SCORE_PRECISION = 9
_TOP_GRADES = ("A+", "A", "A-")


@dataclass(frozen=True)
class ScoringContext:
    weights: dict
    max_credits: int = MAX_CREDITS_PER_TERM
    term_credits: int = 0
    categories: dict = field(default_factory=dict)
    outstanding: dict = field(default_factory=dict)
    required_ids: frozenset = frozenset()
    reverse_map: dict = field(default_factory=dict)
    chain_depths: dict = field(default_factory=dict)
    requirement_floor: float = REQUIREMENT_FLOOR


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def grade_factor(course) -> float:
    """Fraction of students earning an A; 0 when no distribution is recorded."""
    grades = course.grades
    if not grades:
        return 0.0
    return _clamp(sum(grades.get(g, 0.0) for g in _TOP_GRADES))


def workload_factor(course, term_credits: int, max_credits: int) -> float:
    """Share of the term's credit room left after adding the course."""
    if max_credits <= 0:
        return 0.0
    return _clamp(1.0 - (term_credits + course.credits) / max_credits)


def requirement_factor(filled: list[str], is_required: bool, floor: float) -> float:
    return 1.0 if filled or is_required else floor


def score_course(course, context: ScoringContext) -> RecommendationResult:
    filled = categories_filled_by(course.id, context.categories, context.outstanding)
    factors = {
        "grade": grade_factor(course),
        "workload": workload_factor(course, context.term_credits, context.max_credits),
        "requirement": requirement_factor(
            filled,
            course.id in context.required_ids,
            context.requirement_floor,
        ),
    }
    weights = context.weights
    total_weight = sum(weights.values())
    if total_weight <= 0:
        score = 0.0
    else:
        score = sum(weights[name] * factors[name] for name in factors) / total_weight
    return RecommendationResult(
        course_id=course.id,
        score=score,
        factors=factors,
        weights=dict(weights),
        course=course,
        fills_categories=tuple(filled),
        unlocks=tuple(get_direct_unlocks(course.id, context.reverse_map)),
        chain_depth=context.chain_depths.get(course.id, 0),
    )


def rank_courses(courses, context: ScoringContext) -> list[RecommendationResult]:
    """All courses scored and sorted: score desc, code asc, id asc."""
    results = [score_course(c, context) for c in courses]
    return sorted(
        results,
        key=lambda r: (-round(r.score, _SCORE_PRECISION), r.course.code, r.course_id),
    )


def run_recommendation(
    catalog: dict,
    history,
    target_term: str,
    options: PlannerOptions | None = None,
    categories: dict | None = None,
    current_term: str | None = None,
    reverse_map: dict | None = None,
    max_credits: int = MAX_CREDITS_PER_TERM,
) -> dict:
    """
    Recommendation query surface: eligible courses for `target_term`, ranked.

    `maxResults` truncates only when the caller sets it; `eligible_count` and
    `truncated` always report what was left out.
    """
    options = options or PlannerOptions()
    categories = categories or {}
    reverse_map = reverse_map or {}
    completed = history.completed_ids()
    in_progress = history.in_progress_ids()
    satisfied = completed | in_progress

    eligible = get_eligible_courses(
        catalog,
        completed,
        in_progress,
        target_term,
        current_term=current_term,
    )
    outstanding = outstanding_categories(categories, satisfied)
    required_ids = frozenset(c for c in core_courses(categories) if c not in satisfied)
    context = ScoringContext(
        weights=options.weights(),
        max_credits=max_credits,
        categories=categories,
        outstanding=outstanding,
        required_ids=required_ids,
        reverse_map=reverse_map,
        chain_depths=compute_chain_depths(reverse_map),
    )
    ranked = rank_courses([catalog[e["course_id"]] for e in eligible], context)

    truncated = False
    if options.max_results is not None and len(ranked) > options.max_results:
        ranked = ranked[:options.max_results]
        truncated = True

    manual_review = sorted(
        course_id for course_id, course in catalog.items()
        if course_id not in satisfied and has_unsupported_prereqs(course)
    )
    pool = [c for cat in categories.values() for c in cat["courses"]]
    return {
        "target_term": target_term,
        "recommendations": [r.to_dict() for r in ranked],
        "eligible_count": len(eligible),
        "truncated": truncated,
        "options": options.to_dict(),
        "weights": context.weights,
        "outstanding_categories": outstanding,
        "blocking_warnings": get_blocking_warnings(sorted(required_ids), reverse_map, pool, satisfied),
        "manual_review_courses": manual_review,
    }
