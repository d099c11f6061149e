import pytest

from catalog_utils import make_catalog, make_course
from config import PlanConfig
from errors import PrerequisiteGraphError, ValidationError
from models import StudentHistory
from plan_optimizer import UNDER_MIN_CREDITS, generate_plan

def plan_terms(result):
    return [(t.label, t.course_ids()) for t in result.plan.terms()]

class TestOrdering:
    def test_prerequisite_lands_in_earlier_term(self):
        catalog = make_catalog(
            make_course("MATH 101", grades={"A": 0.5, "B": 0.5}),
            make_course("MATH 201", prereq="MATH 101", grades={"A": 0.8, "B": 0.2}),
        )
        result = generate_plan(catalog, StudentHistory())
        assert plan_terms(result) == [
            ("Fall 2026", ["MATH 101"]),
            ("Spring 2027", ["MATH 201"]),
        ]
        assert result.unplaced == ()
        assert result.layers == {"MATH 101": 0, "MATH 201": 1}

    def test_required_course_pulls_in_prereq_chain(self):
        catalog = make_catalog(
            make_course("CS 110"),
            make_course("CS 210", prereq="CS 110"),
            make_course("CS 310", prereq="CS 210"),
            make_course("ART 100"),
        )
        config = PlanConfig(required_courses=("CS 310",))
        result = generate_plan(catalog, StudentHistory(), config)
        index = result.plan.term_index_of()
        assert set(index) == {"CS 110", "CS 210", "CS 310"}
        assert index["CS 110"] < index["CS 210"] < index["CS 310"]

    def test_in_progress_counts_as_finished(self):
        catalog = make_catalog(
            make_course("MATH 101"),
            make_course("MATH 201", prereq="MATH 101"),
        )
        history = StudentHistory(in_progress=frozenset({"MATH 101"}))
        result = generate_plan(catalog, history)
        assert plan_terms(result) == [("Fall 2026", ["MATH 201"])]

    def test_alternative_group_satisfies_course(self):
        catalog = make_catalog(
            make_course("MATH 101"),
            make_course("CS 110"),
            make_course("PHYS 210", prereq="MATH 101", alt="CS 110"),
        )
        history = StudentHistory(completed={"CS 110": "B"})
        result = generate_plan(catalog, history, PlanConfig(required_courses=("PHYS 210",)))
        assert plan_terms(result) == [("Fall 2026", ["PHYS 210"])]

    def test_same_input_same_plan(self):
        catalog = make_catalog(
            make_course("CS 110", grades={"A": 0.4, "B": 0.6}),
            make_course("ENGL 101", grades={"A": 0.4, "B": 0.6}),
            make_course("HIST 101"),
            make_course("CS 210", prereq="CS 110"),
        )
        first = generate_plan(catalog, StudentHistory()).to_dict()
        second = generate_plan(catalog, StudentHistory()).to_dict()
        assert first == second

    def test_short_or_branch_is_not_held_back_by_long_one(self):
        catalog = make_catalog(
            make_course("A 100"),
            make_course("B 100"),
            make_course("B 200", prereq="B 100"),
            make_course("B 300", prereq="B 200"),
            make_course("C 400", prereq="A 100 or B 300"),
        )
        result = generate_plan(catalog, StudentHistory(), PlanConfig(max_years=1))
        assert plan_terms(result) == [
            ("Fall 2026", ["A 100", "B 100"]),
            ("Spring 2027", ["B 200", "C 400"]),
        ]
        assert result.layers["C 400"] == 1
        assert [u.course.id for u in result.unplaced] == ["B 300"]


class TestConstraints:
    def test_conflicting_course_is_unplaced(self):
        catalog = make_catalog(
            make_course("CS 101", offered=["Fall"], meetings="MON 10:00-11:00", grades={"A": 0.9, "B": 0.1}),
            make_course("CS 102", offered=["Fall"], meetings="MON 10:00-11:00", grades={"A": 0.1, "B": 0.9}),
        )
        result = generate_plan(catalog, StudentHistory(), PlanConfig(max_years=1))
        assert plan_terms(result) == [("Fall 2026", ["CS 101"])]
        assert [(u.course.id, u.reason) for u in result.unplaced] == [("CS 102", "schedule_conflict")]
        detail = result.unplaced[0].error.to_dict()
        assert detail["conflicts"][0]["courses"] == ["CS 102", "CS 101"]

    def test_conflict_deferred_to_later_term(self):
        catalog = make_catalog(
            make_course("CS 101", meetings="MON 10:00-11:00", grades={"A": 0.9, "B": 0.1}),
            make_course("CS 102", meetings="MON 10:30-11:30", grades={"A": 0.1, "B": 0.9}),
        )
        result = generate_plan(catalog, StudentHistory())
        assert plan_terms(result) == [
            ("Fall 2026", ["CS 101"]),
            ("Spring 2027", ["CS 102"]),
        ]
        assert result.unplaced == ()

    def test_terms_never_exceed_hard_ceiling(self):
        catalog = make_catalog(*(make_course(f"ENG {n}", credits=6) for n in (101, 102, 103, 104, 105)))
        config = PlanConfig(min_credits=6, target_credits=15, max_credits=16, hard_ceiling=16)
        result = generate_plan(catalog, StudentHistory(), config)
        for term in result.plan.terms():
            assert term.total_credits <= 16
        assert sorted(result.plan.course_ids()) == sorted(catalog)

    def test_term_stops_at_target_credits(self):
        catalog = make_catalog(*(make_course(f"HIST {n}") for n in range(101, 108)))
        result = generate_plan(catalog, StudentHistory())
        assert result.plan.terms()[0].total_credits == 15
        assert len(result.plan.terms()) == 2

    def test_not_offered_before_horizon(self):
        catalog = make_catalog(
            make_course("MATH 101", offered=["Summer"]),
            make_course("MATH 201", prereq="MATH 101"),
        )
        config = PlanConfig(required_courses=("MATH 201",), max_years=1)
        result = generate_plan(catalog, StudentHistory(), config)
        reasons = {u.course.id: u.reason for u in result.unplaced}
        assert reasons == {
            "MATH 101": "plan_horizon_exceeded",
            "MATH 201": "prerequisite_unmet",
        }
        assert result.plan.terms() == []

    def test_under_min_credits_warning(self):
        catalog = make_catalog(make_course("ART 100"))
        result = generate_plan(catalog, StudentHistory())
        assert result.plan.terms()[0].warnings == (UNDER_MIN_CREDITS,)


class TestCategories:
    def test_choose_n_category_places_only_what_is_needed(self):
        catalog = make_catalog(
            make_course("CS 330", grades={"A": 0.7, "B": 0.3}),
            make_course("CS 350", grades={"A": 0.2, "B": 0.8}),
        )
        categories = {"UPPER": {"label": "Upper", "courses": ["CS 330", "CS 350"], "needed_count": 1}}
        result = generate_plan(catalog, StudentHistory(), categories=categories)
        assert result.plan.course_ids() == ["CS 330"]
        assert result.unplaced == ()
        assert result.warnings == ()

    def test_outstanding_category_is_warned(self):
        catalog = make_catalog(make_course("CS 330", offered=["Summer"]))
        categories = {"UPPER": {"label": "Upper", "courses": ["CS 330"], "needed_count": 1}}
        result = generate_plan(catalog, StudentHistory(), PlanConfig(max_years=1), categories=categories)
        assert result.unplaced[0].course.id == "CS 330"
        assert "Requirement category 'Upper' still needs 1 course(s) at the plan horizon." in result.warnings


class TestErrors:
    def test_cycle_aborts(self):
        catalog = make_catalog(
            make_course("CS 101", prereq="CS 102"),
            make_course("CS 102", prereq="CS 101"),
        )
        with pytest.raises(PrerequisiteGraphError) as exc_info:
            generate_plan(catalog, StudentHistory())
        assert exc_info.value.cycles

    def test_dangling_required_prereq_aborts(self):
        catalog = make_catalog(make_course("CS 399", prereq="CS 298"))
        with pytest.raises(PrerequisiteGraphError) as exc_info:
            generate_plan(catalog, StudentHistory())
        assert exc_info.value.dangling == {"CS 399": ["CS 298"]}

    def test_invalid_required_course_raises(self):
        catalog = make_catalog(make_course("BIO 101", credits=0), make_course("BIO 102"))
        with pytest.raises(ValidationError) as exc_info:
            generate_plan(catalog, StudentHistory(), PlanConfig(required_courses=("BIO 101",)))
        assert exc_info.value.course_id == "BIO 101"

    def test_unknown_required_course_raises(self):
        catalog = make_catalog(make_course("BIO 102"))
        with pytest.raises(ValidationError):
            generate_plan(catalog, StudentHistory(), PlanConfig(required_courses=("BIO 999",)))

    def test_invalid_optional_course_is_excluded(self):
        catalog = make_catalog(make_course("BIO 101", credits=0), make_course("BIO 102"))
        result = generate_plan(catalog, StudentHistory())
        assert result.plan.course_ids() == ["BIO 102"]
        assert [row["course_id"] for row in result.excluded] == ["BIO 101"]

    def test_unknown_elective_is_excluded(self):
        catalog = make_catalog(make_course("BIO 102"))
        config = PlanConfig(required_courses=("BIO 102",), elective_courses=("BIO 999",))
        result = generate_plan(catalog, StudentHistory(), config)
        assert result.excluded[0]["reason"] == "not_in_catalog"

    def test_bad_start_term(self):
        with pytest.raises(ValidationError):
            generate_plan(make_catalog(make_course("BIO 102")), StudentHistory(), PlanConfig(start_term="Winter 2026"))
