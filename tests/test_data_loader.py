import math
import os

import pandas as pd
import pytest

from config import PlanConfig
from data_loader import (
    _safe_bool_col,
    build_catalog,
    load_data,
    parse_grade_distribution,
    parse_meetings,
)
from errors import ValidationError
from models import StudentHistory, TimeSlot
from plan_optimizer import generate_plan

DATA_DIR = os.path.join(os.path.dirname(__file__), "..", "data")

COURSES_CSV = """course_code,course_name,credits,prereq_hard,prereq_alt,offered_fall,offered_spring,offered_summer,meetings,grade_distribution
math 101,Calculus I,4,none,,TRUE,yes,0,MON 09:00-10:00,A=0.5; B=0.5
MATH 201,Calculus II,4,MATH 101,,1,FALSE,no,Monday 10:00-11:00; wednesday 10:00-11:00,A=40; B=60
CS 110,Programming,three,,,TRUE,TRUE,TRUE,online,
CS 210,Data Structures,3,CS 110,MATH 101,x,,,Someday 9-10,
"""

REQUIREMENTS_CSV = """category_id,label,course_code,needed_count
CORE,Core,MATH 101,
CORE,Core,MATH 201,
ELECT,Electives,CS 110,1
ELECT,Electives,CS 210,
ELECT,Electives,BIO 999,
"""


@pytest.fixture
def catalog_dir(tmp_path):
    (tmp_path / "courses.csv").write_text(COURSES_CSV, encoding="utf-8")
    (tmp_path / "requirements.csv").write_text(REQUIREMENTS_CSV, encoding="utf-8")
    return str(tmp_path)


class TestParseMeetings:
    def test_multiple_slots(self):
        slots = parse_meetings("WED 10:00-11:00; MON 9:00-10:00")
        assert slots == (
            TimeSlot("MON", 540, 600),
            TimeSlot("WED", 600, 660),
        )

    @pytest.mark.parametrize("raw", [None, "", "none", "Online", "TBA", float("nan")])
    def test_no_meetings(self, raw):
        assert parse_meetings(raw) == ()

    def test_malformed_raises(self):
        with pytest.raises(ValidationError):
            parse_meetings("MON ten to eleven")

    def test_end_before_start_raises(self):
        with pytest.raises(ValidationError):
            parse_meetings("MON 11:00-10:00")


class TestParseGrades:
    def test_fractions(self):
        assert parse_grade_distribution("A=0.45; B=0.35; C=0.20") == (
            ("A", 0.45), ("B", 0.35), ("C", 0.20),
        )

    def test_percentages_rescaled(self):
        grades = dict(parse_grade_distribution("A=45%; B=55%"))
        assert grades["A"] == pytest.approx(0.45)
        assert grades["B"] == pytest.approx(0.55)

    def test_unreadable_value_is_nan(self):
        grades = dict(parse_grade_distribution("A=lots; B=0.5"))
        assert math.isnan(grades["A"])

    def test_empty(self):
        assert parse_grade_distribution("") == ()


def test_safe_bool_col_variants():
    df = pd.DataFrame({"flag": [True, 1, 0.0, "yes", "N", "x", None]})
    assert _safe_bool_col(df, "flag")["flag"].tolist() == [True, True, False, True, False, True, False]


def test_missing_offered_columns_default_to_all_terms():
    df = pd.DataFrame({"course_code": ["ART 100"], "credits": [3], "prereq_hard": ["none"]})
    catalog, warnings = build_catalog(df)
    assert catalog["ART 100"].terms_offered == frozenset({"Fall", "Spring", "Summer"})
    assert warnings == []


def test_duplicate_rows_warn():
    df = pd.DataFrame({"course_code": ["ART 100", "art 100"], "credits": [3, 4]})
    catalog, warnings = build_catalog(df)
    assert catalog["ART 100"].credits == 4
    assert warnings == ["ART 100: duplicate course row; keeping the last one."]


def test_unreadable_meetings_keep_course_out_of_plans():
    df = pd.DataFrame({
        "course_code": ["CS 101", "CS 102"],
        "credits": [3, 3],
        "prereq_hard": ["none", "none"],
        "meetings": ["MON 10:00-11:00", "MON 10am-11am"],
    })
    catalog, warnings = build_catalog(df)
    assert [w.split(":")[0] for w in warnings] == ["CS 102"]

    result = generate_plan(catalog, StudentHistory(), PlanConfig(max_years=1))
    assert result.plan.course_ids() == ["CS 101"]
    assert [(row["course_id"], row["field"]) for row in result.excluded] == [("CS 102", "meetings")]


class TestLoadData:
    def test_loads_csv_directory(self, catalog_dir):
        data = load_data(catalog_dir)
        catalog = data["catalog"]
        assert sorted(catalog) == ["CS 110", "CS 210", "MATH 101", "MATH 201"]

        math101 = catalog["MATH 101"]
        assert math101.credits == 4
        assert math101.terms_offered == frozenset({"Fall", "Spring"})
        assert math101.level == 100

        math201 = catalog["MATH 201"]
        assert [s.day for s in math201.meetings] == ["MON", "WED"]
        assert math201.grades["A"] == pytest.approx(0.4)
        assert math201.prereqs == {"type": "single", "course": "MATH 101"}

    def test_bad_values_surface_for_validation(self, catalog_dir):
        data = load_data(catalog_dir)
        catalog = data["catalog"]
        assert catalog["CS 110"].credits == 0
        assert catalog["CS 110"].meetings == ()
        assert catalog["CS 210"].meetings == ()
        assert "Cannot parse meeting" in catalog["CS 210"].meeting_error
        assert catalog["MATH 201"].meeting_error == ""
        assert catalog["CS 210"].terms_offered == frozenset({"Fall"})
        assert any(w.startswith("CS 210:") for w in data["load_warnings"])

    def test_alternatives_loaded(self, catalog_dir):
        cs210 = load_data(catalog_dir)["catalog"]["CS 210"]
        assert len(cs210.alternatives) == 1

    def test_categories(self, catalog_dir, capsys):
        categories = load_data(catalog_dir)["categories"]
        assert categories["CORE"]["needed_count"] == 2
        assert categories["ELECT"] == {
            "label": "Electives",
            "courses": ["CS 110", "CS 210", "BIO 999"],
            "needed_count": 1,
        }
        assert "BIO 999" in capsys.readouterr().out

    def test_missing_directory_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(str(tmp_path))

    def test_sample_catalog(self):
        data = load_data(DATA_DIR)
        assert len(data["catalog"]) == 13
        assert set(data["categories"]) == {"CORE", "UPPER", "BREADTH"}
        assert data["catalog"]["CS 110"].grades["A"] == pytest.approx(0.45)
