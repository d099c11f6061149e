import os

from catalog_utils import make_catalog, make_course
from validate_catalog import main, validate_catalog

DATA_DIR = os.path.join(os.path.dirname(__file__), "..", "data")


def test_clean_catalog_passes():
    catalog = make_catalog(make_course("MATH 101"), make_course("MATH 201", prereq="MATH 101"))
    result = validate_catalog("inline", catalog)
    assert result.passed
    assert "All checks passed." in result.summary()


def test_empty_catalog_fails():
    assert not validate_catalog("inline", {}).passed


def test_cycle_reported():
    catalog = make_catalog(
        make_course("CS 101", prereq="CS 102"),
        make_course("CS 102", prereq="CS 101"),
    )
    result = validate_catalog("inline", catalog)
    assert any("cycle" in e for e in result.errors)


def test_dangling_and_invalid_reported():
    catalog = make_catalog(make_course("CS 399", prereq="CS 298"), make_course("CS 100", credits=0))
    result = validate_catalog("inline", catalog)
    assert len(result.errors) == 2
    assert "[FAIL]" in result.summary()


def test_unsupported_prereq_is_a_warning():
    catalog = make_catalog(make_course("PHIL 250", prereq="Instructor permission"))
    result = validate_catalog("inline", catalog)
    assert result.passed
    assert result.warnings


def test_unsatisfiable_category():
    catalog = make_catalog(make_course("CS 330"))
    categories = {"UPPER": {"label": "Upper", "courses": ["CS 330", "CS 399"], "needed_count": 2}}
    result = validate_catalog("inline", catalog, categories=categories)
    assert not result.passed
    assert any("CS 399" in w for w in result.warnings)


def test_cli_on_sample_data(capsys):
    assert main(["--path", DATA_DIR]) == 0
    assert "[PASS]" in capsys.readouterr().out


def test_cli_missing_path(tmp_path, capsys):
    assert main(["--path", str(tmp_path / "nope.xlsx")]) == 2
    assert "[FATAL]" in capsys.readouterr().err
