import math
import os
import re

import pandas as pd

from errors import ValidationError
from models import SEASONS, Course, TimeSlot
from normalizer import normalize_code, normalize_course_id
from prereq_parser import parse_alternatives, parse_prereqs
from requirements import build_categories


_BOOL_TRUTHY = {"true", "1", "yes", "y", "x"}
_MEETING_RE = re.compile(r"^([A-Za-z]{3})[A-Za-z]*\s+(\d{1,2}:\d{2})\s*-\s*(\d{1,2}:\d{2})$")
_GRADE_PAIR_RE = re.compile(r"^\s*([A-Za-z][A-Za-z+-]*)\s*[=:]\s*(\S+)\s*$")
_MAX_LEVEL = 600


def _safe_bool_col(df: pd.DataFrame, col: str) -> pd.DataFrame:
    """Normalize a boolean column to Python bool regardless of Excel format.

    Handles: Python bool, Excel int/float (1/0), and string variants
    (TRUE/FALSE, true/false, 1/0, yes/no, y/n, x). NaN → False.
    """
    def _coerce(x):
        if pd.isna(x):
            return False
        if isinstance(x, bool):
            return x
        if isinstance(x, (int, float)):
            return bool(x)
        return str(x).strip().lower() in _BOOL_TRUTHY

    if col in df.columns:
        df[col] = df[col].apply(_coerce)
    return df


def _text(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def _default_level(code: str) -> int:
    """'MATH 101' → 100, 'CS 2110' → 200; capped at 600."""
    m = re.search(r"(\d)\d{2,3}", code)
    if not m:
        return 100
    return min(_MAX_LEVEL, max(100, int(m.group(1)) * 100))


def parse_meetings(raw) -> tuple[TimeSlot, ...]:
    """
    'MON 10:00-11:00; WED 10:00-11:00' → (TimeSlot, TimeSlot).
    Empty / 'none' / 'online' → (). Raises ValidationError on malformed text.
    """
    text = _text(raw)
    if text.lower() in {"", "none", "nan", "online", "async", "tba"}:
        return ()
    slots = []
    for part in re.split(r"[;\n]+", text):
        part = part.strip()
        if not part:
            continue
        m = _MEETING_RE.match(part)
        if not m:
            raise ValidationError(f"Cannot parse meeting {part!r} (expected 'MON 10:00-11:00').", field="meetings")
        start = m.group(2).zfill(5)
        end = m.group(3).zfill(5)
        slots.append(TimeSlot.from_strings(m.group(1), start, end))
    return tuple(sorted(set(slots)))


def parse_grade_distribution(raw) -> tuple[tuple[str, float], ...]:
    """
    'A=0.45; B=0.35; C=0.20' → (('A', 0.45), ('B', 0.35), ('C', 0.2)).

    Percentages (a total near 100) are rescaled to fractions. Unreadable
    numbers load as NaN so course validation reports them.
    """
    text = _text(raw)
    if text.lower() in {"", "none", "nan", "n/a"}:
        return ()
    pairs: list[tuple[str, float]] = []
    for part in re.split(r"[;,\n]+", text):
        if not part.strip():
            continue
        m = _GRADE_PAIR_RE.match(part)
        if not m:
            pairs.append((part.strip().upper(), math.nan))
            continue
        value = pd.to_numeric(m.group(2).rstrip("%"), errors="coerce")
        pairs.append((m.group(1).upper(), math.nan if pd.isna(value) else float(value)))

    total = sum(v for _, v in pairs if not math.isnan(v))
    if total > 1.5:
        pairs = [(g, v / 100.0) for g, v in pairs]
    return tuple(pairs)


def _coerce_credits(raw) -> int:
    """Unreadable or fractional credits load as 0 so validation excludes the course."""
    value = pd.to_numeric(raw, errors="coerce")
    if pd.isna(value) or float(value) != int(value):
        return 0
    return int(value)


def build_course(row: dict, warnings: list[str]) -> Course | None:
    code = normalize_code(_text(row.get("course_code"))) or _text(row.get("course_code"))
    if not code or code.lower() == "nan":
        return None
    course_id = normalize_course_id(_text(row.get("course_id")) or code)

    meetings, meeting_error = (), ""
    try:
        meetings = parse_meetings(row.get("meetings"))
    except ValidationError as exc:
        warnings.append(f"{course_id}: {exc.message}")
        meeting_error = exc.message

    level_raw = pd.to_numeric(row.get("level"), errors="coerce")
    level = _default_level(code) if pd.isna(level_raw) else min(_MAX_LEVEL, int(level_raw))

    return Course(
        id=course_id,
        code=code,
        name=_text(row.get("course_name")),
        credits=_coerce_credits(row.get("credits")),
        department=_text(row.get("department")) or code.split(" ")[0],
        level=level,
        prereqs=parse_prereqs(row.get("prereq_hard")),
        alternatives=parse_alternatives(row.get("prereq_alt")),
        meetings=meetings,
        meeting_error=meeting_error,
        grade_distribution=parse_grade_distribution(row.get("grade_distribution")),
        terms_offered=frozenset(
            season for season in SEASONS if row.get(f"offered_{season.lower()}", False)
        ),
    )


def build_catalog(courses_df: pd.DataFrame) -> tuple[dict, list[str]]:
    """DataFrame rows → ({course id: Course}, load warnings). Later duplicates win."""
    courses_df = courses_df.copy()
    for col in ["offered_fall", "offered_spring", "offered_summer"]:
        if col not in courses_df.columns:
            courses_df[col] = True
        courses_df = _safe_bool_col(courses_df, col)

    warnings: list[str] = []
    catalog: dict = {}
    for row in courses_df.to_dict(orient="records"):
        course = build_course(row, warnings)
        if course is None:
            continue
        if course.id in catalog:
            warnings.append(f"{course.id}: duplicate course row; keeping the last one.")
        catalog[course.id] = course
    return catalog, warnings


def _read_tables(data_path: str) -> tuple[pd.DataFrame, pd.DataFrame]:
    """(courses, requirements) from a workbook or a directory of CSV files."""
    if os.path.isdir(data_path):
        courses_csv = os.path.join(data_path, "courses.csv")
        if not os.path.isfile(courses_csv):
            raise FileNotFoundError(courses_csv)
        courses_df = pd.read_csv(courses_csv)
        req_csv = os.path.join(data_path, "requirements.csv")
        requirements_df = pd.read_csv(req_csv) if os.path.isfile(req_csv) else pd.DataFrame()
        return courses_df, requirements_df

    xl = pd.ExcelFile(data_path)
    courses_df = xl.parse("courses")
    requirements_df = xl.parse("requirements") if "requirements" in xl.sheet_names else pd.DataFrame()
    return courses_df, requirements_df


def load_data(data_path: str) -> dict:
    """Load and parse the course catalog. Raises on file/schema errors."""
    courses_df, requirements_df = _read_tables(data_path)
    if "course_code" not in courses_df.columns:
        raise ValueError(f"'courses' table in {data_path} has no course_code column.")

    courses_df["course_code"] = courses_df["course_code"].astype(str).str.strip()
    courses_df["prereq_hard"] = courses_df.get("prereq_hard", pd.Series(dtype=str)).fillna("none")
    courses_df["prereq_alt"] = courses_df.get("prereq_alt", pd.Series(dtype=str)).fillna("")

    catalog, load_warnings = build_catalog(courses_df)
    for message in load_warnings:
        print(f"[WARN] {message}")

    prereq_map = {course_id: course.prereqs for course_id, course in catalog.items()}
    categories = build_categories(requirements_df)

    # ── Startup data integrity checks ──────────────────────────────────────
    catalog_codes = set(catalog)
    orphaned = sorted(
        {c for cat in categories.values() for c in cat["courses"]} - catalog_codes
    )
    if orphaned:
        print(f"[WARN] {len(orphaned)} requirement course(s) not found in courses table: {orphaned}")

    unsupported = [cid for cid, c in catalog.items() if c.prereqs["type"] == "unsupported"]
    if unsupported:
        print(f"[WARN] {len(unsupported)} course(s) have unsupported prereq format (manual review required): {sorted(unsupported)}")

    return {
        "courses_df": courses_df,
        "requirements_df": requirements_df,
        "catalog": catalog,
        "catalog_codes": catalog_codes,
        "prereq_map": prereq_map,
        "categories": categories,
        "load_warnings": load_warnings,
    }
