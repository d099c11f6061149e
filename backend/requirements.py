import pandas as pd

from normalizer import normalize_course_id

# Maximum number of requirement categories a single course can fill.
MAX_CATEGORIES_PER_COURSE = 6


def _parse_needed(raw, default: int) -> int:
    value = pd.to_numeric(raw, errors="coerce")
    if pd.isna(value) or int(value) <= 0:
        return default
    return int(value)


def build_categories(requirements_df: pd.DataFrame | None) -> dict[str, dict]:
    """
    Group requirement rows into categories.

    Input columns: category_id, label (optional), course_code,
    needed_count (optional; defaults to the number of listed courses).

    Returns:
      {
        "CORE": {"label": "Core", "courses": ["MATH 101", ...], "needed_count": 3},
        ...
      }
    Categories keep first-seen order; courses keep row order.
    """
    if requirements_df is None or len(requirements_df) == 0:
        return {}
    if not {"category_id", "course_code"}.issubset(requirements_df.columns):
        return {}

    categories: dict[str, dict] = {}
    needed_raw: dict[str, object] = {}
    for _, row in requirements_df.iterrows():
        category_id = str(row.get("category_id", "") or "").strip()
        course_id = normalize_course_id(row.get("course_code", ""))
        if not category_id or not course_id or course_id.lower() == "nan":
            continue
        cat = categories.setdefault(category_id, {
            "label": "",
            "courses": [],
            "needed_count": 0,
        })
        label = row.get("label", "")
        if not cat["label"] and isinstance(label, str) and label.strip():
            cat["label"] = label.strip()
        if course_id not in cat["courses"]:
            cat["courses"].append(course_id)
        if category_id not in needed_raw or pd.isna(needed_raw[category_id]):
            needed_raw[category_id] = row.get("needed_count")

    for category_id, cat in categories.items():
        cat["label"] = cat["label"] or category_id
        cat["needed_count"] = min(
            len(cat["courses"]),
            _parse_needed(needed_raw.get(category_id), len(cat["courses"])),
        )
    return categories


def is_core_category(category: dict) -> bool:
    """Every listed course is needed."""
    return category["needed_count"] >= len(category["courses"])


def core_courses(categories: dict[str, dict]) -> list[str]:
    out: list[str] = []
    for cat in categories.values():
        if is_core_category(cat):
            out.extend(c for c in cat["courses"] if c not in out)
    return out


def elective_pool(categories: dict[str, dict]) -> dict[str, list[str]]:
    """course id -> choose-n categories listing it."""
    pool: dict[str, list[str]] = {}
    for category_id, cat in categories.items():
        if is_core_category(cat):
            continue
        for course_id in cat["courses"]:
            pool.setdefault(course_id, []).append(category_id)
    return pool


def category_progress(categories: dict[str, dict], satisfied: set) -> dict[str, dict]:
    """
    Per-category progress against `satisfied` course ids.

    Returns:
      {"CORE": {"label": str, "needed_count": int, "satisfied_count": int,
                "remaining": int, "done": bool, "satisfied_courses": [str]}}
    """
    progress = {}
    for category_id, cat in categories.items():
        done_courses = [c for c in cat["courses"] if c in satisfied]
        count = min(len(done_courses), cat["needed_count"])
        remaining = cat["needed_count"] - count
        progress[category_id] = {
            "label": cat["label"],
            "needed_count": cat["needed_count"],
            "satisfied_count": count,
            "remaining": remaining,
            "done": remaining == 0,
            "satisfied_courses": done_courses,
        }
    return progress


def outstanding_categories(categories: dict[str, dict], satisfied: set) -> dict[str, int]:
    """category id -> courses still needed, for categories not yet done."""
    return {
        category_id: row["remaining"]
        for category_id, row in category_progress(categories, satisfied).items()
        if not row["done"]
    }


def categories_filled_by(
    course_id: str,
    categories: dict[str, dict],
    outstanding: dict[str, int],
) -> list[str]:
    """Outstanding categories that `course_id` would count toward."""
    filled = [
        category_id for category_id in outstanding
        if course_id in categories.get(category_id, {}).get("courses", [])
    ]
    return filled[:MAX_CATEGORIES_PER_COURSE]
