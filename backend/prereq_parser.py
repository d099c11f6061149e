"""
Prerequisite expressions.

A parsed expression is a plain dict tagged by ``type``:

  {"type": "none"}
  {"type": "single", "course": "MATH 101"}
  {"type": "and", "courses": ["CS 210", {"type": "or", "courses": [...]}]}
  {"type": "or", "courses": ["MATH 101", "CS 110"]}
  {"type": "choose_n", "count": 2, "courses": [...]}
  {"type": "unsupported", "raw": "Instructor permission"}

Only the AND form nests, and only OR clauses nest inside it.
"""

import re

import pandas as pd

from normalizer import normalize_code

OR_SPLIT = re.compile(r"\s+or\s+", re.IGNORECASE)
ALT_GROUP_SPLIT = re.compile(r"\s*\|\s*")
# "Two courses from: A, B or C" and "Choose 2 from A or B"
_CHOOSE_PATTERNS = (
    re.compile(
        r"^(?:any\s+)?(?P<count>\d+|one|two|three|four|five)\s+courses?\s+from\s*:?\s*(?P<options>.+)$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^choose\s+(?P<count>\d+|one|two|three|four|five)\s+from\s*:?\s*(?P<options>.+)$",
        re.IGNORECASE,
    ),
)
_OPTION_SPLIT = re.compile(r"\s+or\s+|,", re.IGNORECASE)
ANNOTATION_RE = re.compile(r"\s*\([^)]*\)")

# Wording that no grammar rule covers. Checked after parenthetical
# annotations are stripped, so "(minimum grade C)" alone does not trip it.
UNSUPPORTED_SIGNALS = (
    "permission",
    "concurrent",
    "minimum grade",
    "standing",
    "instructor",
    "co-req",
    "coreq",
    "admitted",
    "enrollment",
    "consent",
    "placement",
)

NONE_VALUES = {"none", "none listed", "n/a", "nan", ""}
COUNT_WORDS = {"one": 1, "two": 2, "three": 3, "four": 4, "five": 5}

NONE = {"type": "none"}


def _is_blank(raw) -> bool:
    if raw is None or (isinstance(raw, float) and pd.isna(raw)):
        return True
    return str(raw).strip().lower() in NONE_VALUES


def _code(token: str) -> str:
    token = token.strip()
    return normalize_code(token) or token


def _count(token: str) -> int | None:
    raw = str(token or "").strip().lower()
    return int(raw) if raw.isdigit() else COUNT_WORDS.get(raw)


def _unsupported(raw: str) -> dict:
    return {"type": "unsupported", "raw": raw}


def _has_signal(text: str) -> bool:
    lowered = text.lower()
    return any(signal in lowered for signal in UNSUPPORTED_SIGNALS)


def _choose_n(text: str) -> dict | None:
    for pattern in _CHOOSE_PATTERNS:
        m = pattern.match(text)
        if m is None:
            continue
        count = _count(m.group("count"))
        options = m.group("options").strip().rstrip(".")
        courses = [c for c in (_code(t) for t in _OPTION_SPLIT.split(options)) if c]
        if count is None or count <= 0 or len(courses) < count:
            return _unsupported(text)
        if count == 1 and len(courses) == 1:
            return {"type": "single", "course": courses[0]}
        return {"type": "choose_n", "count": count, "courses": courses}
    return None


def _or_clause(text: str):
    """'A or B' -> OR dict; a lone code -> the code string."""
    courses = [c for c in (_code(t) for t in OR_SPLIT.split(text)) if c]
    if len(courses) == 1:
        return courses[0]
    return {"type": "or", "courses": courses}


def _as_expression(clause) -> dict:
    if isinstance(clause, dict):
        return clause
    return {"type": "single", "course": clause}


def parse_prereqs(prereq_str) -> dict:
    """
    Parse one prerequisite field.

      none / none listed / blank   -> none
      MATH 101                     -> single
      CS 210; MATH 201             -> and (members may be 'A or B' clauses)
      MATH 101 or CS 110           -> or
      Two courses from: A, B, C    -> choose_n

    Codes are normalized ('math101' -> 'MATH 101'). Parenthetical notes such
    as '(minimum grade C)' are dropped; text that still carries wording like
    'permission' or 'standing' comes back as unsupported for manual review.
    """
    if _is_blank(prereq_str):
        return dict(NONE)
    raw = str(prereq_str).strip()

    text = ANNOTATION_RE.sub("", raw).strip() if "(" in raw else raw
    if not text or _has_signal(text):
        return _unsupported(raw)
    if text != raw:
        return parse_prereqs(text)

    choose = _choose_n(text)
    if choose is not None:
        return choose

    clauses = [_or_clause(part) for part in text.split(";") if part.strip()]
    if len(clauses) == 1:
        return _as_expression(clauses[0])
    return {"type": "and", "courses": clauses}


def parse_alternatives(alt_str) -> tuple:
    """
    Parse the alternative-path field: '|' separates groups, each group uses
    the parse_prereqs grammar, and completing any one group is enough.

      "MATH 150 | MATH 151; MATH 152"  -> (single, and)
    """
    if _is_blank(alt_str):
        return ()
    groups = (parse_prereqs(part) for part in ALT_GROUP_SPLIT.split(str(alt_str).strip()))
    return tuple(g for g in groups if g["type"] != "none")


def prereq_course_codes(parsed_prereq: dict) -> list[str]:
    """Every course id referenced by a parsed expression, in order."""
    kind = parsed_prereq.get("type")
    if kind == "single":
        return [parsed_prereq["course"]] if parsed_prereq.get("course") else []
    codes: list[str] = []
    if kind in {"and", "or", "choose_n"}:
        for member in parsed_prereq.get("courses", []):
            if isinstance(member, dict):
                codes.extend(prereq_course_codes(member))
            elif member:
                codes.append(member)
    return codes


def required_course_codes(parsed_prereq: dict) -> list[str]:
    """Ids that must all be taken: single and top-level AND members only."""
    kind = parsed_prereq.get("type")
    if kind == "single":
        return [parsed_prereq["course"]] if parsed_prereq.get("course") else []
    if kind == "and":
        return [c for c in parsed_prereq.get("courses", []) if isinstance(c, str) and c]
    return []


def _member_satisfied(member, satisfied_codes: set) -> bool:
    if isinstance(member, dict):
        return prereqs_satisfied(member, satisfied_codes)
    return member in satisfied_codes


def prereqs_satisfied(parsed_prereq: dict, satisfied_codes: set) -> bool:
    """True when `satisfied_codes` meets the expression. Unsupported text never does."""
    kind = parsed_prereq["type"]
    if kind == "none":
        return True
    if kind == "single":
        return parsed_prereq["course"] in satisfied_codes
    members = parsed_prereq.get("courses", [])
    if kind == "and":
        return all(_member_satisfied(m, satisfied_codes) for m in members)
    if kind == "or":
        return any(_member_satisfied(m, satisfied_codes) for m in members)
    if kind == "choose_n":
        return sum(1 for c in members if c in satisfied_codes) >= parsed_prereq["count"]
    return False


def missing_course_codes(parsed_prereq: dict, source: set) -> list[str]:
    """Ids that would have to be added to `source` to satisfy the expression."""
    if prereqs_satisfied(parsed_prereq, source):
        return []
    kind = parsed_prereq["type"]
    if kind == "and":
        missing: list[str] = []
        for member in parsed_prereq["courses"]:
            needed = missing_course_codes(_as_expression(member), source)
            missing.extend(c for c in needed if c not in missing)
        return missing
    if kind in {"single", "or", "choose_n"}:
        return [c for c in prereq_course_codes(parsed_prereq) if c not in source]
    return []


def build_prereq_check_string(
    parsed_prereq: dict,
    completed: set,
    in_progress: set,
) -> str:
    """
    One-line status of every prerequisite, e.g.

      "CS 110 ✓; STAT 120 (in progress) ✓"
      "MATH 201 ✓ (or MATH 250)"
      "1/2 required: CS 210 ✓; MATH 240 ✗"
    """
    def mark(code: str) -> str:
        if code in completed:
            return f"{code} ✓"
        if code in in_progress:
            return f"{code} (in progress) ✓"
        return f"{code} ✗"

    kind = parsed_prereq["type"]
    if kind == "none":
        return "No prerequisites"
    if kind == "single":
        return mark(parsed_prereq["course"])
    if kind == "and":
        return "; ".join(
            build_prereq_check_string(_as_expression(member), completed, in_progress)
            for member in parsed_prereq["courses"]
        )
    if kind == "or":
        codes = parsed_prereq["courses"]
        taken = next((c for c in codes if c in completed or c in in_progress), None)
        if taken is None:
            return " or ".join(mark(c) for c in codes)
        others = " or ".join(c for c in codes if c != taken)
        return f"{mark(taken)} (or {others})"
    if kind == "choose_n":
        codes = parsed_prereq["courses"]
        done = sum(1 for c in codes if c in completed or c in in_progress)
        return f"{done}/{parsed_prereq['count']} required: " + "; ".join(mark(c) for c in codes)
    return "Manual review required"
