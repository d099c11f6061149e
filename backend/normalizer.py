import re

# DEPT NNN, DEPT-NNN, DEPTNNN, CS 2110, MATH 101H
CANONICAL = re.compile(r'^([A-Za-z]{2,6})\s*[-]?\s*(\d{3,4}[A-Za-z]?)$')
_LIST_SPLIT_RE = re.compile(r'[,\n;]+')
_WHITESPACE_RE = re.compile(r'\s+')


def normalize_code(raw: str) -> str | None:
    """'math101' / 'MATH-101' / 'math 101h' → 'MATH 101' / 'MATH 101H'; None if not a code."""
    text = str(raw or "").strip()
    m = CANONICAL.match(text) if text else None
    if m is None:
        return None
    return f"{m.group(1).upper()} {m.group(2).upper()}"


def normalize_course_id(raw) -> str:
    """Canonical code when the id looks like one, else the trimmed raw id."""
    text = str(raw or "").strip()
    return normalize_code(text) or text


def _classify(token: str, catalog_codes: set) -> tuple[str, str]:
    code = normalize_code(token)
    if code is None:
        # Non-code catalog ids (e.g. "ind-study-1") are accepted verbatim.
        return ("valid", token) if token in catalog_codes else ("invalid", token)
    return ("valid", code) if code in catalog_codes else ("not_in_catalog", code)


def normalize_input(raw_str: str, catalog_codes: set) -> dict:
    """
    Splits a comma, semicolon or newline separated course list.

    Returns:
      {
        "valid":          ["MATH 101", "CS 2110"],  # in the catalog
        "invalid":        ["asdfasdf"],              # not a course code
        "not_in_catalog": ["MATH 999"]               # well-formed, unknown
      }
    First occurrence wins; later duplicates are dropped.
    """
    result = {"valid": [], "invalid": [], "not_in_catalog": []}
    seen: set[str] = set()
    for token in _LIST_SPLIT_RE.split(raw_str or ""):
        token = token.strip()
        if not token:
            continue
        bucket, value = _classify(token, catalog_codes)
        if value in seen:
            continue
        seen.add(value)
        result[bucket].append(value)
    return result


def normalize_cache_key(raw) -> str:
    """Case-folds and collapses whitespace so equivalent queries share a key."""
    return _WHITESPACE_RE.sub(" ", str(raw or "")).strip().casefold()
