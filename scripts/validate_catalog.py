"""
Catalog integrity gate.

Checks a course catalog for prerequisite cycles, references to unknown
courses, courses that fail validation, and requirement categories that
cannot be completed. Importable for tests and runnable as a standalone CLI.

Usage:
    python scripts/validate_catalog.py
    python scripts/validate_catalog.py --path path/to/catalog.xlsx
    python scripts/validate_catalog.py --path data/ --hard-ceiling 20
"""

import argparse
import os
import sys

BACKEND_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend")
sys.path.insert(0, BACKEND_DIR)

from config import HARD_CREDIT_CEILING  # noqa: E402
from prereq_graph import find_dangling_prereqs, validate_graph  # noqa: E402
from validators import partition_valid_courses  # noqa: E402


# ── Validation result ─────────────────────────────────────────────────────────

class ValidationResult:
    """Collects errors and warnings for one catalog validation run."""

    def __init__(self, source: str):
        self.source = source
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def error(self, msg: str) -> None:
        self.errors.append(msg)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        lines = [f"[{status}] Catalog '{self.source}'"]
        for e in self.errors:
            lines.append(f"  [ERROR] {e}")
        for w in self.warnings:
            lines.append(f"  [WARN]  {w}")
        if self.passed and not self.warnings:
            lines.append("  All checks passed.")
        return "\n".join(lines)


# ── Individual checks ─────────────────────────────────────────────────────────

def check_not_empty(catalog: dict, result: ValidationResult) -> None:
    if not catalog:
        result.error("Catalog has no courses.")


def check_no_cycles(catalog: dict, result: ValidationResult) -> None:
    for report in validate_graph(catalog):
        result.error(f"Prerequisite cycle: {report['path']}")


def check_no_dangling_prereqs(catalog: dict, result: ValidationResult) -> None:
    for course_id, missing in find_dangling_prereqs(catalog).items():
        result.error(f"{course_id} references course(s) not in the catalog: {missing}")


def check_courses_valid(catalog: dict, hard_ceiling: int, result: ValidationResult) -> None:
    _, excluded = partition_valid_courses(catalog, hard_ceiling)
    for row in excluded:
        result.error(row["message"])


def check_unsupported_prereqs(catalog: dict, result: ValidationResult) -> None:
    """Unparseable prerequisite text is allowed but needs manual review."""
    flagged = sorted(cid for cid, c in catalog.items() if c.prereqs.get("type") == "unsupported")
    if flagged:
        result.warn(f"{len(flagged)} course(s) need manual prerequisite review: {flagged}")


def check_categories_satisfiable(catalog: dict, categories: dict, result: ValidationResult) -> None:
    for category_id, cat in categories.items():
        known = [c for c in cat["courses"] if c in catalog]
        missing = [c for c in cat["courses"] if c not in catalog]
        if missing:
            result.warn(f"Category '{category_id}' lists course(s) not in the catalog: {missing}")
        if len(known) < cat["needed_count"]:
            result.error(
                f"Category '{category_id}' needs {cat['needed_count']} course(s) "
                f"but only {len(known)} exist in the catalog."
            )


# ── Main validate function ────────────────────────────────────────────────────

def validate_catalog(
    source: str,
    catalog: dict,
    categories: dict | None = None,
    hard_ceiling: int = HARD_CREDIT_CEILING,
) -> ValidationResult:
    """Run every catalog check. Returns a ValidationResult."""
    result = ValidationResult(source)

    check_not_empty(catalog, result)
    check_no_cycles(catalog, result)
    check_no_dangling_prereqs(catalog, result)
    check_courses_valid(catalog, hard_ceiling, result)
    check_unsupported_prereqs(catalog, result)
    check_categories_satisfiable(catalog, categories or {}, result)

    return result


# ── CLI entry point ───────────────────────────────────────────────────────────

def main(args=None):
    parser = argparse.ArgumentParser(
        description="Validate a course catalog before serving plans from it.",
    )
    parser.add_argument(
        "--path", type=str,
        default=os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "data"),
        help="Path to the catalog workbook or CSV directory.",
    )
    parser.add_argument(
        "--hard-ceiling", type=int, default=HARD_CREDIT_CEILING,
        help="Per-term credit ceiling used for the credits check.",
    )
    opts = parser.parse_args(args)

    from data_loader import load_data

    try:
        data = load_data(opts.path)
    except (FileNotFoundError, ValueError) as exc:
        print(f"[FATAL] Could not load catalog: {exc}", file=sys.stderr)
        return 2

    result = validate_catalog(
        opts.path,
        data["catalog"],
        categories=data["categories"],
        hard_ceiling=opts.hard_ceiling,
    )
    for message in data.get("load_warnings", []):
        result.warn(message)
    print(result.summary())
    return 0 if result.passed else 1


if __name__ == "__main__":
    sys.exit(main())
