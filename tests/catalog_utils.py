"""Builders shared by the planner tests."""

from data_loader import parse_meetings
from models import SEASONS, Course
from prereq_parser import parse_alternatives, parse_prereqs


def make_course(
    course_id: str,
    credits: int = 3,
    prereq: str = "none",
    alt: str = "",
    offered=SEASONS,
    meetings: str = "",
    grades: dict | None = None,
    name: str = "",
) -> Course:
    dept, _, number = course_id.partition(" ")
    return Course(
        id=course_id,
        code=course_id,
        name=name or course_id,
        credits=credits,
        department=dept,
        level=min(600, int(number[0]) * 100) if number[:1].isdigit() else 100,
        prereqs=parse_prereqs(prereq),
        alternatives=parse_alternatives(alt),
        meetings=parse_meetings(meetings),
        grade_distribution=tuple((grades or {}).items()),
        terms_offered=frozenset(offered),
    )


def make_catalog(*courses) -> dict:
    return {c.id: c for c in courses}
