import json

import pytest

from catalog_utils import make_catalog, make_course
from errors import ValidationError
from models import StudentHistory
from session import PlanningSession
from stores import CatalogStore, JsonPlanStore
from update_bus import COURSE_TOPIC, PLAN_TOPIC, SEMESTER_TOPIC, CourseUpdated, SemesterUpdated, UpdateBus


class CountingStore(CatalogStore):
    def __init__(self, catalog):
        super().__init__(catalog)
        self.snapshots = 0

    def snapshot(self):
        self.snapshots += 1
        return super().snapshot()


@pytest.fixture
def store():
    return CountingStore(make_catalog(
        make_course("MATH 101"),
        make_course("MATH 201", prereq="MATH 101"),
    ))


@pytest.fixture
def bus():
    return UpdateBus()


def test_plan_is_reused_until_stale(store, bus):
    session = PlanningSession(store, StudentHistory(), bus=bus)
    first = session.plan()
    assert session.plan() is first
    assert store.snapshots == 1

    bus.publish(COURSE_TOPIC, CourseUpdated("updated", course_id="MATH 101"))
    assert session.stale
    second = session.plan()
    assert store.snapshots == 2
    assert second.to_dict() == first.to_dict()


def test_semester_event_marks_stale(store, bus):
    session = PlanningSession(store, StudentHistory(), bus=bus)
    session.plan()
    bus.publish(SEMESTER_TOPIC, SemesterUpdated("opened", term="Spring 2027"))
    assert session.stale


def test_force_regenerates(store):
    session = PlanningSession(store, StudentHistory())
    session.plan()
    session.plan(force=True)
    assert store.snapshots == 2


def test_generation_is_published(store, bus):
    events = []
    bus.subscribe(PLAN_TOPIC, events.append)
    session = PlanningSession(store, StudentHistory(), bus=bus, student_id="s1")
    session.plan()
    assert [(e.action, e.student_id) for e in events] == [("generated", "s1")]


def test_save_writes_json(store, bus, tmp_path):
    events = []
    bus.subscribe(PLAN_TOPIC, events.append)
    session = PlanningSession(
        store,
        StudentHistory(),
        bus=bus,
        plan_store=JsonPlanStore(str(tmp_path)),
        student_id="s-42",
    )
    ack = session.save()
    assert ack["saved"] is True
    with open(tmp_path / "s-42.json", encoding="utf-8") as fh:
        saved = json.load(fh)
    assert saved["student_id"] == "s-42"
    terms = [t for y in saved["plan"]["years"] for t in y["terms"]]
    assert [c["id"] for c in terms[0]["courses"]] == ["MATH 101"]
    assert [e.action for e in events] == ["generated", "saved"]


def test_save_needs_store_and_student(store, tmp_path):
    with pytest.raises(ValidationError):
        PlanningSession(store, StudentHistory()).save()
    with pytest.raises(ValidationError):
        PlanningSession(store, StudentHistory(), plan_store=JsonPlanStore(str(tmp_path))).save()


def test_unsafe_student_id_rejected(store, tmp_path):
    session = PlanningSession(
        store, StudentHistory(), plan_store=JsonPlanStore(str(tmp_path)), student_id="../.."
    )
    with pytest.raises(ValidationError):
        session.save()


def test_close_detaches_from_bus(store, bus):
    with PlanningSession(store, StudentHistory(), bus=bus):
        assert bus.subscriber_count(COURSE_TOPIC) == 1
    assert bus.subscriber_count(COURSE_TOPIC) == 0
    assert bus.subscriber_count(SEMESTER_TOPIC) == 0
