import pytest

from errors import PublishError, ValidationError
from update_bus import (
    COURSE_TOPIC,
    PLAN_TOPIC,
    SEMESTER_TOPIC,
    CourseUpdated,
    PlanUpdated,
    SemesterUpdated,
    UpdateBus,
)


@pytest.fixture
def bus():
    return UpdateBus()


def test_handlers_run_in_subscription_order(bus):
    calls = []
    bus.subscribe(COURSE_TOPIC, lambda e: calls.append(("first", e.course_id)))
    bus.subscribe(COURSE_TOPIC, lambda e: calls.append(("second", e.course_id)))
    delivered = bus.publish(COURSE_TOPIC, CourseUpdated("updated", course_id="MATH 101"))
    assert delivered == 2
    assert calls == [("first", "MATH 101"), ("second", "MATH 101")]


def test_topics_are_isolated(bus):
    calls = []
    bus.subscribe(PLAN_TOPIC, calls.append)
    bus.publish(SEMESTER_TOPIC, SemesterUpdated("opened", term="Fall 2026"))
    assert calls == []


def test_failing_handler_does_not_stop_others(bus):
    calls = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(PLAN_TOPIC, broken)
    bus.subscribe(PLAN_TOPIC, calls.append)
    event = PlanUpdated("generated", student_id="s1")
    with pytest.raises(PublishError) as exc_info:
        bus.publish(PLAN_TOPIC, event)
    assert calls == [event]
    assert exc_info.value.topic == PLAN_TOPIC
    assert len(exc_info.value.failures) == 1
    assert "RuntimeError: boom" in exc_info.value.message


def test_unsubscribe_stops_delivery(bus):
    calls = []
    sub = bus.subscribe(COURSE_TOPIC, calls.append)
    assert sub.unsubscribe() is True
    assert sub.unsubscribe() is False
    assert sub.active is False
    bus.publish(COURSE_TOPIC, CourseUpdated("reload"))
    assert calls == []
    assert bus.subscriber_count(COURSE_TOPIC) == 0


def test_same_handler_twice_gets_two_tokens(bus):
    calls = []
    first = bus.subscribe(COURSE_TOPIC, calls.append)
    bus.subscribe(COURSE_TOPIC, calls.append)
    first.unsubscribe()
    bus.publish(COURSE_TOPIC, CourseUpdated("reload"))
    assert len(calls) == 1


def test_subscription_as_context_manager(bus):
    with bus.subscribe(SEMESTER_TOPIC, lambda e: None):
        assert bus.subscriber_count(SEMESTER_TOPIC) == 1
    assert bus.subscriber_count(SEMESTER_TOPIC) == 0


def test_handler_subscribed_during_publish_waits_for_next_event(bus):
    calls = []

    def late(event):
        calls.append("late")

    def subscriber(event):
        calls.append("early")
        bus.subscribe(COURSE_TOPIC, late)

    bus.subscribe(COURSE_TOPIC, subscriber)
    assert bus.publish(COURSE_TOPIC, CourseUpdated("reload")) == 1
    assert calls == ["early"]


def test_wrong_event_type_rejected(bus):
    with pytest.raises(ValidationError):
        bus.publish(COURSE_TOPIC, PlanUpdated("generated"))


def test_unknown_topic_rejected(bus):
    with pytest.raises(ValidationError):
        bus.subscribe("grades", lambda e: None)


def test_non_callable_handler_rejected(bus):
    with pytest.raises(ValidationError):
        bus.subscribe(COURSE_TOPIC, "not a handler")
