"""
In-process publish/subscribe fan-out.

Each topic carries one event type. Handlers run synchronously in subscription
order; a failing handler does not stop the others, and every failure is
raised back to the publisher as a single PublishError.
"""

import threading
from dataclasses import dataclass
from itertools import count

from errors import PublishError, ValidationError


@dataclass(frozen=True)
class CourseUpdated:
    action: str  # created | updated | deleted | reload
    course_id: str | None = None
    department: str | None = None


@dataclass(frozen=True)
class PlanUpdated:
    action: str  # generated | saved | discarded
    student_id: str | None = None


@dataclass(frozen=True)
class SemesterUpdated:
    action: str  # opened | closed | updated
    term: str | None = None


COURSE_TOPIC = "course"
PLAN_TOPIC = "plan"
SEMESTER_TOPIC = "semester"

TOPIC_EVENTS = {
    COURSE_TOPIC: CourseUpdated,
    PLAN_TOPIC: PlanUpdated,
    SEMESTER_TOPIC: SemesterUpdated,
}


def _check_topic(topic: str) -> None:
    if topic not in TOPIC_EVENTS:
        raise ValidationError(
            f"Unknown topic '{topic}'. Use one of: {', '.join(sorted(TOPIC_EVENTS))}.",
            field="topic",
        )


class Subscription:
    """Handle returned by ``UpdateBus.subscribe``; owns the right to unsubscribe."""

    def __init__(self, bus: "UpdateBus", topic: str, token: int):
        self._bus = bus
        self.topic = topic
        self._token = token
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> bool:
        """Detach the handler. Returns False when it was already detached."""
        if not self._active:
            return False
        self._active = False
        return self._bus._remove(self.topic, self._token)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()
        return False


class UpdateBus:
    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: dict[str, list[tuple[int, object]]] = {t: [] for t in TOPIC_EVENTS}
        self._tokens = count(1)

    def subscribe(self, topic: str, handler) -> Subscription:
        _check_topic(topic)
        if not callable(handler):
            raise ValidationError("Handler must be callable.", field="handler")
        with self._lock:
            token = next(self._tokens)
            self._handlers[topic].append((token, handler))
        return Subscription(self, topic, token)

    def _remove(self, topic: str, token: int) -> bool:
        with self._lock:
            handlers = self._handlers[topic]
            for idx, (tok, _) in enumerate(handlers):
                if tok == token:
                    del handlers[idx]
                    return True
        return False

    def subscriber_count(self, topic: str) -> int:
        _check_topic(topic)
        with self._lock:
            return len(self._handlers[topic])

    def publish(self, topic: str, event) -> int:
        """
        Deliver `event` to every handler subscribed to `topic` when the call
        starts. Returns the number of handlers invoked.
        """
        _check_topic(topic)
        expected = TOPIC_EVENTS[topic]
        if not isinstance(event, expected):
            raise ValidationError(
                f"Topic '{topic}' carries {expected.__name__} events, got {type(event).__name__}.",
                field="event",
            )
        with self._lock:
            snapshot = list(self._handlers[topic])

        failures = []
        for _, handler in snapshot:
            try:
                handler(event)
            except Exception as exc:
                failures.append((handler, exc))
        if failures:
            raise PublishError(topic, failures)
        return len(snapshot)
