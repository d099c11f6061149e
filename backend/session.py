import threading

from config import PlanConfig
from errors import ValidationError
from plan_optimizer import generate_plan
from update_bus import COURSE_TOPIC, PLAN_TOPIC, SEMESTER_TOPIC, PlanUpdated


class PlanningSession:
    """
    One student's planning context.

    Holds the history snapshot and configuration, listens for course and
    semester events, and regenerates the plan lazily once an event marks it
    stale. A finished plan replaces the previous one in a single step; a
    failed or abandoned run leaves the previous plan in place.
    """

    def __init__(
        self,
        course_store,
        history,
        config: PlanConfig | None = None,
        bus=None,
        plan_store=None,
        student_id: str | None = None,
        categories: dict | None = None,
    ):
        self.course_store = course_store
        self.history = history
        self.config = config or PlanConfig()
        self.bus = bus
        self.plan_store = plan_store
        self.student_id = student_id
        self.categories = categories or {}
        self._lock = threading.Lock()
        self._result = None
        self._version = 0
        self._result_version = -1
        self._subscriptions = []
        if bus is not None:
            self._subscriptions = [
                bus.subscribe(COURSE_TOPIC, self._mark_stale),
                bus.subscribe(SEMESTER_TOPIC, self._mark_stale),
            ]

    def _mark_stale(self, event) -> None:
        with self._lock:
            self._version += 1

    @property
    def stale(self) -> bool:
        with self._lock:
            return self._result is None or self._result_version != self._version

    @property
    def result(self):
        """Last finished PlanResult, or None before the first run."""
        with self._lock:
            return self._result

    def plan(self, force: bool = False):
        """Current PlanResult, regenerating when stale or forced."""
        if not force and not self.stale:
            return self.result

        with self._lock:
            started_at = self._version
        result = generate_plan(
            self.course_store.snapshot(),
            self.history,
            self.config,
            categories=self.categories,
        )
        with self._lock:
            self._result = result
            self._result_version = started_at
        self._publish("generated")
        return result

    def save(self) -> dict:
        if self.plan_store is None:
            raise ValidationError("No plan store is configured for this session.", field="plan_store")
        if not self.student_id:
            raise ValidationError("student_id is required to save a plan.", field="student_id")
        result = self.plan()
        ack = self.plan_store.save_plan(self.student_id, result.plan)
        self._publish("saved")
        return ack

    def _publish(self, action: str) -> None:
        if self.bus is not None:
            self.bus.publish(PLAN_TOPIC, PlanUpdated(action=action, student_id=self.student_id))

    def close(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
