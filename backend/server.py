import os
import sys
import time
import threading
import hashlib
import json

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

# config reads the environment at import time.
load_dotenv()

from cache import CacheService
from config import SLOW_REQUEST_LOG_MS, PlanConfig, PlannerOptions
from data_loader import load_data
from eligibility import check_can_take
from errors import (
    PrerequisiteGraphError,
    PublishError,
    UpstreamUnavailable,
    ValidationError,
)
from models import StudentHistory, normalize_semester_label
from normalizer import normalize_course_id, normalize_input
from plan_optimizer import generate_plan
from recommender import run_recommendation
from stores import CachedCourseStore, CatalogStore, JsonPlanStore
from unlocks import build_reverse_prereq_map
from update_bus import COURSE_TOPIC, PLAN_TOPIC, CourseUpdated, PlanUpdated, UpdateBus


app = Flask(__name__)

# ── Paths ─────────────────────────────────────────────────────────────────────
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_DEFAULT_DATA_PATH = os.path.join(PROJECT_ROOT, "data")


def _project_path(raw, default: str) -> str:
    """Env paths may be relative to the project root."""
    if not raw:
        return default
    return raw if os.path.isabs(raw) else os.path.join(PROJECT_ROOT, raw)


DATA_PATH = _project_path(os.environ.get("DATA_PATH"), _DEFAULT_DATA_PATH)
PLAN_STORE_DIR = _project_path(os.environ.get("PLAN_STORE_DIR"), os.path.join(PROJECT_ROOT, "plans"))
_data_lock = threading.Lock()
_data_mtime = None
_data = None

# ── Services ──────────────────────────────────────────────────────────────────
_bus = UpdateBus()
_cache = CacheService()
_cache.attach(_bus)
_plan_store = JsonPlanStore(PLAN_STORE_DIR)
_course_store = CachedCourseStore(CatalogStore({}), _cache.objects)
_reverse_map: dict = {}


def _cache_enabled() -> bool:
    return not app.config.get("TESTING", False)


def _stable_payload_hash(payload) -> str:
    normalized = payload if payload is not None else {}
    encoded = json.dumps(
        normalized,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
    ).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def _data_version_tag() -> str:
    return "none" if _data_mtime is None else str(_data_mtime)


def _request_cache_key(prefix: str, payload) -> str:
    return f"{prefix}:{_data_version_tag()}:{_stable_payload_hash(payload)}"


def _data_file_mtime(path: str):
    try:
        if os.path.isdir(path):
            mtimes = [
                os.path.getmtime(os.path.join(path, f))
                for f in os.listdir(path)
                if f.endswith(".csv")
            ]
            return max(mtimes) if mtimes else None
        return os.path.getmtime(path)
    except OSError:
        return None


def _install_data(new_data: dict, mtime) -> None:
    """Swap the runtime catalog and the services derived from it."""
    global _data, _data_mtime, _course_store, _reverse_map
    _data = new_data
    _data_mtime = mtime
    _course_store = CachedCourseStore(CatalogStore(new_data["catalog"]), _cache.objects)
    _reverse_map = build_reverse_prereq_map(new_data["catalog"])


def _publish_reload() -> None:
    try:
        _bus.publish(COURSE_TOPIC, CourseUpdated(action="reload"))
    except PublishError as exc:
        print(f"[WARN] Catalog reload subscribers failed: {exc}", file=sys.stderr)


# ── Startup data load ──────────────────────────────────────────────────────────
try:
    _install_data(load_data(DATA_PATH), _data_file_mtime(DATA_PATH))
    print(f"[OK] Loaded {len(_data['catalog'])} courses from {DATA_PATH}")
except FileNotFoundError:
    if DATA_PATH != _DEFAULT_DATA_PATH and os.path.exists(_DEFAULT_DATA_PATH):
        print(
            f"[WARN] DATA_PATH not found ({DATA_PATH}); "
            f"falling back to default catalog ({_DEFAULT_DATA_PATH}).",
            file=sys.stderr,
        )
        DATA_PATH = _DEFAULT_DATA_PATH
        _install_data(load_data(DATA_PATH), _data_file_mtime(DATA_PATH))
        print(f"[OK] Loaded {len(_data['catalog'])} courses from {DATA_PATH}")
    else:
        print(f"[FATAL] Data file not found: {DATA_PATH}", file=sys.stderr)
        sys.exit(1)
except Exception as exc:
    print(f"[FATAL] Failed to load data: {exc}", file=sys.stderr)
    sys.exit(1)


def _is_newer(mtime) -> bool:
    return mtime is not None and (_data_mtime is None or mtime > _data_mtime)


def _reload_data_if_changed(force: bool = False) -> bool:
    """
    Reload the catalog when DATA_PATH is newer on disk than the loaded copy.

    Returns True after a swap. A catalog that fails to load leaves the
    current one in place.
    """
    if not force and not _is_newer(_data_file_mtime(DATA_PATH)):
        return False

    with _data_lock:
        # Another request may have reloaded while this one waited.
        mtime = _data_file_mtime(DATA_PATH)
        if not force and not _is_newer(mtime):
            return False
        try:
            fresh = load_data(DATA_PATH)
        except Exception as exc:
            print(f"[WARN] Catalog reload failed; serving the previous catalog: {exc}", file=sys.stderr)
            return False
        _install_data(fresh, mtime)
        print(f"[OK] Reloaded {len(fresh['catalog'])} courses from {DATA_PATH}")

    _publish_reload()
    return True


def _refresh_data_if_needed() -> None:
    try:
        _reload_data_if_changed()
    except OSError as exc:
        print(f"[WARN] Catalog reload check failed: {exc}", file=sys.stderr)


# -- Request timing ----------------------------------------------------------
@app.before_request
def _start_request_timer():
    g._request_start_time = time.perf_counter()


@app.after_request
def _add_security_headers(response):
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "same-origin"

    started = getattr(g, "_request_start_time", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


# ── Error handlers ─────────────────────────────────────────────────────────────
def _error_response(error_code: str, message: str, status: int, **extra):
    body = {"error_code": error_code, "message": message}
    body.update(extra)
    return jsonify({"mode": "error", "error": body}), status


@app.errorhandler(ValidationError)
def handle_validation_error(e):
    extra = {k: v for k, v in e.to_dict().items() if k in {"course_id", "field"}}
    return _error_response("INVALID_INPUT", e.message, 400, **extra)


@app.errorhandler(PrerequisiteGraphError)
def handle_graph_error(e):
    return _error_response("CATALOG_CORRUPT", e.message, 422, cycles=e.cycles, dangling=e.dangling)


@app.errorhandler(UpstreamUnavailable)
def handle_upstream_error(e):
    print(f"[WARN] Upstream unavailable: {e.message}", file=sys.stderr)
    return _error_response("UPSTREAM_UNAVAILABLE", e.message, 503)


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return e
    print(f"[WARN] Unhandled error on {request.path}: {type(e).__name__}: {e}", file=sys.stderr)
    return _error_response("SERVER_ERROR", "An unexpected server error occurred.", 500)


# ── Request parsing ────────────────────────────────────────────────────────────
def _require_data():
    if not _data:
        raise UpstreamUnavailable("Course data not loaded.")
    return _data


def _json_body() -> dict:
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")
    return body


def _coerce_course_list(raw_value) -> str:
    if raw_value is None:
        return ""
    if isinstance(raw_value, list):
        return ", ".join(str(item) for item in raw_value if item is not None)
    return str(raw_value)


def _resolve_ids(raw_value, catalog_codes: set, field: str) -> list[str]:
    """
    Normalizes a course list. Well-formed codes outside the catalog are kept
    (transfer credit can still satisfy prerequisites); unreadable tokens are
    rejected.
    """
    result = normalize_input(_coerce_course_list(raw_value), catalog_codes)
    if result["invalid"]:
        raise ValidationError(
            f"Unrecognized course id(s) in {field}: {', '.join(result['invalid'])}.",
            field=field,
        )
    return result["valid"] + result["not_in_catalog"]


def _parse_history(body: dict, catalog_codes: set) -> StudentHistory:
    """
    completed_courses accepts a list / comma string of ids, a list of
    {"course_id", "grade"} objects, or an {id: grade} mapping.
    """
    raw_completed = body.get("completed_courses", body.get("completed"))
    completed: dict = {}
    if isinstance(raw_completed, dict):
        for course_id, grade in raw_completed.items():
            completed[normalize_course_id(course_id)] = grade
    elif isinstance(raw_completed, list) and any(isinstance(i, dict) for i in raw_completed):
        for item in raw_completed:
            if not isinstance(item, dict) or not str(item.get("course_id") or "").strip():
                raise ValidationError("Each completed course needs a course_id.", field="completed_courses")
            completed[normalize_course_id(item["course_id"])] = item.get("grade")
    else:
        for course_id in _resolve_ids(raw_completed, catalog_codes, "completed_courses"):
            completed[course_id] = None

    in_progress = _resolve_ids(
        body.get("in_progress_courses", body.get("in_progress")),
        catalog_codes,
        "in_progress_courses",
    )
    return StudentHistory(completed=completed, in_progress=frozenset(in_progress))


def _parse_semester(body: dict, *names, default=None):
    for name in names:
        raw = body.get(name)
        if raw not in (None, ""):
            return normalize_semester_label(str(raw))
    return default


# -- Health endpoint --------------------------------------------------------
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok" if _data else "degraded",
        "courses": len(_data["catalog"]) if _data else 0,
        "data_version": _data_version_tag(),
        "cache": _cache.stats(),
    })


# ── Routes ─────────────────────────────────────────────────────────────────────
@app.route("/courses", methods=["GET"])
def get_courses():
    _refresh_data_if_needed()
    data = _require_data()
    department = request.args.get("department", "").strip()
    level_raw = request.args.get("level", "").strip()

    if department:
        courses = _course_store.list_by_department(department)
    elif level_raw:
        courses = None
    else:
        courses = [data["catalog"][c] for c in sorted(data["catalog"])]

    if level_raw:
        try:
            level = int(level_raw)
        except ValueError:
            raise ValidationError("level must be an integer.", field="level") from None
        by_level = _course_store.list_by_level(level)
        courses = by_level if courses is None else [c for c in courses if c.level == level]

    return jsonify({"courses": [c.to_dict() for c in courses]})


@app.route("/can-take", methods=["POST"])
def can_take_endpoint():
    """Standalone eligibility check for a single course in a target term."""
    _refresh_data_if_needed()
    data = _require_data()
    body = _json_body()

    requested_raw = str(body.get("course_id") or body.get("requested_course") or "").strip()
    if not requested_raw:
        raise ValidationError("course_id is required.", field="course_id")
    requested = normalize_course_id(requested_raw)
    target_semester = _parse_semester(body, "target_semester", "term")
    if target_semester is None:
        raise ValidationError("target_semester is required (e.g. 'Fall 2026').", field="target_semester")

    course = _course_store.get_course(requested)
    if course is None:
        return jsonify({
            "mode": "can_take",
            "course_id": requested,
            "eligible": False,
            "reason": f"{requested} is not in the course catalog.",
            "missing_prereqs": [],
            "pending_prereqs": [],
            "unknown_prereqs": [],
            "not_offered_this_term": False,
            "unsupported_prereq_format": False,
        })

    history = _parse_history(body, data["catalog_codes"])
    result = check_can_take(
        course,
        history.completed_ids(),
        history.in_progress_ids(),
        target_semester,
        current_term=_parse_semester(body, "current_semester", "current_term"),
        catalog_ids=data["catalog_codes"],
    )
    result["mode"] = "can_take"
    result["target_semester"] = target_semester
    return jsonify(result)


@app.route("/recommend", methods=["POST"])
def recommend():
    _refresh_data_if_needed()
    data = _require_data()
    body = _json_body()

    cache_key = _request_cache_key("recommend", body)
    if _cache_enabled():
        cached = _cache.responses.get(cache_key)
        if cached:
            return jsonify(cached)

    options = PlannerOptions.from_payload(body)
    target_semester = _parse_semester(body, "target_semester", "term")
    if target_semester is None:
        raise ValidationError("target_semester is required (e.g. 'Fall 2026').", field="target_semester")

    payload = run_recommendation(
        data["catalog"],
        _parse_history(body, data["catalog_codes"]),
        target_semester,
        options=options,
        categories=data["categories"],
        current_term=_parse_semester(body, "current_semester", "current_term"),
        reverse_map=_reverse_map,
    )
    payload["mode"] = "recommendations"
    if _cache_enabled():
        _cache.responses.set(cache_key, payload)
    return jsonify(payload)


@app.route("/plan", methods=["POST"])
def plan_endpoint():
    _refresh_data_if_needed()
    data = _require_data()
    body = _json_body()
    student_id = str(body.get("student_id") or "").strip() or None

    cache_key = _request_cache_key("plan", body)
    if _cache_enabled() and student_id is None:
        cached = _cache.responses.get(cache_key)
        if cached:
            return jsonify(cached)

    config = PlanConfig.from_payload(body)
    history = _parse_history(body, data["catalog_codes"])
    result = generate_plan(data["catalog"], history, config, categories=data["categories"])

    payload = result.to_dict()
    payload["mode"] = "plan"
    payload["config"] = {
        "start_term": config.start_term,
        "max_years": config.max_years,
        "include_summer": config.include_summer,
        "credits": {
            "min": config.min_credits,
            "target": config.target_credits,
            "max": config.max_credits,
            "hard_ceiling": config.hard_ceiling,
        },
        "options": config.options.to_dict(),
    }

    if student_id is not None:
        payload["saved"] = _plan_store.save_plan(student_id, result.plan)
        _bus.publish(PLAN_TOPIC, PlanUpdated(action="saved", student_id=student_id))
    elif _cache_enabled():
        _cache.responses.set(cache_key, payload)
    return jsonify(payload)


@app.route("/cache/invalidate", methods=["POST"])
def invalidate_cache_endpoint():
    """Hook for the catalog sync job."""
    body = request.get_json(force=True, silent=True) or {}
    pattern = body.get("pattern") if isinstance(body, dict) else None
    if pattern is not None and not isinstance(pattern, str):
        raise ValidationError("pattern must be a string.", field="pattern")
    dropped = _cache.invalidate_all(pattern)
    print(f"[OK] Cache invalidated pattern={pattern or '*'} objects={dropped['objects']} responses={dropped['responses']}")
    return jsonify({"invalidated": dropped, "pattern": pattern})


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
