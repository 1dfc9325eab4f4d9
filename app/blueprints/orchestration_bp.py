"""
Orchestration blueprint — task assignment and timeline orchestration API.

Endpoint groups (all under /api/v1/orchestration):
  Tasks            GET/POST /tasks, GET /tasks/<id>
  Task lifecycle   POST /tasks/<id>/transition, PUT /tasks/<id>/progress,
                   POST /tasks/<id>/dependencies
  Assignment       GET  /tasks/<id>/suggestions, POST /tasks/<id>/assign
  Bulk generation  POST /tasks/bulk
  Timelines        GET/POST /timelines, GET /timelines/<id>,
                   POST /timelines/<id>/recompute, GET /timelines/<id>/gantt,
                   GET  /timelines/<id>/analytics
  Milestones       POST /timelines/<id>/milestones, POST /milestones/<id>/transition
  Analytics        GET  /analytics?period=last_30_days

organization_id is read from the query string or JSON body.
Request shape is checked here (400); business rules live in
OrchestrationService and surface through the error handlers below.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from app.blueprints import paginate_items
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.services.assignment_scorer import ScoringOptions
from app.services.orchestration_service import OrchestrationService
from app.services.stores import TaskFilter
from app.utils.errors import E, api_error, domain_error
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

orchestration_bp = Blueprint("orchestration", __name__, url_prefix="/api/v1/orchestration")


def _service() -> OrchestrationService:
    return OrchestrationService.from_config(current_app.config)


def _organization_id() -> int | None:
    """Extract organization_id from query string or JSON body."""
    oid = request.args.get("organization_id", type=int)
    if oid:
        return oid
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data.get("organization_id") is not None:
        try:
            return int(data["organization_id"])
        except (TypeError, ValueError):
            return None
    return None


def _json_body() -> dict | None:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _int_field(data: dict, name: str):
    value = data.get(name)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _flag(name: str, default: bool = True) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


# ── Error handlers ────────────────────────────────────────────────────────────


@orchestration_bp.errorhandler(NotFoundError)
@orchestration_bp.errorhandler(ValidationError)
@orchestration_bp.errorhandler(ConflictError)
def _handle_domain_error(error):
    db.session.rollback()
    return domain_error(error)


@orchestration_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    db.session.rollback()
    logger.exception("Unexpected error in orchestration_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ═════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════


@orchestration_bp.route("/tasks", methods=["GET"])
def list_tasks():
    """List tasks.

    Query params: organization_id, framework, status, priority,
    assigned_to, bulk_operation_id, limit, offset
    """
    flt = TaskFilter(
        organization_id=_organization_id(),
        framework=request.args.get("framework"),
        status=request.args.get("status"),
        priority=request.args.get("priority"),
        assigned_to=request.args.get("assigned_to", type=int),
        bulk_operation_id=request.args.get("bulk_operation_id"),
    )
    page, total = paginate_items(_service().find_tasks(flt))
    return jsonify({"items": [t.to_dict() for t in page], "total": total}), 200


@orchestration_bp.route("/tasks", methods=["POST"])
def create_task():
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    if not (data.get("title") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "title is required")

    task = _service().create_task(data, actor=data.get("created_by"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(task.to_dict()), 201


@orchestration_bp.route("/tasks/<int:task_id>", methods=["GET"])
def get_task(task_id):
    task = _service().get_task(task_id, _organization_id())
    result = task.to_dict()
    if request.args.get("include") == "activity":
        result["activity"] = [a.to_dict() for a in task.activities]
    return jsonify(result), 200


@orchestration_bp.route("/tasks/<int:task_id>/transition", methods=["POST"])
def transition_task(task_id):
    """Body: {status, actor?, note?}"""
    data = _json_body() or {}
    new_status = data.get("status")
    if not new_status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    task = _service().transition_task(
        task_id, new_status,
        actor=data.get("actor"),
        note=data.get("note"),
        organization_id=_organization_id(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(task.to_dict()), 200


@orchestration_bp.route("/tasks/<int:task_id>/progress", methods=["PUT"])
def update_progress(task_id):
    """Body: {progress, actor?, note?}"""
    data = _json_body() or {}
    if "progress" not in data:
        return api_error(E.VALIDATION_REQUIRED, "progress is required")

    task = _service().update_progress(
        task_id, data["progress"],
        actor=data.get("actor"),
        note=data.get("note"),
        organization_id=_organization_id(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(task.to_dict()), 200


@orchestration_bp.route("/tasks/<int:task_id>/dependencies", methods=["POST"])
def add_dependency(task_id):
    """Body: {task_id, type?}  (type: blocks | triggers | informs)"""
    data = _json_body() or {}
    target_id = _int_field(data, "task_id")
    if target_id is None:
        return api_error(E.VALIDATION_REQUIRED, "task_id (integer) is required")

    dep = _service().add_dependency(
        task_id, target_id,
        dependency_type=data.get("type") or "blocks",
        actor=data.get("actor"),
        organization_id=_organization_id(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(dep.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Assignment
# ═════════════════════════════════════════════════════════════════════════


@orchestration_bp.route("/tasks/<int:task_id>/suggestions", methods=["GET"])
def suggest_assignees(task_id):
    """Ranked assignee suggestions.

    Query params: consider_workload, consider_skills, consider_availability
    (default true), max_suggestions
    """
    max_suggestions = request.args.get("max_suggestions", type=int)
    if max_suggestions is not None and max_suggestions < 1:
        return api_error(E.VALIDATION_INVALID, "max_suggestions must be positive")
    options = ScoringOptions(
        consider_workload=_flag("consider_workload"),
        consider_skills=_flag("consider_skills"),
        consider_availability=_flag("consider_availability"),
        max_suggestions=max_suggestions,
    )
    result = _service().suggest_assignees(task_id, _organization_id(), options)
    body = result.to_dict()
    body["task_id"] = task_id
    return jsonify(body), 200


@orchestration_bp.route("/tasks/<int:task_id>/assign", methods=["POST"])
def assign_task(task_id):
    """Body: {assigned_to, assigned_by?, note?, priority_override?, due_date_adjustment?}"""
    data = _json_body() or {}
    assigned_to = _int_field(data, "assigned_to")
    if assigned_to is None:
        return api_error(E.VALIDATION_REQUIRED, "assigned_to (integer) is required")

    task = _service().assign_task(
        task_id, assigned_to,
        assigned_by=data.get("assigned_by"),
        note=data.get("note"),
        priority_override=data.get("priority_override"),
        due_date_adjustment=data.get("due_date_adjustment"),
        organization_id=_organization_id(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(task.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Bulk generation
# ═════════════════════════════════════════════════════════════════════════


@orchestration_bp.route("/tasks/bulk", methods=["POST"])
def create_bulk_tasks():
    """Body: {source, sourceId?, taskTemplate: {...}, gaps: [...]}"""
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    if not isinstance(data.get("gaps"), list):
        return api_error(E.VALIDATION_REQUIRED, "gaps (list) is required")

    result = _service().create_bulk_tasks(
        data,
        organization_id=_organization_id(),
        actor=data.get("created_by"),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Timelines & milestones
# ═════════════════════════════════════════════════════════════════════════


@orchestration_bp.route("/timelines", methods=["GET"])
def list_timelines():
    """List timelines, newest first.

    Query params: organization_id, status, limit, offset
    """
    timelines = _service().list_timelines(_organization_id(), request.args.get("status"))
    page, total = paginate_items(timelines)
    return jsonify({"items": [tl.to_dict() for tl in page], "total": total}), 200


@orchestration_bp.route("/timelines", methods=["POST"])
def create_timeline():
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    if not (data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")

    timeline = _service().create_timeline(data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(timeline.to_dict()), 201


@orchestration_bp.route("/timelines/<int:timeline_id>", methods=["GET"])
def get_timeline(timeline_id):
    timeline = _service().get_timeline(timeline_id, _organization_id())
    return jsonify(timeline.to_dict()), 200


@orchestration_bp.route("/timelines/<int:timeline_id>/recompute", methods=["POST"])
def recompute_timeline(timeline_id):
    timeline = _service().recompute_timeline(timeline_id, _organization_id())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(timeline.to_dict()), 200


@orchestration_bp.route("/timelines/<int:timeline_id>/gantt", methods=["GET"])
def get_gantt(timeline_id):
    """Query params: granularity (day | week | month, default week)"""
    granularity = request.args.get("granularity", "week")
    layout = _service().get_gantt(timeline_id, granularity, _organization_id())
    return jsonify(layout.to_dict()), 200


@orchestration_bp.route("/timelines/<int:timeline_id>/analytics", methods=["GET"])
def timeline_analytics(timeline_id):
    return jsonify(_service().timeline_analytics(timeline_id, _organization_id())), 200


@orchestration_bp.route("/timelines/<int:timeline_id>/milestones", methods=["POST"])
def create_milestone(timeline_id):
    """Body: {name, type?, target_date, progress?, dependencies?: {tasks, milestones},
    success_criteria?, attendees?}"""
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    if not (data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    if not data.get("target_date"):
        return api_error(E.VALIDATION_REQUIRED, "target_date is required")

    milestone = _service().create_milestone(timeline_id, data, _organization_id())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(milestone.to_dict()), 201


@orchestration_bp.route("/milestones/<int:milestone_id>/transition", methods=["POST"])
def transition_milestone(milestone_id):
    """Body: {status}"""
    data = _json_body() or {}
    new_status = data.get("status")
    if not new_status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    milestone = _service().transition_milestone(milestone_id, new_status, _organization_id())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(milestone.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Organisation analytics
# ═════════════════════════════════════════════════════════════════════════


@orchestration_bp.route("/analytics", methods=["GET"])
def orchestration_analytics():
    """Query params: organization_id, period (last_7_days | last_30_days | last_90_days)"""
    body = _service().orchestration_analytics(_organization_id(), request.args.get("period"))
    return jsonify(body), 200
