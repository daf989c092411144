# Overview: Project tasks; completing a task files its certificate request atomically.

from __future__ import annotations

from ..extensions import db
from ..models import Task, User
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)
from .concurrency import commit_or_raise, lock_for_update, run_unit_of_work
from .request_service import create_request
from .transition_service import notify_status
from certflow.time_utils import utcnow


TASK_STATUSES = ("to_do", "in_progress", "done")

TASK_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "description",
        "doc_url",
        "associated_team",
        "associated_project",
        "assignee_id",
        "status",
    },
    required_on_create={"name"},
)


def create_task(payload: dict, caller) -> Task:
    patch = validate_payload(model=Task, payload=payload, policy=TASK_POLICY)

    status = patch.pop("status", None) or "to_do"
    if status == "done":
        raise ValidationError("Use the complete action to finish a task")
    if status not in TASK_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(TASK_STATUSES)}")

    assignee_id = patch.get("assignee_id")
    if assignee_id:
        assignee = db.session.get(User, assignee_id)
        if assignee is None:
            raise ValidationError("assignee_id does not match a known user")
        patch["assignee_name"] = assignee.name

    task = Task(created_by_id=caller.id, status=status, created_at=utcnow(), **patch)
    db.session.add(task)
    commit_or_raise()
    return task


def list_tasks(*, assignee_id: str | None = None, status: str | None = None) -> list[Task]:
    query = db.session.query(Task)
    if assignee_id:
        query = query.filter_by(assignee_id=assignee_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Task.id.desc()).all()


def complete_task(task_id: int, caller, overrides: dict | None = None):
    """
    Mark a task done and file a certificate request for it, in ONE transaction.

    overrides may supply request fields the task lacks (associated_team,
    associated_project, description). Returns (task, request).
    """
    overrides = dict(overrides or {})

    def _op():
        task = lock_for_update(db.session.query(Task).filter_by(id=task_id)).first()
        if task is None:
            raise NotFoundError("Task not found")
        if task.status == "done":
            raise ConflictError("Task is already done")

        request_payload = {
            "task_title": task.name,
            "associated_team": overrides.get("associated_team") or task.associated_team,
            "associated_project": overrides.get("associated_project") or task.associated_project,
            "description": overrides.get("description") or task.description or task.name,
        }
        if task.doc_url:
            request_payload["task_link"] = task.doc_url
        missing = sorted(k for k, v in request_payload.items() if not v)
        if missing:
            db.session.rollback()
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        try:
            req = create_request(request_payload, caller, commit=False)
        except ValidationError:
            db.session.rollback()
            raise

        task.status = "done"
        task.completed_at = utcnow()
        task.certificate_request_id = req.id
        commit_or_raise()
        return task, req

    task, req = run_unit_of_work(_op)
    notify_status(req, caller.id)
    return task, req
