"""Board endpoints: statuses, tasks, comments and attachments.

Every endpoint resolves the owning project first and runs the same access
check as the project routes.
"""
from __future__ import annotations

from flask import Blueprint, g, request

from forms import AttachmentForm, CommentForm, StatusForm, TaskForm
from models.project_member import ProjectRole
from routes import json_payload, json_success, login_required, validate_form
from services.access_service import require_project_access
from services.errors import Forbidden
from services.task_service import (
    TASK_FIELDS,
    add_attachment,
    add_comment,
    create_status,
    create_task,
    delete_attachment,
    delete_comment,
    delete_task,
    get_attachment,
    get_comment,
    get_task,
    list_attachments,
    list_comments,
    list_statuses,
    list_tasks,
    update_task,
)

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api")


def _require_task(task_id: str, minimum_role: ProjectRole | None = None):
    task = get_task(task_id)
    access = require_project_access(task.project_id, g.user.id, minimum_role)
    return task, access


@tasks_bp.route("/projects/<project_id>/statuses", methods=["GET"])
@login_required
def get_statuses(project_id: str):
    access = require_project_access(project_id, g.user.id)
    return json_success(data=[status.to_dict() for status in list_statuses(access.project)])


@tasks_bp.route("/projects/<project_id>/statuses", methods=["POST"])
@login_required
def create_status_route(project_id: str):
    access = require_project_access(project_id, g.user.id, ProjectRole.PM)
    form = validate_form(StatusForm, json_payload())
    status = create_status(access.project, form.name.data, form.order.data)
    return json_success(201, data=status.to_dict())


@tasks_bp.route("/projects/<project_id>/tasks", methods=["GET"])
@login_required
def get_tasks(project_id: str):
    access = require_project_access(project_id, g.user.id)
    return json_success(data=[task.to_dict() for task in list_tasks(access.project)])


@tasks_bp.route("/projects/<project_id>/tasks", methods=["POST"])
@login_required
def create_task_route(project_id: str):
    access = require_project_access(project_id, g.user.id)
    payload = json_payload()
    validate_form(TaskForm, payload)
    task = create_task(access.project, payload)
    return json_success(201, data=task.to_dict())


@tasks_bp.route("/tasks/<task_id>", methods=["GET"])
@login_required
def get_task_route(task_id: str):
    task, _ = _require_task(task_id)
    payload = task.to_dict()
    payload["comments"] = [comment.to_dict() for comment in list_comments(task)]
    payload["attachments"] = [attachment.to_dict() for attachment in task.attachments]
    return json_success(data=payload)


@tasks_bp.route("/tasks/<task_id>", methods=["PATCH"])
@login_required
def update_task_route(task_id: str):
    task, _ = _require_task(task_id)
    payload = json_payload()
    task = update_task(task, {key: payload[key] for key in TASK_FIELDS if key in payload})
    return json_success(data=task.to_dict())


@tasks_bp.route("/tasks/<task_id>", methods=["DELETE"])
@login_required
def delete_task_route(task_id: str):
    task, _ = _require_task(task_id, ProjectRole.PM)
    json_payload()
    delete_task(task)
    return json_success(message="Task deleted.")


@tasks_bp.route("/tasks/<task_id>/comments", methods=["GET"])
@login_required
def get_comments(task_id: str):
    task, _ = _require_task(task_id)
    return json_success(data=[comment.to_dict() for comment in list_comments(task)])


@tasks_bp.route("/tasks/<task_id>/comments", methods=["POST"])
@login_required
def add_comment_route(task_id: str):
    task, _ = _require_task(task_id)
    form = validate_form(CommentForm, json_payload())
    comment = add_comment(task, g.user, form.content.data)
    return json_success(201, data=comment.to_dict())


@tasks_bp.route("/comments/<comment_id>", methods=["DELETE"])
@login_required
def delete_comment_route(comment_id: str):
    comment = get_comment(comment_id)
    _, access = _require_task(comment.task_id)
    if comment.user_id != g.user.id and not access.role.satisfies(ProjectRole.PM):
        raise Forbidden("Only the author or a project manager can delete this comment.", reason="insufficient role")
    json_payload()
    delete_comment(comment)
    return json_success(message="Comment deleted.")


@tasks_bp.route("/projects/<project_id>/attachments", methods=["GET"])
@login_required
def get_attachments(project_id: str):
    access = require_project_access(project_id, g.user.id)
    attachments = list_attachments(access.project, request.args.get("task_id"))
    return json_success(data=[attachment.to_dict() for attachment in attachments])


@tasks_bp.route("/projects/<project_id>/attachments", methods=["POST"])
@login_required
def add_attachment_route(project_id: str):
    access = require_project_access(project_id, g.user.id)
    payload = json_payload()
    validate_form(AttachmentForm, payload)
    attachment = add_attachment(access.project, g.user, payload)
    return json_success(201, data=attachment.to_dict())


@tasks_bp.route("/attachments/<attachment_id>", methods=["DELETE"])
@login_required
def delete_attachment_route(attachment_id: str):
    attachment = get_attachment(attachment_id)
    access = require_project_access(attachment.project_id, g.user.id)
    if attachment.uploaded_by != g.user.id and not access.role.satisfies(ProjectRole.PM):
        raise Forbidden("Only the uploader or a project manager can delete this attachment.", reason="insufficient role")
    json_payload()
    delete_attachment(attachment)
    return json_success(message="Attachment deleted.")
