"""Board columns, tasks, comments and attachments within a project."""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from database import db
from models.attachment import FILE_TYPES, Attachment
from models.comment import Comment
from models.project import Project, ProjectPriority
from models.task import Task, sanitize_rich_text
from models.task_status import TaskStatus
from models.user import User
from services.errors import NotFound, ValidationError
from services.project_service import parse_datetime

logger = logging.getLogger(__name__)

TASK_FIELDS = (
    "title",
    "description",
    "documentation",
    "priority",
    "due_date",
    "estimated_hours",
    "actual_hours",
    "progress",
    "status_id",
    "assignee_id",
)


def _commit() -> None:
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


def list_statuses(project: Project) -> list[TaskStatus]:
    return (
        TaskStatus.query.filter_by(project_id=project.id)
        .order_by(TaskStatus.order.asc())
        .all()
    )


def last_status(project_id: str) -> TaskStatus | None:
    return (
        TaskStatus.query.filter_by(project_id=project_id)
        .order_by(TaskStatus.order.desc())
        .first()
    )


def create_status(project: Project, name: str, order: Optional[int] = None) -> TaskStatus:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Status name is required.", {"name": ["This field is required."]})
    if order is None:
        last = last_status(project.id)
        order = (last.order + 1) if last is not None else 0
    status = TaskStatus(name=name, order=order, project_id=project.id)
    db.session.add(status)
    _commit()
    return status


def _resolve_status(project: Project, status_id: Optional[str]) -> TaskStatus:
    if status_id:
        status = db.session.get(TaskStatus, status_id)
        if status is None or status.project_id != project.id:
            raise ValidationError(
                "Status does not belong to this project.",
                {"status_id": ["Status does not belong to this project."]},
            )
        return status
    statuses = list_statuses(project)
    if not statuses:
        raise ValidationError(
            "Project has no statuses.", {"status_id": ["Create a status first."]}
        )
    return statuses[0]


def _sync_completion(task: Task, status: TaskStatus) -> None:
    final = last_status(task.project_id)
    if final is not None and final.id == status.id:
        task.complete_task()
    else:
        task.uncomplete_task()


def _number(value: Any, field: str, *, minimum: float | None = None, maximum: float | None = None):
    if value in (None, ""):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid number.", {field: ["Expected a number."]}) from None
    if (minimum is not None and number < minimum) or (maximum is not None and number > maximum):
        raise ValidationError("Number out of range.", {field: ["Value is out of range."]})
    return number


def _apply_task_fields(task: Task, fields: dict[str, Any]) -> None:
    if "title" in fields:
        title = (fields.get("title") or "").strip()
        if not title:
            raise ValidationError("Task title is required.", {"title": ["This field is required."]})
        task.title = title
    if "description" in fields:
        task.description = fields.get("description") or None
    if "documentation" in fields:
        task.documentation = sanitize_rich_text(fields.get("documentation") or None)
    if "priority" in fields and fields["priority"] is not None:
        try:
            task.priority = ProjectPriority(fields["priority"]).value
        except ValueError:
            raise ValidationError("Invalid priority.", {"priority": ["Unknown priority."]}) from None
    if "due_date" in fields:
        task.due_date = parse_datetime(fields.get("due_date"), "due_date")
    if "estimated_hours" in fields:
        task.estimated_hours = _number(fields.get("estimated_hours"), "estimated_hours", minimum=0)
    if "actual_hours" in fields:
        task.actual_hours = _number(fields.get("actual_hours"), "actual_hours", minimum=0)
    if "progress" in fields:
        progress = _number(fields.get("progress"), "progress", minimum=0, maximum=100)
        task.progress = int(progress or 0)
    if "assignee_id" in fields:
        assignee_id = fields.get("assignee_id") or None
        if assignee_id and db.session.get(User, assignee_id) is None:
            raise ValidationError("Unknown assignee.", {"assignee_id": ["User not found."]})
        task.assignee_id = assignee_id


def list_tasks(project: Project) -> list[Task]:
    return (
        Task.query.filter_by(project_id=project.id)
        .order_by(Task.created_at.asc())
        .all()
    )


def create_task(project: Project, fields: dict[str, Any]) -> Task:
    """Create a task in the given (or first) column of the project."""

    status = _resolve_status(project, fields.get("status_id"))
    task = Task(project_id=project.id, status_id=status.id)
    changes = {key: value for key, value in fields.items() if key in TASK_FIELDS}
    changes["title"] = fields.get("title")
    _apply_task_fields(task, changes)
    _sync_completion(task, status)
    db.session.add(task)
    _commit()
    logger.info("Created task %s in project %s", task.id, project.id)
    return task


def update_task(task: Task, fields: dict[str, Any]) -> Task:
    project = task.project
    changes = {key: value for key, value in fields.items() if key in TASK_FIELDS}
    _apply_task_fields(task, changes)
    if changes.get("status_id") and changes["status_id"] != task.status_id:
        status = _resolve_status(project, changes["status_id"])
        task.status_id = status.id
        _sync_completion(task, status)
    _commit()
    return task


def delete_task(task: Task) -> None:
    """Remove a task together with its comments and attachments."""

    task_id = task.id
    Comment.query.filter_by(task_id=task_id).delete(synchronize_session=False)
    Attachment.query.filter_by(task_id=task_id).delete(synchronize_session=False)
    Task.query.filter_by(id=task_id).delete(synchronize_session=False)
    _commit()
    logger.info("Deleted task %s", task_id)


def get_task(task_id: str) -> Task:
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFound("Task not found")
    return task


def list_comments(task: Task) -> list[Comment]:
    return (
        Comment.query.filter_by(task_id=task.id)
        .order_by(Comment.created_at.asc())
        .all()
    )


def add_comment(task: Task, user: User, content: str) -> Comment:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Comment cannot be empty.", {"content": ["This field is required."]})
    comment = Comment(task_id=task.id, user_id=user.id, content=content)
    db.session.add(comment)
    _commit()
    return comment


def get_comment(comment_id: str) -> Comment:
    comment = db.session.get(Comment, comment_id)
    if comment is None:
        raise NotFound("Comment not found")
    return comment


def delete_comment(comment: Comment) -> None:
    db.session.delete(comment)
    _commit()


def list_attachments(project: Project, task_id: Optional[str] = None) -> list[Attachment]:
    query = Attachment.query.filter_by(project_id=project.id)
    if task_id:
        query = query.filter_by(task_id=task_id)
    return query.order_by(Attachment.created_at.desc()).all()


def add_attachment(project: Project, user: User, fields: dict[str, Any]) -> Attachment:
    """Record attachment metadata; the file itself is stored elsewhere."""

    errors: dict[str, list[str]] = {}
    file_name = (fields.get("file_name") or "").strip()
    file_url = (fields.get("file_url") or "").strip()
    file_type = fields.get("file_type") or "document"
    if not file_name:
        errors["file_name"] = ["This field is required."]
    if not file_url:
        errors["file_url"] = ["This field is required."]
    if file_type not in FILE_TYPES:
        errors["file_type"] = [f"File type must be one of {', '.join(FILE_TYPES)}."]
    task_id = fields.get("task_id") or None
    if task_id:
        task = db.session.get(Task, task_id)
        if task is None or task.project_id != project.id:
            errors["task_id"] = ["Task does not belong to this project."]
    if errors:
        raise ValidationError("Invalid attachment.", errors)

    attachment = Attachment(
        project_id=project.id,
        task_id=task_id,
        file_name=file_name,
        file_url=file_url,
        file_type=file_type,
        file_size=int(_number(fields.get("file_size"), "file_size", minimum=0) or 0),
        uploaded_by=user.id,
    )
    db.session.add(attachment)
    _commit()
    return attachment


def get_attachment(attachment_id: str) -> Attachment:
    attachment = db.session.get(Attachment, attachment_id)
    if attachment is None:
        raise NotFound("Attachment not found")
    return attachment


def delete_attachment(attachment: Attachment) -> None:
    db.session.delete(attachment)
    _commit()
