"""Project lifecycle: creation, updates, trash, restore and purge."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from database import db
from models.attachment import Attachment
from models.comment import Comment
from models.project import Project, ProjectPriority, ProjectStatus
from models.project_member import ProjectMember, ProjectRole
from models.task import Task
from models.task_status import DEFAULT_STATUSES, TaskStatus
from models.user import User
from services.errors import Conflict, ValidationError

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "name",
    "description",
    "banner_image",
    "priority",
    "start_date",
    "end_date",
    "status",
)


def parse_datetime(value: Any, field: str) -> Optional[datetime]:
    """Parse an ISO-8601 date or datetime sent by the client."""

    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError("Invalid date.", {field: ["Expected an ISO-8601 date."]})
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1]
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError("Invalid date.", {field: ["Expected an ISO-8601 date."]}) from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _apply_fields(project: Project, fields: dict[str, Any]) -> None:
    if "name" in fields:
        name = (fields.get("name") or "").strip()
        if not name:
            raise ValidationError("Project name is required.", {"name": ["This field is required."]})
        project.name = name
    if "description" in fields:
        project.description = fields.get("description") or None
    if "banner_image" in fields:
        project.banner_image = fields.get("banner_image") or None
    if "priority" in fields and fields["priority"] is not None:
        try:
            project.priority = ProjectPriority(fields["priority"]).value
        except ValueError:
            raise ValidationError(
                "Invalid priority.",
                {"priority": [f"Priority must be one of {', '.join(p.value for p in ProjectPriority)}."]},
            ) from None
    if "status" in fields:
        status = fields.get("status")
        if status in (None, ""):
            project.status = None
        else:
            try:
                project.status = ProjectStatus(status).value
            except ValueError:
                raise ValidationError(
                    "Invalid status.",
                    {"status": [f"Status must be one of {', '.join(s.value for s in ProjectStatus)}."]},
                ) from None
    if "start_date" in fields:
        project.start_date = parse_datetime(fields.get("start_date"), "start_date")
    if "end_date" in fields:
        project.end_date = parse_datetime(fields.get("end_date"), "end_date")
    if project.start_date and project.end_date and project.end_date < project.start_date:
        raise ValidationError(
            "End date must not be before the start date.",
            {"end_date": ["End date must not be before the start date."]},
        )


def create_project(owner: User, fields: dict[str, Any]) -> Project:
    """Create a project with its default columns and the owner's membership."""

    project = Project(owner_id=owner.id)
    changes = {key: value for key, value in fields.items() if key in UPDATABLE_FIELDS}
    changes["name"] = fields.get("name")
    _apply_fields(project, changes)
    db.session.add(project)
    db.session.flush()

    for order, name in enumerate(DEFAULT_STATUSES):
        db.session.add(TaskStatus(name=name, order=order, project_id=project.id))
    db.session.add(
        ProjectMember(
            project_id=project.id,
            user_id=owner.id,
            role=ProjectRole.OWNER.value,
            added_by=owner.id,
        )
    )
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Created project %s for %s", project.id, owner.id)
    return project


def update_project(project: Project, fields: dict[str, Any]) -> Project:
    changes = {key: value for key, value in fields.items() if key in UPDATABLE_FIELDS}
    _apply_fields(project, changes)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return project


def move_to_trash(project: Project) -> Project:
    if project.is_trashed:
        raise Conflict("Project is already in the trash.")
    project.deleted_at = datetime.utcnow()
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Moved project %s to trash", project.id)
    return project


def restore_project(project: Project) -> Project:
    if not project.is_trashed:
        raise Conflict("Project is not in the trash.")
    project.deleted_at = None
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Restored project %s", project.id)
    return project


def purge_project(project: Project) -> None:
    """Delete the project and every dependent row in a single transaction.

    Rows go children first: task comments and attachments, tasks, project
    attachments, statuses, memberships, then the project itself.
    """
    project_id = project.id
    task_ids = db.session.query(Task.id).filter(Task.project_id == project_id)
    try:
        db.session.query(Comment).filter(Comment.task_id.in_(task_ids)).delete(
            synchronize_session=False
        )
        db.session.query(Attachment).filter(Attachment.task_id.in_(task_ids)).delete(
            synchronize_session=False
        )
        db.session.query(Task).filter(Task.project_id == project_id).delete(
            synchronize_session=False
        )
        db.session.query(Attachment).filter(Attachment.project_id == project_id).delete(
            synchronize_session=False
        )
        db.session.query(TaskStatus).filter(TaskStatus.project_id == project_id).delete(
            synchronize_session=False
        )
        db.session.query(ProjectMember).filter(ProjectMember.project_id == project_id).delete(
            synchronize_session=False
        )
        db.session.query(Project).filter(Project.id == project_id).delete(
            synchronize_session=False
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to purge project %s", project_id)
        raise
    logger.info("Purged project %s", project_id)


def _visible_projects_query(user: User):
    member_project_ids = db.session.query(ProjectMember.project_id).filter(
        ProjectMember.user_id == user.id
    )
    return Project.query.filter(
        or_(Project.owner_id == user.id, Project.id.in_(member_project_ids))
    )


def _task_counts(project_ids: Iterable[str]) -> dict[str, int]:
    project_ids = list(project_ids)
    if not project_ids:
        return {}
    rows = (
        db.session.query(Task.project_id, func.count(Task.id))
        .filter(Task.project_id.in_(project_ids))
        .group_by(Task.project_id)
        .all()
    )
    return {project_id: count for project_id, count in rows}


def _member_role(project: Project, user: User) -> str | None:
    if project.owner_id == user.id:
        return ProjectRole.OWNER.value
    for member in project.members:
        if member.user_id == user.id:
            return member.role
    return None


def list_active_projects(user: User) -> list[dict[str, Any]]:
    """Projects the user owns or belongs to, newest first."""

    projects = (
        _visible_projects_query(user)
        .filter(Project.deleted_at.is_(None))
        .order_by(Project.created_at.desc())
        .all()
    )
    counts = _task_counts(project.id for project in projects)
    results = []
    for project in projects:
        payload = project.to_dict()
        payload["member_role"] = _member_role(project, user)
        payload["task_count"] = counts.get(project.id, 0)
        results.append(payload)
    return results


def list_trashed_projects(user: User) -> list[dict[str, Any]]:
    """Trashed projects owned by the user, most recently trashed first."""

    projects = (
        Project.query.filter(
            Project.owner_id == user.id,
            Project.deleted_at.isnot(None),
        )
        .order_by(Project.deleted_at.desc())
        .all()
    )
    return [project.to_dict() for project in projects]


def project_detail(project: Project, role: ProjectRole | None = None) -> dict[str, Any]:
    tasks = (
        Task.query.filter_by(project_id=project.id)
        .order_by(Task.created_at.asc())
        .all()
    )
    payload = project.to_dict()
    payload["member_role"] = role.value if role else None
    payload["statuses"] = [status.to_dict() for status in project.statuses]
    payload["tasks"] = [task.to_dict() for task in tasks]
    payload["members"] = [member.to_dict() for member in project.members]
    return payload


def project_dashboard(project: Project, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.utcnow()
    tasks = Task.query.filter_by(project_id=project.id).all()
    total = len(tasks)
    completed = sum(1 for task in tasks if task.completed)
    overdue = sum(1 for task in tasks if task.is_overdue(now))
    by_status = {status.id: 0 for status in project.statuses}
    for task in tasks:
        by_status[task.status_id] = by_status.get(task.status_id, 0) + 1
    return {
        "project_id": project.id,
        "total_tasks": total,
        "completed_tasks": completed,
        "overdue_tasks": overdue,
        "completion_percentage": round(completed * 100 / total) if total else 0,
        "status": project.effective_status(now),
        "by_status": [
            {"status_id": status.id, "name": status.name, "count": by_status.get(status.id, 0)}
            for status in project.statuses
        ],
    }
