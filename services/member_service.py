"""Project membership registry."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import db
from models.project import Project
from models.project_member import ProjectMember, ProjectRole
from models.user import User
from services.access_service import get_membership
from services.errors import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)


def _parse_role(role: ProjectRole | str | None) -> ProjectRole:
    try:
        return ProjectRole(role)
    except ValueError:
        raise ValidationError(
            "Invalid role.",
            {"role": [f"Role must be one of {', '.join(r.value for r in ProjectRole)}."]},
        ) from None


def _get_project(project_id: str) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFound("Project not found")
    return project


def _owner_row_count(project_id: str) -> int:
    return ProjectMember.query.filter_by(
        project_id=project_id, role=ProjectRole.OWNER.value
    ).count()


def list_members(project_id: str) -> list[ProjectMember]:
    """Return every membership of the project, oldest first."""

    return (
        ProjectMember.query.filter_by(project_id=project_id)
        .join(User, ProjectMember.user_id == User.id)
        .order_by(ProjectMember.joined_at.asc(), ProjectMember.id.asc())
        .all()
    )


def add_member(
    project_id: str,
    user_id: str,
    role: ProjectRole | str = ProjectRole.MEMBER,
    added_by: Optional[str] = None,
) -> ProjectMember:
    """Insert a membership row; (project, user) must not exist yet."""

    role_enum = _parse_role(role)
    if role_enum == ProjectRole.OWNER:
        raise ValidationError(
            "Cannot add a member as owner. Transfer ownership instead.",
            {"role": ["OWNER can only be granted through an ownership transfer."]},
        )
    _get_project(project_id)
    if db.session.get(User, user_id) is None:
        raise NotFound("User not found", reason=None)
    if get_membership(project_id, user_id) is not None:
        raise Conflict("User is already a member of this project.")

    member = ProjectMember(
        project_id=project_id,
        user_id=user_id,
        role=role_enum.value,
        added_by=added_by,
    )
    db.session.add(member)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict("User is already a member of this project.") from exc
    logger.info("Added %s to project %s as %s", user_id, project_id, role_enum.value)
    return member


def remove_member(project_id: str, user_id: str) -> None:
    """Delete a membership; the owner and the last OWNER row stay."""

    project = _get_project(project_id)
    member = get_membership(project_id, user_id)
    if member is None:
        raise NotFound("Member not found", reason=None)
    if user_id == project.owner_id:
        raise Conflict("Cannot remove the project owner. Transfer ownership first.")
    if member.is_owner and _owner_row_count(project_id) <= 1:
        raise Conflict("Cannot remove the last owner of the project.")

    db.session.delete(member)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Removed %s from project %s", user_id, project_id)


def update_member_role(
    project_id: str,
    user_id: str,
    new_role: ProjectRole | str,
) -> ProjectMember:
    """Change a member's role without leaving the project ownerless."""

    role_enum = _parse_role(new_role)
    project = _get_project(project_id)
    member = get_membership(project_id, user_id)
    if member is None:
        raise NotFound("Member not found", reason=None)
    if role_enum == member.role_enum:
        return member
    if role_enum == ProjectRole.OWNER:
        raise ValidationError(
            "Cannot assign ownership by changing a role. Transfer ownership instead.",
            {"role": ["OWNER can only be granted through an ownership transfer."]},
        )
    if member.is_owner and (
        user_id == project.owner_id or _owner_row_count(project_id) <= 1
    ):
        raise Conflict("Cannot change the owner's role. Transfer ownership first.")

    member.role_enum = role_enum
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Changed role of %s in project %s to %s", user_id, project_id, role_enum.value)
    return member


def transfer_ownership(project_id: str, new_owner_id: str, actor_id: Optional[str] = None) -> Project:
    """Hand the project to another user in one transaction.

    The previous owner keeps access with the PM role.
    """
    project = _get_project(project_id)
    if db.session.get(User, new_owner_id) is None:
        raise NotFound("User not found", reason=None)
    previous_owner_id = project.owner_id
    if previous_owner_id == new_owner_id:
        return project

    previous = get_membership(project_id, previous_owner_id)
    if previous is None:
        previous = ProjectMember(
            project_id=project_id,
            user_id=previous_owner_id,
            added_by=actor_id,
        )
        db.session.add(previous)
    previous.role_enum = ProjectRole.PM

    incoming = get_membership(project_id, new_owner_id)
    if incoming is None:
        incoming = ProjectMember(
            project_id=project_id,
            user_id=new_owner_id,
            added_by=actor_id,
        )
        db.session.add(incoming)
    incoming.role_enum = ProjectRole.OWNER
    project.owner_id = new_owner_id

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info(
        "Transferred project %s from %s to %s", project_id, previous_owner_id, new_owner_id
    )
    return project


def backfill_owner_memberships() -> int:
    """Give every project's owner of record an OWNER membership row.

    ``Project.owner_id`` is authoritative: an existing row for the owner with
    a lower role is promoted. Returns the number of rows created or promoted.
    """
    changed = 0
    for project in Project.query.order_by(Project.created_at.asc()).all():
        member = get_membership(project.id, project.owner_id)
        if member is None:
            db.session.add(
                ProjectMember(
                    project_id=project.id,
                    user_id=project.owner_id,
                    role=ProjectRole.OWNER.value,
                    joined_at=project.created_at,
                )
            )
            changed += 1
        elif not member.is_owner:
            member.role_enum = ProjectRole.OWNER
            changed += 1
    if changed:
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
    logger.info("Backfilled %d owner memberships", changed)
    return changed
