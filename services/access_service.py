"""Project access control: owner-or-member with an optional minimum role."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from database import db
from models.project import Project
from models.project_member import ProjectMember, ProjectRole
from services.errors import Forbidden, NotFound

REASON_NOT_FOUND = "not found"
REASON_NOT_MEMBER = "not a member"
REASON_INSUFFICIENT_ROLE = "insufficient role"


@dataclass
class AccessCheckResult:
    """Outcome of an access decision."""

    has_access: bool
    reason: Optional[str] = None
    role: Optional[ProjectRole] = None
    project: Optional[Project] = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"has_access": self.has_access}
        if self.reason:
            payload["reason"] = self.reason
        if self.role:
            payload["role"] = self.role.value
        return payload


def get_membership(project_id: str, user_id: str) -> ProjectMember | None:
    return ProjectMember.query.filter_by(project_id=project_id, user_id=user_id).one_or_none()


def check_project_access(
    project_id: str,
    user_id: str | None,
    minimum_role: ProjectRole | str | None = None,
) -> AccessCheckResult:
    """Decide whether ``user_id`` may act on ``project_id``.

    The owner of record always passes, whatever ``minimum_role`` asks for.
    Anyone else needs a membership row whose role ranks at least as high as
    ``minimum_role`` (OWNER > PM > MEMBER). Trashed projects are evaluated
    like active ones so they can still be restored or purged.
    """
    project = db.session.get(Project, project_id)
    if project is None:
        return AccessCheckResult(False, REASON_NOT_FOUND)

    if user_id is not None and project.owner_id == user_id:
        return AccessCheckResult(True, role=ProjectRole.OWNER, project=project)

    member = get_membership(project_id, user_id) if user_id is not None else None
    if member is None:
        return AccessCheckResult(False, REASON_NOT_MEMBER, project=project)

    role = member.role_enum
    if minimum_role is not None and not role.satisfies(ProjectRole(minimum_role)):
        return AccessCheckResult(False, REASON_INSUFFICIENT_ROLE, role=role, project=project)

    return AccessCheckResult(True, role=role, project=project)


def require_project_access(
    project_id: str,
    user_id: str | None,
    minimum_role: ProjectRole | str | None = None,
    *,
    include_trashed: bool = False,
) -> AccessCheckResult:
    """Return the access result or raise NotFound / Forbidden."""

    access = check_project_access(project_id, user_id, minimum_role)
    if access.reason == REASON_NOT_FOUND:
        raise NotFound("Project not found")
    if not access.has_access:
        raise Forbidden("Forbidden", reason=access.reason)
    if not include_trashed and access.project.is_trashed:
        raise NotFound("Project not found")
    return access
