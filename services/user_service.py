"""User directory: accounts, authentication and search."""
from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import db
from models.attachment import Attachment
from models.comment import Comment
from models.project import Project
from models.project_member import ProjectMember
from models.sync_run import SyncRun
from models.task import Task
from models.user import User
from services.errors import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

SEARCH_MIN_LENGTH = 2
SEARCH_DEFAULT_LIMIT = 10
SEARCH_MAX_LIMIT = 50


def _clamp_limit(limit: Any) -> int:
    try:
        value = int(limit) if limit not in (None, "") else SEARCH_DEFAULT_LIMIT
    except (TypeError, ValueError):
        value = SEARCH_DEFAULT_LIMIT
    return max(1, min(value, SEARCH_MAX_LIMIT))


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally under ESCAPE '\\'."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_users(gateway, q: Optional[str], limit: Any = SEARCH_DEFAULT_LIMIT) -> list[dict[str, Any]]:
    """Search the external user table by username, email or name.

    An exact email match sorts first, the rest by username.
    """
    query = (q or "").strip()
    if len(query) < SEARCH_MIN_LENGTH:
        raise ValidationError(
            "Query must be at least 2 characters",
            {"q": ["Query must be at least 2 characters."]},
        )
    result = gateway.query(
        """SELECT TOP (@limit) id, username, email, name, avatar_url, role
           FROM pm_users
           WHERE username LIKE @pattern ESCAPE '\\'
              OR email LIKE @pattern ESCAPE '\\'
              OR name LIKE @pattern ESCAPE '\\'
           ORDER BY CASE WHEN email = @exact THEN 1 ELSE 2 END, username""",
        {"limit": _clamp_limit(limit), "pattern": f"%{escape_like(query)}%", "exact": query},
    )
    return [
        {
            "id": row.get("id"),
            "username": row.get("username"),
            "email": row.get("email"),
            "name": row.get("name"),
            "avatar_url": row.get("avatar_url"),
            "role": row.get("role"),
        }
        for row in result.recordset
    ]


def get_user(user_id: str) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found", reason=None)
    return user


def list_users() -> list[User]:
    return User.query.order_by(User.username.asc()).all()


def create_user(
    username: str,
    email: str,
    name: str,
    password: str,
    role: str = User.MEMBER,
    avatar_url: Optional[str] = None,
) -> User:
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if role not in User.ROLES:
        raise ValidationError("Invalid role.", {"role": [f"Role must be one of {', '.join(User.ROLES)}."]})
    existing = User.query.filter(or_(User.username == username, User.email == email)).first()
    if existing is not None:
        raise Conflict("Username or email already registered.")

    user = User(username=username, email=email, name=(name or username).strip(), role=role, avatar_url=avatar_url)
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict("Username or email already registered.") from exc
    logger.info("Created user %s", user.id)
    return user


def authenticate(email: str, password: str) -> User | None:
    identifier = (email or "").strip()
    user = User.query.filter(
        or_(User.email == identifier.lower(), User.username == identifier)
    ).first()
    if user is None or not user.check_password(password):
        return None
    return user


def delete_user(user: User) -> None:
    """Hard delete; owners must hand their projects over first."""

    if Project.query.filter_by(owner_id=user.id).count():
        raise Conflict("User still owns projects. Transfer ownership first.")
    user_id = user.id
    try:
        ProjectMember.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        ProjectMember.query.filter_by(added_by=user_id).update(
            {ProjectMember.added_by: None}, synchronize_session=False
        )
        Attachment.query.filter_by(uploaded_by=user_id).update(
            {Attachment.uploaded_by: None}, synchronize_session=False
        )
        SyncRun.query.filter_by(triggered_by=user_id).update(
            {SyncRun.triggered_by: None}, synchronize_session=False
        )
        Comment.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        Task.query.filter_by(assignee_id=user_id).update(
            {Task.assignee_id: None}, synchronize_session=False
        )
        User.query.filter_by(id=user_id).delete(synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Deleted user %s", user_id)
