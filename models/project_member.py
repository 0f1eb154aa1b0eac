"""Models representing project membership."""
from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from database import db
from utils.ids import generate_id


class ProjectRole(StrEnum):
    """Role held by a user inside a single project."""

    OWNER = "OWNER"
    PM = "PM"
    MEMBER = "MEMBER"

    @property
    def rank(self) -> int:
        return ROLE_RANKS[self]

    def satisfies(self, minimum: "ProjectRole | None") -> bool:
        """True when this role meets or exceeds ``minimum``."""

        if minimum is None:
            return True
        return self.rank >= ProjectRole(minimum).rank


ROLE_RANKS = {
    ProjectRole.OWNER: 3,
    ProjectRole.PM: 2,
    ProjectRole.MEMBER: 1,
}


class ProjectMember(db.Model):
    """Join model linking projects to the users that can access them."""

    __tablename__ = "project_members"

    id = db.Column(db.String(64), primary_key=True, default=lambda: generate_id("member"))
    project_id = db.Column(
        db.String(64),
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.String(64),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = db.Column(db.String(20), nullable=False, default=ProjectRole.MEMBER.value)
    joined_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    added_by = db.Column(db.String(64), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    project = db.relationship("Project", back_populates="members")
    user = db.relationship("User", foreign_keys=[user_id])
    adder = db.relationship("User", foreign_keys=[added_by])

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )

    @property
    def role_enum(self) -> ProjectRole:
        """Return the role as an enum value."""

        return ProjectRole(self.role)

    @role_enum.setter
    def role_enum(self, value: ProjectRole) -> None:
        self.role = value.value

    @property
    def is_owner(self) -> bool:
        return self.role_enum == ProjectRole.OWNER

    def to_dict(self) -> dict[str, object]:
        """Return the membership joined with the user's display fields."""

        user = self.user
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "role": self.role,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
            "added_by": self.added_by,
            "user": {
                "id": user.id,
                "username": user.username,
                "email": user.email,
                "name": user.name,
                "avatar_url": user.avatar_url,
            }
            if user is not None
            else None,
        }

    def __repr__(self) -> str:
        return f"<ProjectMember project={self.project_id} user={self.user_id} role={self.role}>"
