"""A Project groups Tasks on a Kanban board.

A Project has exactly one owner (owner_id) who always has full access
A Project owns its TaskStatus columns
A User gains access to a Project he does not own through a ProjectMember row
A Project is soft deleted (moved to trash) by setting deleted_at
A trashed Project can be restored or purged; purging removes its rows for good

"""
from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from database import db
from utils.ids import generate_id


class ProjectPriority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ProjectStatus(StrEnum):
    """Schedule status, stored with the values the external database uses."""

    PLANNED = "RENCANA"
    CURRENT = "SEKARANG"
    DONE = "SELESAI"


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.String(64), primary_key=True, default=lambda: generate_id("proj"))
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    owner_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)
    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)
    priority = db.Column(db.String(20), nullable=False, default=ProjectPriority.MEDIUM.value)
    banner_image = db.Column(db.String(500), nullable=True)
    status = db.Column(db.String(20), nullable=True)
    canvas_data = db.Column(db.Text, nullable=True)
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    owner = db.relationship("User", back_populates="owned_projects")
    members = db.relationship(
        "ProjectMember",
        back_populates="project",
        lazy="selectin",
        order_by="ProjectMember.joined_at",
    )
    statuses = db.relationship(
        "TaskStatus",
        back_populates="project",
        lazy="selectin",
        order_by="TaskStatus.order",
    )
    tasks = db.relationship("Task", back_populates="project", lazy=True)

    @property
    def is_trashed(self) -> bool:
        return self.deleted_at is not None

    def effective_status(self, now: datetime | None = None) -> str:
        """Return the stored status or derive it from the project dates."""

        if self.status:
            return self.status
        now = now or datetime.utcnow()
        if self.start_date and now < self.start_date:
            return ProjectStatus.PLANNED.value
        if self.end_date and now > self.end_date:
            return ProjectStatus.DONE.value
        if self.start_date is None and self.end_date is None:
            return ProjectStatus.PLANNED.value
        return ProjectStatus.CURRENT.value

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "owner_id": self.owner_id,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "priority": self.priority,
            "banner_image": self.banner_image,
            "status": self.status,
            "effective_status": self.effective_status(),
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.name}>"
