"""A task represents a card on a project's Kanban board

A Task belongs to exactly one Project
A Task sits in one TaskStatus column of that same Project
A Task can be assigned to one User; the assignee is referenced, not owned
A Task is completed when it reaches the last column of its Project
A Task owns its Comments and Attachments

"""
from __future__ import annotations
from datetime import datetime
from typing import Optional

import bleach
from markdown import markdown as render_markdown
from markupsafe import Markup

from database import db
from utils.ids import generate_id

ALLOWED_TAGS = list(bleach.sanitizer.ALLOWED_TAGS) + [
    "p",
    "pre",
    "code",
    "ul",
    "ol",
    "li",
    "table",
    "thead",
    "tbody",
    "tr",
    "th",
    "td",
    "div",
    "span",
    "strong",
    "em",
    "blockquote",
    "br",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "hr",
    "img",
]
ALLOWED_ATTRIBUTES = {
    **bleach.sanitizer.ALLOWED_ATTRIBUTES,
    "a": ["href", "title", "target", "rel"],
    "img": ["src", "alt", "title"],
    "code": ["class"],
}


def sanitize_rich_text(html: Optional[str]) -> Optional[str]:
    """Strip scripts and unknown markup from editor HTML."""
    if html is None:
        return None
    return bleach.clean(html, tags=ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES)


def render_task_description_html(description: Optional[str]) -> Markup:
    """Render task description Markdown into sanitized HTML."""
    if not description:
        return Markup("")
    html = render_markdown(
        description,
        extensions=["extra", "sane_lists"],
        output_format="html5",
        tab_length=2,
    )
    return Markup(sanitize_rich_text(html))


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.String(64), primary_key=True, default=lambda: generate_id("task"))
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    documentation = db.Column(db.Text, nullable=True)
    priority = db.Column(db.String(20), nullable=False, default="MEDIUM")
    due_date = db.Column(db.DateTime, nullable=True)
    estimated_hours = db.Column(db.Float, nullable=True)
    actual_hours = db.Column(db.Float, nullable=True)
    progress = db.Column(db.Integer, nullable=False, default=0)
    status_id = db.Column(db.String(64), db.ForeignKey("task_statuses.id"), nullable=False, index=True)
    assignee_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=True, index=True)
    project_id = db.Column(db.String(64), db.ForeignKey("projects.id"), nullable=False, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    project = db.relationship("Project", back_populates="tasks")
    status = db.relationship("TaskStatus")
    assignee = db.relationship("User")
    comments = db.relationship(
        "Comment",
        back_populates="task",
        lazy=True,
        order_by="Comment.created_at",
    )
    attachments = db.relationship("Attachment", back_populates="task", lazy=True)

    @property
    def completed(self) -> bool:
        return self.completed_at is not None

    def complete_task(self):
        if self.completed_at is None:
            self.completed_at = datetime.utcnow()

    def uncomplete_task(self):
        self.completed_at = None

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.due_date is None or self.completed:
            return False
        return self.due_date < (now or datetime.utcnow())

    @property
    def description_html(self):
        return render_task_description_html(self.description)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description or "",
            "description_html": str(self.description_html),
            "documentation": self.documentation,
            "priority": self.priority,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "estimated_hours": self.estimated_hours,
            "actual_hours": self.actual_hours,
            "progress": self.progress,
            "status_id": self.status_id,
            "assignee_id": self.assignee_id,
            "project_id": self.project_id,
            "completed": self.completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Task {self.title}>"
