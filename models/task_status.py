# models/task_status.py
from datetime import datetime

from database import db
from utils.ids import generate_id

DEFAULT_STATUSES = ("Backlog", "To Do", "In Progress", "Review", "Done")


class TaskStatus(db.Model):
    __tablename__ = "task_statuses"

    id = db.Column(db.String(64), primary_key=True, default=lambda: generate_id("status"))
    name = db.Column(db.String(100), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    project_id = db.Column(db.String(64), db.ForeignKey("projects.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    project = db.relationship("Project", back_populates="statuses")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "order": self.order,
            "project_id": self.project_id,
        }

    def __repr__(self):
        return f"<TaskStatus {self.name}>"
