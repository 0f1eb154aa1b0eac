"""Attachment metadata; the file itself lives behind ``file_url``."""
from datetime import datetime

from database import db
from utils.ids import generate_id

FILE_TYPES = ("image", "document")


class Attachment(db.Model):
    __tablename__ = "attachments"

    id = db.Column(db.String(64), primary_key=True, default=lambda: generate_id("file"))
    project_id = db.Column(db.String(64), db.ForeignKey("projects.id"), nullable=False, index=True)
    task_id = db.Column(db.String(64), db.ForeignKey("tasks.id"), nullable=True, index=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_url = db.Column(db.String(1000), nullable=False)
    file_type = db.Column(db.String(20), nullable=False, default="document")
    file_size = db.Column(db.Integer, nullable=False, default=0)
    uploaded_by = db.Column(db.String(64), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    task = db.relationship("Task", back_populates="attachments")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "file_name": self.file_name,
            "file_url": self.file_url,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "uploaded_by": self.uploaded_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Attachment {self.file_name}>"
