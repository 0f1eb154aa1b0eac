from datetime import datetime

from database import db
from utils.ids import generate_id


class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.String(64), primary_key=True, default=lambda: generate_id("comment"))
    task_id = db.Column(db.String(64), db.ForeignKey("tasks.id"), nullable=False, index=True)
    user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    task = db.relationship("Task", back_populates="comments")
    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Comment {self.id} on {self.task_id}>"
