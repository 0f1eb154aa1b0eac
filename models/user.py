""" Represents a user in the system.

A User logs in with an email and a password.
A User has a global role (ADMIN | PM | MEMBER); project access is decided by
ownership and project membership, never by the global role.
A User can own Projects (see Project) and be a member of others (see ProjectMember)
A User is hard deleted; memberships and comments are removed with it

"""
from datetime import datetime

from werkzeug.security import generate_password_hash, check_password_hash

from database import db
from utils.ids import generate_id


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True, default=lambda: generate_id("user"))
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.Text)
    role = db.Column(db.String(20), nullable=False, default="MEMBER")
    avatar_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    owned_projects = db.relationship("Project", back_populates="owner", lazy=True)

    ADMIN = "ADMIN"
    PM = "PM"
    MEMBER = "MEMBER"
    ROLES = (ADMIN, PM, MEMBER)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role == self.ADMIN

    def to_dict(self) -> dict[str, str | None]:
        """Return the public fields of the user."""

        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "avatar_url": self.avatar_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}>"
