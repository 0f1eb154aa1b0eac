"""Persistence for SQL gateway synchronisation runs."""
from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from database import db
from utils.ids import generate_id


class SyncRunStatus(StrEnum):
    """Lifecycle states for a sync run."""

    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class SyncRun(db.Model):
    __tablename__ = "sync_runs"

    id = db.Column(db.String(64), primary_key=True, default=lambda: generate_id("sync"))
    direction = db.Column(db.String(10), nullable=False)
    tables = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(20), nullable=False, default=SyncRunStatus.RUNNING.value)
    summary = db.Column(db.JSON, nullable=True)
    errors = db.Column(db.JSON, nullable=True)
    triggered_by = db.Column(db.String(64), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    started_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    finished_at = db.Column(db.DateTime, nullable=True)

    @property
    def status_enum(self) -> SyncRunStatus:
        return SyncRunStatus(self.status)

    @status_enum.setter
    def status_enum(self, value: SyncRunStatus) -> None:
        self.status = value.value

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "direction": self.direction,
            "tables": self.tables or [],
            "status": self.status,
            "summary": self.summary or {},
            "errors": self.errors or [],
            "triggered_by": self.triggered_by,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<SyncRun {self.id} direction={self.direction} status={self.status}>"
