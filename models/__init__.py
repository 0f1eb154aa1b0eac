"""Importing the package registers every table on ``db.metadata``."""
from models.user import User
from models.project import Project, ProjectPriority, ProjectStatus
from models.project_member import ProjectMember, ProjectRole
from models.task_status import TaskStatus
from models.task import Task
from models.comment import Comment
from models.attachment import Attachment
from models.sync_run import SyncRun, SyncRunStatus

__all__ = [
    "Attachment",
    "Comment",
    "Project",
    "ProjectMember",
    "ProjectPriority",
    "ProjectRole",
    "ProjectStatus",
    "SyncRun",
    "SyncRunStatus",
    "Task",
    "TaskStatus",
    "User",
]
