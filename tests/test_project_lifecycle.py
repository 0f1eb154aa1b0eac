from datetime import datetime
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from database import db
from models.attachment import Attachment
from models.comment import Comment
from models.project import Project
from models.project_member import ProjectMember
from models.task import Task
from models.task_status import TaskStatus
from models.user import User
from services.errors import Conflict, ValidationError
from services.member_service import add_member
from services.project_service import (
    create_project,
    list_active_projects,
    list_trashed_projects,
    move_to_trash,
    parse_datetime,
    project_dashboard,
    purge_project,
    restore_project,
    update_project,
)
from services.task_service import add_attachment, add_comment, create_task
from tests.utils.db import AppTestCase


class ProjectLifecycleTestCase(AppTestCase):
    def setUp(self):
        super().setUp()
        self.owner = User(username="owner", name="Owner", email="owner@example.com")
        self.member = User(username="member", name="Member", email="member@example.com")
        db.session.add_all([self.owner, self.member])
        db.session.commit()

    def test_create_project_seeds_default_columns(self):
        project = create_project(self.owner, {"name": "Harvest", "priority": "HIGH"})

        statuses = TaskStatus.query.filter_by(project_id=project.id).order_by(TaskStatus.order).all()
        self.assertEqual(
            [status.name for status in statuses],
            ["Backlog", "To Do", "In Progress", "Review", "Done"],
        )
        self.assertEqual(project.priority, "HIGH")
        self.assertTrue(project.id.startswith("proj_"))

    def test_create_project_requires_name(self):
        with self.assertRaises(ValidationError) as captured:
            create_project(self.owner, {"name": "   "})
        self.assertIn("name", captured.exception.errors)
        self.assertEqual(Project.query.count(), 0)

    def test_end_date_cannot_precede_start_date(self):
        project = create_project(self.owner, {"name": "Harvest"})
        with self.assertRaises(ValidationError):
            update_project(project, {"start_date": "2026-05-10", "end_date": "2026-05-01"})

    def test_parse_datetime_accepts_utc_suffix(self):
        self.assertEqual(
            parse_datetime("2026-03-01T08:30:00Z", "due_date"),
            datetime(2026, 3, 1, 8, 30),
        )
        self.assertEqual(
            parse_datetime("2026-03-01T10:30:00+02:00", "due_date"),
            datetime(2026, 3, 1, 8, 30),
        )
        self.assertIsNone(parse_datetime("", "due_date"))
        with self.assertRaises(ValidationError):
            parse_datetime("not-a-date", "due_date")

    def test_trash_and_restore_move_project_between_lists(self):
        project = create_project(self.owner, {"name": "Harvest"})
        add_member(project.id, self.member.id, "MEMBER")

        move_to_trash(project)

        self.assertEqual(list_active_projects(self.owner), [])
        self.assertEqual(list_active_projects(self.member), [])
        self.assertEqual([entry["id"] for entry in list_trashed_projects(self.owner)], [project.id])
        self.assertEqual(list_trashed_projects(self.member), [])

        restore_project(project)

        active = list_active_projects(self.member)
        self.assertEqual([entry["id"] for entry in active], [project.id])
        self.assertEqual(active[0]["member_role"], "MEMBER")
        self.assertIsNone(active[0]["deleted_at"])
        self.assertEqual(list_trashed_projects(self.owner), [])

    def test_trash_round_trip_keeps_project_fields(self):
        project = create_project(
            self.owner,
            {
                "name": "Harvest",
                "description": "Block A to F",
                "priority": "HIGH",
                "start_date": "2026-03-01",
                "end_date": "2026-06-30",
                "banner_image": "https://files.local/banner.png",
                "status": "SEKARANG",
            },
        )
        before = project.to_dict()
        project.updated_at = datetime(2000, 1, 1)
        db.session.commit()

        move_to_trash(project)
        self.assertGreater(project.updated_at, datetime(2000, 1, 1))
        restore_project(project)

        db.session.expire_all()
        after = db.session.get(Project, project.id).to_dict()
        for key in ("name", "description", "priority", "start_date", "end_date", "banner_image", "status", "owner_id"):
            self.assertEqual(after[key], before[key], key)
        self.assertIsNone(after["deleted_at"])

    def test_failed_trash_commit_leaves_project_active(self):
        project = create_project(self.owner, {"name": "Harvest"})
        failure = OperationalError("UPDATE projects", {}, Exception("database is locked"))

        with patch.object(db.session, "commit", side_effect=failure):
            with self.assertRaises(OperationalError):
                move_to_trash(project)

        self.assertIsNone(db.session.get(Project, project.id).deleted_at)
        self.assertEqual([entry["id"] for entry in list_active_projects(self.owner)], [project.id])

    def test_lifecycle_transitions_out_of_order_conflict(self):
        project = create_project(self.owner, {"name": "Harvest"})

        with self.assertRaises(Conflict):
            restore_project(project)
        move_to_trash(project)
        with self.assertRaises(Conflict):
            move_to_trash(project)

    def test_purge_removes_every_dependent_row(self):
        project = create_project(self.owner, {"name": "Harvest"})
        keep = create_project(self.owner, {"name": "Keep me"})
        task = create_task(project, {"title": "Survey blocks"})
        add_comment(task, self.owner, "Started")
        add_attachment(
            project,
            self.owner,
            {"file_name": "map.pdf", "file_url": "https://files.local/map.pdf", "task_id": task.id},
        )
        add_attachment(project, self.owner, {"file_name": "brief.pdf", "file_url": "https://files.local/brief.pdf"})
        project_id = project.id

        purge_project(project)

        self.assertEqual(Project.query.filter_by(id=project_id).count(), 0)
        self.assertEqual(Task.query.filter_by(project_id=project_id).count(), 0)
        self.assertEqual(Comment.query.count(), 0)
        self.assertEqual(Attachment.query.count(), 0)
        self.assertEqual(TaskStatus.query.filter_by(project_id=project_id).count(), 0)
        self.assertEqual(ProjectMember.query.filter_by(project_id=project_id).count(), 0)
        self.assertEqual(TaskStatus.query.filter_by(project_id=keep.id).count(), 5)

    def test_failed_purge_keeps_every_dependent_row(self):
        project = create_project(self.owner, {"name": "Harvest"})
        add_member(project.id, self.member.id, "MEMBER")
        task = create_task(project, {"title": "Survey blocks"})
        add_comment(task, self.owner, "Started")
        project_id = project.id
        query = db.session.query

        def query_failing_on_project(*entities, **kwargs):
            if len(entities) == 1 and entities[0] is Project:
                raise OperationalError("DELETE FROM projects", {}, Exception("database is locked"))
            return query(*entities, **kwargs)

        with patch.object(db.session, "query", side_effect=query_failing_on_project):
            with self.assertRaises(OperationalError):
                purge_project(project)

        self.assertEqual(Project.query.filter_by(id=project_id).count(), 1)
        self.assertEqual(Task.query.filter_by(project_id=project_id).count(), 1)
        self.assertEqual(Comment.query.count(), 1)
        self.assertEqual(TaskStatus.query.filter_by(project_id=project_id).count(), 5)
        self.assertEqual(ProjectMember.query.filter_by(project_id=project_id).count(), 2)

    def test_dashboard_counts_completed_and_overdue_tasks(self):
        project = create_project(self.owner, {"name": "Harvest"})
        statuses = TaskStatus.query.filter_by(project_id=project.id).order_by(TaskStatus.order).all()
        create_task(project, {"title": "Done", "status_id": statuses[-1].id})
        create_task(project, {"title": "Late", "due_date": "2026-01-01"})
        create_task(project, {"title": "Open"})

        summary = project_dashboard(project, now=datetime(2026, 2, 1))

        self.assertEqual(summary["total_tasks"], 3)
        self.assertEqual(summary["completed_tasks"], 1)
        self.assertEqual(summary["overdue_tasks"], 1)
        self.assertEqual(summary["completion_percentage"], 33)


class ProjectRoutesTestCase(AppTestCase):
    def setUp(self):
        super().setUp()
        self.owner = User(username="owner", name="Owner", email="owner@example.com")
        db.session.add(self.owner)
        db.session.commit()
        self.login(self.owner.id)

    def test_create_then_trash_hides_project_from_detail(self):
        response = self.client.post("/api/projects", json={"name": "Harvest"})
        self.assertEqual(response.status_code, 201)
        project_id = response.get_json()["data"]["id"]

        response = self.client.post(f"/api/projects/{project_id}/trash")
        self.assertEqual(response.status_code, 200)

        response = self.client.get(f"/api/projects/{project_id}")
        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.get_json()["success"])

        response = self.client.get("/api/projects/trash")
        self.assertEqual([entry["id"] for entry in response.get_json()["data"]], [project_id])

        response = self.client.post(f"/api/projects/{project_id}/restore")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get(f"/api/projects/{project_id}").status_code, 200)

    def test_delete_purges_project(self):
        project_id = self.client.post("/api/projects", json={"name": "Harvest"}).get_json()["data"]["id"]

        response = self.client.delete(f"/api/projects/{project_id}")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(Project.query.filter_by(id=project_id).count(), 0)
