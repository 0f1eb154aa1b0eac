from database import db
from models.attachment import Attachment
from models.project import Project
from models.project_member import ProjectMember
from models.sync_run import SyncRun
from models.task import Task
from models.user import User
from services.errors import Conflict, ValidationError
from services.member_service import add_member
from services.project_service import create_project
from services.task_service import add_attachment, add_comment, create_task
from services.user_service import authenticate, create_user, delete_user, escape_like, search_users
from tests.utils.db import AppTestCase
from tests.utils.fakes import FakeGateway

DIRECTORY = [
    {"id": "user_1", "username": "budi", "email": "budi@estate.id", "name": "Budi Santoso", "role": "PM"},
    {"id": "user_2", "username": "anita", "email": "anita@estate.id", "name": "Anita Budiman", "role": "MEMBER"},
    {"id": "user_3", "username": "citra", "email": "citra@estate.id", "name": "Citra", "role": "MEMBER"},
]


def test_search_requires_two_characters():
    gateway = FakeGateway({"pm_users": DIRECTORY})

    for query in (None, "", " b "):
        try:
            search_users(gateway, query)
        except ValidationError as exc:
            assert exc.message == "Query must be at least 2 characters"
        else:
            raise AssertionError(f"{query!r} was accepted")
    assert gateway.calls == []


def test_search_matches_username_email_and_name():
    gateway = FakeGateway({"pm_users": DIRECTORY})

    results = search_users(gateway, "budi")

    assert [row["id"] for row in results] == ["user_2", "user_1"]
    assert set(results[0]) == {"id", "username", "email", "name", "avatar_url", "role"}


def test_exact_email_match_sorts_first():
    gateway = FakeGateway({"pm_users": DIRECTORY})

    results = search_users(gateway, "budi@estate.id")

    assert results[0]["id"] == "user_1"


def test_limit_is_clamped():
    gateway = FakeGateway({"pm_users": DIRECTORY})

    search_users(gateway, "estate", limit=500)
    search_users(gateway, "estate", limit="junk")
    search_users(gateway, "estate", limit=0)

    assert [params["limit"] for _sql, params, *_ in gateway.calls] == [50, 10, 1]
    assert gateway.calls[0][1]["pattern"] == "%estate%"


def test_wildcards_in_query_match_literally():
    gateway = FakeGateway(
        {
            "pm_users": DIRECTORY
            + [{"id": "user_4", "username": "a_ita", "email": "aita@estate.id", "name": "Aita", "role": "MEMBER"}]
        }
    )

    assert [row["id"] for row in search_users(gateway, "a_ita")] == ["user_4"]
    assert search_users(gateway, "%%") == []
    assert gateway.calls[0][1]["pattern"] == "%a\\_ita%"
    assert "ESCAPE" in gateway.statements()[0]


def test_escape_like_escapes_the_escape_character_first():
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"


class UserDirectoryTestCase(AppTestCase):
    def test_create_user_hashes_password_and_rejects_duplicates(self):
        user = create_user("dewi", "Dewi@Estate.id", "Dewi", "secret-pass")

        self.assertEqual(user.email, "dewi@estate.id")
        self.assertNotEqual(user.password_hash, "secret-pass")
        self.assertEqual(authenticate("dewi@estate.id", "secret-pass").id, user.id)
        self.assertIsNone(authenticate("dewi", "wrong"))
        with self.assertRaises(Conflict):
            create_user("dewi", "other@estate.id", "Dewi", "secret-pass")

    def test_delete_user_refuses_project_owners(self):
        owner = create_user("owner", "owner@estate.id", "Owner", "secret-pass")
        create_project(owner, {"name": "Nursery"})

        with self.assertRaises(Conflict):
            delete_user(owner)

    def test_delete_user_removes_memberships_and_comments(self):
        owner = create_user("owner", "owner@estate.id", "Owner", "secret-pass")
        leaving = create_user("leaving", "leaving@estate.id", "Leaving", "secret-pass")
        project = create_project(owner, {"name": "Nursery"})
        db.session.add(ProjectMember(project_id=project.id, user_id=leaving.id, role="MEMBER"))
        db.session.commit()
        task = create_task(project, {"title": "Water seedlings", "assignee_id": leaving.id})
        add_comment(task, leaving, "On it")
        leaving_id = leaving.id

        delete_user(leaving)

        self.assertIsNone(db.session.get(User, leaving_id))
        self.assertEqual(ProjectMember.query.filter_by(user_id=leaving_id).count(), 0)
        self.assertIsNone(db.session.get(Task, task.id).assignee_id)
        self.assertIsNotNone(db.session.get(Project, project.id))

    def test_search_route_uses_gateway(self):
        user = create_user("viewer", "viewer@estate.id", "Viewer", "secret-pass")
        self.gateway.seed("pm_users", DIRECTORY)
        self.login(user.id)

        response = self.client.get("/api/users/search?q=citra")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["id"] for row in response.get_json()["data"]], ["user_3"])
        self.assertEqual(self.client.get("/api/users/search?q=c").status_code, 400)

    def test_delete_user_clears_references_they_left_behind(self):
        owner = create_user("owner", "owner@estate.id", "Owner", "secret-pass")
        manager = create_user("manager", "manager@estate.id", "Manager", "secret-pass")
        worker = create_user("worker", "worker@estate.id", "Worker", "secret-pass")
        project = create_project(owner, {"name": "Nursery"})
        add_member(project.id, manager.id, "PM", added_by=owner.id)
        add_member(project.id, worker.id, "MEMBER", added_by=manager.id)
        attachment = add_attachment(
            project,
            manager,
            {"file_name": "plan.pdf", "file_url": "https://files.local/plan.pdf", "file_type": "document"},
        )
        run = SyncRun(direction="pull", tables=["users"], triggered_by=manager.id)
        db.session.add(run)
        db.session.commit()
        manager_id = manager.id

        delete_user(manager)

        db.session.expire_all()
        self.assertIsNone(db.session.get(User, manager_id))
        membership = ProjectMember.query.filter_by(project_id=project.id, user_id=worker.id).one()
        self.assertIsNone(membership.added_by)
        self.assertIsNone(db.session.get(Attachment, attachment.id).uploaded_by)
        self.assertIsNone(db.session.get(SyncRun, run.id).triggered_by)
