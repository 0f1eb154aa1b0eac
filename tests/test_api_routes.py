from database import db
from models.sync_run import SyncRun
from models.user import User
from services.member_service import add_member
from services.project_service import create_project
from services.task_service import create_task
from tests.utils.db import AppTestCase


class ApiRoutesTestCase(AppTestCase):
    def setUp(self):
        super().setUp()
        self.owner = User(username="owner", name="Owner", email="owner@example.com")
        self.member = User(username="member", name="Member", email="member@example.com")
        self.outsider = User(username="outsider", name="Outsider", email="outsider@example.com")
        self.admin = User(username="admin", name="Admin", email="admin@example.com", role=User.ADMIN)
        db.session.add_all([self.owner, self.member, self.outsider, self.admin])
        db.session.commit()
        self.project = create_project(self.owner, {"name": "Field survey"})
        add_member(self.project.id, self.member.id, "MEMBER", added_by=self.owner.id)

    def test_requests_without_session_are_unauthorized(self):
        response = self.client.get("/api/projects")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json(), {"success": False, "error": "Unauthorized"})

    def test_outsider_gets_forbidden_with_reason(self):
        self.login(self.outsider.id)

        response = self.client.get(f"/api/projects/{self.project.id}")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["reason"], "not a member")

    def test_unknown_project_is_not_found(self):
        self.login(self.owner.id)

        response = self.client.get("/api/projects/proj_missing")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["reason"], "not found")

    def test_member_cannot_edit_project(self):
        self.login(self.member.id)

        self.assertEqual(self.client.get(f"/api/projects/{self.project.id}").status_code, 200)
        response = self.client.patch(f"/api/projects/{self.project.id}", json={"name": "Renamed"})

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["reason"], "insufficient role")

    def test_member_list_and_management(self):
        self.login(self.owner.id)

        response = self.client.post(
            f"/api/projects/{self.project.id}/members",
            json={"user_id": self.outsider.id, "role": "PM"},
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(
            [entry["user_id"] for entry in response.get_json()["data"]],
            [self.owner.id, self.member.id, self.outsider.id],
        )

        response = self.client.post(
            f"/api/projects/{self.project.id}/members",
            json={"user_id": self.outsider.id, "role": "MEMBER"},
        )
        self.assertEqual(response.status_code, 409)

        response = self.client.delete(f"/api/projects/{self.project.id}/members/{self.owner.id}")
        self.assertEqual(response.status_code, 409)

    def test_members_listing_requires_membership(self):
        self.login(self.member.id)
        self.assertEqual(self.client.get(f"/api/projects/{self.project.id}/members").status_code, 200)

        response = self.client.post(
            f"/api/projects/{self.project.id}/members",
            json={"user_id": self.outsider.id, "role": "MEMBER"},
        )
        self.assertEqual(response.status_code, 403)

    def test_project_list_includes_member_role(self):
        self.login(self.member.id)

        data = self.client.get("/api/projects").get_json()["data"]

        self.assertEqual([(entry["id"], entry["member_role"]) for entry in data], [(self.project.id, "MEMBER")])

    def test_task_routes_follow_project_access(self):
        task = create_task(self.project, {"title": "Count palms"})

        self.login(self.outsider.id)
        self.assertEqual(self.client.get(f"/api/tasks/{task.id}").status_code, 403)

        self.login(self.member.id)
        response = self.client.post(f"/api/tasks/{task.id}/comments", json={"content": "Done with block A"})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(self.client.delete(f"/api/tasks/{task.id}").status_code, 403)

        self.login(self.owner.id)
        self.assertEqual(self.client.delete(f"/api/tasks/{task.id}").status_code, 200)

    def test_invalid_payload_reports_field_errors(self):
        self.login(self.owner.id)

        response = self.client.post("/api/projects", json={"description": "no name"})

        self.assertEqual(response.status_code, 400)
        self.assertIn("name", response.get_json()["errors"])

    def test_canvas_round_trip_through_gateway(self):
        self.gateway.seed("pm_projects", [{"id": self.project.id, "canvas_data": None}])
        self.login(self.member.id)

        response = self.client.post(
            f"/api/projects/{self.project.id}/canvas",
            json={"elements": [{"id": "arrow-1"}], "appState": {}},
        )
        self.assertEqual(response.status_code, 200)

        response = self.client.get(f"/api/projects/{self.project.id}/canvas")
        self.assertEqual(response.get_json()["data"]["elements"], [{"id": "arrow-1"}])

    def test_sync_requires_admin(self):
        self.login(self.owner.id)

        response = self.client.post("/api/sync", json={"direction": "pull"})

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["reason"], "insufficient role")
        self.assertEqual(self.gateway.calls, [])

    def test_sync_rejects_unknown_tables_before_calling_gateway(self):
        self.login(self.admin.id)

        response = self.client.post("/api/sync", json={"direction": "pull", "tables": ["users", "evil_table"]})

        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.get_json()["success"])
        self.assertEqual(self.gateway.calls, [])
        self.assertEqual(SyncRun.query.count(), 0)

    def test_sync_with_empty_table_list_sends_nothing(self):
        self.login(self.admin.id)

        response = self.client.post("/api/sync", json={"direction": "push", "tables": []})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["data"]["tables"], {})
        self.assertEqual(self.gateway.calls, [])

    def test_dry_run_sync_reports_counts_without_writing(self):
        self.login(self.admin.id)

        response = self.client.post("/api/sync", json={"direction": "push", "tables": ["tasks"], "dryRun": True})

        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertTrue(body["data"]["dry_run"])
        self.assertIsNone(body["run"])
        self.assertEqual(self.gateway.statements(), ["SELECT id, updated_at FROM pm_tasks"])
        self.assertEqual(SyncRun.query.count(), 0)

    def test_admin_sync_runs_and_is_reported_in_status(self):
        self.login(self.admin.id)

        response = self.client.post("/api/sync", json={"direction": "push", "tables": ["tasks"]})

        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertTrue(body["success"])
        self.assertEqual(body["run"]["status"], "SUCCEEDED")

        status = self.client.get("/api/sync").get_json()
        self.assertTrue(status["data"]["connected"])
        self.assertEqual(status["data"]["server"]["host"], "10.0.0.110")
        self.assertEqual(status["data"]["last_run"]["id"], body["run"]["id"])

    def test_sync_status_reports_unreachable_gateway(self):
        self.gateway.healthy = False
        self.login(self.owner.id)

        response = self.client.get("/api/sync")

        self.assertEqual(response.status_code, 503)
        self.assertFalse(response.get_json()["data"]["connected"])
