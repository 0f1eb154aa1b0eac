"""Project, membership and canvas endpoints."""
from __future__ import annotations

from flask import Blueprint, g

from forms import MemberForm, MemberRoleForm, ProjectForm, TransferOwnershipForm
from models.project_member import ProjectRole
from routes import json_payload, json_success, login_required, validate_form
from services.access_service import require_project_access
from services.canvas_service import load_canvas, save_canvas
from services.gateway_service import get_sql_gateway, get_write_target
from services.member_service import (
    add_member,
    list_members,
    remove_member,
    transfer_ownership,
    update_member_role,
)
from services.project_service import (
    UPDATABLE_FIELDS,
    create_project,
    list_active_projects,
    list_trashed_projects,
    move_to_trash,
    project_dashboard,
    project_detail,
    purge_project,
    restore_project,
    update_project,
)

projects_bp = Blueprint("projects", __name__, url_prefix="/api/projects")


def _members_payload(project_id: str) -> list[dict]:
    return [member.to_dict() for member in list_members(project_id)]


@projects_bp.route("", methods=["GET"])
@login_required
def list_projects():
    return json_success(data=list_active_projects(g.user))


@projects_bp.route("", methods=["POST"])
@login_required
def create_project_route():
    payload = json_payload()
    validate_form(ProjectForm, payload)
    project = create_project(g.user, payload)
    return json_success(201, data=project_detail(project, ProjectRole.OWNER))


@projects_bp.route("/trash", methods=["GET"])
@login_required
def list_trash():
    return json_success(data=list_trashed_projects(g.user))


@projects_bp.route("/<project_id>", methods=["GET"])
@login_required
def get_project(project_id: str):
    access = require_project_access(project_id, g.user.id)
    return json_success(data=project_detail(access.project, access.role))


@projects_bp.route("/<project_id>", methods=["PATCH"])
@login_required
def update_project_route(project_id: str):
    access = require_project_access(project_id, g.user.id, ProjectRole.OWNER)
    payload = json_payload()
    project = update_project(access.project, {key: payload[key] for key in UPDATABLE_FIELDS if key in payload})
    return json_success(data=project.to_dict())


@projects_bp.route("/<project_id>", methods=["DELETE"])
@login_required
def delete_project(project_id: str):
    access = require_project_access(project_id, g.user.id, ProjectRole.OWNER, include_trashed=True)
    json_payload()
    purge_project(access.project)
    return json_success(message="Project deleted permanently.")


@projects_bp.route("/<project_id>/trash", methods=["POST"])
@login_required
def trash_project(project_id: str):
    access = require_project_access(project_id, g.user.id, ProjectRole.OWNER, include_trashed=True)
    json_payload()
    project = move_to_trash(access.project)
    return json_success(data=project.to_dict(), message="Project moved to trash.")


@projects_bp.route("/<project_id>/restore", methods=["POST"])
@login_required
def restore_project_route(project_id: str):
    access = require_project_access(project_id, g.user.id, ProjectRole.OWNER, include_trashed=True)
    json_payload()
    project = restore_project(access.project)
    return json_success(data=project.to_dict(), message="Project restored.")


@projects_bp.route("/<project_id>/dashboard", methods=["GET"])
@login_required
def dashboard(project_id: str):
    access = require_project_access(project_id, g.user.id)
    return json_success(data=project_dashboard(access.project))


@projects_bp.route("/<project_id>/members", methods=["GET"])
@login_required
def get_members(project_id: str):
    require_project_access(project_id, g.user.id)
    return json_success(data=_members_payload(project_id))


@projects_bp.route("/<project_id>/members", methods=["POST"])
@login_required
def add_member_route(project_id: str):
    require_project_access(project_id, g.user.id, ProjectRole.OWNER)
    form = validate_form(MemberForm, json_payload())
    add_member(project_id, form.user_id.data, form.role.data, added_by=g.user.id)
    return json_success(201, data=_members_payload(project_id))


@projects_bp.route("/<project_id>/members/<user_id>", methods=["PATCH"])
@login_required
def update_member_route(project_id: str, user_id: str):
    require_project_access(project_id, g.user.id, ProjectRole.OWNER)
    form = validate_form(MemberRoleForm, json_payload())
    update_member_role(project_id, user_id, form.role.data)
    return json_success(data=_members_payload(project_id))


@projects_bp.route("/<project_id>/members/<user_id>", methods=["DELETE"])
@login_required
def remove_member_route(project_id: str, user_id: str):
    require_project_access(project_id, g.user.id, ProjectRole.OWNER)
    json_payload()
    remove_member(project_id, user_id)
    return json_success(data=_members_payload(project_id))


@projects_bp.route("/<project_id>/transfer", methods=["POST"])
@login_required
def transfer_project(project_id: str):
    require_project_access(project_id, g.user.id, ProjectRole.OWNER)
    form = validate_form(TransferOwnershipForm, json_payload())
    project = transfer_ownership(project_id, form.user_id.data, actor_id=g.user.id)
    return json_success(data={"project": project.to_dict(), "members": _members_payload(project_id)})


@projects_bp.route("/<project_id>/canvas", methods=["GET"])
@login_required
def get_canvas(project_id: str):
    require_project_access(project_id, g.user.id)
    return json_success(data=load_canvas(get_sql_gateway(), project_id))


@projects_bp.route("/<project_id>/canvas", methods=["POST"])
@login_required
def save_canvas_route(project_id: str):
    require_project_access(project_id, g.user.id)
    payload = json_payload()
    save_canvas(
        get_sql_gateway(),
        get_write_target(),
        project_id,
        payload.get("elements"),
        payload.get("appState"),
    )
    return json_success(message="Canvas saved.")
