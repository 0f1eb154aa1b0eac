"""User directory endpoints."""
from __future__ import annotations

from flask import Blueprint, g, request

from forms import UserForm
from models.user import User
from routes import json_payload, json_success, login_required, requires_role, validate_form
from services.errors import Conflict
from services.gateway_service import get_sql_gateway
from services.user_service import create_user, delete_user, get_user, list_users, search_users

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.route("/search", methods=["GET"])
@login_required
def search():
    results = search_users(
        get_sql_gateway(),
        request.args.get("q"),
        request.args.get("limit"),
    )
    return json_success(data=results)


@users_bp.route("", methods=["GET"])
@requires_role(User.ADMIN)
def list_users_route():
    return json_success(data=[user.to_dict() for user in list_users()])


@users_bp.route("", methods=["POST"])
@requires_role(User.ADMIN)
def create_user_route():
    form = validate_form(UserForm, json_payload())
    user = create_user(
        form.username.data,
        form.email.data,
        form.name.data,
        form.password.data,
        role=form.role.data,
    )
    return json_success(201, data=user.to_dict())


@users_bp.route("/<user_id>", methods=["DELETE"])
@requires_role(User.ADMIN)
def delete_user_route(user_id: str):
    user = get_user(user_id)
    if user.id == g.user.id:
        raise Conflict("You cannot delete your own account.")
    json_payload()
    delete_user(user)
    return json_success(message="User deleted.")
