"""Shared helpers for route blueprints."""

from __future__ import annotations

from functools import wraps
from typing import Any, Dict

from flask import current_app, g, jsonify, request
from flask_wtf.csrf import validate_csrf
from wtforms.validators import ValidationError as CSRFValidationError

from services.errors import Forbidden, Unauthorized, ValidationError

__all__ = [
    "json_payload",
    "json_success",
    "login_required",
    "requires_role",
    "validate_form",
    "validate_request_csrf",
]


def validate_request_csrf(token: str | None) -> tuple[bool, str | None]:
    """Validate CSRF tokens supplied with JSON payloads."""
    if not current_app.config.get("WTF_CSRF_ENABLED", True):
        return True, None
    if not token:
        return False, "The CSRF token is missing."
    try:
        validate_csrf(token)
    except CSRFValidationError:
        return (
            False,
            "The CSRF token is invalid or has expired. Please refresh and try again.",
        )
    return True, None


def json_payload() -> Dict[str, Any]:
    """Return the JSON body of a mutating request after checking its CSRF token."""

    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError("Expected a JSON object.")
    token = payload.get("csrf_token") or request.headers.get("X-CSRFToken")
    valid, message = validate_request_csrf(token)
    if not valid:
        raise ValidationError(message, {"csrf_token": [message]})
    return payload


def validate_form(form_class, payload: Dict[str, Any]):
    """Run a WTForms form over a JSON payload and return it when valid."""

    form = form_class(
        formdata=None,
        data={key: value for key, value in payload.items() if value is not None},
        meta={"csrf": False},
    )
    if not form.validate():
        raise ValidationError("Please correct the highlighted fields.", form.errors)
    return form


def json_success(status: int = 200, **data):
    return jsonify({"success": True, **data}), status


def login_required(f):
    """Reject the request with 401 unless a user is loaded into ``g.user``."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if getattr(g, "user", None) is None:
            raise Unauthorized()
        return f(*args, **kwargs)

    return decorated_function


def requires_role(role):
    """Require a specific global User role for the route to be accessed.

    Usage:
        @bp.route('/admin-only')
        @requires_role(User.ADMIN)
        def admin_only():
            ...
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if getattr(g, "user", None) is None:
                raise Unauthorized()
            if g.user.role != role:
                raise Forbidden("You do not have access to this resource.", reason="insufficient role")
            return f(*args, **kwargs)

        return decorated_function

    return decorator
