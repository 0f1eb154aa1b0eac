"""Synchronisation with the external SQL Server database."""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from database import db
from forms import SyncForm
from models.user import User
from routes import json_payload, login_required, requires_role, validate_form
from services.gateway_service import (
    READ_ONLY_DATABASES,
    GatewayError,
    get_sql_gateway,
    get_write_target,
)
from services.sync_service import ALLOWED_TABLES, DIRECTIONS, last_sync_run, run_sync

sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


def _restrictions(target) -> list[str]:
    return [
        f"ONLY {target.server} is allowed for write operations",
        f"ONLY the {target.database} database is allowed for write operations",
        f"Other databases ({', '.join(sorted(READ_ONLY_DATABASES))}, etc.) are READ-ONLY",
    ]


@sync_bp.route("", methods=["GET"])
@login_required
def sync_status():
    gateway = get_sql_gateway()
    target = get_write_target()
    last_run = last_sync_run(db.session)
    connected = gateway.health_check()

    server = {"name": target.server, "host": None, "port": None, "read_only": False}
    if connected:
        try:
            for descriptor in gateway.get_servers():
                if descriptor.name == target.server:
                    server.update(host=descriptor.host, port=descriptor.port)
        except GatewayError as exc:
            current_app.logger.warning("Could not list gateway servers: %s", exc)

    data = {
        "connected": connected,
        "server": server,
        "database": {"name": target.database, "access": "READ_WRITE"},
        "restrictions": _restrictions(target),
        "directions": list(DIRECTIONS),
        "tables": list(ALLOWED_TABLES),
        "last_run": last_run.to_dict() if last_run else None,
    }
    if not connected:
        return jsonify({"success": False, "error": "Cannot connect to SQL Gateway API", "data": data}), 503
    return jsonify({"success": True, "data": data})


@sync_bp.route("", methods=["POST"])
@requires_role(User.ADMIN)
def trigger_sync():
    payload = json_payload()
    if "dryRun" in payload and "dry_run" not in payload:
        payload["dry_run"] = payload.pop("dryRun")
    form = validate_form(SyncForm, payload)
    # An explicit empty list syncs nothing; only a missing key means every table.
    tables = payload.get("tables")
    run, result = run_sync(
        get_sql_gateway(),
        db.session,
        get_write_target(),
        form.direction.data,
        tables,
        triggered_by=g.user.id,
        dry_run=bool(form.dry_run.data),
    )
    return jsonify(
        {"success": result.success, "data": result.to_dict(), "run": run.to_dict() if run else None}
    )
