"""Project whiteboard stored as an opaque JSON blob on the external project row."""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from services.errors import NotFound, ValidationError
from services.gateway_service import WriteTarget, ensure_write_target

logger = logging.getLogger(__name__)


def empty_canvas() -> dict[str, Any]:
    return {"elements": [], "appState": {}}


def load_canvas(gateway, project_id: str) -> dict[str, Any]:
    """Return ``{elements, appState}`` for the project, empty when unset."""

    result = gateway.query(
        "SELECT canvas_data FROM pm_projects WHERE id = @id",
        {"id": project_id},
    )
    if not result.recordset:
        return empty_canvas()
    raw = result.recordset[0].get("canvas_data")
    if not raw:
        return empty_canvas()
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed canvas data for project %s", project_id)
        return empty_canvas()
    if not isinstance(data, dict):
        logger.warning("Ignoring malformed canvas data for project %s", project_id)
        return empty_canvas()
    return {
        "elements": data.get("elements") or [],
        "appState": data.get("appState") or {},
    }


def save_canvas(
    gateway,
    write_target: WriteTarget,
    project_id: str,
    elements: Any,
    app_state: Any,
    *,
    server: str | None = None,
    database: str | None = None,
) -> None:
    """Write the canvas JSON; only the write target may be written to."""

    if not isinstance(elements, list):
        raise ValidationError("Invalid canvas.", {"elements": ["Expected a list."]})
    if app_state is None:
        app_state = {}
    if not isinstance(app_state, dict):
        raise ValidationError("Invalid canvas.", {"appState": ["Expected an object."]})

    server = server or write_target.server
    database = database or write_target.database
    ensure_write_target(server, database, write_target)
    payload = json.dumps({"elements": elements, "appState": app_state})
    result = gateway.query(
        "UPDATE pm_projects SET canvas_data = @canvas_data, updated_at = @updated_at WHERE id = @id",
        {"canvas_data": payload, "updated_at": datetime.utcnow(), "id": project_id},
        server=server,
        database=database,
    )
    if result.total_rows_affected == 0:
        raise NotFound("Project not found in the external database")
    logger.info("Saved canvas for project %s", project_id)
