"""Mirror local tables to and from the external SQL Server database.

Rows are matched by primary id on both sides. When both sides hold the same
id, the copy with the later ``updated_at`` wins. Each table is synchronised
independently: a table that fails is reported and the next one still runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError

from models.comment import Comment
from models.project import Project
from models.sync_run import SyncRun, SyncRunStatus
from models.task import Task
from models.task_status import TaskStatus
from models.user import User
from services.errors import ServiceError, ValidationError
from services.gateway_service import (
    GatewayError,
    GatewayUnavailableError,
    WriteTarget,
    ensure_write_target,
)
from services.project_service import parse_datetime

logger = logging.getLogger(__name__)

DIRECTIONS = ("push", "pull", "both")
# Dependency order; requested tables always run in this sequence.
ALLOWED_TABLES = ("users", "projects", "statuses", "tasks", "comments")
SQL_RESERVED_WORDS = frozenset({"order", "key", "user"})


class SyncState(StrEnum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Column:
    attribute: str
    remote: str
    kind: str = "text"
    push: bool = True


@dataclass(frozen=True)
class TableSpec:
    name: str
    model: type
    remote_table: str
    columns: Tuple[Column, ...]

    def pushed_columns(self) -> Tuple[Column, ...]:
        return tuple(column for column in self.columns if column.push)


_TIMESTAMPS = (
    Column("created_at", "created_at", "datetime"),
    Column("updated_at", "updated_at", "datetime"),
)

TABLE_SPECS: Dict[str, TableSpec] = {
    "users": TableSpec(
        "users",
        User,
        "pm_users",
        (
            Column("id", "id"),
            Column("username", "username"),
            Column("email", "email"),
            Column("password_hash", "password"),
            Column("name", "name"),
            Column("role", "role"),
            Column("avatar_url", "avatar_url"),
            *_TIMESTAMPS,
        ),
    ),
    "projects": TableSpec(
        "projects",
        Project,
        "pm_projects",
        (
            Column("id", "id"),
            Column("name", "name"),
            Column("description", "description"),
            Column("start_date", "start_date", "datetime"),
            Column("end_date", "end_date", "datetime"),
            Column("priority", "priority"),
            Column("banner_image", "banner_image"),
            Column("status", "status"),
            Column("owner_id", "owner_id"),
            # Canvas edits go straight to the external row; never overwrite them.
            Column("canvas_data", "canvas_data", push=False),
            Column("deleted_at", "deleted_at", "datetime"),
            *_TIMESTAMPS,
        ),
    ),
    "statuses": TableSpec(
        "statuses",
        TaskStatus,
        "pm_task_statuses",
        (
            Column("id", "id"),
            Column("name", "name"),
            Column("order", "order", "int"),
            Column("project_id", "project_id"),
            *_TIMESTAMPS,
        ),
    ),
    "tasks": TableSpec(
        "tasks",
        Task,
        "pm_tasks",
        (
            Column("id", "id"),
            Column("title", "title"),
            Column("description", "description"),
            Column("priority", "priority"),
            Column("due_date", "due_date", "datetime"),
            Column("estimated_hours", "estimated_hours", "float"),
            Column("actual_hours", "actual_hours", "float"),
            Column("documentation", "documentation"),
            Column("progress", "progress", "int"),
            Column("project_id", "project_id"),
            Column("status_id", "status_id"),
            Column("assignee_id", "assignee_id"),
            Column("completed_at", "completed_at", "datetime"),
            *_TIMESTAMPS,
        ),
    ),
    "comments": TableSpec(
        "comments",
        Comment,
        "pm_comments",
        (
            Column("id", "id"),
            Column("task_id", "task_id"),
            Column("user_id", "user_id"),
            Column("content", "content"),
            *_TIMESTAMPS,
        ),
    ),
}


def quote_identifier(name: str) -> str:
    return f"[{name}]" if name.lower() in SQL_RESERVED_WORDS else name


def _from_remote(column: Column, value: Any) -> Any:
    if value is None:
        return None
    if column.kind == "datetime":
        return parse_datetime(value, column.attribute)
    if column.kind == "int":
        return int(value)
    if column.kind == "float":
        return float(value)
    return value


@dataclass
class TableSyncResult:
    pushed: int = 0
    pulled: int = 0
    skipped: int = 0
    errors: int = 0
    messages: List[str] = field(default_factory=list)

    @property
    def upserted(self) -> int:
        return self.pushed + self.pulled

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pushed": self.pushed,
            "pulled": self.pulled,
            "skipped": self.skipped,
            "upserted": self.upserted,
            "errors": self.errors,
        }


@dataclass
class SyncResult:
    direction: str
    dry_run: bool = False
    tables: Dict[str, TableSyncResult] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return not self.errors and all(table.errors == 0 for table in self.tables.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "direction": self.direction,
            "dry_run": self.dry_run,
            "tables": {name: table.to_dict() for name, table in self.tables.items()},
            "errors": list(self.errors),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


def validate_sync_request(direction: str, tables: Optional[Iterable[str]]) -> List[str]:
    """Return the requested tables in dependency order or raise ValidationError.

    ``None`` selects every table; an empty list selects none.
    """

    if direction not in DIRECTIONS:
        raise ValidationError(
            "Invalid sync direction.",
            {"direction": [f"Direction must be one of {', '.join(DIRECTIONS)}."]},
        )
    requested = list(ALLOWED_TABLES) if tables is None else list(tables)
    unknown = sorted({name for name in requested if name not in ALLOWED_TABLES})
    if unknown:
        raise ValidationError(
            f"Unknown tables: {', '.join(unknown)}",
            {"tables": [f"Tables must be chosen from {', '.join(ALLOWED_TABLES)}."]},
        )
    return [name for name in ALLOWED_TABLES if name in requested]


class SyncOrchestrator:
    """Runs push and pull passes for a set of tables.

    ``session`` is the SQLAlchemy session of the primary store and ``gateway``
    anything with a ``query(sql, params, server=, database=)`` method.
    """

    def __init__(
        self,
        gateway,
        session,
        write_target: WriteTarget,
        server: Optional[str] = None,
        database: Optional[str] = None,
    ):
        self.gateway = gateway
        self.session = session
        self.write_target = write_target
        self.server = server or write_target.server
        self.database = database or write_target.database
        self.state = SyncState.IDLE
        self.dry_run = False

    def _query(self, sql: str, params: Optional[Dict[str, Any]] = None):
        return self.gateway.query(sql, params, server=self.server, database=self.database)

    def sync_data(
        self,
        direction: str = "both",
        tables: Optional[Sequence[str]] = None,
        dry_run: bool = False,
    ) -> SyncResult:
        """Run the requested passes.

        With ``dry_run`` the remote side is only read and nothing is written on
        either side; the counts report what a real run would do.
        """
        ordered = validate_sync_request(direction, tables)
        if direction in ("push", "both"):
            ensure_write_target(self.server, self.database, self.write_target)

        self.state = SyncState.RUNNING
        self.dry_run = dry_run
        result = SyncResult(direction=direction, dry_run=dry_run)
        logger.info("Starting %s%s sync of %s", "dry-run " if dry_run else "", direction, ", ".join(ordered))
        for name in ordered:
            spec = TABLE_SPECS[name]
            table_result = TableSyncResult()
            result.tables[name] = table_result
            if direction in ("push", "both"):
                self._run_pass(self._push_table, spec, table_result, result)
            if direction in ("pull", "both"):
                self._run_pass(self._pull_table, spec, table_result, result)

        result.finished_at = datetime.utcnow()
        self.state = SyncState.SUCCEEDED if result.success else SyncState.FAILED
        logger.info(
            "Finished %s sync: %s",
            direction,
            {name: table.to_dict() for name, table in result.tables.items()},
        )
        return result

    def _run_pass(self, handler, spec: TableSpec, table_result: TableSyncResult, result: SyncResult) -> None:
        try:
            handler(spec, table_result)
        except (ServiceError, SQLAlchemyError, KeyError, ValueError) as exc:
            self.session.rollback()
            table_result.errors += 1
            table_result.messages.append(str(exc))
            result.errors.append(f"{spec.name}: {exc}")
            logger.error("Sync of %s failed: %s", spec.name, exc)

    def _remote_versions(self, spec: TableSpec) -> Dict[str, Optional[datetime]]:
        recordset = self._query(f"SELECT id, updated_at FROM {spec.remote_table}").recordset
        versions: Dict[str, Optional[datetime]] = {}
        for row in recordset:
            versions[str(row["id"])] = parse_datetime(row.get("updated_at"), "updated_at")
        return versions

    def _push_table(self, spec: TableSpec, table_result: TableSyncResult) -> None:
        remote = self._remote_versions(spec)
        columns = spec.pushed_columns()
        names = ", ".join(quote_identifier(column.remote) for column in columns)
        values = ", ".join(f"@{column.remote}" for column in columns)
        insert_sql = f"INSERT INTO {spec.remote_table} ({names}) VALUES ({values})"
        assignments = ", ".join(
            f"{quote_identifier(column.remote)} = @{column.remote}"
            for column in columns
            if column.remote != "id"
        )
        update_sql = f"UPDATE {spec.remote_table} SET {assignments} WHERE id = @id"

        for row in self.session.query(spec.model).order_by(spec.model.id).all():
            params = {column.remote: getattr(row, column.attribute) for column in columns}
            if row.id in remote:
                remote_updated = remote[row.id]
                if remote_updated is not None and row.updated_at is not None and row.updated_at <= remote_updated:
                    table_result.skipped += 1
                    continue
                sql = update_sql
            else:
                sql = insert_sql
            if self.dry_run:
                table_result.pushed += 1
                continue
            try:
                self._query(sql, params)
            except GatewayUnavailableError:
                raise
            except GatewayError as exc:
                table_result.errors += 1
                table_result.messages.append(f"{row.id}: {exc}")
                logger.warning("Could not push %s %s: %s", spec.name, row.id, exc)
                continue
            table_result.pushed += 1

    def _pull_table(self, spec: TableSpec, table_result: TableSyncResult) -> None:
        names = ", ".join(quote_identifier(column.remote) for column in spec.columns)
        recordset = self._query(f"SELECT {names} FROM {spec.remote_table}").recordset
        for record in recordset:
            record_id = str(record.get("id") or "")
            try:
                if self.dry_run:
                    merged = self._plan_record(spec, record)[0] != "skip"
                else:
                    with self.session.begin_nested():
                        merged = self._merge_record(spec, record)
            except (ServiceError, SQLAlchemyError, KeyError, TypeError, ValueError) as exc:
                table_result.errors += 1
                table_result.messages.append(f"{record_id}: {exc}")
                logger.warning("Could not pull %s %s: %s", spec.name, record_id, exc)
                continue
            if merged:
                table_result.pulled += 1
            else:
                table_result.skipped += 1
        if not self.dry_run:
            self.session.commit()

    def _plan_record(self, spec: TableSpec, record: Dict[str, Any]) -> Tuple[str, Any, Dict[str, Any]]:
        """Return ``(action, local_row, values)`` where action is insert, update or skip."""
        values = {
            column.attribute: _from_remote(column, record.get(column.remote))
            for column in spec.columns
            if column.remote in record
        }
        if not values.get("id"):
            raise ValueError("row has no id")
        local = self.session.get(spec.model, values["id"])
        if local is None:
            return "insert", None, values
        remote_updated = values.get("updated_at")
        if remote_updated is None or (local.updated_at is not None and local.updated_at >= remote_updated):
            return "skip", local, values
        return "update", local, values

    def _merge_record(self, spec: TableSpec, record: Dict[str, Any]) -> bool:
        action, local, values = self._plan_record(spec, record)
        if action == "skip":
            return False
        if action == "insert":
            self.session.add(spec.model(**values))
        else:
            for attribute, value in values.items():
                setattr(local, attribute, value)
        self.session.flush()
        return True


def run_sync(
    gateway,
    session,
    write_target: WriteTarget,
    direction: str,
    tables,
    triggered_by=None,
    dry_run: bool = False,
    **kwargs,
):
    """Run a sync and persist it as a SyncRun. Returns ``(run, result)``.

    Dry runs are not recorded, so ``run`` is ``None`` for them.
    """

    ordered = validate_sync_request(direction, tables)
    orchestrator = SyncOrchestrator(gateway, session, write_target, **kwargs)
    if direction in ("push", "both"):
        ensure_write_target(orchestrator.server, orchestrator.database, write_target)
    if dry_run:
        return None, orchestrator.sync_data(direction, ordered, dry_run=True)

    run = SyncRun(direction=direction, tables=ordered, triggered_by=triggered_by)
    session.add(run)
    session.commit()

    try:
        result = orchestrator.sync_data(direction, ordered)
    except Exception as exc:
        session.rollback()
        run.status_enum = SyncRunStatus.FAILED
        run.errors = [str(exc)]
        run.finished_at = datetime.utcnow()
        session.commit()
        raise

    run.status_enum = SyncRunStatus.SUCCEEDED if result.success else SyncRunStatus.FAILED
    run.summary = {name: table.to_dict() for name, table in result.tables.items()}
    run.errors = list(result.errors) + [
        f"{name}: {message}"
        for name, table in result.tables.items()
        for message in table.messages
        if f"{name}: {message}" not in result.errors
    ]
    run.finished_at = result.finished_at
    session.commit()
    return run, result


def last_sync_run(session) -> SyncRun | None:
    return session.query(SyncRun).order_by(SyncRun.started_at.desc()).first()
