"""In-memory stand-in for the SQL gateway used by the test suites."""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional

from services.gateway_service import (
    GatewayUnavailableError,
    QueryResult,
    ServerDescriptor,
    validate_named_params,
)

_TABLE_AFTER = re.compile(r"\b(?:FROM|INTO|UPDATE)\s+(\w+)", re.IGNORECASE)


def _like_pattern(pattern: str) -> re.Pattern:
    """Compile a LIKE pattern using backslash as its ESCAPE character."""
    parts = []
    chars = iter(pattern)
    for char in chars:
        if char == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


class FakeGateway:
    """Understands the handful of statement shapes the application sends.

    ``tables`` maps an external table name to ``{id: row}``. Every call is
    recorded in ``calls`` as ``(sql, params, server, database)``.
    """

    def __init__(self, tables: Optional[Dict[str, Iterable[dict]]] = None, healthy: bool = True):
        self.tables: Dict[str, Dict[str, dict]] = {}
        for name, rows in (tables or {}).items():
            self.seed(name, rows)
        self.healthy = healthy
        self.unreachable_tables: set[str] = set()
        self.calls: List[tuple] = []
        self.default_server = "SERVER_PROFILE_1"
        self.default_database = "extend_db_ptrj"

    def seed(self, table: str, rows: Iterable[dict]) -> None:
        bucket = self.tables.setdefault(table, {})
        for row in rows:
            bucket[row["id"]] = dict(row)

    def rows(self, table: str) -> List[dict]:
        return list(self.tables.get(table, {}).values())

    def statements(self) -> List[str]:
        return [" ".join(sql.split()) for sql, *_ in self.calls]

    def query(self, sql: str, params: Optional[Dict[str, Any]] = None, *, server=None, database=None) -> QueryResult:
        params = validate_named_params(sql, params)
        self.calls.append((sql, params, server, database))
        statement = " ".join(sql.split())
        match = _TABLE_AFTER.search(statement)
        table = match.group(1) if match else ""
        if table in self.unreachable_tables:
            raise GatewayUnavailableError("Unable to reach the SQL gateway.")
        bucket = self.tables.setdefault(table, {})
        verb = statement.split(" ", 1)[0].upper()

        if verb == "INSERT":
            bucket[params["id"]] = dict(params)
            return QueryResult([], [1])
        if verb == "UPDATE":
            row = bucket.get(params["id"])
            if row is None:
                return QueryResult([], [0])
            row.update(params)
            return QueryResult([], [1])
        if statement.upper().startswith("SELECT TOP"):
            return self._search(bucket, params)
        if verb == "SELECT":
            rows = list(bucket.values())
            if "WHERE id = @id" in statement:
                rows = [row for row in rows if row.get("id") == params["id"]]
            return QueryResult([dict(row) for row in rows], [len(rows)])
        raise AssertionError(f"Unexpected statement: {statement}")

    def _search(self, bucket: Dict[str, dict], params: Dict[str, Any]) -> QueryResult:
        pattern = _like_pattern(params["pattern"])
        matches = [
            row
            for row in bucket.values()
            if any(pattern.fullmatch(str(row.get(column) or "")) for column in ("username", "email", "name"))
        ]
        matches.sort(key=lambda row: (0 if row.get("email") == params["exact"] else 1, row.get("username") or ""))
        matches = matches[: params["limit"]]
        return QueryResult([dict(row) for row in matches], [len(matches)])

    def health_check(self) -> bool:
        return self.healthy

    def get_servers(self) -> List[ServerDescriptor]:
        return [ServerDescriptor(name="SERVER_PROFILE_1", host="10.0.0.110", port=1433, read_only=False)]
