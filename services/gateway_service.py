"""Client for the remote SQL gateway that fronts the external SQL Server.

The gateway executes whatever SQL it receives. Writes are only allowed
against one server profile and one database (the write target); callers must
pass every write through :func:`ensure_write_target` first.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from http.client import RemoteDisconnected
from typing import Any, Dict, List, Optional, Tuple
from urllib import request as urllib_request, error as urllib_error
from urllib.parse import quote

from flask import current_app

from services.errors import Forbidden, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "http://localhost:8001"
DEFAULT_SERVER = "SERVER_PROFILE_1"
DEFAULT_DATABASE = "extend_db_ptrj"
READ_ONLY_DATABASES = frozenset({"db_ptrj", "db_ptrj_mill"})
EXTENSION_KEY = "sql_gateway"

PARAM_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
# ``@@ROWCOUNT`` style system variables are not parameters.
SQL_PARAM_REFERENCE = re.compile(r"(?<![@\w])@([A-Za-z_][A-Za-z0-9_]*)")


class GatewayError(UpstreamError):
    """Raised when a gateway call fails or reports ``success: false``."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        *,
        sql: Optional[str] = None,
        server: Optional[str] = None,
        database: Optional[str] = None,
    ):
        super().__init__(message)
        self.gateway_status = status_code
        self.sql = sql
        self.server = server
        self.database = database


class GatewayUnavailableError(GatewayError):
    """Raised when the gateway cannot be reached at all."""

    status_code = 503


class WriteScopeError(Forbidden):
    """Raised before a write would reach a read-only server or database."""

    def __init__(self, server: str, database: str):
        super().__init__(
            f"Writes to {server}/{database} are not permitted.",
            reason="read-only target",
        )
        self.server = server
        self.database = database


@dataclass(frozen=True)
class WriteTarget:
    """The only server profile and database the application may write to."""

    server: str
    database: str


@dataclass
class QueryResult:
    recordset: List[Dict[str, Any]] = field(default_factory=list)
    rows_affected: List[int] = field(default_factory=list)

    @property
    def total_rows_affected(self) -> int:
        return sum(self.rows_affected)


@dataclass
class ServerDescriptor:
    name: str
    host: Optional[str] = None
    port: Optional[int] = None
    read_only: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "read_only": self.read_only,
        }


def ensure_write_target(server: str, database: str, target: WriteTarget) -> None:
    """Refuse any write that does not go to the configured write target."""

    if server != target.server or database != target.database:
        logger.error(
            "Blocked write outside of the write target",
            extra={"server": server, "database": database},
        )
        raise WriteScopeError(server, database)


def _json_default(value: Any):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def validate_named_params(sql: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Check that parameters are bound by name and match the SQL references."""

    params = dict(params or {})
    for name in params:
        if not isinstance(name, str) or not PARAM_NAME_PATTERN.match(name):
            raise ValueError(f"Invalid SQL parameter name: {name!r}")
    referenced = set(SQL_PARAM_REFERENCE.findall(sql))
    missing = sorted(referenced - set(params))
    if missing:
        raise ValueError(f"Missing SQL parameters: {', '.join(missing)}")
    return params


class SqlGatewayClient:
    """Stateless HTTP client reused across requests."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        *,
        default_server: str = DEFAULT_SERVER,
        default_database: str = DEFAULT_DATABASE,
        timeout: float = 20,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.default_server = default_server
        self.default_database = default_database
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "Taskboard-SqlGateway",
        }
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[dict] = None,
    ) -> Tuple[int, Any]:
        url = f"{self.base_url}{endpoint}"
        data = None
        if payload is not None:
            data = json.dumps(payload, default=_json_default).encode("utf-8")

        request = urllib_request.Request(
            url,
            data=data,
            headers=self._headers(),
            method=method,
        )
        try:
            with urllib_request.urlopen(request, timeout=self.timeout) as response:
                status = response.getcode()
                raw = response.read()
        except urllib_error.HTTPError as error:
            status = error.code
            raw = error.read()
        except RemoteDisconnected as error:
            raise GatewayUnavailableError("SQL gateway closed the connection unexpectedly.") from error
        except (urllib_error.URLError, TimeoutError, OSError) as error:
            logger.error("Cannot reach SQL gateway at %s: %s", self.base_url, error)
            raise GatewayUnavailableError("Unable to reach the SQL gateway.") from error

        text = raw.decode("utf-8", errors="replace") if raw else ""
        if status >= 400:
            logger.warning(
                "SQL gateway call failed",
                extra={"method": method, "url": url, "status": status, "body": text[:500]},
            )
        try:
            body = json.loads(text) if text else {}
        except json.JSONDecodeError:
            body = {}
        return status, body

    def query(
        self,
        sql: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        server: Optional[str] = None,
        database: Optional[str] = None,
    ) -> QueryResult:
        """Execute one statement with named parameters."""

        bound = validate_named_params(sql, params)
        server = server or self.default_server
        database = database or self.default_database
        status, body = self._request(
            "POST",
            "/v1/query",
            {"sql": sql, "server": server, "database": database, "params": bound},
        )
        if not isinstance(body, dict) or not body:
            raise GatewayError(
                "SQL gateway request failed" if status >= 400 else "Unexpected SQL gateway response.",
                status,
                sql=sql,
                server=server,
                database=database,
            )
        if not body.get("success"):
            raise GatewayError(
                body.get("error") or "Query failed",
                status,
                sql=sql,
                server=server,
                database=database,
            )
        data = body.get("data") or {}
        return QueryResult(
            recordset=list(data.get("recordset") or []),
            rows_affected=[int(count) for count in data.get("rowsAffected") or []],
        )

    def health_check(self) -> bool:
        try:
            status, body = self._request("GET", "/health")
        except GatewayError:
            return False
        return 200 <= status < 300 and isinstance(body, dict) and body.get("status") == "ok"

    def get_servers(self) -> List[ServerDescriptor]:
        status, body = self._request("GET", "/v1/servers")
        if status >= 400 or not isinstance(body, dict) or not body.get("success"):
            return []
        servers: List[ServerDescriptor] = []
        for entry in (body.get("data") or {}).get("servers") or []:
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            read_only = entry.get("read_only", entry.get("readOnly"))
            servers.append(
                ServerDescriptor(
                    name=entry["name"],
                    host=entry.get("host"),
                    port=entry.get("port"),
                    read_only=read_only,
                )
            )
        return servers

    def get_databases(self, server: Optional[str] = None) -> List[str]:
        target = quote(server or self.default_server)
        status, body = self._request("GET", f"/v1/databases?server={target}")
        if status >= 400 or not isinstance(body, dict) or not body.get("success"):
            return []
        return list((body.get("data") or {}).get("databases") or [])


def init_gateway(app) -> SqlGatewayClient:
    """Build the app's gateway client once and register it as an extension."""

    client = SqlGatewayClient(
        app.config["SQL_GATEWAY_URL"],
        app.config.get("SQL_GATEWAY_TOKEN"),
        default_server=app.config["SQL_GATEWAY_SERVER"],
        default_database=app.config["SQL_GATEWAY_DATABASE"],
        timeout=app.config["SQL_GATEWAY_TIMEOUT"],
    )
    app.extensions[EXTENSION_KEY] = client
    return client


def get_sql_gateway():
    return current_app.extensions[EXTENSION_KEY]


def get_write_target() -> WriteTarget:
    return WriteTarget(
        server=current_app.config["SQL_GATEWAY_WRITE_SERVER"],
        database=current_app.config["SQL_GATEWAY_WRITE_DATABASE"],
    )
