"""Shared fixtures: an in-memory ServiceNow Table API behind httpx.MockTransport."""
from __future__ import annotations

import json
from itertools import count
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

from config import Settings
from server_config import AppContext
from session import SessionController

USER_ID = "user-0001"


class FakeInstance:
    """
    Just enough of the Table API for the client: equality queries joined
    with ^, sysparm_limit, POST, PUT, and injectable failures.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            "sys_user": [{"sys_id": USER_ID, "user_name": "mcp.test"}],
        }
        self.requests: list[SimpleNamespace] = []
        self.failures: dict[tuple[str, str], tuple[int, dict[str, Any]]] = {}
        self._ids = count(1)

    # -- test helpers -----------------------------------------------------

    def add(self, table: str, **row: Any) -> dict[str, Any]:
        row.setdefault("sys_id", f"{table}-{next(self._ids)}")
        self.tables.setdefault(table, []).append(row)
        return row

    def fail(self, method: str, table: str, status: int, message: str = "Operation Failed") -> None:
        self.failures[(method, table)] = (
            status,
            {"error": {"message": message, "detail": ""}, "status": "failure"},
        )

    def posted(self, table: str) -> list[dict[str, Any]]:
        return [r.json for r in self.requests if r.method == "POST" and r.table == table]

    def writes(self) -> list[SimpleNamespace]:
        return [r for r in self.requests if r.method in ("POST", "PUT")]

    # -- transport --------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        parts = request.url.path.split("/")[4:]  # ["", "api", "now", "table", ...]
        table = parts[0]
        sys_id = parts[1] if len(parts) > 1 else None
        body = json.loads(request.content) if request.content else None
        self.requests.append(
            SimpleNamespace(
                method=request.method,
                table=table,
                sys_id=sys_id,
                params=dict(request.url.params),
                json=body,
            )
        )

        failure = self.failures.get((request.method, table))
        if failure:
            status, error = failure
            return httpx.Response(status, json=error)

        if request.method == "GET":
            rows = self._select(table, request.url.params.get("sysparm_query", ""))
            limit = request.url.params.get("sysparm_limit")
            if limit:
                rows = rows[: int(limit)]
            return httpx.Response(200, json={"result": rows})

        if request.method == "POST":
            return httpx.Response(201, json={"result": self.add(table, **body)})

        if request.method == "PUT":
            for row in self.tables.get(table, []):
                if row["sys_id"] == sys_id:
                    row.update(body)
                    return httpx.Response(200, json={"result": row})
            return httpx.Response(
                404,
                json={"error": {"message": "No Record found", "detail": ""}, "status": "failure"},
            )

        return httpx.Response(405)

    def _select(self, table: str, query: str) -> list[dict[str, Any]]:
        terms = [
            term.split("=", 1)
            for term in query.split("^")
            if "=" in term and not term.startswith("ORDERBY")
        ]
        return [
            row
            for row in self.tables.get(table, [])
            if all(_plain(row.get(k)) == v for k, v in terms)
        ]


def _plain(value: Any) -> str:
    if isinstance(value, dict):
        value = value.get("value")
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        servicenow_instance_url="https://test.service-now.com",
        servicenow_username="mcp.test",
        servicenow_password="test-password",
    )


@pytest.fixture
def instance() -> FakeInstance:
    return FakeInstance()


@pytest.fixture
def transport(instance: FakeInstance) -> httpx.MockTransport:
    return httpx.MockTransport(instance.handler)


@pytest.fixture
def session(settings: Settings, transport: httpx.MockTransport) -> SessionController:
    return SessionController(settings, transport=transport)


@pytest.fixture
def ctx(session: SessionController) -> SimpleNamespace:
    """Stand-in for the MCP Context: only request_context.lifespan_context is read."""
    return SimpleNamespace(
        request_context=SimpleNamespace(lifespan_context=AppContext(session=session))
    )
