"""
Generic record tools — test_connection, query_records, create_record, update_record.
"""
from __future__ import annotations

from typing import Any

import structlog
from mcp.server.fastmcp import Context
from pydantic import ValidationError

from input_validator import RecordCreate, RecordQuery
from server_config import get_session, mcp
from shared_helpers import (
    format_records,
    format_result,
    project_fields,
    record_id,
    tool_error,
    user_friendly_error,
)

log = structlog.get_logger(__name__)


@mcp.tool()
async def test_connection(ctx: Context) -> str:
    """
    Test the connection to the ServiceNow instance.

    Authenticates with the configured credentials and looks up the
    configured user's record.
    """
    log.info("tool.test_connection")
    session = get_session(ctx)

    try:
        client = await session.ensure_client()
        users = await client.get("sys_user", f"user_name={session.settings.servicenow_username}")
    except Exception as exc:
        return tool_error("test_connection", "connect to ServiceNow", exc)

    return format_result(
        "Connected to ServiceNow",
        [
            ("Instance", session.settings.servicenow_instance_url),
            ("Authenticated as", session.settings.servicenow_username),
            ("User records found", len(users)),
        ],
    )


@mcp.tool()
async def query_records(
    table: str,
    ctx: Context,
    query: str = "",
    limit: int = 10,
    fields: str = "",
) -> str:
    """
    Query records from any ServiceNow table.

    Args:
        table: Table name (e.g. incident, problem, change_request).
        query: Encoded query string (e.g. "active=true^priority=1").
        limit: Maximum number of records to return (newest first). Default 10.
        fields: Optional comma-separated list of fields to show.
    """
    log.info("tool.query_records", table=table, query=query, limit=limit)

    try:
        q = RecordQuery(table=table, query=query, limit=limit, fields=fields)
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    encoded = f"{q.query}^ORDERBYDESCsys_created_on" if q.query else "ORDERBYDESCsys_created_on"
    try:
        client = await get_session(ctx).ensure_client()
        records = await client.get(q.table, encoded, limit=q.limit, fields=q.field_list() or None)
    except Exception as exc:
        return tool_error("query_records", "query records", exc)

    return format_records(q.table, project_fields(records, q.field_list()))


@mcp.tool()
async def create_record(table: str, fields: dict[str, Any], ctx: Context) -> str:
    """
    Create a record in any ServiceNow table (incident, problem, change_request, ...).

    The record is captured in the session's tracked update set unless
    fields already contains sys_update_set.

    Args:
        table: Table name.
        fields: Field values as key-value pairs, e.g.
                {"short_description": "Email server down", "priority": "2"}.
    """
    log.info("tool.create_record", table=table, fields=sorted(fields or {}))

    try:
        q = RecordCreate(table=table, fields=fields)
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        record = await get_session(ctx).create_record(q.table, q.fields)
    except Exception as exc:
        return tool_error("create_record", "create record", exc)

    return format_result(
        f"Created {q.table} record",
        [
            ("Record ID", record_id(record)),
            ("Number", record.get("number") or "N/A"),
            ("Short Description", q.fields.get("short_description") or "N/A"),
            ("Update Set", record.get("sys_update_set") or q.fields.get("sys_update_set")),
        ],
    )


@mcp.tool()
async def update_record(table: str, sys_id: str, fields: dict[str, Any], ctx: Context) -> str:
    """
    Update fields of an existing record by sys_id.

    Args:
        table: Table name.
        sys_id: sys_id of the record to update.
        fields: Field values to change.
    """
    log.info("tool.update_record", table=table, sys_id=sys_id, fields=sorted(fields or {}))

    try:
        q = RecordCreate(table=table, fields=fields)
        if not sys_id.strip():
            raise ValueError("sys_id is required")
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        record = await get_session(ctx).update_record(q.table, sys_id.strip(), q.fields)
    except Exception as exc:
        return tool_error("update_record", "update record", exc)

    return format_result(
        f"Updated {q.table} record",
        [
            ("Record ID", record_id(record)),
            ("Updated fields", ", ".join(sorted(q.fields))),
        ],
    )
