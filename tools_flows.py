"""
Flow Designer tools — create_flow, create_flow_trigger, add_create_record_action,
add_send_email_action, connect_flow_actions.

Flows are assembled bottom-up: create the flow, give it a trigger, add
actions in order, then connect them.
"""
from __future__ import annotations

from typing import Any

import structlog
from mcp.server.fastmcp import Context
from pydantic import ValidationError

from input_validator import (
    CreateRecordActionParams,
    FlowConnectionParams,
    FlowParams,
    FlowTriggerParams,
    SendEmailActionParams,
)
from server_config import get_session, mcp
from shared_helpers import format_result, record_id, tool_error, user_friendly_error

log = structlog.get_logger(__name__)


@mcp.tool()
async def create_flow(
    name: str,
    ctx: Context,
    description: str = "",
    scope: str = "",
    active: bool = True,
) -> str:
    """
    Create a Flow Designer flow (in draft status).

    Args:
        name: Flow name.
        description: Description.
        scope: Application scope. Defaults to the current default scope.
        active: Whether the flow is active (default true).
    """
    log.info("tool.create_flow", name=name)

    try:
        q = FlowParams(name=name, description=description, scope=scope or None, active=active)
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        client = await get_session(ctx).ensure_client()
        flow = await client.create_flow(q)
    except Exception as exc:
        return tool_error("create_flow", "create flow", exc)

    return format_result(
        "Created flow",
        [
            ("Name", q.name),
            ("Scope", q.scope or client.default_scope),
            ("Flow ID", record_id(flow)),
        ],
    )


@mcp.tool()
async def create_flow_trigger(
    flow_id: str,
    type: str,
    ctx: Context,
    table: str = "",
    condition: str = "",
) -> str:
    """
    Add a trigger to a flow.

    Args:
        flow_id: sys_id of the flow.
        type: record_created, record_updated or scheduled.
        table: Table to watch; required for record triggers.
        condition: Encoded condition the record must match.
    """
    log.info("tool.create_flow_trigger", flow_id=flow_id, type=type)

    try:
        q = FlowTriggerParams(flow_id=flow_id, type=type, table=table, condition=condition)
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        client = await get_session(ctx).ensure_client()
        trigger = await client.create_flow_trigger(q)
    except Exception as exc:
        return tool_error("create_flow_trigger", "create flow trigger", exc)

    return format_result(
        "Created flow trigger",
        [
            ("Type", q.type),
            ("Table", q.table or "N/A"),
            ("Flow", q.flow_id),
            ("Trigger ID", record_id(trigger)),
        ],
    )


@mcp.tool()
async def add_create_record_action(
    flow_id: str,
    table: str,
    field_values: dict[str, Any],
    order: int,
    ctx: Context,
) -> str:
    """
    Add a "Create Record" action to a flow.

    Args:
        flow_id: sys_id of the flow.
        table: Table the record is created in.
        field_values: Field values for the new record.
        order: Position of the action in the flow.
    """
    log.info("tool.add_create_record_action", flow_id=flow_id, table=table, order=order)

    try:
        q = CreateRecordActionParams(flow_id=flow_id, table=table, field_values=field_values, order=order)
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        client = await get_session(ctx).ensure_client()
        action = await client.add_create_record_action(q)
    except Exception as exc:
        return tool_error("add_create_record_action", "add create record action", exc)

    return format_result(
        "Added create record action",
        [
            ("Table", q.table),
            ("Order", q.order),
            ("Flow", q.flow_id),
            ("Action ID", record_id(action)),
        ],
    )


@mcp.tool()
async def add_send_email_action(
    flow_id: str,
    to: str,
    subject: str,
    body: str,
    order: int,
    ctx: Context,
) -> str:
    """
    Add a "Send Email" action to a flow.

    Args:
        flow_id: sys_id of the flow.
        to: Recipient address or data pill.
        subject: Email subject.
        body: Email body.
        order: Position of the action in the flow.
    """
    log.info("tool.add_send_email_action", flow_id=flow_id, order=order)

    try:
        q = SendEmailActionParams(flow_id=flow_id, to=to, subject=subject, body=body, order=order)
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        client = await get_session(ctx).ensure_client()
        action = await client.add_send_email_action(q)
    except Exception as exc:
        return tool_error("add_send_email_action", "add send email action", exc)

    return format_result(
        "Added send email action",
        [
            ("To", q.to),
            ("Subject", q.subject),
            ("Order", q.order),
            ("Action ID", record_id(action)),
        ],
    )


@mcp.tool()
async def connect_flow_actions(
    flow_id: str,
    from_action: str,
    to_action: str,
    ctx: Context,
    condition: str = "",
) -> str:
    """
    Connect two actions of a flow, optionally behind a condition.

    Args:
        flow_id: sys_id of the flow.
        from_action: sys_id of the action that runs first.
        to_action: sys_id of the action that runs next.
        condition: Condition for following this connection.
    """
    log.info("tool.connect_flow_actions", flow_id=flow_id)

    try:
        q = FlowConnectionParams(
            flow_id=flow_id, from_action=from_action, to_action=to_action, condition=condition
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        client = await get_session(ctx).ensure_client()
        link = await client.create_flow_connection(q)
    except Exception as exc:
        return tool_error("connect_flow_actions", "connect flow actions", exc)

    return format_result(
        "Connected flow actions",
        [
            ("From", q.from_action),
            ("To", q.to_action),
            ("Condition", q.condition or "always"),
            ("Connection ID", record_id(link)),
        ],
    )
