"""
Update set and application scope tools — create_update_set, set_current_update_set,
get_current_update_set, create_application_scope, set_application_scope.
"""
from __future__ import annotations

import structlog
from mcp.server.fastmcp import Context
from pydantic import ValidationError

from input_validator import ApplicationScopeParams, UpdateSetParams
from server_config import get_session, mcp
from servicenow_client import ServiceNowPreferenceError
from shared_helpers import (
    format_result,
    format_status,
    record_id,
    tool_error,
    user_friendly_error,
)

log = structlog.get_logger(__name__)


@mcp.tool()
async def create_update_set(
    name: str,
    ctx: Context,
    description: str = "",
    make_current: bool = True,
) -> str:
    """
    Create a new update set for capturing changes.

    The configured prefix (UPDATE_SET_PREFIX, default "MCP_") is prepended
    to the name.

    Args:
        name: Update set name.
        description: Update set description.
        make_current: Track the new update set for the rest of this session
                      (default true).
    """
    log.info("tool.create_update_set", name=name, make_current=make_current)

    try:
        q = UpdateSetParams(name=name, description=description, make_current=make_current)
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        record, report = await get_session(ctx).create_update_set(
            q.name, q.description, make_current=q.make_current
        )
    except Exception as exc:
        return tool_error("create_update_set", "create update set", exc)

    text = format_result(
        "Created update set",
        [
            ("Name", record.get("name")),
            ("Description", record.get("description")),
            ("State", record.get("state")),
            ("Sys ID", record_id(record)),
        ],
    )
    if report is not None:
        text += "\n\n" + format_status(report)
    return text


@mcp.tool()
async def set_current_update_set(update_set_id: str, ctx: Context) -> str:
    """
    Set the current update set for capturing changes.

    The update set is tracked for the rest of this session even if the
    instance refuses to change your user preference — sys_update_set is
    then set directly on each record created.

    Args:
        update_set_id: Update set sys_id.
    """
    log.info("tool.set_current_update_set", update_set_id=update_set_id)

    update_set_id = update_set_id.strip()
    if not update_set_id:
        return "Error: update_set_id is required"

    try:
        report = await get_session(ctx).set_current(update_set_id)
    except Exception as exc:
        return tool_error("set_current_update_set", "set current update set", exc)

    return format_status(report)


@mcp.tool()
async def get_current_update_set(ctx: Context) -> str:
    """Get the update set tracked for this session."""
    log.info("tool.get_current_update_set")

    try:
        report = await get_session(ctx).get_current()
    except Exception as exc:
        return tool_error("get_current_update_set", "get current update set", exc)

    return format_status(report)


@mcp.tool()
async def create_application_scope(
    name: str,
    scope: str,
    short_description: str,
    ctx: Context,
    version: str = "1.0.0",
) -> str:
    """
    Create a new scoped application.

    Args:
        name: Application name.
        scope: Scope identifier (e.g. "x_acme_invoices").
        short_description: Short description.
        version: Version number (default 1.0.0).
    """
    log.info("tool.create_application_scope", name=name, scope=scope)

    try:
        q = ApplicationScopeParams(
            name=name, scope=scope, short_description=short_description, version=version
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        client = await get_session(ctx).ensure_client()
        app = await client.create_application_scope(q.name, q.scope, q.short_description, q.version)
    except Exception as exc:
        return tool_error("create_application_scope", "create application scope", exc)

    return format_result(
        "Created application scope",
        [
            ("Name", app.get("name", q.name)),
            ("Scope", app.get("scope", q.scope)),
            ("Description", app.get("short_description", q.short_description)),
            ("Version", app.get("version", q.version)),
            ("Sys ID", record_id(app)),
        ],
    )


@mcp.tool()
async def set_application_scope(scope: str, ctx: Context) -> str:
    """
    Set the application scope used by default for subsequent operations.

    Args:
        scope: Scope identifier of an existing application.
    """
    log.info("tool.set_application_scope", scope=scope)

    scope = scope.strip()
    if not scope:
        return "Error: scope is required"

    try:
        client = await get_session(ctx).ensure_client()
    except Exception as exc:
        return tool_error("set_application_scope", "set application scope", exc)

    try:
        await client.set_application_scope(scope)
    except ServiceNowPreferenceError as exc:
        log.warning("tool.set_application_scope.preference_failed", error_type=type(exc).__name__)
        return (
            f"Application scope set to {scope} for this session.\n"
            f"Note: the instance preference could not be updated: {user_friendly_error(exc)}"
        )
    except Exception as exc:
        return tool_error("set_application_scope", "set application scope", exc)

    return (
        f"Application scope set to {scope}.\n"
        "Future development operations will default to this scope."
    )
