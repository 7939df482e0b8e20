"""
Server-side scripting and automation tools — create_script_include,
create_scheduled_job, create_email_notification, create_business_rule,
update_business_rule, create_assignment_group.
"""
from __future__ import annotations

import structlog
from mcp.server.fastmcp import Context
from pydantic import ValidationError

from input_validator import (
    AssignmentGroupParams,
    BusinessRuleParams,
    BusinessRuleUpdate,
    EmailNotificationParams,
    ScheduledJobParams,
    ScriptIncludeParams,
)
from server_config import get_session, mcp
from shared_helpers import format_result, record_id, tool_error, user_friendly_error

log = structlog.get_logger(__name__)


@mcp.tool()
async def create_script_include(
    name: str,
    script: str,
    ctx: Context,
    description: str = "",
    application_scope: str = "",
    api_name: str = "",
    access: str = "package_private",
    client_callable: bool = False,
    active: bool = True,
) -> str:
    """
    Create a script include (reusable server-side JavaScript).

    Args:
        name: Script include name.
        script: JavaScript code.
        description: Description.
        application_scope: Scope. Defaults to the current default scope.
        api_name: API name. Defaults to name.
        access: public, package_private (default) or private.
        client_callable: Callable from client scripts via GlideAjax (default false).
        active: Whether the script include is active (default true).
    """
    log.info("tool.create_script_include", name=name)

    try:
        q = ScriptIncludeParams(
            name=name,
            script=script,
            description=description,
            application_scope=application_scope or None,
            api_name=api_name,
            access=access,
            client_callable=client_callable,
            active=active,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        client = await get_session(ctx).ensure_client()
        record = await client.create_script_include(q)
    except Exception as exc:
        return tool_error("create_script_include", "create script include", exc)

    return format_result(
        "Created script include",
        [
            ("Name", q.name),
            ("API Name", q.api_name or q.name),
            ("Scope", q.application_scope or client.default_scope),
            ("ID", record_id(record)),
        ],
    )


@mcp.tool()
async def create_scheduled_job(
    name: str,
    script: str,
    ctx: Context,
    description: str = "",
    run_period: str = "daily",
    run_time: str = "00:00:00",
    run_dayofweek: str = "",
    run_dayofmonth: str = "",
    active: bool = True,
    conditional: bool = False,
    condition: str = "",
) -> str:
    """
    Create a scheduled script job.

    Args:
        name: Job name.
        script: JavaScript to run.
        description: Description.
        run_period: daily (default), weekly, monthly, periodically, once or on_demand.
        run_time: Time of day in HH:MM:SS (default 00:00:00).
        run_dayofweek: Day of week (1-7); required for weekly jobs.
        run_dayofmonth: Day of month (1-31); required for monthly jobs.
        active: Whether the job is active (default true).
        conditional: Only run when condition evaluates true (default false).
        condition: Condition script; required when conditional is true.
    """
    log.info("tool.create_scheduled_job", name=name, run_period=run_period)

    try:
        q = ScheduledJobParams(
            name=name,
            script=script,
            description=description,
            run_period=run_period,
            run_time=run_time,
            run_dayofweek=run_dayofweek,
            run_dayofmonth=run_dayofmonth,
            active=active,
            conditional=conditional,
            condition=condition,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        client = await get_session(ctx).ensure_client()
        record = await client.create_scheduled_job(q)
    except Exception as exc:
        return tool_error("create_scheduled_job", "create scheduled job", exc)

    return format_result(
        "Created scheduled job",
        [
            ("Name", q.name),
            ("Run Period", q.run_period),
            ("Run Time", q.run_time),
            ("ID", record_id(record)),
        ],
    )


@mcp.tool()
async def create_email_notification(
    name: str,
    table: str,
    event: str,
    subject: str,
    message: str,
    ctx: Context,
    recipients: str = "",
    cc_list: str = "",
    from_address: str = "",
    active: bool = True,
    advanced_condition: str = "",
    weight: int = 0,
) -> str:
    """
    Create an email notification.

    Args:
        name: Notification name.
        table: Table the notification watches.
        event: "insert" or "update" for record events, otherwise an event name.
        subject: Email subject.
        message: Email body (HTML allowed).
        recipients: Comma-separated recipient fields or addresses.
        cc_list: Comma-separated CC addresses.
        from_address: Sender address.
        active: Whether the notification is active (default true).
        advanced_condition: Advanced condition script.
        weight: Weight among notifications on the same record (default 0).
    """
    log.info("tool.create_email_notification", name=name, table=table, event=event)

    try:
        q = EmailNotificationParams(
            name=name,
            table=table,
            event=event,
            subject=subject,
            message=message,
            recipients=recipients,
            cc_list=cc_list,
            from_address=from_address,
            active=active,
            advanced_condition=advanced_condition,
            weight=weight,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        client = await get_session(ctx).ensure_client()
        record = await client.create_email_notification(q)
    except Exception as exc:
        return tool_error("create_email_notification", "create email notification", exc)

    return format_result(
        "Created email notification",
        [
            ("Name", q.name),
            ("Table", q.table),
            ("Event", q.event),
            ("ID", record_id(record)),
        ],
    )


@mcp.tool()
async def create_business_rule(
    name: str,
    table: str,
    when: str,
    script: str,
    ctx: Context,
    operation: list[str] | str = "insert,update",
    description: str = "",
    order: int = 100,
    condition: str = "",
    filter_condition: str = "",
    advanced: bool = False,
    active: bool = True,
    role_conditions: str = "",
) -> str:
    """
    Create a business rule (server-side logic on database operations).

    Args:
        name: Business rule name.
        table: Table, e.g. incident.
        when: before, after, async or display.
        script: JavaScript, normally wrapped in function(current, previous) {}.
        operation: Operations to trigger on: a list or comma-separated string of
                   insert, update, delete, query (default insert,update).
        description: Description.
        order: Execution order; lower runs first (default 100).
        condition: JavaScript condition that must return true.
        filter_condition: Encoded query filtering the records.
        advanced: Enable advanced options (default false).
        active: Whether the rule is active (default true).
        role_conditions: Comma-separated roles.
    """
    log.info("tool.create_business_rule", name=name, table=table, when=when)

    try:
        q = BusinessRuleParams(
            name=name,
            table=table,
            when=when,
            operation=operation,
            script=script,
            description=description,
            order=order,
            condition=condition,
            filter_condition=filter_condition,
            advanced=advanced,
            active=active,
            role_conditions=role_conditions,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    if "function" not in q.script or "current" not in q.script:
        log.warning("tool.create_business_rule.unwrapped_script", name=q.name)

    try:
        record = await get_session(ctx).create_record(
            "sys_script",
            {
                "name": q.name,
                "collection": q.table,
                "when": q.when,
                **q.operation_flags(),
                "script": q.script,
                "description": q.description,
                "order": q.order,
                "condition": q.condition,
                "filter_condition": q.filter_condition,
                "advanced": q.advanced,
                "active": q.active,
                "role_conditions": q.role_conditions,
            },
        )
    except Exception as exc:
        return tool_error("create_business_rule", "create business rule", exc)

    rows = [
        ("Name", q.name),
        ("Table", q.table),
        ("When", q.when),
        ("Operations", ", ".join(q.operation)),
        ("Order", q.order),
        ("Active", q.active),
        ("ID", record_id(record)),
    ]
    if q.condition:
        rows.append(("Condition", q.condition))
    return format_result("Created business rule", rows)


@mcp.tool()
async def update_business_rule(
    sys_id: str,
    ctx: Context,
    name: str | None = None,
    table: str | None = None,
    when: str | None = None,
    operation: list[str] | str | None = None,
    script: str | None = None,
    description: str | None = None,
    order: int | None = None,
    condition: str | None = None,
    filter_condition: str | None = None,
    advanced: bool | None = None,
    active: bool | None = None,
    role_conditions: str | None = None,
) -> str:
    """
    Update an existing business rule. Only the arguments given are changed.

    Args:
        sys_id: sys_id of the business rule.
        name: New name.
        table: New table.
        when: before, after, async or display.
        operation: Operations to trigger on (replaces the current set).
        script: New script.
        description: New description.
        order: New execution order.
        condition: New condition.
        filter_condition: New encoded filter.
        advanced: Enable or disable advanced options.
        active: Activate or deactivate the rule.
        role_conditions: New comma-separated roles.
    """
    log.info("tool.update_business_rule", sys_id=sys_id)

    try:
        q = BusinessRuleUpdate(
            sys_id=sys_id,
            name=name,
            table=table,
            when=when,
            operation=operation,
            script=script,
            description=description,
            order=order,
            condition=condition,
            filter_condition=filter_condition,
            advanced=advanced,
            active=active,
            role_conditions=role_conditions,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    changes = q.changes()
    if not changes:
        return "Error: No fields to update. Provide at least one field besides sys_id."
    if "table" in changes:
        changes["collection"] = changes.pop("table")

    try:
        record = await get_session(ctx).update_record("sys_script", q.sys_id, changes)
    except Exception as exc:
        return tool_error("update_business_rule", "update business rule", exc)

    return format_result(
        "Updated business rule",
        [
            ("Name", record.get("name")),
            ("ID", record.get("sys_id") or q.sys_id),
            ("Updated fields", ", ".join(sorted(changes))),
        ],
    )


@mcp.tool()
async def create_assignment_group(
    name: str,
    ctx: Context,
    description: str = "",
    type: str = "itil",
    active: bool = True,
) -> str:
    """
    Create an assignment group.

    Args:
        name: Group name.
        description: Description.
        type: Group type (default itil).
        active: Whether the group is active (default true).
    """
    log.info("tool.create_assignment_group", name=name)

    try:
        q = AssignmentGroupParams(name=name, description=description, type=type, active=active)
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        record = await get_session(ctx).create_record(
            "sys_user_group",
            {"name": q.name, "description": q.description, "type": q.type, "active": q.active},
        )
    except Exception as exc:
        return tool_error("create_assignment_group", "create assignment group", exc)

    return format_result(
        "Created assignment group",
        [("Name", q.name), ("Type", q.type), ("ID", record_id(record))],
    )
