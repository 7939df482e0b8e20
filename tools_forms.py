"""
Form tools — create_ui_policy, create_ui_policy_action, create_client_script,
create_table_field.

create_ui_policy and create_ui_policy_action recognise catalog usage (a
catalog_item without a table, or a "variables.<name>" field) and hand the
request to the catalog UI policy tools instead.
"""
from __future__ import annotations

from typing import Any

import structlog
from mcp.server.fastmcp import Context
from pydantic import ValidationError

from input_validator import (
    CatalogUIPolicyActionParams,
    CatalogUIPolicyParams,
    ClientScriptParams,
    TableFieldParams,
    UIPolicyActionParams,
    UIPolicyParams,
)
from server_config import get_session, mcp
from shared_helpers import format_result, record_id, tool_error, user_friendly_error
from tools_catalog import submit_catalog_ui_policy, submit_catalog_ui_policy_action

log = structlog.get_logger(__name__)

_VARIABLE_PREFIX = "variables."


def _tri_state(flag: bool | None) -> str:
    if flag is None:
        return "leave_alone"
    return "true" if flag else "false"


@mcp.tool()
async def create_ui_policy(
    name: str,
    ctx: Context,
    table: str = "",
    conditions: str = "",
    short_description: str = "",
    on_load: bool = True,
    reverse_if_false: bool = True,
    catalog_item: str = "",
    script_true: str = "",
    script_false: str = "",
) -> str:
    """
    Create a UI policy that changes form behaviour.

    For catalog items prefer create_catalog_ui_policy. A call with a
    catalog_item and no table is handled as a catalog UI policy.

    Args:
        name: Policy name.
        table: Table the policy applies to.
        conditions: Encoded condition, e.g. "priority=1".
        short_description: Description.
        on_load: Run when the form loads (default true).
        reverse_if_false: Reverse the actions when the condition is false (default true).
        catalog_item: Catalog item sys_id (see above).
        script_true: Script run when the condition is true.
        script_false: Script run when the condition is false.
    """
    log.info("tool.create_ui_policy", name=name, table=table)

    if catalog_item.strip() and not table.strip():
        log.warning("tool.create_ui_policy.redirected", catalog_item=catalog_item)
        try:
            cq = CatalogUIPolicyParams(
                name=name,
                catalog_item=catalog_item,
                catalog_conditions=conditions,
                short_description=short_description,
                on_load=on_load,
                applies_on_catalog_item_view=True,
            )
        except (ValidationError, ValueError) as exc:
            return f"Error: {user_friendly_error(exc)}"
        return await submit_catalog_ui_policy(ctx, cq)

    try:
        q = UIPolicyParams(
            name=name,
            table=table,
            conditions=conditions,
            short_description=short_description,
            on_load=on_load,
            reverse_if_false=reverse_if_false,
            catalog_item=catalog_item,
            script_true=script_true,
            script_false=script_false,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        client = await get_session(ctx).ensure_client()
        policy = await client.create_ui_policy(q)
    except Exception as exc:
        return tool_error("create_ui_policy", "create UI policy", exc)

    return format_result(
        "Created UI policy",
        [("Name", q.name), ("Table", q.table), ("ID", record_id(policy))],
    )


@mcp.tool()
async def create_ui_policy_action(
    ui_policy: str,
    field: str,
    ctx: Context,
    visible: bool | None = None,
    mandatory: bool | None = None,
    disabled: bool | None = None,
) -> str:
    """
    Create a UI policy action for one form field.

    A field written as "variables.<name>" is a catalog variable; the action is
    then created as a catalog UI policy action, with unset flags left alone.

    Args:
        ui_policy: sys_id of the UI policy.
        field: Field name.
        visible: Show the field (default true).
        mandatory: Make the field mandatory (default false).
        disabled: Make the field read-only (default false).
    """
    log.info("tool.create_ui_policy_action", ui_policy=ui_policy, field=field)

    if field.strip().startswith(_VARIABLE_PREFIX):
        variable_name = field.strip()[len(_VARIABLE_PREFIX):]
        log.warning("tool.create_ui_policy_action.redirected", variable=variable_name)
        try:
            cq = CatalogUIPolicyActionParams(
                catalog_ui_policy=ui_policy,
                variable_name=variable_name,
                visible=_tri_state(visible),
                mandatory=_tri_state(mandatory),
                read_only=_tri_state(disabled),
            )
        except (ValidationError, ValueError) as exc:
            return f"Error: {user_friendly_error(exc)}"
        return await submit_catalog_ui_policy_action(ctx, cq)

    try:
        q = UIPolicyActionParams(
            ui_policy=ui_policy, field=field, visible=visible, mandatory=mandatory, disabled=disabled
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        client = await get_session(ctx).ensure_client()
        action = await client.create_ui_policy_action(q)
    except Exception as exc:
        return tool_error("create_ui_policy_action", "create UI policy action", exc)

    return format_result(
        "Created UI policy action",
        [("Field", q.field), ("Policy", q.ui_policy), ("ID", record_id(action))],
    )


@mcp.tool()
async def create_client_script(
    name: str,
    table: str,
    type: str,
    script: str,
    ctx: Context,
    field: str = "",
    description: str = "",
    catalog_item: str = "",
    active: bool = True,
) -> str:
    """
    Create a client script for form interactivity.

    Args:
        name: Script name.
        table: Table the script runs on.
        type: onLoad, onChange, onSubmit or onCellEdit.
        script: JavaScript code.
        field: Field name; required for onChange scripts.
        description: Description.
        catalog_item: Catalog item sys_id, if the script targets a catalog item.
        active: Whether the script is active (default true).
    """
    log.info("tool.create_client_script", name=name, table=table, type=type)

    try:
        q = ClientScriptParams(
            name=name,
            table=table,
            type=type,
            script=script,
            field=field,
            description=description,
            catalog_item=catalog_item,
            active=active,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        record = await get_session(ctx).create_record(
            "sys_script_client",
            {
                "name": q.name,
                "table": q.table,
                "type": q.type,
                "field": q.field,
                "script": q.script,
                "description": q.description,
                "active": q.active,
                # 10 = catalog item, 0 = desktop form
                "ui_type": "10" if q.catalog_item else "0",
                "cat_item": q.catalog_item,
            },
        )
    except Exception as exc:
        return tool_error("create_client_script", "create client script", exc)

    return format_result(
        "Created client script",
        [("Name", q.name), ("Type", q.type), ("Table", q.table), ("ID", record_id(record))],
    )


@mcp.tool()
async def create_table_field(
    table: str,
    column_name: str,
    column_label: str,
    type: str,
    ctx: Context,
    reference_table: str = "",
    max_length: int | None = None,
    choices: str = "",
    mandatory: bool = False,
) -> str:
    """
    Add a field (dictionary entry) to a table.

    Choice fields get one sys_choice row per comma-separated choice.

    Args:
        table: Table name.
        column_name: Column name, e.g. "u_priority_reason".
        column_label: Label shown on forms.
        type: Field type: string, reference, boolean, choice, integer, ...
        reference_table: Referenced table; required for reference fields.
        max_length: Maximum length for string fields.
        choices: Comma-separated choices; required for choice fields.
        mandatory: Whether the field is mandatory (default false).
    """
    log.info("tool.create_table_field", table=table, column_name=column_name, type=type)

    try:
        q = TableFieldParams(
            table=table,
            column_name=column_name,
            column_label=column_label,
            type=type,
            reference_table=reference_table,
            max_length=max_length,
            choices=choices,
            mandatory=mandatory,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    payload: dict[str, Any] = {
        "name": q.table,
        "element": q.column_name,
        "column_label": q.column_label,
        "internal_type": q.type,
        "mandatory": q.mandatory,
    }
    if q.reference_table:
        payload["reference"] = q.reference_table
    if q.max_length:
        payload["max_length"] = q.max_length
    if q.choices:
        payload["choice"] = "1"  # dropdown without "-- None --"

    session = get_session(ctx)
    try:
        field = await session.create_record("sys_dictionary", payload)
        for i, choice in enumerate(q.choice_list(), start=1):
            await session.create_record(
                "sys_choice",
                {
                    "name": q.table,
                    "element": q.column_name,
                    "label": choice,
                    "value": choice,
                    "sequence": i * 100,
                },
            )
    except Exception as exc:
        return tool_error("create_table_field", "create table field", exc)

    rows: list[tuple[str, Any]] = [
        ("Table", q.table),
        ("Field", q.column_name),
        ("Type", q.type),
        ("ID", record_id(field)),
    ]
    if q.choices:
        rows.append(("Choices", ", ".join(q.choice_list())))
    return format_result("Created table field", rows)
