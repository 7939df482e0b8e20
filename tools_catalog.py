"""
Service catalog tools — create_catalog_item, create_record_producer, create_variable,
create_variable_set, create_catalog_ui_policy, create_catalog_ui_policy_action,
create_catalog_client_script.
"""
from __future__ import annotations

from datetime import date
from typing import Any

import structlog
from mcp.server.fastmcp import Context
from pydantic import ValidationError

from input_validator import (
    CatalogClientScriptParams,
    CatalogItemCommand,
    CatalogUIPolicyActionParams,
    CatalogUIPolicyParams,
    RecordProducerParams,
    VariableParams,
    VariableSetParams,
)
from server_config import get_session, mcp
from servicenow_client import ServiceNowClient, ServiceNowError, ServiceNowNotFoundError
from session import SessionController
from shared_helpers import format_result, record_id, tool_error, user_friendly_error

log = structlog.get_logger(__name__)

# Default max_length per variable type when the caller gives none
_DEFAULT_MAX_LENGTH = {"string": 255, "multi_line_text": 4000}


async def _find_or_create_category(session: SessionController, client: ServiceNowClient, title: str) -> dict[str, Any]:
    """
    Resolve a catalog category by title, creating it when missing.

    If the lookup or the insert is refused, the first active category is used
    instead.
    """
    try:
        categories = await client.get("sc_category", f"title={title}", limit=1)
        if categories:
            return categories[0]
        return await session.create_record(
            "sc_category",
            {"title": title, "description": f"Category for {title} items", "active": True},
        )
    except ServiceNowError as exc:
        log.warning("tool.create_catalog_item.category_fallback", category=title, error_type=type(exc).__name__)

    categories = await client.get("sc_category", "active=true", limit=1)
    if not categories:
        raise ServiceNowNotFoundError(
            "No categories available in ServiceNow instance",
            table="sc_category",
            query="active=true",
        )
    return categories[0]


@mcp.tool()
async def create_catalog_item(command: str, ctx: Context) -> str:
    """
    Create a service catalog item from a plain-English command.

    Example: Create a catalog item called 'New Laptop Request' in Hardware

    If no update set is tracked yet, a dated "Catalog Item Creation" update
    set is created and made current first.

    Args:
        command: The request. The item name must be quoted after "called".
    """
    log.info("tool.create_catalog_item")

    try:
        q = CatalogItemCommand(command=command)
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    session = get_session(ctx)
    try:
        client = await session.ensure_client()

        if session.tracked_update_set is None:
            update_set, _ = await session.create_update_set(
                f"Catalog Item Creation - {date.today().isoformat()}",
                f"Created catalog item: {q.item_name}",
            )
            update_set_label = f"{update_set.get('name')} ({record_id(update_set)})"
        else:
            update_set_label = session.tracked_update_set

        category = await _find_or_create_category(session, client, q.category)
        item = await session.create_record(
            "sc_cat_item",
            {
                "name": q.item_name,
                "short_description": q.item_name,
                "description": f"Catalog item for {q.item_name}",
                "category": record_id(category),
                "active": True,
            },
        )
    except Exception as exc:
        return tool_error("create_catalog_item", "create catalog item", exc)

    return format_result(
        "Created catalog item",
        [
            ("Name", q.item_name),
            ("Category", category.get("title", q.category)),
            ("Item ID", record_id(item)),
            ("Update Set", update_set_label),
        ],
    )


@mcp.tool()
async def create_record_producer(
    name: str,
    short_description: str,
    table: str,
    ctx: Context,
    category: str = "",
    scope: str = "",
    access_type: str = "internal",
) -> str:
    """
    Create a record producer that turns a catalog request into a record.

    Args:
        name: Record producer name.
        short_description: Short description.
        table: Target table name, e.g. "incident".
        category: Catalog category sys_id.
        scope: Application scope. Defaults to the current default scope.
        access_type: "internal" or "external" (default internal).
    """
    log.info("tool.create_record_producer", name=name, table=table)

    try:
        q = RecordProducerParams(
            name=name,
            short_description=short_description,
            table=table,
            category=category,
            scope=scope or None,
            access_type=access_type,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    session = get_session(ctx)
    try:
        client = await session.ensure_client()
        producer = await session.create_record(
            "sc_cat_item_producer",
            {
                "name": q.name,
                "short_description": q.short_description,
                "table_name": q.table,
                "category": q.category,
                "access_type": q.access_type,
                "sys_scope": q.scope or client.default_scope,
                "active": True,
                "script": f"// Record producer script for {q.name}",
            },
        )
    except Exception as exc:
        return tool_error("create_record_producer", "create record producer", exc)

    return format_result(
        "Created record producer",
        [("Name", q.name), ("Table", q.table), ("ID", record_id(producer))],
    )


@mcp.tool()
async def create_variable(
    name: str,
    question_text: str,
    type: str,
    catalog_item: str,
    ctx: Context,
    mandatory: bool = False,
    reference_table: str = "",
    reference_qual: str = "",
    choices: str = "",
    default_value: str = "",
    max_length: int | None = None,
    order: int = 100,
) -> str:
    """
    Create a variable on a catalog item or record producer.

    Args:
        name: Variable name.
        question_text: Label shown to the requester.
        type: string, multi_line_text, choice, reference, boolean, integer, date,
              date_time, lookup_select_box, select_box, checkbox, macro, ui_page
              or wide_single_line.
        catalog_item: sys_id of the parent catalog item.
        mandatory: Whether an answer is required (default false).
        reference_table: Table to reference; required for reference variables.
        reference_qual: Reference qualifier for reference variables.
        choices: Comma-separated choices; required for choice variables.
        default_value: Default answer.
        max_length: Maximum length for text variables.
        order: Display order (default 100).
    """
    log.info("tool.create_variable", name=name, type=type, catalog_item=catalog_item)

    try:
        q = VariableParams(
            name=name,
            question_text=question_text,
            type=type,
            catalog_item=catalog_item,
            mandatory=mandatory,
            reference_table=reference_table,
            reference_qual=reference_qual,
            choices=choices,
            default_value=default_value,
            max_length=max_length,
            order=order,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    payload: dict[str, Any] = {
        "name": q.name,
        "question_text": q.question_text,
        "type": q.type_code,
        "mandatory": q.mandatory,
        "cat_item": q.catalog_item,
        "order": q.order,
        "active": True,
    }
    if q.type == "reference":
        payload["reference"] = q.reference_table
        payload["reference_qual"] = q.reference_qual
    if q.type in _DEFAULT_MAX_LENGTH:
        payload["max_length"] = q.max_length or _DEFAULT_MAX_LENGTH[q.type]
    if q.default_value:
        payload["default_value"] = q.default_value

    session = get_session(ctx)
    try:
        variable = await session.create_record("item_option_new", payload)
        variable_id = record_id(variable)
        for i, choice in enumerate(q.choice_list() if q.type == "choice" else [], start=1):
            await session.create_record(
                "question_choice",
                {
                    "question": variable_id,
                    "text": choice,
                    "value": choice,
                    "order": i * 100,
                    "inactive": False,
                },
            )
    except Exception as exc:
        return tool_error("create_variable", "create variable", exc)

    rows: list[tuple[str, Any]] = [
        ("Name", q.name),
        ("Type", f"{q.type} (ServiceNow type: {q.type_code})"),
        ("ID", variable_id),
    ]
    if q.type == "choice":
        rows.append(("Choices", ", ".join(q.choice_list())))
    if q.type == "reference":
        rows.append(("Reference Table", q.reference_table))
    return format_result("Created variable", rows)


@mcp.tool()
async def create_variable_set(
    name: str,
    title: str,
    catalog_item: str,
    ctx: Context,
    description: str = "",
    order: int = 100,
) -> str:
    """
    Create a multi-row variable set.

    Args:
        name: Variable set name.
        title: Display title.
        catalog_item: sys_id of the parent catalog item.
        description: Description.
        order: Display order (default 100).
    """
    log.info("tool.create_variable_set", name=name, catalog_item=catalog_item)

    try:
        q = VariableSetParams(
            name=name, title=title, catalog_item=catalog_item, description=description, order=order
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        variable_set = await get_session(ctx).create_record(
            "item_option_new_set",
            {
                "name": q.name,
                "title": q.title,
                "description": q.description,
                "type": "one_to_many",
                "cat_item": q.catalog_item,
                "order": q.order,
            },
        )
    except Exception as exc:
        return tool_error("create_variable_set", "create variable set", exc)

    return format_result(
        "Created variable set",
        [("Name", q.name), ("Title", q.title), ("ID", record_id(variable_set))],
    )


@mcp.tool()
async def create_catalog_ui_policy(
    name: str,
    ctx: Context,
    catalog_item: str = "",
    variable_set: str = "",
    applies_to: str = "A Catalog Item",
    short_description: str = "",
    active: bool = True,
    catalog_conditions: str = "",
    applies_on_catalog_item_view: bool = True,
    applies_on_requested_items: bool = False,
    applies_on_catalog_tasks: bool = False,
    applies_on_target_record: bool = False,
    on_load: bool = True,
    reverse_if_false: bool = False,
    order: int = 100,
) -> str:
    """
    Create a catalog UI policy that controls catalog variables.

    Args:
        name: Policy name.
        catalog_item: sys_id of the catalog item (or use variable_set).
        variable_set: sys_id of the variable set (or use catalog_item).
        applies_to: "A Catalog Item" (default) or "A Variable Set".
        short_description: Description.
        active: Whether the policy is active (default true).
        catalog_conditions: Encoded condition, e.g. "urgency=high".
        applies_on_catalog_item_view: Apply on the catalog item view (default true).
        applies_on_requested_items: Apply on requested items (default false).
        applies_on_catalog_tasks: Apply on catalog tasks (default false).
        applies_on_target_record: Apply on the target record (default false).
        on_load: Run when the form loads (default true).
        reverse_if_false: Reverse the actions when the condition is false (default false).
        order: Execution order (default 100).
    """
    log.info("tool.create_catalog_ui_policy", name=name, catalog_item=catalog_item)

    try:
        q = CatalogUIPolicyParams(
            name=name,
            catalog_item=catalog_item,
            variable_set=variable_set,
            applies_to=applies_to,
            short_description=short_description,
            active=active,
            catalog_conditions=catalog_conditions,
            applies_on_catalog_item_view=applies_on_catalog_item_view,
            applies_on_requested_items=applies_on_requested_items,
            applies_on_catalog_tasks=applies_on_catalog_tasks,
            applies_on_target_record=applies_on_target_record,
            on_load=on_load,
            reverse_if_false=reverse_if_false,
            order=order,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    return await submit_catalog_ui_policy(ctx, q)


async def submit_catalog_ui_policy(ctx: Context, q: CatalogUIPolicyParams) -> str:
    try:
        client = await get_session(ctx).ensure_client()
        policy = await client.create_catalog_ui_policy(q)
    except Exception as exc:
        return tool_error("create_catalog_ui_policy", "create catalog UI policy", exc)

    return format_result(
        "Created catalog UI policy",
        [
            ("Name", q.name),
            ("Applies to", q.applies_to),
            ("Catalog Item", q.catalog_item or "N/A"),
            ("Variable Set", q.variable_set or "N/A"),
            ("ID", record_id(policy)),
        ],
    )


@mcp.tool()
async def create_catalog_ui_policy_action(
    catalog_ui_policy: str,
    variable_name: str,
    ctx: Context,
    order: int = 100,
    mandatory: str | bool = "leave_alone",
    visible: str | bool = "leave_alone",
    read_only: str | bool = "leave_alone",
    value_action: str = "leave_alone",
    value: str | None = None,
    field_message_type: str = "none",
    field_message: str = "",
) -> str:
    """
    Create an action that controls one catalog variable.

    The variable is looked up by name under the catalog item the policy
    belongs to.

    Args:
        catalog_ui_policy: sys_id of the catalog UI policy.
        variable_name: Name of the catalog variable to control.
        order: Execution order (default 100).
        mandatory: "true", "false" or "leave_alone" (default).
        visible: "true", "false" or "leave_alone" (default).
        read_only: "true", "false" or "leave_alone" (default).
        value_action: "leave_alone" (default), "set_value" or "clear_value".
        value: Value to set; required for set_value.
        field_message_type: "none" (default), "info", "warning" or "error".
        field_message: Message shown under the variable.
    """
    log.info(
        "tool.create_catalog_ui_policy_action",
        catalog_ui_policy=catalog_ui_policy,
        variable_name=variable_name,
    )

    try:
        q = CatalogUIPolicyActionParams(
            catalog_ui_policy=catalog_ui_policy,
            variable_name=variable_name,
            order=order,
            mandatory=mandatory,
            visible=visible,
            read_only=read_only,
            value_action=value_action,
            value=value,
            field_message_type=field_message_type,
            field_message=field_message,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    return await submit_catalog_ui_policy_action(ctx, q)


async def submit_catalog_ui_policy_action(ctx: Context, q: CatalogUIPolicyActionParams) -> str:
    try:
        client = await get_session(ctx).ensure_client()
        action = await client.create_catalog_ui_policy_action(q)
    except Exception as exc:
        return tool_error("create_catalog_ui_policy_action", "create catalog UI policy action", exc)

    return format_result(
        "Created catalog UI policy action",
        [
            ("Variable", q.variable_name),
            ("Policy", q.catalog_ui_policy),
            ("Mandatory", q.mandatory),
            ("Visible", q.visible),
            ("Read only", q.read_only),
            ("ID", record_id(action)),
        ],
    )


@mcp.tool()
async def create_catalog_client_script(
    name: str,
    catalog_item: str,
    type: str,
    script: str,
    ctx: Context,
    field: str = "",
    description: str = "",
    active: bool = True,
    applies_to: str = "item",
) -> str:
    """
    Create a client script that runs on a catalog item form.

    Args:
        name: Script name.
        catalog_item: sys_id of the catalog item.
        type: onLoad, onChange, onSubmit or onCellEdit.
        script: JavaScript code.
        field: Variable name; required for onChange scripts.
        description: Description.
        active: Whether the script is active (default true).
        applies_to: "item" (default) or "set".
    """
    log.info("tool.create_catalog_client_script", name=name, type=type)

    try:
        q = CatalogClientScriptParams(
            name=name,
            catalog_item=catalog_item,
            type=type,
            script=script,
            field=field,
            description=description,
            active=active,
            applies_to=applies_to,
        )
    except (ValidationError, ValueError) as exc:
        return f"Error: {user_friendly_error(exc)}"

    try:
        client = await get_session(ctx).ensure_client()
        record = await client.create_catalog_client_script(q)
    except Exception as exc:
        return tool_error("create_catalog_client_script", "create catalog client script", exc)

    return format_result(
        "Created catalog client script",
        [
            ("Name", q.name),
            ("Type", q.type),
            ("Catalog Item", q.catalog_item),
            ("ID", record_id(record)),
        ],
    )
