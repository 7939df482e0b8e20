"""
Input validation for MCP tool arguments and record helper parameters.

All external input (from Claude or the user) passes through these models
before any API call is made. Each model also carries the defaults for its
record type, so a helper never has to re-derive them:

  - Boolean flags take their documented default; an explicit value always wins
  - Optional strings default to "" and are kept in the payload
  - Scope fields default to None and are resolved against the client's
    current default scope at payload-build time

Security rules enforced here:
  - Table and column names: lowercase letters, digits and underscores only
  - Enumerated fields are checked against their allowed sets
  - Type-specific companion fields are required where the platform needs them
  - sys_ids and names that end up inside an encoded query may not contain "^"
"""
from __future__ import annotations

import re
from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_TABLE_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
_RUN_TIME_PATTERN = re.compile(r"^\d{2}:\d{2}:\d{2}$")

TriState = Literal["true", "false", "leave_alone"]
ValueAction = Literal["leave_alone", "set_value", "clear_value"]
MessageType = Literal["info", "warning", "error", "none"]
ClientScriptType = Literal["onLoad", "onChange", "onSubmit", "onCellEdit"]
BusinessRuleWhen = Literal["before", "after", "async", "display"]

BUSINESS_RULE_OPERATIONS = ("insert", "update", "delete", "query")

# Catalog variable type names → item_option_new.type codes
VARIABLE_TYPE_CODES: dict[str, str] = {
    "string": "6",              # Single Line Text
    "multi_line_text": "7",     # Multi Line Text
    "choice": "3",              # Multiple Choice
    "reference": "8",           # Reference
    "boolean": "11",            # True/False
    "integer": "4",             # Numeric Scale
    "date": "9",
    "date_time": "10",
    "lookup_select_box": "18",
    "select_box": "5",
    "checkbox": "21",
    "macro": "14",
    "ui_page": "17",
    "wide_single_line": "16",
}


def _check_table(v: str) -> str:
    v = v.strip()
    if not _TABLE_PATTERN.match(v):
        raise ValueError(
            f"Invalid table name {v!r} — use lowercase letters, digits and underscores"
        )
    return v


def _check_query_value(v: str) -> str:
    if "^" in v:
        raise ValueError("must not contain '^' (it separates encoded query terms)")
    return v


def _split_operations(v: object) -> object:
    if isinstance(v, str):
        return [op.strip() for op in v.split(",") if op.strip()]
    return v


def _check_operations(v: list[str]) -> list[str]:
    unknown = [op for op in v if op not in BUSINESS_RULE_OPERATIONS]
    if unknown:
        raise ValueError(
            f"Unknown operation(s): {', '.join(unknown)}. "
            f"Allowed: {', '.join(BUSINESS_RULE_OPERATIONS)}"
        )
    return v


TableName = Annotated[str, AfterValidator(_check_table)]
QueryValue = Annotated[str, AfterValidator(_check_query_value)]
Operations = Annotated[list[str], BeforeValidator(_split_operations), AfterValidator(_check_operations)]


class _Params(BaseModel):
    """Base for all argument models: unknown keys are ignored, strings trimmed."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Generic record access
# ---------------------------------------------------------------------------


class RecordQuery(_Params):
    """Validated input for query_records."""

    table: TableName
    query: str = Field(default="")
    limit: int = Field(default=10, ge=1, le=1000)
    fields: str = Field(default="")

    def field_list(self) -> list[str]:
        return [f.strip() for f in self.fields.split(",") if f.strip()]


class RecordCreate(_Params):
    """Validated input for create_record / update_record."""

    table: TableName
    fields: dict[str, Any] = Field(...)

    @field_validator("fields")
    @classmethod
    def _require_fields(cls, v: dict[str, Any]) -> dict[str, Any]:
        if not v:
            raise ValueError("fields must contain at least one field value")
        return v


# ---------------------------------------------------------------------------
# Update sets and scopes
# ---------------------------------------------------------------------------


class UpdateSetParams(_Params):
    name: str = Field(..., min_length=1, max_length=80)
    description: str = Field(default="")
    make_current: bool = Field(default=True)


class ApplicationScopeParams(_Params):
    name: str = Field(..., min_length=1)
    scope: str = Field(..., min_length=1, max_length=18)
    short_description: str = Field(..., min_length=1)
    version: str = Field(default="1.0.0")

    @field_validator("scope")
    @classmethod
    def _validate_scope(cls, v: str) -> str:
        if not _TABLE_PATTERN.match(v):
            raise ValueError("scope may only contain lowercase letters, digits and underscores")
        return v


# ---------------------------------------------------------------------------
# Scripts and automation
# ---------------------------------------------------------------------------


class ScriptIncludeParams(_Params):
    name: str = Field(..., min_length=1)
    script: str = Field(..., min_length=1)
    description: str = Field(default="")
    application_scope: str | None = Field(default=None)
    api_name: str = Field(default="")
    access: Literal["public", "package_private", "private"] = Field(default="package_private")
    client_callable: bool = Field(default=False)
    active: bool = Field(default=True)


class ScheduledJobParams(_Params):
    name: str = Field(..., min_length=1)
    script: str = Field(..., min_length=1)
    description: str = Field(default="")
    run_period: Literal["daily", "weekly", "monthly", "periodically", "once", "on_demand"] = Field(
        default="daily"
    )
    run_time: str = Field(default="00:00:00")
    run_dayofweek: str = Field(default="")
    run_dayofmonth: str = Field(default="")
    active: bool = Field(default=True)
    conditional: bool = Field(default=False)
    condition: str = Field(default="")

    @field_validator("run_time")
    @classmethod
    def _validate_run_time(cls, v: str) -> str:
        if not _RUN_TIME_PATTERN.match(v):
            raise ValueError("run_time must use HH:MM:SS format")
        return v

    @model_validator(mode="after")
    def _check_companions(self) -> "ScheduledJobParams":
        if self.run_period == "weekly" and not self.run_dayofweek:
            raise ValueError("run_dayofweek is required when run_period is 'weekly'")
        if self.run_period == "monthly" and not self.run_dayofmonth:
            raise ValueError("run_dayofmonth is required when run_period is 'monthly'")
        if self.conditional and not self.condition:
            raise ValueError("condition is required when conditional is true")
        return self


class EmailNotificationParams(_Params):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    table: TableName
    event: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    recipients: str = Field(default="")
    cc_list: str = Field(default="")
    from_address: str = Field(default="", alias="from")
    active: bool = Field(default=True)
    advanced_condition: str = Field(default="")
    weight: int = Field(default=0, ge=0)


class BusinessRuleParams(_Params):
    name: str = Field(..., min_length=1)
    table: TableName
    when: BusinessRuleWhen
    operation: Operations = Field(default_factory=lambda: ["insert", "update"])
    script: str = Field(..., min_length=1)
    description: str = Field(default="")
    order: int = Field(default=100)
    condition: str = Field(default="")
    filter_condition: str = Field(default="")
    advanced: bool = Field(default=False)
    active: bool = Field(default=True)
    role_conditions: str = Field(default="")

    def operation_flags(self) -> dict[str, bool]:
        return {op: op in self.operation for op in BUSINESS_RULE_OPERATIONS}


class BusinessRuleUpdate(_Params):
    """Partial update — only fields that were supplied are sent."""

    sys_id: QueryValue = Field(..., min_length=1)
    name: str | None = None
    table: TableName | None = None
    when: BusinessRuleWhen | None = None
    operation: Operations | None = None
    script: str | None = None
    description: str | None = None
    order: int | None = None
    condition: str | None = None
    filter_condition: str | None = None
    advanced: bool | None = None
    active: bool | None = None
    role_conditions: str | None = None

    def changes(self) -> dict[str, Any]:
        data = self.model_dump(exclude={"sys_id", "operation"}, exclude_none=True)
        if self.operation is not None:
            data.update({op: op in self.operation for op in BUSINESS_RULE_OPERATIONS})
        return data


class AssignmentGroupParams(_Params):
    name: str = Field(..., min_length=1)
    description: str = Field(default="")
    type: str = Field(default="itil")
    active: bool = Field(default=True)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


_CATALOG_NAME_PATTERN = re.compile(r"""called\s+['"]([^'"]+)['"]""", re.IGNORECASE)
_CATALOG_CATEGORY_PATTERN = re.compile(r"""\bin\s+(?:the\s+)?['"]?([^'"]+?)['"]?\s*$""", re.IGNORECASE)


class CatalogItemCommand(_Params):
    """
    A catalog item request phrased in plain English, e.g.
    Create a catalog item called 'New Laptop Request' in IT Service Catalog

    The item name must be quoted after "called". The category is whatever
    follows "in" after the name; it defaults to "General".
    """

    command: str = Field(..., min_length=1)
    item_name: str = Field(default="")
    category: str = Field(default="General")

    @model_validator(mode="after")
    def _parse(self) -> "CatalogItemCommand":
        name = _CATALOG_NAME_PATTERN.search(self.command)
        if not name:
            raise ValueError(
                "Could not extract catalog item name from command. "
                "Use format: \"Create a catalog item called 'Item Name' in Category\""
            )
        self.item_name = name.group(1).strip()
        category = _CATALOG_CATEGORY_PATTERN.search(self.command[name.end():])
        if category and category.group(1).strip():
            self.category = category.group(1).strip()
        return self


class RecordProducerParams(_Params):
    name: str = Field(..., min_length=1)
    short_description: str = Field(..., min_length=1)
    table: TableName
    category: str = Field(default="")
    scope: str | None = Field(default=None)
    access_type: Literal["internal", "external"] = Field(default="internal")


class VariableParams(_Params):
    name: str = Field(..., min_length=1)
    question_text: str = Field(..., min_length=1)
    type: str = Field(...)
    catalog_item: str = Field(..., min_length=1)
    mandatory: bool = Field(default=False)
    reference_table: str = Field(default="")
    reference_qual: str = Field(default="")
    choices: str = Field(default="")
    default_value: str = Field(default="")
    max_length: int | None = Field(default=None, ge=1, le=4000)
    order: int = Field(default=100)

    @field_validator("type")
    @classmethod
    def _validate_type(cls, v: str) -> str:
        if v not in VARIABLE_TYPE_CODES:
            raise ValueError(
                f"Unknown variable type {v!r}. Allowed: {', '.join(VARIABLE_TYPE_CODES)}"
            )
        return v

    @model_validator(mode="after")
    def _check_companions(self) -> "VariableParams":
        if self.type == "reference" and not self.reference_table:
            raise ValueError('reference_table is required when type is "reference"')
        if self.type == "choice" and not self.choices:
            raise ValueError('choices is required when type is "choice"')
        return self

    @property
    def type_code(self) -> str:
        return VARIABLE_TYPE_CODES[self.type]

    def choice_list(self) -> list[str]:
        return [c.strip() for c in self.choices.split(",") if c.strip()]


class VariableSetParams(_Params):
    name: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    catalog_item: str = Field(..., min_length=1)
    description: str = Field(default="")
    order: int = Field(default=100)


class CatalogClientScriptParams(_Params):
    name: str = Field(..., min_length=1)
    catalog_item: str = Field(..., min_length=1)
    type: ClientScriptType
    script: str = Field(..., min_length=1)
    field: str = Field(default="")
    description: str = Field(default="")
    active: bool = Field(default=True)
    applies_to: Literal["item", "set"] = Field(default="item")

    @model_validator(mode="after")
    def _check_companions(self) -> "CatalogClientScriptParams":
        if self.type == "onChange" and not self.field:
            raise ValueError("field is required for onChange scripts")
        return self


class CatalogUIPolicyParams(_Params):
    name: str = Field(..., min_length=1)
    catalog_item: str = Field(default="")
    variable_set: str = Field(default="")
    applies_to: Literal["A Catalog Item", "A Variable Set"] = Field(default="A Catalog Item")
    short_description: str = Field(default="")
    active: bool = Field(default=True)
    catalog_conditions: str = Field(default="")
    applies_on_catalog_item_view: bool = Field(default=True)
    applies_on_requested_items: bool = Field(default=False)
    applies_on_catalog_tasks: bool = Field(default=False)
    applies_on_target_record: bool = Field(default=False)
    on_load: bool = Field(default=True)
    reverse_if_false: bool = Field(default=False)
    order: int = Field(default=100)

    @model_validator(mode="after")
    def _check_target(self) -> "CatalogUIPolicyParams":
        if not self.catalog_item and not self.variable_set:
            raise ValueError("Either catalog_item or variable_set must be provided")
        if self.applies_to == "A Variable Set" and not self.variable_set:
            raise ValueError("variable_set is required when applies_to is 'A Variable Set'")
        return self


class CatalogUIPolicyActionParams(_Params):
    catalog_ui_policy: QueryValue = Field(..., min_length=1)
    variable_name: QueryValue = Field(..., min_length=1)
    order: int = Field(default=100)
    mandatory: TriState = Field(default="leave_alone")
    visible: TriState = Field(default="leave_alone")
    read_only: TriState = Field(default="leave_alone")
    value_action: ValueAction = Field(default="leave_alone")
    value: str | None = Field(default=None)
    field_message_type: MessageType = Field(default="none")
    field_message: str = Field(default="")

    @field_validator("mandatory", "visible", "read_only", mode="before")
    @classmethod
    def _bool_to_tri_state(cls, v: object) -> object:
        if isinstance(v, bool):
            return "true" if v else "false"
        return v

    @model_validator(mode="after")
    def _check_companions(self) -> "CatalogUIPolicyActionParams":
        if self.value_action == "set_value" and self.value is None:
            raise ValueError("value is required when value_action is 'set_value'")
        if self.field_message_type != "none" and not self.field_message:
            raise ValueError("field_message is required when field_message_type is set")
        return self


# ---------------------------------------------------------------------------
# Forms
# ---------------------------------------------------------------------------


class UIPolicyParams(_Params):
    name: str = Field(..., min_length=1)
    table: str = Field(default="")
    conditions: str = Field(default="")
    short_description: str = Field(default="")
    on_load: bool = Field(default=True)
    active: bool = Field(default=True)
    reverse_if_false: bool = Field(default=True)
    catalog_item: str = Field(default="")
    script_true: str = Field(default="")
    script_false: str = Field(default="")
    scope: str | None = Field(default=None)

    @field_validator("table")
    @classmethod
    def _validate_table(cls, v: str) -> str:
        return _check_table(v) if v else v


class UIPolicyActionParams(_Params):
    ui_policy: QueryValue = Field(..., min_length=1)
    field: str = Field(..., min_length=1)
    visible: bool | None = Field(default=None)
    mandatory: bool | None = Field(default=None)
    disabled: bool | None = Field(default=None)


class ClientScriptParams(_Params):
    name: str = Field(..., min_length=1)
    table: TableName
    type: ClientScriptType
    script: str = Field(..., min_length=1)
    field: str = Field(default="")
    description: str = Field(default="")
    catalog_item: str = Field(default="")
    active: bool = Field(default=True)

    @model_validator(mode="after")
    def _check_companions(self) -> "ClientScriptParams":
        if self.type == "onChange" and not self.field:
            raise ValueError("field is required for onChange scripts")
        return self


class TableFieldParams(_Params):
    table: TableName
    column_name: TableName
    column_label: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    reference_table: str = Field(default="")
    max_length: int | None = Field(default=None, ge=1)
    choices: str = Field(default="")
    mandatory: bool = Field(default=False)

    @model_validator(mode="after")
    def _check_companions(self) -> "TableFieldParams":
        if self.type == "reference" and not self.reference_table:
            raise ValueError('reference_table is required when type is "reference"')
        if self.type == "choice" and not self.choices:
            raise ValueError('choices is required when type is "choice"')
        return self

    def choice_list(self) -> list[str]:
        return [c.strip() for c in self.choices.split(",") if c.strip()]


# ---------------------------------------------------------------------------
# Flows
# ---------------------------------------------------------------------------


class FlowParams(_Params):
    name: str = Field(..., min_length=1)
    description: str = Field(default="")
    scope: str | None = Field(default=None)
    active: bool = Field(default=True)


class FlowTriggerParams(_Params):
    flow_id: QueryValue = Field(..., min_length=1)
    type: Literal["record_created", "record_updated", "scheduled"]
    table: str = Field(default="")
    condition: str = Field(default="")

    @model_validator(mode="after")
    def _check_companions(self) -> "FlowTriggerParams":
        if self.type in ("record_created", "record_updated") and not self.table:
            raise ValueError(f"table is required for {self.type} triggers")
        return self


class CreateRecordActionParams(_Params):
    flow_id: QueryValue = Field(..., min_length=1)
    table: TableName
    field_values: dict[str, Any] = Field(...)
    order: int = Field(..., ge=0)


class SendEmailActionParams(_Params):
    flow_id: QueryValue = Field(..., min_length=1)
    to: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    order: int = Field(..., ge=0)


class FlowConnectionParams(_Params):
    flow_id: QueryValue = Field(..., min_length=1)
    from_action: QueryValue = Field(..., min_length=1)
    to_action: QueryValue = Field(..., min_length=1)
    condition: str = Field(default="")

    @model_validator(mode="after")
    def _check_distinct(self) -> "FlowConnectionParams":
        if self.from_action == self.to_action:
            raise ValueError("from_action and to_action must be different actions")
        return self
