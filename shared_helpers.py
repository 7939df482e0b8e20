"""
Shared helpers for MCP tool modules.

Contains:
  - Result formatting (format_result, format_records)
  - Update set status formatting
  - Field projection for query results
  - User-friendly error formatting

All tool modules import from here. No tool-specific logic belongs in this file.
"""
from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

import structlog
from pydantic import ValidationError

from servicenow_client import (
    ServiceNowAuthError,
    ServiceNowInvalidStateError,
    ServiceNowNotFoundError,
    ServiceNowPreferenceError,
    ServiceNowTransportError,
    ServiceNowValidationError,
    TrackingSource,
)
from session import StatusReport

log = structlog.get_logger(__name__)

_SEP = "─" * 45


# ---------------------------------------------------------------------------
# Result formatting
# ---------------------------------------------------------------------------


def record_id(record: dict[str, Any]) -> str:
    """sys_id of a returned record, or a placeholder when the instance omitted it."""
    return str(record.get("sys_id") or "unknown")


def format_result(title: str, rows: Iterable[tuple[str, Any]]) -> str:
    """
    Render a titled block of "Label: value" lines.

    None and empty values are shown as "None" so every label is always present.
    """
    lines = [title, _SEP]
    for label, value in rows:
        if value is None or value == "":
            value = "None"
        lines.append(f"{label}: {value}")
    return "\n".join(lines)


def project_fields(records: list[dict[str, Any]], fields: list[str]) -> list[dict[str, Any]]:
    """Keep only the named fields of each record; records are returned in order."""
    if not fields:
        return records
    return [{f: r[f] for f in fields if f in r} for r in records]


def format_records(table: str, records: list[dict[str, Any]]) -> str:
    header = f"Found {len(records)} record(s) in table '{table}'"
    if not records:
        return header
    return f"{header}\n\n{json.dumps(records, indent=2, default=str)}"


def format_status(report: StatusReport | None) -> str:
    """Describe the session's tracked update set for a tool response."""
    if report is None:
        return (
            "No update set is currently tracked. "
            "Records will be created in the default update set."
        )

    rows: list[tuple[str, Any]] = []
    if report.record:
        rows += [
            ("Name", report.record.get("name")),
            ("Description", report.record.get("description")),
            ("State", report.record.get("state")),
        ]
    rows.append(("Update Set ID", report.sys_id))

    if report.source is TrackingSource.PREFERENCE_CONFIRMED:
        rows.append(("Tracking", "confirmed — set as your current update set on the instance"))
    else:
        rows.append(("Tracking", "local — sys_update_set is set directly on each new record"))

    text = format_result("Current tracked update set", rows)
    if report.error:
        text += f"\nNote: {report.error}"
    return text + "\nAll subsequent record creations in this session will use this update set."


# ---------------------------------------------------------------------------
# Error formatting
# ---------------------------------------------------------------------------


def user_friendly_error(exc: Exception) -> str:
    """Convert internal exceptions to helpful user messages."""
    if isinstance(exc, ServiceNowPreferenceError) and isinstance(exc.__cause__, Exception):
        return user_friendly_error(exc.__cause__)
    if isinstance(exc, ServiceNowAuthError):
        return "ServiceNow rejected the credentials — check SERVICENOW_USERNAME and SERVICENOW_PASSWORD."
    if isinstance(exc, ServiceNowTransportError):
        if exc.status_code is None:
            return f"{exc} Check SERVICENOW_INSTANCE_URL and network access."
        return str(exc)
    if isinstance(
        exc,
        (ServiceNowNotFoundError, ServiceNowInvalidStateError, ServiceNowValidationError),
    ):
        # Already written for the user, with the lookup context included
        return str(exc)
    if isinstance(exc, ValidationError):
        first = exc.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        return f"Invalid input: {loc}: {first['msg']}" if loc else f"Invalid input: {first['msg']}"
    if isinstance(exc, ValueError):
        return str(exc)
    return "An unexpected error occurred. Please try again."


def tool_error(tool: str, action: str, exc: Exception) -> str:
    """Log a tool failure and return its text result."""
    log.error(f"tool.{tool}.error", error_type=type(exc).__name__)
    return f"Error: Failed to {action}: {user_friendly_error(exc)}"
