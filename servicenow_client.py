"""
ServiceNow Table API client with update-set tracking.

Design:
  - Basic authentication with a static username/password pair set once at
    construction; the password is read from a SecretStr and never logged
  - One long-lived httpx.AsyncClient per instance, opened lazily and closed
    with aclose() (or by using the client as an async context manager)
  - No retries: every non-2xx response is surfaced immediately as a typed
    exception carrying the HTTP status and the remote error body
  - The client owns an UpdateSetContext. Once a sys_id is tracked it is never
    cleared, and every create() carries it in sys_update_set unless the
    caller already supplied that field
  - select() commits the tracked id locally BEFORE attempting the remote
    user-preference write; a failed preference write never rolls it back

Usage:
    async with ServiceNowClient(settings) as client:
        rows = await client.get("incident", "active=true")
"""
from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from config import SERVER_VERSION, Settings
from input_validator import (
    CatalogClientScriptParams,
    CatalogUIPolicyActionParams,
    CatalogUIPolicyParams,
    CreateRecordActionParams,
    EmailNotificationParams,
    FlowConnectionParams,
    FlowParams,
    FlowTriggerParams,
    ScheduledJobParams,
    ScriptIncludeParams,
    SendEmailActionParams,
    UIPolicyActionParams,
    UIPolicyParams,
)

log = structlog.get_logger(__name__)

TRACKING_FIELD = "sys_update_set"
UPDATE_SET_TABLE = "sys_update_set"

_USER_AGENT = f"servicenow-mcp-server/{SERVER_VERSION}"
_PREFERENCE_TABLE = "sys_user_preference"
_CURRENT_APP_PREFERENCE = "apps.current_app"
_CATALOG_VARIABLE_TAG = "IO:"

_P = TypeVar("_P", bound=BaseModel)


# ---------------------------------------------------------------------------
# Typed exceptions
# ---------------------------------------------------------------------------


class ServiceNowError(Exception):
    """Base class for all ServiceNow client errors."""


class ServiceNowTransportError(ServiceNowError):
    """Raised for non-2xx responses and for requests that never got one."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ServiceNowAuthError(ServiceNowTransportError):
    """Raised on HTTP 401 — the credential pair was rejected."""


class ServiceNowNotFoundError(ServiceNowError):
    """A required lookup returned zero rows."""

    def __init__(
        self,
        message: str,
        table: str | None = None,
        query: str | None = None,
        candidates: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.table = table
        self.query = query
        self.candidates = candidates or []


class ServiceNowInvalidStateError(ServiceNowError):
    """A located record lacks a reference it is required to have."""


class ServiceNowValidationError(ServiceNowError, ValueError):
    """Caller-supplied arguments failed a precondition."""


class ServiceNowPreferenceError(ServiceNowError):
    """
    A user preference write failed after the local change was applied.

    The message is the underlying failure's; the original exception is
    chained as __cause__.
    """

    def __init__(self, message: str, preference: str) -> None:
        super().__init__(message)
        self.preference = preference


# ---------------------------------------------------------------------------
# Update-set tracking state
# ---------------------------------------------------------------------------


class TrackingSource(str, Enum):
    """How confident we are that the instance agrees on the current update set."""

    NONE = "none"
    LOCALLY_TRACKED = "locally_tracked"
    PREFERENCE_CONFIRMED = "preference_confirmed"


@dataclass
class UpdateSetContext:
    """
    The update set records are currently attributed to.

    Starts empty. track() supersedes the previous value; there is no way to
    go back to an empty context.
    """

    sys_id: str | None = None
    source: TrackingSource = TrackingSource.NONE

    @property
    def is_tracking(self) -> bool:
        return bool(self.sys_id)

    def track(self, sys_id: str, source: TrackingSource = TrackingSource.LOCALLY_TRACKED) -> None:
        if not sys_id:
            raise ServiceNowValidationError("An update set sys_id is required")
        self.sys_id = sys_id
        self.source = source

    def attach(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Return payload with the tracking field set, never overwriting a caller value."""
        return attach_tracking(payload, self.sys_id)


def attach_tracking(payload: Mapping[str, Any], sys_id: str | None) -> dict[str, Any]:
    """
    Return a copy of payload carrying sys_update_set = sys_id.

    A payload that already has a sys_update_set key, whatever its value,
    is returned unchanged (as a copy). With no sys_id the payload is returned as-is.
    Applying this twice gives the same result as applying it once.
    """
    data = dict(payload)
    if sys_id and TRACKING_FIELD not in data:
        data[TRACKING_FIELD] = sys_id
    return data


# ---------------------------------------------------------------------------
# Reference fields
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Reference:
    """
    A reference field value.

    The Table API returns references either as a bare sys_id string or as
    {"value": sys_id, "link": ...} depending on request parameters.
    """

    sys_id: str
    wrapped: bool = False

    @classmethod
    def parse(cls, raw: object) -> "Reference | None":
        if isinstance(raw, Mapping):
            value = raw.get("value")
            return cls(str(value), wrapped=True) if value else None
        if isinstance(raw, str) and raw:
            return cls(raw)
        return None


def reference_id(raw: object) -> str | None:
    """Normalize a reference field to its sys_id, or None if it is empty."""
    ref = Reference.parse(raw)
    return ref.sys_id if ref else None


# ---------------------------------------------------------------------------
# Catalog UI policy action field mapping
# ---------------------------------------------------------------------------


def _same(value: Any) -> Any:
    return value


def _cleared(value_action: str) -> str:
    # The platform stores this as a string, not a boolean
    return "true" if value_action == "clear_value" else "false"


# (caller field, remote field, transform)
CATALOG_ACTION_FIELD_MAP: tuple[tuple[str, str, Callable[[Any], Any]], ...] = (
    ("mandatory", "mandatory", _same),
    ("visible", "visible", _same),
    ("read_only", "disabled", _same),
    ("value_action", "value_action", _same),
    ("value_action", "cleared", _cleared),
    ("field_message_type", "field_message_type", _same),
    ("field_message", "field_message", _same),
)


def map_catalog_action_fields(params: CatalogUIPolicyActionParams) -> dict[str, Any]:
    """Translate caller-facing action fields into catalog_ui_policy_action fields."""
    mapped = {
        remote: transform(getattr(params, caller))
        for caller, remote, transform in CATALOG_ACTION_FIELD_MAP
    }
    if params.value_action == "set_value":
        mapped["value"] = params.value
    return mapped


def _coerce(model: type[_P], params: Mapping[str, Any] | _P) -> _P:
    """Validate loosely-typed params into model, raising ServiceNowValidationError."""
    if isinstance(params, model):
        return params
    try:
        return model.model_validate(dict(params))
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        detail = f"{loc}: {first['msg']}" if loc else first["msg"]
        raise ServiceNowValidationError(f"Invalid input: {detail}") from exc


def _remote_error_message(body: Any) -> str | None:
    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, Mapping):
            message = error.get("message")
            detail = error.get("detail")
            if message and detail:
                return f"{message} ({detail})"
            return message or detail
    return None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ServiceNowClient:
    """
    Async HTTP client for the ServiceNow Table API.

    Intended to be long-lived: the session controller builds one per session
    and keeps it until shutdown.

        client = ServiceNowClient(settings)
        await client.ensure_authenticated()
        await client.select(update_set_id)
        await client.create_script_include({"name": "Foo", "script": "..."})
        await client.aclose()
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._s = settings
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self._context = UpdateSetContext()
        self._default_scope = settings.default_application_scope

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "ServiceNowClient":
        self._ensure_http()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _ensure_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._s.servicenow_instance_url,
                auth=httpx.BasicAuth(
                    self._s.servicenow_username,
                    self._s.servicenow_password.get_secret_value(),
                ),
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    "User-Agent": _USER_AGENT,
                },
                timeout=httpx.Timeout(self._s.http_timeout),
                follow_redirects=False,
                transport=self._transport,
            )
        return self._http

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def context(self) -> UpdateSetContext:
        return self._context

    @property
    def current_update_set(self) -> str | None:
        return self._context.sys_id

    @property
    def default_scope(self) -> str:
        return self._default_scope

    def track(self, sys_id: str) -> None:
        """Track sys_id locally without touching the instance."""
        self._context.track(sys_id, TrackingSource.LOCALLY_TRACKED)

    # ------------------------------------------------------------------
    # Table API
    # ------------------------------------------------------------------

    async def ensure_authenticated(self) -> dict[str, Any]:
        """
        Validate the credential pair with one round-trip.

        Returns the caller's sys_user record.
        """
        user = await self._find_current_user()
        log.info("servicenow.auth.verified")
        return user

    async def get(
        self,
        table: str,
        query: str | None = None,
        *,
        limit: int | None = None,
        fields: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Read rows from table.

        query is an encoded query passed through unmodified. No pagination is
        performed; whatever the instance returns is returned in order.
        """
        params: dict[str, Any] = {}
        if query:
            params["sysparm_query"] = query
        if limit is not None:
            params["sysparm_limit"] = limit
        if fields:
            params["sysparm_fields"] = ",".join(fields)
        body = await self._request("GET", self._s.table_path(table), params=params or None)
        return list(body.get("result") or [])

    async def create(self, table: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Insert a row, attributing it to the tracked update set."""
        return await self._insert(table, self._context.attach(payload))

    async def update_by_id(
        self,
        table: str,
        sys_id: str,
        payload: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Replace fields of an existing row. Update-set tracking is not applied."""
        body = await self._request("PUT", self._s.table_path(table, sys_id), json_body=dict(payload))
        return dict(body.get("result") or {})

    async def get_by_id(self, table: str, sys_id: str) -> dict[str, Any]:
        query = f"sys_id={sys_id}"
        rows = await self.get(table, query)
        if not rows:
            raise ServiceNowNotFoundError(
                f"No {table} record found with sys_id {sys_id}",
                table=table,
                query=query,
            )
        return rows[0]

    async def _insert(self, table: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        log.debug("servicenow.record.create", table=table, fields=sorted(payload))
        body = await self._request("POST", self._s.table_path(table), json_body=dict(payload))
        return dict(body.get("result") or {})

    # ------------------------------------------------------------------
    # Update sets
    # ------------------------------------------------------------------

    async def create_update_set(self, name: str, description: str) -> dict[str, Any]:
        """Create an update set in build state. The tracked update set is unchanged."""
        return await self._insert(
            UPDATE_SET_TABLE,
            {
                "name": f"{self._s.update_set_prefix}{name}",
                "description": description,
                "state": "build",
                "application": self._default_scope,
            },
        )

    async def select(self, sys_id: str) -> None:
        """
        Make sys_id the current update set.

        The local context is updated first and unconditionally. The user's
        sys_update_set preference is then written best-effort; any failure
        there is raised to the caller as ServiceNowPreferenceError with local
        tracking already in effect.
        """
        self._context.track(sys_id, TrackingSource.LOCALLY_TRACKED)
        log.info("servicenow.update_set.tracked", sys_id=sys_id)

        await self._write_preference(UPDATE_SET_TABLE, sys_id)
        self._context.track(sys_id, TrackingSource.PREFERENCE_CONFIRMED)
        log.info("servicenow.update_set.preference_confirmed", sys_id=sys_id)

    async def _find_current_user(self) -> dict[str, Any]:
        query = f"user_name={self._s.servicenow_username}"
        rows = await self.get("sys_user", query, limit=1)
        if not rows:
            raise ServiceNowNotFoundError(
                f"No sys_user record found for {self._s.servicenow_username}",
                table="sys_user",
                query=query,
            )
        return rows[0]

    async def _write_preference(self, name: str, value: str) -> dict[str, Any]:
        """Create or update the caller's preference; any failure becomes ServiceNowPreferenceError."""
        try:
            user = await self._find_current_user()
            user_id = user.get("sys_id", "")
            existing = await self.get(_PREFERENCE_TABLE, f"user={user_id}^name={name}", limit=1)
            if not existing:
                return await self._insert(
                    _PREFERENCE_TABLE,
                    {"user": user_id, "name": name, "value": value, "type": "string"},
                )
            pref_id = existing[0].get("sys_id")
            if not pref_id:
                raise ServiceNowInvalidStateError(
                    f"Preference {name} of user {user_id} was returned without a sys_id"
                )
            return await self.update_by_id(_PREFERENCE_TABLE, pref_id, {"value": value})
        except ServiceNowError as exc:
            raise ServiceNowPreferenceError(str(exc), preference=name) from exc

    # ------------------------------------------------------------------
    # Application scopes
    # ------------------------------------------------------------------

    async def create_application_scope(
        self,
        name: str,
        scope: str,
        short_description: str,
        version: str = "1.0.0",
    ) -> dict[str, Any]:
        return await self.create(
            "sys_app",
            {
                "name": name,
                "scope": scope,
                "short_description": short_description,
                "version": version,
                "active": True,
            },
        )

    async def set_application_scope(self, scope: str) -> dict[str, Any]:
        """
        Use scope as the default for subsequent calls.

        A failed sys_app lookup propagates as-is and changes nothing. Once the
        application is found the in-memory default is switched; the
        apps.current_app preference write that follows is best-effort, and
        its failure is raised as ServiceNowPreferenceError without undoing
        the switch.
        """
        query = f"scope={scope}"
        apps = await self.get("sys_app", query, limit=1)
        if not apps:
            raise ServiceNowNotFoundError(
                f"No application found with scope {scope}", table="sys_app", query=query
            )
        app = apps[0]
        self._default_scope = scope
        log.info("servicenow.scope.switched", scope=scope)
        await self._write_preference(_CURRENT_APP_PREFERENCE, app.get("sys_id", ""))
        return app

    # ------------------------------------------------------------------
    # Record helpers
    # ------------------------------------------------------------------

    async def create_script_include(self, params: Mapping[str, Any] | ScriptIncludeParams) -> dict[str, Any]:
        p = _coerce(ScriptIncludeParams, params)
        return await self.create(
            "sys_script_include",
            {
                "name": p.name,
                "api_name": p.api_name or p.name,
                "script": p.script,
                "description": p.description,
                "access": p.access,
                "client_callable": p.client_callable,
                "active": p.active,
                "sys_scope": p.application_scope or self._default_scope,
            },
        )

    async def create_scheduled_job(self, params: Mapping[str, Any] | ScheduledJobParams) -> dict[str, Any]:
        p = _coerce(ScheduledJobParams, params)
        return await self.create(
            "sysauto_script",
            {
                "name": p.name,
                "script": p.script,
                "description": p.description,
                "run_type": p.run_period,
                "run_time": f"1970-01-01 {p.run_time}",
                "run_dayofweek": p.run_dayofweek,
                "run_dayofmonth": p.run_dayofmonth,
                "active": p.active,
                "conditional": p.conditional,
                "condition": p.condition,
            },
        )

    async def create_email_notification(
        self, params: Mapping[str, Any] | EmailNotificationParams
    ) -> dict[str, Any]:
        p = _coerce(EmailNotificationParams, params)
        record_event = p.event in ("insert", "update")
        return await self.create(
            "sysevent_email_action",
            {
                "name": p.name,
                "collection": p.table,
                "generation_type": "engine" if record_event else "event",
                "action_insert": p.event == "insert",
                "action_update": p.event == "update",
                "event_name": "" if record_event else p.event,
                "subject": p.subject,
                "message_html": p.message,
                "recipient_fields": p.recipients,
                "cc_list": p.cc_list,
                "from": p.from_address,
                "active": p.active,
                "advanced_condition": p.advanced_condition,
                "weight": p.weight,
            },
        )

    async def create_catalog_client_script(
        self, params: Mapping[str, Any] | CatalogClientScriptParams
    ) -> dict[str, Any]:
        p = _coerce(CatalogClientScriptParams, params)
        return await self.create(
            "catalog_script_client",
            {
                "name": p.name,
                "cat_item": p.catalog_item,
                "type": p.type,
                "script": p.script,
                "cat_variable": p.field,
                "description": p.description,
                "active": p.active,
                "applies_to": p.applies_to,
                "applies_catalog": True,
            },
        )

    async def create_ui_policy(self, params: Mapping[str, Any] | UIPolicyParams) -> dict[str, Any]:
        p = _coerce(UIPolicyParams, params)
        if not p.table:
            raise ServiceNowValidationError(
                "table is required for UI policies — use create_catalog_ui_policy for catalog items"
            )
        return await self.create(
            "sys_ui_policy",
            {
                "table": p.table,
                "short_description": p.name,
                "description": p.short_description,
                "conditions": p.conditions,
                "on_load": p.on_load,
                "active": p.active,
                "reverse_if_false": p.reverse_if_false,
                "run_scripts": bool(p.script_true or p.script_false),
                "script_true": p.script_true,
                "script_false": p.script_false,
                "sys_scope": p.scope or self._default_scope,
            },
        )

    async def create_catalog_ui_policy(
        self, params: Mapping[str, Any] | CatalogUIPolicyParams
    ) -> dict[str, Any]:
        p = _coerce(CatalogUIPolicyParams, params)
        return await self.create(
            "catalog_ui_policy",
            {
                "short_description": p.name,
                "description": p.short_description,
                "applies_to": "set" if p.applies_to == "A Variable Set" else "item",
                "catalog_item": p.catalog_item,
                "variable_set": p.variable_set,
                "active": p.active,
                "catalog_conditions": p.catalog_conditions,
                "applies_catalog": p.applies_on_catalog_item_view,
                "applies_req_item": p.applies_on_requested_items,
                "applies_sc_task": p.applies_on_catalog_tasks,
                "applies_target_record": p.applies_on_target_record,
                "on_load": p.on_load,
                "reverse_if_false": p.reverse_if_false,
                "order": p.order,
            },
        )

    async def create_catalog_ui_policy_action(
        self, params: Mapping[str, Any] | CatalogUIPolicyActionParams
    ) -> dict[str, Any]:
        """
        Create an action controlling one catalog variable.

        The variable is resolved by name under the catalog item the policy
        belongs to. The payload then names it three ways: the policy sys_id
        in ui_policy, "IO:<variable sys_id>" in catalog_variable, and the
        variable name in variable.
        """
        p = _coerce(CatalogUIPolicyActionParams, params)

        policy = await self.get_by_id("catalog_ui_policy", p.catalog_ui_policy)
        catalog_item = reference_id(policy.get("catalog_item"))
        if not catalog_item:
            raise ServiceNowInvalidStateError(
                f"Catalog UI policy {p.catalog_ui_policy} is not linked to a catalog item"
            )

        query = f"cat_item={catalog_item}^name={p.variable_name}"
        variables = await self.get("item_option_new", query)
        if not variables:
            candidates = [
                v.get("name", "")
                for v in await self.get("item_option_new", f"cat_item={catalog_item}")
            ]
            raise ServiceNowNotFoundError(
                f"Variable '{p.variable_name}' not found in catalog item {catalog_item}. "
                f"Found {len(candidates)} variable(s): {', '.join(candidates) or 'none'}",
                table="item_option_new",
                query=query,
                candidates=candidates,
            )
        if len(variables) > 1:
            log.warning(
                "servicenow.catalog_variable.ambiguous",
                variable=p.variable_name,
                matches=len(variables),
            )
        variable_id = variables[0].get("sys_id", "")

        payload = {
            "ui_policy": p.catalog_ui_policy,
            "catalog_variable": f"{_CATALOG_VARIABLE_TAG}{variable_id}",
            "variable": p.variable_name,
            "order": p.order,
            **map_catalog_action_fields(p),
        }
        return await self.create("catalog_ui_policy_action", payload)

    async def create_ui_policy_action(
        self, params: Mapping[str, Any] | UIPolicyActionParams
    ) -> dict[str, Any]:
        p = _coerce(UIPolicyActionParams, params)
        return await self.create(
            "sys_ui_policy_action",
            {
                "ui_policy": p.ui_policy,
                "field": p.field,
                "visible": True if p.visible is None else p.visible,
                "mandatory": bool(p.mandatory),
                "disabled": bool(p.disabled),
            },
        )

    # ------------------------------------------------------------------
    # Flow Designer
    # ------------------------------------------------------------------

    async def create_flow(self, params: Mapping[str, Any] | FlowParams) -> dict[str, Any]:
        p = _coerce(FlowParams, params)
        return await self.create(
            "sys_hub_flow",
            {
                "name": p.name,
                "description": p.description,
                "sys_scope": p.scope or self._default_scope,
                "active": p.active,
                "type": "flow",
                "status": "draft",
            },
        )

    async def create_flow_trigger(self, params: Mapping[str, Any] | FlowTriggerParams) -> dict[str, Any]:
        p = _coerce(FlowTriggerParams, params)
        return await self.create(
            "sys_hub_trigger_instance",
            {
                "flow": p.flow_id,
                "trigger_type": p.type,
                "table": p.table,
                "condition": p.condition,
            },
        )

    async def add_create_record_action(
        self, params: Mapping[str, Any] | CreateRecordActionParams
    ) -> dict[str, Any]:
        p = _coerce(CreateRecordActionParams, params)
        return await self.create(
            "sys_hub_action_instance",
            {
                "flow": p.flow_id,
                "action_type": "create_record",
                "order": p.order,
                "values": json.dumps({"table": p.table, "field_values": p.field_values}),
            },
        )

    async def add_send_email_action(
        self, params: Mapping[str, Any] | SendEmailActionParams
    ) -> dict[str, Any]:
        p = _coerce(SendEmailActionParams, params)
        return await self.create(
            "sys_hub_action_instance",
            {
                "flow": p.flow_id,
                "action_type": "send_email",
                "order": p.order,
                "values": json.dumps({"to": p.to, "subject": p.subject, "body": p.body}),
            },
        )

    async def create_flow_connection(
        self, params: Mapping[str, Any] | FlowConnectionParams
    ) -> dict[str, Any]:
        p = _coerce(FlowConnectionParams, params)
        return await self.create(
            "sys_hub_flow_logic",
            {
                "flow": p.flow_id,
                "from_action": p.from_action,
                "to_action": p.to_action,
                "condition": p.condition,
            },
        )

    # ------------------------------------------------------------------
    # Internal: request execution
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        http = self._ensure_http()
        try:
            response = await http.request(method, path, params=params, json=json_body)
        except httpx.TimeoutException as exc:
            log.error("servicenow.request.timeout", method=method, path=path)
            raise ServiceNowTransportError(
                f"ServiceNow did not respond within {self._s.http_timeout:g} seconds"
            ) from exc
        except httpx.RequestError as exc:
            log.error("servicenow.request.network_error", method=method, path=path)
            raise ServiceNowTransportError(
                f"Cannot connect to ServiceNow at {self._s.servicenow_instance_url}"
            ) from exc

        return self._handle_response(method, path, response)

    def _handle_response(self, method: str, path: str, response: httpx.Response) -> dict[str, Any]:
        status = response.status_code

        try:
            body: Any = response.json() if response.content else {}
        except (json.JSONDecodeError, ValueError):
            body = response.text

        if 200 <= status < 300:
            if not isinstance(body, dict):
                log.error("servicenow.response.invalid_json", status_code=status, path=path)
                raise ServiceNowTransportError(
                    "ServiceNow returned a non-JSON response", status_code=status, body=body
                )
            return body

        remote = _remote_error_message(body)
        log.error(
            "servicenow.response.error",
            method=method,
            path=path,
            status_code=status,
            remote_error=remote,
        )
        message = f"ServiceNow API error (HTTP {status})"
        if remote:
            message = f"{message}: {remote}"

        if status == 401:
            raise ServiceNowAuthError(message, status_code=status, body=body)
        raise ServiceNowTransportError(message, status_code=status, body=body)

