"""
Session-scoped update set tracking.

One SessionController lives for the lifetime of an MCP session (it is created
in the server lifespan, never at import time). It owns:
  - the memoized ServiceNowClient, built and authenticated on first use
  - the session's tracked update set, which every record created through
    create_record() carries in sys_update_set

The client keeps its own UpdateSetContext and injects on create() too, so a
record is attributed whether a tool goes through the session or calls a
client helper directly. The session seeds a freshly built client with its
tracked id so the two never disagree.

State machine: Untracked → Tracked. There is no transition back.
"""
from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from config import Settings
from servicenow_client import (
    UPDATE_SET_TABLE,
    ServiceNowClient,
    ServiceNowError,
    TrackingSource,
    UpdateSetContext,
    attach_tracking,
)

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StatusReport:
    """
    Outcome of set_current / get_current.

    Both LOCALLY_TRACKED and PREFERENCE_CONFIRMED are success states; error
    only carries the diagnostic of the part that did not work.
    """

    sys_id: str
    source: TrackingSource
    record: dict[str, Any] | None = None
    error: str | None = None

    @property
    def confirmed(self) -> bool:
        return self.source is TrackingSource.PREFERENCE_CONFIRMED


class SessionController:
    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._client: ServiceNowClient | None = None
        self._client_lock = asyncio.Lock()
        self._tracked = UpdateSetContext()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def tracked_update_set(self) -> str | None:
        return self._tracked.sys_id

    async def ensure_client(self) -> ServiceNowClient:
        """
        Return the session's client, building it on first use.

        The first call performs one authentication round-trip. A client that
        fails to authenticate is discarded so the next call can try again;
        once one succeeds it is kept for the rest of the session.
        """
        async with self._client_lock:
            if self._client is not None:
                return self._client

            client = ServiceNowClient(self._settings, transport=self._transport)
            try:
                await client.ensure_authenticated()
            except BaseException:
                await client.aclose()
                raise

            if self._tracked.is_tracking:
                client.track(self._tracked.sys_id)
            self._client = client
            log.info("session.client.ready")
            return client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def attach_tracking(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Copy of payload carrying the tracked update set unless it sets its own."""
        return attach_tracking(payload, self._tracked.sys_id)

    async def set_current(self, sys_id: str) -> StatusReport:
        """
        Track sys_id for the rest of the session.

        Local tracking is committed before anything remote is attempted. If
        the preference write (or building the client) fails, the report says
        so, but tracking stays in effect.
        """
        self._tracked.track(sys_id, TrackingSource.LOCALLY_TRACKED)
        log.info("session.update_set.tracked", sys_id=sys_id)

        try:
            client = await self.ensure_client()
            await client.select(sys_id)
        except ServiceNowError as exc:
            log.warning(
                "session.update_set.preference_failed",
                sys_id=sys_id,
                error_type=type(exc).__name__,
            )
            return StatusReport(sys_id, TrackingSource.LOCALLY_TRACKED, error=str(exc))

        self._tracked.track(sys_id, TrackingSource.PREFERENCE_CONFIRMED)
        return StatusReport(sys_id, TrackingSource.PREFERENCE_CONFIRMED)

    async def get_current(self) -> StatusReport | None:
        """
        Describe the tracked update set, or None when nothing is tracked.

        The update set row is fetched for display only; if that fails the raw
        sys_id is still reported.
        """
        if not self._tracked.is_tracking:
            return None
        sys_id = self._tracked.sys_id

        try:
            client = await self.ensure_client()
            rows = await client.get(UPDATE_SET_TABLE, f"sys_id={sys_id}")
        except ServiceNowError as exc:
            log.warning("session.update_set.lookup_failed", sys_id=sys_id, error_type=type(exc).__name__)
            return StatusReport(sys_id, self._tracked.source, error=str(exc))

        return StatusReport(sys_id, self._tracked.source, record=rows[0] if rows else None)

    # ------------------------------------------------------------------
    # Record creation
    # ------------------------------------------------------------------

    async def create_record(self, table: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        client = await self.ensure_client()
        return await client.create(table, self.attach_tracking(payload))

    async def update_record(
        self,
        table: str,
        sys_id: str,
        payload: Mapping[str, Any],
    ) -> dict[str, Any]:
        client = await self.ensure_client()
        return await client.update_by_id(table, sys_id, payload)

    async def create_update_set(
        self,
        name: str,
        description: str,
        make_current: bool = True,
    ) -> tuple[dict[str, Any], StatusReport | None]:
        """Create an update set and, unless told otherwise, start tracking it."""
        client = await self.ensure_client()
        record = await client.create_update_set(name, description)
        log.info("session.update_set.created", sys_id=record.get("sys_id"))

        report = None
        if make_current and record.get("sys_id"):
            report = await self.set_current(record["sys_id"])
        return record, report
