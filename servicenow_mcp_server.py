"""
ServiceNow MCP Server.

Lets Claude Desktop build ServiceNow configuration through the Model Context
Protocol: catalog items and variables, UI policies, client and server scripts,
scheduled jobs, notifications and Flow Designer flows. Every record created in
a session is captured in the session's current update set.

Tool modules:
  tools_records      — test_connection, query_records, create_record, update_record
  tools_update_sets  — update sets and application scopes
  tools_catalog      — catalog items, record producers, variables, catalog UI policies
  tools_forms        — UI policies, client scripts, table fields
  tools_scripts      — script includes, scheduled jobs, notifications,
                       business rules, assignment groups
  tools_flows        — flows, triggers, actions and connections

Run this script directly (stdio transport for Claude Desktop):
  python servicenow_mcp_server.py

Or test the instance connection and credentials:
  python servicenow_mcp_server.py --check
"""
from __future__ import annotations

import asyncio
import sys

import structlog

from server_config import mcp, settings
from servicenow_client import ServiceNowClient

# Importing the tool modules registers their tools on mcp.
import tools_catalog  # noqa: F401
import tools_flows  # noqa: F401
import tools_forms  # noqa: F401
import tools_records  # noqa: F401
import tools_scripts  # noqa: F401
import tools_update_sets  # noqa: F401

log = structlog.get_logger(__name__)


async def _check() -> None:
    log.info("startup.checking_connection")
    async with ServiceNowClient(settings) as client:
        await client.ensure_authenticated()
    print(
        f"Connection OK — authenticated to {settings.servicenow_instance_url} "
        f"as {settings.servicenow_username}.",
        file=sys.stderr,
    )
    print("You can now add this server to Claude Desktop.", file=sys.stderr)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "--check":
        asyncio.run(_check())
    else:
        log.info("startup.starting_mcp_server", server=settings.mcp_server_name)
        mcp.run(transport="stdio")
