"""
Server configuration — MCP instance, settings, logging, and session state.

This module is imported by all tool modules. It handles:
  - Loading .env from the project directory (absolute path)
  - Creating the pydantic-settings config object
  - Configuring structlog JSON logging
  - Creating the shared FastMCP server instance
  - The server lifespan, which owns the per-session SessionController

No circular imports: this module depends only on config.py, logging_config.py
and session.py.
"""
from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project directory regardless of where the MCP client
# sets the working directory when it launches this process.
load_dotenv(Path(__file__).parent / ".env")

import structlog
from mcp.server.fastmcp import Context, FastMCP

from config import get_settings
from logging_config import configure_logging
from session import SessionController

settings = get_settings()

# Resolve log file path relative to THIS script's directory, not cwd.
_log_file = str(Path(__file__).parent / settings.log_file)
configure_logging(settings.log_level, _log_file)

log = structlog.get_logger(__name__)


@dataclass
class AppContext:
    """State that lives exactly as long as one MCP session."""

    session: SessionController


@asynccontextmanager
async def app_lifespan(_server: FastMCP) -> AsyncIterator[AppContext]:
    session = SessionController(settings)
    log.info("session.started")
    try:
        yield AppContext(session=session)
    finally:
        await session.aclose()
        log.info("session.closed")


def get_session(ctx: Context) -> SessionController:
    """Return the SessionController for the session ctx belongs to."""
    return ctx.request_context.lifespan_context.session


mcp = FastMCP(
    settings.mcp_server_name,
    instructions=(
        "Create and configure ServiceNow records: catalog items, variables, UI policies, "
        "scripts, scheduled jobs, notifications and flows. "
        "Create or select an update set first — every record created afterwards in this "
        "session is captured in it."
    ),
    lifespan=app_lifespan,
)
