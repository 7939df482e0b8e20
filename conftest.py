"""Root conftest — ensures project root is on sys.path for pytest.

Also injects dummy ServiceNow credentials so pydantic-settings doesn't
raise a ValidationError when tool modules are imported during collection.
These values are never used for real API calls — tests route every request
through httpx.MockTransport.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

# Must happen before any local imports so tool modules can be collected.
sys.path.insert(0, str(Path(__file__).parent))

os.environ.setdefault("SERVICENOW_INSTANCE_URL", "https://test.service-now.com")
os.environ.setdefault("SERVICENOW_USERNAME", "mcp.test")
os.environ.setdefault("SERVICENOW_PASSWORD", "test-password")
os.environ.setdefault("LOG_FILE", "logs/test_mcp_server.log")
