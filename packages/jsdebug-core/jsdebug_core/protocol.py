"""Shared constants and types for the launcher, resolver and client.

Also defines :class:`InspectorTransport` -- the contract the session
expects from an inspector connection, so tests can substitute a fake
without opening a WebSocket.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

DebugMessage = dict[str, Any]

ConnectCallback = Callable[[str, str], "Awaitable[None] | None"]
"""``connect(project_directory, session_name)``; may be sync or async."""

# ---------------------------------------------------------------------------
# Runtime constants
# ---------------------------------------------------------------------------

RUNTIME_TOKEN = "node"
"""Program name that must appear as a whole word in a launch command."""

READY_MARKER = "Debugger listening on"
"""Printed by node once its inspector has bound (and again after every
client disconnect)."""

WS_URL_PATTERN = re.compile(r"ws://[^\s]+")

WORKSPACE_MARKER = ".jade"
"""File whose presence marks a workspace root."""

STOP_DIR_PATTERN = re.compile(r"\A(?:[\\/][\\/][^\\/]+[\\/]?|/(?:net|afs|\.\.\.)/?)\Z")
"""Directories where root discovery gives up (network mounts)."""

READ_CHUNK_SIZE = 4096

# ---------------------------------------------------------------------------
# Timeout constants (seconds)
# ---------------------------------------------------------------------------

TIMEOUT_CONNECT: float = 10.0
"""How long :meth:`DebugSession.wait_until_connected` waits by default."""

TIMEOUT_REQUEST: float = 10.0
"""How long a single CDP request may stay unanswered."""

TIMEOUT_DISCONNECT: float = 3.0
"""Grace period for the debuggee to exit before being killed."""


# ---------------------------------------------------------------------------
# InspectorTransport protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class InspectorTransport(Protocol):
    """Contract satisfied by :class:`~jsdebug_core.cdp_client.InspectorClient`."""

    root_url: str | None
    scripts: dict[str, str]
    detached: asyncio.Event

    async def connect(self, ws_url: str) -> None: ...
    async def disconnect(self) -> None: ...
    async def run_if_waiting(self) -> None: ...

    async def set_breakpoint_by_url(self, url: str, line: int) -> DebugMessage: ...
    async def remove_breakpoint(self, breakpoint_id: str) -> None: ...
    async def get_script_source(self, script_id: str) -> str: ...
