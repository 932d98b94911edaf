"""
Chrome DevTools Protocol (CDP) client for an already-running inspector.

The launcher owns the node process; this client only attaches to the
WebSocket URL node printed and speaks CDP over it.  It keeps the
bookkeeping the resolver-facing session needs: which scripts the
runtime has parsed and the origin of the first execution context.

Implements :class:`~jsdebug_core.protocol.InspectorTransport`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import websockets

from jsdebug_core.protocol import TIMEOUT_REQUEST, DebugMessage

logger = logging.getLogger(__name__)

CDPMessage = DebugMessage

# ---------------------------------------------------------------------------
# Inspector client
# ---------------------------------------------------------------------------


class InspectorClient:
    """Async CDP client bound to one inspector WebSocket.

    Lifecycle::

        client = InspectorClient()
        await client.connect("ws://127.0.0.1:9229/<uuid>")
        await client.set_breakpoint_by_url("file:///app/index.js", 10)
        await client.run_if_waiting()
        ...
        await client.disconnect()
    """

    def __init__(self, request_timeout: float = TIMEOUT_REQUEST) -> None:
        self._ws: Any = None
        self._msg_id: int = 1
        self._pending: dict[int, asyncio.Future[CDPMessage]] = {}
        self._reader_task: asyncio.Task[None] | None = None
        self._request_timeout = request_timeout

        self.root_url: str | None = None
        self.scripts: dict[str, str] = {}  # scriptId -> url
        self.detached = asyncio.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, ws_url: str) -> None:
        """Open the WebSocket and enable the Debugger/Runtime domains."""
        logger.info("Connecting to inspector at %s", ws_url)
        self._ws = await websockets.connect(
            ws_url,
            max_size=10 * 1024 * 1024,
            ping_interval=None,  # Node inspector doesn't respond to WS pings.
        )
        self._reader_task = asyncio.create_task(self._read_loop())

        await self._send("Runtime.enable", {})
        await self._send("Debugger.enable", {})

    async def disconnect(self) -> None:
        """Close the WebSocket.  The debuggee itself is left alone."""
        if self._reader_task and not self._reader_task.done():
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass

        if self._ws is not None:
            try:
                await self._ws.close()
            except (OSError, websockets.WebSocketException) as exc:
                logger.debug("Error closing inspector socket: %s", exc)
            self._ws = None

        self._fail_pending("Disconnected.")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def run_if_waiting(self) -> None:
        """Let a ``--inspect-brk`` debuggee start executing."""
        await self._send("Runtime.runIfWaitingForDebugger", {})

    async def set_breakpoint_by_url(self, url: str, line: int) -> CDPMessage:
        """Set a breakpoint at 1-based *line* of the script at *url*."""
        return await self._send(
            "Debugger.setBreakpointByUrl",
            {"lineNumber": line - 1, "url": url},  # CDP is 0-based
        )

    async def remove_breakpoint(self, breakpoint_id: str) -> None:
        await self._send("Debugger.removeBreakpoint", {"breakpointId": breakpoint_id})

    async def get_script_source(self, script_id: str) -> str:
        resp = await self._send("Debugger.getScriptSource", {"scriptId": script_id})
        return resp.get("scriptSource", "")

    # ------------------------------------------------------------------
    # Internal: WebSocket read loop
    # ------------------------------------------------------------------

    async def _read_loop(self) -> None:
        """Read CDP messages from the WebSocket."""
        assert self._ws is not None
        try:
            async for raw in self._ws:
                msg: CDPMessage = json.loads(raw)

                if "id" in msg:
                    fut = self._pending.pop(msg["id"], None)
                    if fut and not fut.done():
                        if "error" in msg:
                            fut.set_exception(
                                RuntimeError(f"CDP error: {msg['error'].get('message', msg['error'])}")
                            )
                        else:
                            fut.set_result(msg.get("result", {}))
                else:
                    self._handle_event(msg)

        except websockets.ConnectionClosed:
            logger.debug("Inspector connection closed.")
        except asyncio.CancelledError:
            return  # don't touch futures on intentional cancel
        except Exception:
            logger.exception("Error in CDP read loop")

        self.detached.set()
        self._fail_pending("Connection lost.")

    def _handle_event(self, msg: CDPMessage) -> None:
        method = msg.get("method", "")
        params = msg.get("params", {})

        if method == "Debugger.scriptParsed":
            url = params.get("url", "")
            if url:
                self.scripts[params.get("scriptId", "")] = url

        elif method == "Runtime.executionContextCreated":
            origin = params.get("context", {}).get("origin", "")
            if origin and self.root_url is None:
                self.root_url = origin

        elif method == "Inspector.detached":
            logger.info("Inspector detached: %s", params.get("reason", "unknown"))
            self.detached.set()

    # ------------------------------------------------------------------
    # Internal: request/response
    # ------------------------------------------------------------------

    def _fail_pending(self, reason: str) -> None:
        """Reject all in-flight request futures so callers don't hang."""
        err = ConnectionError(reason)
        for fut in self._pending.values():
            if not fut.done():
                fut.set_exception(err)
        self._pending.clear()

    async def _send(self, method: str, params: dict[str, Any]) -> CDPMessage:
        """Send a CDP command and wait for the response."""
        if self._ws is None:
            raise ConnectionError("Not connected to an inspector.")
        msg_id = self._msg_id
        self._msg_id += 1

        loop = asyncio.get_running_loop()
        fut: asyncio.Future[CDPMessage] = loop.create_future()
        self._pending[msg_id] = fut

        await self._ws.send(json.dumps({"id": msg_id, "method": method, "params": params}))
        logger.debug("-> CDP %s (id=%d)", method, msg_id)

        try:
            return await asyncio.wait_for(fut, timeout=self._request_timeout)
        finally:
            self._pending.pop(msg_id, None)
