"""High-level debug session: launch, connect once, resolve sources.

``DebugSession`` wires the three pieces together:

* :mod:`jsdebug_core.launcher` spawns node and fires the connect
  callback exactly once,
* :class:`~jsdebug_core.cdp_client.InspectorClient` is opened from that
  callback,
* :class:`~jsdebug_core.resolver.WorkspaceResolver` maps the scripts the
  runtime reports to files in the project.

All public methods return **plain-text strings**; expected failures are
reported as ``"Error: ..."`` text rather than raised.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Callable, Mapping

import websockets

from jsdebug_core import launcher
from jsdebug_core.cdp_client import InspectorClient
from jsdebug_core.config import LaunchConfig
from jsdebug_core.errors import ConfigError
from jsdebug_core.formatters import RUNTIME_SOURCE, format_output, format_scripts, format_source
from jsdebug_core.launcher import LaunchedProcess
from jsdebug_core.protocol import TIMEOUT_CONNECT, InspectorTransport
from jsdebug_core.resolver import DebugSessionContext, WorkspaceResolver

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], InspectorTransport]


# ---------------------------------------------------------------------------
# DebugSession
# ---------------------------------------------------------------------------


class DebugSession:
    """Manages one launched debuggee and its single inspector connection.

    Usage::

        session = DebugSession()
        print(await session.start({"command": "node server.js", "root": "."}))
        print(await session.wait_until_connected())
        print(await session.add_breakpoint("js/app.js", 12))
        print(await session.run())
        print(await session.show_source("http://localhost:3000/js/app.js", 12))
        print(await session.stop())
    """

    def __init__(
        self,
        client_factory: ClientFactory = InspectorClient,
        cwd: str | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._cwd = cwd
        self._config: LaunchConfig | None = None
        self._launched: LaunchedProcess | None = None
        self._client: InspectorTransport | None = None
        self._context: DebugSessionContext | None = None
        self._resolver: WorkspaceResolver | None = None
        self._ready = asyncio.Event()
        self._connect_error: str | None = None
        self._breakpoints: dict[str, list[str]] = {}  # file -> [breakpointId]

    @property
    def context(self) -> DebugSessionContext | None:
        return self._context

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start(self, config: LaunchConfig | Mapping[str, Any]) -> str:
        """Spawn the debuggee.  Returns before the inspector is up."""
        if self._launched is not None:
            return "Error: a debug session is already running. Call stop() first."

        try:
            if not isinstance(config, LaunchConfig):
                config = LaunchConfig.from_mapping(config)
        except ConfigError as exc:
            return f"Error: {exc}"

        try:
            self._launched = await launcher.start(config, self._on_ready)
        except ConfigError as exc:
            return f"Error: {exc}"
        except OSError as exc:
            return f"Error launching {config.name}: {exc}"

        self._config = config
        return f"Launched {config.name}: {self._launched.command}"

    async def wait_until_connected(self, timeout: float = TIMEOUT_CONNECT) -> str:
        """Block until the connect callback has finished (or failed)."""
        if self._launched is None:
            return "Error: no active debug session. Call start() first."

        waiter = asyncio.ensure_future(self._ready.wait())
        exited = asyncio.ensure_future(self._launched.wait())
        try:
            done, _pending = await asyncio.wait(
                [waiter, exited], timeout=timeout, return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            waiter.cancel()
            if not exited.done():
                exited.cancel()

        if self._ready.is_set():
            if self._connect_error:
                return f"Error: {self._connect_error}"
            return f"Connected to {self._config.name} ({self._describe_context()})."  # type: ignore[union-attr]

        if exited in done:
            return (
                f"Error: process exited (code={self._launched.returncode}) "
                "before the inspector became ready."
            )
        return f"Error: inspector not ready after {timeout:g} s."

    async def run(self) -> str:
        """Release a debuggee started with ``--inspect-brk``."""
        client = await self._live_client()
        if client is None:
            return "Error: not connected."
        try:
            await client.run_if_waiting()
        except (ConnectionError, RuntimeError, asyncio.TimeoutError) as exc:
            return f"Error resuming: {exc}"
        return "Running."

    async def stop(self) -> str:
        """Disconnect and terminate the debuggee."""
        launched, self._launched = self._launched, None

        if launched is not None:
            task = launched.connect_task
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if self._client is not None:
            await self._client.disconnect()
            self._client = None

        if launched is not None:
            await launched.terminate()

        self._context = None
        self._resolver = None
        self._breakpoints = {}
        self._ready = asyncio.Event()
        self._connect_error = None
        return "Debug session ended."

    # ------------------------------------------------------------------
    # Connect callback
    # ------------------------------------------------------------------

    async def _on_ready(self, project_directory: str, session_name: str) -> None:
        """Invoked once by the launcher when node reports it is listening."""
        launched, ready = self._launched, self._ready
        try:
            if launched is None:
                return
            ws_url = launched.ws_url
            if not ws_url:
                self._connect_error = f"{session_name}: inspector did not report a ws:// URL"
                logger.warning("%s", self._connect_error)
                return

            client = self._client_factory()
            try:
                await client.connect(ws_url)
            except asyncio.CancelledError:
                await client.disconnect()
                raise
            except (
                OSError,
                ConnectionError,
                RuntimeError,
                asyncio.TimeoutError,
                websockets.WebSocketException,
            ) as exc:
                self._connect_error = f"could not connect to {ws_url}: {exc}"
                logger.warning("%s: %s", session_name, self._connect_error)
                return

            if self._launched is not launched:
                logger.info("%s stopped while connecting; closing inspector", session_name)
                await client.disconnect()
                return

            self._client = client
            root_url = client.root_url or "file://" + project_directory
            self._context = DebugSessionContext.from_url(root_url)
            self._resolver = WorkspaceResolver(self._context, cwd=self._cwd or project_directory)
            logger.info("%s connected (%s)", session_name, self._describe_context())
        finally:
            ready.set()

    # ------------------------------------------------------------------
    # URL <-> file
    # ------------------------------------------------------------------

    def lookup(self, url: str) -> str:
        """Return the local file for *url* as text."""
        if self._resolver is None:
            return "Error: not connected."
        path = self._resolver.lookup(url)
        if path is None:
            return f"Source not available locally for {url}."
        return path

    def to_url(self, file: str) -> str:
        """Return the URL the runtime uses for *file* as text."""
        if self._resolver is None:
            return "Error: not connected."
        url = self._resolver.to_url(os.path.abspath(file))
        if url is None:
            return f"No URL for {file}: it is outside the workspace."
        return url

    # ------------------------------------------------------------------
    # Breakpoints and sources
    # ------------------------------------------------------------------

    async def add_breakpoint(self, file: str, line: int) -> str:
        """Set a breakpoint at *file*:*line*, addressed by its runtime URL."""
        client = await self._live_client()
        if client is None or self._resolver is None:
            return "Error: not connected."

        file = os.path.abspath(file)
        url = self._resolver.to_url(file)
        if url is None:
            return f"Error: {file} is outside the workspace; no URL to break on."

        try:
            resp = await client.set_breakpoint_by_url(url, line)
        except (ConnectionError, RuntimeError, asyncio.TimeoutError) as exc:
            return f"Error setting breakpoint: {exc}"

        self._breakpoints.setdefault(file, []).append(resp.get("breakpointId", ""))
        locations = resp.get("locations", [])
        status = "verified" if locations else "pending"
        return f"Breakpoint at {os.path.basename(file)}:{line} ({status}) -> {url}"

    async def clear_breakpoints(self, file: str) -> str:
        client = await self._live_client()
        if client is None:
            return "Error: not connected."

        file = os.path.abspath(file)
        removed = 0
        for bp_id in self._breakpoints.pop(file, []):
            try:
                await client.remove_breakpoint(bp_id)
                removed += 1
            except (ConnectionError, RuntimeError, asyncio.TimeoutError) as exc:
                logger.warning("Failed to remove breakpoint %s: %s", bp_id, exc)
        return f"Removed {removed} breakpoint(s) from {os.path.basename(file)}."

    async def list_scripts(self) -> str:
        """List every parsed script URL with its local file, if any."""
        client = await self._live_client()
        if client is None or self._resolver is None:
            return "Error: not connected."
        urls = sorted(set(client.scripts.values()))
        return format_scripts([(url, self._resolver.lookup(url)) for url in urls])

    async def show_source(self, url: str, line: int | None = None) -> str:
        """Show the local file for *url*, or the runtime's copy when there is none."""
        if self._resolver is None:
            return "Error: not connected."
        path = self._resolver.lookup(url)
        if path is not None:
            return format_source(url, path, line)

        client = await self._live_client()
        script_id = _script_id(client.scripts, url) if client is not None else None
        if client is None or script_id is None:
            return f"Source not available locally for {url}."
        try:
            source = await client.get_script_source(script_id)
        except (ConnectionError, RuntimeError, asyncio.TimeoutError) as exc:
            return f"Error fetching source for {url}: {exc}"
        return format_source(url, RUNTIME_SOURCE, line, source.splitlines())

    def output(self, lines: int = 20) -> str:
        """Return the tail of everything the debuggee printed."""
        if self._launched is None or self._config is None:
            return "Error: no active debug session."
        return format_output(self._config.name, self._launched.output.tail(lines))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _live_client(self) -> InspectorTransport | None:
        """Return the inspector client, dropping it once the inspector detached."""
        client = self._client
        if client is not None and client.detached.is_set():
            logger.info("Inspector detached; dropping the connection")
            await client.disconnect()
            self._client = None
        return self._client

    def _describe_context(self) -> str:
        if self._context is None:
            return "no context"
        kind = "file protocol" if self._context.uses_file_protocol else "workspace"
        return f"{kind}, base {self._context.base_url}"


def _script_id(scripts: Mapping[str, str], url: str) -> str | None:
    for script_id, script_url in scripts.items():
        if script_url == url:
            return script_id
    return None

