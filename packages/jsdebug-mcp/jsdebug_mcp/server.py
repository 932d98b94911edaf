"""
MCP server that exposes the node inspector bootstrap as tools.

Thin layer on top of ``jsdebug_core.session.DebugSession``.  Launching,
the one-shot connect and URL/file resolution all live in the shared
``jsdebug-core`` package.

Run::

    python -m jsdebug_mcp.server                   # stdio transport
    python -m jsdebug_mcp.server --log-level info
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Awaitable, Callable

import mcp.server.stdio
from mcp import types
from mcp.server.lowlevel import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from jsdebug_core.session import DebugSession

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

# Each strategy is an async callable: (session, args) -> str
ToolStrategy = Callable[[DebugSession, dict[str, Any]], Awaitable[str]]

# ---------------------------------------------------------------------------
# Server + shared session
# ---------------------------------------------------------------------------

server = Server("jsdebug-mcp")
_session = DebugSession()

# ---------------------------------------------------------------------------
# Tool strategies -- one per tool
# ---------------------------------------------------------------------------


async def _launch(session: DebugSession, args: dict[str, Any]) -> str:
    started = await session.start(args)
    if started.startswith("Error"):
        return started
    connected = await session.wait_until_connected()
    return f"{started}\n{connected}"


async def _run(session: DebugSession, args: dict[str, Any]) -> str:
    return await session.run()


async def _breakpoint(session: DebugSession, args: dict[str, Any]) -> str:
    return await session.add_breakpoint(file=args["file"], line=int(args["line"]))


async def _scripts(session: DebugSession, args: dict[str, Any]) -> str:
    return await session.list_scripts()


async def _source(session: DebugSession, args: dict[str, Any]) -> str:
    line = args.get("line")
    return await session.show_source(args["url"], int(line) if line is not None else None)


async def _lookup(session: DebugSession, args: dict[str, Any]) -> str:
    return session.lookup(args["url"])


async def _url(session: DebugSession, args: dict[str, Any]) -> str:
    return session.to_url(args["file"])


async def _output(session: DebugSession, args: dict[str, Any]) -> str:
    return session.output(int(args.get("lines", 20)))


async def _stop(session: DebugSession, args: dict[str, Any]) -> str:
    return await session.stop()


# ---------------------------------------------------------------------------
# Registry: tool name -> (Tool schema, strategy, resets session after?)
# ---------------------------------------------------------------------------

_EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}

_TOOL_REGISTRY: dict[str, tuple[types.Tool, ToolStrategy, bool]] = {
    "debug_launch": (
        types.Tool(
            name="debug_launch",
            description=(
                "Launch a node command with the inspector enabled and connect "
                "to it once it is listening.  The command must invoke 'node'."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "command": {
                        "type": "string",
                        "description": "Shell command, e.g. 'node server.js'.",
                    },
                    "root": {
                        "type": "string",
                        "description": "Working directory for the process.  Defaults to the server's cwd.",
                    },
                    "inspect_brk": {
                        "type": "boolean",
                        "description": "Pause before the first line (--inspect-brk).",
                    },
                    "port": {
                        "type": "integer",
                        "description": "Inspector port (--inspect-port).",
                    },
                    "name": {
                        "type": "string",
                        "description": "Session name.  Defaults to the root directory's name.",
                    },
                },
                "required": ["command"],
            },
        ),
        _launch,
        False,
    ),
    "debug_run": (
        types.Tool(
            name="debug_run",
            description="Release a debuggee launched with inspect_brk.",
            inputSchema=_EMPTY_SCHEMA,
        ),
        _run,
        False,
    ),
    "debug_breakpoint": (
        types.Tool(
            name="debug_breakpoint",
            description=(
                "Set a breakpoint in a local file.  The file is translated to "
                "the URL the runtime uses for it."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "file": {"type": "string", "description": "Path to the source file."},
                    "line": {"type": "integer", "description": "1-based line number."},
                },
                "required": ["file", "line"],
            },
        ),
        _breakpoint,
        False,
    ),
    "debug_scripts": (
        types.Tool(
            name="debug_scripts",
            description="List scripts the runtime has parsed and their local files.",
            inputSchema=_EMPTY_SCHEMA,
        ),
        _scripts,
        False,
    ),
    "debug_source": (
        types.Tool(
            name="debug_source",
            description="Show the local source for a script URL reported by the runtime.",
            inputSchema={
                "type": "object",
                "properties": {
                    "url": {"type": "string", "description": "Script URL."},
                    "line": {"type": "integer", "description": "Line to centre on."},
                },
                "required": ["url"],
            },
        ),
        _source,
        False,
    ),
    "debug_lookup": (
        types.Tool(
            name="debug_lookup",
            description="Resolve a script URL to a local file path.",
            inputSchema={
                "type": "object",
                "properties": {"url": {"type": "string", "description": "Script URL."}},
                "required": ["url"],
            },
        ),
        _lookup,
        False,
    ),
    "debug_url": (
        types.Tool(
            name="debug_url",
            description="Return the URL the runtime uses for a local file.",
            inputSchema={
                "type": "object",
                "properties": {"file": {"type": "string", "description": "Local file path."}},
                "required": ["file"],
            },
        ),
        _url,
        False,
    ),
    "debug_output": (
        types.Tool(
            name="debug_output",
            description="Show the most recent output of the debuggee.",
            inputSchema={
                "type": "object",
                "properties": {
                    "lines": {"type": "integer", "description": "Number of lines (default 20)."},
                },
            },
        ),
        _output,
        False,
    ),
    "debug_stop": (
        types.Tool(
            name="debug_stop",
            description="Disconnect, terminate the debuggee and clean up.",
            inputSchema=_EMPTY_SCHEMA,
        ),
        _stop,
        True,  # reset session after stop
    ),
}


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    return [schema for schema, _, _ in _TOOL_REGISTRY.values()]


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict[str, Any]
) -> list[types.TextContent]:
    global _session  # noqa: PLW0603

    entry = _TOOL_REGISTRY.get(name)
    if entry is None:
        return [types.TextContent(type="text", text=f"Unknown tool: {name}")]

    _schema, strategy, resets = entry
    logger.debug("tool %s(%s)", name, arguments)
    text = await strategy(_session, arguments or {})

    if resets:
        _session = DebugSession()

    return [types.TextContent(type="text", text=text)]


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------


async def run() -> None:
    async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            InitializationOptions(
                server_name="jsdebug-mcp",
                server_version="0.1.0",
                capabilities=server.get_capabilities(
                    notification_options=NotificationOptions(),
                    experimental_capabilities={},
                ),
            ),
        )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="jsdebug MCP server (stdio)")
    parser.add_argument(
        "--log-level",
        default="warning",
        choices=["debug", "info", "warning", "error"],
    )
    args = parser.parse_args(argv)

    # stdout carries the MCP stream; logs go to stderr.
    logging.basicConfig(level=args.log_level.upper(), stream=sys.stderr)

    asyncio.run(run())


if __name__ == "__main__":
    main()
