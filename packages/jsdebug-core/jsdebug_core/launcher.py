"""
Launch node with the inspector enabled and wait for it to come up.

:func:`start` spawns the debuggee through the shell and returns at once.
A reader task feeds every output chunk to an :class:`OutputScanner`,
which mirrors it into an :class:`OutputBuffer` and fires the connect
callback the first time node prints its "listening" line.

Node prints that line again after every client disconnect, so the
scanner is guarded by a :class:`ConnectionLatch` that can only trip
once per process.
"""

from __future__ import annotations

import asyncio
import codecs
import enum
import inspect
import logging
import re
from typing import Any

from jsdebug_core.config import LaunchConfig
from jsdebug_core.errors import ConfigError
from jsdebug_core.protocol import (
    READ_CHUNK_SIZE,
    READY_MARKER,
    RUNTIME_TOKEN,
    TIMEOUT_DISCONNECT,
    WS_URL_PATTERN,
    ConnectCallback,
)

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(rf"\b{re.escape(RUNTIME_TOKEN)}\b")


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


def build_command(config: LaunchConfig) -> str:
    """Return ``config.command`` with the inspector flags injected.

    ``node app.js`` becomes ``node --inspect app.js`` (or ``--inspect-brk``,
    plus ``--inspect-port=N`` when a port is set).  Only the first
    whole-word ``node`` is rewritten.
    """
    flags = ["--inspect-brk" if config.inspect_brk else "--inspect"]
    if config.port is not None:
        flags.append(f"--inspect-port={config.port}")
    replacement = " ".join([RUNTIME_TOKEN, *flags])

    command, count = _TOKEN_RE.subn(lambda _m: replacement, config.command, count=1)
    if count == 0:
        raise ConfigError("invalid command")
    return command


# ---------------------------------------------------------------------------
# One-shot latch
# ---------------------------------------------------------------------------


class LatchState(enum.Enum):
    NOT_CONNECTED = "not_connected"
    CONNECTED = "connected"


class ConnectionLatch:
    """Moves from NOT_CONNECTED to CONNECTED at most once."""

    def __init__(self) -> None:
        self._state = LatchState.NOT_CONNECTED

    @property
    def state(self) -> LatchState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is LatchState.CONNECTED

    def trip(self) -> bool:
        """Return ``True`` on the first call only."""
        if self._state is LatchState.CONNECTED:
            return False
        self._state = LatchState.CONNECTED
        return True


# ---------------------------------------------------------------------------
# Output mirror
# ---------------------------------------------------------------------------


class OutputBuffer:
    """Append-only log of everything the debuggee printed."""

    def __init__(self) -> None:
        self._chunks: list[str] = []

    def append(self, chunk: str) -> None:
        if chunk:
            self._chunks.append(chunk)

    def text(self) -> str:
        return "".join(self._chunks)

    def tail(self, lines: int = 20) -> list[str]:
        """Return the last *lines* lines of output."""
        if lines <= 0:
            return []
        return self.text().splitlines()[-lines:]

    def __len__(self) -> int:
        return sum(len(c) for c in self._chunks)


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------


class OutputScanner:
    """Turns a stream of output chunks into a single "ready" event.

    Independent of any process: tests drive it by calling :meth:`feed`.
    Calls to :meth:`feed` must be serial, which the launcher's single
    reader task guarantees.
    """

    def __init__(
        self,
        connect: ConnectCallback,
        project_directory: str,
        session_name: str,
        latch: ConnectionLatch | None = None,
        buffer: OutputBuffer | None = None,
    ) -> None:
        self._connect = connect
        self._project_directory = project_directory
        self._session_name = session_name
        self.latch = latch or ConnectionLatch()
        self.buffer = buffer or OutputBuffer()
        self.ws_url: str | None = None
        self.connect_task: asyncio.Future[Any] | None = None
        self._ready_line: str | None = None

    def feed(self, chunk: str) -> bool:
        """Record *chunk*; return ``True`` if it fired the connect callback.

        The marker is matched per chunk.  The ``ws://`` URL that follows it
        may arrive in a later chunk, so the callback fires once the marker
        line is complete.
        """
        self.buffer.append(chunk)

        if self._ready_line is not None:
            self._ready_line += chunk
            return self._complete_ready_line()

        if READY_MARKER not in chunk:
            return False
        if not self.latch.trip():
            logger.debug("Ignoring repeated inspector marker for %s", self._session_name)
            return False

        self._ready_line = chunk[chunk.index(READY_MARKER):]
        return self._complete_ready_line()

    def finish(self) -> bool:
        """End of output: fire a callback still waiting for its URL."""
        if self._ready_line is None:
            return False
        match = WS_URL_PATTERN.search(self._ready_line)
        return self._fire(match.group(0) if match else None)

    def _complete_ready_line(self) -> bool:
        line = self._ready_line
        assert line is not None
        match = WS_URL_PATTERN.search(line)
        if match is not None and match.end() < len(line):
            return self._fire(match.group(0))
        if match is None and "\n" in line:
            return self._fire(None)
        return False

    def _fire(self, ws_url: str | None) -> bool:
        self._ready_line = None
        self.ws_url = ws_url
        logger.info("Inspector ready for %s (%s)", self._session_name, ws_url or "no ws url")

        try:
            result = self._connect(self._project_directory, self._session_name)
        except Exception:
            logger.exception("Connect callback failed for %s", self._session_name)
            return True
        if inspect.isawaitable(result):
            self.connect_task = asyncio.ensure_future(result)
        return True


# ---------------------------------------------------------------------------
# Process handle
# ---------------------------------------------------------------------------


class LaunchedProcess:
    """A spawned debuggee plus its scanner.  Owned by one session."""

    def __init__(
        self,
        config: LaunchConfig,
        command: str,
        process: asyncio.subprocess.Process,
        scanner: OutputScanner,
    ) -> None:
        self.config = config
        self.command = command
        self.process = process
        self._scanner = scanner
        self._reader_task: asyncio.Task[None] = asyncio.create_task(self._pump())

    @property
    def connected(self) -> bool:
        return self._scanner.latch.connected

    @property
    def ws_url(self) -> str | None:
        return self._scanner.ws_url

    @property
    def output(self) -> OutputBuffer:
        return self._scanner.buffer

    @property
    def connect_task(self) -> asyncio.Future[Any] | None:
        return self._scanner.connect_task

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    async def wait(self) -> int:
        """Wait for the process to exit and its output to drain."""
        await asyncio.shield(self._reader_task)
        return await self.process.wait()

    async def terminate(self, timeout: float = TIMEOUT_DISCONNECT) -> None:
        """Terminate the process, killing it if it ignores SIGTERM."""
        if self.process.returncode is None:
            try:
                self.process.terminate()
                await asyncio.wait_for(self.process.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                self.process.kill()
                await self.process.wait()
            except ProcessLookupError:
                pass

        if not self._reader_task.done():
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass

    async def _pump(self) -> None:
        stream = self.process.stdout
        assert stream is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        while True:
            data = await stream.read(READ_CHUNK_SIZE)
            if not data:
                break
            text = decoder.decode(data)
            logger.debug("%s output: %r", self.config.name, text)
            self._scanner.feed(text)

        tail = decoder.decode(b"", final=True)
        if tail:
            self._scanner.feed(tail)
        self._scanner.finish()

        if not self.connected:
            code = await self.process.wait()
            logger.warning(
                "%s exited (code=%s) before the inspector became ready",
                self.config.name,
                code,
            )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def start(config: LaunchConfig, connect: ConnectCallback) -> LaunchedProcess:
    """Spawn the debuggee described by *config* and return without waiting.

    *connect* is called as ``connect(config.resolved_root, config.name)``
    the first time the inspector reports it is listening.

    Raises :class:`ConfigError` before spawning when the command does
    not invoke node.
    """
    command = build_command(config)
    logger.info("Spawning %s in %s", command, config.resolved_root)

    process = await asyncio.create_subprocess_shell(
        command,
        cwd=config.resolved_root,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )

    scanner = OutputScanner(connect, config.resolved_root, config.name)
    return LaunchedProcess(config, command, process, scanner)
