"""
Map runtime script URLs to local files and back.

Two strategies:

* **file protocol** -- the runtime reports ``file:///abs/path`` URLs
  (node).  The URL path *is* the local path.
* **workspace** -- the runtime serves scripts over the network
  (``http://host/js/app.js``).  URL paths are taken relative to a
  workspace root: the nearest ancestor of the working directory that
  contains a ``.jade`` marker file.

The root is rediscovered on every call; nothing is cached, so results
always reflect the filesystem as it is now.

Public functions return ``None`` for "no match".  They never raise for
a URL or file that simply cannot be mapped.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

from jsdebug_core.errors import PathEscape, RootNotFound
from jsdebug_core.protocol import STOP_DIR_PATTERN, WORKSPACE_MARKER

logger = logging.getLogger(__name__)

_FILE_SCHEME = "file"


# ---------------------------------------------------------------------------
# Session context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DebugSessionContext:
    """Read-only view of the active connection, passed to every call."""

    base_url: str
    uses_file_protocol: bool

    @classmethod
    def from_url(cls, root_url: str) -> DebugSessionContext:
        scheme = urlsplit(root_url).scheme.lower()
        return cls(base_url=root_url, uses_file_protocol=scheme == _FILE_SCHEME)


# ---------------------------------------------------------------------------
# Root discovery
# ---------------------------------------------------------------------------


def find_workspace_root(
    start: str | None = None,
    marker: str = WORKSPACE_MARKER,
    stop_pattern: re.Pattern[str] | None = STOP_DIR_PATTERN,
) -> str | None:
    """Return the nearest directory at or above *start* containing *marker*.

    Returns ``None`` when the filesystem root is passed without a match
    or when a directory matches *stop_pattern*.
    """
    directory = os.path.abspath(start or os.getcwd())
    while True:
        if stop_pattern is not None and stop_pattern.search(directory):
            logger.debug("Root discovery stopped at %s", directory)
            return None
        if os.path.exists(os.path.join(directory, marker)):
            return directory
        parent = os.path.dirname(directory)
        if parent == directory:
            return None
        directory = parent


def _require_root(
    start: str | None, marker: str, stop_pattern: re.Pattern[str] | None
) -> str:
    root = find_workspace_root(start, marker, stop_pattern)
    if root is None:
        raise RootNotFound(f"no {marker} above {start or os.getcwd()}")
    return root


def _contain(url: str, path: str, root: str) -> str:
    """Normalise *path* and make sure it stays under *root*."""
    normalized = os.path.normpath(path)
    root = os.path.normpath(root)
    prefix = root if root.endswith(os.sep) else root + os.sep
    if normalized != root and not normalized.startswith(prefix):
        raise PathEscape(url, normalized, root)
    return normalized


# ---------------------------------------------------------------------------
# File-protocol strategy
# ---------------------------------------------------------------------------


def file_lookup(url: str) -> str | None:
    """Return the URL's path if it names an existing regular file."""
    path = urlsplit(url).path
    if path and os.path.isfile(path):
        return path
    return None


def file_to_url(file: str) -> str:
    return "file://" + file


# ---------------------------------------------------------------------------
# Workspace strategy
# ---------------------------------------------------------------------------


def workspace_lookup(
    url: str,
    root: str,
) -> str | None:
    """Resolve *url*'s path against *root*.

    Raises :class:`PathEscape` when the path leaves the root.
    """
    path = urlsplit(url).path
    if path.startswith("/"):
        path = path[1:]
    candidate = _contain(url, os.path.join(root, path), root)
    if os.path.isfile(candidate):
        return candidate
    return None


def workspace_to_url(file: str, root: str, base_url: str) -> str | None:
    """Build the URL the runtime would use for *file*.

    Keeps the scheme and network location (credentials, host, port) of
    *base_url* and replaces everything else with *file*'s path relative
    to *root*.
    """
    relative = os.path.relpath(os.path.abspath(file), root)
    if relative == os.pardir or relative.startswith(os.pardir + os.sep):
        return None

    path = "" if relative == os.curdir else relative.replace(os.sep, "/")
    if not path.startswith("/"):
        path = "/" + path

    base = urlsplit(base_url)
    return urlunsplit((base.scheme, base.netloc, path, "", ""))


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class WorkspaceResolver:
    """Bidirectional URL <-> file mapping for one debug session.

    Usage::

        resolver = WorkspaceResolver(DebugSessionContext.from_url(origin))
        path = resolver.lookup("http://localhost:3000/js/app.js")
        url = resolver.to_url(path)
    """

    def __init__(
        self,
        context: DebugSessionContext,
        cwd: str | None = None,
        marker: str = WORKSPACE_MARKER,
        stop_pattern: re.Pattern[str] | None = STOP_DIR_PATTERN,
    ) -> None:
        self.context = context
        self._cwd = cwd
        self._marker = marker
        self._stop_pattern = stop_pattern

    def root(self) -> str | None:
        """Discover the workspace root (not cached)."""
        return find_workspace_root(self._cwd, self._marker, self._stop_pattern)

    def lookup(self, url: str) -> str | None:
        """Return the local file for *url*, or ``None``."""
        is_file_url = urlsplit(url).scheme.lower() == _FILE_SCHEME

        if is_file_url or self.context.uses_file_protocol:
            path = file_lookup(url)
            if path is not None:
                return path
        if is_file_url:
            return None

        try:
            root = _require_root(self._cwd, self._marker, self._stop_pattern)
            return workspace_lookup(url, root)
        except RootNotFound as exc:
            logger.debug("No workspace root for %s: %s", url, exc)
        except PathEscape as exc:
            logger.warning("Rejected URL outside workspace: %s", exc)
        return None

    def to_url(self, file: str) -> str | None:
        """Return the URL the runtime would report for *file*, or ``None``."""
        if self.context.uses_file_protocol:
            return file_to_url(file)

        try:
            root = _require_root(self._cwd, self._marker, self._stop_pattern)
        except RootNotFound as exc:
            logger.debug("No workspace root for %s: %s", file, exc)
            return None
        return workspace_to_url(file, root, self.context.base_url)
