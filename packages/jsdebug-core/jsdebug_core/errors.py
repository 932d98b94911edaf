"""Error taxonomy for launching and resolving.

Only :class:`ConfigError` crosses a public boundary.  The
:class:`ResolveError` family is raised inside the resolver's helpers and
turned into ``None`` ("no match") before it reaches callers.
"""

from __future__ import annotations


class JsDebugError(Exception):
    """Base class for all jsdebug errors."""


class ConfigError(JsDebugError, ValueError):
    """Invalid or missing launch configuration.  Raised before spawning."""


class ResolveError(JsDebugError):
    """A URL or file could not be mapped."""


class RootNotFound(ResolveError):
    """No ancestor of the start directory holds the workspace marker."""


class PathEscape(ResolveError):
    """A URL path normalised to a location outside the workspace root."""

    def __init__(self, url: str, path: str, root: str) -> None:
        super().__init__(f"{url!r} resolves to {path!r}, outside {root!r}")
        self.url = url
        self.path = path
        self.root = root
