"""Typed launch configuration.

:class:`LaunchConfig` is immutable once built.  All validation happens in
:meth:`LaunchConfig.create` so a bad configuration is rejected with
:class:`~jsdebug_core.errors.ConfigError` before any process exists.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Any, Mapping

from jsdebug_core.errors import ConfigError
from jsdebug_core.protocol import RUNTIME_TOKEN

_TOKEN_RE = re.compile(rf"\b{re.escape(RUNTIME_TOKEN)}\b")

_BOOL_STRINGS = {
    "true": True, "yes": True, "1": True,
    "false": False, "no": False, "0": False, "": False,
}


@dataclass(frozen=True)
class LaunchConfig:
    """Everything the launcher needs to spawn one debuggee."""

    command: str
    resolved_root: str
    inspect_brk: bool = False
    port: int | None = None
    project_file: str | None = None
    name: str = ""

    @classmethod
    def create(
        cls,
        command: str,
        resolved_root: str | None = None,
        inspect_brk: bool = False,
        port: int | None = None,
        project_file: str | None = None,
        name: str | None = None,
    ) -> LaunchConfig:
        """Validate the fields and return a frozen config."""
        if not isinstance(command, str) or not command.strip():
            raise ConfigError("invalid command: command is empty")
        if not _TOKEN_RE.search(command):
            raise ConfigError(
                f"invalid command: {command!r} does not invoke {RUNTIME_TOKEN!r}"
            )

        root = os.path.abspath(resolved_root or os.getcwd())
        if not os.path.isdir(root):
            raise ConfigError(f"invalid root: {root} is not a directory")

        if port is not None:
            if isinstance(port, bool) or not isinstance(port, int):
                raise ConfigError(f"invalid port: {port!r}")
            if not 0 < port < 65536:
                raise ConfigError(f"invalid port: {port} is out of range")

        if project_file is not None:
            project_file = os.path.abspath(project_file)

        return cls(
            command=command,
            resolved_root=root,
            inspect_brk=bool(inspect_brk),
            port=port,
            project_file=project_file,
            name=name or os.path.basename(root.rstrip(os.sep)) or root,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> LaunchConfig:
        """Build a config from loosely-typed key/value input (e.g. tool args).

        Accepts both ``snake_case`` and the ``camelCase`` spellings used by
        editor launch settings.
        """
        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return None

        port = pick("port")
        if isinstance(port, str):
            try:
                port = int(port)
            except ValueError as exc:
                raise ConfigError(f"invalid port: {port!r}") from exc

        inspect_brk = pick("inspect_brk", "inspectBrk")
        if isinstance(inspect_brk, str):
            flag = inspect_brk.strip().lower()
            if flag not in _BOOL_STRINGS:
                raise ConfigError(f"invalid inspect_brk: {inspect_brk!r}")
            inspect_brk = _BOOL_STRINGS[flag]
        elif inspect_brk is not None and not isinstance(inspect_brk, bool):
            raise ConfigError(f"invalid inspect_brk: {inspect_brk!r}")

        return cls.create(
            command=pick("command") or "",
            resolved_root=pick("resolved_root", "resolvedRoot", "root"),
            inspect_brk=bool(inspect_brk),
            port=port,
            project_file=pick("project_file", "projectFile"),
            name=pick("name"),
        )
