"""
Shared fixtures: a workspace tree on disk and a fake inspector connection.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

# ==============================================================================
# Filesystem fixtures
# ==============================================================================


@pytest.fixture
def workspace(tmp_path):
    """
    Provide a project directory marked as a workspace root.

    Creates:
    - proj/.jade
    - proj/js/app.js
    - proj/index.html
    """
    proj = tmp_path / "proj"
    (proj / "js").mkdir(parents=True)
    (proj / ".jade").write_text("")
    (proj / "js" / "app.js").write_text(
        "function add(a, b) {\n"
        "  return a + b;\n"
        "}\n"
        "console.log(add(1, 2));\n"
    )
    (proj / "index.html").write_text("<script src='/js/app.js'></script>\n")
    return proj


@pytest.fixture
def unmarked_dir(tmp_path):
    """A directory tree with no workspace marker anywhere inside tmp_path."""
    plain = tmp_path / "plain" / "nested"
    plain.mkdir(parents=True)
    return plain


# ==============================================================================
# Inspector double
# ==============================================================================


class FakeInspector:
    """In-memory stand-in for InspectorClient."""

    def __init__(self, root_url: str | None = None, fail: bool = False) -> None:
        self.root_url = root_url
        self.scripts: dict[str, str] = {}
        self.fail = fail
        self.connected_to: str | None = None
        self.breakpoints: list[tuple[str, int]] = []
        self.removed: list[str] = []
        self.ran = False
        self.disconnected = False
        self.detached = asyncio.Event()
        self.sources: dict[str, str] = {}

    async def connect(self, ws_url: str) -> None:
        if self.fail:
            raise ConnectionError("refused")
        self.connected_to = ws_url

    async def disconnect(self) -> None:
        self.disconnected = True

    async def run_if_waiting(self) -> None:
        self.ran = True

    async def set_breakpoint_by_url(self, url: str, line: int) -> dict[str, Any]:
        self.breakpoints.append((url, line))
        return {
            "breakpointId": f"bp-{len(self.breakpoints)}",
            "locations": [{"lineNumber": line - 1}],
        }

    async def remove_breakpoint(self, breakpoint_id: str) -> None:
        self.removed.append(breakpoint_id)

    async def get_script_source(self, script_id: str) -> str:
        if script_id not in self.sources:
            raise RuntimeError(f"CDP error: No script for id: {script_id}")
        return self.sources[script_id]
