"""Plain-text formatting for session results.

No ANSI codes, no nesting; the output goes straight to a human or an
LLM tool call.
"""

from __future__ import annotations

import os

NO_LOCAL_SOURCE = "(no local source)"
RUNTIME_SOURCE = "(runtime copy)"

_MAX_SCRIPTS = 50


# ---------------------------------------------------------------------------
# Source listing
# ---------------------------------------------------------------------------


def format_source(
    url: str,
    file_path: str,
    line: int | None = None,
    source_lines: list[str] | None = None,
    context_radius: int = 5,
) -> str:
    """Format a source listing for *url* backed by local *file_path*.

    With a *line*, only the surrounding ``context_radius`` lines are shown
    and the line itself is marked with ``>>>``.
    """
    header = f"{url} -> {file_path}"

    code_lines = source_lines
    if code_lines is None:
        code_lines = _read_source_lines(file_path)

    if not code_lines:
        return header

    if line is None:
        start, end = 0, len(code_lines)
    else:
        start = max(0, line - 1 - context_radius)
        end = min(len(code_lines), line + context_radius)

    snippet: list[str] = []
    for i in range(start, end):
        lineno = i + 1
        marker = ">>>" if lineno == line else "   "
        snippet.append(f"  {marker} {lineno:>4} | {code_lines[i]}")

    return f"{header}\n" + "\n".join(snippet)


# ---------------------------------------------------------------------------
# Script table
# ---------------------------------------------------------------------------


def format_scripts(mapping: list[tuple[str, str | None]]) -> str:
    """Format ``(url, local_file_or_None)`` pairs, one per line."""
    if not mapping:
        return "(no scripts parsed)"

    lines: list[str] = []
    shown = mapping[:_MAX_SCRIPTS]
    for url, path in shown:
        lines.append(f"  {url}  ->  {path or NO_LOCAL_SOURCE}")

    remaining = len(mapping) - len(shown)
    if remaining > 0:
        lines.append(f"  ... and {remaining} more scripts")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Process output
# ---------------------------------------------------------------------------


def format_output(name: str, lines: list[str]) -> str:
    if not lines:
        return f"[{name}] (no output yet)"
    return "\n".join(f"[{name}] {ln}" for ln in lines)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _read_source_lines(file_path: str) -> list[str]:
    """Best-effort read of source file; returns [] on failure."""
    if not os.path.isfile(file_path):
        return []
    try:
        with open(file_path, encoding="utf-8", errors="replace") as f:
            return [ln.rstrip("\n") for ln in f.readlines()]
    except OSError:
        return []
