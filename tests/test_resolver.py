"""Tests for workspace discovery and URL <-> file resolution."""

from __future__ import annotations

import logging
import os
import re

import pytest

from jsdebug_core.resolver import (
    DebugSessionContext,
    WorkspaceResolver,
    file_lookup,
    find_workspace_root,
    workspace_lookup,
    workspace_to_url,
)
from jsdebug_core.errors import PathEscape
from jsdebug_core.protocol import STOP_DIR_PATTERN

HTTP_CONTEXT = DebugSessionContext.from_url("http://localhost:3000/")


# ==============================================================================
# DebugSessionContext
# ==============================================================================


class TestDebugSessionContext:
    def test_file_scheme(self):
        ctx = DebugSessionContext.from_url("file:///home/me/proj")
        assert ctx.uses_file_protocol is True
        assert ctx.base_url == "file:///home/me/proj"

    @pytest.mark.parametrize("url", ["http://localhost:3000/", "https://example.com/app/"])
    def test_network_scheme(self, url):
        assert DebugSessionContext.from_url(url).uses_file_protocol is False


# ==============================================================================
# Root discovery
# ==============================================================================


class TestFindWorkspaceRoot:
    def test_finds_marker_in_ancestor(self, workspace):
        assert find_workspace_root(str(workspace / "js")) == str(workspace)

    def test_finds_marker_in_start_dir(self, workspace):
        assert find_workspace_root(str(workspace)) == str(workspace)

    def test_nearest_marker_wins(self, workspace):
        nested = workspace / "js" / "vendor"
        nested.mkdir()
        (nested / ".jade").write_text("")
        assert find_workspace_root(str(nested)) == str(nested)

    def test_no_marker_returns_none(self, unmarked_dir):
        assert find_workspace_root(str(unmarked_dir), marker=".jade-test-absent") is None

    def test_filesystem_root_without_marker(self):
        assert find_workspace_root("/", marker=".jade-test-absent") is None

    def test_defaults_to_cwd(self, workspace, monkeypatch):
        monkeypatch.chdir(workspace / "js")
        assert find_workspace_root() == str(workspace)

    def test_stop_pattern_ends_search(self, workspace):
        stop = re.compile(re.escape(str(workspace / "js")) + r"\Z")
        assert find_workspace_root(str(workspace / "js"), stop_pattern=stop) is None

    @pytest.mark.parametrize("directory", ["/net", "/afs", "/...", "//fileserver"])
    def test_network_mounts_stop_by_default(self, directory):
        assert STOP_DIR_PATTERN.search(directory)

    @pytest.mark.parametrize("directory", ["/", "/home/me", "/network"])
    def test_local_dirs_do_not_stop(self, directory):
        assert not STOP_DIR_PATTERN.search(directory)


# ==============================================================================
# File-protocol strategy
# ==============================================================================


class TestFileProtocol:
    def test_existing_file(self, workspace):
        app = workspace / "js" / "app.js"
        assert file_lookup(f"file://{app}") == str(app)

    def test_missing_file(self, workspace):
        assert file_lookup(f"file://{workspace}/js/missing.js") is None

    def test_directory_is_not_a_match(self, workspace):
        assert file_lookup(f"file://{workspace}/js") is None

    def test_resolver_round_trip(self, workspace, unmarked_dir):
        ctx = DebugSessionContext.from_url(f"file://{workspace}")
        resolver = WorkspaceResolver(ctx, cwd=str(unmarked_dir))
        url = f"file://{workspace}/js/app.js"

        path = resolver.lookup(url)

        assert path == str(workspace / "js" / "app.js")
        assert resolver.to_url(path) == url

    def test_to_url_needs_no_existing_file(self, unmarked_dir):
        resolver = WorkspaceResolver(DebugSessionContext.from_url("file:///"), cwd=str(unmarked_dir))
        assert resolver.to_url("/a/b.js") == "file:///a/b.js"

    def test_file_url_miss_does_not_fall_back_to_workspace(self, workspace):
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace))
        assert resolver.lookup("file:///js/app.js") is None


# ==============================================================================
# Workspace strategy
# ==============================================================================


class TestWorkspaceStrategy:
    def test_lookup(self, workspace):
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace / "js"))
        assert resolver.lookup("http://localhost:3000/js/app.js") == str(workspace / "js" / "app.js")

    def test_to_url(self, workspace):
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace))
        assert resolver.to_url(str(workspace / "js" / "app.js")) == "http://localhost:3000/js/app.js"

    def test_round_trip(self, workspace):
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace))
        url = "http://localhost:3000/index.html"
        assert resolver.to_url(resolver.lookup(url)) == url

    def test_query_and_fragment_ignored_on_lookup(self, workspace):
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace))
        assert resolver.lookup("http://localhost:3000/js/app.js?v=3#L2") == str(
            workspace / "js" / "app.js"
        )

    def test_to_url_keeps_only_origin_of_base(self, workspace):
        ctx = DebugSessionContext.from_url("https://me:pw@dev.local:8443/app/index.html?x=1#top")
        resolver = WorkspaceResolver(ctx, cwd=str(workspace))
        assert resolver.to_url(str(workspace / "js" / "app.js")) == (
            "https://me:pw@dev.local:8443/js/app.js"
        )

    def test_to_url_does_not_touch_base(self, workspace):
        ctx = DebugSessionContext.from_url("http://localhost:3000/app/")
        resolver = WorkspaceResolver(ctx, cwd=str(workspace))
        resolver.to_url(str(workspace / "js" / "app.js"))
        assert ctx.base_url == "http://localhost:3000/app/"

    def test_missing_file_is_no_match(self, workspace):
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace))
        assert resolver.lookup("http://localhost:3000/js/nope.js") is None

    def test_root_url_is_no_match(self, workspace):
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace))
        assert resolver.lookup("http://localhost:3000/") is None

    def test_no_root_is_no_match(self, unmarked_dir):
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(unmarked_dir), marker=".jade-test-absent")
        assert resolver.root() is None
        assert resolver.lookup("http://localhost:3000/js/app.js") is None
        assert resolver.to_url(str(unmarked_dir / "x.js")) is None

    def test_file_outside_root_has_no_url(self, workspace, tmp_path):
        outside = tmp_path / "other.js"
        outside.write_text("")
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace))
        assert resolver.to_url(str(outside)) is None

    def test_root_is_rediscovered_each_call(self, workspace):
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace / "js"))
        assert resolver.root() == str(workspace)

        (workspace / "js" / ".jade").write_text("")
        assert resolver.root() == str(workspace / "js")
        assert resolver.lookup("http://localhost:3000/app.js") == str(workspace / "js" / "app.js")

    def test_helper_uses_forward_slashes(self, workspace):
        file = os.path.join(str(workspace), "js", "app.js")
        assert workspace_to_url(file, str(workspace), "http://h:8080/a/b?c") == "http://h:8080/js/app.js"

    def test_root_itself_maps_to_slash(self, workspace):
        assert workspace_to_url(str(workspace), str(workspace), "http://h:8080/a/") == "http://h:8080/"


# ==============================================================================
# Path escape
# ==============================================================================


class TestPathEscape:
    def test_dot_dot_is_rejected(self, workspace, tmp_path, caplog):
        secret = tmp_path / "secret.js"
        secret.write_text("token")
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace))

        with caplog.at_level(logging.WARNING, logger="jsdebug_core.resolver"):
            assert resolver.lookup("http://localhost:3000/../secret.js") is None

        assert "outside workspace" in caplog.text

    def test_etc_passwd(self, workspace):
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace))
        assert resolver.lookup("http://localhost:3000/../../etc/passwd") is None

    def test_double_slash_absolute_path(self, workspace):
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace))
        assert resolver.lookup("http://localhost:3000//etc/passwd") is None

    def test_inner_dot_dot_that_stays_inside(self, workspace):
        resolver = WorkspaceResolver(HTTP_CONTEXT, cwd=str(workspace))
        assert resolver.lookup("http://localhost:3000/js/../js/app.js") == str(
            workspace / "js" / "app.js"
        )

    def test_helper_raises(self, workspace):
        with pytest.raises(PathEscape) as info:
            workspace_lookup("http://h/../x.js", str(workspace))
        assert info.value.root == os.path.normpath(str(workspace))

    def test_sibling_with_common_prefix(self, workspace, tmp_path):
        sibling = tmp_path / "proj-evil"
        sibling.mkdir()
        (sibling / "x.js").write_text("")
        with pytest.raises(PathEscape):
            workspace_lookup("http://h/../proj-evil/x.js", str(workspace))