"""Launch node under the inspector and map its script URLs to local files.

``launcher`` owns the process and the one-shot "inspector ready" signal;
``resolver`` owns the URL <-> file algebra.  ``session`` ties both to a
CDP connection.
"""

from jsdebug_core.config import LaunchConfig
from jsdebug_core.errors import ConfigError, PathEscape, RootNotFound
from jsdebug_core.resolver import DebugSessionContext, WorkspaceResolver

__all__ = [
    "ConfigError",
    "DebugSessionContext",
    "LaunchConfig",
    "PathEscape",
    "RootNotFound",
    "WorkspaceResolver",
]
