"""Workspace and documentation-configuration tooling for uv projects.

The package discovers uv workspaces, computes their ``Requires-Python`` bound,
scopes dependency sources across members and validates mkdocs navigation.
The ``uvws`` console script (:mod:`uvworkspace.cli`) exposes every operation.
"""

from __future__ import annotations

from uvworkspace import (
    checks,
    environment,
    errors,
    manifest,
    navigation,
    python_request,
    requires_python,
    sources,
    tool_target,
    workspace,
)
from uvworkspace.checks import CheckReport, Finding, run_checks
from uvworkspace.requires_python import RequiresPython, find_requires_python
from uvworkspace.workspace import Workspace, WorkspaceMember, discover_workspace, expand_members

__version__ = "0.1.0"

__all__ = [
    "CheckReport",
    "Finding",
    "RequiresPython",
    "Workspace",
    "WorkspaceMember",
    "__version__",
    "checks",
    "discover_workspace",
    "environment",
    "errors",
    "expand_members",
    "find_requires_python",
    "manifest",
    "navigation",
    "python_request",
    "requires_python",
    "run_checks",
    "sources",
    "tool_target",
    "workspace",
]
