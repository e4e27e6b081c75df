"""Exception hierarchy and Problem Details support.

Examples
--------
>>> from uvworkspace.errors import WorkspaceToolError, ErrorCode
>>> error = WorkspaceToolError("Operation failed")
>>> error.code == ErrorCode.RUNTIME_ERROR
True
"""

from __future__ import annotations

from uvworkspace.errors.codes import BASE_TYPE_URI, ErrorCode, get_type_uri
from uvworkspace.errors.exceptions import (
    DocsConfigError,
    InvalidEnvironmentError,
    ManifestError,
    ManifestNotFoundError,
    MemberNotFoundError,
    MissingEnvironmentError,
    PythonRequestError,
    RequestedPythonIncompatibilityError,
    RequiresPythonError,
    SettingsError,
    SourceResolutionError,
    ToolTargetError,
    WorkspaceMemberError,
    WorkspaceToolError,
    WorkspaceToolErrorConfig,
)

__all__ = [
    "BASE_TYPE_URI",
    "DocsConfigError",
    "ErrorCode",
    "InvalidEnvironmentError",
    "ManifestError",
    "ManifestNotFoundError",
    "MemberNotFoundError",
    "MissingEnvironmentError",
    "PythonRequestError",
    "RequestedPythonIncompatibilityError",
    "RequiresPythonError",
    "SettingsError",
    "SourceResolutionError",
    "ToolTargetError",
    "WorkspaceMemberError",
    "WorkspaceToolError",
    "WorkspaceToolErrorConfig",
    "get_type_uri",
]
