"""Error code registry and type URIs for Problem Details.

This module defines stable error codes and type URIs used in RFC 9457
Problem Details payloads emitted by the workspace tooling. Codes are frozen
once released so downstream consumers of CLI envelopes can match on them.

Examples
--------
>>> from uvworkspace.errors.codes import ErrorCode, get_type_uri
>>> get_type_uri(ErrorCode.MANIFEST_INVALID)
'https://uvworkspace.dev/problems/manifest-invalid'
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

__all__ = [
    "BASE_TYPE_URI",
    "ErrorCode",
    "get_type_uri",
]


BASE_TYPE_URI: Final[str] = "https://uvworkspace.dev/problems"


class ErrorCode(StrEnum):
    """Stable error codes for workspace tooling exceptions.

    Codes follow kebab-case naming and are grouped by concern:

    - Manifests and workspace membership
    - Python version requirements and environments
    - Dependency sources and install targets
    - Documentation configuration
    - Configuration and runtime

    Examples
    --------
    >>> code = ErrorCode.MEMBER_NOT_FOUND
    >>> assert code == "member-not-found"
    """

    # Manifests & membership
    MANIFEST_NOT_FOUND = "manifest-not-found"
    MANIFEST_INVALID = "manifest-invalid"
    WORKSPACE_MEMBER_INVALID = "workspace-member-invalid"
    MEMBER_NOT_FOUND = "member-not-found"

    # Python requirements & environments
    REQUIRES_PYTHON_INVALID = "requires-python-invalid"
    PYTHON_REQUEST_INVALID = "python-request-invalid"
    PYTHON_INCOMPATIBLE = "python-incompatible"
    ENVIRONMENT_MISSING = "environment-missing"
    ENVIRONMENT_INVALID = "environment-invalid"

    # Sources & targets
    SOURCE_INVALID = "source-invalid"
    TOOL_TARGET_INVALID = "tool-target-invalid"

    # Documentation
    DOCS_CONFIG_INVALID = "docs-config-invalid"

    # Configuration & runtime
    CONFIGURATION_ERROR = "configuration-error"
    RUNTIME_ERROR = "runtime-error"

    def __str__(self) -> str:
        """Return the code value as a string.

        Returns
        -------
        str
            The error code value (e.g., "manifest-invalid").
        """
        return self.value


def get_type_uri(code: ErrorCode) -> str:
    """Get the RFC 9457 type URI for an error code.

    Parameters
    ----------
    code : ErrorCode
        Error code enum value.

    Returns
    -------
    str
        Complete type URI (e.g., "https://uvworkspace.dev/problems/manifest-invalid").
    """
    return f"{BASE_TYPE_URI}/{code.value}"
