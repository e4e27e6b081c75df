"""Typed exception hierarchy with Problem Details support.

All workspace tooling exceptions inherit from :class:`WorkspaceToolError`,
which carries a stable :class:`~uvworkspace.errors.codes.ErrorCode`, an HTTP
style status used in Problem Details payloads, a log level and a context
mapping.

Examples
--------
>>> from uvworkspace.errors import ManifestError, ErrorCode
>>> try:
...     raise ManifestError("Missing [project] table", path="pkg/pyproject.toml")
... except ManifestError as e:
...     assert e.code == ErrorCode.MANIFEST_INVALID
...     details = e.to_problem_details(instance="urn:uvws:manifest")
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from uvworkspace.errors.codes import ErrorCode, get_type_uri
from uvworkspace.problem_details import build_problem_details

if TYPE_CHECKING:
    from pathlib import Path

    from packaging.version import Version

    from uvworkspace.problem_details import ProblemDetails

__all__ = [
    "DocsConfigError",
    "InvalidEnvironmentError",
    "MemberNotFoundError",
    "ManifestError",
    "ManifestNotFoundError",
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
]


@dataclass(slots=True)
class WorkspaceToolErrorConfig:
    """Configuration options used when instantiating :class:`WorkspaceToolError`."""

    code: ErrorCode = ErrorCode.RUNTIME_ERROR
    http_status: int = 500
    log_level: int = logging.ERROR
    cause: Exception | None = None
    context: Mapping[str, object] | None = None


class WorkspaceToolError(Exception):
    """Base exception for all workspace tooling errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    config : WorkspaceToolErrorConfig | None, optional
        Structured configuration (code, status, log level, cause, context).
        Defaults to a generic runtime error.

    Attributes
    ----------
    message : str
        Human-readable error message.
    code : ErrorCode
        Error code enum value.
    http_status : int
        Status code used in Problem Details payloads.
    log_level : int
        Logging level for error logging.
    context : dict[str, object]
        Additional structured context.
    """

    def __init__(self, message: str, *, config: WorkspaceToolErrorConfig | None = None) -> None:
        resolved = config or WorkspaceToolErrorConfig()
        super().__init__(message)
        self.message = message
        self.code = resolved.code
        self.http_status = resolved.http_status
        self.log_level = resolved.log_level
        self.context: dict[str, object] = dict(resolved.context) if resolved.context else {}
        if resolved.cause is not None:
            self.__cause__ = resolved.cause

    def to_problem_details(
        self,
        instance: str | None = None,
        title: str | None = None,
    ) -> ProblemDetails:
        """Convert to an RFC 9457 Problem Details payload.

        Parameters
        ----------
        instance : str | None, optional
            URI identifying the specific occurrence. Defaults to
            ``"urn:uvws:error"``.
        title : str | None, optional
            Short summary. Defaults to the exception class name.

        Returns
        -------
        ProblemDetails
            Validated payload including ``code`` and the context as extensions.
        """
        return build_problem_details(
            problem_type=get_type_uri(self.code),
            title=title or self.__class__.__name__,
            status=self.http_status,
            detail=self.message,
            instance=instance or "urn:uvws:error",
            code=self.code.value,
            extensions=self.context or None,
        )

    def __str__(self) -> str:
        return self.message


class ManifestNotFoundError(WorkspaceToolError):
    """Raised when a ``pyproject.toml`` does not exist where one is required."""

    def __init__(self, path: Path) -> None:
        super().__init__(
            f"No `pyproject.toml` found at: {path}",
            config=WorkspaceToolErrorConfig(
                code=ErrorCode.MANIFEST_NOT_FOUND,
                http_status=404,
                context={"path": str(path)},
            ),
        )
        self.path = path


class ManifestError(WorkspaceToolError):
    """Raised when a ``pyproject.toml`` cannot be parsed or fails validation.

    Parameters
    ----------
    message : str
        Description of the failure.
    path : Path | str
        Manifest path.
    errors : list[dict[str, object]] | None, optional
        Validation errors reported by the manifest schema.
    cause : Exception | None, optional
        Underlying parse or validation exception.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path | str,
        errors: list[dict[str, object]] | None = None,
        cause: Exception | None = None,
    ) -> None:
        context: dict[str, object] = {"path": str(path)}
        if errors:
            context["validation_errors"] = errors
        super().__init__(
            message,
            config=WorkspaceToolErrorConfig(
                code=ErrorCode.MANIFEST_INVALID,
                http_status=422,
                cause=cause,
                context=context,
            ),
        )
        self.path = path


class WorkspaceMemberError(WorkspaceToolError):
    """Raised when a workspace member directory is not a valid package root."""

    def __init__(self, message: str, *, workspace_root: Path, member: Path | None = None) -> None:
        context: dict[str, object] = {"workspace_root": str(workspace_root)}
        if member is not None:
            context["member"] = str(member)
        super().__init__(
            message,
            config=WorkspaceToolErrorConfig(
                code=ErrorCode.WORKSPACE_MEMBER_INVALID,
                http_status=422,
                context=context,
            ),
        )


class MemberNotFoundError(WorkspaceToolError):
    """Raised when a package name does not refer to a workspace member."""

    def __init__(self, name: str, *, available: list[str]) -> None:
        super().__init__(
            f"Package `{name}` is not a member of the workspace",
            config=WorkspaceToolErrorConfig(
                code=ErrorCode.MEMBER_NOT_FOUND,
                http_status=404,
                log_level=logging.WARNING,
                context={"package": name, "available": available},
            ),
        )
        self.name = name


class RequiresPythonError(WorkspaceToolError):
    """Raised when a ``requires-python`` specifier cannot be interpreted."""

    def __init__(self, message: str, *, specifier: str, cause: Exception | None = None) -> None:
        super().__init__(
            message,
            config=WorkspaceToolErrorConfig(
                code=ErrorCode.REQUIRES_PYTHON_INVALID,
                http_status=422,
                cause=cause,
                context={"specifier": specifier},
            ),
        )


class PythonRequestError(WorkspaceToolError):
    """Raised when a Python request string cannot be parsed."""

    def __init__(self, request: str, reason: str) -> None:
        super().__init__(
            f"Invalid Python request `{request}`: {reason}",
            config=WorkspaceToolErrorConfig(
                code=ErrorCode.PYTHON_REQUEST_INVALID,
                http_status=400,
                context={"request": request},
            ),
        )


class RequestedPythonIncompatibilityError(WorkspaceToolError):
    """Raised when an interpreter is outside the workspace ``Requires-Python`` bound."""

    def __init__(self, version: Version, requires_python: str) -> None:
        super().__init__(
            f"The requested Python interpreter ({version}) is incompatible with the "
            f"project Python requirement: `{requires_python}`",
            config=WorkspaceToolErrorConfig(
                code=ErrorCode.PYTHON_INCOMPATIBLE,
                http_status=409,
                context={"version": str(version), "requires_python": requires_python},
            ),
        )


class MissingEnvironmentError(WorkspaceToolError):
    """Raised when the project environment does not exist."""

    def __init__(self, venv: Path) -> None:
        super().__init__(
            f"No virtual environment found at: {venv}",
            config=WorkspaceToolErrorConfig(
                code=ErrorCode.ENVIRONMENT_MISSING,
                http_status=404,
                log_level=logging.INFO,
                context={"venv": str(venv)},
            ),
        )
        self.venv = venv


class InvalidEnvironmentError(WorkspaceToolError):
    """Raised when ``pyvenv.cfg`` exists but does not describe an interpreter."""

    def __init__(self, venv: Path, reason: str) -> None:
        super().__init__(
            f"Invalid virtual environment at {venv}: {reason}",
            config=WorkspaceToolErrorConfig(
                code=ErrorCode.ENVIRONMENT_INVALID,
                http_status=422,
                log_level=logging.WARNING,
                context={"venv": str(venv)},
            ),
        )
        self.venv = venv


class SourceResolutionError(WorkspaceToolError):
    """Raised when a dependency source cannot be resolved within the workspace."""

    def __init__(self, message: str, *, package: str, member: str | None = None) -> None:
        context: dict[str, object] = {"package": package}
        if member is not None:
            context["member"] = member
        super().__init__(
            message,
            config=WorkspaceToolErrorConfig(
                code=ErrorCode.SOURCE_INVALID,
                http_status=422,
                context=context,
            ),
        )


class ToolTargetError(WorkspaceToolError):
    """Raised when a tool-run target cannot be interpreted."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            config=WorkspaceToolErrorConfig(code=ErrorCode.TOOL_TARGET_INVALID, http_status=400),
        )


class DocsConfigError(WorkspaceToolError):
    """Raised when a documentation configuration cannot be loaded."""

    def __init__(self, message: str, *, path: Path | str, cause: Exception | None = None) -> None:
        super().__init__(
            message,
            config=WorkspaceToolErrorConfig(
                code=ErrorCode.DOCS_CONFIG_INVALID,
                http_status=422,
                cause=cause,
                context={"path": str(path)},
            ),
        )
        self.path = path


class SettingsError(WorkspaceToolError):
    """Raised when tooling settings fail validation.

    Parameters
    ----------
    message : str
        Human-readable error message.
    errors : list[dict[str, object]] | None, optional
        Validation error dictionaries reported by pydantic.
    cause : Exception | None, optional
        Underlying validation exception.
    """

    def __init__(
        self,
        message: str,
        *,
        errors: list[dict[str, object]] | None = None,
        cause: Exception | None = None,
    ) -> None:
        context: dict[str, object] = {}
        if errors:
            context["validation_errors"] = [dict(error) for error in errors]
        super().__init__(
            message,
            config=WorkspaceToolErrorConfig(
                code=ErrorCode.CONFIGURATION_ERROR,
                http_status=500,
                log_level=logging.CRITICAL,
                cause=cause,
                context=context,
            ),
        )
