"""Python interpreter requests and project interpreter selection.

A Python request describes which interpreter a project wants. Requests come
from three places, in order of precedence:

1. an explicit request (``--python 3.12``);
2. a ``.python-version`` file in the project directory or an ancestor;
3. the workspace ``Requires-Python`` bound, as a version range.

Examples
--------
>>> from uvworkspace.python_request import PythonRequest
>>> request = PythonRequest.parse("cpython@3.12")
>>> request.kind, request.implementation, str(request.specifiers)
('implementation_version', 'cpython', '==3.12.*')
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from uvworkspace.errors import PythonRequestError, RequestedPythonIncompatibilityError
from uvworkspace.logging import get_logger
from uvworkspace.requires_python import RequiresPython, find_requires_python

if TYPE_CHECKING:
    from uvworkspace.workspace import Workspace

__all__ = [
    "PYTHON_VERSION_FILE",
    "PythonRequest",
    "RequestSource",
    "ResolvedPythonRequest",
    "check_interpreter",
    "find_python_version_file",
    "read_python_version_file",
    "resolve_python_request",
]

LOGGER = get_logger(__name__)

PYTHON_VERSION_FILE = ".python-version"

type RequestKind = Literal[
    "any",
    "version",
    "range",
    "implementation",
    "implementation_version",
    "file",
    "directory",
    "executable",
]
type RequestSource = Literal["explicit", "python-version-file", "requires-python", "none"]

_IMPLEMENTATIONS: dict[str, str] = {
    "cpython": "cpython",
    "cp": "cpython",
    "pypy": "pypy",
    "pp": "pypy",
}
_VERSION_RE = re.compile(r"^\d+(?:\.\d+){0,2}$")
_RANGE_PREFIXES = ("<", ">", "=", "!", "~")


def _version_specifiers(text: str) -> SpecifierSet:
    """Return the specifier set matching a (possibly partial) version."""
    parts = text.split(".")
    if len(parts) < 3:
        return SpecifierSet(f"=={text}.*")
    return SpecifierSet(f"=={text}")


def _interpreter_version(text: str) -> Version:
    try:
        return Version(text)
    except InvalidVersion as exc:
        raise PythonRequestError(text, "not a valid Python version") from exc


def _split_implementation(text: str) -> tuple[str, str] | None:
    lowered = text.lower()
    for prefix in sorted(_IMPLEMENTATIONS, key=len, reverse=True):
        if not lowered.startswith(prefix):
            continue
        rest = text[len(prefix) :]
        if rest.startswith("@"):
            rest = rest[1:]
        if _VERSION_RE.match(rest):
            return _IMPLEMENTATIONS[prefix], rest
    return None


@dataclass(frozen=True, slots=True)
class PythonRequest:
    """A parsed interpreter request.

    Attributes
    ----------
    kind : RequestKind
        What the request constrains.
    raw : str
        Text the request was parsed from.
    implementation : str | None
        Interpreter implementation (``cpython`` or ``pypy``).
    specifiers : SpecifierSet | None
        Allowed interpreter versions.
    path : Path | None
        Interpreter file or directory for path requests.
    """

    kind: RequestKind
    raw: str
    implementation: str | None = None
    specifiers: SpecifierSet | None = None
    path: Path | None = None

    @classmethod
    def parse(cls, text: str) -> PythonRequest:
        """Parse ``text`` into a request.

        Parameters
        ----------
        text : str
            Request text, e.g. ``3.12``, ``>=3.10,<3.13``, ``pypy3.10`` or a path.

        Returns
        -------
        PythonRequest
            Parsed request.

        Raises
        ------
        PythonRequestError
            If ``text`` is a malformed range or names a path that does not exist.
        """
        value = text.strip()
        if value in {"", "any"}:
            return cls(kind="any", raw="any")
        if _VERSION_RE.match(value):
            return cls(kind="version", raw=value, specifiers=_version_specifiers(value))
        if value.startswith(_RANGE_PREFIXES):
            try:
                specifiers = SpecifierSet(value)
            except InvalidSpecifier as exc:
                raise PythonRequestError(value, "not a valid version range") from exc
            return cls(kind="range", raw=value, specifiers=specifiers)

        lowered = value.lower()
        if lowered in _IMPLEMENTATIONS:
            return cls(kind="implementation", raw=value, implementation=_IMPLEMENTATIONS[lowered])
        split = _split_implementation(value)
        if split is not None:
            implementation, version = split
            return cls(
                kind="implementation_version",
                raw=value,
                implementation=implementation,
                specifiers=_version_specifiers(version),
            )

        if "/" in value or "\\" in value or value.startswith(("~", ".")):
            path = Path(value).expanduser()
            if path.is_dir():
                return cls(kind="directory", raw=value, path=path)
            if path.is_file():
                return cls(kind="file", raw=value, path=path)
            raise PythonRequestError(value, "no such file or directory")
        return cls(kind="executable", raw=value)

    @classmethod
    def from_requires_python(cls, requires_python: RequiresPython) -> PythonRequest:
        specifiers = requires_python.specifiers
        return cls(kind="range", raw=str(specifiers), specifiers=specifiers)

    def satisfied_by(
        self,
        version: Version | str,
        *,
        implementation: str = "cpython",
        executable: Path | None = None,
        prefix: Path | None = None,
    ) -> bool:
        """Return whether an interpreter satisfies the request.

        Parameters
        ----------
        version : Version | str
            Interpreter version.
        implementation : str, optional
            Interpreter implementation name.
        executable : Path | None, optional
            Interpreter executable, compared for file and executable requests.
        prefix : Path | None, optional
            Interpreter prefix (environment root), compared for directory requests.

        Returns
        -------
        bool
            ``True`` when every constraint of the request holds.
        """
        if isinstance(version, str):
            version = _interpreter_version(version)
        if self.implementation is not None and implementation.lower() != self.implementation:
            return False
        if self.specifiers is not None and not self.specifiers.contains(version, prereleases=True):
            return False
        match self.kind:
            case "file":
                return executable is not None and self.path is not None and (
                    executable.resolve() == self.path.resolve()
                )
            case "directory":
                return prefix is not None and self.path is not None and (
                    prefix.resolve() == self.path.resolve()
                )
            case "executable":
                return executable is not None and executable.name == self.raw
            case _:
                return True

    def __str__(self) -> str:
        return self.raw


def find_python_version_file(directory: Path) -> Path | None:
    """Return the nearest ``.python-version`` at or above ``directory``."""
    start = directory.resolve()
    for candidate in (start, *start.parents):
        path = candidate / PYTHON_VERSION_FILE
        if path.is_file():
            return path
    return None


def read_python_version_file(directory: Path) -> PythonRequest | None:
    """Read the request pinned by the nearest ``.python-version`` file.

    The first line that is neither blank nor a ``#`` comment is the request.

    Parameters
    ----------
    directory : Path
        Directory to start searching from.

    Returns
    -------
    PythonRequest | None
        Parsed request, or ``None`` when no file (or no usable line) exists.
    """
    path = find_python_version_file(directory)
    if path is None:
        return None
    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise PythonRequestError(str(path), "file is not valid UTF-8") from exc
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        LOGGER.debug("Using Python request `%s` from %s", stripped, path)
        return PythonRequest.parse(stripped)
    return None


@dataclass(frozen=True, slots=True)
class ResolvedPythonRequest:
    """The request that applies to a workspace and where it came from."""

    request: PythonRequest | None
    source: RequestSource
    requires_python: RequiresPython | None = None


def resolve_python_request(
    workspace: Workspace,
    explicit: PythonRequest | str | None = None,
    *,
    directory: Path | None = None,
) -> ResolvedPythonRequest:
    """Decide which Python request applies to ``workspace``.

    Parameters
    ----------
    workspace : Workspace
        Discovered workspace.
    explicit : PythonRequest | str | None, optional
        Request given by the user; wins over every other source.
    directory : Path | None, optional
        Where to start looking for ``.python-version``; defaults to the
        workspace root.

    Returns
    -------
    ResolvedPythonRequest
        The request, its source and the workspace ``Requires-Python`` bound.
    """
    requires_python = find_requires_python(workspace)
    if explicit is not None:
        request = PythonRequest.parse(explicit) if isinstance(explicit, str) else explicit
        return ResolvedPythonRequest(request, "explicit", requires_python)

    pinned = read_python_version_file(directory or workspace.root)
    if pinned is not None:
        return ResolvedPythonRequest(pinned, "python-version-file", requires_python)

    if requires_python is not None:
        request = PythonRequest.from_requires_python(requires_python)
        return ResolvedPythonRequest(request, "requires-python", requires_python)
    return ResolvedPythonRequest(None, "none", None)


def check_interpreter(version: Version | str, requires_python: RequiresPython | None) -> None:
    """Ensure an interpreter version is inside the workspace bound.

    Raises
    ------
    PythonRequestError
        If ``version`` is not a valid version string.
    RequestedPythonIncompatibilityError
        If ``version`` is outside ``requires_python``.
    """
    parsed = _interpreter_version(version) if isinstance(version, str) else version
    if requires_python is None:
        return
    if not requires_python.contains(parsed):
        raise RequestedPythonIncompatibilityError(parsed, str(requires_python))
