"""Typed models for ``pyproject.toml`` manifests.

Only the tables the workspace tooling reads are modelled: ``[project]`` and
``[tool.uv]`` (with its ``workspace`` and ``sources`` sub-tables). Unknown
keys elsewhere in the manifest are ignored; unknown keys inside
``[tool.uv.workspace]`` and source entries are rejected.

Examples
--------
>>> from uvworkspace.manifest import PyProjectToml
>>> manifest = PyProjectToml.model_validate(
...     {"tool": {"uv": {"workspace": {"members": ["packages/*"]}}}}
... )
>>> manifest.is_package, manifest.workspace.members
(False, ('packages/*',))
"""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from uvworkspace.errors import ManifestError, ManifestNotFoundError
from uvworkspace.logging import get_logger

__all__ = [
    "MANIFEST_NAME",
    "ProjectTable",
    "PyProjectToml",
    "SourceKind",
    "SourceTable",
    "ToolTable",
    "UvTable",
    "WorkspaceTable",
    "load_pyproject",
    "normalize_name",
    "parse_requirements",
]

LOGGER = get_logger(__name__)

MANIFEST_NAME = "pyproject.toml"

type SourceKind = Literal["workspace", "path", "git", "url"]


def normalize_name(name: str) -> str:
    """Return the PEP 503 normalised form of a package name."""
    return str(canonicalize_name(name))


def parse_requirements(values: tuple[str, ...] | list[str]) -> list[Requirement]:
    """Parse PEP 508 requirement strings.

    Parameters
    ----------
    values : tuple[str, ...] | list[str]
        Requirement strings.

    Returns
    -------
    list[Requirement]
        Parsed requirements in input order.

    Raises
    ------
    ValueError
        If any string is not a valid PEP 508 requirement.
    """
    parsed: list[Requirement] = []
    for value in values:
        try:
            parsed.append(Requirement(value))
        except InvalidRequirement as exc:
            msg = f"invalid requirement {value!r}: {exc}"
            raise ValueError(msg) from exc
    return parsed


class WorkspaceTable(BaseModel):
    """The ``[tool.uv.workspace]`` table.

    ``members`` is mandatory; ``exclude`` defaults to no exclusions.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    members: tuple[str, ...]
    exclude: tuple[str, ...] = ()


class SourceTable(BaseModel):
    """One entry of ``[tool.uv.sources]``.

    Exactly one of ``workspace``, ``path``, ``git`` or ``url`` must be set.
    Git references (``rev``, ``tag``, ``branch``) are mutually exclusive and
    only valid for git sources; ``editable`` is only valid for path sources.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    workspace: bool | None = None
    path: str | None = None
    editable: bool | None = None
    git: str | None = None
    rev: str | None = None
    tag: str | None = None
    branch: str | None = None
    url: str | None = None
    subdirectory: str | None = None

    @model_validator(mode="after")
    def _check_kind(self) -> SourceTable:
        kinds = [
            name
            for name, value in (
                ("workspace", self.workspace),
                ("path", self.path),
                ("git", self.git),
                ("url", self.url),
            )
            if value is not None
        ]
        if len(kinds) != 1:
            msg = f"expected exactly one of workspace, path, git or url; got {kinds or 'none'}"
            raise ValueError(msg)
        refs = [ref for ref in (self.rev, self.tag, self.branch) if ref is not None]
        if refs and self.git is None:
            msg = "rev, tag and branch are only valid for git sources"
            raise ValueError(msg)
        if len(refs) > 1:
            msg = "only one of rev, tag or branch may be set"
            raise ValueError(msg)
        if self.editable is not None and self.path is None:
            msg = "editable is only valid for path sources"
            raise ValueError(msg)
        if self.workspace is False:
            msg = "workspace = false is not a source; remove the entry instead"
            raise ValueError(msg)
        return self

    @property
    def kind(self) -> SourceKind:
        """Return which source kind this entry declares."""
        if self.workspace:
            return "workspace"
        if self.path is not None:
            return "path"
        if self.git is not None:
            return "git"
        return "url"

    def describe(self) -> str:
        """Return a short human-readable rendering of the source."""
        match self.kind:
            case "workspace":
                return "workspace"
            case "path":
                suffix = " (editable)" if self.editable else ""
                return f"path: {self.path}{suffix}"
            case "git":
                ref = self.rev or self.tag or self.branch
                return f"git: {self.git}@{ref}" if ref else f"git: {self.git}"
            case _:
                return f"url: {self.url}"


class UvTable(BaseModel):
    """The ``[tool.uv]`` table."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    workspace: WorkspaceTable | None = None
    sources: dict[str, SourceTable] = Field(default_factory=dict)
    dev_dependencies: tuple[str, ...] = Field(default=(), alias="dev-dependencies")
    managed: bool | None = None

    @field_validator("sources", mode="before")
    @classmethod
    def _normalise_source_names(cls, value: object) -> object:
        if isinstance(value, Mapping):
            return {normalize_name(str(key)): item for key, item in value.items()}
        return value

    @field_validator("dev_dependencies")
    @classmethod
    def _check_dev_dependencies(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        parse_requirements(value)
        return value


class ToolTable(BaseModel):
    """The ``[tool]`` table; only ``uv`` is read."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    uv: UvTable | None = None


class ProjectTable(BaseModel):
    """The PEP 621 ``[project]`` table."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str
    version: str | None = None
    requires_python: str | None = Field(default=None, alias="requires-python")
    dependencies: tuple[str, ...] = ()
    optional_dependencies: dict[str, tuple[str, ...]] = Field(
        default_factory=dict, alias="optional-dependencies"
    )

    @field_validator("dependencies")
    @classmethod
    def _check_dependencies(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        parse_requirements(value)
        return value

    @field_validator("optional_dependencies")
    @classmethod
    def _check_optional_dependencies(
        cls, value: dict[str, tuple[str, ...]]
    ) -> dict[str, tuple[str, ...]]:
        for group in value.values():
            parse_requirements(group)
        return value

    @property
    def normalized_name(self) -> str:
        """Return the PEP 503 normalised project name."""
        return normalize_name(self.name)


class PyProjectToml(BaseModel):
    """The subset of ``pyproject.toml`` read by the workspace tooling."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    project: ProjectTable | None = None
    tool: ToolTable | None = None

    @property
    def uv(self) -> UvTable | None:
        """Return the ``[tool.uv]`` table when present."""
        return self.tool.uv if self.tool is not None else None

    @property
    def workspace(self) -> WorkspaceTable | None:
        """Return the ``[tool.uv.workspace]`` table when present."""
        uv = self.uv
        return uv.workspace if uv is not None else None

    @property
    def sources(self) -> dict[str, SourceTable]:
        """Return ``[tool.uv.sources]`` keyed by normalised package name."""
        uv = self.uv
        return dict(uv.sources) if uv is not None else {}

    @property
    def is_package(self) -> bool:
        """Return ``True`` when the manifest declares a ``[project]`` table."""
        return self.project is not None

    def requirements(self, *, include_dev: bool = True) -> list[Requirement]:
        """Return the declared dependencies, optionally with dev dependencies.

        Optional-dependency groups are included as they participate in
        workspace-wide locking.
        """
        values: list[str] = []
        if self.project is not None:
            values.extend(self.project.dependencies)
            for group in self.project.optional_dependencies.values():
                values.extend(group)
        if include_dev and self.uv is not None:
            values.extend(self.uv.dev_dependencies)
        return parse_requirements(values)


def load_pyproject(path: Path) -> PyProjectToml:
    """Read and validate a ``pyproject.toml`` file.

    Parameters
    ----------
    path : Path
        Path to the manifest, or to the directory containing it.

    Returns
    -------
    PyProjectToml
        Validated manifest model.

    Raises
    ------
    ManifestNotFoundError
        If the manifest does not exist.
    ManifestError
        If the file is not valid TOML or fails model validation.
    """
    manifest_path = path / MANIFEST_NAME if path.is_dir() else path
    try:
        with manifest_path.open("rb") as stream:
            raw = tomllib.load(stream)
    except FileNotFoundError as exc:
        raise ManifestNotFoundError(manifest_path) from exc
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        msg = f"Failed to parse `{manifest_path}`: {exc}"
        raise ManifestError(msg, path=manifest_path, cause=exc) from exc

    try:
        manifest = PyProjectToml.model_validate(raw)
    except ValidationError as exc:
        errors: list[dict[str, object]] = [
            {"loc": ".".join(str(part) for part in error["loc"]), "msg": error["msg"]}
            for error in exc.errors()
        ]
        msg = f"Invalid `{manifest_path}`: {errors[0]['loc']}: {errors[0]['msg']}"
        raise ManifestError(msg, path=manifest_path, errors=errors, cause=exc) from exc

    LOGGER.debug(
        "Loaded manifest %s",
        manifest_path,
        extra={"operation": "load_manifest", "is_package": manifest.is_package},
    )
    return manifest
