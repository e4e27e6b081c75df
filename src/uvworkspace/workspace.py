"""Workspace discovery and member expansion.

A workspace root is a directory whose ``pyproject.toml`` declares a
``[tool.uv.workspace]`` table::

    [tool.uv.workspace]
    members = ["packages/*"]
    exclude = ["packages/seeds"]

Member patterns are expanded as globs relative to the root, only
directories are kept, and exclusion patterns are applied after expansion so
a directory matching both lists is excluded. A root that also declares
``[project]`` is a root package and is itself a member; a root that only
declares the workspace table is a virtual workspace.

A project that is not part of any workspace is treated as a workspace with a
single member: itself.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path

from uvworkspace.errors import (
    ManifestError,
    ManifestNotFoundError,
    MemberNotFoundError,
    WorkspaceMemberError,
)
from uvworkspace.logging import get_logger, with_fields
from uvworkspace.manifest import (
    MANIFEST_NAME,
    PyProjectToml,
    SourceTable,
    load_pyproject,
    normalize_name,
)

__all__ = [
    "MemberExpansion",
    "Workspace",
    "WorkspaceMember",
    "discover_workspace",
    "expand_members",
    "find_project_root",
    "is_excluded_from_workspace",
    "is_included_in_workspace",
]

LOGGER = get_logger(__name__)

VENV_NAME = ".venv"
LOCK_NAME = "uv.lock"


@dataclass(frozen=True, slots=True)
class WorkspaceMember:
    """A package that belongs to a workspace."""

    name: str
    root: Path
    manifest: PyProjectToml
    is_root: bool = False

    @property
    def sources(self) -> dict[str, SourceTable]:
        return self.manifest.sources

    @property
    def version(self) -> str | None:
        project = self.manifest.project
        return project.version if project is not None else None


@dataclass(frozen=True, slots=True)
class MemberExpansion:
    """Result of resolving member and exclusion globs against a root.

    Attributes
    ----------
    directories : tuple[Path, ...]
        Matched member directories, de-duplicated and sorted.
    excluded : tuple[Path, ...]
        Directories matched by a member pattern but removed by ``exclude``.
    unmatched_patterns : tuple[str, ...]
        Member patterns that matched no directory after exclusion.
    """

    directories: tuple[Path, ...]
    excluded: tuple[Path, ...] = ()
    unmatched_patterns: tuple[str, ...] = ()


def _relative_posix(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def _clean_pattern(pattern: str) -> str:
    cleaned = pattern.strip().replace("\\", "/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return cleaned.rstrip("/") or "."


def _matches_any(path: Path, root: Path, patterns: tuple[str, ...]) -> bool:
    relative = _relative_posix(path, root)
    for pattern in patterns:
        cleaned = _clean_pattern(pattern)
        # Absolute patterns are matched against the absolute path.
        target = path.as_posix() if Path(cleaned).is_absolute() else relative
        if fnmatchcase(target, cleaned):
            return True
    return False


def _glob_directories(root: Path, pattern: str) -> list[Path]:
    cleaned = _clean_pattern(pattern)
    if cleaned == ".":
        return [root]
    candidate = Path(cleaned)
    if candidate.is_absolute():
        # Path.glob rejects absolute patterns.
        base = Path(candidate.anchor)
        relative = candidate.relative_to(base).as_posix()
        if not relative or relative == ".":
            return [base]
        return sorted(path for path in base.glob(relative) if path.is_dir())
    return sorted(path for path in root.glob(cleaned) if path.is_dir())


def expand_members(
    root: Path, members: tuple[str, ...], exclude: tuple[str, ...] = ()
) -> MemberExpansion:
    """Resolve member globs against ``root`` and apply exclusions.

    Parameters
    ----------
    root : Path
        Workspace root directory.
    members : tuple[str, ...]
        Member glob patterns, relative to ``root``.
    exclude : tuple[str, ...], optional
        Exclusion glob patterns, relative to ``root``; matched against each
        expanded directory's root-relative path.

    Returns
    -------
    MemberExpansion
        Matched directories, excluded directories and unmatched patterns.
    """
    selected: dict[Path, None] = {}
    excluded: dict[Path, None] = {}
    unmatched: list[str] = []
    for pattern in members:
        matched = False
        for directory in _glob_directories(root, pattern):
            resolved = directory.resolve()
            if _matches_any(resolved, root.resolve(), exclude):
                excluded.setdefault(resolved, None)
                continue
            matched = True
            selected.setdefault(resolved, None)
        if not matched:
            unmatched.append(pattern)
    return MemberExpansion(
        directories=tuple(sorted(selected)),
        excluded=tuple(sorted(excluded)),
        unmatched_patterns=tuple(unmatched),
    )


def is_excluded_from_workspace(
    project_root: Path, workspace_root: Path, manifest: PyProjectToml
) -> bool:
    """Return whether ``project_root`` matches an exclusion of the workspace."""
    table = manifest.workspace
    if table is None:
        return False
    return _matches_any(project_root.resolve(), workspace_root.resolve(), table.exclude)


def is_included_in_workspace(
    project_root: Path, workspace_root: Path, manifest: PyProjectToml
) -> bool:
    """Return whether ``project_root`` is an (expanded, non-excluded) member."""
    table = manifest.workspace
    if table is None:
        return False
    expansion = expand_members(workspace_root, table.members, table.exclude)
    return project_root.resolve() in expansion.directories


def find_project_root(path: Path) -> Path:
    """Return the nearest directory at or above ``path`` containing a manifest.

    Raises
    ------
    ManifestNotFoundError
        If no ancestor contains a ``pyproject.toml``.
    """
    start = path.resolve()
    if start.is_file():
        start = start.parent
    for candidate in (start, *start.parents):
        if (candidate / MANIFEST_NAME).is_file():
            return candidate
    raise ManifestNotFoundError(start / MANIFEST_NAME)


@dataclass(frozen=True, slots=True)
class Workspace:
    """A set of packages locked and installed together.

    Attributes
    ----------
    root : Path
        Workspace root directory.
    manifest : PyProjectToml
        Manifest of the workspace root.
    members : dict[str, WorkspaceMember]
        Members keyed by normalised package name.
    unmatched_patterns : tuple[str, ...]
        Member patterns that resolved to no directory.
    excluded : tuple[Path, ...]
        Directories removed by exclusion patterns.
    current_project : str | None
        Member the discovery started from; ``None`` for a virtual root.
    project_environment : Path | None
        Explicit project environment location, overriding ``<root>/.venv``.
    """

    root: Path
    manifest: PyProjectToml
    members: dict[str, WorkspaceMember]
    unmatched_patterns: tuple[str, ...] = ()
    excluded: tuple[Path, ...] = ()
    current_project: str | None = None
    project_environment: Path | None = field(default=None)

    @classmethod
    def from_root(
        cls,
        root: Path,
        *,
        manifest: PyProjectToml | None = None,
        current_project: str | None = None,
        project_environment: Path | None = None,
    ) -> Workspace:
        """Build the workspace rooted at ``root``.

        Parameters
        ----------
        root : Path
            Directory holding the root ``pyproject.toml``.
        manifest : PyProjectToml | None, optional
            Already-loaded root manifest.
        current_project : str | None, optional
            Member the caller is operating from.
        project_environment : Path | None, optional
            Environment location override.

        Returns
        -------
        Workspace
            Workspace with every member loaded.

        Raises
        ------
        WorkspaceMemberError
            If a matched directory has no manifest or no ``[project]`` table,
            or two members share a name.
        ManifestError
            If the root manifest declares neither ``[project]`` nor a workspace.
        """
        root = root.resolve()
        manifest = manifest if manifest is not None else load_pyproject(root)
        logger = with_fields(LOGGER, operation="discover", workspace_root=str(root))
        members: dict[str, WorkspaceMember] = {}

        if manifest.project is not None:
            name = manifest.project.normalized_name
            members[name] = WorkspaceMember(name=name, root=root, manifest=manifest, is_root=True)
        elif manifest.workspace is None:
            msg = f"`{root / MANIFEST_NAME}` declares neither `[project]` nor `[tool.uv.workspace]`"
            raise ManifestError(msg, path=root / MANIFEST_NAME)

        expansion = MemberExpansion(directories=())
        table = manifest.workspace
        if table is not None:
            expansion = expand_members(root, table.members, table.exclude)
            for directory in expansion.directories:
                if directory == root:
                    continue
                member = _load_member(root, directory)
                existing = members.get(member.name)
                if existing is not None and existing.root != member.root:
                    msg = (
                        f"Two workspace members are both named `{member.name}`: "
                        f"`{existing.root}` and `{member.root}`"
                    )
                    raise WorkspaceMemberError(msg, workspace_root=root, member=member.root)
                members[member.name] = member
            for pattern in expansion.unmatched_patterns:
                logger.warning("Workspace member pattern matched no package: %s", pattern)

        logger.info(
            "Discovered workspace with %d member(s)",
            len(members),
            extra={"virtual": manifest.project is None},
        )
        return cls(
            root=root,
            manifest=manifest,
            members=dict(sorted(members.items())),
            unmatched_patterns=expansion.unmatched_patterns,
            excluded=expansion.excluded,
            current_project=current_project,
            project_environment=project_environment,
        )

    @property
    def is_virtual(self) -> bool:
        """Return ``True`` when the root declares no package of its own."""
        return self.manifest.project is None

    @property
    def root_sources(self) -> dict[str, SourceTable]:
        return self.manifest.sources

    @property
    def venv(self) -> Path:
        """Return the project environment path."""
        if self.project_environment is None:
            return self.root / VENV_NAME
        if self.project_environment.is_absolute():
            return self.project_environment
        return self.root / self.project_environment

    @property
    def lock_path(self) -> Path:
        return self.root / LOCK_NAME

    def member(self, name: str) -> WorkspaceMember:
        """Return the member called ``name`` (any PEP 503 spelling).

        Raises
        ------
        MemberNotFoundError
            If no member has that name.
        """
        normalized = normalize_name(name)
        try:
            return self.members[normalized]
        except KeyError:
            raise MemberNotFoundError(name, available=list(self.members)) from None

    def __iter__(self) -> Iterator[WorkspaceMember]:
        return iter(self.members.values())

    def __len__(self) -> int:
        return len(self.members)


def _load_member(workspace_root: Path, directory: Path) -> WorkspaceMember:
    try:
        manifest = load_pyproject(directory / MANIFEST_NAME)
    except ManifestNotFoundError:
        msg = f"Workspace member `{directory}` is missing a `{MANIFEST_NAME}`"
        raise WorkspaceMemberError(msg, workspace_root=workspace_root, member=directory) from None
    if manifest.project is None:
        msg = f"Workspace member `{directory}` is missing a `[project]` table"
        raise WorkspaceMemberError(msg, workspace_root=workspace_root, member=directory)
    name = manifest.project.normalized_name
    return WorkspaceMember(name=name, root=directory, manifest=manifest)


def discover_workspace(
    path: Path,
    *,
    stop_discovery_at: Path | None = None,
    project_environment: Path | None = None,
) -> Workspace:
    """Find the workspace that owns the project containing ``path``.

    The nearest ``pyproject.toml`` at or above ``path`` is the project. If it
    declares a workspace, it is the root. Otherwise each ancestor with a
    workspace table is checked: an ancestor that excludes the project ends
    the search, and the first ancestor that includes it is the root. Without
    a matching ancestor the project is its own single-member workspace.

    Parameters
    ----------
    path : Path
        A file or directory inside the project.
    stop_discovery_at : Path | None, optional
        Do not look for workspace roots above this directory.
    project_environment : Path | None, optional
        Environment location override passed to the workspace.

    Returns
    -------
    Workspace
        The discovered workspace.

    Raises
    ------
    ManifestNotFoundError
        If no ``pyproject.toml`` exists at or above ``path``.
    """
    project_root = find_project_root(path)
    project_manifest = load_pyproject(project_root / MANIFEST_NAME)
    current = project_manifest.project.normalized_name if project_manifest.project else None
    logger = with_fields(LOGGER, operation="discover", project_root=str(project_root))

    if project_manifest.workspace is not None:
        logger.debug("Project is the workspace root")
        return Workspace.from_root(
            project_root,
            manifest=project_manifest,
            current_project=current,
            project_environment=project_environment,
        )

    stop = stop_discovery_at.resolve() if stop_discovery_at is not None else None
    if stop != project_root:
        for ancestor in project_root.parents:
            manifest_path = ancestor / MANIFEST_NAME
            if manifest_path.is_file():
                manifest = load_pyproject(manifest_path)
                if manifest.workspace is not None:
                    if is_excluded_from_workspace(project_root, ancestor, manifest):
                        logger.debug("Project is excluded by workspace at %s", ancestor)
                        break
                    if is_included_in_workspace(project_root, ancestor, manifest):
                        logger.debug("Found workspace root at %s", ancestor)
                        return Workspace.from_root(
                            ancestor,
                            manifest=manifest,
                            current_project=current,
                            project_environment=project_environment,
                        )
                    logger.debug("Workspace at %s does not include the project", ancestor)
            if stop is not None and ancestor == stop:
                break

    logger.debug("No enclosing workspace; treating the project as its own workspace")
    return Workspace.from_root(
        project_root,
        manifest=project_manifest,
        current_project=current,
        project_environment=project_environment,
    )
