"""Dependency sources and install targets across workspace members.

Sources declared in the root ``[tool.uv.sources]`` apply to every member;
a member's own ``[tool.uv.sources]`` entry for the same package replaces the
root entry. Workspace members are always installed from the workspace, in
editable mode.

Two install surfaces exist. The project-level surface locks and installs
every member together. The single-package surface installs one member plus
the members it depends on, directly or transitively.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from uvworkspace.errors import SourceResolutionError
from uvworkspace.logging import get_logger
from uvworkspace.manifest import SourceTable, normalize_name

if TYPE_CHECKING:
    from uvworkspace.workspace import Workspace, WorkspaceMember

__all__ = [
    "InstallTargets",
    "ResolvedSource",
    "effective_sources",
    "install_targets",
    "member_dependencies",
    "resolve_sources",
]

LOGGER = get_logger(__name__)

type SourceOrigin = Literal["root", "member"]
type InstallScope = Literal["workspace", "package"]


@dataclass(frozen=True, slots=True)
class ResolvedSource:
    """A source entry after resolution against the workspace.

    Attributes
    ----------
    package : str
        Normalised package name the source applies to.
    source : SourceTable
        The declared source.
    origin : SourceOrigin
        Whether the entry comes from the root or from the member itself.
    member : str | None
        Workspace member the source resolves to, if any.
    editable : bool
        Whether the package is installed in editable mode.
    """

    package: str
    source: SourceTable
    origin: SourceOrigin
    member: str | None = None
    editable: bool = False


def effective_sources(
    workspace: Workspace, member: WorkspaceMember
) -> dict[str, tuple[SourceTable, SourceOrigin]]:
    """Return the sources that apply to ``member`` and where each comes from."""
    merged: dict[str, tuple[SourceTable, SourceOrigin]] = {
        name: (source, "root") for name, source in workspace.root_sources.items()
    }
    if not member.is_root:
        for name, source in member.sources.items():
            merged[name] = (source, "member")
    return dict(sorted(merged.items()))


def _member_at(workspace: Workspace, path: Path) -> str | None:
    resolved = path.resolve()
    for name, candidate in workspace.members.items():
        if candidate.root == resolved:
            return name
    return None


def resolve_sources(workspace: Workspace, member: WorkspaceMember) -> dict[str, ResolvedSource]:
    """Resolve the effective sources of ``member`` against the workspace.

    Parameters
    ----------
    workspace : Workspace
        Workspace owning ``member``.
    member : WorkspaceMember
        Member whose sources are resolved.

    Returns
    -------
    dict[str, ResolvedSource]
        Resolved sources keyed by package name.

    Raises
    ------
    SourceResolutionError
        If a ``workspace = true`` source names a package that is not a member.
    """
    resolved: dict[str, ResolvedSource] = {}
    for package, (source, origin) in effective_sources(workspace, member).items():
        match source.kind:
            case "workspace":
                if package not in workspace.members:
                    msg = (
                        f"Package `{package}` is declared as a workspace source in "
                        f"`{member.name}` but is not a workspace member"
                    )
                    raise SourceResolutionError(msg, package=package, member=member.name)
                resolved[package] = ResolvedSource(
                    package, source, origin, member=package, editable=True
                )
            case "path":
                base = workspace.root if origin == "root" else member.root
                target = _member_at(workspace, base / str(source.path))
                editable = True if target is not None else bool(source.editable)
                resolved[package] = ResolvedSource(
                    package, source, origin, member=target, editable=editable
                )
            case _:
                resolved[package] = ResolvedSource(package, source, origin)
    return resolved


def member_dependencies(workspace: Workspace, member: WorkspaceMember) -> list[str]:
    """Return the workspace members ``member`` depends on directly.

    A requirement counts when it names a workspace member and its effective
    source, if any, resolves to that member; a git or URL source for a
    member name points outside the workspace and does not count.
    """
    sources = resolve_sources(workspace, member)
    found: set[str] = set()
    for requirement in member.manifest.requirements():
        name = normalize_name(requirement.name)
        if name == member.name:
            continue
        source = sources.get(name)
        if source is not None:
            if source.member is not None:
                found.add(source.member)
            continue
        if name in workspace.members:
            found.add(name)
    return sorted(found)


@dataclass(frozen=True, slots=True)
class InstallTargets:
    """Members installed by a command surface."""

    scope: InstallScope
    members: tuple[str, ...]
    package: str | None = None


def install_targets(workspace: Workspace, package: str | None = None) -> InstallTargets:
    """Return the members installed for the whole workspace or for one package.

    Parameters
    ----------
    workspace : Workspace
        Discovered workspace.
    package : str | None, optional
        Member to install; ``None`` selects every member.

    Returns
    -------
    InstallTargets
        Scope and sorted member names.

    Raises
    ------
    MemberNotFoundError
        If ``package`` is not a workspace member.
    """
    if package is None:
        return InstallTargets(scope="workspace", members=tuple(workspace.members))

    start = workspace.member(package)
    seen = {start.name}
    queue = deque([start.name])
    while queue:
        current = workspace.members[queue.popleft()]
        for dependency in member_dependencies(workspace, current):
            if dependency not in seen:
                seen.add(dependency)
                queue.append(dependency)
    LOGGER.debug(
        "Install targets for %s: %s",
        start.name,
        sorted(seen),
        extra={"operation": "install_targets"},
    )
    return InstallTargets(scope="package", members=tuple(sorted(seen)), package=start.name)
