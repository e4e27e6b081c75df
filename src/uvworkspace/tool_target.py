"""Tool-run targets and the environment a tool runs in.

``uvx ruff@0.4.0 check`` runs the ``ruff`` command from ``ruff==0.4.0``. The
target is split into the executable name and the requirement to install; any
target that does not look like ``<package>@<version>`` is used verbatim.

When the tool environment is known, the installed distributions are read to
check that the requested package really provides the command, and the
``PATH`` and ``PYTHONPATH`` the command runs with are computed.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from importlib.metadata import Distribution, distributions
from pathlib import Path, PurePosixPath

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import InvalidName, canonicalize_name
from packaging.version import InvalidVersion, Version

from uvworkspace.errors import ToolTargetError
from uvworkspace.logging import get_logger

__all__ = [
    "InstalledPackage",
    "ToolRunCommand",
    "build_run_environment",
    "executable_provider_warning",
    "installed_packages",
    "matching_packages",
    "parse_target",
    "provider_name",
]

LOGGER = get_logger(__name__)


class ToolRunCommand(StrEnum):
    """How a tool run was invoked."""

    UVX = "uvx"
    TOOL_RUN = "uv tool run"

    def __str__(self) -> str:
        return self.value


def _is_package_name(value: str) -> bool:
    try:
        canonicalize_name(value, validate=True)
    except InvalidName:
        return False
    return True


def parse_target(target: str) -> tuple[str, str]:
    """Split a tool-run target into its command and requirement.

    Parameters
    ----------
    target : str
        Target as typed by the user, e.g. ``ruff`` or ``ruff@0.4.0``.

    Returns
    -------
    tuple[str, str]
        The executable to run and the requirement that provides it.

    Raises
    ------
    ToolTargetError
        If ``target`` is empty.

    Examples
    --------
    >>> parse_target("ruff@0.4.0")
    ('ruff', 'ruff==0.4.0')
    >>> parse_target("git+https://github.com/astral-sh/ruff@main")
    ('git+https://github.com/astral-sh/ruff@main', 'git+https://github.com/astral-sh/ruff@main')
    """
    if not target:
        msg = "Tool target must not be empty"
        raise ToolTargetError(msg)

    name, sep, version = target.partition("@")
    if not sep:
        return target, target
    if not version:
        LOGGER.debug("Ignoring empty version request in command")
        return target, target
    if not _is_package_name(name):
        LOGGER.debug("Ignoring non-package name `%s` in command", name)
        return target, target
    try:
        parsed = Version(version)
    except InvalidVersion:
        LOGGER.debug("Ignoring invalid version request `%s` in command", version)
        return target, target
    return name, f"{name}=={parsed}"


def provider_name(requirement: str) -> str | None:
    """Return the package named by ``requirement``, or ``None`` for URLs and paths."""
    try:
        return Requirement(requirement).name
    except InvalidRequirement:
        return None


def _prepend(entries: list[str], existing: str | None) -> str:
    parts = [*entries]
    if existing:
        parts.extend(part for part in existing.split(os.pathsep) if part)
    return os.pathsep.join(parts)


def build_run_environment(
    scripts_dir: Path,
    site_packages: list[Path],
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return the process environment for running a command in an environment.

    The scripts directory is placed first on ``PATH`` and the site-packages
    directories first on ``PYTHONPATH``; existing entries are kept after them.

    Parameters
    ----------
    scripts_dir : Path
        Environment ``bin`` (or ``Scripts``) directory.
    site_packages : list[Path]
        Environment site-packages directories.
    base_env : Mapping[str, str] | None, optional
        Environment to extend; defaults to ``os.environ``.

    Returns
    -------
    dict[str, str]
        A copy of ``base_env`` with ``PATH`` and ``PYTHONPATH`` updated.
    """
    env = dict(os.environ if base_env is None else base_env)
    env["PATH"] = _prepend([str(scripts_dir)], env.get("PATH"))
    env["PYTHONPATH"] = _prepend([str(path) for path in site_packages], env.get("PYTHONPATH"))
    return env


_SCRIPT_GROUPS = frozenset({"console_scripts", "gui_scripts"})
_SCRIPT_DIRS = frozenset({"bin", "Scripts"})


@dataclass(frozen=True, slots=True)
class InstalledPackage:
    """A distribution installed in an environment and the executables it provides."""

    name: str
    version: str | None = None
    executables: frozenset[str] = frozenset()

    def provides(self, executable: str) -> bool:
        return executable in self.executables


def _recorded_scripts(distribution: Distribution) -> set[str]:
    scripts: set[str] = set()
    for file in distribution.files or ():
        parts = PurePosixPath(str(file)).parts
        # RECORD lists scripts relative to site-packages, e.g. ``../../../bin/ruff``.
        if len(parts) >= 2 and ".." in parts and parts[-2] in _SCRIPT_DIRS:
            scripts.add(parts[-1].removesuffix(".exe"))
    return scripts


def installed_packages(site_packages: Path) -> list[InstalledPackage]:
    """Return the distributions installed in ``site_packages``.

    Executables come from the ``console_scripts`` and ``gui_scripts`` entry
    points and from the ``bin`` (or ``Scripts``) files listed in ``RECORD``.

    Parameters
    ----------
    site_packages : Path
        Environment site-packages directory.

    Returns
    -------
    list[InstalledPackage]
        Installed packages sorted by normalised name; empty when the
        directory does not exist.
    """
    if not site_packages.is_dir():
        return []
    packages: dict[str, InstalledPackage] = {}
    for distribution in distributions(path=[str(site_packages)]):
        name = distribution.metadata.get("Name")
        if not name:
            continue
        executables = {
            entry_point.name
            for entry_point in distribution.entry_points
            if entry_point.group in _SCRIPT_GROUPS
        }
        executables |= _recorded_scripts(distribution)
        normalized = str(canonicalize_name(name))
        packages.setdefault(
            normalized,
            InstalledPackage(
                name=normalized,
                version=distribution.metadata.get("Version"),
                executables=frozenset(executables),
            ),
        )
    return [packages[name] for name in sorted(packages)]


def matching_packages(
    executable: str, packages: Iterable[InstalledPackage]
) -> list[InstalledPackage]:
    """Return the packages that provide ``executable``."""
    return [package for package in packages if package.provides(executable)]


def executable_provider_warning(
    executable: str,
    from_package: str,
    packages: Iterable[InstalledPackage],
    invoked_as: ToolRunCommand = ToolRunCommand.UVX,
) -> str | None:
    """Return a warning when ``from_package`` does not provide ``executable``.

    Parameters
    ----------
    executable : str
        Command about to run.
    from_package : str
        Package the command is expected to come from.
    packages : Iterable[InstalledPackage]
        Packages installed in the tool environment.
    invoked_as : ToolRunCommand, optional
        Invocation used in the suggested command.

    Returns
    -------
    str | None
        ``None`` when ``from_package`` provides the executable; otherwise a
        warning naming the dependencies that do, if any.
    """
    expected = str(canonicalize_name(from_package))
    providers = matching_packages(executable, packages)
    if any(package.name == expected for package in providers):
        return None
    prefix = f"An executable named `{executable}` is not provided by package `{from_package}`"
    match providers:
        case []:
            return f"{prefix}."
        case [provider]:
            suggestion = f"{invoked_as} --from {provider.name} {executable}"
            return (
                f"{prefix} but is available via the dependency `{provider.name}`. "
                f"Consider using `{suggestion}` instead."
            )
        case _:
            listed = "\n".join(f"- {package.name}" for package in providers)
            suggestion = f"{invoked_as} --from PKG {executable}"
            return (
                f"{prefix} but is available via the following dependencies:\n{listed}\n"
                f"Consider using `{suggestion}` instead."
            )
