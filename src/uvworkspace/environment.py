"""Project virtual environment inspection.

The project environment lives at :attr:`Workspace.venv`. It is described by
the ``pyvenv.cfg`` file written when the environment was created; this module
reads that file and decides whether the environment can be reused for the
current Python request and ``Requires-Python`` bound, or must be recreated.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from packaging.version import Version

from uvworkspace.errors import InvalidEnvironmentError, MissingEnvironmentError
from uvworkspace.logging import get_logger, with_fields

if TYPE_CHECKING:
    from uvworkspace.python_request import PythonRequest
    from uvworkspace.requires_python import RequiresPython
    from uvworkspace.workspace import Workspace

__all__ = [
    "PYVENV_CFG",
    "EnvironmentDecision",
    "EnvironmentInfo",
    "find_environment",
    "read_environment",
    "read_pyvenv_cfg",
    "select_environment",
]

LOGGER = get_logger(__name__)

PYVENV_CFG = "pyvenv.cfg"

# virtualenv records `version_info = 3.12.4.final.0`; only the release is kept.
_RELEASE_RE = re.compile(r"^\d+(?:\.\d+)*")

type EnvironmentAction = Literal["reuse", "create", "recreate"]


def read_pyvenv_cfg(path: Path) -> dict[str, str]:
    """Parse the ``key = value`` lines of a ``pyvenv.cfg`` file."""
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        values[key.strip().lower()] = value.strip()
    return values


@dataclass(frozen=True, slots=True)
class EnvironmentInfo:
    """A virtual environment and the interpreter it was created from."""

    root: Path
    version: Version
    implementation: str = "cpython"
    home: Path | None = None

    @property
    def scripts_dir(self) -> Path:
        return self.root / ("Scripts" if os.name == "nt" else "bin")

    @property
    def executable(self) -> Path:
        return self.scripts_dir / ("python.exe" if os.name == "nt" else "python")

    @property
    def site_packages(self) -> Path:
        if os.name == "nt":
            return self.root / "Lib" / "site-packages"
        major, minor = self.version.release[:2]
        return self.root / "lib" / f"python{major}.{minor}" / "site-packages"


def read_environment(venv: Path) -> EnvironmentInfo:
    """Describe the virtual environment at ``venv``.

    Parameters
    ----------
    venv : Path
        Environment root directory.

    Returns
    -------
    EnvironmentInfo
        The environment and the interpreter version it records.

    Raises
    ------
    MissingEnvironmentError
        If the environment (its ``pyvenv.cfg``) does not exist.
    InvalidEnvironmentError
        If ``pyvenv.cfg`` is unreadable or records no usable interpreter version.
    """
    cfg = venv / PYVENV_CFG
    if not cfg.is_file():
        raise MissingEnvironmentError(venv)
    try:
        values = read_pyvenv_cfg(cfg)
    except UnicodeDecodeError as exc:
        raise InvalidEnvironmentError(venv, f"unreadable {PYVENV_CFG}: {exc.reason}") from exc
    raw_version = values.get("version_info") or values.get("version")
    if not raw_version:
        raise InvalidEnvironmentError(venv, "pyvenv.cfg does not record a Python version")
    release = _RELEASE_RE.match(raw_version)
    if release is None:
        raise InvalidEnvironmentError(venv, f"unparseable version `{raw_version}`")
    version = Version(release.group(0))
    home = values.get("home")
    return EnvironmentInfo(
        root=venv,
        version=version,
        implementation=values.get("implementation", "cpython").lower(),
        home=Path(home) if home else None,
    )


def find_environment(workspace: Workspace) -> EnvironmentInfo:
    """Return the project environment of ``workspace``; see :func:`read_environment`."""
    return read_environment(workspace.venv)


@dataclass(frozen=True, slots=True)
class EnvironmentDecision:
    """Whether the project environment is reused, and why."""

    action: EnvironmentAction
    reason: str
    venv: Path
    environment: EnvironmentInfo | None = None


def select_environment(
    workspace: Workspace,
    request: PythonRequest | None,
    requires_python: RequiresPython | None,
) -> EnvironmentDecision:
    """Decide whether the existing project environment can be reused.

    The environment is reused only when its interpreter satisfies the Python
    request and lies inside the ``Requires-Python`` bound.

    Parameters
    ----------
    workspace : Workspace
        Discovered workspace.
    request : PythonRequest | None
        Python request in effect, if any.
    requires_python : RequiresPython | None
        Workspace ``Requires-Python`` bound, if any.

    Returns
    -------
    EnvironmentDecision
        ``reuse``, ``create`` (no environment) or ``recreate`` with the reason.
    """
    logger = with_fields(LOGGER, operation="select_environment", venv=str(workspace.venv))
    try:
        environment = find_environment(workspace)
    except MissingEnvironmentError:
        logger.debug("No project environment")
        return EnvironmentDecision("create", "no environment exists", workspace.venv)
    except InvalidEnvironmentError as exc:
        logger.warning("Ignoring invalid project environment: %s", exc.message)
        return EnvironmentDecision("recreate", exc.message, workspace.venv)

    if request is not None and not request.satisfied_by(
        environment.version,
        implementation=environment.implementation,
        executable=environment.executable,
        prefix=environment.root,
    ):
        reason = f"interpreter {environment.version} does not meet the request `{request}`"
        logger.debug("Environment rejected: %s", reason)
        return EnvironmentDecision("recreate", reason, workspace.venv, environment)

    if requires_python is not None and not requires_python.contains(environment.version):
        reason = (
            f"interpreter {environment.version} does not meet the project's Python "
            f"requirement `{requires_python}`"
        )
        logger.debug("Environment rejected: %s", reason)
        return EnvironmentDecision("recreate", reason, workspace.venv, environment)

    return EnvironmentDecision(
        "reuse", "existing environment is compatible", workspace.venv, environment
    )
