"""Shared fixtures for workspace tooling tests.

Workspaces are laid out under ``tmp_path`` from inline TOML snippets so each
test reads as the repository it exercises.
"""

from __future__ import annotations

import os
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from uvworkspace.settings import get_settings

type WriteFile = Callable[[Path, str], Path]
type MakeProject = Callable[..., Path]
type InstallDistribution = Callable[..., Path]


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content).lstrip(), encoding="utf-8")
    return path


@pytest.fixture
def write_file() -> WriteFile:
    """Return a helper writing dedented ``content`` to ``path``."""
    return _write


@pytest.fixture
def make_project() -> MakeProject:
    """Return a helper creating a package directory with a ``pyproject.toml``.

    The helper accepts the directory, the project name and optional
    ``requires_python``, ``dependencies`` and extra TOML appended verbatim.
    """

    def _make(
        directory: Path,
        name: str,
        *,
        requires_python: str | None = None,
        dependencies: list[str] | None = None,
        extra: str = "",
    ) -> Path:
        lines = ["[project]", f'name = "{name}"', 'version = "0.1.0"']
        if requires_python is not None:
            lines.append(f'requires-python = "{requires_python}"')
        deps = ", ".join(f'"{dep}"' for dep in dependencies or [])
        lines.append(f"dependencies = [{deps}]")
        content = "\n".join(lines) + "\n" + textwrap.dedent(extra).lstrip()
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "pyproject.toml").write_text(content, encoding="utf-8")
        return directory

    return _make


@pytest.fixture
def install_distribution() -> InstallDistribution:
    """Return a helper writing a ``.dist-info`` directory into ``site_packages``.

    ``scripts`` become ``console_scripts`` entry points; ``recorded`` names are
    listed in ``RECORD`` as files of the environment's ``bin`` directory.
    """

    def _install(
        site_packages: Path,
        name: str,
        version: str = "1.0",
        *,
        scripts: tuple[str, ...] = (),
        recorded: tuple[str, ...] = (),
    ) -> Path:
        dist_info = site_packages / f"{name.replace('-', '_')}-{version}.dist-info"
        dist_info.mkdir(parents=True, exist_ok=True)
        metadata = f"Metadata-Version: 2.1\nName: {name}\nVersion: {version}\n"
        (dist_info / "METADATA").write_text(metadata, encoding="utf-8")
        if scripts:
            lines = ["[console_scripts]", *(f"{script} = {name}:main" for script in scripts)]
            (dist_info / "entry_points.txt").write_text("\n".join(lines) + "\n", encoding="utf-8")
        record = [f"{dist_info.name}/METADATA,,", *(f"../../../bin/{exe},," for exe in recorded)]
        (dist_info / "RECORD").write_text("\n".join(record) + "\n", encoding="utf-8")
        return dist_info

    return _install


@pytest.fixture
def albatross_workspace(tmp_path: Path, make_project: MakeProject) -> Path:
    """A root package workspace with two library members and one excluded seed.

    Layout::

        albatross/            root package, depends on bird-feeder
        packages/bird-feeder  depends on tqdm-ish (workspace source)
        packages/seeds        excluded from the workspace
        packages/tqdm-ish     plain member
    """
    root = tmp_path / "albatross"
    make_project(
        root,
        "albatross",
        requires_python=">=3.10",
        dependencies=["bird-feeder", "tqdm>=4,<5"],
        extra="""
        [tool.uv.sources]
        bird-feeder = { workspace = true }
        tqdm = { git = "https://github.com/tqdm/tqdm", tag = "v4.66.0" }

        [tool.uv.workspace]
        members = ["packages/*"]
        exclude = ["packages/seeds"]
        """,
    )
    make_project(
        root / "packages" / "bird-feeder",
        "bird-feeder",
        requires_python=">=3.8",
        dependencies=["anyio>=4", "tqdm-ish"],
        extra="""
        [tool.uv.sources]
        tqdm-ish = { workspace = true }
        """,
    )
    make_project(root / "packages" / "tqdm-ish", "tqdm-ish", requires_python=">=3.9,<3.13")
    make_project(root / "packages" / "seeds", "seeds", requires_python=">=3.12")
    return root


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep ``UVWS_*`` variables of the developer shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("UVWS_") or key == "UV_PROJECT_ENVIRONMENT":
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
