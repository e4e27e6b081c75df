"""Tests for workspace and documentation consistency checks."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from uvworkspace.checks import (
    CheckReport,
    Finding,
    check_markdown_extensions,
    check_navigation,
    check_requires_python,
    check_sources,
    check_workspace,
    run_checks,
)
from uvworkspace.navigation import DocsConfig, load_docs_config
from uvworkspace.workspace import Workspace

type MakeProject = Callable[..., Path]
type WriteFile = Callable[[Path, str], Path]


def _codes(findings: list[Finding]) -> list[str]:
    return [finding.code for finding in findings]


@pytest.fixture
def docs_site(tmp_path: Path, write_file: WriteFile) -> DocsConfig:
    """A site with a missing target, a duplicate and an orphan page."""
    for page in (
        "index.md",
        "guide.md",
        "orphan.md",
        "drafts/wip.md",
        ".hidden/secret.md",
    ):
        write_file(tmp_path / "docs" / page, "# page\n")
    path = write_file(
        tmp_path / "mkdocs.yml",
        """
        site_name: albatross
        not_in_nav: |
          /drafts/*
        markdown_extensions:
          - toc
          - attr_list
          - markdown.extensions.attr_list
          - pymdownx.highlight:
              linenums: true
          - pymdownx.highlight
        nav:
          - Home: index.md
          - Guide: guide.md#install
          - Reference:
              - Guide again: ./guide.md
              - Missing: missing.md
          - Source: https://github.com/example/albatross
        """,
    )
    return load_docs_config(path)


class TestCheckNavigation:
    """Tests for check_navigation."""

    def test_findings(self, docs_site: DocsConfig) -> None:
        """Missing, duplicate and orphan pages are reported once each."""
        findings = check_navigation(docs_site)
        assert _codes(findings) == ["nav-missing-target", "nav-duplicate-target", "nav-orphan-page"]
        missing, duplicate, orphan = findings
        assert missing.severity == "error"
        assert "Reference > Missing" in missing.message
        assert missing.path == str(docs_site.path)
        assert duplicate.severity == "warning"
        assert "`guide.md` appears 2 times" in duplicate.message
        assert orphan.severity == "info"
        assert orphan.path == str(docs_site.docs_dir / "orphan.md")

    def test_without_nav(self, tmp_path: Path, write_file: WriteFile) -> None:
        """Configurations without nav are not checked."""
        write_file(tmp_path / "docs" / "index.md", "# page\n")
        config = load_docs_config(write_file(tmp_path / "mkdocs.yml", "site_name: x\n"))
        assert check_navigation(config) == []

    @pytest.mark.parametrize(
        ("pattern", "skipped", "reported"),
        [
            ("drafts/", ["guide/drafts/wip.md", "drafts/wip.md"], ["guide/scratch.md", "top.md"]),
            ("scratch.md", ["guide/scratch.md"], ["drafts/wip.md", "top.md"]),
            ("/top.md", ["top.md"], ["guide/top.md", "guide/scratch.md"]),
        ],
    )
    def test_not_in_nav_gitignore_forms(
        self,
        tmp_path: Path,
        write_file: WriteFile,
        pattern: str,
        skipped: list[str],
        reported: list[str],
    ) -> None:
        """Directory, bare-name and anchored patterns follow gitignore rules."""
        pages = {"index.md", "top.md", "guide/top.md", "guide/scratch.md"}
        pages |= {"drafts/wip.md", "guide/drafts/wip.md"}
        for page in pages:
            write_file(tmp_path / "docs" / page, "# page\n")
        path = write_file(
            tmp_path / "mkdocs.yml",
            f"site_name: x\nnot_in_nav: |\n  {pattern}\nnav:\n  - index.md\n",
        )
        orphans = {
            Path(finding.path).relative_to(tmp_path / "docs").as_posix()
            for finding in check_navigation(load_docs_config(path))
        }
        assert orphans.isdisjoint(skipped)
        assert orphans.issuperset(reported)


class TestCheckMarkdownExtensions:
    """Tests for check_markdown_extensions."""

    def test_duplicates(self, docs_site: DocsConfig) -> None:
        """Extensions listed twice, in any spelling, are reported."""
        findings = check_markdown_extensions(docs_site)
        assert [finding.message for finding in findings] == [
            "Markdown extension `attr_list` is listed 2 times",
            "Markdown extension `pymdownx.highlight` is listed 2 times",
        ]
        assert {finding.severity for finding in findings} == {"warning"}


class TestWorkspaceChecks:
    """Tests for the workspace checks."""

    def test_consistent_workspace(self, albatross_workspace: Path) -> None:
        """A consistent workspace has no findings."""
        assert check_workspace(Workspace.from_root(albatross_workspace)) == []

    def test_unmatched_pattern(self, tmp_path: Path, make_project: MakeProject) -> None:
        """Member patterns matching nothing are errors."""
        make_project(
            tmp_path,
            "albatross",
            extra="""
            [tool.uv.workspace]
            members = ["packages/*"]
            """,
        )
        findings = check_workspace(Workspace.from_root(tmp_path))
        assert _codes(findings) == ["workspace-pattern-unmatched"]
        assert findings[0].path == "pyproject.toml"

    def test_workspace_source_not_member(
        self, albatross_workspace: Path, make_project: MakeProject
    ) -> None:
        """A root workspace source for a non-member is reported once."""
        make_project(
            albatross_workspace,
            "albatross",
            dependencies=["seeds"],
            extra="""
            [tool.uv.sources]
            seeds = { workspace = true }

            [tool.uv.workspace]
            members = ["packages/*"]
            exclude = ["packages/seeds"]
            """,
        )
        findings = check_sources(Workspace.from_root(albatross_workspace))
        assert _codes(findings) == ["workspace-source-not-member"]
        assert findings[0].path == "pyproject.toml"
        assert "`seeds`" in findings[0].message

    def test_member_source_not_member(
        self, albatross_workspace: Path, make_project: MakeProject
    ) -> None:
        """Member-declared sources point at the member manifest."""
        make_project(
            albatross_workspace / "packages" / "tqdm-ish",
            "tqdm-ish",
            extra="""
            [tool.uv.sources]
            seeds = { workspace = true }
            """,
        )
        findings = check_sources(Workspace.from_root(albatross_workspace))
        assert [finding.path for finding in findings] == ["packages/tqdm-ish/pyproject.toml"]


class TestCheckRequiresPython:
    """Tests for check_requires_python."""

    def _workspace(self, root: Path, make_project: MakeProject, **bounds: str) -> Workspace:
        make_project(
            root,
            "root",
            extra="""
            [tool.uv.workspace]
            members = ["libs/*"]
            """,
        )
        for name, bound in bounds.items():
            make_project(root / "libs" / name, name, requires_python=bound)
        return Workspace.from_root(root)

    def test_disjoint_members(self, tmp_path: Path, make_project: MakeProject) -> None:
        """Members with no common version produce a warning."""
        workspace = self._workspace(tmp_path, make_project, modern=">=3.12", legacy="<3.10")
        findings = check_requires_python(workspace)
        assert _codes(findings) == ["requires-python-disjoint"]
        assert findings[0].severity == "warning"
        assert "legacy (<3.10)" in findings[0].message

    def test_empty_member(self, tmp_path: Path, make_project: MakeProject) -> None:
        """A member admitting no version is an error."""
        workspace = self._workspace(tmp_path, make_project, broken=">=3.12,<3.10")
        findings = check_requires_python(workspace)
        assert _codes(findings) == ["requires-python-empty"]
        assert findings[0].path == "libs/broken/pyproject.toml"

    def test_invalid_member(self, tmp_path: Path, make_project: MakeProject) -> None:
        """Unparseable and unsupported specifiers are errors."""
        workspace = self._workspace(
            tmp_path, make_project, arbitrary="===3.10", garbage="python>=3"
        )
        findings = check_requires_python(workspace)
        assert _codes(findings) == ["requires-python-invalid", "requires-python-invalid"]

    def test_overlapping_members(self, tmp_path: Path, make_project: MakeProject) -> None:
        """Overlapping bounds are fine."""
        workspace = self._workspace(tmp_path, make_project, a=">=3.9", b=">=3.11,<3.14")
        assert check_requires_python(workspace) == []


class TestRunChecks:
    """Tests for run_checks and CheckReport."""

    def test_workspace_findings_first(
        self, albatross_workspace: Path, make_project: MakeProject, docs_site: DocsConfig
    ) -> None:
        """Workspace findings precede documentation findings."""
        make_project(albatross_workspace / "packages" / "late", "late", requires_python="<3.8")
        report = run_checks(Workspace.from_root(albatross_workspace), docs_site)
        codes = [finding.code for finding in report.findings]
        assert codes[0] == "requires-python-disjoint"
        assert "nav-missing-target" in codes[1:]

    def test_nothing_to_check(self) -> None:
        """No inputs means an empty, passing report."""
        report = run_checks()
        assert report.findings == ()
        assert not report.failed(strict=True)

    def test_failed(self) -> None:
        """Errors always fail; warnings only in strict mode."""
        warning = CheckReport((Finding("nav-duplicate-target", "warning", "dup"),))
        error = CheckReport((Finding("nav-missing-target", "error", "missing"),))
        info = CheckReport((Finding("nav-orphan-page", "info", "orphan"),))
        assert not warning.failed()
        assert warning.failed(strict=True)
        assert error.failed()
        assert not info.failed(strict=True)
        assert warning.count("warning") == 1
