"""Consistency checks for workspaces and documentation configuration.

Each check returns :class:`Finding` records instead of raising, so one run
reports every problem. Findings carry a stable code:

========================================  ========
Code                                      Severity
========================================  ========
``nav-missing-target``                    error
``nav-duplicate-target``                  warning
``nav-orphan-page``                       info
``markdown-extension-duplicate``          warning
``workspace-pattern-unmatched``           error
``workspace-source-not-member``           error
``requires-python-invalid``               error
``requires-python-empty``                 error
``requires-python-disjoint``              warning
========================================  ========

Errors always fail a run; warnings fail it only in strict mode.
"""

from __future__ import annotations

import posixpath
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pathspec import GitIgnoreSpec

from uvworkspace.errors import RequiresPythonError
from uvworkspace.logging import get_logger
from uvworkspace.manifest import MANIFEST_NAME
from uvworkspace.navigation import docs_pages, markdown_extension_names
from uvworkspace.requires_python import RequiresPython, intervals_for
from uvworkspace.sources import effective_sources

if TYPE_CHECKING:
    from collections.abc import Iterable

    from uvworkspace.navigation import DocsConfig
    from uvworkspace.workspace import Workspace

__all__ = [
    "CheckReport",
    "Finding",
    "Severity",
    "check_markdown_extensions",
    "check_navigation",
    "check_requires_python",
    "check_sources",
    "check_workspace",
    "run_checks",
]

LOGGER = get_logger(__name__)

type Severity = Literal["error", "warning", "info"]


@dataclass(frozen=True, slots=True)
class Finding:
    """A single consistency problem."""

    code: str
    severity: Severity
    message: str
    path: str | None = None


@dataclass(frozen=True, slots=True)
class CheckReport:
    """Findings from a check run."""

    findings: tuple[Finding, ...] = field(default_factory=tuple)

    def count(self, severity: Severity) -> int:
        return sum(1 for finding in self.findings if finding.severity == severity)

    def failed(self, *, strict: bool = False) -> bool:
        """Return whether the run fails: on errors, or on warnings when ``strict``."""
        if self.count("error"):
            return True
        return strict and self.count("warning") > 0


def _normalize_target(target: str) -> str:
    path = target.partition("#")[0].strip()
    return posixpath.normpath(path.removeprefix("./")) if path else path


def _display(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def _not_in_nav_spec(config: DocsConfig) -> GitIgnoreSpec | None:
    """Return the gitignore-style ``not_in_nav`` patterns, matched against ``docs_dir``."""
    raw = config.raw.get("not_in_nav")
    if not isinstance(raw, str) or not raw.strip():
        return None
    return GitIgnoreSpec.from_lines(raw.splitlines())


def check_navigation(config: DocsConfig) -> list[Finding]:
    """Validate the ``nav`` tree of ``config`` against its ``docs_dir``.

    Parameters
    ----------
    config : DocsConfig
        Loaded documentation configuration.

    Returns
    -------
    list[Finding]
        Missing targets, duplicate targets and orphan pages. A configuration
        without ``nav`` lets the site generator build the navigation, so
        nothing is reported for it.
    """
    if config.nav is None:
        return []
    config_path = str(config.path)
    findings: list[Finding] = []
    targets: list[str] = []
    for entry in config.nav_entries:
        if entry.external:
            continue
        target = _normalize_target(entry.path)
        targets.append(target)
        if not (config.docs_dir / target).is_file():
            label = " > ".join([*entry.trail, entry.title or entry.path])
            findings.append(
                Finding(
                    code="nav-missing-target",
                    severity="error",
                    message=f"Nav entry `{label}` points at missing document `{entry.path}`",
                    path=config_path,
                )
            )

    for target, count in Counter(targets).items():
        if count > 1:
            findings.append(
                Finding(
                    code="nav-duplicate-target",
                    severity="warning",
                    message=f"Document `{target}` appears {count} times in nav",
                    path=config_path,
                )
            )

    referenced = set(targets)
    skipped = _not_in_nav_spec(config)
    for page in docs_pages(config.docs_dir):
        if page in referenced or (skipped is not None and skipped.match_file(page)):
            continue
        findings.append(
            Finding(
                code="nav-orphan-page",
                severity="info",
                message=f"Document `{page}` is not referenced by nav",
                path=str(config.docs_dir / page),
            )
        )
    return findings


def check_markdown_extensions(config: DocsConfig) -> list[Finding]:
    """Report Markdown extensions listed more than once."""
    counts = Counter(markdown_extension_names(config))
    return [
        Finding(
            code="markdown-extension-duplicate",
            severity="warning",
            message=f"Markdown extension `{name}` is listed {count} times",
            path=str(config.path),
        )
        for name, count in counts.items()
        if count > 1
    ]


def check_sources(workspace: Workspace) -> list[Finding]:
    """Report ``workspace = true`` sources that name a non-member."""
    findings: list[Finding] = []
    reported: set[tuple[str, str]] = set()
    for member in workspace.members.values():
        for package, (source, origin) in effective_sources(workspace, member).items():
            if source.kind != "workspace" or package in workspace.members:
                continue
            declared_in = workspace.root if origin == "root" else member.root
            key = (str(declared_in), package)
            if key in reported:
                continue
            reported.add(key)
            findings.append(
                Finding(
                    code="workspace-source-not-member",
                    severity="error",
                    message=(
                        f"`{package}` is declared as a workspace source "
                        "but is not a workspace member"
                    ),
                    path=_display(declared_in / MANIFEST_NAME, workspace.root),
                )
            )
    return findings


def check_requires_python(workspace: Workspace) -> list[Finding]:
    """Check member ``requires-python`` declarations individually and together."""
    findings: list[Finding] = []
    valid: dict[str, str] = {}
    for name, member in workspace.members.items():
        project = member.manifest.project
        if project is None or project.requires_python is None:
            continue
        manifest = _display(member.root / MANIFEST_NAME, workspace.root)
        try:
            intervals = intervals_for(project.requires_python)
        except RequiresPythonError as exc:
            findings.append(
                Finding("requires-python-invalid", "error", f"`{name}`: {exc.message}", manifest)
            )
            continue
        if not intervals:
            findings.append(
                Finding(
                    "requires-python-empty",
                    "error",
                    f"`{name}` declares `requires-python = {project.requires_python!r}`, "
                    "which no Python version satisfies",
                    manifest,
                )
            )
            continue
        valid[name] = project.requires_python

    if len(valid) > 1:
        shared = RequiresPython.intersection(valid.values())
        if shared is not None and shared.is_empty:
            bounds = ", ".join(f"{name} ({value})" for name, value in valid.items())
            findings.append(
                Finding(
                    "requires-python-disjoint",
                    "warning",
                    f"No Python version satisfies every member: {bounds}",
                    _display(workspace.root / MANIFEST_NAME, workspace.root),
                )
            )
    return findings


def check_workspace(workspace: Workspace) -> list[Finding]:
    """Run every workspace check."""
    manifest = _display(workspace.root / MANIFEST_NAME, workspace.root)
    findings = [
        Finding(
            code="workspace-pattern-unmatched",
            severity="error",
            message=f"Workspace member pattern `{pattern}` does not match any package",
            path=manifest,
        )
        for pattern in workspace.unmatched_patterns
    ]
    findings.extend(check_sources(workspace))
    findings.extend(check_requires_python(workspace))
    return findings


def run_checks(
    workspace: Workspace | None = None, docs: DocsConfig | None = None
) -> CheckReport:
    """Run the workspace and documentation checks that apply.

    Parameters
    ----------
    workspace : Workspace | None, optional
        Workspace to check.
    docs : DocsConfig | None, optional
        Documentation configuration to check.

    Returns
    -------
    CheckReport
        Every finding, workspace findings first.
    """
    findings: list[Finding] = []
    if workspace is not None:
        findings.extend(check_workspace(workspace))
    if docs is not None:
        findings.extend(check_navigation(docs))
        findings.extend(check_markdown_extensions(docs))
    _log_summary(findings)
    return CheckReport(tuple(findings))


def _log_summary(findings: Iterable[Finding]) -> None:
    counts = Counter(finding.severity for finding in findings)
    LOGGER.info(
        "Checks finished: %d error(s), %d warning(s), %d info",
        counts["error"],
        counts["warning"],
        counts["info"],
        extra={"operation": "check"},
    )
