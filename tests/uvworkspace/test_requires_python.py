"""Tests for workspace Requires-Python computation."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from packaging.specifiers import SpecifierSet
from packaging.version import Version

from uvworkspace.errors import ErrorCode, PythonRequestError, RequiresPythonError
from uvworkspace.requires_python import (
    RequiresPython,
    find_requires_python,
    intervals_for,
    member_requires_python,
)
from uvworkspace.workspace import Workspace

type MakeProject = Callable[..., Path]


class TestIntervals:
    """Tests for converting specifier sets to intervals."""

    def test_wildcard_equality(self) -> None:
        """``==3.11.*`` covers the 3.11 series only."""
        bound = RequiresPython.from_specifiers("==3.11.*")
        assert bound.contains("3.11.0")
        assert bound.contains("3.11.9")
        assert not bound.contains("3.12")
        assert bound.specifiers == SpecifierSet(">=3.11,<3.12")

    def test_compatible_release(self) -> None:
        """``~=`` bumps the second-to-last release segment."""
        assert RequiresPython.from_specifiers("~=3.10").contains("3.13")
        assert not RequiresPython.from_specifiers("~=3.10").contains("4.0")
        assert not RequiresPython.from_specifiers("~=3.10.2").contains("3.11")

    def test_exclusion_leaves_a_gap(self) -> None:
        """``!=`` splits the range and is written back as ``!=``."""
        bound = RequiresPython.from_specifiers(">=3.8,!=3.9.1")
        assert len(bound.intervals) == 2
        assert not bound.contains("3.9.1")
        assert bound.contains("3.9.2")
        assert bound.specifiers == SpecifierSet(">=3.8,!=3.9.1")

    def test_empty_set(self) -> None:
        """Contradictory clauses admit nothing."""
        bound = RequiresPython.from_specifiers(">=3.12,<3.10")
        assert bound.is_empty
        assert intervals_for(">=3.12,<3.10") == []
        assert bound.specifiers == SpecifierSet("<0")
        assert bound.lower_bound.unbounded

    def test_arbitrary_equality_rejected(self) -> None:
        """``===`` has no interval meaning."""
        with pytest.raises(RequiresPythonError, match="Unsupported operator"):
            intervals_for("===3.10")

    def test_invalid_text(self) -> None:
        """Text that is not a specifier set is rejected."""
        with pytest.raises(RequiresPythonError) as excinfo:
            intervals_for("python3")
        assert excinfo.value.code is ErrorCode.REQUIRES_PYTHON_INVALID
        assert excinfo.value.context == {"specifier": "python3"}

    def test_prereleases_are_contained(self) -> None:
        """Pre-releases inside the range are accepted."""
        assert RequiresPython.from_specifiers(">=3.9").contains(Version("3.13.0rc1"))

    def test_contains_rejects_invalid_version(self) -> None:
        """Unparseable versions raise PythonRequestError."""
        with pytest.raises(PythonRequestError, match="banana"):
            RequiresPython.from_specifiers(">=3.9").contains("banana")


class TestUnion:
    """Tests for RequiresPython.union."""

    def test_lowest_lower_bound_wins(self) -> None:
        """The union's minimum is the lowest member minimum."""
        bound = RequiresPython.union([SpecifierSet(">=3.10"), SpecifierSet(">=3.9,<3.12")])
        assert bound is not None
        assert str(bound) == ">=3.9"
        assert bound.lower_bound.version == Version("3.9")

    def test_touching_ranges_merge(self) -> None:
        """Adjacent ranges merge into one interval."""
        bound = RequiresPython.union(["<3.10", ">=3.10"])
        assert bound is not None
        assert len(bound.intervals) == 1
        assert bound.contains("3.10")

    def test_disjoint_ranges_keep_the_gap(self) -> None:
        """Versions between disjoint member bounds are not contained."""
        bound = RequiresPython.union(["<3.8", ">=3.10"])
        assert bound is not None
        assert bound.contains("3.7")
        assert not bound.contains("3.9")
        assert bound.contains("3.11")

    def test_no_sets(self) -> None:
        """An empty input has no bound."""
        assert RequiresPython.union([]) is None
        assert RequiresPython.intersection([]) is None


class TestIntersection:
    """Tests for RequiresPython.intersection."""

    def test_shared_versions(self) -> None:
        """Only versions admitted by every set remain."""
        bound = RequiresPython.intersection([">=3.8", "<3.11"])
        assert bound is not None
        assert bound.contains("3.10")
        assert not bound.contains("3.11")

    def test_disjoint(self) -> None:
        """Disjoint sets intersect to nothing."""
        bound = RequiresPython.intersection([">=3.12", "<3.10"])
        assert bound is not None
        assert bound.is_empty


class TestFindRequiresPython:
    """Tests for find_requires_python."""

    def test_union_of_members(self, albatross_workspace: Path) -> None:
        """Excluded projects do not contribute."""
        workspace = Workspace.from_root(albatross_workspace)
        declared = member_requires_python(workspace)
        assert declared == {
            "albatross": SpecifierSet(">=3.10"),
            "bird-feeder": SpecifierSet(">=3.8"),
            "tqdm-ish": SpecifierSet(">=3.9,<3.13"),
        }
        bound = find_requires_python(workspace)
        assert bound is not None
        assert str(bound) == ">=3.8"

    def test_none_declared(self, tmp_path: Path, make_project: MakeProject) -> None:
        """Without declarations there is no bound."""
        make_project(tmp_path, "albatross")
        assert find_requires_python(Workspace.from_root(tmp_path)) is None

    def test_invalid_member_declaration(self, tmp_path: Path, make_project: MakeProject) -> None:
        """An unparseable member bound names the member."""
        make_project(tmp_path, "albatross", requires_python="python>=3")
        with pytest.raises(RequiresPythonError, match="member `albatross`"):
            find_requires_python(Workspace.from_root(tmp_path))
