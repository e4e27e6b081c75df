"""Workspace-wide ``Requires-Python`` bounds.

Every member of a workspace may declare its own ``requires-python``. Because
members are locked together, the workspace bound is the *union* of the member
bounds: each PEP 440 specifier set is converted to a list of version
intervals, the lists are merged, and the lowest lower bound becomes the
effective minimum Python for the workspace.

Examples
--------
>>> from packaging.specifiers import SpecifierSet
>>> bound = RequiresPython.union([SpecifierSet(">=3.10"), SpecifierSet(">=3.9,<3.12")])
>>> str(bound)
'>=3.9'
>>> bound.contains("3.8")
False
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from functools import cmp_to_key
from typing import TYPE_CHECKING

from packaging.specifiers import InvalidSpecifier, Specifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from uvworkspace.errors import PythonRequestError, RequiresPythonError
from uvworkspace.logging import get_logger

if TYPE_CHECKING:
    from uvworkspace.workspace import Workspace

__all__ = [
    "Bound",
    "Interval",
    "RequiresPython",
    "find_requires_python",
    "intervals_for",
    "member_requires_python",
]

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Bound:
    """One end of a version interval; ``version=None`` means unbounded."""

    version: Version | None
    inclusive: bool = True

    @property
    def unbounded(self) -> bool:
        return self.version is None


UNBOUNDED = Bound(None, inclusive=False)


def _cmp_lower(a: Bound, b: Bound) -> int:
    if a.version is None or b.version is None:
        return (b.version is None) - (a.version is None)
    if a.version != b.version:
        return -1 if a.version < b.version else 1
    # An inclusive lower bound starts before an exclusive one.
    return (not a.inclusive) - (not b.inclusive)


def _cmp_upper(a: Bound, b: Bound) -> int:
    if a.version is None or b.version is None:
        return (a.version is None) - (b.version is None)
    if a.version != b.version:
        return -1 if a.version < b.version else 1
    return a.inclusive - b.inclusive


@dataclass(frozen=True, slots=True)
class Interval:
    """A contiguous range of versions between ``lower`` and ``upper``."""

    lower: Bound
    upper: Bound

    @property
    def is_empty(self) -> bool:
        if self.lower.version is None or self.upper.version is None:
            return False
        if self.lower.version > self.upper.version:
            return True
        if self.lower.version == self.upper.version:
            return not (self.lower.inclusive and self.upper.inclusive)
        return False

    def contains(self, version: Version) -> bool:
        low, high = self.lower, self.upper
        if low.version is not None and (
            version < low.version or (version == low.version and not low.inclusive)
        ):
            return False
        return not (
            high.version is not None
            and (version > high.version or (version == high.version and not high.inclusive))
        )

    def intersect(self, other: Interval) -> Interval:
        lower = self.lower if _cmp_lower(self.lower, other.lower) >= 0 else other.lower
        upper = self.upper if _cmp_upper(self.upper, other.upper) <= 0 else other.upper
        return Interval(lower, upper)

    def specifiers(self) -> list[str]:
        """Render the interval as PEP 440 specifier clauses."""
        low, high = self.lower, self.upper
        if (
            low.version is not None
            and low.version == high.version
            and low.inclusive
            and high.inclusive
        ):
            return [f"=={low.version}"]
        clauses: list[str] = []
        if low.version is not None:
            clauses.append(f"{'>=' if low.inclusive else '>'}{low.version}")
        if high.version is not None:
            clauses.append(f"{'<=' if high.inclusive else '<'}{high.version}")
        return clauses


def _bump(release: Sequence[int]) -> Version:
    """Return the first version past every version with the prefix ``release``."""
    bumped = [*release[:-1], release[-1] + 1]
    return Version(".".join(str(part) for part in bumped))


def _specifier_intervals(specifier: Specifier) -> list[Interval]:
    operator, raw = specifier.operator, specifier.version
    wildcard = raw.endswith(".*")
    try:
        version = Version(raw[:-2] if wildcard else raw)
    except InvalidVersion as exc:
        msg = f"Invalid version in specifier `{specifier}`"
        raise RequiresPythonError(msg, specifier=str(specifier), cause=exc) from exc

    match operator:
        case ">=":
            return [Interval(Bound(version), UNBOUNDED)]
        case ">":
            return [Interval(Bound(version, inclusive=False), UNBOUNDED)]
        case "<=":
            return [Interval(UNBOUNDED, Bound(version))]
        case "<":
            return [Interval(UNBOUNDED, Bound(version, inclusive=False))]
        case "==" if wildcard:
            return [Interval(Bound(version), Bound(_bump(version.release), inclusive=False))]
        case "==":
            return [Interval(Bound(version), Bound(version))]
        case "!=" if wildcard:
            return [
                Interval(UNBOUNDED, Bound(version, inclusive=False)),
                Interval(Bound(_bump(version.release)), UNBOUNDED),
            ]
        case "!=":
            return [
                Interval(UNBOUNDED, Bound(version, inclusive=False)),
                Interval(Bound(version, inclusive=False), UNBOUNDED),
            ]
        case "~=":
            prefix = version.release[:-1]
            return [Interval(Bound(version), Bound(_bump(prefix), inclusive=False))]
        case _:
            msg = f"Unsupported operator `{operator}` in `requires-python`"
            raise RequiresPythonError(msg, specifier=str(specifier))


def _normalize(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort ``intervals`` and merge the ones that overlap or touch."""
    ordered = sorted(
        (interval for interval in intervals if not interval.is_empty),
        key=cmp_to_key(lambda a, b: _cmp_lower(a.lower, b.lower)),
    )
    merged: list[Interval] = []
    for interval in ordered:
        if merged and _touches(merged[-1], interval):
            previous = merged[-1]
            keep = _cmp_upper(previous.upper, interval.upper) >= 0
            upper = previous.upper if keep else interval.upper
            merged[-1] = Interval(previous.lower, upper)
        else:
            merged.append(interval)
    return merged


def _touches(left: Interval, right: Interval) -> bool:
    """Return whether ``right`` (starting no earlier) overlaps or abuts ``left``."""
    high, low = left.upper, right.lower
    if high.version is None or low.version is None:
        return True
    if low.version < high.version:
        return True
    if low.version == high.version:
        return high.inclusive or low.inclusive
    return False


def _intersect_all(left: list[Interval], right: list[Interval]) -> list[Interval]:
    return _normalize(a.intersect(b) for a in left for b in right)


def intervals_for(specifiers: SpecifierSet | str) -> list[Interval]:
    """Return the normalised intervals admitted by a specifier set.

    Parameters
    ----------
    specifiers : SpecifierSet | str
        PEP 440 specifier set.

    Returns
    -------
    list[Interval]
        Disjoint, sorted intervals; empty when the set admits no version.

    Raises
    ------
    RequiresPythonError
        If the text is not a valid specifier set or uses ``===``.
    """
    if isinstance(specifiers, str):
        try:
            specifiers = SpecifierSet(specifiers)
        except InvalidSpecifier as exc:
            msg = f"Invalid `requires-python` specifier `{specifiers}`"
            raise RequiresPythonError(msg, specifier=specifiers, cause=exc) from exc
    result = [Interval(UNBOUNDED, UNBOUNDED)]
    for specifier in sorted(specifiers, key=str):
        result = _intersect_all(result, _specifier_intervals(specifier))
    return result


@dataclass(frozen=True, slots=True)
class RequiresPython:
    """A ``Requires-Python`` bound expressed as disjoint version intervals."""

    intervals: tuple[Interval, ...]

    @classmethod
    def from_specifiers(cls, specifiers: SpecifierSet | str) -> RequiresPython:
        return cls(tuple(intervals_for(specifiers)))

    @classmethod
    def union(cls, specifier_sets: Iterable[SpecifierSet | str]) -> RequiresPython | None:
        """Return the union of ``specifier_sets``, or ``None`` if there are none."""
        collected: list[Interval] | None = None
        for specifiers in specifier_sets:
            intervals = intervals_for(specifiers)
            collected = intervals if collected is None else _normalize([*collected, *intervals])
        if collected is None:
            return None
        return cls(tuple(collected))

    @classmethod
    def intersection(cls, specifier_sets: Iterable[SpecifierSet | str]) -> RequiresPython | None:
        """Return the versions admitted by every set, or ``None`` if there are none."""
        collected: list[Interval] | None = None
        for specifiers in specifier_sets:
            intervals = intervals_for(specifiers)
            collected = intervals if collected is None else _intersect_all(collected, intervals)
        if collected is None:
            return None
        return cls(tuple(collected))

    @property
    def is_empty(self) -> bool:
        return not self.intervals

    @property
    def lower_bound(self) -> Bound:
        """Return the effective minimum Python (unbounded when empty)."""
        return self.intervals[0].lower if self.intervals else UNBOUNDED

    @property
    def specifiers(self) -> SpecifierSet:
        """Return the bound as a PEP 440 specifier set.

        Single-version gaps are written as ``!=`` clauses. Wider gaps cannot
        be written as one specifier set, so the convex hull (lowest lower
        bound to highest upper bound) is returned for them. :meth:`contains`
        always uses the exact intervals.
        """
        if not self.intervals:
            return SpecifierSet("<0")
        hull = Interval(self.intervals[0].lower, self.intervals[-1].upper)
        clauses = hull.specifiers()
        for left, right in zip(self.intervals, self.intervals[1:], strict=False):
            if (
                left.upper.version is not None
                and left.upper.version == right.lower.version
                and not left.upper.inclusive
                and not right.lower.inclusive
            ):
                clauses.append(f"!={left.upper.version}")
        return SpecifierSet(",".join(clauses))

    def contains(self, version: Version | str) -> bool:
        """Return whether ``version`` satisfies the bound."""
        if isinstance(version, str):
            try:
                version = Version(version)
            except InvalidVersion as exc:
                raise PythonRequestError(version, "not a valid Python version") from exc
        return any(interval.contains(version) for interval in self.intervals)

    def __str__(self) -> str:
        return str(self.specifiers)


def member_requires_python(workspace: Workspace) -> dict[str, SpecifierSet]:
    """Return the ``requires-python`` declared by each member that has one."""
    declared: dict[str, SpecifierSet] = {}
    for name, member in workspace.members.items():
        project = member.manifest.project
        if project is None or project.requires_python is None:
            continue
        try:
            declared[name] = SpecifierSet(project.requires_python)
        except InvalidSpecifier as exc:
            msg = f"Invalid `requires-python` in member `{name}`: `{project.requires_python}`"
            raise RequiresPythonError(msg, specifier=project.requires_python, cause=exc) from exc
    return declared


def find_requires_python(workspace: Workspace) -> RequiresPython | None:
    """Compute the ``Requires-Python`` bound for ``workspace``.

    For a workspace with multiple packages, the bound is the union of the
    bounds of all the packages.

    Parameters
    ----------
    workspace : Workspace
        Discovered workspace.

    Returns
    -------
    RequiresPython | None
        Union of the member bounds, or ``None`` when no member declares one.
    """
    bound = RequiresPython.union(member_requires_python(workspace).values())
    LOGGER.debug(
        "Computed workspace Requires-Python: %s",
        bound,
        extra={"operation": "requires_python"},
    )
    return bound
