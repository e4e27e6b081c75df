"""Prometheus metrics for ``uvws`` commands.

Metrics live on a module-level :class:`~prometheus_client.CollectorRegistry`
instead of the global default registry, so importing the package never
collides with metrics of a host application. :func:`render_metrics` returns
the text exposition format for scraping or debugging.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Final

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from uvworkspace.logging import get_logger, with_fields

if TYPE_CHECKING:
    from uvworkspace.checks import Finding

__all__ = [
    "COMMAND_DURATION_SECONDS",
    "COMMAND_RUNS_TOTAL",
    "FINDINGS_TOTAL",
    "REGISTRY",
    "record_command",
    "record_findings",
    "render_metrics",
]

LOGGER = get_logger(__name__)

REGISTRY: Final[CollectorRegistry] = CollectorRegistry(auto_describe=True)

COMMAND_RUNS_TOTAL: Final[Counter] = Counter(
    "uvws_command_runs_total",
    "Total uvws command invocations",
    labelnames=["command", "status"],
    registry=REGISTRY,
)

COMMAND_DURATION_SECONDS: Final[Histogram] = Histogram(
    "uvws_command_duration_seconds",
    "uvws command duration in seconds",
    labelnames=["command", "status"],
    registry=REGISTRY,
)

FINDINGS_TOTAL: Final[Counter] = Counter(
    "uvws_findings_total",
    "Consistency findings reported by uvws check",
    labelnames=["code", "severity"],
    registry=REGISTRY,
)


def record_command(command: str, status: str, duration_seconds: float) -> None:
    """Count one command run and observe its duration."""
    COMMAND_RUNS_TOTAL.labels(command=command, status=status).inc()
    COMMAND_DURATION_SECONDS.labels(command=command, status=status).observe(
        max(duration_seconds, 0.0)
    )
    with_fields(LOGGER, operation=command).debug(
        "Recorded command metrics",
        extra={"status": status, "duration_seconds": duration_seconds},
    )


def record_findings(findings: Iterable[Finding]) -> None:
    """Increment the findings counter for each finding."""
    for finding in findings:
        FINDINGS_TOTAL.labels(code=finding.code, severity=finding.severity).inc()


def render_metrics() -> str:
    """Return every registered metric in the Prometheus text format."""
    return generate_latest(REGISTRY).decode("utf-8")
