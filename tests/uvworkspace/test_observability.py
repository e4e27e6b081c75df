"""Tests for uvworkspace.observability."""

from __future__ import annotations

from uvworkspace.checks import Finding
from uvworkspace.observability import (
    REGISTRY,
    record_command,
    record_findings,
    render_metrics,
)


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestRecordCommand:
    """Tests for record_command."""

    def test_counts_and_observes(self) -> None:
        """Each run increments the counter and the histogram."""
        labels = {"command": "metrics-test", "status": "success"}
        runs_before = _sample("uvws_command_runs_total", labels)
        count_before = _sample("uvws_command_duration_seconds_count", labels)
        record_command("metrics-test", "success", 0.5)
        record_command("metrics-test", "success", -1.0)
        assert _sample("uvws_command_runs_total", labels) == runs_before + 2
        assert _sample("uvws_command_duration_seconds_count", labels) == count_before + 2


class TestRecordFindings:
    """Tests for record_findings."""

    def test_labels_by_code_and_severity(self) -> None:
        """Findings are counted per code and severity."""
        labels = {"code": "nav-orphan-page", "severity": "info"}
        before = _sample("uvws_findings_total", labels)
        record_findings(
            [
                Finding("nav-orphan-page", "info", "a"),
                Finding("nav-orphan-page", "info", "b"),
            ]
        )
        assert _sample("uvws_findings_total", labels) == before + 2


class TestRenderMetrics:
    """Tests for render_metrics."""

    def test_text_exposition(self) -> None:
        """Rendered metrics use the Prometheus text format."""
        record_command("render-test", "error", 0.1)
        text = render_metrics()
        assert 'uvws_command_runs_total{command="render-test",status="error"} 1.0' in text
