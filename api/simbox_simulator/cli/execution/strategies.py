"""
Output strategies for the event engine.

ConsoleOutput prints status lines and interval stats to stderr;
QuietOutput prints nothing so that only the JSON summary reaches the user.
"""

from typing import Any

from simbox_simulator.cli.output import log_info, log_interval_metrics, log_success, log_warning
from simbox_simulator.core.engine import EnginePhase
from simbox_simulator.core.stats_reporter import IntervalReport
from simbox_simulator.detection.cohort_detector import DetectionResult


class QuietOutput:
    """Silent output (the JSON summary is printed by the command)."""

    def on_phase_change(self, phase: EnginePhase, message: str) -> None:
        pass

    def on_interval_complete(
        self, report: IntervalReport, detection: DetectionResult | None
    ) -> None:
        pass

    def on_run_complete(self, summary: dict[str, Any]) -> None:
        pass


class ConsoleOutput:
    """Human-readable progress on stderr.

    Args:
        show_metrics: Print the full metric table after each interval
    """

    def __init__(self, show_metrics: bool = True):
        self.show_metrics = show_metrics
        self.intervals_seen = 0

    def on_phase_change(self, phase: EnginePhase, message: str) -> None:
        if phase is EnginePhase.DONE:
            log_success(message)
        else:
            log_info(f"[bold]{phase.value.upper()}[/bold] {message}")

    def on_interval_complete(
        self, report: IntervalReport, detection: DetectionResult | None
    ) -> None:
        self.intervals_seen += 1

        if detection is None:
            log_info("Cohort detection disabled")
        elif detection.fired:
            log_warning(
                f"Suspicious cohort {detection.signature}: "
                f"{len(detection.member_ids)} devices in cell {detection.cell_id}"
            )
        else:
            log_info(f"No cohort flagged ({detection.reason})")

        if self.show_metrics:
            log_interval_metrics(report.metrics, report.simbox)
        else:
            log_info(
                f"Interval {self.intervals_seen}: "
                f"{report.metrics.get('tps', 0)} calls/s, {report.simbox}"
            )

    def on_run_complete(self, summary: dict[str, Any]) -> None:
        log_success(
            f"{summary['ordinary_calls']:,} calls, {summary['fraud_calls']:,} re-routed, "
            f"{summary['detections']} detection(s)"
        )
