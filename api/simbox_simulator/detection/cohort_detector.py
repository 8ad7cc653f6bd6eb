"""
Cohort detection.

SIM box members are relocated together, so after a few relocations they all
carry the same six-cell movement signature. Ordinary devices wander
independently and spread over many signatures. A signature shared by far more
devices than the rest of the top ranking is therefore flagged as a suspicious
cohort.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from simbox_simulator.config.schemas import DetectionSettings
from simbox_simulator.core.context import ms_to_datetime
from simbox_simulator.errors import DetectionQueryFailure
from simbox_simulator.persistence.store import SimboxStore, StoreTransaction


@dataclass(frozen=True)
class SignatureVerdict:
    """Decision over one ranking of signature counts.

    ``reason`` is one of "insufficient_signatures", "below_floor",
    "not_dominant" or "flagged".
    """

    fired: bool
    reason: str
    signature: str | None = None
    best: int = 0
    kth: int = 0


def evaluate_signature_counts(
    rows: Sequence[tuple[str, int]], settings: DetectionSettings
) -> SignatureVerdict:
    """Apply the dominance rule to ``(signature, how_many)`` rows.

    Rows must be ordered by count descending. Exactly ``view_size`` rows are
    required; fewer means there is not enough population to compare against.

    Examples:
        >>> rows = [("a", 250)] + [(f"s{i}", 90) for i in range(19)]
        >>> evaluate_signature_counts(rows, DetectionSettings()).fired
        True
        >>> rows = [("a", 150)] + [(f"s{i}", 80) for i in range(19)]
        >>> evaluate_signature_counts(rows, DetectionSettings()).reason
        'not_dominant'
    """
    if len(rows) < settings.view_size:
        return SignatureVerdict(False, "insufficient_signatures")

    signature, best = rows[0]
    kth = rows[settings.view_size - 1][1]

    if best <= settings.suspicious_size:
        return SignatureVerdict(False, "below_floor", signature, best, kth)
    if best <= settings.dominance_ratio * kth:
        return SignatureVerdict(False, "not_dominant", signature, best, kth)
    return SignatureVerdict(True, "flagged", signature, best, kth)


@dataclass
class DetectionResult:
    """Outcome of one detection pass."""

    fired: bool
    reason: str
    signature: str | None = None
    best: int = 0
    kth: int = 0
    cell_id: int | None = None
    member_ids: list[int] = field(default_factory=list)


class CohortDetector:
    """Finds the dominant movement signature and records its devices.

    Usage:
        detector = CohortDetector(store, settings.detection)
        result = detector.run(ctx.now_ms())
        if result.fired:
            print(result.signature, len(result.member_ids))
    """

    def __init__(self, store: SimboxStore, settings: DetectionSettings):
        self.store = store
        self.settings = settings

    def run(self, now_ms: int) -> DetectionResult:
        """Run one detection pass as a single transaction.

        Re-detecting a known signature refreshes its timestamps in place.

        Raises:
            DetectionQueryFailure: If any query or write fails. Nothing from
                the pass is kept.
        """
        try:
            return self.store.execute_atomic(lambda tx: self._detect(tx, now_ms))
        except Exception as e:
            raise DetectionQueryFailure(f"Cohort detection failed: {e}") from e

    def _detect(self, tx: StoreTransaction, now_ms: int) -> DetectionResult:
        rows = tx.query_top_signatures(self.settings.view_size)
        verdict = evaluate_signature_counts(rows, self.settings)

        if not verdict.fired:
            return DetectionResult(
                False, verdict.reason, verdict.signature, verdict.best, verdict.kth
            )

        members = tx.query_members_of(verdict.signature)
        if not members:
            # The ranking and the device rows disagree; nothing to record
            return DetectionResult(
                False, "no_members", verdict.signature, verdict.best, verdict.kth
            )

        detected_at = ms_to_datetime(now_ms)
        cell_id = members[0][1]
        member_ids = [device_id for device_id, _ in members]

        tx.upsert_many(
            "suspicious_cohorts",
            [
                {
                    "signature": verdict.signature,
                    "detected_at": detected_at,
                    "cell_id": cell_id,
                    "member_count": len(member_ids),
                }
            ],
        )
        tx.upsert_many(
            "suspicious_cohort_members",
            [
                {
                    "signature": verdict.signature,
                    "device_id": device_id,
                    "detected_at": detected_at,
                    "cell_id": cell_id,
                }
                for device_id in member_ids
            ],
        )

        return DetectionResult(
            True,
            verdict.reason,
            verdict.signature,
            verdict.best,
            verdict.kth,
            cell_id=cell_id,
            member_ids=member_ids,
        )
