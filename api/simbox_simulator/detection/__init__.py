"""Suspicious cohort detection."""

from .cohort_detector import (
    CohortDetector,
    DetectionResult,
    SignatureVerdict,
    evaluate_signature_counts,
)

__all__ = [
    "CohortDetector",
    "DetectionResult",
    "SignatureVerdict",
    "evaluate_signature_counts",
]
