"""Extraction batch processing."""

from dmscout.workers.extraction.detector import Detection, HandleCandidate, HandleDetector
from dmscout.workers.extraction.runner import ExtractionRunner, JobProgress

__all__ = [
    "Detection",
    "ExtractionRunner",
    "HandleCandidate",
    "HandleDetector",
    "JobProgress",
]
