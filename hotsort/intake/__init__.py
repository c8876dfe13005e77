"""Intake module: the stage, classify and commit pipeline."""

from .pipeline import IntakePipeline, CommitReport, LOW_CONFIDENCE_TAG

__all__ = [
    "IntakePipeline",
    "CommitReport",
    "LOW_CONFIDENCE_TAG",
]
