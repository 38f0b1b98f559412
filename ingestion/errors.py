"""
Pipeline error taxonomy

Fatal:      ConnectionFailure, PipelineLocked  → run aborts, non-zero exit
Non-fatal:  RecordValidationFailure            → record deleted, counted, loop continues
            DuplicateKeyConflict               → child insert skipped, counted, loop continues

A theme classification miss is not an error (falls back to key terms / "General").
"""

from typing import Tuple


class PipelineError(Exception):
    """Base class for maintenance pipeline errors."""


class ConnectionFailure(PipelineError):
    """The persistent store (or the lock backend) cannot be reached."""


class PipelineLocked(PipelineError):
    """Another maintenance run holds the pipeline lock."""


class RecordValidationFailure(PipelineError):
    """A single record is structurally unsalvageable and must be deleted."""

    def __init__(self, reason: str, record_id=None):
        self.reason = reason
        self.record_id = record_id
        super().__init__(f"record {record_id} invalid: {reason}")


class DuplicateKeyConflict(PipelineError):
    """An insert would collide with a living record's identity key."""

    def __init__(self, key: Tuple):
        self.key = key
        super().__init__(f"identity key already exists: {key!r}")
