"""
Record validation
A record failing any rule is unsalvageable and is deleted by the pipeline.
"""

from datetime import datetime
from typing import Any, Optional

from ingestion.errors import RecordValidationFailure

MIN_YEAR = 1990
MIN_QUESTION_LENGTH = 10


class RemovalReason:
    """Validation failure reasons (also used as backup reasons)"""
    MISSING_YEAR = "missing_year"
    INVALID_YEAR = "invalid_year"
    QUESTION_TOO_SHORT = "question_too_short"


def _as_year(raw: Any) -> Optional[int]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def validation_failure(year: Any, question: Any, current_year: Optional[int] = None) -> Optional[str]:
    """
    Return the reason a record is invalid, or None when it is valid.

    year must lie in [1990, current_year + 1]; the question must have at least
    10 characters after trimming.
    """
    if current_year is None:
        current_year = datetime.now().year

    if year is None or year == "":
        return RemovalReason.MISSING_YEAR
    parsed = _as_year(year)
    if parsed is None or parsed < MIN_YEAR or parsed > current_year + 1:
        return RemovalReason.INVALID_YEAR

    if len(str(question or "").strip()) < MIN_QUESTION_LENGTH:
        return RemovalReason.QUESTION_TOO_SHORT

    return None


def ensure_valid(year: Any, question: Any, record_id=None, current_year: Optional[int] = None):
    """Raise RecordValidationFailure when the record is invalid"""
    reason = validation_failure(year, question, current_year)
    if reason:
        raise RecordValidationFailure(reason, record_id)
