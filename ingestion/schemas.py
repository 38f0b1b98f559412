"""
Schemas for the PYQ maintenance pipeline
Run statistics (mutable, filled while the passes run) and the pydantic report built from them.
"""

from typing import Dict, List
from pydantic import BaseModel, Field


class PipelineStatistics:
    """Counters for one pipeline run"""

    def __init__(self):
        # Streaming pass
        self.processed = 0
        self.updated = 0
        self.unchanged = 0
        self.invalid_removed = 0
        self.removal_reasons: Dict[str, int] = {}
        # Expanding pass
        self.multi_lang_separated = 0
        self.multi_lang_created = 0
        self.conflicts_skipped = 0
        # Deduping pass
        self.duplicate_groups = 0
        self.duplicates_removed = 0
        # Index maintenance / reporting
        self.indexes_ensured = 0
        self.final_count = 0
        self.by_exam: Dict[str, int] = {}
        self.by_language: Dict[str, int] = {}

    @property
    def deleted(self) -> int:
        """Invalid records plus duplicates (language-split parents are counted separately)"""
        return self.invalid_removed + self.duplicates_removed

    def add_removal(self, reason: str):
        """Record a validator deletion"""
        self.invalid_removed += 1
        self.removal_reasons[reason] = self.removal_reasons.get(reason, 0) + 1


class ExamCount(BaseModel):
    """Record count for one exam code or language"""
    key: str
    count: int = Field(..., ge=0)


class PipelineReport(BaseModel):
    """Final report of a maintenance run (operator output / JSON)"""
    state: str = Field(..., description="Terminal pipeline state (DONE or FAILED)")
    dry_run: bool = False
    processed: int = Field(..., ge=0, description="Records read by the streaming pass")
    updated: int = Field(..., ge=0, description="Records with at least one rewritten field")
    unchanged: int = Field(..., ge=0)
    deleted: int = Field(..., ge=0, description="Invalid records plus removed duplicates")
    invalid_removed: int = Field(..., ge=0)
    duplicates_removed: int = Field(..., ge=0)
    multi_lang_separated: int = Field(..., ge=0, description="Merged records split into per-language children")
    multi_lang_created: int = Field(..., ge=0, description="Children inserted by the split")
    conflicts_skipped: int = Field(..., ge=0, description="Children skipped because the identity key already existed")
    final_count: int = Field(..., ge=0)
    removal_reasons: Dict[str, int] = Field(default_factory=dict)
    by_exam: List[ExamCount] = Field(default_factory=list)
    by_language: List[ExamCount] = Field(default_factory=list)

    @classmethod
    def from_statistics(cls, stats: PipelineStatistics, state: str, dry_run: bool = False) -> "PipelineReport":
        return cls(
            state=state,
            dry_run=dry_run,
            processed=stats.processed,
            updated=stats.updated,
            unchanged=stats.unchanged,
            deleted=stats.deleted,
            invalid_removed=stats.invalid_removed,
            duplicates_removed=stats.duplicates_removed,
            multi_lang_separated=stats.multi_lang_separated,
            multi_lang_created=stats.multi_lang_created,
            conflicts_skipped=stats.conflicts_skipped,
            final_count=stats.final_count,
            removal_reasons=dict(stats.removal_reasons),
            by_exam=[ExamCount(key=k, count=v) for k, v in stats.by_exam.items()],
            by_language=[ExamCount(key=k, count=v) for k, v in stats.by_language.items()],
        )
