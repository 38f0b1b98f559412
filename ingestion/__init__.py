"""
PYQ Maintenance Pipeline Package

Five-pass pipeline over the previous-year-question collection:
1. Stream (validate → normalize → classify theme) → changed fields written back
2. Expand (script detection) → merged bilingual questions split per language
3. Dedupe (identity key) → earliest record of each group kept
4. Indexes → read-path indexes ensured
5. Report → final counts per exam and language

Every pass is idempotent: a second run over the same data changes nothing.
"""

from .errors import (
    PipelineError,
    ConnectionFailure,
    PipelineLocked,
    RecordValidationFailure,
    DuplicateKeyConflict,
)
from .normalizer import (
    normalize_exam,
    normalize_level,
    normalize_question,
    normalize_answer,
    normalize_topic_tags,
    normalize_theme_name,
    plan_field_updates,
)
from .language_detector import (
    LanguageSegment,
    get_primary_language,
    is_multi_language,
    separate_languages,
)
from .theme_classifier import ThemeClassifier, build_theme_tables, infer_theme_from_question
from .validator import validation_failure, ensure_valid
from .deduplicator import find_duplicate_groups, remove_duplicates
from .pipeline import PYQPipeline, PipelineState
from .schemas import PipelineStatistics, PipelineReport

__all__ = [
    # Errors
    "PipelineError",
    "ConnectionFailure",
    "PipelineLocked",
    "RecordValidationFailure",
    "DuplicateKeyConflict",

    # Step 1: Normalize
    "normalize_exam",
    "normalize_level",
    "normalize_question",
    "normalize_answer",
    "normalize_topic_tags",
    "normalize_theme_name",
    "plan_field_updates",

    # Step 1: Validate
    "validation_failure",
    "ensure_valid",

    # Step 1: Classify
    "ThemeClassifier",
    "build_theme_tables",
    "infer_theme_from_question",

    # Step 2: Language split
    "LanguageSegment",
    "get_primary_language",
    "is_multi_language",
    "separate_languages",

    # Step 3: Dedupe
    "find_duplicate_groups",
    "remove_duplicates",

    # Orchestration
    "PYQPipeline",
    "PipelineState",

    # Schemas
    "PipelineStatistics",
    "PipelineReport",
]
