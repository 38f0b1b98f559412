"""
PYQ maintenance pipeline

Runs over the live pyqs table in a fixed order:
1. Stream   - validate, normalize, classify; write only changed fields (keyset batches)
2. Expand   - split merged multi-language questions into one child per language
3. Dedupe   - keep the earliest record of every identity key
4. Indexes  - ensure the read-path indexes exist
5. Report   - final counts per exam and language

Every pass re-derives its decisions from persisted state, so a crashed run is
recovered by running again.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any, Dict, List, Optional

import redis
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from database import crud
from database import redis_client
from ingestion.deduplicator import remove_duplicates
from ingestion.errors import ConnectionFailure, DuplicateKeyConflict, PipelineLocked, RecordValidationFailure
from ingestion.language_detector import (
    get_primary_language,
    is_multi_language,
    separate_languages,
)
from ingestion.normalizer import (
    normalize_answer,
    normalize_question,
    normalize_theme_name,
    plan_field_updates,
)
from ingestion.schemas import PipelineStatistics
from ingestion.theme_classifier import ThemeClassifier
from ingestion.validator import ensure_valid

log = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000
DEFAULT_MAX_WORKERS = 4

SPLIT_REASON = "multi_language_split"

# Fields a language-split child copies from its parent
INHERITED_FIELDS = ("exam_code", "level", "paper", "year", "topic_tags", "theme", "source_link", "verified")

_CONNECTION_ERRORS = (OperationalError, InterfaceError, DisconnectionError, redis.exceptions.ConnectionError)


class PipelineState(str, Enum):
    IDLE = "IDLE"
    STREAMING = "STREAMING"
    EXPANDING = "EXPANDING"
    DEDUPING = "DEDUPING"
    INDEX_MAINTENANCE = "INDEX_MAINTENANCE"
    REPORTING = "REPORTING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class RecordPlan:
    """Outcome of planning one record: delete it, or write these fields"""
    record_id: int
    updates: Dict[str, Any] = field(default_factory=dict)
    removal_reason: Optional[str] = None


# ==========================================
# PURE PLANNING
# ==========================================

def plan_record(snapshot: Dict[str, Any], classifier: ThemeClassifier, current_year: int) -> RecordPlan:
    """
    Decide what happens to one record.

    Validation runs on the raw question and again on the normalized one, since
    normalization can shrink a question below the minimum length.
    """
    record_id = snapshot["id"]
    try:
        ensure_valid(snapshot.get("year"), snapshot.get("question"), record_id, current_year)
        updates = plan_field_updates(snapshot)
        question = updates.get("question", snapshot.get("question"))
        ensure_valid(snapshot.get("year"), question, record_id, current_year)
    except RecordValidationFailure as failure:
        return RecordPlan(record_id, removal_reason=failure.reason)

    language = get_primary_language(question)
    if language != snapshot.get("language"):
        updates["language"] = language

    stored_theme = (snapshot.get("theme") or "").strip()
    if stored_theme:
        theme = normalize_theme_name(stored_theme)
    else:
        paper = updates.get("paper", snapshot.get("paper"))
        level = updates.get("level", snapshot.get("level"))
        theme = normalize_theme_name(classifier.classify(question, paper, level))
    if theme != (snapshot.get("theme") or ""):
        updates["theme"] = theme

    return RecordPlan(record_id, updates=updates)


def _answer_by_language(answer: str) -> Dict[str, str]:
    if not answer:
        return {}
    if is_multi_language(answer):
        return {segment.language: normalize_answer(segment.text) for segment in separate_languages(answer)}
    return {get_primary_language(answer): answer}


def plan_expansion(snapshot: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Children for a merged multi-language record, or [] when it stays as is.

    Each child inherits the parent's metadata; its answer is the same-language part
    of the parent's answer ("" when the answer has no part in that language).
    """
    question = snapshot.get("question") or ""
    if not is_multi_language(question):
        return []
    segments = separate_languages(question)
    if len(segments) < 2:
        return []

    answers = _answer_by_language(snapshot.get("answer") or "")
    children = []
    for segment in segments:
        child = {name: snapshot.get(name) for name in INHERITED_FIELDS}
        if isinstance(child["topic_tags"], list):
            child["topic_tags"] = list(child["topic_tags"])
        child["question"] = normalize_question(segment.text)
        child["language"] = segment.language
        child["answer"] = answers.get(segment.language, "")
        children.append(child)
    return children


# ==========================================
# ORCHESTRATOR
# ==========================================

class PYQPipeline:
    """
    One maintenance run over the pyqs table

    Args:
        db: Session bound to the store
        batch_size: Records per keyset batch
        max_workers: Threads used to plan a batch (1 = inline)
        dry_run: Plan and count only, write nothing
        backup: Write a PYQBackup row for every deleted record
        redis_conn: Client for the run lock and theme cache invalidation (None = neither)
    """

    def __init__(self, db: Session, batch_size: int = DEFAULT_BATCH_SIZE,
                 max_workers: int = DEFAULT_MAX_WORKERS, dry_run: bool = False,
                 backup: bool = True, redis_conn=None, lock_ttl_seconds: Optional[int] = None,
                 classifier: Optional[ThemeClassifier] = None, current_year: Optional[int] = None):
        self.db = db
        self.batch_size = max(1, int(batch_size))
        self.max_workers = max(1, int(max_workers))
        self.dry_run = dry_run
        self.backup = backup
        self.redis = redis_conn
        self.lock_ttl_seconds = lock_ttl_seconds or redis_client.LOCK_TTL_SECONDS
        self.classifier = classifier or ThemeClassifier()
        self.current_year = current_year or datetime.now().year
        self.state = PipelineState.IDLE
        self.stats = PipelineStatistics()

    def run(self) -> PipelineStatistics:
        """
        Run every pass in order.

        Raises:
            PipelineLocked: another run holds the lock
            ConnectionFailure: the store or Redis went away (committed batches remain)
        """
        token = uuid.uuid4().hex
        locked = False
        try:
            if self.redis is not None:
                locked = redis_client.acquire_pipeline_lock(token, self.lock_ttl_seconds, r=self.redis)
                if not locked:
                    raise PipelineLocked("another PYQ maintenance run holds the lock")

            self._stream()
            self._expand()
            self._dedupe()
            self._maintain_indexes()
            self._report()
            self.state = PipelineState.DONE
            return self.stats
        except _CONNECTION_ERRORS as exc:
            failed_in = self.state
            self.state = PipelineState.FAILED
            log.error("Pipeline failed in %s: %s", failed_in.value, exc)
            self._rollback_quietly()
            raise ConnectionFailure(str(exc)) from exc
        finally:
            if locked:
                self._release_lock(token)

    # ---------- passes ----------

    def _stream(self):
        self.state = PipelineState.STREAMING
        log.info("Step 1 (stream): batch_size=%s workers=%s dry_run=%s",
                 self.batch_size, self.max_workers, self.dry_run)
        planner = partial(plan_record, classifier=self.classifier, current_year=self.current_year)

        last_id = 0
        batch_number = 0
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            while True:
                batch = crud.get_batch_after(self.db, last_id, self.batch_size)
                if not batch:
                    break
                batch_number += 1
                last_id = batch[-1]["id"]
                if self.max_workers > 1:
                    plans = list(pool.map(planner, batch))
                else:
                    plans = [planner(snapshot) for snapshot in batch]
                self._apply_plans(batch, plans)
                log.info("Step 1 (stream): batch %s done, processed=%s updated=%s removed=%s",
                         batch_number, self.stats.processed, self.stats.updated, self.stats.invalid_removed)

    def _apply_plans(self, batch: List[Dict[str, Any]], plans: List[RecordPlan]):
        removals: Dict[str, List[int]] = {}
        for plan in plans:
            self.stats.processed += 1
            if plan.removal_reason:
                self.stats.add_removal(plan.removal_reason)
                removals.setdefault(plan.removal_reason, []).append(plan.record_id)
            elif plan.updates:
                self.stats.updated += 1
                if not self.dry_run:
                    crud.apply_updates(self.db, plan.record_id, plan.updates)
            else:
                self.stats.unchanged += 1

        if self.dry_run:
            return
        for reason, ids in removals.items():
            crud.delete_records(self.db, ids, reason, backup=self.backup)
        self.db.commit()

    def _expand(self):
        self.state = PipelineState.EXPANDING
        # Children get ids above the bound, so they are never re-scanned in this pass
        bound = crud.max_id(self.db)
        log.info("Step 2 (expand): scanning ids up to %s", bound)

        last_id = 0
        while True:
            batch = crud.get_batch_after(self.db, last_id, self.batch_size, max_id=bound)
            if not batch:
                break
            last_id = batch[-1]["id"]

            parents = []
            for snapshot in batch:
                children = plan_expansion(snapshot)
                if children:
                    parents.append((snapshot, children))
            if parents:
                self._replace_with_children(parents)

        log.info("Step 2 (expand): separated=%s created=%s conflicts=%s",
                 self.stats.multi_lang_separated, self.stats.multi_lang_created, self.stats.conflicts_skipped)

    def _replace_with_children(self, parents):
        if self.dry_run:
            for _, children in parents:
                self.stats.multi_lang_separated += 1
                self.stats.multi_lang_created += len(children)
            return

        # Insert and commit every child before any parent is deleted
        for snapshot, children in parents:
            for child in children:
                try:
                    crud.insert_child(self.db, child, parent_id=snapshot["id"])
                    self.stats.multi_lang_created += 1
                except DuplicateKeyConflict as conflict:
                    self.stats.conflicts_skipped += 1
                    log.debug("Skipping child of record %s: %s", snapshot["id"], conflict)
        self.db.commit()

        parent_ids = [snapshot["id"] for snapshot, _ in parents]
        crud.delete_records(self.db, parent_ids, SPLIT_REASON, backup=self.backup)
        self.db.commit()
        self.stats.multi_lang_separated += len(parent_ids)

    def _dedupe(self):
        self.state = PipelineState.DEDUPING
        groups, removed = remove_duplicates(self.db, dry_run=self.dry_run, backup=self.backup)
        self.stats.duplicate_groups = groups
        self.stats.duplicates_removed = removed

    def _maintain_indexes(self):
        self.state = PipelineState.INDEX_MAINTENANCE
        if self.dry_run:
            log.info("Step 4 (indexes): skipped (dry run)")
            return
        names = crud.ensure_indexes(self.db.connection())
        self.db.commit()
        self.stats.indexes_ensured = len(names)
        log.info("Step 4 (indexes): %s indexes ensured", len(names))

    def _report(self):
        self.state = PipelineState.REPORTING
        self.stats.final_count = crud.count_all(self.db)
        self.stats.by_exam = dict(crud.count_by_exam(self.db))
        self.stats.by_language = dict(crud.count_by_language(self.db))
        log.info("Step 5 (report): final_count=%s exams=%s", self.stats.final_count, len(self.stats.by_exam))

        if self.redis is not None and not self.dry_run:
            removed = redis_client.invalidate_theme_cache(r=self.redis)
            log.info("Step 5 (report): %s cached theme groupings invalidated", removed)

    # ---------- helpers ----------

    def _rollback_quietly(self):
        try:
            self.db.rollback()
        except _CONNECTION_ERRORS as exc:
            log.warning("Rollback after connection failure also failed: %s", exc)

    def _release_lock(self, token: str):
        try:
            redis_client.release_pipeline_lock(token, r=self.redis)
        except redis.exceptions.ConnectionError as exc:
            log.warning("Could not release pipeline lock (expires on its own): %s", exc)
