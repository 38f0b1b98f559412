"""
CRUD operations for the PYQ collection
All database access of the pipeline and the read API goes through these functions
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, func, or_, String, cast
from sqlalchemy.orm import Session

from database import models
from ingestion.errors import DuplicateKeyConflict

SNAPSHOT_FIELDS = (
    "id", "exam_code", "level", "paper", "year", "question", "answer", "language",
    "topic_tags", "theme", "source_link", "verified",
)

IDENTITY_FIELDS = ("exam_code", "year", "question", "language")


# ==========================================
# SNAPSHOTS
# ==========================================

def to_snapshot(record: models.PYQ) -> Dict[str, Any]:
    """Plain dict copy of a row, safe to hand to worker threads"""
    snapshot = {field: getattr(record, field) for field in SNAPSHOT_FIELDS}
    if isinstance(snapshot["topic_tags"], list):
        snapshot["topic_tags"] = list(snapshot["topic_tags"])
    return snapshot


# ==========================================
# BATCH READS
# ==========================================

def get_batch_after(db: Session, last_id: int, limit: int, max_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """Next keyset batch (id > last_id, ascending) as snapshots"""
    query = db.query(models.PYQ).filter(models.PYQ.id > last_id)
    if max_id is not None:
        query = query.filter(models.PYQ.id <= max_id)
    rows = query.order_by(models.PYQ.id.asc()).limit(limit).all()
    return [to_snapshot(row) for row in rows]


def max_id(db: Session) -> int:
    """Highest id currently stored (0 for an empty table)"""
    return db.query(func.max(models.PYQ.id)).scalar() or 0


def count_all(db: Session) -> int:
    return db.query(func.count(models.PYQ.id)).scalar() or 0


def count_by_exam(db: Session) -> List[Tuple[str, int]]:
    """(exam_code, count) ordered by count descending"""
    total = func.count(models.PYQ.id)
    rows = db.query(models.PYQ.exam_code, total).group_by(models.PYQ.exam_code).order_by(
        total.desc(), models.PYQ.exam_code
    ).all()
    return [(exam or "", count) for exam, count in rows]


def count_by_language(db: Session) -> List[Tuple[str, int]]:
    """(language, count) ordered by count descending"""
    total = func.count(models.PYQ.id)
    rows = db.query(models.PYQ.language, total).group_by(models.PYQ.language).order_by(
        total.desc(), models.PYQ.language
    ).all()
    return [(language or "", count) for language, count in rows]


# ==========================================
# WRITES
# ==========================================

def apply_updates(db: Session, record_id: int, updates: Dict[str, Any]) -> int:
    """Write only the changed fields of one row (no commit)"""
    if not updates:
        return 0
    return db.query(models.PYQ).filter(models.PYQ.id == record_id).update(
        updates, synchronize_session=False
    )


def backup_snapshots(db: Session, snapshots: Sequence[Dict[str, Any]], reason: str) -> int:
    """Store deletion audit rows (no commit)"""
    for snapshot in snapshots:
        db.add(models.PYQBackup(
            pyq_id=snapshot["id"],
            reason=reason,
            payload=dict(snapshot),
        ))
    return len(snapshots)


def delete_records(db: Session, record_ids: Sequence[int], reason: str, backup: bool = True) -> int:
    """
    Delete rows by id, optionally writing a PYQBackup row for each (no commit).

    Returns:
        Number of rows deleted
    """
    if not record_ids:
        return 0
    ids = list(record_ids)
    if backup:
        rows = db.query(models.PYQ).filter(models.PYQ.id.in_(ids)).all()
        backup_snapshots(db, [to_snapshot(row) for row in rows], reason)
    return db.query(models.PYQ).filter(models.PYQ.id.in_(ids)).delete(synchronize_session=False)


def identity_filter(exam_code, year, question, language):
    """Filter clauses matching one identity key (NULL-safe)"""
    return (
        models.PYQ.exam_code.is_not_distinct_from(exam_code),
        models.PYQ.year.is_not_distinct_from(year),
        models.PYQ.question.is_not_distinct_from(question),
        models.PYQ.language.is_not_distinct_from(language),
    )


def find_by_identity(db: Session, exam_code, year, question, language,
                     exclude_id: Optional[int] = None) -> Optional[models.PYQ]:
    """Living record with the given identity key, if any"""
    query = db.query(models.PYQ).filter(*identity_filter(exam_code, year, question, language))
    if exclude_id is not None:
        query = query.filter(models.PYQ.id != exclude_id)
    return query.order_by(models.PYQ.id.asc()).first()


def insert_child(db: Session, fields: Dict[str, Any], parent_id: Optional[int] = None) -> models.PYQ:
    """
    Insert a language-split child (flushed, not committed).

    Raises:
        DuplicateKeyConflict: a record other than the parent already has the child's identity key
    """
    key = tuple(fields.get(name) for name in IDENTITY_FIELDS)
    if find_by_identity(db, *key, exclude_id=parent_id) is not None:
        raise DuplicateKeyConflict(key)

    child = models.PYQ(**fields)
    db.add(child)
    db.flush()
    return child


# ==========================================
# DEDUPLICATION
# ==========================================

def get_duplicate_candidates(db: Session) -> List[Dict[str, Any]]:
    """
    Id and identity key of every record whose key occurs more than once.

    One query: the GROUP BY ... HAVING count > 1 keys joined back to their rows,
    ordered by id. Grouping the rows is left to the caller.
    """
    key_columns = [getattr(models.PYQ, name) for name in IDENTITY_FIELDS]
    duplicated = (
        db.query(*key_columns)
        .group_by(*key_columns)
        .having(func.count(models.PYQ.id) > 1)
        .subquery()
    )
    rows = (
        db.query(models.PYQ.id, *key_columns)
        .join(duplicated, and_(*(
            column.is_not_distinct_from(duplicated.c[name])
            for name, column in zip(IDENTITY_FIELDS, key_columns)
        )))
        .order_by(models.PYQ.id.asc())
        .all()
    )
    return [dict(zip(("id",) + IDENTITY_FIELDS, row)) for row in rows]


# ==========================================
# INDEXES
# ==========================================

def ensure_indexes(bind) -> List[str]:
    """Create the read-path indexes that do not exist yet; returns the index names"""
    names = []
    for index in sorted(models.PYQ.__table__.indexes, key=lambda idx: idx.name):
        if not index.name.startswith("idx_pyq_"):
            continue
        index.create(bind=bind, checkfirst=True)
        names.append(index.name)
    return names


# ==========================================
# READ API
# ==========================================

def get_pyqs_for_themes(db: Session, exam: str, paper: str = "", level: str = "",
                        limit: int = 1000) -> List[models.PYQ]:
    """Records for the theme browser: verified first, then newest"""
    query = db.query(models.PYQ).filter(
        models.PYQ.exam_code == exam,
        func.length(models.PYQ.question) >= 10,
    )
    if level:
        query = query.filter(func.lower(models.PYQ.level) == level.lower())
    if paper:
        query = query.filter(models.PYQ.paper.ilike(f"%{paper}%"))
    return query.order_by(
        models.PYQ.verified.desc(), models.PYQ.year.desc(), models.PYQ.id.asc()
    ).limit(limit).all()


def search_archive(db: Session, exam: Optional[str] = None, year_from: Optional[int] = None,
                   year_to: Optional[int] = None, q: Optional[str] = None, language: Optional[str] = None,
                   skip: int = 0, limit: int = 20) -> Tuple[int, List[models.PYQ]]:
    """Filtered, paginated archive search; returns (total, page)"""
    query = db.query(models.PYQ)
    if exam:
        query = query.filter(models.PYQ.exam_code == exam)
    if year_from is not None:
        query = query.filter(models.PYQ.year >= year_from)
    if year_to is not None:
        query = query.filter(models.PYQ.year <= year_to)
    if language:
        query = query.filter(models.PYQ.language == language)
    if q:
        pattern = f"%{q}%"
        query = query.filter(or_(
            models.PYQ.paper.ilike(pattern),
            models.PYQ.theme.ilike(pattern),
            cast(models.PYQ.topic_tags, String).ilike(pattern),
        ))

    total = query.count()
    items = query.order_by(models.PYQ.year.desc(), models.PYQ.id.asc()).offset(skip).limit(limit).all()
    return total, items
