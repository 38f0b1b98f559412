"""
Duplicate removal
Groups records by identity key (exam_code, year, question, language) and keeps the
earliest one of every group.
"""

import logging
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy.orm import Session

from database import crud

log = logging.getLogger(__name__)

DUPLICATE_REASON = "duplicate"


def identity_key(record: Dict[str, Any]) -> Tuple:
    return tuple(record.get(field) for field in crud.IDENTITY_FIELDS)


def find_duplicate_groups(records: Iterable[Dict[str, Any]]) -> List[List[int]]:
    """
    Ids of every identity group with more than one member, each sorted ascending.

    group[0] is the record to keep, group[1:] are to delete.
    """
    groups: Dict[Tuple, List[int]] = {}
    for record in records:
        groups.setdefault(identity_key(record), []).append(record["id"])
    return [sorted(ids) for ids in groups.values() if len(ids) > 1]


def ids_to_delete(groups: List[List[int]]) -> List[int]:
    return [record_id for group in groups for record_id in group[1:]]


def remove_duplicates(db: Session, dry_run: bool = False, backup: bool = True) -> Tuple[int, int]:
    """
    Delete every non-earliest member of each duplicate group, one commit.

    Returns:
        (duplicate groups, records removed); in a dry run the records that would be removed
    """
    groups = find_duplicate_groups(crud.get_duplicate_candidates(db))
    doomed = ids_to_delete(groups)
    log.info("Step 3 (dedupe): %s duplicate groups, %s records to remove", len(groups), len(doomed))

    if dry_run or not doomed:
        return len(groups), len(doomed)

    removed = crud.delete_records(db, doomed, DUPLICATE_REASON, backup=backup)
    db.commit()
    return len(groups), removed
