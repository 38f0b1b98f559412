"""
PYQ Router - theme browser and archive search
Read-only views over the records the maintenance pipeline keeps canonical.
"""

import logging
from functools import lru_cache
from typing import Dict, List, Optional

import redis
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import crud, redis_client
from database.database import get_db
from database.schemas import ArchiveResponse, PYQResponse, ThemeGroup, ThemesResponse
from ingestion.normalizer import normalize_exam, normalize_theme_name, normalize_topic_tags
from ingestion.theme_classifier import GENERAL_THEME, ThemeClassifier

log = logging.getLogger(__name__)

router = APIRouter(prefix="/pyq", tags=["pyq"])

MAX_THEME_LIMIT = 5000


@lru_cache(maxsize=1)
def get_theme_classifier() -> ThemeClassifier:
    return ThemeClassifier()


def get_theme_cache():
    """Redis client for cached groupings, or None when REDIS_URL is unset"""
    if not redis_client.is_enabled():
        return None
    return redis_client.get_redis()


def _theme_for(record, paper: str, level: str, classifier: ThemeClassifier) -> str:
    """stored theme → first tag → inferred → General"""
    theme = (record.theme or "").strip()
    if not theme:
        tags = normalize_topic_tags(record.topic_tags)
        if tags:
            theme = tags[0]
    if not theme:
        theme = classifier.classify(record.question or "", paper, level)
    return normalize_theme_name(theme or GENERAL_THEME)


def group_by_theme(records, paper: str, level: str, classifier: ThemeClassifier) -> List[ThemeGroup]:
    """Group records by theme; groups ordered by size, questions newest first"""
    groups: Dict[str, List[PYQResponse]] = {}
    for record in records:
        theme = _theme_for(record, paper, level, classifier)
        groups.setdefault(theme, []).append(PYQResponse.model_validate(record))

    result = []
    for theme, questions in groups.items():
        questions.sort(key=lambda q: -(q.year or 0))
        result.append(ThemeGroup(theme=theme, count=len(questions), questions=questions))
    result.sort(key=lambda group: -group.count)
    return result


@router.get("/themes", response_model=ThemesResponse)
def get_themes(
    exam: str = Query("UPSC", description="Exam code or label (normalized)"),
    paper: str = Query("", description="Paper filter, e.g. GS-1 .. GS-4"),
    level: str = Query("Mains", description="Prelims | Mains | Interview"),
    limit: int = Query(1000, ge=1, le=MAX_THEME_LIMIT),
    db: Session = Depends(get_db),
    cache=Depends(get_theme_cache),
    classifier: ThemeClassifier = Depends(get_theme_classifier),
):
    """
    Theme-wise PYQs for one exam/paper/level

    Records are read verified first, then newest; each record lands in its stored
    theme, else its first tag, else an inferred theme.
    """
    exam_code = normalize_exam(exam)
    paper = paper.strip()
    level = level.strip()
    key = redis_client.theme_cache_key(exam_code, paper, level, limit)

    if cache is not None:
        try:
            cached = redis_client.get_cached_themes(key, r=cache)
            if cached:
                cached["cached"] = True
                return cached
        except redis.exceptions.RedisError as e:
            log.warning("Theme cache read failed, serving uncached: %s", e)

    records = crud.get_pyqs_for_themes(db, exam_code, paper=paper, level=level, limit=limit)
    themes = group_by_theme(records, paper, level, classifier)
    response = ThemesResponse(
        exam=exam_code,
        paper=paper or "All",
        level=level,
        themes=themes,
        total_questions=len(records),
        total_themes=len(themes),
    )

    if cache is not None:
        try:
            redis_client.cache_themes(key, response.model_dump(mode="json"), r=cache)
        except redis.exceptions.RedisError as e:
            log.warning("Theme cache write failed: %s", e)

    return response


@router.get("/archive", response_model=ArchiveResponse)
def search_archive(
    exam: Optional[str] = Query(None, description="Exam code or label (normalized)"),
    year_from: Optional[int] = Query(None, ge=1990),
    year_to: Optional[int] = Query(None, ge=1990),
    q: Optional[str] = Query(None, description="Substring of paper, theme or a tag"),
    language: Optional[str] = Query(None, description="Language code, e.g. en, hi"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """
    Archive search over canonical records
    """
    exam_code = normalize_exam(exam) if exam else None
    total, items = crud.search_archive(
        db,
        exam=exam_code,
        year_from=year_from,
        year_to=year_to,
        q=(q or "").strip() or None,
        language=language,
        skip=(page - 1) * page_size,
        limit=page_size,
    )
    return ArchiveResponse(
        total=total,
        page=page,
        page_size=page_size,
        items=[PYQResponse.model_validate(item) for item in items],
    )
