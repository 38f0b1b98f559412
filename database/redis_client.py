"""
Redis client for the PYQ maintenance job and the theme browser.
Holds the single-run pipeline lock and the cached theme groupings.
Both are optional: with REDIS_URL unset the job runs unlocked and the API uncached.
"""

import os
import json
from typing import Optional

import redis
from dotenv import load_dotenv

load_dotenv()

# ─── Config ────────────────────────────────────────────────────────────────────

REDIS_URL = os.getenv("REDIS_URL")
LOCK_TTL_SECONDS = int(os.getenv("PYQ_LOCK_TTL_SECONDS", "3600"))
THEME_CACHE_TTL_SECONDS = int(os.getenv("PYQ_THEME_CACHE_TTL_SECONDS", "600"))

PIPELINE_LOCK_KEY = "pyq:pipeline:lock"
THEME_CACHE_PREFIX = "pyq:themes:"

_redis_client: Optional[redis.Redis] = None


def is_enabled() -> bool:
    return bool(REDIS_URL) or _redis_client is not None


def get_redis() -> redis.Redis:
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(REDIS_URL, decode_responses=True)
    return _redis_client


# ─── Pipeline lock ─────────────────────────────────────────────────────────────

def acquire_pipeline_lock(token: str, ttl_seconds: int = LOCK_TTL_SECONDS, r=None) -> bool:
    """SET NX EX: True if this run now owns the lock. TTL frees it if the run dies."""
    r = r if r is not None else get_redis()
    return bool(r.set(PIPELINE_LOCK_KEY, token, nx=True, ex=ttl_seconds))


def release_pipeline_lock(token: str, r=None) -> bool:
    """Release the lock only if this run still owns it."""
    r = r if r is not None else get_redis()
    if r.get(PIPELINE_LOCK_KEY) != token:
        return False
    r.delete(PIPELINE_LOCK_KEY)
    return True


# ─── Theme cache ───────────────────────────────────────────────────────────────

def theme_cache_key(exam: str, paper: str, level: str, limit: int) -> str:
    return f"{THEME_CACHE_PREFIX}{exam}:{paper.upper()}:{level.lower()}:{limit}"


def get_cached_themes(key: str, r=None) -> Optional[dict]:
    r = r if r is not None else get_redis()
    raw = r.get(key)
    return json.loads(raw) if raw else None


def cache_themes(key: str, payload: dict, ttl_seconds: int = THEME_CACHE_TTL_SECONDS, r=None):
    r = r if r is not None else get_redis()
    r.set(key, json.dumps(payload), ex=ttl_seconds)


def invalidate_theme_cache(r=None) -> int:
    """Drop every cached theme grouping (after the pipeline rewrote records)."""
    r = r if r is not None else get_redis()
    removed = 0
    for key in r.scan_iter(match=f"{THEME_CACHE_PREFIX}*"):
        removed += r.delete(key)
    return removed
