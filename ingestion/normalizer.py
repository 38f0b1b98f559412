"""
PYQ Field Normalization
Step 1 of the maintenance pipeline: canonicalize noisy fields written by the crawlers.

Every function here is pure and idempotent (normalize(normalize(x)) == normalize(x)),
which is what lets a second pipeline run report zero updates.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import urlparse

log = logging.getLogger(__name__)

MAX_QUESTION_CHARS = 2000
MAX_ANSWER_CHARS = 10000
MAX_THEME_CHARS = 255  # pyqs.theme column width
DEFAULT_EXAM = "UPSC"

CANONICAL_EXAMS = (
    "UPSC", "PCS", "SSC", "TNPSC", "MPSC", "BPSC", "UPPSC", "MPPSC", "RAS", "RPSC", "GPSC",
    "KPSC", "WBPSC", "PPSC", "OPSC", "APSC", "APPSC", "TSPSC", "HPSC", "JKPSC", "KERALA PSC", "GOA PSC",
)

# Ordered (regional names, abbreviations, code) rules; first match wins.
# Names match anywhere, abbreviations only at the start of a word ("TN PSC", "BPSC 67th").
# Longer abbreviations come before their prefixes (APP before AP).
EXAM_RULES = (
    (("TAMIL NADU", "TAMILNADU", "TAMIL"), ("TN",), "TNPSC"),
    (("MAHARASHTRA",), ("MAH",), "MPSC"),
    (("BIHAR",), ("BP",), "BPSC"),
    (("UTTAR PRADESH", "UP PSC"), ("UPP",), "UPPSC"),
    (("MADHYA PRADESH", "MP PSC"), ("MPP",), "MPPSC"),
    (("RAJASTHAN ADMINISTRATIVE", "RAJASTHAN RAS"), ("RAS",), "RAS"),
    (("RAJASTHAN",), ("RPSC",), "RPSC"),
    (("GUJARAT",), ("GP",), "GPSC"),
    (("KARNATAKA",), ("KP",), "KPSC"),
    (("WEST BENGAL",), ("WB",), "WBPSC"),
    (("PUNJAB",), ("PP",), "PPSC"),
    (("ODISHA", "ORISSA"), ("OP",), "OPSC"),
    (("ANDHRA",), ("APP",), "APPSC"),
    (("ASSAM",), ("AP",), "APSC"),
    (("TELANGANA",), ("TS",), "TSPSC"),
    (("KERALA",), (), "KERALA PSC"),
    (("HARYANA",), ("HP",), "HPSC"),
    (("JAMMU", "KASHMIR", "J&K"), ("JK",), "JKPSC"),
    (("GOA",), (), "GOA PSC"),
)

# Official question-paper hosts; a record sourced from one of these is "verified"
OFFICIAL_HOST_PATTERNS = [
    r'\.gov\.(in|uk|au|us|ca)$',
    r'\.nic\.in$',
    r'(^|\.)upsc\.gov\.in$',
    r'(^|\.)keralapsc\.gov\.in$',
    r'(^|\.)psc\.ap\.gov\.in$',
]

TopicTagsInput = Union[None, str, Sequence[Any]]


def _collapse_whitespace(text: str) -> str:
    # Zero-width space / BOM and control characters (keep ZWJ/ZWNJ: Indic scripts need them)
    text = re.sub(r'[\u200B\uFEFF]', '', text)
    text = re.sub(r'[\u0000-\u0008\u000E-\u001F\u007F-\u009F]', '', text)
    # Any run of spaces, tabs, newlines, NBSP → single space
    return re.sub(r'\s+', ' ', text).strip()


def _abbreviation_matches(text: str, abbreviation: str) -> bool:
    return re.search(r'(?<![A-Z0-9])' + re.escape(abbreviation), text) is not None


def normalize_exam(raw: Any) -> str:
    """
    Map a raw exam label to a canonical exam code.

    "Tamil Nadu PSC" → "TNPSC", "upsc " → "UPSC", "something unknown" → "UPSC".
    A label that already is a canonical code is returned unchanged.
    """
    if raw is None:
        return DEFAULT_EXAM
    exam = re.sub(r'\s+', ' ', str(raw)).upper().strip()
    if not exam:
        return DEFAULT_EXAM
    if exam in CANONICAL_EXAMS:
        return exam

    for names, abbreviations, code in EXAM_RULES:
        if any(name in exam for name in names):
            return code
        if any(_abbreviation_matches(exam, abbr) for abbr in abbreviations):
            return code

    return DEFAULT_EXAM


def normalize_level(raw: Any) -> str:
    """Prelims | Mains | Interview | "" (substring match, case-insensitive)"""
    if not raw:
        return ""
    level = str(raw).lower().strip()
    if "prelim" in level:
        return "Prelims"
    if "main" in level:
        return "Mains"
    if "interview" in level:
        return "Interview"
    return ""


def normalize_question(raw: Any) -> str:
    """
    Collapse whitespace, cap at MAX_QUESTION_CHARS, upper-case the first character.

    "  what   is\\nfederalism?  " → "What is federalism?"
    """
    if not raw:
        return ""
    text = _collapse_whitespace(str(raw))[:MAX_QUESTION_CHARS].rstrip()
    if text and text[0].islower():
        text = text[0].upper() + text[1:]
    return text


def normalize_answer(raw: Any) -> str:
    """Collapse whitespace and cap at MAX_ANSWER_CHARS"""
    if not raw:
        return ""
    return _collapse_whitespace(str(raw))[:MAX_ANSWER_CHARS].rstrip()


def normalize_paper(raw: Any) -> str:
    if not raw:
        return ""
    return re.sub(r'\s+', ' ', str(raw)).strip()


def normalize_theme_name(theme: Any) -> str:
    """Title-case each whitespace-delimited word ("indian  economy" → "Indian Economy"), capped at MAX_THEME_CHARS"""
    if not theme:
        return ""
    words = str(theme).split()
    titled = " ".join(word[0].upper() + word[1:].lower() for word in words)
    return titled[:MAX_THEME_CHARS].rstrip()


def coerce_topic_tags(raw: TopicTagsInput) -> List[str]:
    """
    Resolve the tag field variant into a list of raw entries.

    Crawlers write either a list of strings or one comma-delimited string.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        return raw.split(",")
    if isinstance(raw, (list, tuple)):
        return [str(tag) for tag in raw if tag is not None]
    log.debug("Unsupported topic tag payload type=%s, treating as empty", type(raw).__name__)
    return []


def normalize_topic_tags(raw: TopicTagsInput) -> List[str]:
    """Trimmed, non-empty tags in input order (no dedup)"""
    return [tag.strip() for tag in coerce_topic_tags(raw) if tag.strip()]


def is_official_source(url: Optional[str]) -> bool:
    """True when the link points at a government / PSC domain"""
    if not url:
        return False
    candidate = str(url).strip()
    if "://" not in candidate:
        candidate = "http://" + candidate
    host = (urlparse(candidate).hostname or "").lower()
    if not host:
        return False
    return any(re.search(pattern, host) for pattern in OFFICIAL_HOST_PATTERNS)


def _tags_differ(normalized: List[str], stored: Any) -> bool:
    if not isinstance(stored, list):
        return True
    return sorted(normalized) != sorted(stored)


def plan_field_updates(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize every field of a record snapshot and return only the changed ones.

    Theme and language are not handled here (see pipeline.plan_record), they depend
    on the classifier and the language detector.
    """
    updates: Dict[str, Any] = {}

    exam_code = normalize_exam(snapshot.get("exam_code"))
    if exam_code != snapshot.get("exam_code"):
        updates["exam_code"] = exam_code

    level = normalize_level(snapshot.get("level"))
    if level != (snapshot.get("level") or ""):
        updates["level"] = level

    paper = normalize_paper(snapshot.get("paper"))
    if paper != (snapshot.get("paper") or ""):
        updates["paper"] = paper

    question = normalize_question(snapshot.get("question"))
    if question != snapshot.get("question"):
        updates["question"] = question

    answer = normalize_answer(snapshot.get("answer"))
    if answer != (snapshot.get("answer") or ""):
        updates["answer"] = answer

    tags = normalize_topic_tags(snapshot.get("topic_tags"))
    if _tags_differ(tags, snapshot.get("topic_tags")):
        updates["topic_tags"] = tags

    link = snapshot.get("source_link") or ""
    verified = is_official_source(link) if link else bool(snapshot.get("verified"))
    if verified != snapshot.get("verified"):
        updates["verified"] = verified

    return updates
