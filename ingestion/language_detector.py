"""
Language detection and separation for PYQ question text

Script-range based (no model): each supported language is identified by the Unicode
block of its script. Languages sharing a script collapse onto one code
(Devanagari → hi, Bengali/Assamese → bn).

separate_languages() turns a merged bilingual question ("What is democracy? लोकतंत्र क्या है?")
into one segment per language; the pipeline then replaces the merged record with
one child record per segment.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

log = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"

# Ordered (language, character class) table. Latin is first so that ties resolve to English.
SCRIPT_RANGES = (
    ("en", r"a-zA-Z"),
    ("hi", r"\u0900-\u097F"),
    ("bn", r"\u0980-\u09FF"),
    ("pa", r"\u0A00-\u0A7F"),
    ("gu", r"\u0A80-\u0AFF"),
    ("or", r"\u0B00-\u0B7F"),
    ("ta", r"\u0B80-\u0BFF"),
    ("te", r"\u0C00-\u0C7F"),
    ("kn", r"\u0C80-\u0CFF"),
    ("ml", r"\u0D00-\u0D7F"),
    ("si", r"\u0D80-\u0DFF"),
    ("ur", r"\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFC"),
)

SUPPORTED_LANGUAGES = tuple(code for code, _ in SCRIPT_RANGES)

_SCRIPT_PATTERNS = tuple((code, re.compile(f"[{chars}]")) for code, chars in SCRIPT_RANGES)

# Strong separators between language halves: spaced hyphen, en/em dashes,
# parentheses, brackets, newlines, colon
SEPARATOR_PATTERN = re.compile(r'\s+-\s+|[\u2013\u2014]|[()\[\]]|\n+|:')

# A mixed part goes to its dominant script only when it clearly dominates
DOMINANCE_RATIO = 1.5

# Segments shorter than this are noise (and would fail validation anyway)
MIN_SEGMENT_LENGTH = 10


@dataclass(frozen=True)
class LanguageSegment:
    """One single-language slice of a question"""
    language: str
    text: str


def _script_of(char: str) -> Optional[str]:
    for code, pattern in _SCRIPT_PATTERNS:
        if pattern.match(char):
            return code
    return None


def count_scripts(text: str) -> Dict[str, int]:
    """Character count per language script (only scripts that occur)"""
    counts: Dict[str, int] = {}
    for code, pattern in _SCRIPT_PATTERNS:
        found = len(pattern.findall(text or ""))
        if found:
            counts[code] = found
    return counts


def detect_languages(text: str) -> List[str]:
    """Languages whose script occurs in the text, in script-table order"""
    detected = list(count_scripts(text))
    return detected or [DEFAULT_LANGUAGE]


def get_primary_language(text: str) -> str:
    """
    Dominant language of the text.

    The non-Latin script with the most characters wins if it outnumbers Latin
    letters; otherwise (including empty text and ties) English.
    """
    counts = count_scripts(text)
    latin = counts.get("en", 0)
    best_code, best_count = DEFAULT_LANGUAGE, 0
    for code, found in counts.items():
        if code != "en" and found > best_count:
            best_code, best_count = code, found
    return best_code if best_count > latin else DEFAULT_LANGUAGE


def is_multi_language(text: str) -> bool:
    """True if characters from two or more scripts are present (presence, not proportion)"""
    return len(detect_languages(text)) >= 2


def _dominant_language(counts: Dict[str, int]) -> Optional[str]:
    """Top script if it has at least DOMINANCE_RATIO x the runner-up, else None"""
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    if len(ranked) == 1:
        return ranked[0][0]
    (top_code, top_count), (_, second_count) = ranked[0], ranked[1]
    if top_count >= second_count * DOMINANCE_RATIO:
        return top_code
    return None


def split_script_runs(text: str) -> List[LanguageSegment]:
    """
    Cut text at script boundaries.

    Neutral characters (spaces, digits, punctuation) stay with the run they follow;
    leading neutral characters join the first run.
    """
    runs: List[LanguageSegment] = []
    current_code: Optional[str] = None
    buffer: List[str] = []

    for char in text:
        code = _script_of(char)
        if code is None or code == current_code or current_code is None:
            if code is not None and current_code is None:
                current_code = code
            buffer.append(char)
            continue
        runs.append(LanguageSegment(current_code, "".join(buffer).strip()))
        current_code = code
        buffer = [char]

    if buffer and current_code is not None:
        runs.append(LanguageSegment(current_code, "".join(buffer).strip()))
    return [run for run in runs if run.text]


def _assign_part(part: str) -> List[LanguageSegment]:
    counts = count_scripts(part)
    if not counts:
        return []
    if len(counts) == 1:
        return [LanguageSegment(next(iter(counts)), part)]
    dominant = _dominant_language(counts)
    if dominant is not None:
        return [LanguageSegment(dominant, part)]
    # Too close to call: split the part itself instead of copying it into both languages
    return split_script_runs(part)


def separate_languages(text: str) -> List[LanguageSegment]:
    """
    Separate a merged multi-language text into one segment per language.

    1. split on strong separators
    2. assign each part to a language (single script, dominant script, or script runs)
    3. join same-language parts in order of first appearance
    4. drop joined segments shorter than MIN_SEGMENT_LENGTH

    Single-language text comes back as one segment, untouched apart from trimming.
    """
    if not text or not text.strip():
        return []
    if not is_multi_language(text):
        return [LanguageSegment(get_primary_language(text), text.strip())]

    buckets: Dict[str, List[str]] = {}
    for part in SEPARATOR_PATTERN.split(text):
        part = part.strip()
        if not part:
            continue
        for segment in _assign_part(part):
            buckets.setdefault(segment.language, []).append(segment.text)

    segments = []
    for code, parts in buckets.items():
        joined = re.sub(r'\s+', ' ', " ".join(parts)).strip()
        if len(joined) >= MIN_SEGMENT_LENGTH:
            segments.append(LanguageSegment(code, joined))
        else:
            log.debug("Dropping short %s segment (%s chars)", code, len(joined))
    return segments
