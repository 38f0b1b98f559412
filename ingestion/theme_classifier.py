"""
Theme Classifier
Assigns a topical theme to a PYQ from paper-scoped keyword tables
Uses ordered anchor matching (no AI/LLM), key-term fallback, then "General"
"""

import re
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple


GENERAL_THEME = "General"

ThemeTable = Tuple[Tuple[str, str], ...]
ThemeTables = Mapping[str, ThemeTable]

# Tables used when no paper-specific table applies (merged in this order)
FALLBACK_TABLE_KEYS = ("GS-1", "GS-2", "GS-3", "PRELIMS")

STOP_WORDS = frozenset([
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "from", "as", "is", "was", "are", "were", "been", "be", "have", "has", "had", "do", "does",
    "did", "will", "would", "should", "could", "may", "might", "must", "can", "this", "that",
    "these", "those", "what", "which", "who", "whom", "whose", "where", "when", "why", "how",
    "discuss", "explain", "analyze", "evaluate", "examine", "critically", "elaborate",
    "describe", "compare", "contrast",
])

MAX_KEY_TERMS = 3

# Optional-subject papers, checked in order after the GS-N marker
OPTIONAL_SUBJECT_RULES = (
    (r'PUBLIC ADMIN|\bPA\b', "PUBLIC ADMINISTRATION"),
    (r'SOCIOLOGY', "SOCIOLOGY"),
    (r'^(?!.*\bGS).*GEOGRAPHY', "GEOGRAPHY"),
    (r'^(?!.*\bGS).*HISTORY', "HISTORY"),
    (r'POLITICAL SCIENCE|POL SCIENCE', "POLITICAL SCIENCE"),
    (r'ESSAY', "ESSAY"),
)

_ROMAN_NUMERALS = {"I": "1", "II": "2", "III": "3", "IV": "4"}
_GS_MARKER = re.compile(r'\bGS\s*(?:-|PAPER)?\s*-?\s*(IV|III|II|I|[1-4])\b')


def build_theme_tables() -> ThemeTables:
    """
    Build the paper-scoped classification tables.

    Each table is an ordered tuple of (anchor, label); the first anchor found in the
    question wins, so order is the tie-break ("role of women" before "women").
    """
    tables = {
        "GS-1": (
            ("role of women", "Role of Women in History"),
            ("women", "Role of Women in History"),
            ("freedom struggle", "Freedom Struggle"),
            ("indian national movement", "Indian National Movement"),
            ("gandhi", "Gandhian Phase"),
            ("social reform", "Social Reform Movement"),
            ("british", "British Rule in India"),
            ("ancient", "Ancient India"),
            ("medieval", "Medieval India"),
            ("modern", "Modern India"),
            ("geography", "Geography"),
            ("climate", "Climate and Geography"),
            ("culture", "Indian Culture and Heritage"),
            ("art", "Art and Architecture"),
            ("literature", "Literature"),
            ("heritage", "Indian Heritage"),
        ),
        "GS-2": (
            ("constitution", "Constitution"),
            ("governance", "Governance"),
            ("polity", "Indian Polity"),
            ("federalism", "Federalism"),
            ("judiciary", "Judiciary"),
            ("parliament", "Parliament"),
            ("executive", "Executive"),
            ("rights", "Fundamental Rights"),
            ("directive principles", "Directive Principles"),
            ("international relations", "International Relations"),
            ("foreign policy", "Foreign Policy"),
            ("social justice", "Social Justice"),
            ("welfare", "Welfare Schemes"),
            ("panchayati raj", "Local Governance"),
            ("election", "Electoral System"),
        ),
        "GS-3": (
            ("economy", "Indian Economy"),
            ("economic", "Indian Economy"),
            ("technology", "Science and Technology"),
            ("science", "Science and Technology"),
            ("security", "Internal Security"),
            ("disaster", "Disaster Management"),
            ("environment", "Environment and Ecology"),
            ("biodiversity", "Biodiversity"),
            ("agriculture", "Agriculture"),
            ("industry", "Industry"),
            ("infrastructure", "Infrastructure"),
            ("banking", "Banking and Finance"),
            ("monetary policy", "Monetary Policy"),
            ("fiscal policy", "Fiscal Policy"),
        ),
        "GS-4": (
            ("ethics", "Ethics"),
            ("integrity", "Integrity"),
            ("aptitude", "Aptitude"),
            ("case study", "Case Studies"),
            ("values", "Values"),
            ("attitude", "Attitude"),
            ("emotional intelligence", "Emotional Intelligence"),
            ("public service", "Public Service"),
            ("moral", "Moral Philosophy"),
        ),
        "PRELIMS": (
            ("current affairs", "Current Affairs"),
            ("history", "History"),
            ("geography", "Geography"),
            ("polity", "Polity"),
            ("economy", "Economy"),
            ("science", "Science and Technology"),
            ("environment", "Environment"),
            ("csat", "CSAT"),
            ("comprehension", "Reading Comprehension"),
            ("reasoning", "Logical Reasoning"),
            ("aptitude", "Aptitude"),
        ),
        "PUBLIC ADMINISTRATION": (
            ("administrative theory", "Administrative Theory"),
            ("thinkers", "Administrative Thinkers"),
            ("indian administration", "Indian Administration"),
            ("public policy", "Public Policy"),
            ("development administration", "Development Administration"),
            ("personnel administration", "Personnel Administration"),
            ("financial administration", "Financial Administration"),
            ("accountability", "Accountability and Control"),
        ),
        "SOCIOLOGY": (
            ("sociological theory", "Sociological Theory"),
            ("thinkers", "Sociological Thinkers"),
            ("indian society", "Indian Society"),
            ("social change", "Social Change"),
            ("stratification", "Social Stratification"),
            ("caste", "Caste System"),
            ("tribal", "Tribal Society"),
            ("gender", "Gender and Society"),
            ("religion", "Religion and Society"),
        ),
        "GEOGRAPHY": (
            ("physical geography", "Physical Geography"),
            ("human geography", "Human Geography"),
            ("geomorphology", "Geomorphology"),
            ("climatology", "Climatology"),
            ("oceanography", "Oceanography"),
            ("biogeography", "Biogeography"),
            ("economic geography", "Economic Geography"),
            ("population geography", "Population Geography"),
            ("settlement geography", "Settlement Geography"),
            ("regional planning", "Regional Planning"),
        ),
        "HISTORY": (
            ("ancient history", "Ancient History"),
            ("medieval history", "Medieval History"),
            ("modern history", "Modern History"),
            ("world history", "World History"),
            ("art and culture", "Art and Culture"),
            ("freedom struggle", "Freedom Struggle"),
            ("colonialism", "Colonialism"),
            ("nationalism", "Nationalism"),
        ),
        "POLITICAL SCIENCE": (
            ("political theory", "Political Theory"),
            ("thinkers", "Political Thinkers"),
            ("indian political thought", "Indian Political Thought"),
            ("western political thought", "Western Political Thought"),
            ("comparative politics", "Comparative Politics"),
            ("international relations", "International Relations"),
            ("public administration", "Public Administration"),
        ),
        "ESSAY": (
            ("philosophy", "Philosophy"),
            ("society", "Society"),
            ("politics", "Politics"),
            ("economy", "Economy"),
            ("science", "Science and Technology"),
            ("environment", "Environment"),
            ("education", "Education"),
            ("culture", "Culture"),
            ("youth", "Youth"),
            ("women", "Women"),
            ("development", "Development"),
        ),
    }
    return MappingProxyType(tables)


def merge_tables(tables: ThemeTables, keys: Tuple[str, ...]) -> ThemeTable:
    """
    Union of several tables.

    An anchor keeps the position of its first occurrence and the label of its last
    ("geography" from GS-1 stays early but maps to the PRELIMS label).
    """
    merged = {}
    for key in keys:
        for anchor, label in tables.get(key, ()):
            merged[anchor] = label
    return tuple(merged.items())


def _gs_table_key(paper_upper: str) -> Optional[str]:
    match = _GS_MARKER.search(paper_upper)
    if not match:
        return None
    number = _ROMAN_NUMERALS.get(match.group(1), match.group(1))
    return f"GS-{number}"


def select_theme_table(paper: Optional[str], level: Optional[str], tables: ThemeTables) -> ThemeTable:
    """
    Pick the table for a paper/level.

    exact key → GS-N marker → optional subject → Prelims → union of GS-1/2/3 + PRELIMS
    """
    paper_upper = re.sub(r'\s+', ' ', (paper or "")).strip().upper()

    if paper_upper in tables:
        return tables[paper_upper]

    gs_key = _gs_table_key(paper_upper)
    if gs_key and gs_key in tables:
        return tables[gs_key]

    for pattern, key in OPTIONAL_SUBJECT_RULES:
        if re.search(pattern, paper_upper) and key in tables:
            return tables[key]

    is_prelims = "PRELIM" in paper_upper or "CSAT" in paper_upper
    if (is_prelims or (level or "").strip().lower() == "prelims") and "PRELIMS" in tables:
        return tables["PRELIMS"]

    return merge_tables(tables, FALLBACK_TABLE_KEYS)


def extract_key_terms(question: str) -> List[str]:
    """Up to 3 distinct non-stopword terms longer than 3 characters, first-seen order"""
    words = re.sub(r'[^a-z0-9_\s]', ' ', (question or "").lower()).split()
    terms: List[str] = []
    for word in words:
        if len(word) > 3 and word not in STOP_WORDS and word not in terms:
            terms.append(word)
            if len(terms) == MAX_KEY_TERMS:
                break
    return terms


def match_theme(question: str, table: ThemeTable) -> Optional[str]:
    question_lower = (question or "").lower()
    for anchor, label in table:
        if anchor in question_lower:
            return label
    return None


def infer_theme_from_question(question: str, paper: Optional[str], level: Optional[str],
                              tables: ThemeTables) -> str:
    """
    Infer a theme label for a question.

    Args:
        question: Question text (normalized or raw)
        paper: Paper label, selects the table ("GS-2", "Essay", ...)
        level: Exam level, "Prelims" selects the PRELIMS table when paper is silent
        tables: Tables from build_theme_tables()

    Returns:
        Table label, capitalized first key term, or "General"
    """
    label = match_theme(question, select_theme_table(paper, level, tables))
    if label:
        return label

    terms = extract_key_terms(question)
    if terms:
        return terms[0][0].upper() + terms[0][1:]

    return GENERAL_THEME


class ThemeClassifier:
    """
    Theme inference bound to one set of tables
    Built once per pipeline run and shared read-only by the worker threads
    """

    def __init__(self, tables: Optional[ThemeTables] = None):
        self.tables = tables if tables is not None else build_theme_tables()

    def classify(self, question: str, paper: Optional[str] = None, level: Optional[str] = None) -> str:
        return infer_theme_from_question(question, paper, level, self.tables)
