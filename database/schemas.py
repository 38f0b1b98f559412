"""
Pydantic schemas for the PYQ read API
Separate from SQLAlchemy models for clean API contracts
"""

from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime

from ingestion.normalizer import normalize_topic_tags


# ==========================================
# PYQ SCHEMAS
# ==========================================

class PYQResponse(BaseModel):
    """Schema for one PYQ record"""
    id: int
    exam_code: Optional[str] = None
    level: Optional[str] = ""
    paper: Optional[str] = ""
    year: Optional[int] = None
    question: Optional[str] = None
    answer: Optional[str] = ""
    language: Optional[str] = None
    topic_tags: List[str] = Field(default_factory=list)
    theme: Optional[str] = ""
    source_link: Optional[str] = ""
    verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("topic_tags", mode="before")
    @classmethod
    def coerce_tags(cls, value):
        # Rows not yet touched by the pipeline may still hold a comma-delimited string
        return normalize_topic_tags(value)


# ==========================================
# THEME BROWSER SCHEMAS
# ==========================================

class ThemeGroup(BaseModel):
    """Questions sharing one theme, newest first"""
    theme: str
    count: int = Field(..., ge=0)
    questions: List[PYQResponse]


class ThemesResponse(BaseModel):
    """Theme-wise grouping for one exam/paper/level"""
    ok: bool = True
    exam: str
    paper: str = Field(..., description="Paper filter, 'All' when empty")
    level: str
    themes: List[ThemeGroup]
    total_questions: int = Field(..., ge=0)
    total_themes: int = Field(..., ge=0)
    cached: bool = False


# ==========================================
# ARCHIVE SCHEMAS
# ==========================================

class ArchiveResponse(BaseModel):
    """One page of archive search results"""
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    items: List[PYQResponse]
