"""
SQLAlchemy models for the PYQ (previous year question) collection

Rows are appended in raw form by the crawler/ingestion jobs and rewritten in
place by the maintenance pipeline (ingestion/pipeline.py).
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON, Index
from sqlalchemy.sql import func
from database.database import Base


# ==========================================
# PYQ RECORDS
# ==========================================

class PYQ(Base):
    """
    One previous-year exam question.

    exam_code/level/question/answer/topic_tags arrive un-normalized;
    after a pipeline run they hold canonical values (see ingestion/normalizer.py).
    The id doubles as insertion order: the lowest id of a duplicate group is kept.
    """
    __tablename__ = "pyqs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    exam_code = Column(String(100), nullable=True, index=True)  # UPSC, TNPSC, ... (free text before normalization)
    level = Column(String(50), nullable=True, default="")  # Prelims | Mains | Interview | ""
    paper = Column(String(255), nullable=True, default="")  # GS-2, Essay, Public Administration
    year = Column(Integer, nullable=True, index=True)
    question = Column(Text, nullable=True)
    answer = Column(Text, nullable=True, default="")
    language = Column(String(10), nullable=True)  # en, hi, ta, ...
    topic_tags = Column(JSON, nullable=True)  # list of strings, or a raw comma-delimited string
    theme = Column(String(255), nullable=True, default="")
    source_link = Column(String(1000), nullable=True, default="")
    verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Read-path indexes: theme browser and archive search
    __table_args__ = (
        Index("idx_pyq_exam_year", "exam_code", year.desc()),
        Index("idx_pyq_exam_level_year", "exam_code", "level", year.desc()),
        Index("idx_pyq_exam_paper_year", "exam_code", "paper", year.desc()),
        Index("idx_pyq_exam_theme_year", "exam_code", "theme", year.desc()),
        Index("idx_pyq_exam_verified_year", "exam_code", "verified", year.desc()),
        Index("idx_pyq_paper_theme_year", "paper", "theme", year.desc()),
        Index("idx_pyq_exam_language_year", "exam_code", "language", year.desc()),
        Index("idx_pyq_language_year", "language", year.desc()),
    )

    def __repr__(self):
        return f"<PYQ(id={self.id}, exam_code='{self.exam_code}', year={self.year}, language='{self.language}')>"


# ==========================================
# DELETION AUDIT
# ==========================================

class PYQBackup(Base):
    """
    Snapshot of a PYQ row removed by the pipeline.
    Written in the same transaction as the delete so nothing is lost silently.
    """
    __tablename__ = "pyq_backups"

    id = Column(Integer, primary_key=True, index=True)
    pyq_id = Column(Integer, nullable=False, index=True)  # id of the deleted row (no FK: the row is gone)
    reason = Column(String(50), nullable=False, index=True)  # invalid_year | question_too_short | duplicate | multi_language_split
    payload = Column(JSON, nullable=False)
    backed_up_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PYQBackup(pyq_id={self.pyq_id}, reason='{self.reason}')>"
