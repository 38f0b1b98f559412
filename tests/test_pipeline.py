"""
Tests for ingestion.pipeline

Test Coverage:
- End-to-end normalization of one messy record
- Validity boundary (year / question length) and deletion audit rows
- Bilingual split (insert children, delete parent) incl. answer split and key conflicts
- Dedup uniqueness and idempotence of a second run
- Dry run, run lock, theme cache invalidation, connection failure
- Recovery of a run that died between child insert and parent delete
"""
import pytest
from sqlalchemy import func
from sqlalchemy.exc import OperationalError

from database import crud
from database.models import PYQ, PYQBackup
from ingestion.errors import ConnectionFailure, PipelineLocked
from ingestion.pipeline import PYQPipeline, PipelineState, RecordPlan, plan_expansion, plan_record
from ingestion.theme_classifier import ThemeClassifier

CURRENT_YEAR = 2026
BILINGUAL = "What is democracy? लोकतंत्र क्या है?"


def run_pipeline(db, **kwargs):
    kwargs.setdefault("current_year", CURRENT_YEAR)
    kwargs.setdefault("max_workers", 2)
    pipeline = PYQPipeline(db, **kwargs)
    stats = pipeline.run()
    db.expire_all()
    return pipeline, stats


def identity_keys(db):
    return [(r.exam_code, r.year, r.question, r.language) for r in db.query(PYQ).all()]


def seed_messy_collection(add_pyq):
    add_pyq(exam_code="upsc ", year=2021, question="  what   is\nfederalism?  ", paper="GS-2")
    add_pyq(exam_code="Tamil Nadu PSC", year=2019, level="main exam", question="Discuss the role of women in the freedom struggle",
            paper="GS-1", topic_tags="history, women ,")
    add_pyq(exam_code="UPSC", year=2020, question=BILINGUAL, answer="Democracy is rule by the people.")
    add_pyq(exam_code="UPSC", year=2021, question="What is federalism?", paper="GS-2")
    add_pyq(exam_code="bihar", year=1800, question="An ancient question about Magadha")
    add_pyq(exam_code="UPSC", year=2022, question="short")
    add_pyq(exam_code="UPSC", year=2018, question="Explain the monetary policy transmission",
            paper="GS-3", source_link="https://upsc.gov.in/papers/2018.pdf")


def test_end_to_end_example(db, add_pyq):
    add_pyq(exam_code="upsc ", year=2021, question="  what   is\nfederalism?  ", paper="GS-2")

    pipeline, stats = run_pipeline(db)

    records = db.query(PYQ).all()
    assert len(records) == 1
    record = records[0]
    assert record.exam_code == "UPSC"
    assert record.question == "What is federalism?"
    assert record.language == "en"
    assert record.theme == "Federalism"
    assert pipeline.state == PipelineState.DONE
    assert (stats.processed, stats.updated, stats.deleted) == (1, 1, 0)


@pytest.mark.parametrize("year, question, reason", [
    (1800, "What is federalism?", "invalid_year"),
    (9999, "What is federalism?", "invalid_year"),
    (None, "What is federalism?", "missing_year"),
    (2021, "short", "question_too_short"),
    (2021, "   \n  short \t ", "question_too_short"),
])
def test_invalid_records_are_deleted(db, add_pyq, year, question, reason):
    record_id = add_pyq(exam_code="UPSC", year=year, question=question)

    _, stats = run_pipeline(db)

    assert db.query(PYQ).count() == 0
    assert stats.invalid_removed == 1
    assert stats.removal_reasons == {reason: 1}
    backup = db.query(PYQBackup).one()
    assert backup.pyq_id == record_id
    assert backup.reason == reason
    assert backup.payload["question"] == question


def test_backups_can_be_disabled(db, add_pyq):
    add_pyq(exam_code="UPSC", year=1800, question="What is federalism?")
    run_pipeline(db, backup=False)
    assert db.query(PYQBackup).count() == 0


def test_bilingual_question_is_split(db, add_pyq):
    parent_id = add_pyq(exam_code="UPSC", year=2020, paper="GS-2", question=BILINGUAL,
                        topic_tags=["polity"], source_link="https://upsc.gov.in/2020.pdf")

    _, stats = run_pipeline(db)

    records = db.query(PYQ).order_by(PYQ.language).all()
    assert [(r.language, r.question) for r in records] == [
        ("en", "What is democracy?"),
        ("hi", "लोकतंत्र क्या है?"),
    ]
    assert db.get(PYQ, parent_id) is None
    for child in records:
        assert child.exam_code == "UPSC"
        assert child.year == 2020
        assert child.paper == "GS-2"
        assert child.topic_tags == ["polity"]
        assert child.verified is True
    assert (stats.multi_lang_separated, stats.multi_lang_created) == (1, 2)
    assert db.query(PYQBackup).filter(PYQBackup.reason == "multi_language_split").count() == 1


def test_bilingual_answer_follows_its_language(db, add_pyq):
    add_pyq(exam_code="UPSC", year=2020, question=BILINGUAL,
            answer="Democracy is rule by the people. लोकतंत्र जनता का शासन है।")

    run_pipeline(db)

    answers = {r.language: r.answer for r in db.query(PYQ).all()}
    assert answers == {
        "en": "Democracy is rule by the people.",
        "hi": "लोकतंत्र जनता का शासन है।",
    }


def test_single_language_answer_goes_to_matching_child(db, add_pyq):
    add_pyq(exam_code="UPSC", year=2020, question=BILINGUAL, answer="Democracy is rule by the people.")

    run_pipeline(db)

    answers = {r.language: r.answer for r in db.query(PYQ).all()}
    assert answers == {"en": "Democracy is rule by the people.", "hi": ""}


def test_split_child_colliding_with_existing_record_is_skipped(db, add_pyq):
    existing = add_pyq(exam_code="UPSC", year=2020, question="What is democracy?")
    add_pyq(exam_code="UPSC", year=2020, question=BILINGUAL)

    _, stats = run_pipeline(db)

    assert stats.conflicts_skipped == 1
    assert stats.multi_lang_created == 1
    records = db.query(PYQ).order_by(PYQ.id).all()
    assert [(r.id == existing, r.language) for r in records] == [(True, "en"), (False, "hi")]


def test_dedup_uniqueness_after_run(db, add_pyq):
    seed_messy_collection(add_pyq)
    add_pyq(exam_code="UPSC", year=2020, question="What is democracy?")
    add_pyq(exam_code="upsc", year=2021, question="What  is federalism?", paper="GS-2")

    _, stats = run_pipeline(db)

    keys = identity_keys(db)
    assert len(keys) == len(set(keys))
    assert stats.duplicates_removed >= 2
    assert stats.deleted == stats.invalid_removed + stats.duplicates_removed


def test_second_run_changes_nothing(db, add_pyq):
    seed_messy_collection(add_pyq)

    _, first = run_pipeline(db)
    snapshot = sorted((r.id, r.exam_code, r.question, r.language, r.theme, r.answer) for r in db.query(PYQ).all())
    _, second = run_pipeline(db)

    assert first.updated > 0
    assert second.updated == 0
    assert second.deleted == 0
    assert second.multi_lang_separated == 0
    assert second.unchanged == second.processed == first.final_count
    assert sorted((r.id, r.exam_code, r.question, r.language, r.theme, r.answer)
                  for r in db.query(PYQ).all()) == snapshot


def test_streaming_accounting_and_batches(db, add_pyq):
    seed_messy_collection(add_pyq)

    _, stats = run_pipeline(db, batch_size=2)

    assert stats.processed == 7
    assert stats.processed == stats.unchanged + stats.updated + stats.invalid_removed
    assert stats.invalid_removed == 2
    assert stats.final_count == db.query(func.count(PYQ.id)).scalar()
    assert stats.by_exam["UPSC"] + stats.by_exam["TNPSC"] == stats.final_count
    assert set(stats.by_language) == {"en", "hi"}
    assert stats.indexes_ensured == 8


def test_stored_theme_is_kept_and_verified_is_recomputed(db, add_pyq):
    record_id = add_pyq(exam_code="UPSC", year=2021, question="What is federalism?", paper="GS-2",
                        theme="indian  economy", verified=True, source_link="https://example.com/q")

    run_pipeline(db)

    record = db.get(PYQ, record_id)
    assert record.theme == "Indian Economy"
    assert record.verified is False


def test_dry_run_writes_nothing(db, add_pyq):
    seed_messy_collection(add_pyq)
    before = sorted((r.id, r.exam_code, r.question, r.language) for r in db.query(PYQ).all())

    _, stats = run_pipeline(db, dry_run=True)

    assert stats.processed == 7
    assert stats.invalid_removed == 2
    assert stats.multi_lang_separated == 1
    assert stats.indexes_ensured == 0
    assert sorted((r.id, r.exam_code, r.question, r.language) for r in db.query(PYQ).all()) == before
    assert db.query(PYQBackup).count() == 0


def test_lock_held_by_another_run(db, add_pyq, fake_redis):
    add_pyq(exam_code="UPSC", year=2021, question="What is federalism?")
    fake_redis.set("pyq:pipeline:lock", "someone-else")

    with pytest.raises(PipelineLocked):
        PYQPipeline(db, redis_conn=fake_redis, current_year=CURRENT_YEAR).run()

    assert fake_redis.get("pyq:pipeline:lock") == "someone-else"
    assert db.query(PYQ).one().language is None


def test_lock_released_and_theme_cache_invalidated(db, add_pyq, fake_redis):
    add_pyq(exam_code="UPSC", year=2021, question="What is federalism?")
    fake_redis.set("pyq:themes:UPSC:GS-2:mains:1000", "{}")
    fake_redis.set("unrelated", "1")

    run_pipeline(db, redis_conn=fake_redis)

    assert fake_redis.get("pyq:pipeline:lock") is None
    assert fake_redis.get("pyq:themes:UPSC:GS-2:mains:1000") is None
    assert fake_redis.get("unrelated") == "1"


def test_connection_loss_fails_the_run(db, add_pyq, monkeypatch):
    add_pyq(exam_code="UPSC", year=2021, question="What is federalism?")

    def lost(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("server closed the connection"))

    monkeypatch.setattr(crud, "get_batch_after", lost)
    pipeline = PYQPipeline(db, current_year=CURRENT_YEAR)

    with pytest.raises(ConnectionFailure):
        pipeline.run()
    assert pipeline.state == PipelineState.FAILED


def test_crash_between_child_insert_and_parent_delete_recovers_on_rerun(db, add_pyq, monkeypatch):
    parent_id = add_pyq(exam_code="UPSC", year=2020, question=BILINGUAL)
    delete_records = crud.delete_records

    def lost_on_split(session, record_ids, reason, backup=True):
        if reason == "multi_language_split":
            raise OperationalError("DELETE", {}, Exception("server closed the connection"))
        return delete_records(session, record_ids, reason, backup=backup)

    monkeypatch.setattr(crud, "delete_records", lost_on_split)
    pipeline = PYQPipeline(db, current_year=CURRENT_YEAR, max_workers=1)
    with pytest.raises(ConnectionFailure):
        pipeline.run()
    assert pipeline.state == PipelineState.FAILED

    # Children were committed before the parent delete was attempted
    db.expire_all()
    assert db.get(PYQ, parent_id) is not None
    children = db.query(PYQ).filter(PYQ.id != parent_id).order_by(PYQ.language).all()
    assert [(r.language, r.question) for r in children] == [
        ("en", "What is democracy?"),
        ("hi", "लोकतंत्र क्या है?"),
    ]

    monkeypatch.setattr(crud, "delete_records", delete_records)
    _, stats = run_pipeline(db)

    assert stats.conflicts_skipped == 2
    assert stats.multi_lang_created == 0
    assert stats.multi_lang_separated == 1
    assert db.get(PYQ, parent_id) is None
    records = db.query(PYQ).order_by(PYQ.language).all()
    assert [(r.language, r.question) for r in records] == [
        ("en", "What is democracy?"),
        ("hi", "लोकतंत्र क्या है?"),
    ]


def test_long_key_term_theme_fits_theme_column():
    snapshot = {"id": 1, "exam_code": "UPSC", "year": 2021, "question": "Z" * 300 + " remains unexplained",
                "paper": "", "level": "", "topic_tags": [], "theme": "", "verified": False}
    plan = plan_record(snapshot, ThemeClassifier(), CURRENT_YEAR)
    assert plan.removal_reason is None
    assert plan.updates["theme"] == "Z" + "z" * 254


def test_plan_record_reports_validation_reason():
    plan = plan_record({"id": 3, "year": 1800, "question": "What is federalism?"}, ThemeClassifier(), CURRENT_YEAR)
    assert plan == RecordPlan(3, removal_reason="invalid_year")


def test_plan_record_is_pure():
    snapshot = {"id": 1, "exam_code": "upsc", "year": 2021, "question": "what is federalism?",
                "paper": "GS-2", "level": "mains", "topic_tags": None, "theme": "", "verified": False}
    plan = plan_record(dict(snapshot), ThemeClassifier(), CURRENT_YEAR)
    assert plan.removal_reason is None
    assert plan.updates["theme"] == "Federalism"
    assert plan.updates["level"] == "Mains"
    assert plan_record(dict(snapshot), ThemeClassifier(), CURRENT_YEAR) == plan


def test_plan_expansion_ignores_single_language():
    assert plan_expansion({"id": 1, "question": "What is federalism?"}) == []
