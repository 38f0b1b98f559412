"""
Tests for routers.pyq (theme browser and archive search)
"""
import pytest
from fastapi.testclient import TestClient

from database.database import get_db
from pyq_api import app
from routers.pyq import get_theme_cache


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_theme_cache] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(add_pyq):
    add_pyq(exam_code="UPSC", level="Mains", paper="GS-2", year=2019, question="What is federalism?",
            theme="Federalism", language="en", topic_tags=["polity"])
    add_pyq(exam_code="UPSC", level="Mains", paper="GS-2", year=2022, question="Explain cooperative federalism in India",
            theme="Federalism", language="en", verified=True)
    add_pyq(exam_code="UPSC", level="Mains", paper="GS-2", year=2021, question="Discuss the powers of the judiciary",
            theme="", language="en", topic_tags=["judicial review"])
    add_pyq(exam_code="UPSC", level="Mains", paper="GS-2", year=2020, question="Comment on parliamentary committees",
            theme="", language="en")
    add_pyq(exam_code="TNPSC", level="Mains", paper="GS-2", year=2020, question="Explain the state legislature",
            theme="Legislature", language="ta")
    add_pyq(exam_code="UPSC", level="Prelims", paper="GS-1", year=2018, question="Which river is the longest in India?",
            theme="Geography", language="en")


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_themes_grouped_and_sorted(client, seeded):
    response = client.get("/pyq/themes", params={"exam": "upsc", "paper": "GS-2", "level": "Mains"})
    assert response.status_code == 200
    body = response.json()

    assert body["exam"] == "UPSC"
    assert body["total_questions"] == 4
    themes = {group["theme"]: group for group in body["themes"]}
    assert body["themes"][0]["theme"] == "Federalism"
    assert [q["year"] for q in themes["Federalism"]["questions"]] == [2022, 2019]
    # empty theme falls back to the first tag, then to inference
    assert "Judicial Review" in themes
    assert "Parliament" in themes
    assert body["total_themes"] == 3
    assert body["cached"] is False


def test_themes_served_from_cache(client, seeded, fake_redis):
    app.dependency_overrides[get_theme_cache] = lambda: fake_redis

    first = client.get("/pyq/themes", params={"paper": "GS-2"}).json()
    second = client.get("/pyq/themes", params={"paper": "GS-2"}).json()

    assert first["cached"] is False
    assert second["cached"] is True
    assert second["themes"] == first["themes"]
    assert any(key.startswith("pyq:themes:") for key in fake_redis.store)


def test_archive_filters_and_paginates(client, seeded):
    body = client.get("/pyq/archive", params={"exam": "UPSC", "year_from": 2019, "year_to": 2021}).json()
    assert body["total"] == 3
    assert [item["year"] for item in body["items"]] == [2021, 2020, 2019]

    body = client.get("/pyq/archive", params={"exam": "UPSC", "page": 2, "page_size": 2}).json()
    assert body["total"] == 5
    assert body["page"] == 2
    assert len(body["items"]) == 2


def test_archive_substring_and_language(client, seeded):
    body = client.get("/pyq/archive", params={"q": "judicial"}).json()
    assert [item["question"] for item in body["items"]] == ["Discuss the powers of the judiciary"]

    body = client.get("/pyq/archive", params={"language": "ta"}).json()
    assert body["total"] == 1
    assert body["items"][0]["exam_code"] == "TNPSC"


def test_archive_rejects_bad_page(client):
    assert client.get("/pyq/archive", params={"page": 0}).status_code == 422
