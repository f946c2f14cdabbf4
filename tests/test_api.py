"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from marginalia import __version__
from marginalia.api import create_app
from marginalia.document.html import HtmlDocument
from marginalia.service import AnnotationService

URL = "https://example.org/field-notes"


@pytest.fixture
def client(store):
    """Test client over an in-memory store"""
    return TestClient(create_app(store))


@pytest.fixture
def saved(store, article_html):
    """One text annotation and one pin on the article page"""
    document = HtmlDocument.from_string(article_html)
    service = AnnotationService(store)
    text = service.create_text_annotation(
        document, document.find_range("old oak tree"), URL, "Oak"
    )
    pin = service.create_coordinate_annotation(URL, 5, 6, "Pin")
    return text, pin


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client) -> None:
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": __version__}


class TestAnchors:
    """Tests for POST /api/anchors."""

    def test_capture(self, client, article_html) -> None:
        response = client.post(
            "/api/anchors", json={"html": article_html, "quote": "The quick brown fox"}
        )

        assert response.status_code == 200
        anchor = response.json()
        assert anchor["type"] == "text"
        assert anchor["exact"] == "The quick brown fox"
        assert anchor["parentPath"] == "#main > div.story > p"
        assert anchor["fingerprint"]["nearestHeading"] == "Morning"

    def test_quote_not_found(self, client, article_html) -> None:
        response = client.post("/api/anchors", json={"html": article_html, "quote": "zebra"})
        assert response.status_code == 404

    def test_whitespace_quote(self, client) -> None:
        response = client.post("/api/anchors", json={"html": "<p>a  b</p>", "quote": "  "})
        assert response.status_code == 422

    def test_blank_html(self, client) -> None:
        response = client.post("/api/anchors", json={"html": "   ", "quote": "x"})
        assert response.status_code == 400

    def test_comment_only_html(self, client) -> None:
        response = client.post("/api/anchors", json={"html": "<!-- nothing -->", "quote": "x"})
        assert response.status_code == 400
        assert "Cannot parse HTML" in response.json()["detail"]

    def test_missing_fields(self, client) -> None:
        response = client.post("/api/anchors", json={"quote": "x"})
        assert response.status_code == 422


class TestListAnnotations:
    """Tests for GET /api/annotations."""

    def test_list(self, client, saved) -> None:
        response = client.get("/api/annotations", params={"url": URL})
        assert response.status_code == 200
        records = response.json()
        assert [r["id"] for r in records] == [a.id for a in saved]
        assert records[1]["anchor"] == {"type": "coordinate", "x": 5.0, "y": 6.0}

    def test_other_url(self, client, saved) -> None:
        response = client.get("/api/annotations", params={"url": "https://else.org"})
        assert response.json() == []


class TestResolve:
    """Tests for the resolve endpoints."""

    def test_resolve_page(self, client, saved, article_html) -> None:
        text, pin = saved

        response = client.post("/api/resolve", json={"html": article_html, "url": URL})

        assert response.status_code == 200
        body = response.json()
        assert body["url"] == URL
        assert body["pins"] == [pin.id]
        assert body["detached"] == []
        (placement,) = body["placements"]
        assert placement["annotation_id"] == text.id
        assert placement["confidence"] == "exact"
        assert placement["match"]["text"] == "old oak tree"

    def test_resolve_one(self, client, saved, article_html) -> None:
        text, _pin = saved
        edited = article_html.replace("old oak tree", "old oak trees")

        response = client.post(f"/api/resolve/{text.id}", json={"html": edited})

        assert response.status_code == 200
        assert response.json()["confidence"] == "exact"

    def test_resolve_one_unknown(self, client, article_html) -> None:
        response = client.post("/api/resolve/missing", json={"html": article_html})
        assert response.status_code == 404

    def test_resolve_one_pin(self, client, saved, article_html) -> None:
        _text, pin = saved
        response = client.post(f"/api/resolve/{pin.id}", json={"html": article_html})
        assert response.status_code == 400
