import io
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from web.app import create_app


def _png(width: int = 60, height: int = 40) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (30, 160, 90)).save(buf, format="PNG")
    return buf.getvalue()


def _page(index: int = 0) -> dict:
    return {
        "id": f"page-{index}",
        "index": index,
        "name": f"{index}.jpg",
        "width": 100,
        "height": 200,
        "image_data": "data:image/jpeg;base64,AAAA",
        "thumbnail_data": "data:image/jpeg;base64,BBBB",
    }


@pytest.fixture
def client(settings, store):
    return TestClient(create_app(settings, store))


def _publish(client, title="Trip", pages=2) -> dict:
    response = client.post("/api/albums", json={"title": title, "pages": [_page(i) for i in range(pages)]})
    assert response.status_code == 200
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# JSON API
# ---------------------------------------------------------------------------

class TestAlbumApi:
    def test_create_album(self, client):
        body = _publish(client)
        assert len(body["slug"]) == 8
        assert len(body["id"]) == 12
        assert body["share_url"] == f"http://testserver/album/{body['slug']}"
        assert body["qr_png"].startswith("data:image/png;base64,")
        assert body["metadata"]["page_count"] == 2
        assert "pages" not in body["metadata"]

    def test_create_album_without_pages(self, client):
        response = client.post("/api/albums", json={"title": "Empty", "pages": []})
        assert response.status_code == 400
        assert response.json() == {"error": "At least one page is required"}

    def test_create_album_missing_body_fields(self, client):
        response = client.post("/api/albums", json={})
        assert response.status_code == 400

    def test_create_album_storage_failure(self, settings):
        store = MagicMock()
        store.exists.return_value = False
        store.write.side_effect = OSError("read-only filesystem")
        client = TestClient(create_app(settings, store))
        response = client.post("/api/albums", json={"pages": [_page()]})
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to create album"}

    def test_get_album(self, client):
        created = _publish(client, title="  Spaced  ")
        response = client.get(f"/api/albums/{created['slug']}")
        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Spaced"
        assert [p["index"] for p in body["pages"]] == [0, 1]
        assert body["pages"][0]["orientation"] == "portrait"

    def test_get_unknown_album(self, client):
        response = client.get("/api/albums/nope")
        assert response.status_code == 404
        assert response.json() == {"error": "Album not found"}

    def test_storage_error_is_not_a_404(self, settings):
        store = MagicMock()
        store.read.side_effect = OSError("permission denied")
        client = TestClient(create_app(settings, store), raise_server_exceptions=False)
        assert client.get("/api/albums/abc").status_code == 500


class TestPagesApi:
    def test_process_pages(self, client):
        response = client.post(
            "/api/pages",
            files=[
                ("files", ("b.png", _png(40, 60), "image/png")),
                ("files", ("a.png", _png(60, 40), "image/png")),
            ],
        )
        assert response.status_code == 200
        body = response.json()
        assert body["page_count"] == 2
        assert [p["name"] for p in body["pages"]] == ["a.png", "b.png"]
        assert body["double_page_spreads"] == [[0, 1]]

    def test_process_pages_failure(self, client):
        response = client.post("/api/pages", files=[("files", ("x.png", b"garbage", "image/png"))])
        assert response.status_code == 422
        assert response.json() == {"error": "Processing failed"}

    @patch("pipeline.stage4_assemble.extract_text", return_value="Hello")
    def test_process_pages_with_ocr(self, mock_ocr, client):
        response = client.post(
            "/api/pages",
            files=[("files", ("a.png", _png(), "image/png"))],
            data={"include_ocr": "true"},
        )
        assert response.json()["pages"][0]["ocr_text"] == "Hello"


# ---------------------------------------------------------------------------
# HTML pages
# ---------------------------------------------------------------------------

class TestHtml:
    def test_studio_page(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert 'action="/studio"' in response.text

    def test_studio_submit_publishes(self, client, store):
        response = client.post(
            "/studio",
            files=[("files", ("a.png", _png(), "image/png"))],
            data={"title": "Garden"},
        )
        assert response.status_code == 200
        assert "Deployment ready" in response.text
        assert "Garden" in response.text
        assert "data:image/png;base64," in response.text
        assert list(store.root.glob("*.json"))

    def test_studio_submit_failure(self, client):
        response = client.post("/studio", files=[("files", ("x.png", b"garbage", "image/png"))])
        assert response.status_code == 422
        assert "Processing failed" in response.text

    def test_studio_submit_nothing_convertible(self, client):
        response = client.post("/studio", files=[("files", ("notes.txt", b"hi", "text/plain"))])
        assert response.status_code == 200
        assert "No convertible pages detected" in response.text

    def test_album_page(self, client):
        created = _publish(client, title="Wedding")
        response = client.get(f"/album/{created['slug']}")
        assert response.status_code == 200
        assert "Wedding" in response.text
        assert "PageFlip" in response.text

    def test_album_page_unknown(self, client):
        response = client.get("/album/missing")
        assert response.status_code == 404
        assert "locate that album" in response.text


# ---------------------------------------------------------------------------
# Edge cases
# ---------------------------------------------------------------------------

def test_create_album_with_null_pages(client):
    response = client.post("/api/albums", json={"title": "Nulls", "pages": None})
    assert response.status_code == 400
    assert response.json() == {"error": "At least one page is required"}


def test_oversized_upload_is_processing_failure(client, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    response = client.post("/api/pages", files=[("files", ("poster.png", _png(300, 300), "image/png"))])
    assert response.status_code == 422
    assert response.json() == {"error": "Processing failed"}


def test_album_viewer_options(client):
    created = _publish(client)
    text = client.get(f"/album/{created['slug']}").text
    assert "showCover: true" in text
    assert "usePortrait: window.innerWidth < 768" in text
