import io
import re
import time
from pathlib import Path

import pytest

from arcadebox.interceptor import RESOURCE_DATA_ID
from arcadebox.models import GameRecord


def _catalog(app):
    return app.extensions["arcadebox"]["catalog"]


def _upload(client, bundle, png=None, **form):
    data = {"title": "Coin Run", "author": "ada", "description": "Collect coins."}
    data.update(form)
    data["bundle"] = (io.BytesIO(bundle), "coin-run.zip")
    if png is not None:
        data["cover"] = (io.BytesIO(png), "cover.png")
    return client.post("/upload", data=data, content_type="multipart/form-data")


@pytest.fixture
def uploaded(app, client, bundle, png):
    r = _upload(client, bundle, png())
    assert r.status_code == 302
    return _catalog(app).get("coin-run")


def _wait_for(predicate, timeout=2.0):
    end = time.time() + timeout
    while time.time() < end:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def test_upload_stores_bundle_and_cover(app, uploaded):
    assert uploaded.title == "Coin Run"
    assert uploaded.bundle_url.startswith("file://")
    assert (Path(app.config["BUNDLE_DIR"]) / "coin-run.zip").exists()
    assert uploaded.cover_image == "coin-run.png"


def test_upload_rejects_bundle_without_index(app, client, make_bundle):
    r = _upload(client, make_bundle({"game/index.html": "<html></html>"}))
    assert r.status_code == 302
    assert _catalog(app).get("coin-run") is None
    with client.session_transaction() as s:
        assert any("No index.html found" in m for _, m in s["_flashes"])


def test_upload_rejects_bad_cover_and_slug(app, client, bundle):
    r = _upload(client, bundle, b"not an image")
    assert r.status_code == 302
    assert _catalog(app).get("coin-run") is None
    r = _upload(client, bundle, slug="Bad Slug!")
    assert _catalog(app).get("coin-run") is None


def test_upload_duplicate_slug(app, client, uploaded, bundle):
    _upload(client, bundle)
    assert len(_catalog(app).all()) == 1


def test_index_and_play_pages(client, uploaded):
    r = client.get("/")
    assert r.status_code == 200
    assert b"Coin Run" in r.data

    r = client.get("/play/coin-run")
    assert r.status_code == 200
    page = r.get_data(as_text=True)
    assert 'sandbox="allow-scripts"' in page
    assert "allow-same-origin" not in page
    assert "Loading Coin Run..." in page
    assert client.get("/play/nope").status_code == 404


def test_embed_page(client, uploaded):
    r = client.get("/embed/coin-run")
    assert r.status_code == 200
    assert b"navbar" not in r.data


def test_cover_and_placeholder(app, client, uploaded):
    r = client.get("/cover/coin-run")
    assert r.status_code == 200
    assert r.mimetype == "image/png"
    _catalog(app).add(GameRecord(slug="bare", title="<Bare>", bundle_url=uploaded.bundle_url))
    r = client.get("/cover/bare")
    assert r.mimetype == "image/svg+xml"
    assert b"&lt;Bare&gt;" in r.data


def test_api_games(client, uploaded):
    r = client.get("/api/games")
    assert [g["slug"] for g in r.get_json()["games"]] == ["coin-run"]
    r = client.get("/api/games/coin-run")
    assert r.get_json()["game"]["views"] == 1
    r = client.get("/api/games/missing")
    assert r.status_code == 404
    assert r.get_json() == {"error": "Game not found"}


def test_api_increment_play(app, client, uploaded):
    assert client.post("/api/increment-play", json={}).status_code == 400
    assert client.post("/api/increment-play", json={"slug": "missing"}).status_code == 404
    r = client.post("/api/increment-play", json={"slug": "coin-run"})
    assert r.get_json() == {"success": True}
    assert _catalog(app).get("coin-run").plays == 1


def test_api_toggle_featured(client, uploaded):
    r = client.post("/api/admin/toggle-featured", json={"slug": "coin-run"})
    assert r.get_json()["featured"] is True
    r = client.get("/api/featured-games")
    assert [g["slug"] for g in r.get_json()["games"]] == ["coin-run"]


def test_session_lifecycle(app, client, uploaded):
    r = client.post("/api/sessions", json={"slug": "coin-run"})
    assert r.status_code == 200
    body = r.get_json()
    assert body["state"] == "ready"
    assert body["sandbox"] == "allow-scripts"
    sid, doc_url = body["session"], body["document_url"]

    doc = client.get(doc_url)
    assert doc.status_code == 200
    assert doc.headers["Content-Security-Policy"] == "sandbox allow-scripts"
    html = doc.get_data(as_text=True)
    assert f'id="{RESOURCE_DATA_ID}"' in html
    assert 'src="./js/game.js"' not in html

    handle = re.search(r'src="(/sandbox/[^"]+/~/[0-9a-f]+)"', html).group(1)
    res = client.get(handle)
    assert res.status_code == 200
    assert res.mimetype == "text/javascript"
    assert res.headers["Access-Control-Allow-Origin"] == "*"

    base = doc_url.rsplit("/", 1)[0]
    fallback = client.get(f"{base}/levels/level1.json")
    assert fallback.status_code == 200
    assert fallback.data == b'{"coins": 3}'
    assert client.get(f"{base}/nothing/here.txt").status_code == 404

    assert _wait_for(lambda: _catalog(app).get("coin-run").plays == 1)

    r = client.post(f"/api/sessions/{sid}/reload")
    assert r.get_json()["state"] == "ready"
    assert client.get(handle).status_code == 404
    assert client.get(f"/api/sessions/{sid}").get_json()["play_counted"] is True

    assert client.post(f"/api/sessions/{sid}/close").get_json() == {"closed": True}
    assert client.get(r.get_json()["document_url"]).status_code == 404
    assert client.get(f"/api/sessions/{sid}").status_code == 404
    time.sleep(0.1)
    assert _catalog(app).get("coin-run").plays == 1


def test_session_errors(app, client, uploaded, make_bundle):
    assert client.post("/api/sessions", json={}).status_code == 400
    assert client.post("/api/sessions", json={"slug": "missing"}).status_code == 404
    assert client.post("/api/sessions/nope/reload").status_code == 404

    Path(app.config["BUNDLE_DIR"], "coin-run.zip").unlink()
    body = client.post("/api/sessions", json={"slug": "coin-run"}).get_json()
    assert body["state"] == "error"
    assert body["error_type"] == "FetchError"
    assert body["document_url"] is None


def test_rate_game_validation(client, uploaded):
    assert client.post("/api/rate-game", json={"slug": "coin-run"}).get_json() == {"error": "Missing slug or rating"}
    assert client.post("/api/rate-game", json={"rating": 3}).status_code == 400
    r = client.post("/api/rate-game", json={"slug": "coin-run", "rating": 9})
    assert r.status_code == 400
    assert r.get_json() == {"error": "Rating must be between 1 and 5"}
    assert client.post("/api/rate-game", json={"slug": "missing", "rating": 3}).status_code == 404


def test_rating_shown_on_play_page(client, uploaded):
    assert "No ratings yet" in client.get("/play/coin-run").get_data(as_text=True)
    client.post("/api/rate-game", json={"slug": "coin-run", "rating": 4})
    r = client.post("/api/rate-game", json={"slug": "coin-run", "rating": 5})
    assert r.get_json() == {"success": True, "rating": 4.5, "rating_count": 2}
    assert "4.5 / 5.0 (2 ratings)" in client.get("/play/coin-run").get_data(as_text=True)
    game = client.get("/api/games/coin-run").get_json()["game"]
    assert (game["rating"], game["rating_count"]) == (4.5, 2)


def test_toggle_published(client, uploaded):
    r = client.post("/api/admin/toggle-published", json={"slug": "coin-run"})
    assert r.get_json() == {"success": True, "published": False}
    assert client.get("/play/coin-run").status_code == 404
    assert client.get("/api/games").get_json()["games"] == []
    assert client.post("/api/sessions", json={"slug": "coin-run"}).status_code == 404
    client.post("/api/admin/toggle-published", json={"slug": "coin-run"})
    assert client.get("/play/coin-run").status_code == 200


def test_delete_game_removes_files(app, client, uploaded):
    bundle_path = Path(app.config["BUNDLE_DIR"]) / "coin-run.zip"
    cover_path = Path(app.config["COVER_DIR"]) / "coin-run.png"
    assert bundle_path.exists() and cover_path.exists()
    r = client.delete("/api/admin/delete-game", json={"slug": "coin-run"})
    assert r.get_json() == {"success": True}
    assert not bundle_path.exists()
    assert not cover_path.exists()
    assert _catalog(app).get("coin-run") is None
    assert client.post("/api/admin/delete-game", json={"slug": "coin-run"}).status_code == 404
    assert client.post("/api/admin/delete-game", json={}).status_code == 400
