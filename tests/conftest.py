import io
import zipfile
from pathlib import Path

import pytest

from arcadebox import create_app, ensure_root

INDEX = """<!doctype html>
<html>
<head><title>Coin Run</title>
  <link rel="stylesheet" href="css/style.css">
  <script src="./js/game.js"></script>
</head>
<body>
  <img src='assets/coin.png' alt="coin">
  <img SRC="/assets/hero.png">
  <a href="index.html">restart</a>
  <script src="https://cdn.example.com/lib.js"></script>
</body>
</html>
"""


def _zip(files: dict, dirs=()) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for d in dirs:
            zf.writestr(d.rstrip("/") + "/", b"")
        for name, data in files.items():
            zf.writestr(name, data.encode("utf-8") if isinstance(data, str) else data)
    return buf.getvalue()


def _png(w=64, h=36) -> bytes:
    from PIL import Image
    buf = io.BytesIO()
    Image.new("RGB", (w, h), (12, 34, 56)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def make_bundle():
    return _zip


@pytest.fixture
def png():
    return _png


@pytest.fixture
def game_files():
    return {
        "index.html": INDEX,
        "css/style.css": "body { background: url(../assets/hero.png); }",
        "js/game.js": "fetch('data/level1.json');",
        "assets/coin.png": _png(8, 8),
        "assets/hero.png": _png(16, 16),
        "data/level1.json": '{"coins": 3}',
    }


@pytest.fixture
def bundle(make_bundle, game_files):
    return make_bundle(game_files, dirs=["assets", "css", "js", "data"])


@pytest.fixture
def app(tmp_path: Path):
    root = tmp_path / "data"
    ensure_root(str(root))
    app = create_app(str(root))
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
