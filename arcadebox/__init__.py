import os
from pathlib import Path
from typing import Callable, Optional
from flask import Flask

from .archive import fetch_bundle
from .catalog import Catalog
from .resources import ArenaRegistry
from .sandbox import HostRegistry
from .routes import bp as routes_bp, sandbox_bp

BIND = os.environ.get("BIND", "127.0.0.1")
PORT = int(os.environ.get("PORT", "5000"))
FETCH_TIMEOUT = float(os.environ.get("FETCH_TIMEOUT", "30"))
MAX_SESSIONS = int(os.environ.get("MAX_SESSIONS", "64"))
SANDBOX_ROOT = os.environ.get("SANDBOX_ROOT", "/sandbox")


def ensure_root(data_root: str) -> None:
    root = Path(data_root)
    if root.exists() and not root.is_dir():
        raise SystemExit(f"ARCADE_DATA is not a directory: {data_root}")
    (root / "bundles").mkdir(parents=True, exist_ok=True)
    (root / "covers").mkdir(parents=True, exist_ok=True)


def create_app(data_root: str, fetcher: Optional[Callable[..., bytes]] = None,
               overrides: Optional[dict] = None) -> Flask:
    root = Path(data_root)
    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET", "dev-" + os.urandom(8).hex())
    app.config["DATA_ROOT"] = str(root)
    app.config["APP_TITLE"] = "Arcadebox"
    app.config["CATALOG_FILE"] = str(root / "catalog.json")
    app.config["BUNDLE_DIR"] = str(root / "bundles")
    app.config["COVER_DIR"] = str(root / "covers")
    app.config["ALLOWED_IMG_EXT"] = {".png", ".jpg", ".jpeg", ".webp", ".gif"}
    app.config["MAX_BUNDLE_BYTES"] = 200 * 1024 * 1024
    app.config["FETCH_TIMEOUT"] = FETCH_TIMEOUT
    app.config["MAX_SESSIONS"] = MAX_SESSIONS
    app.config["SANDBOX_ROOT"] = SANDBOX_ROOT.rstrip("/") or "/sandbox"
    if overrides:
        app.config.update(overrides)

    catalog = Catalog(Path(app.config["CATALOG_FILE"]))
    arenas = ArenaRegistry(app.config["SANDBOX_ROOT"])
    hosts = HostRegistry(
        arenas,
        notifier=catalog.increment_plays,
        max_hosts=int(app.config["MAX_SESSIONS"]),
        fetcher=fetcher or fetch_bundle,
        timeout=float(app.config["FETCH_TIMEOUT"]),
    )
    app.extensions["arcadebox"] = {"catalog": catalog, "arenas": arenas, "hosts": hosts}

    app.register_blueprint(routes_bp)
    app.register_blueprint(sandbox_bp, url_prefix=app.config["SANDBOX_ROOT"])
    return app
