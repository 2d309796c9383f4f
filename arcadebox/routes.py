from __future__ import annotations
import io
from pathlib import Path
from flask import Blueprint, Response, abort, current_app, flash, jsonify, redirect, render_template_string, request, send_file, send_from_directory, url_for
from markupsafe import escape

from .archive import ArchiveReader
from .errors import ArchiveLoadError, DuplicateSlugError, GameNotFoundError
from .models import GameRecord
from .sandbox import SANDBOX_FLAGS
from .utils import file_uri, is_valid_slug, slugify, verify_image

from .templates import INDEX_HTML, PLAY_HTML, UPLOAD_HTML

bp = Blueprint("arcadebox", __name__)
sandbox_bp = Blueprint("sandbox", __name__)


def _services():
    ext = current_app.extensions["arcadebox"]
    return ext["catalog"], ext["hosts"], ext["arenas"], current_app.config["APP_TITLE"]


def _game_or_404(slug: str) -> GameRecord:
    catalog, *_ = _services()
    game = catalog.get(slug)
    if game is None:
        abort(404)
    return game


def _json_slug():
    body = request.get_json(silent=True) or {}
    return (body.get("slug") or request.form.get("slug") or "").strip()


# ──────────────────────────────────────────────────────────────────────────────
# Pages
# ──────────────────────────────────────────────────────────────────────────────

@bp.get("/")
def index():
    catalog, _, _, APP_TITLE = _services()
    return render_template_string(INDEX_HTML, app_title=APP_TITLE, games=catalog.all())


@bp.get("/play/<slug>")
def play(slug):
    catalog, _, _, APP_TITLE = _services()
    game = _game_or_404(slug)
    game.views = catalog.increment_views(slug)
    return render_template_string(PLAY_HTML, app_title=APP_TITLE, game=game,
                                  sandbox_flags=SANDBOX_FLAGS, embed=False)


@bp.get("/embed/<slug>")
def embed(slug):
    _, _, _, APP_TITLE = _services()
    game = _game_or_404(slug)
    return render_template_string(PLAY_HTML, app_title=APP_TITLE, game=game,
                                  sandbox_flags=SANDBOX_FLAGS, embed=True)


@bp.get("/upload")
def upload():
    _, _, _, APP_TITLE = _services()
    return render_template_string(UPLOAD_HTML, app_title=APP_TITLE,
                                  ALLOWED_IMG_EXT=sorted(current_app.config["ALLOWED_IMG_EXT"]))


@bp.post("/upload")
def upload_post():
    catalog, *_ = _services()
    cfg = current_app.config
    title = request.form.get("title", "").strip()
    slug = request.form.get("slug", "").strip() or slugify(title)
    description = request.form.get("description", "").strip()
    author = request.form.get("author", "").strip()
    bundle = request.files.get("bundle")
    cover = request.files.get("cover")

    if not title or not bundle or not bundle.filename:
        flash("Title and game ZIP are required.")
        return redirect(url_for("arcadebox.upload"))
    if not is_valid_slug(slug):
        flash("Slug must contain only lowercase letters, numbers, and hyphens.")
        return redirect(url_for("arcadebox.upload"))

    data = bundle.read()
    if len(data) > int(cfg["MAX_BUNDLE_BYTES"]):
        flash("Game ZIP is too large.")
        return redirect(url_for("arcadebox.upload"))
    try:
        with ArchiveReader(data) as reader:
            reader.entry_point()
    except ArchiveLoadError as e:
        flash(f"{e.headline}: {e}")
        return redirect(url_for("arcadebox.upload"))

    cover_name, cover_data = "", b""
    if cover and cover.filename:
        ext = Path(cover.filename).suffix.lower()
        if ext not in cfg["ALLOWED_IMG_EXT"]:
            flash("Unsupported image type.")
            return redirect(url_for("arcadebox.upload"))
        cover_data = cover.read()
        if verify_image(cover_data) is None:
            flash("Uploaded file is not a valid image.")
            return redirect(url_for("arcadebox.upload"))
        cover_name = f"{slug}{ext}"

    bundle_path = Path(cfg["BUNDLE_DIR"]) / f"{slug}.zip"
    if bundle_path.exists():
        flash("A game with this slug already exists.")
        return redirect(url_for("arcadebox.upload"))
    bundle_path.write_bytes(data)
    if cover_name:
        (Path(cfg["COVER_DIR"]) / cover_name).write_bytes(cover_data)

    record = GameRecord(slug=slug, title=title, bundle_url=file_uri(bundle_path),
                        description=description, author=author, cover_image=cover_name)
    try:
        catalog.add(record)
    except DuplicateSlugError as e:
        bundle_path.unlink(missing_ok=True)
        if cover_name:
            (Path(cfg["COVER_DIR"]) / cover_name).unlink(missing_ok=True)
        flash(str(e))
        return redirect(url_for("arcadebox.upload"))

    flash("Game uploaded.")
    return redirect(url_for("arcadebox.play", slug=slug))


@bp.get("/cover/<slug>")
def cover(slug):
    game = _game_or_404(slug)
    cover_dir = Path(current_app.config["COVER_DIR"])
    if game.cover_image and (cover_dir / game.cover_image).exists():
        return send_from_directory(cover_dir, game.cover_image)
    svg = f"""
    <svg xmlns="http://www.w3.org/2000/svg" width="640" height="360">
      <rect width="100%" height="100%" fill="#1f2630"/>
      <text x="50%" y="50%" fill="#e0e6ee" font-size="28" text-anchor="middle" dominant-baseline="middle">
        {escape(game.title[:32])}
      </text>
    </svg>
    """
    return send_file(io.BytesIO(svg.encode("utf-8")), mimetype="image/svg+xml")


@bp.get("/favicon.ico")
def favicon():
    return ("", 204)


# ──────────────────────────────────────────────────────────────────────────────
# JSON API
# ──────────────────────────────────────────────────────────────────────────────

def _game_json(g: GameRecord) -> dict:
    return {
        "slug": g.slug, "title": g.title, "description": g.description,
        "author_name": g.author, "blob_url": g.bundle_url, "views": g.views,
        "plays": g.plays, "featured": g.featured,
        "rating": round(g.rating, 2), "rating_count": g.rating_count,
        "cover_url": url_for("arcadebox.cover", slug=g.slug),
    }


@bp.get("/api/games")
def api_games():
    catalog, *_ = _services()
    return jsonify({"games": [_game_json(g) for g in catalog.all()]})


@bp.get("/api/featured-games")
def api_featured_games():
    catalog, *_ = _services()
    return jsonify({"games": [_game_json(g) for g in catalog.featured()]})


@bp.get("/api/games/<slug>")
def api_game(slug):
    catalog, *_ = _services()
    game = catalog.get(slug)
    if game is None:
        return jsonify({"error": "Game not found"}), 404
    game.views = catalog.increment_views(slug)
    return jsonify({"game": _game_json(game)})


@bp.post("/api/increment-play")
def api_increment_play():
    catalog, *_ = _services()
    slug = _json_slug()
    if not slug:
        return jsonify({"error": "Missing slug"}), 400
    try:
        catalog.increment_plays(slug)
    except GameNotFoundError:
        return jsonify({"error": "Game not found"}), 404
    return jsonify({"success": True})


@bp.post("/api/rate-game")
def api_rate_game():
    catalog, *_ = _services()
    body = request.get_json(silent=True) or {}
    slug = str(body.get("slug") or "").strip()
    rating = body.get("rating")
    if not slug or not rating:
        return jsonify({"error": "Missing slug or rating"}), 400
    try:
        game = catalog.rate(slug, rating)
    except GameNotFoundError:
        return jsonify({"error": "Game not found"}), 404
    except ValueError:
        return jsonify({"error": "Rating must be between 1 and 5"}), 400
    return jsonify({"success": True, "rating": round(game.rating, 2), "rating_count": game.rating_count})


@bp.post("/api/admin/toggle-featured")
def api_toggle_featured():
    catalog, *_ = _services()
    slug = _json_slug()
    if not slug:
        return jsonify({"error": "Missing slug"}), 400
    try:
        featured = catalog.toggle_featured(slug)
    except GameNotFoundError:
        return jsonify({"error": "Game not found"}), 404
    return jsonify({"success": True, "featured": featured})


@bp.post("/api/admin/toggle-published")
def api_toggle_published():
    catalog, *_ = _services()
    slug = _json_slug()
    if not slug:
        return jsonify({"error": "Missing slug"}), 400
    try:
        published = catalog.toggle_published(slug)
    except GameNotFoundError:
        return jsonify({"error": "Game not found"}), 404
    return jsonify({"success": True, "published": published})


@bp.route("/api/admin/delete-game", methods=["POST", "DELETE"])
def api_delete_game():
    catalog, *_ = _services()
    cfg = current_app.config
    slug = _json_slug()
    if not slug:
        return jsonify({"error": "Missing slug"}), 400
    try:
        game = catalog.delete(slug)
    except GameNotFoundError:
        return jsonify({"error": "Game not found"}), 404
    # live sessions keep their in-memory copy until they close
    (Path(cfg["BUNDLE_DIR"]) / f"{slug}.zip").unlink(missing_ok=True)
    if game.cover_image:
        (Path(cfg["COVER_DIR"]) / game.cover_image).unlink(missing_ok=True)
    return jsonify({"success": True})


# ──────────────────────────────────────────────────────────────────────────────
# Play sessions
# ──────────────────────────────────────────────────────────────────────────────

@bp.post("/api/sessions")
async def open_session():
    catalog, hosts, *_ = _services()
    slug = _json_slug()
    if not slug:
        return jsonify({"error": "Missing slug"}), 400
    game = catalog.get(slug)
    if game is None:
        return jsonify({"error": "Game not found"}), 404
    sid, host = hosts.mount(game.slug, game.title)
    await host.load(game.bundle_url)
    return jsonify({"session": sid, **host.snapshot()})


@bp.get("/api/sessions/<sid>")
def session_state(sid):
    _, hosts, *_ = _services()
    host = hosts.get(sid)
    if host is None:
        return jsonify({"error": "Unknown session"}), 404
    return jsonify({"session": sid, **host.snapshot()})


@bp.post("/api/sessions/<sid>/reload")
async def reload_session(sid):
    _, hosts, *_ = _services()
    host = hosts.get(sid)
    if host is None:
        return jsonify({"error": "Unknown session"}), 404
    if host.source is None:
        return jsonify({"error": "Session has been closed"}), 409
    await host.reload()
    return jsonify({"session": sid, **host.snapshot()})


@bp.post("/api/sessions/<sid>/close")
def close_session(sid):
    _, hosts, *_ = _services()
    return jsonify({"closed": hosts.unmount(sid)})


# ──────────────────────────────────────────────────────────────────────────────
# Sandboxed documents and handles (mounted under SANDBOX_ROOT)
# ──────────────────────────────────────────────────────────────────────────────

def _arena_or_404(arena_id: str):
    _, _, arenas, _ = _services()
    arena = arenas.get(arena_id)
    if arena is None or arena.revoked:
        abort(404)
    return arena


def _sandboxed(resp: Response) -> Response:
    # the frame has an opaque origin, so fetch/XHR to handles is cross-origin
    resp.headers["Access-Control-Allow-Origin"] = "*"
    resp.headers["Cache-Control"] = "no-store"
    resp.headers["X-Content-Type-Options"] = "nosniff"
    return resp


def _serve_handle(arena, handle: str) -> Response:
    blob = arena.get(handle.rsplit("/", 1)[-1])
    if blob is None:
        abort(404)
    return _sandboxed(Response(blob.data, mimetype=blob.mimetype))


@sandbox_bp.get("/<arena_id>/index.html")
def document(arena_id):
    arena = _arena_or_404(arena_id)
    if arena.document is None:
        abort(404)
    resp = _sandboxed(Response(arena.document, mimetype="text/html"))
    resp.headers["Content-Security-Policy"] = f"sandbox {SANDBOX_FLAGS}"
    return resp


@sandbox_bp.get("/<arena_id>/~/<token>")
def handle(arena_id, token):
    arena = _arena_or_404(arena_id)
    return _serve_handle(arena, token)


@sandbox_bp.get("/<arena_id>/<path:path>")
def relative_asset(arena_id, path):
    arena = _arena_or_404(arena_id)
    if arena.table is None:
        abort(404)
    resolved = arena.table.resolve(path)
    if resolved is None:
        abort(404)
    return _serve_handle(arena, resolved)
