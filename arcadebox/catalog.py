import json
import logging
import os
import threading
from dataclasses import asdict, fields
from pathlib import Path
from typing import Dict, List, Optional

from .errors import DuplicateSlugError, GameNotFoundError
from .models import GameRecord

logger = logging.getLogger(__name__)

_FIELDS = {f.name for f in fields(GameRecord)}

MIN_RATING, MAX_RATING = 1, 5


def _record_from(data: dict) -> Optional[GameRecord]:
    if not isinstance(data, dict):
        return None
    slug = data.get("slug") or ""
    title = data.get("title") or slug
    bundle_url = data.get("bundle_url") or ""
    if not slug or not bundle_url:
        return None
    kw = {k: v for k, v in data.items() if k in _FIELDS}
    kw.update(slug=slug, title=title, bundle_url=bundle_url)
    return GameRecord(**kw)


class Catalog:
    """Game records kept in one JSON file: ``{"games": [ {...}, ... ]}``.

    Every mutation rewrites the file (temp file + replace) under a lock.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, GameRecord]:
        games: Dict[str, GameRecord] = {}
        if not self.path.exists():
            return games
        try:
            data = json.loads(self.path.read_text("utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("catalog %s unreadable, starting empty: %s", self.path, e)
            return games
        for item in data.get("games", []) if isinstance(data, dict) else []:
            rec = _record_from(item)
            if rec is not None:
                games[rec.slug] = rec
        return games

    def _save(self, games: Dict[str, GameRecord]) -> None:
        payload = {"games": [asdict(g) for g in games.values()]}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    # -- queries --

    def all(self, published_only: bool = True) -> List[GameRecord]:
        games = [g for g in self._load().values() if g.published or not published_only]
        games.sort(key=lambda g: (not g.featured, -g.created))
        return games

    def featured(self) -> List[GameRecord]:
        return [g for g in self.all() if g.featured]

    def get(self, slug: str) -> Optional[GameRecord]:
        g = self._load().get(slug)
        return g if g is not None and g.published else None

    # -- mutations --

    def add(self, record: GameRecord) -> GameRecord:
        with self._lock:
            games = self._load()
            if record.slug in games:
                raise DuplicateSlugError(record.slug)
            games[record.slug] = record
            self._save(games)
        return record

    def _bump(self, slug: str, attr: str) -> int:
        with self._lock:
            games = self._load()
            g = games.get(slug)
            if g is None:
                raise GameNotFoundError(slug)
            setattr(g, attr, getattr(g, attr) + 1)
            self._save(games)
            return getattr(g, attr)

    def increment_views(self, slug: str) -> int:
        return self._bump(slug, "views")

    def increment_plays(self, slug: str) -> int:
        return self._bump(slug, "plays")

    def _toggle(self, slug: str, attr: str) -> bool:
        with self._lock:
            games = self._load()
            g = games.get(slug)
            if g is None:
                raise GameNotFoundError(slug)
            setattr(g, attr, not getattr(g, attr))
            self._save(games)
            return getattr(g, attr)

    def toggle_featured(self, slug: str) -> bool:
        return self._toggle(slug, "featured")

    def toggle_published(self, slug: str) -> bool:
        return self._toggle(slug, "published")

    def rate(self, slug: str, rating: int) -> GameRecord:
        """Add one 1-5 star rating to a published game."""
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
        with self._lock:
            games = self._load()
            g = games.get(slug)
            if g is None or not g.published:
                raise GameNotFoundError(slug)
            g.rating_sum += rating
            g.rating_count += 1
            self._save(games)
            return g

    def delete(self, slug: str) -> GameRecord:
        with self._lock:
            games = self._load()
            g = games.pop(slug, None)
            if g is None:
                raise GameNotFoundError(slug)
            self._save(games)
            return g
