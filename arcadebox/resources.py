"""Handle arenas and the per-load resource table.

A handle is a URL this app serves from memory: ``<root>/<arena>/~/<token>``.
Every handle belongs to exactly one arena; revoking the arena drops all of its
blobs at once and the handle route starts answering 404.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import threading
from collections import OrderedDict
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .models import Blob, ResourceEntry, ResourceKind

logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"

# extension -> (kind, mimetype); fixed on purpose, nothing is sniffed
KIND_TABLE: Dict[str, Tuple[ResourceKind, str]] = {
    ".js": (ResourceKind.SCRIPT, "text/javascript"),
    ".wasm": (ResourceKind.MODULE, "application/wasm"),
    ".html": (ResourceKind.DOCUMENT, "text/html"),
    ".css": (ResourceKind.STYLESHEET, "text/css"),
    ".png": (ResourceKind.IMAGE, "image/png"),
    ".jpg": (ResourceKind.IMAGE, "image/jpeg"),
    ".jpeg": (ResourceKind.IMAGE, "image/jpeg"),
}

DOUBLE_EXT_RE = re.compile(r"\.(png|jpg|jpeg|gif|webp|mp3|wav|ogg)\.\1$", re.IGNORECASE)


def _lookup_kind(path: str) -> Tuple[ResourceKind, str]:
    name = path.rsplit("/", 1)[-1].lower()
    dot = name.rfind(".")
    ext = name[dot:] if dot > 0 else ""
    return KIND_TABLE.get(ext, (ResourceKind.BINARY, OCTET_STREAM))


def kind_for(path: str) -> ResourceKind:
    return _lookup_kind(path)[0]


def mimetype_for(path: str) -> str:
    return _lookup_kind(path)[1]


def repair_double_extension(name: str) -> str:
    """``coin.png.png`` -> ``coin.png``; anything else is returned unchanged."""
    return DOUBLE_EXT_RE.sub(r".\1", name)


def request_basename(path: str) -> str:
    clean = path.split("#", 1)[0].split("?", 1)[0]
    return clean.rsplit("/", 1)[-1]


def new_id() -> str:
    return os.urandom(8).hex()


class HandleArena:
    """Owns every handle created for one load of one sandbox session."""

    def __init__(self, arena_id: str, root: str):
        self.id = arena_id
        self.root = root.rstrip("/")
        self.document: Optional[str] = None
        self.table: Optional["ResourceTable"] = None
        self._blobs: Dict[str, Blob] = {}
        self._revoked = False

    @property
    def base_url(self) -> str:
        return f"{self.root}/{self.id}"

    @property
    def document_url(self) -> str:
        return f"{self.base_url}/index.html"

    @property
    def revoked(self) -> bool:
        return self._revoked

    def create(self, blob: Blob) -> str:
        if self._revoked:
            raise RuntimeError(f"arena {self.id} has been revoked")
        token = new_id()
        self._blobs[token] = blob
        return f"{self.base_url}/~/{token}"

    def get(self, token: str) -> Optional[Blob]:
        if self._revoked:
            return None
        return self._blobs.get(token)

    def commit_document(self, text: str, table: Optional["ResourceTable"] = None) -> str:
        if self._revoked:
            raise RuntimeError(f"arena {self.id} has been revoked")
        self.document = text
        self.table = table
        return self.document_url

    def revoke(self) -> None:
        if not self._revoked:
            logger.debug("revoking arena %s (%d handles)", self.id, len(self._blobs))
        self._revoked = True
        self._blobs.clear()
        self.document = None
        self.table = None

    def __len__(self) -> int:
        return len(self._blobs)


class ArenaRegistry:
    """App-wide index of live arenas so the handle routes can find their bytes."""

    def __init__(self, root: str = "/sandbox"):
        self.root = root
        self._arenas: Dict[str, HandleArena] = {}
        self._lock = threading.Lock()

    def open(self) -> HandleArena:
        arena = HandleArena(new_id(), self.root)
        with self._lock:
            self._arenas[arena.id] = arena
        return arena

    def get(self, arena_id: str) -> Optional[HandleArena]:
        with self._lock:
            return self._arenas.get(arena_id)

    def release(self, arena_id: str) -> None:
        with self._lock:
            arena = self._arenas.pop(arena_id, None)
        if arena is not None:
            arena.revoke()

    def live_count(self) -> int:
        with self._lock:
            return len(self._arenas)


class ResourceTable:
    """Archive path -> ResourceEntry, built once per load and read-only afterwards."""

    def __init__(self, entries: "OrderedDict[str, ResourceEntry]"):
        self._entries = MappingProxyType(entries)
        by_name: Dict[str, List[str]] = {}
        by_repaired: Dict[str, List[str]] = {}
        for path in entries:
            base = path.rsplit("/", 1)[-1]
            by_name.setdefault(base, []).append(path)
            fixed = repair_double_extension(base)
            if fixed != base:
                by_repaired.setdefault(fixed, []).append(path)
        # basename -> keys, and repaired basename -> keys whose name had a doubled extension
        self._by_basename = MappingProxyType({k: tuple(v) for k, v in by_name.items()})
        self._by_repaired = MappingProxyType({k: tuple(v) for k, v in by_repaired.items()})
        self._handles = frozenset(e.handle for e in entries.values())

    @staticmethod
    def _make_entry(entry, arena: HandleArena) -> ResourceEntry:
        kind, mimetype = _lookup_kind(entry.path)
        handle = arena.create(entry.read_blob(mimetype))
        return ResourceEntry(entry.path, kind, handle)

    @classmethod
    def build(cls, entries: Iterable, arena: HandleArena) -> "ResourceTable":
        # Eager: the game may ask for any asset at any time after load.
        table: "OrderedDict[str, ResourceEntry]" = OrderedDict()
        for entry in entries:
            if entry.is_dir:
                continue
            table[entry.path] = cls._make_entry(entry, arena)
        return cls(table)

    @classmethod
    async def build_async(cls, entries: Iterable, arena: HandleArena,
                          checkpoint: Optional[Callable[[], None]] = None) -> "ResourceTable":
        table: "OrderedDict[str, ResourceEntry]" = OrderedDict()
        for entry in entries:
            if entry.is_dir:
                continue
            table[entry.path] = cls._make_entry(entry, arena)
            await asyncio.sleep(0)
            if checkpoint is not None:
                checkpoint()
        return cls(table)

    # -- mapping-ish access --

    def get(self, path: str) -> Optional[ResourceEntry]:
        return self._entries.get(path)

    def __contains__(self, path) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Mapping[str, ResourceEntry]:
        return self._entries

    def handles(self) -> Dict[str, str]:
        return {p: e.handle for p, e in self._entries.items()}

    # -- lookups --

    def match_reference(self, value: str) -> Optional[str]:
        """Key for a static attribute value: exact, else the longest key ``k``
        such that ``value`` ends with ``/k``."""
        if value in self._entries:
            return value
        parts = value.split("/")
        for i in range(1, len(parts)):
            tail = "/".join(parts[i:])
            if tail and tail in self._entries:
                return tail
        return None

    def resolve(self, request: str) -> Optional[str]:
        """Handle for a runtime request, or None to let the request through.

        Order: exact path, basename, double-extension repaired basename, then
        every key ending in ``/<basename>`` (either side repaired).
        """
        if not request or request in self._handles:
            return None
        hit = self._entries.get(request)
        if hit is not None:
            return hit.handle

        name = request_basename(request)
        if not name:
            return None
        hit = self._entries.get(name)
        if hit is not None:
            return hit.handle

        fixed = repair_double_extension(name)
        if fixed != name:
            hit = self._entries.get(fixed)
            if hit is not None:
                return hit.handle

        for candidate in (name, fixed):
            keys = self._by_basename.get(candidate, ()) + self._by_repaired.get(candidate, ())
            if keys:
                return self._entries[keys[0]].handle
        return None
