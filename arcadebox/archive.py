"""Fetch a zipped game bundle and expose its members as lazily decoded entries."""
from __future__ import annotations

import io
import logging
import zipfile
import zlib
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests

from .errors import ArchiveFormatError, FetchError, MissingEntryPointError
from .models import Blob

logger = logging.getLogger(__name__)

ENTRY_POINT = "index.html"


def fetch_bundle(url: str, timeout: float = 30.0) -> bytes:
    """Download the full bundle behind ``url``.

    http/https go through requests; ``file://`` URLs (bundles uploaded to this
    instance) are read from disk. Anything else is a FetchError.
    """
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()

    if scheme in ("http", "https"):
        try:
            r = requests.get(url, timeout=timeout)
        except requests.RequestException as e:
            raise FetchError(url, str(e)) from e
        if not r.ok:
            raise FetchError(url, f"HTTP {r.status_code}", status=r.status_code)
        return r.content

    if scheme == "file":
        p = Path(url2pathname(parsed.path))
        try:
            return p.read_bytes()
        except OSError as e:
            raise FetchError(url, e.strerror or str(e)) from e

    raise FetchError(url, f"unsupported URL scheme {scheme or '(none)'!r}")


class ArchiveEntry:
    """One member of the bundle. Bytes are inflated on first use, then cached."""

    def __init__(self, zf: zipfile.ZipFile, info: zipfile.ZipInfo):
        self._zf = zf
        self._info = info
        self._data: Optional[bytes] = None

    @property
    def path(self) -> str:
        return self._info.filename

    @property
    def is_dir(self) -> bool:
        return self._info.is_dir()

    @property
    def size(self) -> int:
        return self._info.file_size

    def read_bytes(self) -> bytes:
        if self.is_dir:
            return b""
        if self._data is None:
            try:
                self._data = self._zf.read(self._info)
            except (zipfile.BadZipFile, zlib.error, NotImplementedError, EOFError) as e:
                raise ArchiveFormatError(f"{self.path}: {e}") from e
        return self._data

    def read_text(self) -> str:
        return self.read_bytes().decode("utf-8", errors="replace")

    def read_blob(self, mimetype: str) -> Blob:
        return Blob(self.read_bytes(), mimetype)

    def __repr__(self) -> str:
        return f"<ArchiveEntry {self.path!r}{' dir' if self.is_dir else ''}>"


class ArchiveReader:
    """Use as a context manager; entries read after close() fail unless already cached."""

    def __init__(self, data: bytes):
        try:
            self._zf = zipfile.ZipFile(io.BytesIO(data))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
            raise ArchiveFormatError(str(e)) from e
        self.entries: List[ArchiveEntry] = [ArchiveEntry(self._zf, i) for i in self._zf.infolist()]
        self._by_path: Dict[str, ArchiveEntry] = {e.path: e for e in self.entries}
        logger.debug("opened bundle: %d entries", len(self.entries))

    def get(self, path: str) -> Optional[ArchiveEntry]:
        return self._by_path.get(path)

    def entry_point(self) -> ArchiveEntry:
        # Root only, exact case: "Index.html" or "game/index.html" do not count.
        entry = self.get(ENTRY_POINT)
        if entry is None or entry.is_dir:
            raise MissingEntryPointError(ENTRY_POINT)
        return entry

    @property
    def closed(self) -> bool:
        return self._zf.fp is None

    def close(self) -> None:
        self._zf.close()

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
