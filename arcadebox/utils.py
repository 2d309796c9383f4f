import io
import json
import re
import unicodedata
from pathlib import Path
from typing import Optional
from PIL import Image

SLUG_RE = re.compile(r"^[a-z0-9-]+$")


def json_for_html(obj) -> str:
    """JSON that is safe inside a <script> element.

    ``<``, ``>`` and ``&`` become ``\\u003c``-style escapes so an archive path
    containing ``</script>`` cannot close the block. Non-ASCII (U+2028/2029
    included) is already escaped by ensure_ascii.
    """
    s = json.dumps(obj, separators=(",", ":"), ensure_ascii=True)
    return s.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")


def slugify(text: str) -> str:
    s = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode()
    s = re.sub(r"[^a-z0-9]+", "-", s.lower()).strip("-")
    return s


def is_valid_slug(slug: str) -> bool:
    return bool(slug) and bool(SLUG_RE.match(slug))


def verify_image(data: bytes) -> Optional[str]:
    """Return the Pillow format name ("PNG", "JPEG", ...) or None if not an image."""
    try:
        with Image.open(io.BytesIO(data)) as im:
            fmt = im.format
            im.verify()
        return fmt
    except Exception:
        return None


def file_uri(path: Path) -> str:
    return Path(path).resolve().as_uri()
