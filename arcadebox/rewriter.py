"""Static reference rewriting for the entry document."""
from __future__ import annotations

import re

from .archive import ENTRY_POINT
from .resources import ResourceTable

# src="..." / href='...', any case; the value may not contain its own quote
_ATTR_RE = re.compile(
    r"""\b(?P<attr>src|href)(?P<eq>\s*=\s*)(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)')""",
    re.IGNORECASE,
)
_HEAD_RE = re.compile(r"<head\b[^>]*>", re.IGNORECASE)
_HTML_RE = re.compile(r"<html\b[^>]*>", re.IGNORECASE)
_DOCTYPE_RE = re.compile(r"^\s*<!doctype\b[^>]*>", re.IGNORECASE)


def rewrite_references(html: str, table: ResourceTable, entry_path: str = ENTRY_POINT) -> str:
    """Point every static src/href that names a bundled file at its handle.

    ``assets/x.png``, ``./assets/x.png`` and ``/assets/x.png`` all land on the
    key ``assets/x.png``; exact matches win over suffix matches. The entry
    document itself is never substituted. Runtime-built URLs are not visible
    here; the interceptor covers those.
    """
    def _sub(m: "re.Match[str]") -> str:
        if m.group("dq") is not None:
            quote, value = '"', m.group("dq")
        else:
            quote, value = "'", m.group("sq")
        key = table.match_reference(value)
        if key is None or key == entry_path:
            return m.group(0)
        return f"{m.group('attr')}{m.group('eq')}{quote}{table.get(key).handle}{quote}"

    return _ATTR_RE.sub(_sub, html)


def inject_head(html: str, markup: str) -> str:
    """Insert ``markup`` right after the opening <head> tag.

    Documents without a head get it after <html>, then after the doctype,
    and as a last resort at the very top.
    """
    for rx in (_HEAD_RE, _HTML_RE, _DOCTYPE_RE):
        m = rx.search(html)
        if m:
            return html[:m.end()] + markup + html[m.end():]
    return markup + html
