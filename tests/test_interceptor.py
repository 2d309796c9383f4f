import json
import re

import pytest
from py_mini_racer import MiniRacer

from arcadebox.archive import ArchiveReader
from arcadebox.interceptor import RESOURCE_DATA_ID, build_document, render_interceptor
from arcadebox.resources import ArenaRegistry, ResourceTable

_DATA_RE = re.compile(
    r'<script type="application/json" id="%s">(.*?)</script>' % RESOURCE_DATA_ID, re.DOTALL
)


def test_data_block_precedes_script():
    out = render_interceptor({"a.js": "/sandbox/x/~/1"})
    data_at = out.index(f'id="{RESOURCE_DATA_ID}"')
    script_at = out.index("window.fetch")
    assert data_at < script_at
    assert json.loads(_DATA_RE.search(out).group(1)) == [["a.js", "/sandbox/x/~/1"]]


def test_hostile_paths_cannot_break_out():
    nasty = '</script><script>alert("x")</script>& .png'
    out = render_interceptor({nasty: "/sandbox/x/~/1"})
    # exactly two script elements: data + interceptor
    assert out.count("</script>") == 2
    pairs = json.loads(_DATA_RE.search(out).group(1))
    assert pairs == [[nasty, "/sandbox/x/~/1"]]


def test_order_of_table_is_kept():
    handles = {"b/dup.png": "/s/1/~/b", "a/dup.png": "/s/1/~/a"}
    pairs = json.loads(_DATA_RE.search(render_interceptor(handles)).group(1))
    assert [p[0] for p in pairs] == ["b/dup.png", "a/dup.png"]


def test_script_wraps_fetch_and_xhr():
    out = render_interceptor({})
    assert "var originalFetch = window.fetch" in out
    assert "XMLHttpRequest.prototype.open = function" in out
    assert "__DATA_ID__" not in out


def test_build_document_injects_first_in_head(bundle):
    reader = ArchiveReader(bundle)
    table = ResourceTable.build(reader.entries, ArenaRegistry().open())
    doc = build_document(reader.entry_point().read_text(), table)
    head_end = doc.lower().index("<head>") + len("<head>")
    assert doc[head_end:].startswith(f'<script type="application/json" id="{RESOURCE_DATA_ID}">')
    assert table.get("js/game.js").handle in doc
    pairs = dict(json.loads(_DATA_RE.search(doc).group(1)))
    assert pairs == table.handles()


# -- the injected script itself, run in V8 against stub fetch/XHR --

_STUBS = r"""
var window = globalThis;
var calls = [];
var document = {
  getElementById: function (id) { return id === __ID__ ? { textContent: __DATA__ } : null; }
};
function Request(url, init) {
  this.url = url;
  this.method = (init && init.method) || "GET";
}
window.fetch = function (input, init) {
  calls.push(typeof input === "string" ? input : { url: input.url, method: input.method });
  return null;
};
function XMLHttpRequest() {}
XMLHttpRequest.prototype.open = function (method, url) { calls.push(url); };

function viaFetch(u) { calls = []; window.fetch(u); return JSON.stringify(calls[0]); }
function viaXhr(u) { calls = []; new XMLHttpRequest().open("GET", u, true); return JSON.stringify(calls[0]); }
function viaRequest(u) {
  calls = []; window.fetch(new Request(u, { method: "POST" })); return JSON.stringify(calls[0]);
}
"""

_SCRIPT_RE = re.compile(r"<script>(.*?)</script>", re.DOTALL)

GAME = {
    "index.html": "<html><head></head></html>",
    "js/game.js": "1",
    "images/coin.png.png": b"c",
    "data/level1.json": "{}",
    "b/dup.png": b"b",
    "a/dup.png": b"a",
}


class TestInjectedScript:
    @pytest.fixture
    def table(self, make_bundle):
        reader = ArchiveReader(make_bundle(GAME))
        return ResourceTable.build(reader.entries, ArenaRegistry("/s").open())

    @pytest.fixture
    def js(self, table):
        out = render_interceptor(table.handles())
        data = _DATA_RE.search(out).group(1)
        script = _SCRIPT_RE.search(out).group(1)
        ctx = MiniRacer()
        ctx.eval(_STUBS.replace("__ID__", json.dumps(RESOURCE_DATA_ID)).replace("__DATA__", json.dumps(data)))
        ctx.eval(script)
        return ctx

    @staticmethod
    def _call(ctx, fn, url):
        return json.loads(ctx.eval("%s(%s)" % (fn, json.dumps(url))))

    def requests(self, table):
        return [
            "js/game.js",
            "assets/coin.png",
            "http://h/x/level1.json?v=3",
            "level1.json#start",
            "b/dup.png",
            "x/dup.png",
            "https://external.example.com/analytics.js",
            table.get("images/coin.png.png").handle,
        ]

    @pytest.mark.parametrize("fn", ["viaFetch", "viaXhr"])
    def test_agrees_with_python_lookup(self, table, js, fn):
        for url in self.requests(table):
            assert self._call(js, fn, url) == (table.resolve(url) or url), url

    @pytest.mark.parametrize("fn", ["viaFetch", "viaXhr"])
    def test_doubled_extension_and_external(self, table, js, fn):
        assert self._call(js, fn, "assets/coin.png") == table.get("images/coin.png.png").handle
        external = "https://external.example.com/analytics.js"
        assert self._call(js, fn, external) == external

    def test_tie_goes_to_archive_order(self, table, js):
        assert self._call(js, "viaFetch", "x/dup.png") == table.get("b/dup.png").handle

    def test_request_object_keeps_method(self, table, js):
        sent = self._call(js, "viaRequest", "data/level1.json")
        assert sent == {"url": table.get("data/level1.json").handle, "method": "POST"}
        external = "https://external.example.com/beacon"
        assert self._call(js, "viaRequest", external) == {"url": external, "method": "POST"}
