"""The request interceptor injected at the top of every sandboxed document.

Engines build asset URLs at runtime, so static rewriting is not enough: the
script below wraps ``window.fetch`` and ``XMLHttpRequest.prototype.open`` and
maps requested paths onto handles with the same lookup chain as
``ResourceTable.resolve``. The table travels as an inline JSON data block, never
as code.
"""
from __future__ import annotations

from typing import Mapping

from .archive import ENTRY_POINT
from .resources import ResourceTable
from .rewriter import inject_head, rewrite_references
from .utils import json_for_html

RESOURCE_DATA_ID = "arcadebox-resources"

INTERCEPTOR_JS = r"""
(function () {
  "use strict";
  var own = Object.prototype.hasOwnProperty;
  var originalFetch = window.fetch;
  var originalOpen = window.XMLHttpRequest && XMLHttpRequest.prototype.open;

  var node = document.getElementById("__DATA_ID__");
  var pairs = node ? JSON.parse(node.textContent) : [];
  var DOUBLE_EXT = /\.(png|jpg|jpeg|gif|webp|mp3|wav|ogg)\.\1$/i;

  var table = {}, handles = {}, byBase = {}, byRepaired = {};

  function repair(name) { return name.replace(DOUBLE_EXT, ".$1"); }
  function push(index, key, value) {
    if (!own.call(index, key)) index[key] = [];
    index[key].push(value);
  }
  function basename(path) {
    var clean = path.split("#")[0].split("?")[0];
    return clean.substring(clean.lastIndexOf("/") + 1);
  }

  pairs.forEach(function (pair) {
    var key = pair[0], base = basename(key), fixed = repair(base);
    table[key] = pair[1];
    handles[pair[1]] = true;
    push(byBase, base, key);
    if (fixed !== base) push(byRepaired, fixed, key);
  });

  function resolve(path) {
    if (!path || own.call(handles, path)) return null;
    if (own.call(table, path)) return table[path];
    var name = basename(path);
    if (!name) return null;
    if (own.call(table, name)) return table[name];
    var fixed = repair(name);
    if (fixed !== name && own.call(table, fixed)) return table[fixed];
    var candidates = [name, fixed];
    for (var i = 0; i < candidates.length; i++) {
      var c = candidates[i];
      var keys = (own.call(byBase, c) ? byBase[c] : []).concat(own.call(byRepaired, c) ? byRepaired[c] : []);
      if (keys.length) return table[keys[0]];
    }
    return null;
  }

  function isRequest(input) {
    return typeof Request !== "undefined" && input instanceof Request;
  }
  function urlOf(input) {
    if (typeof input === "string") return input;
    if (isRequest(input)) return input.url;
    return input == null ? "" : String(input);
  }

  if (originalFetch) {
    window.fetch = function (input, init) {
      var handle = resolve(urlOf(input));
      if (!handle) return originalFetch.apply(window, arguments);
      // a Request keeps its method, headers and body; only the URL moves
      if (isRequest(input)) return originalFetch.call(window, new Request(handle, input), init);
      return originalFetch.call(window, handle, init);
    };
  }

  if (originalOpen) {
    XMLHttpRequest.prototype.open = function (method, url) {
      var args = Array.prototype.slice.call(arguments);
      var handle = resolve(urlOf(url));
      if (handle) args[1] = handle;
      return originalOpen.apply(this, args);
    };
  }
})();
"""


def render_interceptor(handles: Mapping[str, str]) -> str:
    """Data block + script block, in that order (the script reads the data at parse time)."""
    data = json_for_html([[path, handle] for path, handle in handles.items()])
    script = INTERCEPTOR_JS.replace("__DATA_ID__", RESOURCE_DATA_ID)
    return (
        f'<script type="application/json" id="{RESOURCE_DATA_ID}">{data}</script>'
        f"<script>{script}</script>"
    )


def build_document(html: str, table: ResourceTable, entry_path: str = ENTRY_POINT) -> str:
    rewritten = rewrite_references(html, table, entry_path)
    return inject_head(rewritten, render_interceptor(table.handles()))
