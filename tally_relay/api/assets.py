"""
api/assets.py — Serves the browser timer page and its compiled script.

Only files under the configured roots are reachable. The timer script polls
the vMix http API when the WebSocket is down, so its API_URL constant is
rewritten to the configured switcher URL on the way out.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional, Sequence

INDEX_PAGE = "vmixActiveTimer.html"
TIMER_SCRIPT = "vmixActiveTimer.js"

CONTENT_TYPES = {
    "html": "text/html",
    "js": "application/javascript",
    "css": "text/css",
    "json": "application/json",
    "png": "image/png",
    "jpg": "image/jpeg",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_API_URL_RE = re.compile(rb'const API_URL = "[^"]*"')


def content_type_for(path: str | Path) -> str:
    ext = Path(path).suffix.lstrip(".").lower()
    return CONTENT_TYPES.get(ext, DEFAULT_CONTENT_TYPE)


class AssetStore:
    def __init__(self, roots: Sequence[Path], api_url: Optional[str] = None, index: str = INDEX_PAGE):
        self.roots = [Path(r).resolve() for r in roots]
        self.api_url = api_url
        self.index = index

    def resolve(self, request_path: str) -> Optional[Path]:
        """Map a URL path to a file inside one of the roots, first root wins."""
        relative = request_path.split("?", 1)[0].lstrip("/") or self.index
        for root in self.roots:
            candidate = (root / relative).resolve()
            if not candidate.is_relative_to(root):
                continue
            if candidate.is_file():
                return candidate
        return None

    def load(self, request_path: str) -> Optional[tuple[bytes, str]]:
        """(body, content type) for `request_path`, None when there is no such asset."""
        path = self.resolve(request_path)
        if path is None:
            return None
        data = path.read_bytes()
        if path.name == TIMER_SCRIPT and self.api_url:
            replacement = f'const API_URL = "{self.api_url}"'.encode()
            data = _API_URL_RE.sub(lambda _m: replacement, data, count=1)
        return data, content_type_for(path)
