"""Extension based MIME type and asset kind lookup."""

from __future__ import annotations

import mimetypes
import posixpath
from typing import Dict, NamedTuple, Optional
from urllib.parse import urlparse


class MimeInfo(NamedTuple):
    mime: str
    kind: str


MIME_MAP: Dict[str, MimeInfo] = {
    ".css": MimeInfo("text/css", "style"),
    ".js": MimeInfo("application/javascript", "script"),
    ".mjs": MimeInfo("application/javascript", "script"),
    ".png": MimeInfo("image/png", "image"),
    ".jpg": MimeInfo("image/jpeg", "image"),
    ".jpeg": MimeInfo("image/jpeg", "image"),
    ".gif": MimeInfo("image/gif", "image"),
    ".svg": MimeInfo("image/svg+xml", "image"),
    ".webp": MimeInfo("image/webp", "image"),
    ".ico": MimeInfo("image/x-icon", "image"),
    ".avif": MimeInfo("image/avif", "image"),
    ".bmp": MimeInfo("image/bmp", "image"),
    ".woff": MimeInfo("font/woff", "font"),
    ".woff2": MimeInfo("font/woff2", "font"),
    ".ttf": MimeInfo("font/ttf", "font"),
    ".otf": MimeInfo("font/otf", "font"),
    ".eot": MimeInfo("application/vnd.ms-fontobject", "font"),
    ".mp3": MimeInfo("audio/mpeg", "media"),
    ".ogg": MimeInfo("audio/ogg", "media"),
    ".wav": MimeInfo("audio/wav", "media"),
    ".mp4": MimeInfo("video/mp4", "media"),
    ".webm": MimeInfo("video/webm", "media"),
    ".json": MimeInfo("application/json", "other"),
    ".webmanifest": MimeInfo("application/manifest+json", "other"),
    ".xml": MimeInfo("application/xml", "other"),
    ".html": MimeInfo("text/html", "other"),
    ".htm": MimeInfo("text/html", "other"),
    ".txt": MimeInfo("text/plain", "other"),
}

DEFAULT_MIME = MimeInfo("application/octet-stream", "other")

# Extensions that never denote a crawlable page.
ASSET_EXTENSIONS = frozenset(
    ext for ext, info in MIME_MAP.items() if info.kind != "other"
) | {".pdf", ".zip", ".gz", ".tar", ".exe", ".dmg", ".json", ".xml", ".webmanifest"}


def extension_of(url_or_path: str) -> str:
    if not url_or_path:
        return ""
    try:
        parsed = urlparse(url_or_path)
    except ValueError:
        parsed = None
    if parsed is not None and parsed.scheme and len(parsed.scheme) > 1:
        path = parsed.path
    else:
        path = url_or_path
    return posixpath.splitext(path.split("?")[0].split("#")[0])[1].lower()


def guess_mime_type(url_or_path: str) -> MimeInfo:
    """Guess MIME type and asset kind from the extension of a URL or path."""
    ext = extension_of(url_or_path)
    if not ext:
        return DEFAULT_MIME
    known = MIME_MAP.get(ext)
    if known is not None:
        return known
    guessed, _ = mimetypes.guess_type("file" + ext)
    if guessed:
        return MimeInfo(guessed, kind_for_mime(guessed))
    return DEFAULT_MIME


def mime_from_content_type(content_type: Optional[str]) -> str:
    """Strip parameters from a Content-Type header value."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def effective_mime(url: str, content_type: Optional[str]) -> str:
    """Header MIME when meaningful, otherwise the extension based guess."""
    header_mime = mime_from_content_type(content_type)
    if header_mime and header_mime not in ("application/octet-stream", "binary/octet-stream"):
        return header_mime
    return guess_mime_type(url).mime


def is_html_content_type(content_type: Optional[str]) -> bool:
    mime = mime_from_content_type(content_type)
    return not mime or mime in ("text/html", "application/xhtml+xml")


def kind_for_mime(mime: str) -> str:
    if mime == "text/css":
        return "style"
    if "javascript" in mime:
        return "script"
    if mime.startswith("font/"):
        return "font"
    if mime.startswith("image/"):
        return "image"
    if mime.startswith(("audio/", "video/")):
        return "media"
    return "other"
