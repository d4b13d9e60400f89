"""URL helpers: base determination, resolution, normalization, same-site checks."""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit
from urllib.request import url2pathname

import tldextract

from .errors import InvalidInputError

LOGGER = logging.getLogger(__name__)

_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)
_SCHEME_RE = re.compile(r"^([a-z][a-z0-9+.\-]*):", re.IGNORECASE)
_DEFAULT_PORTS = {"http": 80, "https": 443}
_UNRESOLVABLE_PREFIXES = ("data:", "#", "javascript:", "mailto:", "tel:", "about:", "blob:")

# Offline extractor: use the bundled public suffix snapshot, never the network.
_TLD_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())


def is_http_url(value: str) -> bool:
    return bool(value) and bool(_HTTP_RE.match(value.strip()))


def looks_like_url(value: str) -> bool:
    """True for ``scheme://...`` strings (Windows drive letters excluded)."""
    match = _SCHEME_RE.match(value.strip()) if value else None
    return bool(match) and len(match.group(1)) > 1 and "://" in value


def validate_http_url(url: str) -> str:
    """Return the stripped URL or raise ``InvalidInputError``."""
    if not isinstance(url, str) or not is_http_url(url):
        raise InvalidInputError(
            f"Invalid URL {url!r}: URL must start with http:// or https://"
        )
    try:
        urlsplit(url.strip()).port
    except ValueError as exc:
        raise InvalidInputError(f"Invalid URL {url!r}: {exc}") from exc
    return url.strip()


def determine_base_url(input_path_or_url: str, logger: Optional[logging.Logger] = None) -> Optional[str]:
    """Directory-style base URL for resolving references of a document.

    Remote inputs keep their directory (query and fragment dropped). Local
    paths and ``file:`` URLs become a ``file://`` URL of their directory.
    Returns None for empty input or unsupported schemes.
    """
    log = logger or LOGGER
    if not input_path_or_url:
        return None
    value = input_path_or_url.strip()

    if is_http_url(value):
        parts = urlsplit(value)
        directory = parts.path[: parts.path.rfind("/") + 1] or "/"
        return urlunsplit((parts.scheme, parts.netloc, directory, "", ""))

    if looks_like_url(value) and not value.lower().startswith("file:"):
        log.warning("Cannot determine base URL for unsupported scheme: %s", value)
        return None

    if value.lower().startswith("file:"):
        path = Path(file_url_to_path(value))
    else:
        path = Path(value).expanduser().resolve()
    directory = path if path.is_dir() else path.parent
    base = directory.as_uri()
    if not base.endswith("/"):
        base += "/"
    log.debug("Determined local base URL %s for %s", base, value)
    return base


def resolve_url(reference: str, base: Optional[str]) -> Optional[str]:
    """Resolve a reference against a base; None if it is not resolvable."""
    if reference is None:
        return None
    ref = reference.strip()
    if not ref or ref.lower().startswith(_UNRESOLVABLE_PREFIXES):
        return None
    if ref.startswith("//"):
        if not base:
            return None
        scheme = urlsplit(base).scheme or "https"
        return f"{scheme}:{ref}"
    if _SCHEME_RE.match(ref) and looks_like_url(ref):
        return ref
    if not base:
        return None
    try:
        return urljoin(base, ref)
    except ValueError:
        return None


def file_url_to_path(url: str) -> str:
    parts = urlsplit(url)
    path = url2pathname(parts.path)
    if parts.netloc and parts.netloc != "localhost":
        path = f"//{parts.netloc}{path}"
    return path


def strip_fragment(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))


def normalize_crawl_url(url: str) -> str:
    """Canonical spelling used for the crawl visited set.

    Lowercases scheme and host, drops default ports and fragments, maps an
    empty path to ``/`` and strips the trailing slash of other paths.
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    port = parts.port
    netloc = host
    if parts.username:
        credentials = parts.username
        if parts.password:
            credentials += f":{parts.password}"
        netloc = f"{credentials}@{netloc}"
    if port and _DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{netloc}:{port}"
    path = parts.path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def _normalize_host(host: Optional[str]) -> str:
    """Normalize hostname by removing port and lowercasing."""
    if not host:
        return ""
    return host.split(":")[0].lower()


@lru_cache(maxsize=256)
def _registrable_domain(host: str) -> Optional[str]:
    """Extract the registrable domain from a hostname."""
    if not host:
        return None
    extracted = _TLD_EXTRACT(host)
    if not extracted.domain or not extracted.suffix:
        return host
    domain = ".".join(part for part in (extracted.domain, extracted.suffix) if part)
    return domain or host


def origin_of(url: str) -> str:
    normalized = normalize_crawl_url(url)
    parts = urlsplit(normalized)
    return f"{parts.scheme}://{parts.netloc.rsplit('@', 1)[-1]}"


def is_same_site(url: str, root_url: str, include_subdomains: bool = False) -> bool:
    """Same origin as the root, or same registrable domain when allowed."""
    if not is_http_url(url):
        return False
    if origin_of(url) == origin_of(root_url):
        return True
    if not include_subdomains:
        return False
    url_parts, root_parts = urlsplit(url), urlsplit(root_url)
    if url_parts.scheme.lower() != root_parts.scheme.lower():
        return False
    host = _normalize_host(url_parts.netloc.rsplit("@", 1)[-1])
    root_host = _normalize_host(root_parts.netloc.rsplit("@", 1)[-1])
    return bool(host) and _registrable_domain(host) == _registrable_domain(root_host)
