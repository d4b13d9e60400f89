"""Multi-page bundling: several rendered pages in one navigable document."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from .document import PageEntry
from .errors import InvalidInputError
from .urls import is_http_url, normalize_crawl_url

LOGGER = logging.getLogger(__name__)

DEFAULT_SLUG = "index"

_PAGE_SUFFIX_RE = re.compile(r"\.(?:html?|php|aspx?|jsp)$", re.IGNORECASE)
_SEPARATOR_RE = re.compile(r"[\s/?=&\\]+")
_INVALID_RE = re.compile(r"[^\w._-]+")
_HYPHENS_RE = re.compile(r"-+")

PageInput = Union[PageEntry, Mapping[str, Any]]

# Head elements that describe the bundle document, not one page.
_HEAD_ONLY_TAGS = frozenset({"title", "meta", "base"})

_ROUTER_SCRIPT = """
(function () {
  var container = document.getElementById('page-container');
  var nav = document.getElementById('main-nav');
  var fallback = %(default)s;
  function show(slug) {
    var template = document.getElementById('page-' + slug);
    if (!template) { slug = fallback; template = document.getElementById('page-' + slug); }
    if (!template || !container) { return; }
    container.innerHTML = '';
    container.appendChild(template.content.cloneNode(true));
    if (nav) {
      var links = nav.querySelectorAll('a[data-page]');
      for (var i = 0; i < links.length; i++) {
        links[i].classList.toggle('active', links[i].getAttribute('data-page') === slug);
      }
    }
    window.scrollTo(0, 0);
  }
  function current() { return decodeURIComponent(window.location.hash.slice(1)) || fallback; }
  document.addEventListener('click', function (event) {
    var link = event.target.closest ? event.target.closest('a[data-page]') : null;
    if (!link) { return; }
    event.preventDefault();
    var slug = link.getAttribute('data-page');
    if (window.history && window.history.pushState) {
      window.history.pushState({ page: slug }, '', '#' + slug);
      show(slug);
    } else {
      window.location.hash = slug;
    }
  });
  window.addEventListener('hashchange', function () { show(current()); });
  window.addEventListener('popstate', function () { show(current()); });
  show(current());
})();
"""

_BASE_STYLE = (
    "#main-nav{display:flex;flex-wrap:wrap;gap:.5rem;padding:.5rem;border-bottom:1px solid #ccc}"
    "#main-nav a{text-decoration:none}"
    "#main-nav a.active{font-weight:bold}"
)


def slugify(value: str) -> str:
    """Turn a URL path (with query) into a safe fragment identifier."""
    if not value:
        return DEFAULT_SLUG
    slug = value.strip()
    slug = _PAGE_SUFFIX_RE.sub("", slug)
    slug = _SEPARATOR_RE.sub("-", slug)
    slug = _INVALID_RE.sub("", slug)
    slug = _HYPHENS_RE.sub("-", slug).strip("-").lower()
    return slug or DEFAULT_SLUG


def sanitize_slug(url: str) -> str:
    """Slug for a page URL, based on its path and query."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return slugify(url)
    if parts.scheme and parts.netloc:
        path = parts.path
        if parts.query:
            path = f"{path}?{parts.query}"
    else:
        path = url
    return slugify(path)


def assign_slugs(urls: Sequence[str]) -> List[str]:
    """Unique slug per URL; collisions get ``-1``, ``-2`` suffixes."""
    used: Dict[str, int] = {}
    taken = set()
    slugs: List[str] = []
    for url in urls:
        base = sanitize_slug(url)
        slug = base
        while slug in taken:
            used[base] = used.get(base, 0) + 1
            slug = f"{base}-{used[base]}"
        taken.add(slug)
        slugs.append(slug)
    return slugs


def coerce_pages(pages: Sequence[PageInput]) -> List[PageEntry]:
    """Validate page entries.

    Raises:
        InvalidInputError: If an entry lacks a string ``url`` or ``html``.
    """
    entries: List[PageEntry] = []
    for index, page in enumerate(pages):
        if isinstance(page, PageEntry):
            url, html = page.url, page.html
        elif isinstance(page, Mapping):
            url, html = page.get("url"), page.get("html")
        else:
            raise InvalidInputError(
                f"Page entry {index} must be a PageEntry or mapping, got {type(page).__name__}"
            )
        if not isinstance(url, str) or not url:
            raise InvalidInputError(f"Page entry {index} has no valid 'url'")
        if not isinstance(html, str):
            raise InvalidInputError(f"Page entry {index} ({url}) has no valid 'html'")
        entries.append(PageEntry(url=url, html=html))
    return entries


def bundle_pages(
    pages: Sequence[PageInput],
    *,
    title: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> str:
    """Merge rendered pages into one document with hash-based navigation.

    Each page body is stored in a ``<template id="page-<slug>">`` element and
    shown inside ``#page-container`` by a small router script. Head content
    other than ``title``, ``meta`` and ``base`` is carried into the template.
    Anchors pointing at another bundled page are rewritten to ``#<slug>``.
    """
    log = logger or LOGGER
    entries = coerce_pages(pages)
    slugs = assign_slugs([entry.url for entry in entries])
    targets = {_link_key(entry.url): slug for entry, slug in zip(entries, slugs)}
    default_slug = slugs[0] if slugs else DEFAULT_SLUG

    soup = BeautifulSoup(
        "<!DOCTYPE html><html lang=\"en\"><head><meta charset=\"utf-8\"></head><body></body></html>",
        "html.parser",
    )
    head, body = soup.head, soup.body

    title_tag = soup.new_tag("title")
    title_tag.string = title or _first_title(entries) or "Bundled site"
    head.append(title_tag)
    base_style = soup.new_tag("style")
    base_style.string = _BASE_STYLE
    head.append(base_style)

    nav = soup.new_tag("nav", id="main-nav")
    body.append(nav)
    container = soup.new_tag("div", id="page-container")
    body.append(container)

    for entry, slug in zip(entries, slugs):
        page = BeautifulSoup(entry.html, "html.parser")
        rewritten = _rewrite_page_links(page, entry.url, targets)

        link = soup.new_tag("a", href=f"#{slug}")
        link["data-page"] = slug
        link.string = _page_label(page, slug)
        nav.append(link)

        template = soup.new_tag("template", id=f"page-{slug}")
        source = page.body if page.body is not None else page
        if page.head is not None:
            for node in page.head.find_all(True, recursive=False):
                if node.name not in _HEAD_ONLY_TAGS:
                    template.append(node.extract())
        for child in list(source.contents):
            template.append(child.extract())
        body.append(template)
        log.debug("Bundled %s as #%s (%d link(s) rewritten)", entry.url, slug, rewritten)

    script = soup.new_tag("script")
    script.string = _ROUTER_SCRIPT % {"default": _js_string(default_slug)}
    body.append(script)

    html = str(soup)
    log.info("Bundled %d page(s) into %d characters", len(entries), len(html))
    return html


def _rewrite_page_links(page: BeautifulSoup, page_url: str, targets: Mapping[str, str]) -> int:
    count = 0
    for anchor in page.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith("#"):
            continue
        try:
            absolute = urljoin(page_url, href) if is_http_url(page_url) else href
        except ValueError:
            continue
        slug = targets.get(_link_key(absolute))
        if slug is None:
            continue
        anchor["href"] = f"#{slug}"
        anchor["data-page"] = slug
        count += 1
    return count


def _link_key(url: str) -> str:
    if is_http_url(url):
        try:
            return normalize_crawl_url(url)
        except ValueError:
            return url
    return url


def _page_label(page: BeautifulSoup, slug: str) -> str:
    if page.title is not None and page.title.string and page.title.string.strip():
        return page.title.string.strip()
    return slug


def _first_title(entries: Sequence[PageEntry]) -> Optional[str]:
    if not entries:
        return None
    page = BeautifulSoup(entries[0].html, "html.parser")
    if page.title is not None and page.title.string:
        return page.title.string.strip() or None
    return None


def _js_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"
