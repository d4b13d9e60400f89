"""Asset resolution, loading and embedding.

``extract_assets`` resolves every reference discovered by the parser against
the document base, loads the bytes when embedding is requested and rewrites
the tree so the page no longer depends on external files. Stylesheets are
followed recursively through ``@import`` and ``url()``.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

import httpx
from bs4.element import Tag

from .config import BundleOptions
from .document import AssetReference, StructuredDocument
from .errors import ResourceError
from .loader import LoadedResource, http_client_scope, load_resource
from .mime import effective_mime, guess_mime_type, kind_for_mime
from .parser import format_srcset, parse_srcset
from .urls import determine_base_url, is_http_url, resolve_url, strip_fragment

LOGGER = logging.getLogger(__name__)

MAX_STYLESHEET_DEPTH = 16

_CSS_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_CSS_URL_RE = re.compile(r"url\(\s*(['\"]?)(.*?)\1\s*\)", re.IGNORECASE | re.DOTALL)
_CSS_IMPORT_RE = re.compile(
    r"@import\s+(?:url\(\s*(['\"]?)(.*?)\1\s*\)|(['\"])(.*?)\3)([^;]*);",
    re.IGNORECASE | re.DOTALL,
)
_SCRIPT_CLOSE_RE = re.compile(r"</(script)", re.IGNORECASE)

_FALLBACK_TEXT_MIME = {"style": "text/css", "script": "application/javascript"}


def find_css_references(css: str) -> List[AssetReference]:
    """Find ``@import`` and ``url()`` references in stylesheet text.

    Each reference records the span of text it replaces: the whole
    statement for ``@import``, the ``url(...)`` token otherwise. References
    inside comments are ignored.
    """
    comments = [m.span() for m in _CSS_COMMENT_RE.finditer(css)]
    taken: List[Tuple[int, int]] = []
    refs: List[AssetReference] = []

    def blocked(start: int) -> bool:
        return any(s <= start < e for s, e in comments) or any(
            s <= start < e for s, e in taken
        )

    for match in _CSS_IMPORT_RE.finditer(css):
        if blocked(match.start()):
            continue
        url = (match.group(2) if match.group(2) is not None else match.group(4)).strip()
        taken.append(match.span())
        if not _usable_css_url(url):
            continue
        refs.append(
            AssetReference(
                kind="style",
                original_url=url,
                span=match.span(),
                rule="import",
                media=match.group(5).strip(),
            )
        )

    for match in _CSS_URL_RE.finditer(css):
        if blocked(match.start()):
            continue
        url = match.group(2).strip()
        if not _usable_css_url(url):
            continue
        kind = guess_mime_type(url).kind
        if kind in ("style", "script"):
            kind = "other"
        refs.append(AssetReference(kind=kind, original_url=url, span=match.span(), rule="url"))

    refs.sort(key=lambda ref: ref.span[0])
    return refs


def rewrite_css(css: str, refs: Iterable[AssetReference]) -> str:
    """Rebuild stylesheet text with each reference replaced."""
    pieces: List[str] = []
    cursor = 0
    for ref in sorted(refs, key=lambda r: r.span[0]):
        start, end = ref.span
        pieces.append(css[cursor:start])
        pieces.append(_css_replacement(ref))
        cursor = end
    pieces.append(css[cursor:])
    return "".join(pieces)


def to_data_uri(content: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def escape_inline_script(code: str) -> str:
    """Keep a closing script tag inside the code from ending the element."""
    return _SCRIPT_CLOSE_RE.sub(r"<\\/\1", code)


async def extract_assets(
    doc: StructuredDocument,
    embed: bool = True,
    base_path: Optional[str] = None,
    *,
    options: Optional[BundleOptions] = None,
    client: Optional[httpx.AsyncClient] = None,
    logger: Optional[logging.Logger] = None,
) -> StructuredDocument:
    """Resolve, load and embed the assets of ``doc`` in place.

    Args:
        doc: Parsed document from ``parse_html``.
        embed: Inline asset content. When False nothing is loaded and every
            reference is rewritten to its absolute URL.
        base_path: Page path or URL references are resolved against.
        options: Concurrency, timeout and size limits.
        client: Optional httpx client; one is created when omitted.
        logger: Optional logger; defaults to the module logger.

    Returns:
        The same document, with ``errors`` holding per-asset failures.
    """
    opts = options or BundleOptions()
    log = logger or LOGGER
    base = determine_base_url(base_path, log) if base_path else doc.base_url
    doc.base_url = base
    if base is None:
        log.warning("No base URL could be determined; relative references stay unresolved")

    doc.links = _collect_links(doc, base)
    doc.assets.extend(_inline_css_references(doc))
    log.info(
        "Resolving %d asset reference(s) (embed=%s, base=%s)",
        len(doc.assets),
        embed,
        base,
    )

    async with http_client_scope(opts, client) as http:
        run = _Extraction(doc, embed, opts, http, log)
        await asyncio.gather(*(run.process(ref, base) for ref in doc.assets))

    _apply(doc, log)
    log.info(
        "Extraction finished: %d of %d asset(s) embedded, %d error(s)",
        doc.embedded_count,
        doc.asset_count,
        len(doc.errors),
    )
    return doc


class _Extraction:
    """State of one ``extract_assets`` call: fetch cache and semaphore."""

    def __init__(
        self,
        doc: StructuredDocument,
        embed: bool,
        options: BundleOptions,
        client: httpx.AsyncClient,
        logger: logging.Logger,
    ) -> None:
        self.doc = doc
        self.embed = embed
        self.options = options
        self.client = client
        self.log = logger
        self.semaphore = asyncio.Semaphore(options.max_concurrency)
        self._loads: Dict[str, "asyncio.Future[LoadedResource]"] = {}

    def load(self, url: str) -> "asyncio.Future[LoadedResource]":
        task = self._loads.get(url)
        if task is None:
            task = asyncio.ensure_future(self._load(url))
            self._loads[url] = task
        return task

    async def _load(self, url: str) -> LoadedResource:
        async with self.semaphore:
            return await load_resource(
                url,
                self.client,
                timeout=self.options.asset_timeout,
                logger=self.log,
            )

    async def process(self, ref: AssetReference, base: Optional[str]) -> None:
        resolved = resolve_url(ref.original_url, base)
        if resolved is None:
            self.log.debug("Leaving unresolvable reference %s as is", ref.original_url)
            return
        ref.resolved_url = resolved
        if not self.embed:
            return

        ancestors = ref.ancestors()
        if any(a.resolved_url == resolved for a in ancestors):
            self.log.warning("Circular stylesheet import of %s; keeping absolute URL", resolved)
            return
        if len(ancestors) >= MAX_STYLESHEET_DEPTH:
            self.log.warning("Stylesheet nesting too deep at %s; keeping absolute URL", resolved)
            return

        try:
            resource = await self.load(resolved)
        except ResourceError as exc:
            ref.error = str(exc)
            self.doc.add_error(f"Failed to load {resolved}: {exc}")
            self.log.warning("Failed to load asset %s: %s", resolved, exc)
            return

        ref.mime_type = _mime_for(ref, resource)
        if not ref.is_text:
            if ref.kind == "other":
                ref.kind = kind_for_mime(ref.mime_type)
            limit = self.options.max_embed_size
            if limit is not None and len(resource.content) > limit:
                self.doc.add_error(
                    f"Skipped embedding {resolved}: {len(resource.content)} bytes exceeds max_embed_size {limit}"
                )
                self.log.info("Not embedding %s (%d bytes)", resolved, len(resource.content))
                return
            ref.content = resource.content
            return

        ref.content = resource.content
        try:
            text = resource.content.decode("utf-8-sig")
        except UnicodeDecodeError:
            self.log.warning("%s is not valid UTF-8; embedding as base64", resolved)
            return

        if ref.kind == "script":
            ref.text = text
            return

        ref.children = find_css_references(text)
        for child in ref.children:
            child.parent = ref
        child_base = resource.url or resolved
        await asyncio.gather(*(self.process(child, child_base) for child in ref.children))
        ref.text = rewrite_css(text, ref.children)


def _apply(doc: StructuredDocument, log: logging.Logger) -> None:
    """Write the extraction results back into the tree in discovery order."""
    srcsets: Dict[int, Tuple[Tag, List[Tuple[str, str]]]] = {}
    inline_css: Dict[Tuple[int, Optional[str]], Tuple[Tag, Optional[str], List[AssetReference]]] = {}

    for ref in doc.assets:
        element = ref.element
        if element is None:
            continue
        if ref.span is not None:
            key = (id(element), ref.attribute)
            inline_css.setdefault(key, (element, ref.attribute, []))[2].append(ref)
            continue
        if ref.candidate is not None:
            entry = srcsets.get(id(element))
            if entry is None:
                entry = (element, parse_srcset(element.get("srcset", "")))
                srcsets[id(element)] = entry
            candidates = entry[1]
            if ref.candidate < len(candidates):
                descriptor = candidates[ref.candidate][1]
                candidates[ref.candidate] = (_attribute_value(ref), descriptor)
            continue
        if ref.kind == "style" and ref.text is not None and ref.error is None:
            _inline_stylesheet(doc, ref)
        elif ref.kind == "script" and ref.text is not None and ref.error is None:
            _inline_script(ref)
        else:
            element[ref.attribute] = _attribute_value(ref)

    for element, candidates in srcsets.values():
        element["srcset"] = format_srcset(candidates)

    for element, attribute, refs in inline_css.values():
        source = element.get(attribute, "") if attribute else element.string or ""
        rewritten = rewrite_css(source, refs)
        if attribute:
            element[attribute] = rewritten
        else:
            element.string = rewritten
    log.debug("Rewrote %d srcset attribute(s), %d inline stylesheet(s)", len(srcsets), len(inline_css))


def _inline_stylesheet(doc: StructuredDocument, ref: AssetReference) -> None:
    link = ref.element
    style = doc.soup.new_tag("style")
    media = link.get("media")
    if media:
        style["media"] = media
    style.string = ref.text
    link.replace_with(style)
    ref.element = style
    ref.is_embedded = True


def _inline_script(ref: AssetReference) -> None:
    script = ref.element
    del script["src"]
    for attr in ("integrity", "crossorigin"):
        if script.has_attr(attr):
            del script[attr]
    script.string = escape_inline_script(ref.text)
    ref.is_embedded = True


def _attribute_value(ref: AssetReference) -> str:
    """Value to write back for a reference that is not inlined as a block."""
    if ref.error is not None or not ref.resolved_url:
        return ref.original_url
    if ref.content is not None:
        ref.is_embedded = True
        return to_data_uri(ref.content, ref.mime_type or guess_mime_type(ref.resolved_url).mime)
    return ref.resolved_url


def _css_replacement(ref: AssetReference) -> str:
    if ref.rule == "import":
        suffix = f" {ref.media}" if ref.media else ""
        if ref.text is not None and ref.error is None:
            ref.is_embedded = True
            data = to_data_uri(ref.text.encode("utf-8"), "text/css")
            return f'@import url("{data}"){suffix};'
        return f'@import url("{_attribute_value(ref)}"){suffix};'
    return f'url("{_attribute_value(ref)}")'


def _mime_for(ref: AssetReference, resource: LoadedResource) -> str:
    mime = effective_mime(resource.url or ref.resolved_url, resource.content_type)
    if ref.kind in _FALLBACK_TEXT_MIME and (mime == "application/octet-stream" or mime.startswith("text/plain")):
        return _FALLBACK_TEXT_MIME[ref.kind]
    return mime


def _usable_css_url(url: str) -> bool:
    return bool(url) and not url.startswith("#") and not url.lower().startswith("data:")


def _collect_links(doc: StructuredDocument, base: Optional[str]) -> List[str]:
    links: List[str] = []
    seen = set()
    for anchor in doc.soup.find_all("a", href=True):
        resolved = resolve_url(anchor["href"], base)
        if not resolved or not is_http_url(resolved):
            continue
        try:
            resolved = strip_fragment(resolved)
        except ValueError:
            LOGGER.debug("Ignoring malformed link %s", anchor["href"])
            continue
        if resolved not in seen:
            seen.add(resolved)
            links.append(resolved)
    return links


def _inline_css_references(doc: StructuredDocument) -> List[AssetReference]:
    """References inside ``<style>`` blocks and ``style`` attributes."""
    refs: List[AssetReference] = []
    for element in doc.soup.find_all(True):
        if element.name == "style":
            css = element.string
            attribute = None
        elif element.has_attr("style"):
            css = element["style"]
            attribute = "style"
        else:
            continue
        lowered = (css or "").lower()
        if "url(" not in lowered and "@import" not in lowered:
            continue
        for ref in find_css_references(css):
            ref.element = element
            ref.attribute = attribute
            refs.append(ref)
    return refs
