"""Document parsing and reference discovery."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple, Union

from bs4 import BeautifulSoup, UnicodeDammit
from bs4.builder import ParserRejectedMarkup
from bs4.element import Tag

from .document import AssetKind, AssetReference, StructuredDocument
from .errors import ParseError
from .loader import read_local_file

LOGGER = logging.getLogger(__name__)

TREE_BUILDER = "html.parser"

_ICON_RELS = frozenset({"icon", "apple-touch-icon", "mask-icon"})


def parse_html(
    markup: Union[str, bytes],
    *,
    logger: Optional[logging.Logger] = None,
) -> StructuredDocument:
    """Parse markup and discover every external reference it contains.

    Discovery is pure: nothing is resolved or loaded here. References are
    returned in document order, one ``AssetReference`` per attribute value
    (one per candidate for ``srcset``).

    Raises:
        ParseError: If ``markup`` is not text or the tree builder rejects it.
    """
    log = logger or LOGGER
    if not isinstance(markup, (str, bytes)):
        raise ParseError(
            f"Cannot parse markup of type {type(markup).__name__}; expected str or bytes"
        )
    try:
        soup = BeautifulSoup(markup, TREE_BUILDER)
    except ParserRejectedMarkup as exc:
        raise ParseError(f"Markup rejected by parser: {exc}") from exc

    assets = discover_references(soup)
    log.debug("Parsed document: %d asset reference(s) found", len(assets))
    return StructuredDocument(soup=soup, assets=assets)


async def read_document(path: str, *, logger: Optional[logging.Logger] = None) -> str:
    """Read a local HTML file and decode it to text.

    Raises:
        ReadError: If the file cannot be read.
    """
    log = logger or LOGGER
    data = await read_local_file(path)
    log.debug("Read %d bytes from %s", len(data), path)
    return UnicodeDammit(data, ["utf-8"], is_html=True).unicode_markup or ""


def discover_references(soup: BeautifulSoup) -> List[AssetReference]:
    found: List[AssetReference] = []

    def add(kind: AssetKind, element: Tag, attribute: str) -> None:
        value = element.get(attribute)
        if _is_reference(value):
            found.append(
                AssetReference(
                    kind=kind,
                    original_url=value.strip(),
                    element=element,
                    attribute=attribute,
                )
            )

    def add_srcset(element: Tag) -> None:
        value = element.get("srcset")
        if not isinstance(value, str):
            return
        for index, (url, _descriptor) in enumerate(parse_srcset(value)):
            if _is_reference(url):
                found.append(
                    AssetReference(
                        kind="image",
                        original_url=url,
                        element=element,
                        attribute="srcset",
                        candidate=index,
                    )
                )

    for element in soup.find_all(True):
        name = element.name
        if name == "link":
            rels = _rel_tokens(element)
            if "stylesheet" in rels:
                add("style", element, "href")
            elif rels & _ICON_RELS:
                add("image", element, "href")
            elif "manifest" in rels:
                add("other", element, "href")
            elif "preload" in rels and str(element.get("as", "")).lower() == "font":
                add("font", element, "href")
        elif name == "script":
            add("script", element, "src")
        elif name == "img":
            add("image", element, "src")
            add_srcset(element)
        elif name == "input":
            if str(element.get("type", "")).lower() == "image":
                add("image", element, "src")
        elif name == "source":
            add_srcset(element)
            parent = element.parent
            if parent is not None and parent.name in ("video", "audio"):
                add("media", element, "src")
        elif name == "video":
            add("media", element, "src")
            add("image", element, "poster")
        elif name == "audio":
            add("media", element, "src")
    return found


def parse_srcset(value: str) -> List[Tuple[str, str]]:
    """Split a ``srcset`` value into ``(url, descriptor)`` candidates."""
    candidates: List[Tuple[str, str]] = []
    pos, length = 0, len(value)
    while pos < length:
        while pos < length and (value[pos].isspace() or value[pos] == ","):
            pos += 1
        if pos >= length:
            break
        start = pos
        while pos < length and not value[pos].isspace():
            pos += 1
        url = value[start:pos]
        descriptor = ""
        if url.endswith(","):
            url = url.rstrip(",")
        else:
            end = value.find(",", pos)
            if end == -1:
                end = length
            descriptor = value[pos:end].strip()
            pos = end + 1
        candidates.append((url, descriptor))
    return candidates


def format_srcset(candidates: List[Tuple[str, str]]) -> str:
    return ", ".join(f"{url} {descriptor}".strip() for url, descriptor in candidates)


def _rel_tokens(element: Tag) -> set:
    rel = element.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return {token.lower() for token in rel}


def _is_reference(value) -> bool:
    if not isinstance(value, str):
        return False
    stripped = value.strip()
    return bool(stripped) and not stripped.startswith("#") and not stripped.lower().startswith("data:")
