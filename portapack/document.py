"""Data structures shared by the bundling pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional, Tuple

if TYPE_CHECKING:
    from bs4 import BeautifulSoup
    from bs4.element import Tag

AssetKind = Literal["style", "script", "image", "font", "media", "other"]

# Kinds whose bytes are inlined as text rather than as a base64 data URI.
TEXT_KINDS = frozenset({"style", "script"})


@dataclass(eq=False)
class AssetReference:
    """One reference site to an external resource.

    A reference either lives on an element attribute of the document tree
    (``element``/``attribute``, plus ``candidate`` for ``srcset`` entries) or
    inside CSS text (``span``/``rule``), in which case ``parent`` points at the
    stylesheet reference it was found in (``None`` for inline ``<style>``
    blocks and ``style`` attributes).
    """

    kind: AssetKind
    original_url: str
    resolved_url: str = ""
    content: Optional[bytes] = None
    is_embedded: bool = False
    mime_type: str = ""
    element: Optional["Tag"] = field(default=None, repr=False)
    attribute: Optional[str] = None
    candidate: Optional[int] = None
    span: Optional[Tuple[int, int]] = None
    rule: Optional[Literal["url", "import"]] = None
    media: str = ""
    parent: Optional["AssetReference"] = field(default=None, repr=False)
    children: List["AssetReference"] = field(default_factory=list, repr=False)
    text: Optional[str] = field(default=None, repr=False)
    error: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return self.kind in TEXT_KINDS

    @property
    def location(self) -> str:
        """Best available address for diagnostics."""
        return self.resolved_url or self.original_url

    def ancestors(self) -> List["AssetReference"]:
        chain = []
        node = self.parent
        while node is not None:
            chain.append(node)
            node = node.parent
        return chain


@dataclass
class StructuredDocument:
    """A parsed markup tree plus the asset references discovered in it."""

    soup: "BeautifulSoup"
    assets: List[AssetReference] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    base_url: Optional[str] = None

    def add_error(self, message: str) -> None:
        if message not in self.errors:
            self.errors.append(message)

    def iter_assets(self):
        """Yield every reference, nested stylesheet references included."""
        stack = list(reversed(self.assets))
        while stack:
            asset = stack.pop()
            yield asset
            stack.extend(reversed(asset.children))

    @property
    def asset_count(self) -> int:
        return sum(1 for _ in self.iter_assets())

    @property
    def embedded_count(self) -> int:
        return sum(1 for asset in self.iter_assets() if asset.is_embedded)


@dataclass(slots=True)
class PageEntry:
    """A rendered, already self-contained page."""

    url: str
    html: str


@dataclass
class BundleMetadata:
    """Summary of a build; ``errors`` lists non-fatal degradations."""

    input: str
    output_size: int = 0
    asset_count: int = 0
    build_time_ms: int = 0
    pages_bundled: Optional[int] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "input": self.input,
            "outputSize": self.output_size,
            "assetCount": self.asset_count,
            "buildTimeMs": self.build_time_ms,
            "errors": list(self.errors),
        }
        if self.pages_bundled is not None:
            data["pagesBundled"] = self.pages_bundled
        return data


@dataclass
class BuildResult:
    """Final HTML plus the metadata describing how it was built."""

    html: str
    metadata: BundleMetadata


@dataclass
class SiteBundleResult:
    """Result of a recursive crawl: bundled HTML and number of pages in it."""

    html: str
    pages: int
    metadata: BundleMetadata
    page_entries: List[PageEntry] = field(default_factory=list, repr=False)
