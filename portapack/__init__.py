"""Bundle a webpage and everything it references into one HTML file.

This module provides the public API. It supports:

- Single page bundling from a local file or a remote URL
- Recursive same-site crawling into a navigable multi-page file
- Merging already rendered pages into one document

Example usage:

    from portapack import generate_portable_html, generate_recursive_portable_html

    # Local file, assets resolved next to it
    result = generate_portable_html("site/index.html")
    print(result.metadata.output_size)

    # Remote page without minification
    result = await generate_portable_html_async(
        "https://example.com",
        {"minifyHtml": False},
    )

    # Crawl two levels deep
    result = await generate_recursive_portable_html_async(
        "https://docs.example.com",
        depth=2,
    )
    print(result.metadata.pages_bundled)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

import httpx

from .bundler import PageInput, bundle_pages, slugify
from .config import BundleOptions, LogLevel, OptionsInput, build_logger, resolve_options
from .document import (
    AssetReference,
    BuildResult,
    BundleMetadata,
    PageEntry,
    SiteBundleResult,
    StructuredDocument,
)
from .errors import (
    FetchError,
    InvalidInputError,
    MinifyError,
    PackError,
    ParseError,
    PortaPackError,
    ReadError,
    ResourceError,
)
from .extractor import extract_assets
from .fetcher import fetch_and_pack_web_page, fetch_and_pack_web_page_async
from .meta import BuildTimer
from .minifier import minify_document
from .packer import pack_html
from .parser import parse_html, read_document
from .site import crawl_site, crawl_site_async
from .urls import is_http_url, looks_like_url

__version__ = "0.3.0"

__all__ = [
    # Data types
    "AssetReference",
    "BuildResult",
    "BundleMetadata",
    "BundleOptions",
    "LogLevel",
    "PageEntry",
    "SiteBundleResult",
    "StructuredDocument",
    # Errors
    "PortaPackError",
    "InvalidInputError",
    "ParseError",
    "ResourceError",
    "FetchError",
    "ReadError",
    "MinifyError",
    "PackError",
    # Single page
    "generate_portable_html",
    "generate_portable_html_async",
    "fetch_and_pack_web_page",
    "fetch_and_pack_web_page_async",
    # Recursive
    "generate_recursive_portable_html",
    "generate_recursive_portable_html_async",
    "crawl_site",
    "crawl_site_async",
    # Multi page
    "bundle_multi_page_html",
    "slugify",
    # Unified entry point
    "pack",
    "pack_async",
    # MCP Server
    "mcp",
]

LOGGER = logging.getLogger(__name__)


def get_mcp_server():
    """Get the MCP server instance (lazy import to avoid dependency if not needed)."""
    from .mcp_server import mcp

    return mcp


# Lazy import for mcp to avoid requiring fastmcp if not used
def __getattr__(name):
    if name == "mcp":
        from .mcp_server import mcp

        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


async def generate_portable_html_async(
    input_path: str,
    options: OptionsInput = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    logger: Optional[logging.Logger] = None,
) -> BuildResult:
    """
    Bundle a local HTML file or a remote page into one self-contained document.

    Args:
        input_path: Local file path or http(s) URL.
        options: BundleOptions or a mapping of option names.
        client: Optional httpx client to reuse.
        logger: Optional logger.

    Returns:
        BuildResult with the HTML and its metadata.

    Raises:
        InvalidInputError: If the input is empty or a non-http(s) URL.
        ReadError: If the local file cannot be read.
        FetchError: If the remote page cannot be fetched.
    """
    opts = resolve_options(options)
    log = build_logger(opts, logger)
    if not isinstance(input_path, str) or not input_path.strip():
        raise InvalidInputError("Input must be a non-empty file path or URL")
    source = input_path.strip()

    if is_http_url(source):
        log.info("Remote input detected, delegating to fetch-and-pack: %s", source)
        return await fetch_and_pack_web_page_async(source, opts, client=client, logger=log)

    if looks_like_url(source):
        raise InvalidInputError(
            f"Unsupported input {source!r}: Input URL must start with http:// or https://"
        )

    log.info("Packing local file %s", source)
    timer = BuildTimer(source)
    markup = await read_document(source, logger=log)
    doc = parse_html(markup, logger=log)
    doc = await extract_assets(
        doc,
        opts.embed_assets,
        opts.base_url or source,
        options=opts,
        client=client,
        logger=log,
    )
    doc = minify_document(doc, opts, logger=log)
    html = pack_html(doc, logger=log)

    metadata = timer.finish(
        html,
        asset_count=doc.asset_count,
        errors=doc.errors,
    )
    log.info(
        "Packed %s: %d characters, %d asset(s) in %d ms",
        source,
        metadata.output_size,
        metadata.asset_count,
        metadata.build_time_ms,
    )
    return BuildResult(html=html, metadata=metadata)


def generate_portable_html(
    input_path: str,
    options: OptionsInput = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> BuildResult:
    """Synchronous wrapper for generate_portable_html_async."""
    return asyncio.run(generate_portable_html_async(input_path, options, logger=logger))


async def generate_recursive_portable_html_async(
    url: str,
    depth: int = 1,
    options: OptionsInput = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    logger: Optional[logging.Logger] = None,
) -> BuildResult:
    """
    Crawl a site from ``url`` and bundle every page found into one document.

    Args:
        url: The http(s) root URL.
        depth: Number of link levels to include (1 = root page only).
        options: BundleOptions or a mapping of option names.
        client: Optional httpx client to reuse.
        logger: Optional logger.

    Returns:
        BuildResult whose metadata has ``pages_bundled`` set.
    """
    opts = resolve_options(options)
    log = build_logger(opts, logger)
    site = await crawl_site_async(url, depth, opts, client=client, logger=log)
    return BuildResult(html=site.html, metadata=site.metadata)


def generate_recursive_portable_html(
    url: str,
    depth: int = 1,
    options: OptionsInput = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> BuildResult:
    """Synchronous wrapper for generate_recursive_portable_html_async."""
    return asyncio.run(
        generate_recursive_portable_html_async(url, depth, options, logger=logger)
    )


def bundle_multi_page_html(
    pages: List[PageInput],
    options: OptionsInput = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> str:
    """
    Merge already rendered pages into one navigable document.

    Returns an empty string for an empty list.

    Raises:
        InvalidInputError: If ``pages`` is not a list or an entry is malformed.
    """
    log = build_logger(resolve_options(options), logger)
    if not isinstance(pages, list):
        raise InvalidInputError(
            f"Pages must be a list of {{url, html}} entries, got {type(pages).__name__}"
        )
    if not pages:
        log.warning("No pages to bundle")
        return ""
    return bundle_pages(pages, logger=log)


async def pack_async(
    input_path: str,
    options: OptionsInput = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    logger: Optional[logging.Logger] = None,
) -> BuildResult:
    """Crawl when the input is remote and ``recursive`` is set, else pack one page."""
    opts = resolve_options(options)
    depth = opts.recursive_depth
    if isinstance(input_path, str) and is_http_url(input_path) and depth is not None:
        return await generate_recursive_portable_html_async(
            input_path, depth, opts, client=client, logger=logger
        )
    return await generate_portable_html_async(input_path, opts, client=client, logger=logger)


def pack(input_path: str, options: OptionsInput = None, **kwargs: Any) -> BuildResult:
    """Synchronous wrapper for pack_async."""
    return asyncio.run(pack_async(input_path, options, **kwargs))
