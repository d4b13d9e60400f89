"""Fetch a remote page and run it through the bundling pipeline."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from .config import BundleOptions, OptionsInput, build_logger, resolve_options
from .document import BuildResult
from .errors import FetchError
from .extractor import extract_assets
from .loader import fetch_url, http_client_scope
from .meta import BuildTimer
from .mime import is_html_content_type, mime_from_content_type
from .minifier import minify_document
from .packer import pack_html
from .parser import parse_html
from .urls import validate_http_url

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RenderedPage:
    """One remote page after parse, extract, minify and pack."""

    url: str
    final_url: str
    html: str
    links: List[str] = field(default_factory=list)
    asset_count: int = 0
    errors: List[str] = field(default_factory=list)


async def render_page_async(
    url: str,
    options: BundleOptions,
    client: httpx.AsyncClient,
    *,
    logger: Optional[logging.Logger] = None,
) -> RenderedPage:
    """Fetch ``url`` and produce its self-contained HTML.

    Raises:
        FetchError: If the page cannot be fetched or is not HTML.
        ParseError: If the page cannot be parsed.
    """
    log = logger or LOGGER
    resource = await fetch_url(url, client, timeout=options.timeout)
    if not is_html_content_type(resource.content_type):
        raise FetchError(
            f"Unsupported content type '{mime_from_content_type(resource.content_type)}' for {url}",
            url=url,
        )
    log.debug("Fetched page %s (%d bytes)", resource.url, len(resource.content))

    doc = parse_html(resource.content, logger=log)
    base = options.base_url or resource.url
    doc = await extract_assets(
        doc,
        options.embed_assets,
        base,
        options=options,
        client=client,
        logger=log,
    )
    doc = minify_document(doc, options, logger=log)
    html = pack_html(doc, logger=log)
    return RenderedPage(
        url=url,
        final_url=resource.url,
        html=html,
        links=list(doc.links),
        asset_count=doc.asset_count,
        errors=list(doc.errors),
    )


async def fetch_and_pack_web_page_async(
    url: str,
    options: OptionsInput = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    logger: Optional[logging.Logger] = None,
) -> BuildResult:
    """
    Fetch a remote page and bundle it into a single HTML document.

    Args:
        url: The http(s) URL of the page.
        options: BundleOptions or a mapping of option names.
        client: Optional httpx client to reuse.
        logger: Optional logger.

    Returns:
        BuildResult with the HTML and its metadata.

    Raises:
        InvalidInputError: If ``url`` is not an http(s) URL.
        FetchError: If the page cannot be fetched.
    """
    page_url = validate_http_url(url)
    opts = resolve_options(options)
    log = build_logger(opts, logger)
    timer = BuildTimer(page_url)
    log.info("Fetching and packing %s", page_url)

    async with http_client_scope(opts, client) as http:
        page = await render_page_async(page_url, opts, http, logger=log)

    metadata = timer.finish(page.html, asset_count=page.asset_count, errors=page.errors)
    log.info(
        "Packed %s: %d characters, %d asset(s) in %d ms",
        page_url,
        metadata.output_size,
        metadata.asset_count,
        metadata.build_time_ms,
    )
    return BuildResult(html=page.html, metadata=metadata)


def fetch_and_pack_web_page(
    url: str,
    options: OptionsInput = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> BuildResult:
    """Synchronous wrapper for fetch_and_pack_web_page_async."""
    return asyncio.run(fetch_and_pack_web_page_async(url, options, logger=logger))
