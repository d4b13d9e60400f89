"""Recursive same-site crawler producing a multi-page bundle."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Set, Tuple

import httpx

from .bundler import bundle_pages
from .config import OptionsInput, build_logger, resolve_options
from .document import PageEntry, SiteBundleResult
from .errors import PortaPackError
from .fetcher import RenderedPage, render_page_async
from .loader import http_client_scope
from .meta import BuildTimer
from .mime import ASSET_EXTENSIONS, extension_of
from .urls import is_same_site, normalize_crawl_url, validate_http_url

LOGGER = logging.getLogger(__name__)


@dataclass
class CrawlState:
    """Visited set and BFS frontier of one crawl, guarded by ``lock``."""

    root_url: str
    visited: Set[str] = field(default_factory=set)
    bundled: Set[str] = field(default_factory=set)
    frontier: Deque[Tuple[str, int]] = field(default_factory=deque)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def enqueue(self, url: str, remaining_depth: int, max_pages: Optional[int]) -> bool:
        """Queue ``url`` unless it was seen before or the page cap is reached."""
        try:
            key = normalize_crawl_url(url)
        except ValueError:
            LOGGER.debug("Not queueing malformed URL %s", url)
            return False
        async with self.lock:
            if key in self.visited:
                return False
            if max_pages is not None and len(self.visited) >= max_pages:
                return False
            self.visited.add(key)
            self.frontier.append((url, remaining_depth))
            return True

    async def claim_page(self, final_url: str) -> bool:
        """Mark a fetched page as bundled; False if its final URL already is."""
        key = normalize_crawl_url(final_url)
        async with self.lock:
            self.visited.add(key)
            if key in self.bundled:
                return False
            self.bundled.add(key)
            return True

    async def next_level(self) -> List[Tuple[str, int]]:
        async with self.lock:
            level = list(self.frontier)
            self.frontier.clear()
            return level


def is_crawlable_link(url: str, root_url: str, include_subdomains: bool = False) -> bool:
    """Same-site link that looks like a page rather than a static asset.

    Links that cannot be parsed (bad host or port) are never crawlable.
    """
    try:
        if not is_same_site(url, root_url, include_subdomains):
            return False
    except ValueError:
        return False
    return extension_of(url) not in ASSET_EXTENSIONS


async def crawl_site_async(
    root_url: str,
    depth: int = 1,
    options: OptionsInput = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    logger: Optional[logging.Logger] = None,
) -> SiteBundleResult:
    """
    Crawl same-site pages breadth-first and bundle them into one document.

    Args:
        root_url: The http(s) URL to start from.
        depth: Number of BFS levels to include (1 = root page only).
        options: BundleOptions or a mapping of option names.
        client: Optional httpx client to reuse.
        logger: Optional logger.

    Returns:
        SiteBundleResult with the bundled HTML and the number of pages in it.

    Raises:
        InvalidInputError: If ``root_url`` is not an http(s) URL.
        FetchError: If the root page cannot be fetched.
    """
    start_url = validate_http_url(root_url)
    opts = resolve_options(options)
    log = build_logger(opts, logger)
    timer = BuildTimer(start_url)

    if depth <= 0:
        log.warning("Crawl depth %d is not positive; nothing to crawl", depth)
        html = bundle_pages([], logger=log)
        metadata = timer.finish(html, asset_count=0, pages_bundled=0)
        return SiteBundleResult(html=html, pages=0, metadata=metadata)

    log.info(
        "Starting crawl of %s (depth=%d, max_pages=%s)",
        start_url,
        depth,
        opts.max_pages,
    )
    state = CrawlState(root_url=start_url)
    await state.enqueue(start_url, depth, opts.max_pages)

    entries: List[PageEntry] = []
    asset_count = 0
    semaphore = asyncio.Semaphore(opts.max_concurrency)

    async with http_client_scope(opts, client) as http:

        async def visit(url: str) -> RenderedPage:
            async with semaphore:
                return await render_page_async(url, opts, http, logger=log)

        is_root = True
        while True:
            level = await state.next_level()
            if not level:
                break
            results = await asyncio.gather(
                *(visit(url) for url, _ in level),
                return_exceptions=True,
            )
            for (url, remaining), outcome in zip(level, results):
                if isinstance(outcome, BaseException):
                    if is_root:
                        raise outcome
                    if not isinstance(outcome, (PortaPackError, httpx.HTTPError)):
                        raise outcome
                    log.warning("Skipping %s: %s", url, outcome)
                    timer.add_error(f"{url}: {outcome}")
                    continue

                if not await state.claim_page(outcome.final_url):
                    log.debug("Skipping %s: %s is already bundled", url, outcome.final_url)
                    continue
                entries.append(PageEntry(url=outcome.final_url, html=outcome.html))
                asset_count += outcome.asset_count
                for message in outcome.errors:
                    timer.add_error(message)
                log.debug("Bundled page %d: %s", len(entries), outcome.final_url)

                if remaining - 1 <= 0:
                    continue
                for link in outcome.links:
                    if is_crawlable_link(link, start_url, opts.include_subdomains):
                        await state.enqueue(link, remaining - 1, opts.max_pages)
            is_root = False

    html = bundle_pages(entries, logger=log)
    metadata = timer.finish(html, asset_count=asset_count, pages_bundled=len(entries))
    log.info(
        "Crawl finished: %d page(s) bundled, %d error(s)",
        len(entries),
        len(metadata.errors),
    )
    return SiteBundleResult(html=html, pages=len(entries), metadata=metadata, page_entries=entries)


def crawl_site(
    root_url: str,
    depth: int = 1,
    options: OptionsInput = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> SiteBundleResult:
    """Synchronous wrapper for crawl_site_async."""
    return asyncio.run(crawl_site_async(root_url, depth, options, logger=logger))
