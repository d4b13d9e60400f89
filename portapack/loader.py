"""Resource loading primitives: local file reads and HTTP fetches.

Every network access in the package goes through :func:`fetch_url`, every
local read through :func:`read_local_file`, so tests can stub either one or
inject an ``httpx.AsyncClient`` built on ``httpx.MockTransport``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional
from urllib.parse import urlsplit

import httpx

from .config import BundleOptions
from .errors import FetchError, ReadError
from .urls import file_url_to_path

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class LoadedResource:
    """Raw bytes of a page or asset plus what the server said about them."""

    url: str
    content: bytes
    content_type: str = ""


def build_http_client(options: Optional[BundleOptions] = None) -> httpx.AsyncClient:
    """Create the httpx async client used for one top-level invocation."""
    opts = options or BundleOptions()
    return httpx.AsyncClient(
        headers={
            "User-Agent": opts.user_agent,
            "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
        },
        follow_redirects=True,
        timeout=opts.timeout,
    )


@asynccontextmanager
async def http_client_scope(
    options: Optional[BundleOptions] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the caller's client, or a fresh one closed on exit."""
    if client is not None:
        yield client
        return
    async with build_http_client(options) as owned:
        yield owned


async def read_local_file(path: str) -> bytes:
    """Read a local file without blocking the event loop."""
    try:
        return await asyncio.to_thread(Path(path).read_bytes)
    except FileNotFoundError as exc:
        raise ReadError(f"File not found: {path}", path=path) from exc
    except PermissionError as exc:
        raise ReadError(f"Permission denied reading {path}", path=path) from exc
    except OSError as exc:
        raise ReadError(f"Could not read {path}: {exc}", path=path) from exc


async def fetch_url(
    url: str,
    client: httpx.AsyncClient,
    *,
    timeout: Optional[float] = None,
) -> LoadedResource:
    """GET ``url`` and return its body; raise ``FetchError`` on any failure."""
    try:
        if timeout is None:
            response = await client.get(url)
        else:
            response = await client.get(url, timeout=timeout)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        raise FetchError(
            f"HTTP {status} fetching {url}", url=url, status_code=status
        ) from exc
    except httpx.TimeoutException as exc:
        raise FetchError(f"Timed out fetching {url}", url=url) from exc
    except httpx.RequestError as exc:
        raise FetchError(f"Request failed for {url}: {exc}", url=url) from exc
    except (httpx.InvalidURL, ValueError) as exc:
        raise FetchError(f"Invalid URL {url}: {exc}", url=url) from exc

    return LoadedResource(
        url=str(response.url),
        content=response.content,
        content_type=response.headers.get("content-type", ""),
    )


async def load_resource(
    url: str,
    client: httpx.AsyncClient,
    *,
    timeout: Optional[float] = None,
    logger: Optional[logging.Logger] = None,
) -> LoadedResource:
    """Load an absolute ``http(s)`` or ``file`` URL."""
    log = logger or LOGGER
    try:
        scheme = urlsplit(url).scheme.lower()
    except ValueError as exc:
        raise FetchError(f"Invalid URL {url}: {exc}", url=url) from exc
    if scheme in ("http", "https"):
        resource = await fetch_url(url, client, timeout=timeout)
        log.debug(
            "Fetched %s (%d bytes, %s)",
            url,
            len(resource.content),
            resource.content_type or "no content-type",
        )
        return resource
    if scheme == "file":
        path = file_url_to_path(url)
        content = await read_local_file(path)
        log.debug("Read local asset %s (%d bytes)", path, len(content))
        return LoadedResource(url=url, content=content)
    raise FetchError(f"Unsupported protocol '{scheme}:' in {url}", url=url)
