"""MCP Server exposing page and site bundling as tools.

Provides tools for:
- Packing a single page (local file or URL) into one HTML document
- Crawling a site and packing its pages into one navigable document

Supports both STDIO and HTTP transports.

Usage:
    # STDIO (for desktop MCP clients)
    python -m portapack.mcp_server

    # HTTP (for remote access)
    python -m portapack.mcp_server --transport http --port 8000

    # Or via FastMCP CLI
    fastmcp run portapack/mcp_server.py:mcp --transport http --port 8000

Environment Variables:
    PORTAPACK_TIMEOUT: Page fetch timeout in seconds (default: 30)
    PORTAPACK_MAX_CONCURRENCY: Parallel fetches (default: 6)
    PORTAPACK_USER_AGENT: User-Agent header for HTTP requests
"""

from __future__ import annotations

import argparse
import json
import logging
from typing import Any, Dict, Optional

from fastmcp import FastMCP

from .cli_config import load_config
from .config import BundleOptions, apply_env_overrides
from .document import BuildResult

LOGGER = logging.getLogger(__name__)

# Create the MCP server
mcp = FastMCP(
    name="PortaPack",
    instructions="""
    Bundles web pages into single self-contained HTML files.

    Tools:
       - pack_page: Pack one local file or http(s) URL with all of its assets
       - pack_site: Crawl same-site links from a URL and pack every page into
         one file with built-in navigation

    Both tools return JSON with "html" and "metadata" keys, or an "error" key.
    """,
)


def _build_options(
    *,
    embed_assets: bool,
    minify: bool,
    base_url: Optional[str] = None,
    max_depth: int = 1,
    max_pages: Optional[int] = None,
    include_subdomains: bool = False,
) -> BundleOptions:
    options = BundleOptions(
        embed_assets=embed_assets,
        base_url=base_url,
        minify_html=minify,
        minify_css=minify,
        minify_js=minify,
        max_depth=max_depth,
        max_pages=max_pages,
        include_subdomains=include_subdomains,
    )
    return apply_env_overrides(options)


def _format_result(result: BuildResult, include_html: bool) -> str:
    payload: Dict[str, Any] = {"metadata": result.metadata.to_dict()}
    if include_html:
        payload["html"] = result.html
    return json.dumps(payload, ensure_ascii=False)


def _format_error(exc: Exception) -> str:
    return json.dumps({"error": str(exc), "type": type(exc).__name__}, ensure_ascii=False)


async def pack_page(
    input: str,
    embed_assets: bool = True,
    minify: bool = True,
    base_url: Optional[str] = None,
    include_html: bool = True,
) -> str:
    """
    Pack a web page and all of its assets into one self-contained HTML file.

    Args:
        input: Local HTML file path or http(s) URL
        embed_assets: Inline stylesheets, scripts, images and fonts (default: true)
        minify: Minify HTML, CSS and JavaScript (default: true)
        base_url: Base URL for resolving relative references (optional)
        include_html: Include the bundled HTML in the response (default: true)

    Returns:
        JSON with "html" and "metadata", or "error" on failure.

    Examples:
        pack_page(input="https://example.com")
        pack_page(input="./site/index.html", minify=False)
    """
    from . import generate_portable_html_async

    options = _build_options(embed_assets=embed_assets, minify=minify, base_url=base_url)
    LOGGER.info("Packing page: %s", input)
    try:
        result = await generate_portable_html_async(input, options)
    except Exception as exc:
        LOGGER.warning("pack_page failed for %s: %s", input, exc)
        return _format_error(exc)
    return _format_result(result, include_html)


async def pack_site(
    url: str,
    max_depth: int = 1,
    max_pages: Optional[int] = 25,
    include_subdomains: bool = False,
    embed_assets: bool = True,
    minify: bool = True,
    include_html: bool = True,
) -> str:
    """
    Crawl a website from a root URL and pack its pages into one HTML file.

    Args:
        url: The http(s) root URL to start crawling from
        max_depth: Link levels to follow (default: 1, root page only)
        max_pages: Maximum number of pages to bundle (default: 25)
        include_subdomains: Follow links to subdomains (default: false)
        embed_assets: Inline assets of every page (default: true)
        minify: Minify HTML, CSS and JavaScript (default: true)
        include_html: Include the bundled HTML in the response (default: true)

    Returns:
        JSON with "html" and "metadata" (including pagesBundled), or "error".

    Examples:
        pack_site(url="https://docs.example.com", max_depth=2)
    """
    from . import generate_recursive_portable_html_async

    options = _build_options(
        embed_assets=embed_assets,
        minify=minify,
        max_depth=max_depth,
        max_pages=max_pages,
        include_subdomains=include_subdomains,
    )
    LOGGER.info(
        "Starting site pack: %s (max_depth=%d, max_pages=%s)",
        url,
        max_depth,
        max_pages,
    )
    try:
        result = await generate_recursive_portable_html_async(url, max_depth, options)
    except Exception as exc:
        LOGGER.warning("pack_site failed for %s: %s", url, exc)
        return _format_error(exc)
    return _format_result(result, include_html)


mcp.tool(pack_page)
mcp.tool(pack_site)


def main():
    """CLI entry point for running the MCP server."""
    parser = argparse.ArgumentParser(
        description="Run the PortaPack MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
    PORTAPACK_TIMEOUT          Page fetch timeout in seconds (default: 30)
    PORTAPACK_MAX_CONCURRENCY  Parallel fetches (default: 6)
    PORTAPACK_USER_AGENT       User-Agent header for HTTP requests

Examples:
    # STDIO transport (default)
    python -m portapack.mcp_server

    # HTTP transport (for remote access)
    python -m portapack.mcp_server --transport http --port 8000

    # Custom host/port
    python -m portapack.mcp_server --transport http --host 0.0.0.0 --port 9000
""",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to for HTTP transport (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to for HTTP transport (default: 8000)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    load_config()

    if args.transport == "http":
        LOGGER.info("Starting MCP server on http://%s:%d/mcp", args.host, args.port)
        mcp.run(transport="http", host=args.host, port=args.port)
    else:
        LOGGER.info("Starting MCP server with STDIO transport")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
