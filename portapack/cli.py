"""Command-line interface for bundling pages into a single HTML file."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional

from .cli_config import load_config
from .cli_output import format_summary, metadata_to_json, write_output
from .config import BundleOptions, LogLevel, apply_env_overrides
from .urls import is_http_url


def _setup_logging(verbose: bool, log_level: Optional[str] = None) -> None:
    if verbose:
        level = logging.DEBUG
    elif log_level:
        level = LogLevel.from_name(log_level).to_logging()
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("portapack").setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="portapack",
        description="Bundle a web page and all of its assets into one self-contained HTML file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Local file, writes index.packed.html
  portapack ./site/index.html

  # Remote page to a chosen file
  portapack https://example.com -o example.html

  # Crawl two levels of same-site links into one navigable file
  portapack https://docs.example.com -r 2 -o docs.html

  # Keep assets as absolute links and skip minification
  portapack ./page.html --no-embed-assets --no-minify

  # Show what would be built without writing anything
  portapack https://example.com --dry-run --json
""",
    )

    parser.add_argument(
        "input",
        help="Local HTML file or http(s) URL",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Output file (default: <name>.packed.html)",
    )
    parser.add_argument(
        "-r",
        "--recursive",
        nargs="?",
        type=int,
        const=-1,
        default=None,
        metavar="DEPTH",
        help="Crawl same-site links recursively (optional depth, default: --max-depth)",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Maximum crawl depth for recursive mode (default: 1)",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Maximum number of pages to bundle in recursive mode",
    )
    parser.add_argument(
        "--include-subdomains",
        action="store_true",
        help="Follow links to subdomains of the root site",
    )
    parser.add_argument(
        "-e",
        "--no-embed-assets",
        action="store_true",
        help="Rewrite asset references to absolute URLs instead of embedding them",
    )
    parser.add_argument(
        "-m",
        "--no-minify",
        action="store_true",
        help="Disable all minification",
    )
    parser.add_argument(
        "--no-minify-html",
        action="store_true",
        help="Disable HTML minification",
    )
    parser.add_argument(
        "--no-minify-css",
        action="store_true",
        help="Disable CSS minification",
    )
    parser.add_argument(
        "--no-minify-js",
        action="store_true",
        help="Disable JavaScript minification",
    )
    parser.add_argument(
        "-b",
        "--base-url",
        type=str,
        default=None,
        help="Base URL for resolving relative references",
    )
    parser.add_argument(
        "-d",
        "--dry-run",
        action="store_true",
        help="Build but do not write the output file",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Print the build metadata as JSON",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warn", "error", "silent", "none"],
        default=None,
        help="Logging level (default: info)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def _build_options(args: argparse.Namespace) -> BundleOptions:
    """Translate parsed arguments into bundle options."""
    max_depth = args.max_depth if args.max_depth is not None else 1
    recursive = None
    if args.recursive is not None:
        recursive = max_depth if args.recursive == -1 else args.recursive
    elif args.max_depth is not None:
        recursive = args.max_depth

    options = BundleOptions(
        embed_assets=not args.no_embed_assets,
        base_url=args.base_url,
        minify_html=not (args.no_minify or args.no_minify_html),
        minify_css=not (args.no_minify or args.no_minify_css),
        minify_js=not (args.no_minify or args.no_minify_js),
        max_depth=max_depth,
        log_level="debug" if args.verbose else args.log_level,
        recursive=recursive,
        max_pages=args.max_pages,
        include_subdomains=args.include_subdomains,
    )
    return apply_env_overrides(options)


async def _run_async(args: argparse.Namespace) -> int:
    """Main async entry point."""
    from . import pack_async

    options = _build_options(args)
    if options.recursive is not None and not is_http_url(args.input):
        logging.warning("Recursive mode needs an http(s) URL; packing %s as a single page", args.input)

    result = await pack_async(args.input, options)

    output_path = None
    if args.dry_run:
        logging.info("Dry run: not writing output")
    else:
        output_path = write_output(result, args.output, args.input)

    if args.json_output:
        print(metadata_to_json(result.metadata))
    else:
        print(format_summary(result.metadata, output_path))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the portapack command."""
    args = _parse_args(argv)
    _setup_logging(args.verbose, args.log_level)
    load_config()

    try:
        return asyncio.run(_run_async(args))
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return 130
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
