"""Output and formatting helpers for CLI commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from .document import BuildResult, BundleMetadata
from .urls import is_http_url

PACKED_SUFFIX = ".packed.html"


def default_output_path(input_path: str) -> Path:
    """``<name>.packed.html`` in the current directory for a path or URL."""
    if is_http_url(input_path):
        parsed = urlparse(input_path)
        stem = Path(parsed.path.rstrip("/")).stem or parsed.hostname or "index"
    else:
        stem = Path(input_path).stem or "output"
    return Path(f"{stem}{PACKED_SUFFIX}")


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


def metadata_to_json(metadata: BundleMetadata) -> str:
    return json.dumps(metadata.to_dict(), indent=2, ensure_ascii=False)


def format_summary(metadata: BundleMetadata, output: Optional[Path]) -> str:
    """Human readable build summary."""
    lines = [
        f"Input:      {metadata.input}",
        f"Output:     {output if output is not None else '(dry run)'}",
        f"Size:       {format_size(metadata.output_size)}",
        f"Assets:     {metadata.asset_count}",
    ]
    if metadata.pages_bundled is not None:
        lines.append(f"Pages:      {metadata.pages_bundled}")
    lines.append(f"Build time: {metadata.build_time_ms} ms")
    if metadata.errors:
        lines.append(f"Warnings:   {len(metadata.errors)}")
        lines.extend(f"  - {message}" for message in metadata.errors)
    return "\n".join(lines)


def write_output(result: BuildResult, output: Optional[str], input_path: str) -> Path:
    """Write the bundled HTML and return the path written."""
    path = Path(output) if output else default_output_path(input_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(result.html, encoding="utf-8")
    logging.info("Wrote %s (%s)", path, format_size(len(result.html.encode("utf-8"))))
    return path
