"""Serialization of a processed document."""

from __future__ import annotations

import logging
from typing import Optional

from .document import StructuredDocument
from .errors import PackError

LOGGER = logging.getLogger(__name__)


def pack_html(doc: StructuredDocument, *, logger: Optional[logging.Logger] = None) -> str:
    """Serialize the document tree to a single HTML string.

    Raises:
        PackError: If the document has no tree to serialize.
    """
    log = logger or LOGGER
    if doc is None or getattr(doc, "soup", None) is None:
        raise PackError("Cannot pack a document without a parsed tree")
    html = str(doc.soup)
    log.debug("Packed document: %d characters", len(html))
    return html
