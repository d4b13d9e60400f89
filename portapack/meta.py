"""Build metadata collection."""

from __future__ import annotations

import time
from typing import Iterable, List, Optional

from .document import BundleMetadata


class BuildTimer:
    """Measures one build and produces its ``BundleMetadata``."""

    def __init__(self, input_source: str):
        self.input_source = input_source
        self._started = time.monotonic()
        self.asset_count = 0
        self.pages_bundled: Optional[int] = None
        self.errors: List[str] = []

    def add_error(self, message: str) -> None:
        if message and message not in self.errors:
            self.errors.append(message)

    def set_asset_count(self, count: int) -> None:
        self.asset_count = max(0, int(count))

    def set_page_count(self, count: int) -> None:
        self.pages_bundled = max(0, int(count))

    def elapsed_ms(self) -> int:
        return max(0, int(round((time.monotonic() - self._started) * 1000)))

    def finish(
        self,
        html: str,
        *,
        asset_count: Optional[int] = None,
        pages_bundled: Optional[int] = None,
        errors: Iterable[str] = (),
    ) -> BundleMetadata:
        """Freeze the metadata; ``errors`` are merged after the timer's own."""
        if asset_count is not None:
            self.set_asset_count(asset_count)
        if pages_bundled is not None:
            self.set_page_count(pages_bundled)
        for message in errors:
            self.add_error(message)
        return BundleMetadata(
            input=self.input_source,
            output_size=len(html),
            asset_count=self.asset_count,
            build_time_ms=self.elapsed_ms(),
            pages_bundled=self.pages_bundled,
            errors=list(self.errors),
        )
