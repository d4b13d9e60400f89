"""Exception types raised by the bundling pipeline."""

from __future__ import annotations

from typing import Optional


class PortaPackError(Exception):
    """Base exception for portapack."""


class InvalidInputError(PortaPackError, ValueError):
    """Raised when an entry point receives an unusable argument."""


class ParseError(PortaPackError):
    """Raised when markup cannot be turned into a document tree."""


class ResourceError(PortaPackError):
    """Raised when a page or asset cannot be loaded."""

    def __init__(self, message: str, url: str = ""):
        self.url = url
        super().__init__(message)


class FetchError(ResourceError):
    """Raised when an HTTP fetch fails (network error, timeout, bad status)."""

    def __init__(self, message: str, url: str = "", status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message, url=url)


class ReadError(ResourceError):
    """Raised when a local file cannot be read."""

    def __init__(self, message: str, path: str = ""):
        self.path = path
        super().__init__(message, url=path)


class MinifyError(PortaPackError):
    """Raised when an asset is malformed for its declared type."""


class PackError(PortaPackError):
    """Raised when a document cannot be serialized."""
