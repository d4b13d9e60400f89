"""Bundle options and logger construction."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, fields, replace
from enum import IntEnum
from typing import Any, Mapping, Optional, Union

LOGGER = logging.getLogger(__name__)

PACKAGE_LOGGER_NAME = "portapack"

DEFAULT_TIMEOUT = 30.0
DEFAULT_ASSET_TIMEOUT = 10.0
DEFAULT_MAX_CONCURRENCY = 6
MAX_CONCURRENCY_LIMIT = 16
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; portapack/0.3)"


class LogLevel(IntEnum):
    """Log levels accepted by ``BundleOptions.log_level``."""

    NONE = 0
    ERROR = 1
    WARN = 2
    INFO = 3
    DEBUG = 4

    @classmethod
    def from_name(cls, name: Union[str, int, "LogLevel", None]) -> "LogLevel":
        if name is None:
            return cls.INFO
        if isinstance(name, int):
            return cls(name)
        candidate = name.strip().lower()
        aliases = {
            "debug": cls.DEBUG,
            "info": cls.INFO,
            "warn": cls.WARN,
            "warning": cls.WARN,
            "error": cls.ERROR,
            "silent": cls.NONE,
            "none": cls.NONE,
        }
        try:
            return aliases[candidate]
        except KeyError:
            LOGGER.warning("Unknown log level '%s'; falling back to info.", name)
            return cls.INFO

    def to_logging(self) -> int:
        return {
            LogLevel.NONE: logging.CRITICAL + 10,
            LogLevel.ERROR: logging.ERROR,
            LogLevel.WARN: logging.WARNING,
            LogLevel.INFO: logging.INFO,
            LogLevel.DEBUG: logging.DEBUG,
        }[self]


@dataclass
class BundleOptions:
    """Options controlling a bundling run. Every field has a default."""

    embed_assets: bool = True
    base_url: Optional[str] = None
    minify_html: bool = True
    minify_css: bool = True
    minify_js: bool = True
    max_depth: int = 1
    log_level: Optional[str] = None
    recursive: Union[bool, int, None] = None
    timeout: float = DEFAULT_TIMEOUT
    asset_timeout: float = DEFAULT_ASSET_TIMEOUT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    max_pages: Optional[int] = None
    include_subdomains: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    max_embed_size: Optional[int] = None

    def __post_init__(self) -> None:
        self.max_concurrency = min(max(1, int(self.max_concurrency)), MAX_CONCURRENCY_LIMIT)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "BundleOptions":
        """Build options from a mapping using snake_case or camelCase keys."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _snake_case(key)
            if name == "minify" and value is False:
                kwargs.update(minify_html=False, minify_css=False, minify_js=False)
                continue
            if name not in known:
                LOGGER.debug("Ignoring unknown option '%s'", key)
                continue
            kwargs[name] = value
        return cls(**kwargs)

    def merged(self, **overrides: Any) -> "BundleOptions":
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @property
    def recursive_depth(self) -> Optional[int]:
        """Crawl depth requested through ``recursive``, or None."""
        if self.recursive is True:
            return self.max_depth
        if isinstance(self.recursive, int) and not isinstance(self.recursive, bool):
            return self.recursive
        return None


OptionsInput = Union[BundleOptions, Mapping[str, Any], None]


def resolve_options(options: OptionsInput) -> BundleOptions:
    if isinstance(options, BundleOptions):
        return options
    return BundleOptions.from_mapping(options)


def apply_env_overrides(options: BundleOptions) -> BundleOptions:
    """Apply ``PORTAPACK_*`` environment variables, read at call time."""
    overrides: dict = {}
    timeout = os.getenv("PORTAPACK_TIMEOUT")
    if timeout:
        try:
            overrides["timeout"] = float(timeout)
        except ValueError:
            LOGGER.warning("Ignoring invalid PORTAPACK_TIMEOUT=%r", timeout)
    concurrency = os.getenv("PORTAPACK_MAX_CONCURRENCY")
    if concurrency:
        try:
            overrides["max_concurrency"] = int(concurrency)
        except ValueError:
            LOGGER.warning("Ignoring invalid PORTAPACK_MAX_CONCURRENCY=%r", concurrency)
    user_agent = os.getenv("PORTAPACK_USER_AGENT")
    if user_agent:
        overrides["user_agent"] = user_agent
    return options.merged(**overrides)


def build_logger(
    options: Optional[BundleOptions] = None,
    logger: Optional[logging.Logger] = None,
) -> logging.Logger:
    """Return the logger a run should use.

    An explicitly supplied logger wins. Otherwise the package logger is
    returned, with its level set from ``options.log_level`` when given.
    """
    if logger is not None:
        return logger
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    if options is not None and options.log_level is not None:
        level = LogLevel.from_name(options.log_level)
        package_logger.setLevel(level.to_logging())
    return package_logger


def _snake_case(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()
