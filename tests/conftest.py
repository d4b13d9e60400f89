"""Shared fixtures: an in-memory HTTP site and strict test accounting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Union

import httpx
import pytest

Route = Union[tuple, Callable[[httpx.Request], httpx.Response], Exception]


class FakeSite:
    """Routes absolute URLs to canned responses through ``httpx.MockTransport``.

    A route is ``(status, content_type, body)``, a callable taking the request,
    or an exception instance to raise. Unknown URLs answer 404.
    """

    def __init__(self, routes: Dict[str, Route] | None = None):
        self.routes: Dict[str, Route] = dict(routes or {})
        self.calls: List[str] = []

    def add(self, url: str, body: Union[str, bytes], content_type: str = "text/html", status: int = 200) -> None:
        self.routes[url] = (status, content_type, body)

    def page(self, url: str, body: str) -> None:
        self.add(url, body, "text/html; charset=utf-8")

    def _handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        status, content_type, body = route
        content = body.encode("utf-8") if isinstance(body, str) else body
        return httpx.Response(status, headers={"content-type": content_type}, content=content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self._handle), follow_redirects=True)


@pytest.fixture
def fake_site() -> FakeSite:
    return FakeSite()


@dataclass
class _TestAccounting:
    deselected: int = 0
    skipped: int = 0
    xfailed: int = 0


_ACCOUNTING = _TestAccounting()


def pytest_deselected(items):  # pragma: no cover - pytest hook
    _ACCOUNTING.deselected += len(items)


def pytest_runtest_logreport(report):  # pragma: no cover - pytest hook
    if report.when not in {"setup", "call"}:
        return
    if getattr(report, "wasxfail", False):
        _ACCOUNTING.xfailed += 1
    elif report.outcome == "skipped":
        _ACCOUNTING.skipped += 1


def pytest_sessionfinish(session, exitstatus):  # pragma: no cover - pytest hook
    counts = {
        "deselected": _ACCOUNTING.deselected,
        "skipped": _ACCOUNTING.skipped,
        "xfail": _ACCOUNTING.xfailed,
    }
    violations = [f"{name}={count}" for name, count in counts.items() if count]
    if not violations:
        return
    reporter = session.config.pluginmanager.get_plugin("terminalreporter")
    if reporter:
        reporter.write_sep("=", f"Test accounting violations: {', '.join(violations)}")
    session.exitstatus = 1
