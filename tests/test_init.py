from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

import portapack
from portapack.config import BundleOptions
from portapack.document import BuildResult, BundleMetadata, StructuredDocument
from portapack.errors import InvalidInputError


def _stub_local_pipeline(monkeypatch: pytest.MonkeyPatch) -> list:
    calls: list = []
    doc = StructuredDocument(soup=SimpleNamespace())

    async def fake_read(path, *, logger=None):
        calls.append(("read", path))
        return "<p>x</p>"

    def fake_parse(markup, *, logger=None):
        calls.append(("parse", markup))
        return doc

    async def fake_extract(document, embed, base, *, options=None, client=None, logger=None):
        calls.append(("extract", embed, base))
        document.errors.append("asset warning")
        return document

    def fake_minify(document, options=None, *, logger=None):
        calls.append(("minify",))
        return document

    def fake_pack(document, *, logger=None):
        calls.append(("pack",))
        return "<p>x</p>"

    monkeypatch.setattr(portapack, "read_document", fake_read)
    monkeypatch.setattr(portapack, "parse_html", fake_parse)
    monkeypatch.setattr(portapack, "extract_assets", fake_extract)
    monkeypatch.setattr(portapack, "minify_document", fake_minify)
    monkeypatch.setattr(portapack, "pack_html", fake_pack)
    return calls


@pytest.mark.asyncio
async def test_local_input_runs_pipeline_in_order(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _stub_local_pipeline(monkeypatch)

    result = await portapack.generate_portable_html_async("site/index.html")

    assert [call[0] for call in calls] == ["read", "parse", "extract", "minify", "pack"]
    assert calls[2] == ("extract", True, "site/index.html")
    assert result.html == "<p>x</p>"
    assert result.metadata.input == "site/index.html"
    assert result.metadata.output_size == len("<p>x</p>")
    assert result.metadata.errors == ["asset warning"]


@pytest.mark.asyncio
async def test_base_url_option_wins_over_input_path(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _stub_local_pipeline(monkeypatch)

    await portapack.generate_portable_html_async(
        "page.html",
        {"baseUrl": "https://example.com/", "embedAssets": False},
    )

    assert calls[2] == ("extract", False, "https://example.com/")


@pytest.mark.asyncio
async def test_remote_input_delegates_to_fetch_and_pack(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: list = []

    async def fake_fetch_and_pack(url, options=None, *, client=None, logger=None):
        captured.append((url, options))
        return BuildResult(html="<p>remote</p>", metadata=BundleMetadata(input=url))

    local_calls = _stub_local_pipeline(monkeypatch)
    monkeypatch.setattr(portapack, "fetch_and_pack_web_page_async", fake_fetch_and_pack)

    result = await portapack.generate_portable_html_async(
        " https://example.com/ ", BundleOptions(minify_js=False)
    )

    assert len(captured) == 1
    assert captured[0][0] == "https://example.com/"
    assert captured[0][1].minify_js is False
    assert result.html == "<p>remote</p>"
    assert local_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("source", ["ftp://example.com/page.html", "file:///tmp/page.html"])
async def test_non_http_urls_rejected(source: str) -> None:
    with pytest.raises(InvalidInputError, match="must start with http:// or https://"):
        await portapack.generate_portable_html_async(source)


@pytest.mark.asyncio
@pytest.mark.parametrize("source", ["", "   "])
async def test_empty_input_rejected(source: str) -> None:
    with pytest.raises(InvalidInputError):
        await portapack.generate_portable_html_async(source)


@pytest.mark.asyncio
async def test_missing_local_file_raises_read_error(tmp_path: Path) -> None:
    with pytest.raises(portapack.ReadError):
        await portapack.generate_portable_html_async(str(tmp_path / "missing.html"))


def test_local_file_end_to_end(tmp_path: Path) -> None:
    (tmp_path / "style.css").write_text("h1 {\n  color: navy;\n}\n")
    (tmp_path / "index.html").write_text(
        "<html><head><link rel=\"stylesheet\" href=\"style.css\"></head>"
        "<body>\n  <h1>Title</h1>\n  <img src=\"missing.png\">\n</body></html>"
    )

    result = portapack.generate_portable_html(str(tmp_path / "index.html"))

    assert "<style>h1{color:navy}</style>" in result.html
    assert 'src="missing.png"' in result.html
    assert result.metadata.output_size == len(result.html)
    assert result.metadata.asset_count == 2
    assert len(result.metadata.errors) == 1
    assert "missing.png" in result.metadata.errors[0]


def test_bundle_multi_page_empty_list(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail(*args, **kwargs):
        raise AssertionError("bundle_pages should not be called")

    monkeypatch.setattr(portapack, "bundle_pages", fail)

    assert portapack.bundle_multi_page_html([]) == ""


@pytest.mark.parametrize("pages", [None, "x", {"url": "https://a", "html": ""}])
def test_bundle_multi_page_rejects_non_lists(pages, monkeypatch: pytest.MonkeyPatch) -> None:
    called: list = []
    monkeypatch.setattr(portapack, "bundle_pages", lambda *args, **kwargs: called.append(args))

    with pytest.raises(InvalidInputError):
        portapack.bundle_multi_page_html(pages)
    assert called == []


def test_bundle_multi_page_builds_document() -> None:
    html = portapack.bundle_multi_page_html(
        [
            {"url": "https://example.com/", "html": "<p>Home</p>"},
            portapack.PageEntry(url="https://example.com/docs", html="<p>Docs</p>"),
        ]
    )

    assert 'id="page-index"' in html
    assert 'id="page-docs"' in html


@pytest.mark.asyncio
async def test_recursive_generation_uses_crawler(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict = {}

    async def fake_crawl(url, depth=1, options=None, *, client=None, logger=None):
        captured.update(url=url, depth=depth)
        metadata = BundleMetadata(input=url, pages_bundled=3)
        return portapack.SiteBundleResult(html="<nav></nav>", pages=3, metadata=metadata)

    monkeypatch.setattr(portapack, "crawl_site_async", fake_crawl)

    result = await portapack.generate_recursive_portable_html_async("https://example.com")

    assert captured == {"url": "https://example.com", "depth": 1}
    assert result.metadata.pages_bundled == 3
    assert result.html == "<nav></nav>"


@pytest.mark.asyncio
async def test_pack_dispatches_on_recursive_option(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: list = []

    async def fake_recursive(url, depth=1, options=None, *, client=None, logger=None):
        captured.append(("recursive", url, depth))
        return BuildResult(html="", metadata=BundleMetadata(input=url))

    async def fake_single(source, options=None, *, client=None, logger=None):
        captured.append(("single", source))
        return BuildResult(html="", metadata=BundleMetadata(input=source))

    monkeypatch.setattr(portapack, "generate_recursive_portable_html_async", fake_recursive)
    monkeypatch.setattr(portapack, "generate_portable_html_async", fake_single)

    await portapack.pack_async("https://example.com", {"recursive": True, "maxDepth": 2})
    await portapack.pack_async("https://example.com", {"recursive": 3})
    await portapack.pack_async("https://example.com")
    await portapack.pack_async("page.html", {"recursive": True})

    assert captured == [
        ("recursive", "https://example.com", 2),
        ("recursive", "https://example.com", 3),
        ("single", "https://example.com"),
        ("single", "page.html"),
    ]


def test_lazy_mcp_attribute() -> None:
    assert portapack.mcp is portapack.get_mcp_server()
