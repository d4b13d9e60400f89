"""Tests for portapack.extractor module."""

from __future__ import annotations

import base64
import re
from pathlib import Path

import pytest

from portapack.config import BundleOptions
from portapack.extractor import (
    escape_inline_script,
    extract_assets,
    find_css_references,
    rewrite_css,
    to_data_uri,
)
from portapack.parser import parse_html

PAGE_URL = "https://example.com/page/index.html"
PNG_BYTES = b"\x89PNG"
LATIN_CSS = b"\xff\xfe\x00body{}"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _decode_data_uri(value: str) -> str:
    match = re.search(r"data:text/css;base64,([A-Za-z0-9+/=]+)", value)
    assert match, value
    return base64.b64decode(match.group(1)).decode("utf-8")


class TestFindCssReferences:
    def test_url_and_import(self):
        css = '@import "reset.css";\nbody { background: url(img/bg.png) }'
        refs = find_css_references(css)
        assert [(ref.rule, ref.kind, ref.original_url) for ref in refs] == [
            ("import", "style", "reset.css"),
            ("url", "image", "img/bg.png"),
        ]
        assert css[slice(*refs[0].span)] == '@import "reset.css";'
        assert css[slice(*refs[1].span)] == "url(img/bg.png)"

    def test_import_url_form_keeps_media(self):
        refs = find_css_references("@import url('print.css') print;")
        assert refs[0].original_url == "print.css"
        assert refs[0].media == "print"

    def test_skips_data_fragments_and_comments(self):
        css = (
            "a { background: url(data:image/png;base64,AAAA) }\n"
            "b { filter: url(#blur) }\n"
            "/* c { background: url(hidden.png) } */\n"
            "d { background: url( 'shown.png' ) }"
        )
        assert [ref.original_url for ref in find_css_references(css)] == ["shown.png"]

    def test_font_kind(self):
        refs = find_css_references("@font-face { src: url(\"f.woff2\") format('woff2') }")
        assert refs[0].kind == "font"


def test_rewrite_css_uses_resolved_or_original():
    css = "a{background:url(a.png)} b{background:url(b.png)}"
    first, second = find_css_references(css)
    first.resolved_url = "https://example.com/a.png"
    second.resolved_url = "https://example.com/b.png"
    second.error = "failed"
    assert (
        rewrite_css(css, [first, second])
        == 'a{background:url("https://example.com/a.png")} b{background:url("b.png")}'
    )


def test_to_data_uri():
    assert to_data_uri(b"abc", "image/png") == "data:image/png;base64,YWJj"


def test_escape_inline_script():
    assert escape_inline_script("x = '</script>'; y = '</SCRIPT'") == "x = '<\\/script>'; y = '<\\/SCRIPT'"


class TestExtractRemote:
    @pytest.mark.asyncio
    async def test_embeds_every_kind(self, fake_site):
        fake_site.add(
            "https://example.com/page/style.css",
            "body { background: url(bg.png) }",
            "text/css; charset=utf-8",
        )
        fake_site.add("https://example.com/page/bg.png", b"BG", "image/png")
        fake_site.add(
            "https://example.com/page/app.js",
            "console.log('</script>')",
            "application/javascript",
        )
        fake_site.add("https://example.com/img/logo.png", PNG_BYTES, "image/png")
        doc = parse_html(
            "<html><head>"
            '<link rel="stylesheet" href="style.css" media="screen">'
            '<script src="app.js" defer></script>'
            "</head><body>"
            '<img src="/img/logo.png" alt="logo">'
            "</body></html>"
        )

        async with fake_site.client() as client:
            result = await extract_assets(doc, True, PAGE_URL, client=client)

        soup = result.soup
        assert result is doc
        assert result.errors == []
        assert soup.find("link") is None
        style = soup.find("style")
        assert style["media"] == "screen"
        assert f'url("data:image/png;base64,{_b64(b"BG")}")' in style.string
        script = soup.find("script")
        assert not script.has_attr("src")
        assert script.has_attr("defer")
        assert "<\\/script>" in script.string
        assert soup.find("img")["src"] == "data:image/png;base64," + _b64(PNG_BYTES)
        assert result.asset_count == 4
        assert result.embedded_count == 4
        assert result.base_url == "https://example.com/page/"

    @pytest.mark.asyncio
    async def test_failed_asset_keeps_original_reference(self, fake_site):
        fake_site.add("https://example.com/page/ok.png", b"OK", "image/png")
        doc = parse_html('<img src="missing.png"><img src="ok.png">')

        async with fake_site.client() as client:
            await extract_assets(doc, True, PAGE_URL, client=client)

        missing, ok = doc.soup.find_all("img")
        assert missing["src"] == "missing.png"
        assert ok["src"].startswith("data:image/png;base64,")
        assert len(doc.errors) == 1
        assert doc.errors[0].startswith("Failed to load https://example.com/page/missing.png")
        assert doc.assets[0].error is not None

    @pytest.mark.asyncio
    async def test_no_embed_rewrites_to_absolute_without_fetching(self, fake_site):
        doc = parse_html(
            '<link rel="stylesheet" href="css/a.css">'
            '<script src="//cdn.example.com/lib.js"></script>'
            '<img src="a.png" srcset="a.png 1x, b.png 2x">'
            '<div style="background: url(bg.png)"></div>'
        )

        async with fake_site.client() as client:
            await extract_assets(doc, False, PAGE_URL, client=client)

        soup = doc.soup
        assert fake_site.calls == []
        assert soup.find("link")["href"] == "https://example.com/page/css/a.css"
        assert soup.find("script")["src"] == "https://cdn.example.com/lib.js"
        img = soup.find("img")
        assert img["src"] == "https://example.com/page/a.png"
        assert img["srcset"] == "https://example.com/page/a.png 1x, https://example.com/page/b.png 2x"
        assert soup.find("div")["style"] == 'background: url("https://example.com/page/bg.png")'
        assert doc.embedded_count == 0

    @pytest.mark.asyncio
    async def test_identical_urls_fetched_once(self, fake_site):
        fake_site.add("https://example.com/page/a.png", b"A", "image/png")
        doc = parse_html('<img src="a.png"><img src="./a.png"><img src="/page/a.png">')

        async with fake_site.client() as client:
            await extract_assets(doc, True, PAGE_URL, client=client)

        assert fake_site.calls == ["https://example.com/page/a.png"]
        assert all(img["src"].startswith("data:") for img in doc.soup.find_all("img"))

    @pytest.mark.asyncio
    async def test_circular_imports_terminate(self, fake_site):
        fake_site.add("https://example.com/a.css", '@import "b.css";\na{color:red}', "text/css")
        fake_site.add("https://example.com/b.css", '@import "a.css";\nb{color:blue}', "text/css")
        doc = parse_html('<link rel="stylesheet" href="/a.css">')

        async with fake_site.client() as client:
            await extract_assets(doc, True, PAGE_URL, client=client)

        assert fake_site.calls.count("https://example.com/a.css") == 1
        style = doc.soup.find("style").string
        assert "a{color:red}" in style
        nested = _decode_data_uri(style)
        assert "b{color:blue}" in nested
        assert '@import url("https://example.com/a.css");' in nested
        assert doc.errors == []

    @pytest.mark.asyncio
    async def test_srcset_candidates_embedded(self, fake_site):
        fake_site.add("https://example.com/page/s.png", b"S", "image/png")
        fake_site.add("https://example.com/page/l.png", b"L", "image/png")
        doc = parse_html('<img srcset="s.png 1x, l.png 2x">')

        async with fake_site.client() as client:
            await extract_assets(doc, True, PAGE_URL, client=client)

        assert doc.soup.find("img")["srcset"] == (
            f"data:image/png;base64,{_b64(b'S')} 1x, data:image/png;base64,{_b64(b'L')} 2x"
        )

    @pytest.mark.asyncio
    async def test_inline_style_block_references(self, fake_site):
        fake_site.add("https://example.com/page/hero.jpg", b"JPG", "image/jpeg")
        doc = parse_html("<style>.hero { background: url('hero.jpg') }</style>")

        async with fake_site.client() as client:
            await extract_assets(doc, True, PAGE_URL, client=client)

        assert doc.soup.find("style").string == (
            f'.hero {{ background: url("data:image/jpeg;base64,{_b64(b"JPG")}") }}'
        )

    @pytest.mark.asyncio
    async def test_invalid_utf8_stylesheet_becomes_data_uri(self, fake_site):
        fake_site.add("https://example.com/page/bad.css", LATIN_CSS, "text/css")
        doc = parse_html('<link rel="stylesheet" href="bad.css">')

        async with fake_site.client() as client:
            await extract_assets(doc, True, PAGE_URL, client=client)

        link = doc.soup.find("link")
        assert link["href"] == "data:text/css;base64," + _b64(LATIN_CSS)
        assert doc.errors == []

    @pytest.mark.asyncio
    async def test_max_embed_size_keeps_absolute_url(self, fake_site):
        fake_site.add("https://example.com/page/big.png", b"0123456789", "image/png")
        doc = parse_html('<img src="big.png">')

        async with fake_site.client() as client:
            await extract_assets(
                doc, True, PAGE_URL, options=BundleOptions(max_embed_size=4), client=client
            )

        assert doc.soup.find("img")["src"] == "https://example.com/page/big.png"
        assert any("exceeds max_embed_size" in message for message in doc.errors)

    @pytest.mark.asyncio
    async def test_collects_page_links(self, fake_site):
        doc = parse_html(
            '<a href="/about#team">About</a>'
            '<a href="/about">Again</a>'
            '<a href="mailto:hi@example.com">Mail</a>'
            '<a href="#top">Top</a>'
            '<a href="https://other.com/x">Other</a>'
        )

        async with fake_site.client() as client:
            await extract_assets(doc, True, PAGE_URL, client=client)

        assert doc.links == ["https://example.com/about", "https://other.com/x"]

    @pytest.mark.asyncio
    async def test_malformed_asset_urls_are_reported(self, fake_site):
        fake_site.add("https://example.com/page/ok.png", b"OK", "image/png")
        doc = parse_html(
            '<img src="http://[broken/x.png"><img src="ok.png">'
            '<div style="background: url(http://[broken/bg.png)"></div><p>hi</p>'
        )

        async with fake_site.client() as client:
            await extract_assets(doc, True, PAGE_URL, client=client)

        broken, ok = doc.soup.find_all("img")
        assert broken["src"] == "http://[broken/x.png"
        assert ok["src"] == f"data:image/png;base64,{_b64(b'OK')}"
        assert doc.soup.find("div")["style"] == 'background: url("http://[broken/bg.png")'
        assert doc.soup.find("p").get_text() == "hi"
        assert len(doc.errors) == 2
        assert any(message.startswith("Failed to load http://[broken/x.png") for message in doc.errors)
        assert fake_site.calls == ["https://example.com/page/ok.png"]

    @pytest.mark.asyncio
    async def test_malformed_links_are_skipped(self, fake_site):
        doc = parse_html('<a href="http://[broken/">Broken</a><a href="/about">About</a>')

        async with fake_site.client() as client:
            await extract_assets(doc, True, PAGE_URL, client=client)

        assert doc.links == ["https://example.com/about"]
        assert doc.errors == []


class TestExtractLocal:
    @pytest.mark.asyncio
    async def test_nested_local_stylesheets(self, tmp_path: Path):
        (tmp_path / "css").mkdir()
        (tmp_path / "img").mkdir()
        (tmp_path / "img" / "dot.png").write_bytes(b"DOT")
        (tmp_path / "css" / "reset.css").write_text("* { margin: 0 }")
        (tmp_path / "css" / "main.css").write_text(
            '@import "reset.css";\nbody { background: url(../img/dot.png) }'
        )
        page = tmp_path / "index.html"
        page.write_text('<link rel="stylesheet" href="css/main.css"><img src="img/dot.png">')
        doc = parse_html(page.read_text())

        await extract_assets(doc, True, str(page))

        style = doc.soup.find("style").string
        assert _decode_data_uri(style) == "* { margin: 0 }"
        assert f'url("data:image/png;base64,{_b64(b"DOT")}")' in style
        assert doc.soup.find("img")["src"] == f"data:image/png;base64,{_b64(b'DOT')}"
        assert doc.errors == []

    @pytest.mark.asyncio
    async def test_missing_local_asset_is_reported(self, tmp_path: Path):
        page = tmp_path / "index.html"
        page.write_text('<script src="missing.js"></script>')
        doc = parse_html(page.read_text())

        await extract_assets(doc, True, str(page))

        assert doc.soup.find("script")["src"] == "missing.js"
        assert len(doc.errors) == 1
        assert "File not found" in doc.errors[0]
