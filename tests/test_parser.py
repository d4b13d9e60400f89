"""Tests for portapack.parser module."""

from __future__ import annotations

from pathlib import Path

import pytest

from portapack.errors import ParseError, ReadError
from portapack.parser import format_srcset, parse_html, parse_srcset, read_document

PAGE = """<!DOCTYPE html>
<html>
<head>
  <link rel="stylesheet" href="css/main.css" media="screen">
  <link rel="shortcut icon" href="favicon.ico">
  <link rel="apple-touch-icon" href="touch.png">
  <link rel="manifest" href="site.webmanifest">
  <link rel="preload" as="font" href="fonts/inter.woff2">
  <link rel="preload" as="image" href="hero.jpg">
  <link rel="canonical" href="https://example.com/">
  <script src="js/app.js"></script>
  <script>inline()</script>
</head>
<body>
  <img src="logo.png" srcset="logo-1x.png 1x, logo-2x.png 2x">
  <img src="data:image/gif;base64,R0lGOD">
  <img src="">
  <input type="image" src="button.png">
  <picture><source srcset="wide.webp 1200w"><img src="narrow.jpg"></picture>
  <video src="movie.mp4" poster="poster.jpg"><source src="movie.webm"></video>
  <audio><source src="song.ogg"></audio>
  <a href="other.html">Other</a>
</body>
</html>
"""


class TestParseHtml:
    def test_discovers_references_in_order(self):
        doc = parse_html(PAGE)
        found = [(ref.kind, ref.original_url) for ref in doc.assets]
        assert found == [
            ("style", "css/main.css"),
            ("image", "favicon.ico"),
            ("image", "touch.png"),
            ("other", "site.webmanifest"),
            ("font", "fonts/inter.woff2"),
            ("script", "js/app.js"),
            ("image", "logo.png"),
            ("image", "logo-1x.png"),
            ("image", "logo-2x.png"),
            ("image", "button.png"),
            ("image", "wide.webp"),
            ("image", "narrow.jpg"),
            ("media", "movie.mp4"),
            ("image", "poster.jpg"),
            ("media", "movie.webm"),
            ("media", "song.ogg"),
        ]

    def test_records_reference_site(self):
        doc = parse_html(PAGE)
        srcset_refs = [ref for ref in doc.assets if ref.attribute == "srcset"]
        assert [ref.candidate for ref in srcset_refs] == [0, 1, 0]
        assert srcset_refs[0].element.name == "img"
        stylesheet = doc.assets[0]
        assert stylesheet.element.name == "link"
        assert stylesheet.attribute == "href"

    def test_accepts_bytes(self):
        doc = parse_html('<meta charset="utf-8"><img src="café.png">'.encode("utf-8"))
        assert doc.assets[0].original_url == "café.png"

    def test_tolerates_broken_markup(self):
        doc = parse_html("<div><img src=a.png><p>unclosed")
        assert [ref.original_url for ref in doc.assets] == ["a.png"]

    def test_empty_document(self):
        doc = parse_html("")
        assert doc.assets == []
        assert doc.errors == []

    def test_rejects_non_text(self):
        with pytest.raises(ParseError):
            parse_html(None)  # type: ignore[arg-type]
        with pytest.raises(ParseError):
            parse_html(42)  # type: ignore[arg-type]


class TestSrcset:
    def test_parse(self):
        assert parse_srcset("a.png 1x, b.png 2x") == [("a.png", "1x"), ("b.png", "2x")]

    def test_parse_without_descriptors(self):
        assert parse_srcset("a.png, b.png") == [("a.png", ""), ("b.png", "")]

    def test_parse_data_uri(self):
        assert parse_srcset("data:image/png;base64,AAAA 1x, b.png 2x") == [
            ("data:image/png;base64,AAAA", "1x"),
            ("b.png", "2x"),
        ]

    def test_format(self):
        assert format_srcset([("a.png", "1x"), ("b.png", "")]) == "a.png 1x, b.png"


class TestReadDocument:
    @pytest.mark.asyncio
    async def test_reads_utf8(self, tmp_path: Path):
        page = tmp_path / "index.html"
        page.write_bytes("<p>héllo</p>".encode("utf-8"))
        assert await read_document(str(page)) == "<p>héllo</p>"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ReadError) as excinfo:
            await read_document(str(tmp_path / "missing.html"))
        assert excinfo.value.path.endswith("missing.html")
