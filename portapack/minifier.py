"""Conservative CSS, JavaScript and HTML minification.

The minifiers only remove what is provably insignificant: comments and
redundant whitespace. String, template and regular expression literals are
copied verbatim, and JavaScript line breaks are kept so automatic semicolon
insertion behaves the same before and after. Every function is idempotent.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import Comment, NavigableString, PreformattedString

from .config import BundleOptions
from .document import StructuredDocument
from .errors import MinifyError

LOGGER = logging.getLogger(__name__)

# Text inside these elements is significant as written.
PRESERVE_WHITESPACE_TAGS = frozenset({"pre", "textarea", "script", "style"})

# Containers where whitespace-only text nodes never render.
STRUCTURAL_TAGS = frozenset(
    {
        "[document]",
        "html",
        "head",
        "table",
        "thead",
        "tbody",
        "tfoot",
        "tr",
        "colgroup",
        "ul",
        "ol",
        "dl",
        "select",
        "optgroup",
        "datalist",
        "picture",
        "video",
        "audio",
    }
)

JS_SCRIPT_TYPES = frozenset(
    {
        "",
        "text/javascript",
        "application/javascript",
        "application/x-javascript",
        "text/ecmascript",
        "module",
    }
)

_CSS_SPACE_RE = re.compile(r"\s+")
_CSS_PUNCT_RE = re.compile(r"\s*([{};,>])\s*")
_CSS_COLON_RE = re.compile(r":\s+")
_CSS_SEMICOLONS_RE = re.compile(r";{2,}")

_JS_BLANKS_RE = re.compile(r"[ \t\r\f\v]+")
_JS_NEWLINES_RE = re.compile(r" ?\n\s*")
_JS_PUNCT_RE = re.compile(r" ?([{}()\[\];,]) ?")
_JS_NEWLINE_AFTER_RE = re.compile(r"([{;,])\n")
_JS_NEWLINE_BEFORE_RE = re.compile(r"\n(\})")
_JS_TRAILING_WORD_RE = re.compile(r"[A-Za-z_$][\w$]*$")

# A "/" after one of these starts a regular expression literal, not a division.
_REGEX_PRECEDERS = frozenset("(,=:[!&|?{};+-*%<>~^")
_REGEX_KEYWORDS = frozenset(
    {
        "return",
        "typeof",
        "instanceof",
        "in",
        "of",
        "new",
        "delete",
        "void",
        "throw",
        "case",
        "do",
        "else",
        "yield",
        "await",
    }
)

_CONDITIONAL_COMMENT_RE = re.compile(r"^\s*\[if\b|<!\[endif\]\s*$", re.IGNORECASE)


def minify_css(css: str) -> str:
    """Strip comments and redundant whitespace from a stylesheet.

    Raises:
        MinifyError: On an unterminated comment or string.
    """
    pieces: List[str] = []
    for is_literal, text in _scan_css(css):
        if is_literal:
            pieces.append(text)
            continue
        text = _CSS_SPACE_RE.sub(" ", text)
        text = _CSS_PUNCT_RE.sub(r"\1", text)
        text = _CSS_COLON_RE.sub(":", text)
        text = _CSS_SEMICOLONS_RE.sub(";", text)
        pieces.append(text.replace(";}", "}"))
    return "".join(pieces).strip()


def minify_js(code: str) -> str:
    """Remove comments and collapse whitespace in JavaScript source.

    Raises:
        MinifyError: On an unterminated string, template, regular expression
            literal or block comment.
    """
    pieces: List[str] = []
    for is_literal, text in _scan_js(code):
        if is_literal:
            pieces.append(text)
            continue
        text = _JS_BLANKS_RE.sub(" ", text)
        text = _JS_NEWLINES_RE.sub("\n", text)
        text = _JS_PUNCT_RE.sub(r"\1", text)
        text = _JS_NEWLINE_AFTER_RE.sub(r"\1", text)
        text = _JS_NEWLINE_BEFORE_RE.sub(r"\1", text)
        pieces.append(text)
    return "".join(pieces).strip()


def minify_html_tree(soup: BeautifulSoup) -> BeautifulSoup:
    """Drop comments and collapse insignificant whitespace in place."""
    for node in [n for n in soup.descendants if isinstance(n, NavigableString)]:
        if isinstance(node, Comment):
            if not _CONDITIONAL_COMMENT_RE.search(str(node)):
                node.extract()
            continue
        if isinstance(node, PreformattedString):
            continue
        if any(parent.name in PRESERVE_WHITESPACE_TAGS for parent in node.parents):
            continue
        text = str(node)
        collapsed = _CSS_SPACE_RE.sub(" ", text)
        parent = node.parent
        if not collapsed.strip() and (parent is None or parent.name in STRUCTURAL_TAGS):
            node.extract()
        elif collapsed != text:
            node.replace_with(NavigableString(collapsed))
    return soup


def minify_html(markup: str) -> str:
    """Minify a standalone HTML string."""
    soup = BeautifulSoup(markup, "html.parser")
    return str(minify_html_tree(soup))


def minify_document(
    doc: StructuredDocument,
    options: Optional[BundleOptions] = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> StructuredDocument:
    """Apply the enabled minifiers to a document in place.

    A failure on one stylesheet or script leaves that block untouched and is
    recorded in ``doc.errors``; the rest of the document is still minified.
    """
    opts = options or BundleOptions()
    log = logger or LOGGER
    soup = doc.soup
    css_count = js_count = 0

    if opts.minify_css:
        for style in soup.find_all("style"):
            if style.string is None:
                continue
            minified = _safely(doc, log, minify_css, style.string, "CSS", "<style> block")
            if minified is not None:
                style.string = minified
                css_count += 1
        for element in soup.find_all(style=True):
            minified = _safely(doc, log, minify_css, element["style"], "CSS", f"<{element.name} style>")
            if minified is not None:
                element["style"] = minified

    if opts.minify_js:
        for script in soup.find_all("script"):
            if script.has_attr("src") or script.string is None:
                continue
            if str(script.get("type", "")).strip().lower() not in JS_SCRIPT_TYPES:
                continue
            minified = _safely(doc, log, minify_js, script.string, "JS", "inline <script>")
            if minified is not None:
                script.string = minified
                js_count += 1

    if opts.minify_html:
        minify_html_tree(soup)

    log.debug(
        "Minified %d stylesheet(s), %d script(s), html=%s",
        css_count,
        js_count,
        opts.minify_html,
    )
    return doc


def _safely(doc, log, minify, source: str, label: str, where: str) -> Optional[str]:
    try:
        return minify(str(source))
    except MinifyError as exc:
        message = f"{label} minification skipped for {where}: {exc}"
    except Exception as exc:
        message = f"{label} minification failed for {where}: {exc}"
    log.warning("%s", message)
    doc.add_error(message)
    return None


def _scan_css(css: str) -> List[Tuple[bool, str]]:
    """Split CSS into (is_string_literal, text) pieces with comments removed."""
    segments: List[Tuple[bool, str]] = []
    buf: List[str] = []
    i, n = 0, len(css)
    while i < n:
        ch = css[i]
        if ch == "/" and css.startswith("*", i + 1):
            end = css.find("*/", i + 2)
            if end == -1:
                raise MinifyError("Unterminated comment in CSS")
            buf.append(" ")
            i = end + 2
            continue
        if ch in ("'", '"'):
            end = _end_of_quoted(css, i, "CSS")
            segments.append((False, "".join(buf)))
            buf = []
            segments.append((True, css[i:end]))
            i = end
            continue
        buf.append(ch)
        i += 1
    segments.append((False, "".join(buf)))
    return segments


def _scan_js(code: str) -> List[Tuple[bool, str]]:
    """Split JavaScript into (is_literal, text) pieces with comments removed."""
    segments: List[Tuple[bool, str]] = []
    buf: List[str] = []
    tail = ""
    i, n = 0, len(code)

    def emit_literal(text: str) -> None:
        nonlocal buf, tail
        segments.append((False, "".join(buf)))
        buf = []
        segments.append((True, text))
        tail = text[-32:]

    while i < n:
        ch = code[i]
        nxt = code[i + 1] if i + 1 < n else ""
        if ch in ("'", '"'):
            end = _end_of_quoted(code, i, "JavaScript")
            emit_literal(code[i:end])
            i = end
        elif ch == "`":
            end = _end_of_template(code, i)
            emit_literal(code[i:end])
            i = end
        elif ch == "/" and nxt == "/":
            end = code.find("\n", i)
            i = n if end == -1 else end
        elif ch == "/" and nxt == "*":
            end = code.find("*/", i + 2)
            if end == -1:
                raise MinifyError("Unterminated comment in JavaScript")
            buf.append("\n" if "\n" in code[i:end] else " ")
            i = end + 2
        elif ch == "/" and _regex_allowed(tail + "".join(buf[-32:])):
            end = _end_of_regex(code, i)
            emit_literal(code[i:end])
            i = end
        else:
            buf.append(ch)
            i += 1
    segments.append((False, "".join(buf)))
    return segments


def _regex_allowed(before: str) -> bool:
    stripped = before.rstrip()
    if not stripped:
        return True
    if stripped[-1] in _REGEX_PRECEDERS:
        return True
    word = _JS_TRAILING_WORD_RE.search(stripped)
    return bool(word) and word.group() in _REGEX_KEYWORDS


def _end_of_quoted(source: str, start: int, language: str) -> int:
    quote = source[start]
    i, n = start + 1, len(source)
    while i < n:
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n":
            break
        i += 1
    raise MinifyError(f"Unterminated string literal in {language} at offset {start}")


def _end_of_template(source: str, start: int) -> int:
    i, n = start + 1, len(source)
    while i < n:
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "`":
            return i + 1
        if ch == "$" and source.startswith("{", i + 1):
            i = _end_of_template_expression(source, i + 2)
            continue
        i += 1
    raise MinifyError(f"Unterminated template literal in JavaScript at offset {start}")


def _end_of_template_expression(source: str, start: int) -> int:
    depth = 1
    i, n = start, len(source)
    while i < n:
        ch = source[i]
        if ch in ("'", '"'):
            i = _end_of_quoted(source, i, "JavaScript")
            continue
        if ch == "`":
            i = _end_of_template(source, i)
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    raise MinifyError(f"Unterminated template expression in JavaScript at offset {start}")


def _end_of_regex(source: str, start: int) -> int:
    i, n = start + 1, len(source)
    in_class = False
    while i < n:
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "\n":
            break
        if in_class:
            if ch == "]":
                in_class = False
        elif ch == "[":
            in_class = True
        elif ch == "/":
            i += 1
            while i < n and (source[i].isalnum() or source[i] in "_$"):
                i += 1
            return i
        i += 1
    raise MinifyError(f"Unterminated regular expression literal in JavaScript at offset {start}")
