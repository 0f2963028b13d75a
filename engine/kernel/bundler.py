"""
Content bundler: raw source → self-contained document for the render surface.

Accepts a full HTML document, an HTML fragment, or a React/JSX component and
produces one document that can be written into the sandboxed surface. Every
bundled document carries exactly one injected block (reset stylesheet, error
trap, interaction capture) marked with CAPTURE_SENTINEL, so bundling an
already-bundled document does not inject twice.

JSX support is a lossy text extraction, not a compiler.
"""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Iterable

from engine.kernel.surface_assets import capture_script
from engine.kernel.types import CAPTURE_SENTINEL, BundledDocument, PageFile, SourceKind

logger = logging.getLogger(__name__)

_DOCUMENT_RE = re.compile(r"^\s*(<!--.*?-->\s*)*<(!doctype\s+html|html[\s>])", re.I | re.S)
_COMPONENT_RE = re.compile(
    r"(\bimport\s+[\w{},\s*]+\s+from\s+['\"]|\bexport\s+default\b|\buse(State|Effect|Ref|Memo)\s*\("
    r"|\bclassName\s*=|\breturn\s*\(\s*<|=>\s*\(\s*<|\bfunction\s+[A-Z]\w*\s*\()"
)
_STYLE_RE = re.compile(r"<style\b[^>]*>(.*?)</style\s*>", re.I | re.S)
_SCRIPT_RE = re.compile(r"<script\b([^>]*)>(.*?)</script\s*>", re.I | re.S)
_STYLES_TEMPLATE_RE = re.compile(r"\bconst\s+styles\s*=\s*`([^`]*)`", re.S)
_HEAD_CLOSE_RE = re.compile(r"</head\s*>", re.I)
_BODY_OPEN_RE = re.compile(r"<body\b[^>]*>", re.I)
_HTML_OPEN_RE = re.compile(r"<html\b[^>]*>", re.I)

_PAGE_MARKER_RE = re.compile(r'<!--\s*PAGE:\s*(/?[\w\-./]+?\.html)\s*(?:label="([^"]*)")?\s*-->', re.I)
_HREF_PAGE_RE = re.compile(r'href\s*=\s*["\'](?!https?:|//|mailto:|tel:|#)([^"\'#?]+\.html)', re.I)
_UT_PATH_RE = re.compile(r'data-ut-path\s*=\s*["\']([^"\']+)["\']', re.I)
_CAPTURE_TAG_RE = re.compile(r"<script\b[^>]*\bdata-preview-capture\s*=\s*[\"']v1[\"']", re.I)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.S)

_VOID_TAGS = {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "source", "track", "wbr"}

PLACEHOLDER_TITLE = "Preview unavailable"


# ---------------------------------------------------------------------------
# Kind detection
# ---------------------------------------------------------------------------


def detect_kind(source: str) -> SourceKind:
    """Classify raw source as document, fragment, component, or empty."""
    stripped = source.strip()
    if not stripped:
        return "empty"
    if _DOCUMENT_RE.match(stripped):
        return "document"
    if stripped.startswith("<"):
        return "fragment"
    if _COMPONENT_RE.search(stripped):
        return "component"
    return "fragment"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def bundle(source: str, files: Iterable[str] | None = None) -> BundledDocument:
    """
    Bundle raw source into a self-contained document.

    Args:
        source: Full HTML document, HTML fragment, or JSX component source
        files: Names of available source files, listed on the placeholder
            document when component extraction fails

    Returns:
        BundledDocument whose markup carries the capture block exactly once
    """
    kind = detect_kind(source)

    if kind == "empty":
        markup = _wrap_document(_EMPTY_STATE_BODY, title="Preview")
        return BundledDocument(markup=inject_capture(markup), kind="empty")

    if kind == "document":
        style, script = _extract_assets(source)
        return BundledDocument(markup=inject_capture(source), style=style, script=script, kind="document")

    if kind == "fragment":
        style, script = _extract_assets(source)
        markup = _wrap_document(source)
        return BundledDocument(markup=inject_capture(markup), style=style, script=script, kind="fragment")

    extracted = extract_jsx(source)
    css = _styles_template(source)
    if extracted is None:
        logger.warning("bundle: component extraction failed, rendering placeholder")
        markup = _wrap_document(_placeholder_body(files), title=PLACEHOLDER_TITLE)
        return BundledDocument(markup=inject_capture(markup), style=css, kind="component", extracted=False)

    inline_style, _ = _extract_assets(extracted)
    style = "\n".join(s for s in (css, inline_style) if s)
    markup = _wrap_document(extracted, head_style=css)
    return BundledDocument(markup=inject_capture(markup), style=style, kind="component")


def has_capture(markup: str) -> bool:
    """True when markup already carries the capture block as a script tag (comments ignored)."""
    return _CAPTURE_TAG_RE.search(_COMMENT_RE.sub("", markup)) is not None


def inject_capture(markup: str) -> str:
    """Insert the capture block unless a sentinel-marked script is already present."""
    if has_capture(markup):
        return markup

    block = f"<script {CAPTURE_SENTINEL}>\n{capture_script()}\n</script>"

    match = _HEAD_CLOSE_RE.search(markup)
    if match:
        return markup[: match.start()] + block + "\n" + markup[match.start() :]
    match = _BODY_OPEN_RE.search(markup) or _HTML_OPEN_RE.search(markup)
    if match:
        return markup[: match.end()] + "\n" + block + markup[match.end() :]
    return block + "\n" + markup


# ---------------------------------------------------------------------------
# Asset extraction
# ---------------------------------------------------------------------------


def _extract_assets(source: str) -> tuple[str, str]:
    styles = [s.strip() for s in _STYLE_RE.findall(source) if s.strip()]
    scripts = []
    for attrs, body in _SCRIPT_RE.findall(source):
        if CAPTURE_SENTINEL in attrs or re.search(r"\bsrc\s*=", attrs, re.I):
            continue
        if body.strip():
            scripts.append(body.strip())
    return "\n".join(styles), "\n".join(scripts)


def _styles_template(source: str) -> str:
    match = _STYLES_TEMPLATE_RE.search(source)
    return match.group(1).strip() if match else ""


# ---------------------------------------------------------------------------
# Document shells
# ---------------------------------------------------------------------------

_EMPTY_STATE_BODY = (
    '<main style="min-height:100vh;display:flex;align-items:center;justify-content:center;'
    'color:#64748b;font-size:0.95rem;">Nothing to preview yet</main>'
)


def _wrap_document(body: str, title: str = "Preview", head_style: str = "") -> str:
    style_block = f"<style>\n{head_style}\n</style>\n" if head_style else ""
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '<meta charset="utf-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"<title>{html.escape(title)}</title>\n"
        f"{style_block}"
        "</head>\n"
        f"<body>\n{body}\n</body>\n"
        "</html>\n"
    )


def _placeholder_body(files: Iterable[str] | None) -> str:
    names = sorted(set(files or []))
    items = "".join(f"<li><code>{html.escape(name)}</code></li>" for name in names)
    listing = f"<ul>{items}</ul>" if items else "<p>No source files available.</p>"
    return (
        '<main style="max-width:640px;margin:4rem auto;padding:0 1.5rem;color:#334155;">'
        f"<h1>{PLACEHOLDER_TITLE}</h1>"
        "<p>This component could not be rendered as a static preview.</p>"
        f"<h2>Source files</h2>{listing}"
        "</main>"
    )


# ---------------------------------------------------------------------------
# JSX extraction (lossy)
# ---------------------------------------------------------------------------


def extract_jsx(source: str) -> str | None:
    """
    Best-effort JSX → HTML extraction.

    Looks for a ``return (...)`` block, a ``return <...>`` expression, an arrow
    function's implicit return, or the first tag-balanced region. Event
    handlers, refs and style objects are dropped; simple literal expressions
    are resolved; custom components become spans.

    Returns:
        HTML string, or None if no markup could be found
    """
    cleaned = re.sub(r"\{\s*/\*.*?\*/\s*\}", "", source, flags=re.S)
    cleaned = _strip_brace_attrs(cleaned, r"on[A-Z]\w*|ref|style|key")

    region = None
    for match in re.finditer(r"\breturn\s*\(|=>\s*\(", cleaned):
        open_idx = cleaned.rfind("(", match.start(), match.end())
        candidate = _balanced(cleaned, open_idx, "(", ")")
        if candidate is not None and candidate[1:-1].strip().startswith("<"):
            region = candidate[1:-1]
            break
    if region is None:
        match = re.search(r"\breturn\s*(?=<)", cleaned)
        start = match.end() if match else cleaned.find("<")
        if start == -1:
            return None
        region = _tag_region(cleaned, start)
    if region is None:
        return None

    converted = _jsx_to_html(region).strip()
    if "<" not in converted:
        return None
    return converted


def _balanced(text: str, start: int, open_ch: str, close_ch: str) -> str | None:
    if start < 0 or start >= len(text) or text[start] != open_ch:
        return None
    depth = 0
    quote: str | None = None
    i = start
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in "\"'`" and text[i - 1] in "=({[,: \n\t":
            quote = ch
        elif ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
        i += 1
    return None


_TAG_RE = re.compile(r"<(/?)([A-Za-z][\w.:-]*)?((?:[^>\"'{}]|\"[^\"]*\"|'[^']*'|\{[^{}]*\})*?)(/?)>", re.S)


def _tag_region(text: str, start: int) -> str | None:
    depth = 0
    for match in _TAG_RE.finditer(text, start):
        closing, name, _attrs, self_closing = match.groups()
        name = name or ""
        if self_closing or name.lower() in _VOID_TAGS:
            if depth == 0:
                return text[start : match.end()]
            continue
        depth += -1 if closing else 1
        if depth == 0:
            return text[start : match.end()]
    return None


def _strip_brace_attrs(text: str, names: str) -> str:
    pattern = re.compile(rf"\s+(?:{names})\s*=\s*\{{")
    out: list[str] = []
    pos = 0
    for match in pattern.finditer(text):
        if match.start() < pos:
            continue
        region = _balanced(text, match.end() - 1, "{", "}")
        if region is None:
            continue
        out.append(text[pos : match.start()])
        pos = match.end() - 1 + len(region)
    out.append(text[pos:])
    return "".join(out)


def _jsx_to_html(jsx: str) -> str:
    text = re.sub(r"\bclassName\s*=", "class=", jsx)
    text = re.sub(r"\bhtmlFor\s*=", "for=", text)

    # attr={"literal"} / attr={'literal'} / attr={`literal`} → attr="literal"
    text = re.sub(r"=\{\s*([\"'`])([^\"'`{}]*)\1\s*\}", lambda m: f'="{html.escape(m.group(2), quote=True)}"', text)
    # attr={42} / attr={true}
    text = re.sub(r"=\{\s*(-?\d+(?:\.\d+)?|true|false)\s*\}", r'="\1"', text)
    # remaining attr={expr} → dropped
    text = _strip_brace_attrs(text, r"[\w:-]+")

    # {"text"} children → text; {42} → 42
    text = re.sub(r"\{\s*([\"'`])([^\"'`{}]*)\1\s*\}", lambda m: html.escape(m.group(2), quote=False), text)
    text = re.sub(r"\{\s*(-?\d+(?:\.\d+)?)\s*\}", r"\1", text)
    # any other expression child is dropped
    previous = None
    while previous != text:
        previous = text
        text = re.sub(r"\{[^{}]*\}", "", text)

    # fragments
    text = re.sub(r"<\s*/?\s*>", "", text)

    # custom components → spans
    text = re.sub(r"<([A-Z][\w.]*)\b([^>]*?)\s*/>", r'<span data-component="\1"\2></span>', text)
    text = re.sub(r"<([A-Z][\w.]*)\b([^>]*)>", r'<span data-component="\1"\2>', text)
    text = re.sub(r"</[A-Z][\w.]*\s*>", "</span>", text)

    # self-closing non-void tags
    def _close(match: re.Match[str]) -> str:
        tag, attrs = match.group(1), match.group(2)
        if tag.lower() in _VOID_TAGS:
            return f"<{tag}{attrs}>"
        return f"<{tag}{attrs}></{tag}>"

    text = re.sub(r"<([a-z][\w-]*)\b([^<>]*?)\s*/>", _close, text)
    return text


# ---------------------------------------------------------------------------
# Multi-page output
# ---------------------------------------------------------------------------


def _label_for(file_name: str) -> str:
    stem = file_name.rsplit("/", 1)[-1].removesuffix(".html")
    if stem == "index":
        return "Home"
    return " ".join(part.capitalize() for part in re.split(r"[-_]+", stem) if part)


def split_pages(raw: str) -> list[PageFile]:
    """
    Split multi-page generator output into pages.

    Pages are delimited by ``<!-- PAGE: /path.html label="Label" -->``
    markers. Output without markers is a single main page at /index.html.
    """
    markers = list(_PAGE_MARKER_RE.finditer(raw))
    if not markers:
        content = raw.strip()
        if not content:
            return []
        return [PageFile("/index.html", "index.html", content, "Home", is_main=True)]

    pages: list[PageFile] = []
    for i, match in enumerate(markers):
        end = markers[i + 1].start() if i + 1 < len(markers) else len(raw)
        content = raw[match.end() : end].strip()
        if not content:
            continue
        path = "/" + match.group(1).lstrip("/")
        file_name = path.rsplit("/", 1)[-1]
        label = (match.group(2) or "").strip() or _label_for(file_name)
        pages.append(PageFile(path, file_name, content, label, is_main=path == "/index.html"))

    if pages and not any(p.is_main for p in pages):
        pages[0].is_main = True
    return pages


def suggest_missing_pages(markup: str, existing: Iterable[str] = ()) -> list[str]:
    """
    List internal page paths referenced by markup that do not exist yet.

    Looks at relative ``.html`` hrefs and ``data-ut-path`` attributes.
    Results keep first-appearance order.
    """
    known = {"/" + p.lstrip("/") for p in existing}
    found: list[str] = []
    candidates = [(m.start(), m.group(1)) for m in _HREF_PAGE_RE.finditer(markup)]
    candidates += [(m.start(), m.group(1)) for m in _UT_PATH_RE.finditer(markup)]
    for _, target in sorted(candidates):
        path = "/" + target.strip().lstrip("./").lstrip("/")
        if path == "/" or path in known or path in found:
            continue
        found.append(path)
    return found
