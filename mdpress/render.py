from __future__ import annotations

import html
import re
from importlib import resources

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .content import slugify
from .models import (
    Blockquote,
    CodeBlock,
    Emphasis,
    Heading,
    InlineCode,
    LineBreak,
    Link,
    ListBlock,
    Paragraph,
    Rule,
    Strong,
    Text,
)

SAFE_URL_RE = re.compile(r"^(?:https?:|mailto:|#|/|\./|\.\./|[^:]*$)", re.IGNORECASE)
SLOT_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


class CodeHighlighter:
    def __init__(self, style: str = "default"):
        self.style = style
        self.formatter = HtmlFormatter(cssclass="codehilite", style=style)

    def __call__(self, language: str, literal: str) -> str:
        escaped = f"<pre><code>{html.escape(literal)}</code></pre>"
        if not language:
            return f'<div class="codehilite">{escaped}</div>'
        try:
            lexer = get_lexer_by_name(language, stripall=False)
        except ClassNotFound:
            return f'<div class="codehilite" data-lang="{html.escape(language)}">{escaped}</div>'
        return highlight(literal, lexer, self.formatter)

    def stylesheet(self) -> str:
        return self.formatter.get_style_defs(".codehilite")


def spans_to_html(spans) -> str:
    parts = []
    for span in spans:
        if isinstance(span, Text):
            parts.append(html.escape(span.text, quote=False))
        elif isinstance(span, Emphasis):
            parts.append(f"<em>{spans_to_html(span.spans)}</em>")
        elif isinstance(span, Strong):
            parts.append(f"<strong>{spans_to_html(span.spans)}</strong>")
        elif isinstance(span, InlineCode):
            parts.append(f"<code>{html.escape(span.text, quote=False)}</code>")
        elif isinstance(span, Link):
            # Script URLs are dropped; the text stays.
            url = span.url if SAFE_URL_RE.match(span.url) else "#"
            parts.append(f'<a href="{html.escape(url)}">{html.escape(span.text, quote=False)}</a>')
        elif isinstance(span, LineBreak):
            parts.append("<br>")
    return "".join(parts)


def blocks_to_html(blocks, highlighter: CodeHighlighter) -> str:
    parts = []
    for block in blocks:
        if isinstance(block, Heading):
            anchor = slugify(block.text)
            parts.append(f'<h{block.level} id="{anchor}">{html.escape(block.text, quote=False)}</h{block.level}>')
        elif isinstance(block, Paragraph):
            parts.append(f"<p>{spans_to_html(block.spans)}</p>")
        elif isinstance(block, CodeBlock):
            parts.append(highlighter(block.language, block.literal))
        elif isinstance(block, Blockquote):
            parts.append(f"<blockquote>{blocks_to_html(block.blocks, highlighter)}</blockquote>")
        elif isinstance(block, ListBlock):
            tag = "ol" if block.ordered else "ul"
            items = "".join(f"<li>{blocks_to_html(item.blocks, highlighter)}</li>" for item in block.items)
            parts.append(f"<{tag}>{items}</{tag}>")
        elif isinstance(block, Rule):
            parts.append("<hr>")
    return "\n".join(parts)


def render_template(template: str, **context: str) -> str:
    """Fill ``{{key}}`` slots in a single pass.

    Substituted text is never scanned again, so article content that happens
    to contain ``{{title}}`` stays as written. Unknown slots are left alone.
    """
    return SLOT_RE.sub(lambda match: context.get(match.group(1), match.group(0)), template)


def default_template() -> str:
    template = resources.files(__package__) / "templates" / "base.html"
    return template.read_text(encoding="utf-8")
