"""Markdown body -> ContentBlock tree.

Python-Markdown does the parsing. A small extension pulls top-level fenced
code out before block parsing (so nothing inside a fence is ever
interpreted), finds fences nested in list items and blockquotes with a block
processor, and walks the ElementTree that Python-Markdown builds, turning it
into the immutable block types from :mod:`mdpress.models`.
"""

from __future__ import annotations

import html as html_lib
import re
import xml.etree.ElementTree as etree

import markdown
from markdown import util
from markdown.blockprocessors import BlockProcessor
from markdown.extensions import Extension
from markdown.preprocessors import Preprocessor
from markdown.treeprocessors import Treeprocessor

from .content import normalize_list_spacing
from .errors import RenderDepthExceededError
from .models import (
    Blockquote,
    CodeBlock,
    Emphasis,
    Heading,
    InlineCode,
    LineBreak,
    Link,
    ListBlock,
    ListItem,
    Paragraph,
    Rule,
    Strong,
    Text,
)

DEFAULT_MAX_DEPTH = 16
FENCE_OPEN_RE = re.compile(r"^(?P<indent>[ ]{0,3})(?P<fence>`{3,}|~{3,})[ \t]*(?P<info>.*?)[ \t]*$", re.M)
FENCE_CLOSE_RE = re.compile(r"^[ ]{0,3}(?P<fence>`{3,}|~{3,})[ \t]*$")
NESTED_FENCE_RE = re.compile(r"^(?P<lead>(?:[ ]*(?:[*+-]|[0-9]+\.)[ ]+)+|[ ]{4,})(?P<fence>`{3,}|~{3,})(?P<info>.*)$")
NESTED_CLOSE_RE = re.compile(r"^[ ]*(?P<fence>`{3,}|~{3,})[ \t]*$")
FENCE_PLACEHOLDER = util.STX + "mdpressfence:%d" + util.ETX
FENCE_PLACEHOLDER_RE = re.compile(util.STX + r"mdpressfence:([0-9]+)" + util.ETX)
# Stands in for a blank line inside a nested fence so the fence stays one block.
FENCE_BLANK = util.STX + "mdpressblank" + util.ETX
FENCE_ATTR = "data-fence"
ESCAPED_CHAR_RE = re.compile(util.STX + r"([0-9]+)" + util.ETX)
QUOTE_PREFIX_RE = re.compile(r"^[ ]{0,3}(?P<prefix>>[> \t]*)")
QUOTE_MARKERS_RE = re.compile(r"^[ ]{0,3}(?:>[ ]?)+")
ENTITY_RE = re.compile(r"&(?:#[0-9]+|#x[0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);")
MD_ESCAPE_RE = re.compile(r"([\\`*_{}\[\]()>#+\-.!])")
HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
BLOCK_TAGS = HEADING_TAGS | {"p", "pre", "blockquote", "ul", "ol", "hr", "div", "table", "dl"}


def _language(info: str) -> str:
    if not info:
        return ""
    word = info.split()[0]
    return word.strip("{}").lstrip(".").lower()


def _quote_depth(line: str) -> int:
    match = QUOTE_PREFIX_RE.match(line)
    if not match:
        return 0
    return match.group("prefix").count(">")


def _opens(regex: re.Pattern, line: str):
    match = regex.match(line)
    # A backtick fence whose info string holds a backtick is inline code.
    if match and match.group("fence")[0] == "`" and "`" in match.group("info"):
        return None
    return match


def _closes(regex: re.Pattern, line: str, fence: str) -> bool:
    match = regex.match(line)
    return bool(match) and match.group("fence")[0] == fence[0] and len(match.group("fence")) >= len(fence)


def _dedent(line: str, indent: int) -> str:
    if not indent:
        return line
    return re.sub(rf"^[ ]{{0,{indent}}}", "", line)


def _split_quote(line: str) -> tuple[str, str]:
    match = QUOTE_MARKERS_RE.match(line)
    if not match:
        return "", line
    return match.group(0), line[match.end() :]


class FencePreprocessor(Preprocessor):
    """Replace top-level fenced code blocks with placeholders.

    Fences inside list items or blockquotes are left to
    NestedFenceProcessor; their blank lines are marked so block parsing does
    not split them. Also enforces the blockquote depth limit on the remaining
    lines, so a pathological ``>>>>>...`` never reaches the block parser.
    """

    def __init__(self, md, fences: list, max_depth: int):
        super().__init__(md)
        self.fences = fences
        self.max_depth = max_depth

    def run(self, lines):
        out = []
        i = 0
        while i < len(lines):
            line = lines[i]
            match = _opens(FENCE_OPEN_RE, line)
            if match:
                i = self.extract(lines, i, match, out)
                continue
            depth = _quote_depth(line)
            if depth > self.max_depth:
                raise RenderDepthExceededError(depth, self.max_depth)
            i = self.mark_nested(lines, i, out)
        return out

    def extract(self, lines: list, start: int, match: re.Match, out: list) -> int:
        fence = match.group("fence")
        indent = len(match.group("indent"))
        body = []
        j = start + 1
        while j < len(lines):
            if _closes(FENCE_CLOSE_RE, lines[j], fence):
                break
            body.append(_dedent(lines[j], indent))
            j += 1
        # An unterminated fence runs to the end of the document.
        self.fences.append(CodeBlock(_language(match.group("info")), "\n".join(body)))
        out.extend(["", FENCE_PLACEHOLDER % (len(self.fences) - 1), ""])
        return j + 1

    def mark_nested(self, lines: list, start: int, out: list) -> int:
        prefix, rest = _split_quote(lines[start])
        match = _opens(NESTED_FENCE_RE, rest)
        if match:
            lead = len(match.group("lead"))
            indent = (lead + 3) // 4 * 4
        else:
            match = _opens(FENCE_OPEN_RE, rest) if prefix else None
            indent = 0
        if match is None:
            out.append(lines[start])
            return start + 1

        fence = match.group("fence")
        quote = "> " * prefix.count(">")
        for end in range(start + 1, len(lines)):
            if _closes(NESTED_CLOSE_RE, _split_quote(lines[end])[1], fence):
                break
        else:
            out.append(lines[start])
            return start + 1
        out.append(lines[start])
        for line in lines[start + 1 : end + 1]:
            if _split_quote(line)[1].strip():
                out.append(line)
            else:
                out.append(quote + " " * indent + FENCE_BLANK)
        return end + 1


class NestedFenceProcessor(BlockProcessor):
    """Fenced code inside list items and blockquotes.

    Python-Markdown hands the dedented content of every list item and quote
    back to the block parser, which is where these fences turn up.
    """

    def __init__(self, parser, fences: list):
        super().__init__(parser)
        self.fences = fences

    def find(self, block: str):
        for match in FENCE_OPEN_RE.finditer(block):
            if _opens(FENCE_OPEN_RE, match.group(0)):
                return match
        return None

    def test(self, parent, block):
        return self.find(block) is not None

    def run(self, parent, blocks):
        block = blocks.pop(0)
        match = self.find(block)
        before = block[: match.start()].rstrip("\n")
        if before:
            self.parser.parseBlocks(parent, [before])

        fence = match.group("fence")
        indent = len(match.group("indent"))
        lines = block[match.end() :].split("\n")[1:]
        body: list = []
        rest = None
        while rest is None:
            for i, line in enumerate(lines):
                if _closes(FENCE_CLOSE_RE, line, fence):
                    rest = "\n".join(lines[i + 1 :])
                    break
                body.append(_dedent(line, indent))
            else:
                if not blocks:
                    break
                body.append("")
                lines = blocks.pop(0).split("\n")

        literal = "\n".join(body).replace(FENCE_BLANK, "")
        self.fences.append(CodeBlock(_language(match.group("info")), literal))
        pre = etree.SubElement(parent, "pre")
        pre.set(FENCE_ATTR, str(len(self.fences) - 1))
        if rest:
            blocks.insert(0, rest)


class BlockBuilder:
    """Walks a Python-Markdown element tree into ContentBlocks."""

    def __init__(self, md, fences: list, max_depth: int):
        self.md = md
        self.fences = fences
        self.max_depth = max_depth

    def build(self, root: etree.Element) -> tuple:
        return self.container(root, 0)

    def resolve(self, text) -> str:
        if not text:
            return ""
        text = util.HTML_PLACEHOLDER_RE.sub(self._stashed, str(text))
        text = text.replace(util.AMP_SUBSTITUTE, "&").replace(FENCE_BLANK, "")
        return ESCAPED_CHAR_RE.sub(lambda m: chr(int(m.group(1))), text)

    def _stashed(self, match: re.Match) -> str:
        index = int(match.group(1))
        blocks = self.md.htmlStash.rawHtmlBlocks
        if index >= len(blocks):
            return match.group(0)
        value = blocks[index]
        if isinstance(value, str):
            if ENTITY_RE.fullmatch(value):
                return html_lib.unescape(value)
            return value
        return etree.tostring(value, encoding="unicode", method="html")

    def container(self, elem: etree.Element, depth: int) -> tuple:
        blocks: list = []
        pending = self.text_spans(elem.text)
        for child in elem:
            if child.tag in BLOCK_TAGS:
                self.flush(pending, blocks)
                blocks.extend(self.block(child, depth))
                pending = self.text_spans(child.tail)
            else:
                pending.extend(self.inline(child))
                pending.extend(self.text_spans(child.tail))
        self.flush(pending, blocks)
        return tuple(blocks)

    def flush(self, pending: list, blocks: list) -> None:
        spans = trim_spans(merge_spans(pending))
        pending.clear()
        if not spans:
            return
        if len(spans) == 1 and isinstance(spans[0], Text):
            match = FENCE_PLACEHOLDER_RE.fullmatch(spans[0].text)
            if match:
                blocks.append(self.fences[int(match.group(1))])
                return
        blocks.append(Paragraph(spans))

    def block(self, elem: etree.Element, depth: int) -> list:
        tag = elem.tag
        if tag in HEADING_TAGS:
            text = plain_text(self.children_spans(elem)).strip()
            return [Heading(int(tag[1]), text)]
        if tag == "p":
            pending = self.children_spans(elem)
            out: list = []
            self.flush(pending, out)
            return out
        if tag == "pre":
            index = elem.get(FENCE_ATTR)
            if index is not None:
                return [self.fences[int(index)]]
            code = elem.find("code")
            source = code if code is not None else elem
            literal = html_lib.unescape("".join(source.itertext())).replace(FENCE_BLANK, "")
            return [CodeBlock("", literal.strip("\n"))]
        if tag == "hr":
            return [Rule()]
        if tag == "blockquote":
            self.check_depth(depth + 1)
            return [Blockquote(self.container(elem, depth + 1))]
        if tag in {"ul", "ol"}:
            self.check_depth(depth + 1)
            items = tuple(ListItem(self.container(li, depth + 1)) for li in elem if li.tag == "li")
            return [ListBlock(tag == "ol", items)]
        # Anything else degrades to its plain text.
        text = self.resolve("".join(elem.itertext())).strip()
        return [Paragraph((Text(text),))] if text else []

    def check_depth(self, depth: int) -> None:
        if depth > self.max_depth:
            raise RenderDepthExceededError(depth, self.max_depth)

    def text_spans(self, text) -> list:
        text = self.resolve(text)
        return [Text(text)] if text else []

    def children_spans(self, elem: etree.Element) -> list:
        spans = self.text_spans(elem.text)
        for child in elem:
            spans.extend(self.inline(child))
            spans.extend(self.text_spans(child.tail))
        return spans

    def inline(self, elem: etree.Element) -> list:
        tag = elem.tag
        if tag in {"em", "i"}:
            return [Emphasis(merge_spans(self.children_spans(elem)))]
        if tag in {"strong", "b"}:
            return [Strong(merge_spans(self.children_spans(elem)))]
        if tag == "code":
            return [InlineCode(html_lib.unescape(self.resolve("".join(elem.itertext()))))]
        if tag == "a":
            text = plain_text(self.children_spans(elem))
            return [Link(text, self.resolve(elem.get("href", "")))]
        if tag == "br":
            return [LineBreak()]
        if tag == "img":
            alt = self.resolve(elem.get("alt", ""))
            return [Text(alt)] if alt else []
        return self.children_spans(elem)


def merge_spans(spans) -> tuple:
    merged: list = []
    for span in spans:
        if isinstance(span, Text):
            if not span.text:
                continue
            if merged and isinstance(merged[-1], Text):
                merged[-1] = Text(merged[-1].text + span.text)
                continue
        merged.append(span)
    return tuple(merged)


def trim_spans(spans: tuple) -> tuple:
    items = list(spans)
    if items and isinstance(items[0], Text):
        items[0] = Text(items[0].text.lstrip())
    if items and isinstance(items[-1], Text):
        items[-1] = Text(items[-1].text.rstrip())
    return tuple(span for span in items if not (isinstance(span, Text) and not span.text))


def plain_text(spans) -> str:
    parts = []
    for span in spans:
        if isinstance(span, (Text, InlineCode)):
            parts.append(span.text)
        elif isinstance(span, Link):
            parts.append(span.text)
        elif isinstance(span, LineBreak):
            parts.append("\n")
        elif isinstance(span, (Emphasis, Strong)):
            parts.append(plain_text(span.spans))
    return "".join(parts)


def blocks_plain_text(blocks) -> str:
    """Text of ``blocks`` without markup, one block per line."""
    parts = []
    for block in blocks:
        if isinstance(block, Heading):
            parts.append(block.text)
        elif isinstance(block, Paragraph):
            parts.append(plain_text(block.spans))
        elif isinstance(block, CodeBlock):
            parts.append(block.literal)
        elif isinstance(block, Blockquote):
            parts.append(blocks_plain_text(block.blocks))
        elif isinstance(block, ListBlock):
            parts.extend(blocks_plain_text(item.blocks) for item in block.items)
    return "\n".join(part for part in parts if part)


class BlockCaptureTreeprocessor(Treeprocessor):
    def __init__(self, md, extension: "BlockCaptureExtension"):
        super().__init__(md)
        self.extension = extension

    def run(self, root):
        builder = BlockBuilder(self.md, self.extension.fences, self.extension.max_depth)
        self.extension.blocks = builder.build(root)


class BlockCaptureExtension(Extension):
    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH, **kwargs):
        super().__init__(**kwargs)
        self.max_depth = max_depth
        self.fences: list = []
        self.blocks: tuple = ()

    def extendMarkdown(self, md):
        md.preprocessors.register(FencePreprocessor(md, self.fences, self.max_depth), "mdpress_fence", 25)
        # Below indented code (80) so four-space code stays code.
        md.parser.blockprocessors.register(NestedFenceProcessor(md.parser, self.fences), "mdpress_nested_fence", 75)
        # After inline patterns (20 is too early), before prettify (10).
        md.treeprocessors.register(BlockCaptureTreeprocessor(md, self), "mdpress_capture", 15)


class MarkdownRenderer:
    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max(1, int(max_depth))

    def render(self, body: str) -> tuple:
        """Render ``body`` into a tuple of ContentBlocks.

        Code found in fences is kept verbatim and never evaluated. Syntax
        Python-Markdown does not recognise stays in the output as literal
        text. Raises RenderDepthExceededError when blockquotes or lists nest
        deeper than ``max_depth``.
        """
        capture = BlockCaptureExtension(max_depth=self.max_depth)
        md = markdown.Markdown(extensions=[capture])
        md.convert(normalize_list_spacing(body))
        return capture.blocks

    def render_to_text(self, blocks) -> str:
        return render_to_text(blocks)


def render(body: str, max_depth: int = DEFAULT_MAX_DEPTH) -> tuple:
    return MarkdownRenderer(max_depth).render(body)


# Flattening back to Markdown


def escape_text(text: str) -> str:
    return MD_ESCAPE_RE.sub(r"\\\1", text)


def spans_to_text(spans) -> str:
    parts = []
    for span in spans:
        if isinstance(span, Text):
            parts.append(escape_text(span.text))
        elif isinstance(span, Emphasis):
            parts.append(f"*{spans_to_text(span.spans)}*")
        elif isinstance(span, Strong):
            parts.append(f"**{spans_to_text(span.spans)}**")
        elif isinstance(span, InlineCode):
            longest = max((len(run) for run in re.findall(r"`+", span.text)), default=0)
            ticks = "`" * (longest + 1)
            if longest:
                parts.append(f"{ticks} {span.text} {ticks}")
            else:
                parts.append(f"{ticks}{span.text}{ticks}")
        elif isinstance(span, Link):
            url = span.url
            if not url or re.search(r"[\s()<>]", url):
                url = f"<{url}>"
            parts.append(f"[{escape_text(span.text)}]({url})")
        elif isinstance(span, LineBreak):
            parts.append("  \n")
    return "".join(parts)


def _prefix_lines(text: str, first: str, rest: str) -> str:
    lines = text.split("\n")
    out = [first + lines[0]]
    for line in lines[1:]:
        out.append(rest + line if line else rest.rstrip())
    return "\n".join(out)


def _fence_text(block: CodeBlock) -> str:
    longest = max((len(run) for run in re.findall(r"^[ ]*(`{3,})", block.literal, re.M)), default=2)
    fence = "`" * (longest + 1)
    return f"{fence}{block.language}\n{block.literal}\n{fence}"


def _block_to_text(block) -> str:
    if isinstance(block, Heading):
        return "#" * block.level + " " + escape_text(block.text)
    if isinstance(block, Paragraph):
        return spans_to_text(block.spans)
    if isinstance(block, CodeBlock):
        return _fence_text(block)
    if isinstance(block, Blockquote):
        inner = _blocks_to_text(block.blocks)
        return "\n".join("> " + line if line else ">" for line in inner.split("\n"))
    if isinstance(block, ListBlock):
        items = []
        for item in block.items:
            marker = "1. " if block.ordered else "- "
            inner = _blocks_to_text(item.blocks)
            items.append(_prefix_lines(inner, marker, "    "))
        return "\n".join(items)
    if isinstance(block, Rule):
        # "- ---" would read back as a top-level rule.
        return "***"
    raise TypeError(f"Not a content block: {block!r}")


def _blocks_to_text(blocks) -> str:
    return "\n\n".join(_block_to_text(block) for block in blocks)


def render_to_text(blocks) -> str:
    """Flatten ContentBlocks back into Markdown that renders to the same blocks."""
    return _blocks_to_text(blocks) + "\n"
