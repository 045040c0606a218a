import pytest

from mdpress.errors import RenderDepthExceededError
from mdpress.markdown_render import MarkdownRenderer, render, render_to_text
from mdpress.models import (
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
from mdpress.render import CodeHighlighter, blocks_to_html

SAMPLE = """## Intro

Some *emphasis*, **strong**, `code` and a [link](https://example.com).

> Quoted text

- one
- two

Between lists.

1. first
2. second

---

```python
import os
os.system("rm -rf /")
```
"""


def test_render_produces_structural_blocks():
    blocks = render(SAMPLE)

    assert blocks == (
        Heading(2, "Intro"),
        Paragraph(
            (
                Text("Some "),
                Emphasis((Text("emphasis"),)),
                Text(", "),
                Strong((Text("strong"),)),
                Text(", "),
                InlineCode("code"),
                Text(" and a "),
                Link("link", "https://example.com"),
                Text("."),
            )
        ),
        Blockquote((Paragraph((Text("Quoted text"),)),)),
        ListBlock(False, (ListItem((Paragraph((Text("one"),)),)), ListItem((Paragraph((Text("two"),)),)))),
        Paragraph((Text("Between lists."),)),
        ListBlock(True, (ListItem((Paragraph((Text("first"),)),)), ListItem((Paragraph((Text("second"),)),)))),
        Rule(),
        CodeBlock("python", 'import os\nos.system("rm -rf /")'),
    )


def test_fenced_code_is_kept_literal():
    body = "```\n# not a heading\n> not a quote\n<script>alert(1)</script>\n```\n"
    blocks = render(body)
    assert blocks == (CodeBlock("", "# not a heading\n> not a quote\n<script>alert(1)</script>"),)
    html = blocks_to_html(blocks, CodeHighlighter())
    assert "<script>" not in html
    assert "&lt;script&gt;" in html


def test_tilde_and_unterminated_fences():
    assert render("~~~ruby\nputs 1\n~~~") == (CodeBlock("ruby", "puts 1"),)
    assert render("Intro\n\n```js\nlet a = 1;") == (Paragraph((Text("Intro"),)), CodeBlock("js", "let a = 1;"))


def test_fence_inside_a_list_item():
    blocks = render("1. step\n\n    ```elixir\n    def x, do: 1\n    ```")
    assert blocks == (
        ListBlock(True, (ListItem((Paragraph((Text("step"),)), CodeBlock("elixir", "def x, do: 1"))),)),
    )


def test_fence_inside_a_tight_list_item():
    blocks = render("- run:\n    ```sh\n    make\n    ```\n- done")
    assert blocks == (
        ListBlock(
            False,
            (
                ListItem((Paragraph((Text("run:"),)), CodeBlock("sh", "make"))),
                ListItem((Paragraph((Text("done"),)),)),
            ),
        ),
    )


def test_fence_inside_a_blockquote():
    assert render("> ```py\n> x = 1\n> ```") == (Blockquote((CodeBlock("py", "x = 1"),)),)


def test_blank_lines_inside_a_nested_fence_are_kept():
    body = "1. step\n\n    ```py\n    a = 1\n\n    b = 2\n    ```\n\nAfter."
    (listing, after) = render(body)
    assert listing.items[0].blocks[-1] == CodeBlock("py", "a = 1\n\nb = 2")
    assert after == Paragraph((Text("After."),))


def test_nested_fence_content_is_not_interpreted():
    (quote,) = render("> ```\n> # not a heading\n> *not emphasis*\n> ```")
    assert quote.blocks == (CodeBlock("", "# not a heading\n*not emphasis*"),)


def test_unterminated_emphasis_renders_as_literal_text():
    blocks = render("An *unterminated emphasis and [broken link( here")
    assert blocks == (Paragraph((Text("An *unterminated emphasis and [broken link( here"),)),)


def test_escaped_characters_are_unescaped():
    assert render("1\\*2\\*3") == (Paragraph((Text("1*2*3"),)),)


def test_raw_html_passes_through_as_text_and_is_escaped_on_output():
    blocks = render("a <b>bold</b> move")
    assert blocks == (Paragraph((Text("a <b>bold</b> move"),)),)
    assert "&lt;b&gt;bold&lt;/b&gt;" in blocks_to_html(blocks, CodeHighlighter())


def test_hard_line_break():
    (paragraph,) = render("line one  \nline two")
    assert LineBreak() in paragraph.spans


def test_empty_body_renders_nothing():
    assert render("") == ()
    assert render("   \n\n") == ()


def test_nested_blockquotes_within_limit():
    assert MarkdownRenderer(max_depth=2).render("> > nested") == (
        Blockquote((Blockquote((Paragraph((Text("nested"),)),)),)),
    )


def test_deep_blockquotes_raise_instead_of_recursing():
    body = "> " * 50 + "deep"
    with pytest.raises(RenderDepthExceededError) as excinfo:
        MarkdownRenderer(max_depth=10).render(body)
    assert excinfo.value.depth == 50
    assert excinfo.value.max_depth == 10


def test_default_depth_limit_applies():
    with pytest.raises(RenderDepthExceededError):
        render(">" * 50 + " deep")


def test_deep_lists_raise():
    body = "- a\n    - b\n        - c\n"
    assert render(body, max_depth=3)
    with pytest.raises(RenderDepthExceededError):
        render(body, max_depth=2)


def test_rendering_is_idempotent_through_text():
    body = SAMPLE + "\nAn *unterminated one, 3.14 and #hash (parens) [brackets]\n"
    blocks = render(body)
    assert render(render_to_text(blocks)) == blocks


def test_render_to_text_writes_nested_code_as_fences():
    blocks = (Blockquote((CodeBlock("py", "x = 1"),)),)
    assert render_to_text(blocks) == "> ```py\n> x = 1\n> ```\n"
    assert render(render_to_text(blocks)) == blocks


def test_rule_inside_a_list_survives_flattening():
    blocks = render("- ***")
    assert blocks == (ListBlock(False, (ListItem((Rule(),)),)),)
    assert render(render_to_text(blocks)) == blocks


def test_nested_code_survives_flattening():
    blocks = (
        ListBlock(True, (ListItem((Paragraph((Text("step"),)), CodeBlock("sh", "make\n\nmake install"))),)),
        Blockquote((CodeBlock("", "a\n\nb"),)),
    )
    assert render(render_to_text(blocks)) == blocks


def test_highlighter_falls_back_for_unknown_language():
    html = CodeHighlighter()("no-such-language", "a < b")
    assert "a &lt; b" in html
    assert 'data-lang="no-such-language"' in html


def test_highlighter_uses_pygments_for_known_language():
    html = CodeHighlighter()("python", "print('hi')")
    assert 'class="codehilite"' in html
    assert "<span" in html
