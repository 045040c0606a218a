import datetime as dt
from pathlib import Path

import pytest

from mdpress.errors import RenderDepthExceededError
from mdpress.models import Article, NavLink
from mdpress.pages import SiteOptions, assemble
from mdpress.publish import MemoryTarget, publish
from mdpress.repository import ArticleRepository


def _article(slug: str, title: str, body: str = "Hello **world**.", **kwargs) -> Article:
    return Article(slug=slug, title=title, description="", body=body, source=Path(f"{slug}.md"), **kwargs)


def _pages_by_path(pages):
    return {page.path: page for page in pages}


def test_end_to_end_index_and_navigation(tmp_path: Path) -> None:
    (tmp_path / "a.md").write_text("---\ntitle: Alpha\n---\nAlpha *body* text.\n", encoding="utf-8")
    (tmp_path / "b.md").write_text("---\ntitle: Beta\n---\nBeta body text.\n", encoding="utf-8")

    repo = ArticleRepository.load(tmp_path)
    pages = _pages_by_path(assemble(repo.list(), SiteOptions(site_name="Test Site")))

    index = pages["index.html"].html
    assert "Alpha" in index and "Beta" in index
    assert index.index("Beta") < index.index("Alpha")

    alpha = pages["posts/a.html"]
    beta = pages["posts/b.html"]
    assert "<em>body</em>" in alpha.html
    assert "Beta body text." in beta.html
    assert beta.previous is None
    assert beta.next == NavLink("a", "Alpha", "./a.html")
    assert alpha.previous == NavLink("b", "Beta", "./b.html")
    assert alpha.next is None
    assert 'rel="next" href="./a.html"' in beta.html
    assert 'rel="prev" href="./b.html"' in alpha.html


def test_article_page_carries_blocks_and_metadata() -> None:
    article = _article("post", "Post <Title>", date=dt.datetime(2023, 5, 4))
    pages = _pages_by_path(assemble([article]))

    page = pages["posts/post.html"]
    assert page.kind == "article"
    assert page.article is article
    assert page.blocks
    assert "Post &lt;Title&gt; | mdpress" in page.html
    assert "2023-05-04" in page.html
    assert "2023" in pages["index.html"].html


def test_description_falls_back_to_summary() -> None:
    pages = _pages_by_path(assemble([_article("post", "Post", body="First words of the body.")]))
    assert '<meta name="description" content="First words of the body.">' in pages["posts/post.html"].html


def test_render_failure_propagates_in_fail_fast_mode() -> None:
    deep = _article("deep", "Deep", body="> " * 50 + "x")
    with pytest.raises(RenderDepthExceededError) as excinfo:
        assemble([_article("ok", "Ok"), deep], SiteOptions(max_depth=5))
    assert excinfo.value.slug == "deep"


def test_render_failures_are_collected_in_fail_soft_mode() -> None:
    articles = [_article("c", "C"), _article("deep", "Deep", body="> " * 50 + "x"), _article("a", "A")]
    errors: list = []

    pages = _pages_by_path(assemble(articles, SiteOptions(max_depth=5, workers=3), errors=errors))

    assert [error.slug for error in errors] == ["deep"]
    assert "posts/deep.html" not in pages
    assert pages["posts/c.html"].next.slug == "a"
    assert pages["posts/a.html"].previous.slug == "c"


def test_assembly_is_deterministic() -> None:
    articles = [_article("b", "Beta"), _article("a", "Alpha")]
    first = [(page.path, page.html) for page in assemble(articles)]
    second = [(page.path, page.html) for page in assemble(articles)]
    assert first == second


def test_feeds_need_a_site_url() -> None:
    articles = [_article("a", "Alpha", date=dt.datetime(2024, 1, 2))]
    assert set(_pages_by_path(assemble(articles))) == {"index.html", "posts/a.html", "css/code.css"}

    pages = _pages_by_path(assemble(articles, SiteOptions(site_url="https://example.com/")))
    assert "<link>https://example.com/posts/a.html</link>" in pages["rss.xml"].html
    assert "<pubDate>Tue, 02 Jan 2024 00:00:00 +0000</pubDate>" in pages["rss.xml"].html
    assert "<lastmod>2024-01-02</lastmod>" in pages["sitemap.xml"].html


def test_code_blocks_are_highlighted_and_stylesheet_emitted() -> None:
    body = "```python\nprint('hi')\n```"
    pages = _pages_by_path(assemble([_article("code", "Code", body=body)]))
    assert 'class="codehilite"' in pages["posts/code.html"].html
    assert ".codehilite" in pages["css/code.css"].html


def test_assembled_site_can_be_served_from_memory() -> None:
    target = MemoryTarget()
    report = publish(assemble([_article("a", "Alpha")]), target)

    assert report.published_articles == 1
    status, content_type, body = target.response("/")
    assert status == 200
    assert content_type.startswith("text/html")
    assert b"Alpha" in body
    assert target.response("/posts/a.html")[0] == 200
    assert target.response("/css/code.css")[1].startswith("text/css")
    assert target.response("/missing.html")[0] == 404
    assert target.response("/posts/a.html?x=1")[0] == 200


def test_template_slots_in_article_text_are_left_alone() -> None:
    pages = _pages_by_path(assemble([_article("post", "Post", body="Literal {{title}} here.")]))
    html = pages["posts/post.html"].html
    assert "Literal {{title}} here." in html
    assert "<title>Post | mdpress</title>" in html


def test_non_article_pages_are_named_by_path() -> None:
    pages = assemble([_article("index", "An article called index")])
    names = [page.name for page in pages]
    assert names == ["index.html", "index", "css/code.css"]
