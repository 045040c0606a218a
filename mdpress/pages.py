from __future__ import annotations

import datetime as dt
import html
from email.utils import format_datetime
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Optional

from .content import count_words, summarize
from .errors import RenderDepthExceededError
from .markdown_render import DEFAULT_MAX_DEPTH, MarkdownRenderer, blocks_plain_text
from .models import Article, NavLink, Page
from .render import CodeHighlighter, blocks_to_html, default_template, render_template

FEED_LIMIT = 20


@dataclass
class SiteOptions:
    site_name: str = "mdpress"
    site_description: str = "Notes and articles."
    site_url: str = ""
    template: str = ""
    pygments_style: str = "default"
    enable_rss: bool = True
    enable_sitemap: bool = True
    feed_limit: int = FEED_LIMIT
    max_depth: int = DEFAULT_MAX_DEPTH
    workers: int = 1


@dataclass(frozen=True)
class RenderedArticle:
    article: Article
    blocks: tuple
    html: str
    summary: str
    words: int


def render_article(article: Article, renderer: MarkdownRenderer, style: str) -> RenderedArticle:
    try:
        blocks = renderer.render(article.body)
    except RenderDepthExceededError as exc:
        raise exc.with_slug(article.slug) from exc
    body_html = blocks_to_html(blocks, CodeHighlighter(style))
    text = blocks_plain_text(blocks)
    summary = article.description or summarize(text)
    return RenderedArticle(article, blocks, body_html, summary, count_words(text))


def feed_date(value: dt.datetime) -> str:
    # Article dates are naive and taken as UTC.
    return format_datetime(value.replace(tzinfo=dt.timezone.utc))


def nav_link(article: Article, root: str = ".") -> NavLink:
    return NavLink(article.slug, article.title, f"{root}/{article.slug}.html")


def build_post_nav(previous: Optional[NavLink], next_link: Optional[NavLink]) -> str:
    if previous is None and next_link is None:
        return ""
    items = []
    if previous is not None:
        items.append(
            f'<a class="nav-prev" rel="prev" href="{html.escape(previous.url)}">'
            f"{html.escape(previous.title)}</a>"
        )
    if next_link is not None:
        items.append(
            f'<a class="nav-next" rel="next" href="{html.escape(next_link.url)}">'
            f"{html.escape(next_link.title)}</a>"
        )
    return f'<nav class="post-nav">{"".join(items)}</nav>'


def build_post_cards(items: list[RenderedArticle], root: str) -> str:
    cards = []
    for item in items:
        article = item.article
        url = f"{root}/posts/{article.slug}.html"
        date_html = f'<span class="post-date">{article.date_label}</span>' if article.date else ""
        cards.append(
            '<article class="post-card">'
            '<div class="post-meta">'
            f"{date_html}"
            f'<span class="post-words">{item.words} words</span>'
            "</div>"
            f'<h2 class="post-title"><a href="{url}">{html.escape(article.title)}</a></h2>'
            f'<p class="post-summary">{html.escape(item.summary)}</p>'
            "</article>"
        )
    return "\n".join(cards)


class SiteAssembler:
    def __init__(self, options: Optional[SiteOptions] = None):
        self.options = options or SiteOptions()
        self.template = self.options.template or default_template()
        self.year = ""

    def render_all(self, articles: list[Article], errors: Optional[list]) -> list[RenderedArticle]:
        renderer = MarkdownRenderer(self.options.max_depth)
        style = self.options.pygments_style
        workers = max(1, min(int(self.options.workers or 1), len(articles) or 1))
        rendered = []
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(render_article, article, renderer, style) for article in articles]
            # Waiting on every future here is the barrier before navigation.
            for future in futures:
                try:
                    rendered.append(future.result())
                except RenderDepthExceededError as exc:
                    if errors is None:
                        for pending in futures:
                            pending.cancel()
                        raise
                    errors.append(exc)
        return rendered

    def page(self, path: str, title: str, content: str, root: str, description: str = "", **extra) -> dict:
        site_name = self.options.site_name
        return dict(
            path=path,
            title=title,
            html=render_template(
                self.template,
                title=html.escape(f"{title} | {site_name}" if title != site_name else site_name),
                description=html.escape(description or self.options.site_description),
                root=root,
                content=content,
                site_name=html.escape(site_name),
                site_description=html.escape(self.options.site_description),
                year=self.year,
                extra_head="",
            ),
            **extra,
        )

    def build_article_page(
        self, item: RenderedArticle, previous: Optional[NavLink], next_link: Optional[NavLink]
    ) -> Page:
        root = ".."
        article = item.article
        date_html = f'<span class="post-date">{article.date_label}</span>' if article.date else ""
        content = (
            '<article class="post">'
            '<div class="post-meta">'
            f"{date_html}"
            f'<span class="post-words">{item.words} words</span>'
            "</div>"
            f'<h1 class="post-title">{html.escape(article.title)}</h1>'
            f'<div class="post-body">{item.html}</div>'
            f"{build_post_nav(previous, next_link)}"
            f'<div class="post-footer"><a href="{root}/index.html">Back to home</a></div>'
            "</article>"
        )
        return Page(
            **self.page(
                f"posts/{article.slug}.html",
                article.title,
                content,
                root,
                description=item.summary,
                kind="article",
                slug=article.slug,
                article=article,
                blocks=item.blocks,
                previous=previous,
                next=next_link,
            )
        )

    def build_index(self, rendered: list[RenderedArticle]) -> Page:
        root = "."
        if rendered:
            cards = f'<div class="post-grid">{build_post_cards(rendered, root)}</div>'
        else:
            cards = '<p class="post-empty">No articles yet.</p>'
        content = (
            '<div class="section-head">'
            "<h2>Latest posts</h2>"
            f"<p>{html.escape(self.options.site_description)}</p>"
            "</div>"
            f"{cards}"
        )
        return Page(**self.page("index.html", self.options.site_name, content, root, kind="index"))

    def build_rss(self, rendered: list[RenderedArticle]) -> Optional[Page]:
        site_url = self.options.site_url.rstrip("/")
        if not site_url:
            return None
        items = []
        for item in rendered[: self.options.feed_limit]:
            article = item.article
            link = f"{site_url}/posts/{article.slug}.html"
            lines = [
                "<item>",
                f"<title>{html.escape(article.title)}</title>",
                f"<link>{link}</link>",
                f"<guid>{link}</guid>",
            ]
            if article.date:
                lines.append(f"<pubDate>{feed_date(article.date)}</pubDate>")
            lines.append(f"<description>{html.escape(item.summary)}</description>")
            lines.append("</item>")
            items.append("\n".join(lines))
        dates = [item.article.date for item in rendered if item.article.date]
        last_build = f"<lastBuildDate>{feed_date(max(dates))}</lastBuildDate>" if dates else ""
        rss = "\n".join(
            [
                '<?xml version="1.0" encoding="UTF-8"?>',
                '<rss version="2.0">',
                "<channel>",
                f"<title>{html.escape(self.options.site_name)}</title>",
                f"<link>{site_url}/</link>",
                f"<description>{html.escape(self.options.site_description)}</description>",
                last_build,
                "\n".join(items),
                "</channel>",
                "</rss>",
            ]
        )
        return Page("rss.xml", "RSS", rss, kind="asset")

    def build_sitemap(self, rendered: list[RenderedArticle]) -> Optional[Page]:
        site_url = self.options.site_url.rstrip("/")
        if not site_url:
            return None
        urls = [(site_url + "/", None)]
        for item in rendered:
            urls.append((f"{site_url}/posts/{item.article.slug}.html", item.article.date))
        entries = []
        for url, lastmod in urls:
            lines = ["<url>", f"<loc>{url}</loc>"]
            if lastmod:
                lines.append(f"<lastmod>{lastmod.date().isoformat()}</lastmod>")
            lines.append("</url>")
            entries.append("\n".join(lines))
        sitemap = "\n".join(
            [
                '<?xml version="1.0" encoding="UTF-8"?>',
                '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
                "\n".join(entries),
                "</urlset>",
            ]
        )
        return Page("sitemap.xml", "Sitemap", sitemap, kind="asset")

    def assemble(self, articles: Iterable[Article], *, errors: Optional[list] = None) -> list[Page]:
        articles = list(articles)
        rendered = self.render_all(articles, errors)
        dates = [item.article.date for item in rendered if item.article.date]
        self.year = str(max(dates).year) if dates else ""

        pages = [self.build_index(rendered)]
        links = [nav_link(item.article) for item in rendered]
        for index, item in enumerate(rendered):
            previous = links[index - 1] if index > 0 else None
            next_link = links[index + 1] if index + 1 < len(links) else None
            pages.append(self.build_article_page(item, previous, next_link))

        stylesheet = CodeHighlighter(self.options.pygments_style).stylesheet()
        pages.append(Page("css/code.css", "Code styles", stylesheet, kind="asset"))
        if self.options.enable_rss:
            rss = self.build_rss(rendered)
            if rss is not None:
                pages.append(rss)
        if self.options.enable_sitemap:
            sitemap = self.build_sitemap(rendered)
            if sitemap is not None:
                pages.append(sitemap)
        return pages


def assemble(
    articles: Iterable[Article], options: Optional[SiteOptions] = None, *, errors: Optional[list] = None
) -> list[Page]:
    """Render ``articles`` in the given order and lay them out as pages.

    With ``errors=None`` the first render failure propagates. Pass a list to
    collect failures instead; failed articles are left out and navigation
    links only the pages that rendered.
    """
    return SiteAssembler(options).assemble(articles, errors=errors)
