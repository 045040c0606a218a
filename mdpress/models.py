from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Union


@dataclass(frozen=True)
class Article:
    slug: str
    title: str
    description: str
    body: str
    source: Path
    date: Optional[dt.datetime] = None
    draft: bool = False
    extra: Mapping[str, object] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        # Exposed read-only.
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))

    @property
    def published_order(self) -> tuple[str, str]:
        # Undated articles sort below dated ones and fall back to the slug.
        date_key = self.date.isoformat() if self.date else ""
        return date_key, self.slug

    @property
    def date_label(self) -> str:
        if self.date is None:
            return ""
        if self.date.time() == dt.time():
            return self.date.strftime("%Y-%m-%d")
        return self.date.strftime("%Y-%m-%d %H:%M")


# Inline spans


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class Emphasis:
    spans: tuple


@dataclass(frozen=True)
class Strong:
    spans: tuple


@dataclass(frozen=True)
class InlineCode:
    text: str


@dataclass(frozen=True)
class Link:
    text: str
    url: str


@dataclass(frozen=True)
class LineBreak:
    pass


Span = Union[Text, Emphasis, Strong, InlineCode, Link, LineBreak]


# Blocks


@dataclass(frozen=True)
class Heading:
    level: int
    text: str


@dataclass(frozen=True)
class Paragraph:
    spans: tuple


@dataclass(frozen=True)
class CodeBlock:
    language: str
    literal: str


@dataclass(frozen=True)
class Blockquote:
    blocks: tuple


@dataclass(frozen=True)
class ListItem:
    blocks: tuple


@dataclass(frozen=True)
class ListBlock:
    ordered: bool
    items: tuple


@dataclass(frozen=True)
class Rule:
    pass


ContentBlock = Union[Heading, Paragraph, CodeBlock, Blockquote, ListBlock, Rule]


@dataclass(frozen=True)
class NavLink:
    slug: str
    title: str
    url: str


@dataclass(frozen=True)
class Page:
    """A rendered output file.

    ``path`` is relative to the site root (``posts/<slug>.html``,
    ``index.html``, ``css/code.css``...). ``kind`` is ``"article"``,
    ``"index"`` or ``"asset"``.
    """

    path: str
    title: str
    html: str
    kind: str = "article"
    slug: str = ""
    article: Optional[Article] = None
    blocks: tuple = ()
    previous: Optional[NavLink] = None
    next: Optional[NavLink] = None

    @property
    def name(self) -> str:
        """Articles are named by slug, every other page by its path."""
        if self.kind == "article" and self.slug:
            return self.slug
        return self.path
