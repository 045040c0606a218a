from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from .content import extract_title, meta_flag, meta_text, parse_date, parse_front_matter, slugify
from .errors import DuplicateSlugError, MalformedFrontMatterError, NotFoundError, RepositoryLoadError
from .models import Article

SOURCE_SUFFIXES = {".md", ".markdown"}
KNOWN_KEYS = {"title", "description", "date", "draft"}


def collect_sources(source_dir: Path) -> list[Path]:
    paths = [path for path in source_dir.rglob("*") if path.is_file() and path.suffix.lower() in SOURCE_SUFFIXES]
    return sorted(paths, key=lambda p: p.as_posix())


def parse_article(path: Path) -> Article:
    raw_text = path.read_text(encoding="utf-8")
    meta, body = parse_front_matter(raw_text, path)
    title, body = extract_title(meta, body)
    return Article(
        slug=slugify(path.stem),
        title=title,
        description=meta_text(meta, "description", path),
        body=body,
        source=path,
        date=parse_date(meta, path),
        draft=meta_flag(meta, "draft", path),
        extra={key: value for key, value in meta.items() if key not in KNOWN_KEYS},
    )


def default_order(article: Article) -> tuple[str, str]:
    return article.published_order


def find_duplicates(articles: Iterable[Article]) -> list[tuple[Path, Exception]]:
    seen: dict[str, Article] = {}
    failures: list[tuple[Path, Exception]] = []
    for article in articles:
        first = seen.get(article.slug)
        if first is not None:
            failures.append((article.source, DuplicateSlugError(article.slug, first.source, article.source)))
            continue
        seen[article.slug] = article
    return failures


class ArticleRepository:
    """In-memory, read-only collection of parsed articles keyed by slug."""

    def __init__(self, articles: Iterable[Article]):
        articles = list(articles)
        failures = find_duplicates(articles)
        if failures:
            raise RepositoryLoadError(failures)
        self._by_slug = {article.slug: article for article in articles}
        self.articles = tuple(sorted(articles, key=default_order, reverse=True))

    @classmethod
    def load(
        cls,
        source_dir: Path,
        *,
        workers: int = 1,
        fail_fast: bool = False,
        include_drafts: bool = False,
    ) -> "ArticleRepository":
        """Parse every Markdown file under ``source_dir``.

        Any file that cannot be read or parsed fails the whole load with a
        RepositoryLoadError listing every failure (only the first one when
        ``fail_fast`` is set). Two files with the same slug are a failure too.
        """
        source_dir = Path(source_dir)
        if not source_dir.is_dir():
            raise RepositoryLoadError([(source_dir, FileNotFoundError(f"Source directory not found: {source_dir}"))])

        paths = collect_sources(source_dir)
        parsed: dict[Path, Article] = {}
        failures: list[tuple[Path, Exception]] = []
        max_workers = max(1, min(int(workers or 1), len(paths) or 1))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(parse_article, path): path for path in paths}
            for future in as_completed(futures):
                path = futures[future]
                try:
                    parsed[path] = future.result()
                except (MalformedFrontMatterError, OSError, UnicodeDecodeError) as exc:
                    failures.append((path, exc))
                    if fail_fast:
                        for pending in futures:
                            pending.cancel()
                        break

        ordered = [parsed[path] for path in paths if path in parsed]
        if not (fail_fast and failures):
            failures.extend(find_duplicates(ordered))
        rejected = {path for path, _ in failures}
        loaded = [
            article
            for article in ordered
            if article.source not in rejected and (include_drafts or not article.draft)
        ]
        if failures:
            failures.sort(key=lambda item: item[0].as_posix())
            raise RepositoryLoadError(failures[:1] if fail_fast else failures, loaded)
        return cls(loaded)

    def find(self, slug: str) -> Article:
        try:
            return self._by_slug[slug]
        except KeyError:
            raise NotFoundError(slug) from None

    def list(
        self, ordering: Optional[Callable[[Article], object]] = None, reverse: bool = True
    ) -> Iterator[Article]:
        """Yield articles sorted by ``ordering`` (newest first by default)."""
        if ordering is None and reverse:
            yield from self.articles
            return
        yield from sorted(self._by_slug.values(), key=ordering or default_order, reverse=reverse)

    def filter(self, predicate: Callable[[Article], bool]) -> Iterator[Article]:
        return (article for article in self.articles if predicate(article))

    def __len__(self) -> int:
        return len(self._by_slug)

    def __iter__(self) -> Iterator[Article]:
        return iter(self.articles)

    def __contains__(self, slug: object) -> bool:
        return slug in self._by_slug
