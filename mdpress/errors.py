from __future__ import annotations

from pathlib import Path
from typing import Optional


class SiteError(Exception):
    """Base class for every error raised while building a site."""


class MalformedFrontMatterError(SiteError):
    def __init__(self, reason: str, source: Optional[Path] = None) -> None:
        self.reason = reason
        self.source = source
        where = f"{source}: " if source is not None else ""
        super().__init__(f"{where}{reason}")


class DuplicateSlugError(SiteError):
    def __init__(self, slug: str, first: Path, second: Path) -> None:
        self.slug = slug
        self.first = first
        self.second = second
        super().__init__(f"duplicate slug {slug!r} from {first} and {second}")


class RepositoryLoadError(SiteError):
    """Raised when one or more source files could not be loaded.

    ``failures`` holds ``(path, error)`` pairs for every file that failed.
    ``loaded`` holds the articles that did parse, so a fail-soft build can
    go on with them.
    """

    def __init__(self, failures: list[tuple[Path, Exception]], loaded: tuple = ()) -> None:
        self.failures = list(failures)
        self.loaded = tuple(loaded)
        lines = [f"{len(self.failures)} source file(s) failed to load:"]
        for path, error in self.failures:
            lines.append(f"  {path}: {error}")
        super().__init__("\n".join(lines))


class NotFoundError(SiteError, KeyError):
    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(slug)

    def __str__(self) -> str:
        return f"No article with slug {self.slug!r}"


class RenderDepthExceededError(SiteError):
    def __init__(self, depth: int, max_depth: int, slug: str = "") -> None:
        self.depth = depth
        self.max_depth = max_depth
        self.slug = slug
        super().__init__(self._message())

    def _message(self) -> str:
        where = f"{self.slug}: " if self.slug else ""
        return f"{where}nesting depth {self.depth} exceeds maximum of {self.max_depth}"

    def with_slug(self, slug: str) -> "RenderDepthExceededError":
        return RenderDepthExceededError(self.depth, self.max_depth, slug)


class PublishIOError(SiteError):
    def __init__(self, slug: str, path: str, cause: Exception) -> None:
        self.slug = slug
        self.path = path
        self.cause = cause
        self.report = None
        super().__init__(f"{slug}: could not write {path}: {cause}")


class OutputDirError(SiteError):
    """The output directory cannot be cleaned safely."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"refusing to clean {path}: {reason}")
