from __future__ import annotations

import mimetypes
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .errors import OutputDirError, PublishIOError
from .models import Page


class DirectoryTarget:
    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    def write(self, path: str, text: str) -> None:
        dest = self.output_dir / path
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(text, encoding="utf-8")

    def clean(self, project_root: Path) -> None:
        """Remove the output directory before a fresh build.

        Only a directory strictly inside ``project_root`` is removed.
        """
        if not self.output_dir.exists():
            return
        output = self.output_dir.resolve()
        root = Path(project_root).resolve()
        if output == root:
            raise OutputDirError(self.output_dir, "it is the project root")
        if not output.is_relative_to(root):
            raise OutputDirError(self.output_dir, "it is outside the project root")
        shutil.rmtree(output)

    def copy_static(self, static_dir: Path) -> None:
        shutil.copytree(static_dir, self.output_dir, dirs_exist_ok=True)

    def __repr__(self) -> str:
        return f"DirectoryTarget({str(self.output_dir)!r})"


class MemoryTarget:
    """Holds published pages in a dict so they can be served directly."""

    def __init__(self):
        self.files: dict[str, str] = {}

    def write(self, path: str, text: str) -> None:
        self.files[path] = text

    def response(self, url_path: str) -> tuple[int, str, bytes]:
        path = url_path.split("?", 1)[0].split("#", 1)[0].lstrip("/")
        if not path or path.endswith("/"):
            path += "index.html"
        text = self.files.get(path)
        if text is None:
            return 404, "text/plain; charset=utf-8", b"Not found"
        content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        return 200, f"{content_type}; charset=utf-8", text.encode("utf-8")


@dataclass
class PublishReport:
    succeeded: list[str] = field(default_factory=list)
    failed: list[PublishIOError] = field(default_factory=list)
    published_articles: int = 0

    @property
    def failed_slugs(self) -> list[str]:
        return [error.slug for error in self.failed]


def publish(pages: Iterable[Page], target, *, fail_fast: bool = False) -> PublishReport:
    """Write every page to ``target`` and report which ones made it.

    A page that cannot be written is recorded as a PublishIOError and the
    rest are still written, unless ``fail_fast`` is set: then the error is
    raised right away with the report so far attached as ``.report``.
    """
    report = PublishReport()
    for page in pages:
        try:
            target.write(page.path, page.html)
        except OSError as exc:
            error = PublishIOError(page.name, page.path, exc)
            report.failed.append(error)
            if fail_fast:
                error.report = report
                raise error from exc
            continue
        report.succeeded.append(page.name)
        if page.kind == "article":
            report.published_articles += 1
    return report
