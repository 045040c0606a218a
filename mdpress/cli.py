from __future__ import annotations

import argparse
import os
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

from .config import config_bool, config_int, config_str, load_config, resolve_template
from .errors import OutputDirError, PublishIOError, RenderDepthExceededError, RepositoryLoadError
from .markdown_render import DEFAULT_MAX_DEPTH
from .pages import FEED_LIMIT, SiteOptions, assemble
from .publish import DirectoryTarget, MemoryTarget, publish
from .repository import ArticleRepository
from .server import serve

MAX_WORKERS = 32


@dataclass
class BuildReport:
    articles: int = 0
    published: list[str] = field(default_factory=list)
    published_articles: int = 0
    failures: list[tuple[str, Exception]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        # Nothing published is a failure even if nothing went wrong.
        return not self.failures and self.published_articles > 0

    @property
    def failed_names(self) -> list[str]:
        return [name for name, _ in self.failures]


def worker_count(value: int) -> int:
    if value <= 0:
        value = os.cpu_count() or 1
    return min(value, MAX_WORKERS)


def check_style(name: str) -> str:
    try:
        get_style_by_name(name)
    except ClassNotFound:
        print(f"Unknown Pygments style: {name}", file=sys.stderr)
        sys.exit(1)
    return name


def site_options(args: argparse.Namespace) -> SiteOptions:
    return SiteOptions(
        site_name=args.site_name,
        site_description=args.site_description,
        site_url=(args.site_url or "").strip(),
        template=resolve_template(args),
        pygments_style=check_style(args.pygments_style),
        enable_rss=args.enable_rss,
        enable_sitemap=args.enable_sitemap,
        feed_limit=args.feed_limit,
        max_depth=args.max_depth,
        workers=worker_count(args.build_workers),
    )


def build_site(args: argparse.Namespace, target) -> BuildReport:
    report = BuildReport()
    fail_fast = args.fail_fast
    options = site_options(args)

    try:
        repository = ArticleRepository.load(
            Path(args.source),
            workers=options.workers,
            fail_fast=fail_fast,
            include_drafts=args.drafts,
        )
    except RepositoryLoadError as exc:
        report.failures.extend((str(path), error) for path, error in exc.failures)
        if fail_fast:
            return report
        repository = ArticleRepository(exc.loaded)
    report.articles = len(repository)

    render_errors: Optional[list] = None if fail_fast else []
    try:
        pages = assemble(repository.list(), options, errors=render_errors)
    except RenderDepthExceededError as exc:
        report.failures.append((exc.slug, exc))
        return report
    report.failures.extend((error.slug, error) for error in render_errors or [])

    if isinstance(target, DirectoryTarget):
        if args.clean:
            try:
                target.clean(Path.cwd())
            except OutputDirError as exc:
                report.failures.append((str(exc.path), exc))
                return report
        static_dir = Path(args.static) if args.static else None
        if static_dir is not None and static_dir.is_dir():
            try:
                target.copy_static(static_dir)
            except OSError as exc:
                report.failures.append((str(static_dir), exc))

    try:
        published = publish(pages, target, fail_fast=fail_fast)
    except PublishIOError as exc:
        published = exc.report
    report.published = published.succeeded
    report.published_articles = published.published_articles
    report.failures.extend((error.slug, error) for error in published.failed)
    return report


def print_report(report: BuildReport) -> None:
    print(f"Loaded {report.articles} articles.")
    for name, error in report.failures:
        print(f"  {name}: {error}", file=sys.stderr)
    if report.failures:
        print(f"Build failed for: {', '.join(report.failed_names)}", file=sys.stderr)
    if not report.published_articles:
        print("No articles were published.", file=sys.stderr)


def run_build(args: argparse.Namespace) -> int:
    start = time.perf_counter()
    report = build_site(args, DirectoryTarget(Path(args.output)))
    elapsed = time.perf_counter() - start
    print_report(report)
    print(f"Build completed in {elapsed:.2f}s.")
    if report.published_articles:
        print(f"Site generated in: {args.output}")
    return 0 if report.ok else 1


def run_serve(args: argparse.Namespace) -> int:
    target = MemoryTarget()
    report = build_site(args, target)
    print_report(report)
    if not report.published_articles:
        return 1
    serve(target, args.host, args.port, title=args.site_name)
    return 0 if report.ok else 1


def build_parser(config: dict, config_path: str) -> argparse.ArgumentParser:
    def cfg_str(key: str, default: str) -> str:
        return config_str(config, key, default)

    def cfg_bool(key: str, default: bool) -> bool:
        return config_bool(config, key, default)

    def cfg_int(key: str, default: int) -> int:
        return config_int(config, key, default)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=config_path, help="Path to site config file (TOML/YAML/JSON).")
    common.add_argument("--site-name", default=cfg_str("site_name", "mdpress"), help="Site title.")
    common.add_argument(
        "--site-description",
        default=cfg_str("site_description", "Notes and articles."),
        help="Site description.",
    )
    common.add_argument(
        "--site-url",
        default=cfg_str("site_url", ""),
        help="Public site URL used for RSS and sitemap.",
    )
    common.add_argument(
        "--build-workers",
        "--workers",
        default=cfg_int("build_workers", 0),
        type=int,
        help="Number of worker threads for parsing/rendering (0 = auto).",
    )
    common.add_argument(
        "--max-depth",
        default=cfg_int("max_depth", DEFAULT_MAX_DEPTH),
        type=int,
        help="Maximum nesting depth of blockquotes and lists.",
    )
    common.add_argument(
        "--fail-fast",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("fail_fast", False),
        help="Stop at the first failing article instead of reporting all of them.",
    )
    common.add_argument(
        "--drafts",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("include_drafts", False),
        help="Include articles marked draft: true.",
    )
    common.add_argument(
        "--pygments-style",
        default=cfg_str("pygments_style", "default"),
        help="Pygments style used for code blocks.",
    )
    common.add_argument(
        "--template",
        default=cfg_str("template", ""),
        help="Path to a page template (defaults to the bundled one).",
    )
    common.add_argument(
        "--feed-limit",
        default=cfg_int("feed_limit", FEED_LIMIT),
        type=int,
        help="Maximum number of posts in the RSS feed.",
    )
    common.add_argument(
        "--enable-rss",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("enable_rss", True),
        help="Generate rss.xml (needs --site-url).",
    )
    common.add_argument(
        "--enable-sitemap",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("enable_sitemap", True),
        help="Generate sitemap.xml (needs --site-url).",
    )

    parser = argparse.ArgumentParser(prog="mdpress", description="Static site generator for Markdown articles.")
    commands = parser.add_subparsers(dest="command", required=True)

    build = commands.add_parser("build", parents=[common], help="Build the site into a directory.")
    build.add_argument("source", nargs="?", default=cfg_str("source", "posts"), help="Directory of Markdown articles.")
    build.add_argument("output", nargs="?", default=cfg_str("output", "dist"), help="Output directory for the site.")
    build.add_argument("--static", default=cfg_str("static", "static"), help="Directory containing static assets.")
    build.add_argument(
        "--clean",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("clean", True),
        help="Clean output directory before build.",
    )
    build.set_defaults(handler=run_build)

    serve_cmd = commands.add_parser("serve", parents=[common], help="Build in memory and serve over HTTP.")
    serve_cmd.add_argument("source", nargs="?", default=cfg_str("source", "posts"), help="Directory of Markdown articles.")
    serve_cmd.add_argument("--host", default=cfg_str("host", "127.0.0.1"), help="Address to bind.")
    serve_cmd.add_argument("--port", default=cfg_int("port", 8000), type=int, help="Port to bind.")
    serve_cmd.set_defaults(handler=run_serve, static="", clean=False)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument(
        "--config",
        default="site.toml",
        help="Path to site config file (TOML/YAML/JSON).",
    )
    pre_args, _ = pre_parser.parse_known_args(argv)
    config = load_config(Path(pre_args.config))
    parser = build_parser(config, pre_args.config)
    args = parser.parse_args(argv)
    return args.handler(args)
