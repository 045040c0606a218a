from __future__ import annotations

import datetime as dt
import html as html_lib
import re
from pathlib import Path
from typing import Optional

import yaml

from .errors import MalformedFrontMatterError

DELIMITER = "---"
SUMMARY_LENGTH = 200
LIST_MARKER_RE = re.compile(r"^(?P<indent>[ \t]*)(?:[-+*]|\d+[.)])\s+")
FENCE_RE = re.compile(r"^(?P<indent>[ \t]*)(`{3,}|~{3,})")
CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")
WORD_RE = re.compile(r"[A-Za-z0-9]+(?:'[A-Za-z0-9]+)?")


def slugify(text: str) -> str:
    text = text.lower()
    text = re.sub(r"[^\w]+", "-", text, flags=re.UNICODE)
    text = text.strip("-_").replace("_", "-")
    return text or "post"


def parse_front_matter(text: str, source: Optional[Path] = None) -> tuple[dict, str]:
    """Split ``text`` into its metadata mapping and body.

    The metadata block must open on the first line with ``---`` and close
    with another ``---`` line starting in the first column, so indented
    continuation lines of a YAML scalar never end it. Its content is YAML
    and must be a mapping. Keys are lower-cased.
    """
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    if not lines or lines[0].rstrip() != DELIMITER:
        raise MalformedFrontMatterError("missing opening '---' delimiter", source)

    end = None
    for i in range(1, len(lines)):
        if lines[i].rstrip() == DELIMITER:
            end = i
            break
    if end is None:
        raise MalformedFrontMatterError("missing closing '---' delimiter", source)

    block = "\n".join(lines[1:end])
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as exc:
        raise MalformedFrontMatterError(f"invalid metadata: {exc}", source) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedFrontMatterError("metadata must be key/value pairs", source)

    meta = {}
    for key, value in data.items():
        if not isinstance(key, str):
            raise MalformedFrontMatterError(f"metadata key {key!r} is not a string", source)
        meta[key.strip().lower()] = value
    body = "\n".join(lines[end + 1 :])
    return meta, body


def serialize_front_matter(meta: dict, body: str = "") -> str:
    block = yaml.safe_dump(meta, sort_keys=False, allow_unicode=True, default_flow_style=False) if meta else ""
    return f"{DELIMITER}\n{block}{DELIMITER}\n{body}"


def meta_text(meta: dict, key: str, source: Optional[Path] = None) -> str:
    value = meta.get(key)
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise MalformedFrontMatterError(f"'{key}' must be a single value", source)
    return str(value).strip()


def meta_flag(meta: dict, key: str, source: Optional[Path] = None) -> bool:
    value = meta.get(key)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in {"1", "true", "yes", "on"}:
        return True
    if word in {"", "0", "false", "no", "off"}:
        return False
    raise MalformedFrontMatterError(f"'{key}' must be true or false", source)


def extract_title(meta: dict, body: str) -> tuple[str, str]:
    title = meta_text(meta, "title")
    if title:
        return title, body
    lines = body.splitlines()
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith("# "):
            title = stripped[2:].strip() or "Untitled"
            new_body = "\n".join(lines[i + 1 :]).lstrip()
            return title, new_body
        if stripped:
            break
    return "Untitled", body


def parse_date(meta: dict, source: Optional[Path] = None) -> Optional[dt.datetime]:
    value = meta.get("date")
    if value is None or value == "":
        return None
    # PyYAML already turns unquoted ISO dates into date/datetime objects.
    if isinstance(value, dt.datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, dt.date):
        return dt.datetime.combine(value, dt.time())
    text = str(value).strip()
    try:
        if "T" in text or " " in text:
            return dt.datetime.fromisoformat(text).replace(tzinfo=None)
        return dt.datetime.combine(dt.date.fromisoformat(text), dt.time())
    except ValueError as exc:
        raise MalformedFrontMatterError(f"invalid date {text!r}", source) from exc


def normalize_list_spacing(text: str) -> str:
    lines = text.splitlines()
    out: list[str] = []
    in_fence = False
    fence_marker = ""
    for line in lines:
        fence_match = FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(2)
            if not in_fence:
                in_fence = True
                fence_marker = marker
            elif marker.startswith(fence_marker):
                in_fence = False
                fence_marker = ""
            out.append(line)
            continue
        if in_fence:
            out.append(line)
            continue
        list_match = LIST_MARKER_RE.match(line)
        if list_match:
            if not list_match.group("indent"):
                if out and out[-1].strip() and not LIST_MARKER_RE.match(out[-1]):
                    out.append("")
        out.append(line)
    return "\n".join(out)


def count_words(text: str) -> int:
    text = html_lib.unescape(text)
    cjk_count = len(CJK_RE.findall(text))
    text = CJK_RE.sub(" ", text)
    word_count = len(WORD_RE.findall(text))
    return cjk_count + word_count


def summarize(text: str, limit: int = SUMMARY_LENGTH) -> str:
    summary = " ".join(text.split())
    return summary[:limit] + ("..." if len(summary) > limit else "")
