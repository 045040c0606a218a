import datetime as dt
from pathlib import Path

import pytest

from mdpress.content import (
    count_words,
    extract_title,
    normalize_list_spacing,
    parse_date,
    parse_front_matter,
    serialize_front_matter,
    slugify,
    summarize,
)
from mdpress.errors import MalformedFrontMatterError


@pytest.mark.parametrize(
    "meta",
    [
        {"title": "Alpha", "description": "First post"},
        {"title": "Colon: inside", "description": "quotes ' and \" and #hash"},
        {"title": "2024-01-05", "description": ""},
        {"title": "Ünïcödé 标题", "tags": "a, b", "draft": False},
        {"title": "---", "description": "a\n---\nb"},
        {},
    ],
)
def test_front_matter_round_trip(meta):
    parsed, body = parse_front_matter(serialize_front_matter(meta, "Body text\n"))
    assert parsed == meta
    assert body == "Body text"


def test_parse_front_matter_splits_body():
    text = "---\ntitle: Hello\nDescription: Short\n---\n# Heading\n\nParagraph.\n"
    meta, body = parse_front_matter(text)
    assert meta == {"title": "Hello", "description": "Short"}
    assert body == "# Heading\n\nParagraph."


def test_indented_delimiter_inside_a_scalar_does_not_close_the_block():
    meta, body = parse_front_matter("---\nnotes: |\n  ---\n  kept\n---\nBody")
    assert meta == {"notes": "---\nkept\n"}
    assert body == "Body"


def test_round_trip_lower_cases_keys():
    parsed, _ = parse_front_matter(serialize_front_matter({"Title": "Alpha", "TAGS": "x"}))
    assert parsed == {"title": "Alpha", "tags": "x"}


def test_parse_front_matter_tolerates_bom():
    meta, _ = parse_front_matter("\ufeff---\ntitle: Bom\n---\nbody")
    assert meta["title"] == "Bom"


def test_missing_opening_delimiter_is_malformed():
    with pytest.raises(MalformedFrontMatterError) as excinfo:
        parse_front_matter("title: Hello\n\nbody", Path("hello.md"))
    assert excinfo.value.source == Path("hello.md")
    assert "opening" in str(excinfo.value)


def test_missing_closing_delimiter_is_malformed():
    with pytest.raises(MalformedFrontMatterError, match="closing"):
        parse_front_matter("---\ntitle: Hello\nbody without end")


@pytest.mark.parametrize(
    "block",
    [
        "title: [unclosed",
        "- just\n- a list",
        "plain words",
        "1: numeric key",
    ],
)
def test_non_mapping_metadata_is_malformed(block):
    with pytest.raises(MalformedFrontMatterError):
        parse_front_matter(f"---\n{block}\n---\nbody")


def test_empty_metadata_block_is_allowed():
    meta, body = parse_front_matter("---\n---\nbody")
    assert meta == {}
    assert body == "body"


def test_extract_title_prefers_metadata():
    assert extract_title({"title": "Meta"}, "# Heading\nbody") == ("Meta", "# Heading\nbody")


def test_extract_title_falls_back_to_first_heading():
    title, body = extract_title({}, "\n# From Heading\n\nbody")
    assert title == "From Heading"
    assert body == "body"


def test_extract_title_untitled():
    assert extract_title({}, "just text") == ("Untitled", "just text")


def test_parse_date_accepts_yaml_dates_and_strings():
    assert parse_date({"date": dt.date(2024, 3, 1)}) == dt.datetime(2024, 3, 1)
    assert parse_date({"date": "2024-03-01 10:30"}) == dt.datetime(2024, 3, 1, 10, 30)
    assert parse_date({}) is None


def test_parse_date_rejects_garbage():
    with pytest.raises(MalformedFrontMatterError, match="invalid date"):
        parse_date({"date": "next tuesday"})


def test_slugify():
    assert slugify("Hello World_Post") == "hello-world-post"
    assert slugify("!!!") == "post"


def test_normalize_list_spacing_inserts_blank_line_outside_fences():
    text = "Intro\n- a\n- b\n```\nx\n- not a list\n```"
    assert normalize_list_spacing(text) == "Intro\n\n- a\n- b\n```\nx\n- not a list\n```"


def test_count_words_mixes_latin_and_cjk():
    assert count_words("hello world 你好") == 4


def test_summarize_truncates():
    assert summarize("word " * 100, limit=10) == "word word ..."
