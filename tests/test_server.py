from pathlib import Path

from fastapi.testclient import TestClient

from mdpress.models import Article
from mdpress.pages import assemble
from mdpress.publish import MemoryTarget, publish
from mdpress.server import create_app


def _client() -> TestClient:
    article = Article(slug="a", title="Alpha", description="", body="Alpha *body*.", source=Path("a.md"))
    target = MemoryTarget()
    publish(assemble([article]), target)
    return TestClient(create_app(target))


def test_root_serves_the_index_page():
    response = _client().get("/")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert "Alpha" in response.text


def test_article_and_stylesheet_are_served():
    client = _client()
    article = client.get("/posts/a.html")
    assert article.status_code == 200
    assert "<em>body</em>" in article.text
    stylesheet = client.get("/css/code.css")
    assert stylesheet.headers["content-type"].startswith("text/css")
    assert ".codehilite" in stylesheet.text


def test_unknown_path_is_not_found():
    response = _client().get("/posts/missing.html")
    assert response.status_code == 404
    assert response.text == "Not found"
