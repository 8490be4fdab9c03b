from __future__ import annotations


def _category(client, name: str) -> int:
    return client.post("/api/categories", json={"name": name}).get_json()["id"]


def _article(client, **payload) -> int:
    resp = client.post("/api/articles", json=payload)
    assert resp.status_code == 200, resp.get_data(as_text=True)
    return resp.get_json()["id"]


def test_article_crud(client) -> None:
    notes = _category(client, "Notes")
    other = _category(client, "Other")

    aid = _article(client, title="Hello", content="First body", category_id=notes, tags=["py", " py ", "", "flask"])

    article = client.get(f"/api/articles?id={aid}").get_json()
    assert article["title"] == "Hello"
    assert article["category_name"] == "Notes"
    assert sorted(article["tags"]) == ["flask", "py"]
    assert article["created_at"]

    resp = client.put(
        f"/api/articles?id={aid}",
        json={"title": "Hello again", "content": "Second body", "category_id": other, "tags": ["sql"]},
    )
    assert resp.status_code == 200
    article = client.get(f"/api/articles?id={aid}").get_json()
    assert article["title"] == "Hello again"
    assert article["category_id"] == other
    assert article["tags"] == ["sql"]

    assert client.delete(f"/api/articles?id={aid}").status_code == 200
    assert client.get(f"/api/articles?id={aid}").status_code == 404


def test_article_validation(client) -> None:
    notes = _category(client, "Notes")
    resp = client.post("/api/articles", json={"title": "", "content": "x", "category_id": notes})
    assert resp.status_code == 400
    resp = client.post("/api/articles", json={"title": "t", "content": "x"})
    assert resp.status_code == 400
    resp = client.post("/api/articles", json={"title": "t", "content": "x", "category_id": 999})
    assert resp.status_code == 404
    resp = client.put("/api/articles?id=999", json={"title": "t", "content": "x", "category_id": notes})
    assert resp.status_code == 404


def test_long_title_and_tag_are_rejected(client) -> None:
    notes = _category(client, "Notes")
    aid = _article(client, title="t" * 255, content="x", category_id=notes, tags=["g" * 64])
    article = client.get(f"/api/articles?id={aid}").get_json()
    assert article["title"] == "t" * 255
    assert article["tags"] == ["g" * 64]

    resp = client.post("/api/articles", json={"title": "t" * 256, "content": "x", "category_id": notes})
    assert resp.status_code == 400
    # zwei Tags, die sich erst nach Zeichen 64 unterscheiden, dürfen nicht verschmelzen
    resp = client.post(
        "/api/articles",
        json={"title": "t", "content": "x", "category_id": notes, "tags": ["h" * 64 + "1", "h" * 64 + "2"]},
    )
    assert resp.status_code == 400
    assert len(client.get("/api/articles").get_json()) == 1
    assert [t["name"] for t in client.get("/api/tags").get_json()] == ["g" * 64]


def test_article_filters(client) -> None:
    a = _category(client, "A")
    b = _category(client, "B")
    first = _article(client, title="Flask routing", content="blueprints", category_id=a, tags=["web"])
    second = _article(client, title="SQL joins", content="outer join", category_id=b, tags=["db", "web"])

    ids = [x["id"] for x in client.get("/api/articles").get_json()]
    assert ids == [second, first]

    assert [x["id"] for x in client.get(f"/api/articles?category={a}").get_json()] == [first]
    assert [x["id"] for x in client.get("/api/articles?tag=db").get_json()] == [second]
    assert len(client.get("/api/articles?tag=web").get_json()) == 2
    assert [x["id"] for x in client.get("/api/articles?q=BLUEPRINT").get_json()] == [first]
    assert client.get("/api/articles?category=x").status_code == 400


def test_tags_are_listed_with_counts(client) -> None:
    a = _category(client, "A")
    _article(client, title="one", content="c", category_id=a, tags=["web", "db"])
    _article(client, title="two", content="c", category_id=a, tags=["web"])
    aid = _article(client, title="three", content="c", category_id=a, tags=["lonely"])
    client.delete(f"/api/articles?id={aid}")

    tags = client.get("/api/tags").get_json()
    assert [(t["name"], t["count"]) for t in tags] == [("web", 2), ("db", 1), ("lonely", 0)]
