from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Iterator

import pytest
from flask import Flask
from sqlalchemy import func, select

from knowbase import create_app
from knowbase import db as kb_db
from knowbase.models.article import Article
from knowbase.models.category import Category
from knowbase.models.tag import Tag, article_tags


@pytest.fixture()
def make_app(tmp_path: Path) -> Iterator[Callable[..., Flask]]:
    counter = {"n": 0}

    def _make(**overrides: Any) -> Flask:
        counter["n"] += 1
        db_file = tmp_path / f"kb-{counter['n']}.db"
        config: Dict[str, Any] = {
            "TESTING": True,
            "DATABASE_URL": f"sqlite:///{db_file}",
            "LOGIN_DISABLED": True,
            "KB_PASSWORD": "letmein",
            "KB_PASSWORD_HASH": "",
            "AI_BASE_URL": "",
            "TREE_CACHE_TTL": 30.0,
        }
        config.update(overrides)
        return create_app(config)

    yield _make
    if kb_db.engine is not None:
        kb_db.engine.dispose()


@pytest.fixture()
def app(make_app) -> Flask:
    return make_app()


@pytest.fixture()
def client(app: Flask):
    return app.test_client()


@pytest.fixture()
def db(app: Flask):
    session = kb_db.get_session()
    yield session
    session.close()


@pytest.fixture()
def table_counts(db) -> Callable[[], Dict[str, int]]:
    """Zeilenzahlen aller Tabellen, für Vorher/Nachher-Vergleiche."""

    def _counts() -> Dict[str, int]:
        out = {}
        for name, table in (
            ("categories", Category.__table__),
            ("articles", Article.__table__),
            ("tags", Tag.__table__),
            ("article_tags", article_tags),
        ):
            out[name] = db.execute(select(func.count()).select_from(table)).scalar_one()
        return out

    return _counts
