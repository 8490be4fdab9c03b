# knowbase/services/cascade_service.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import FrozenSet, Tuple
from sqlalchemy import select
from sqlalchemy.orm import Session
from knowbase.models.article import Article
from knowbase.models.tag import article_tags


@dataclass(frozen=True)
class CascadeSet:
    """Was beim Löschen einer Kategorie mit entfernt werden muss."""

    article_ids: FrozenSet[int] = field(default_factory=frozenset)
    tag_links: FrozenSet[Tuple[int, int]] = field(default_factory=frozenset)

    @property
    def article_count(self) -> int:
        return len(self.article_ids)


def compute_cascade_set(db: Session, category_id: int) -> CascadeSet:
    """Nur lesen – angewendet wird die Menge von category_service.delete_category()."""
    article_ids = frozenset(
        db.execute(select(Article.id).where(Article.category_id == category_id)).scalars().all()
    )
    if not article_ids:
        return CascadeSet()
    links = db.execute(
        select(article_tags.c.article_id, article_tags.c.tag_id)
        .where(article_tags.c.article_id.in_(sorted(article_ids)))
    ).all()
    return CascadeSet(
        article_ids=article_ids,
        tag_links=frozenset((a, t) for a, t in links),
    )
