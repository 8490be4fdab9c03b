# knowbase/services/category_service.py
from __future__ import annotations
import logging
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy import select, func, update, delete
from knowbase.db import atomic
from knowbase.errors import (
    ValidationError,
    NotFoundError,
    SelfParentError,
    CycleError,
    HasChildrenError,
)
from knowbase.models.category import Category
from knowbase.models.article import Article
from knowbase.models.tag import article_tags
from knowbase.services.cascade_service import CascadeSet, compute_cascade_set
from knowbase.services.cycle_guard import load_parent_map, would_create_cycle

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 96  # = Category.name String(96)

# -------------------------------------------------
# Validierung
# -------------------------------------------------
def clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("category name must not be empty")
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"category name must be at most {MAX_NAME_LENGTH} characters")
    return name

def optional_int(value: Any, field: str) -> Optional[int]:
    if value is None:
        return None
    # bool ist auch int – hier nicht gewollt
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer or null")
    return value

# -------------------------------------------------
# Lesen
# -------------------------------------------------
def list_categories(db: Session) -> List[Dict[str, Any]]:
    """Alle Kategorien inkl. article_count, sortiert nach (sort_order, name)."""
    rows = db.execute(
        select(Category, func.count(Article.id))
        .outerjoin(Article, Article.category_id == Category.id)
        .group_by(Category.id)
        .order_by(Category.sort_order.asc(), Category.name.asc(), Category.id.asc())
    ).all()
    out = []
    for cat, count in rows:
        item = cat.to_dict()
        item["article_count"] = int(count or 0)
        out.append(item)
    return out

def get_category(db: Session, cat_id: int) -> Category:
    c = db.get(Category, cat_id)
    if c is None:
        raise NotFoundError(f"category {cat_id} not found")
    return c

def _require_parent(db: Session, parent_id: Optional[int]) -> None:
    if parent_id is not None and db.get(Category, parent_id) is None:
        raise NotFoundError(f"parent category {parent_id} not found")

# -------------------------------------------------
# Schreiben
# -------------------------------------------------
def create_category(db: Session, name: Any, parent_id: Any = None, sort_order: Any = 0) -> int:
    name = clean_name(name)
    parent_id = optional_int(parent_id, "parent_id")
    sort_order = optional_int(sort_order, "sort_order") or 0

    with atomic(db):
        _require_parent(db, parent_id)
        c = Category(name=name, parent_id=parent_id, sort_order=sort_order)
        db.add(c)
        db.flush()
        new_id = c.id
    logger.info("category.create id=%s parent=%s", new_id, parent_id)
    return new_id

def update_category(
    db: Session,
    cat_id: int,
    name: Any,
    parent_id: Any = None,
    sort_order: Any = None,
) -> int:
    """
    Setzt name/parent_id (und optional sort_order). Prüfung und Schreiben
    laufen in derselben Transaktion. Gibt die Zahl geänderter Zeilen zurück.
    """
    name = clean_name(name)
    parent_id = optional_int(parent_id, "parent_id")
    sort_order = optional_int(sort_order, "sort_order")

    with atomic(db):
        get_category(db, cat_id)
        if parent_id == cat_id:
            raise SelfParentError("a category cannot be its own parent")
        _require_parent(db, parent_id)
        if would_create_cycle(load_parent_map(db), cat_id, parent_id):
            logger.info("category.update.rejected id=%s parent=%s reason=cycle", cat_id, parent_id)
            raise CycleError(f"moving category {cat_id} under {parent_id} would create a cycle")

        values: Dict[str, Any] = {"name": name, "parent_id": parent_id}
        if sort_order is not None:
            values["sort_order"] = sort_order
        changes = db.execute(
            update(Category).where(Category.id == cat_id).values(**values)
        ).rowcount
    logger.info("category.update id=%s parent=%s", cat_id, parent_id)
    return changes

def _apply_cascade(db: Session, cascade: CascadeSet) -> None:
    if cascade.tag_links:
        db.execute(
            delete(article_tags).where(article_tags.c.article_id.in_(sorted(cascade.article_ids)))
        )
    if cascade.article_ids:
        db.execute(delete(Article).where(Article.id.in_(sorted(cascade.article_ids))))

def _remove_category_row(db: Session, cat_id: int) -> None:
    db.execute(delete(Category).where(Category.id == cat_id))

def delete_category(db: Session, cat_id: int) -> int:
    """
    Löscht eine kinderlose Kategorie samt Artikeln und deren Tag-Zuordnungen.
    Alles oder nichts; Rückgabe: Anzahl gelöschter Artikel.
    """
    with atomic(db):
        get_category(db, cat_id)
        has_children = db.execute(
            select(Category.id).where(Category.parent_id == cat_id).limit(1)
        ).first()
        if has_children is not None:
            raise HasChildrenError(
                f"category {cat_id} has sub-categories; move or delete them first"
            )
        cascade = compute_cascade_set(db, cat_id)
        _apply_cascade(db, cascade)
        _remove_category_row(db, cat_id)
    logger.info(
        "category.delete id=%s articles=%s tag_links=%s",
        cat_id, cascade.article_count, len(cascade.tag_links),
    )
    return cascade.article_count
