# knowbase/services/article_service.py
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, or_, delete
from knowbase.db import atomic
from knowbase.errors import ValidationError, NotFoundError
from knowbase.models.article import Article, utcnow
from knowbase.models.category import Category
from knowbase.models.tag import Tag, article_tags
from knowbase.services.tag_service import ensure_tags

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 255  # = Article.title String(255)

def serialize_article(a: Article, category_name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": a.id,
        "title": a.title,
        "content": a.content,
        "category_id": a.category_id,
        "category_name": category_name,
        "tags": [t.name for t in a.tags],
        "created_at": a.created_at.isoformat() if a.created_at else None,
        "updated_at": a.updated_at.isoformat() if a.updated_at else None,
    }

def list_articles(
    db: Session,
    category_id: Optional[int] = None,
    tag: Optional[str] = None,
    q: Optional[str] = None,
) -> List[Dict[str, Any]]:
    stmt = (
        select(Article, Category.name)
        .outerjoin(Category, Article.category_id == Category.id)
        .order_by(Article.created_at.desc(), Article.id.desc())
    )
    if category_id is not None:
        stmt = stmt.where(Article.category_id == category_id)
    if tag:
        stmt = stmt.where(
            Article.id.in_(
                select(article_tags.c.article_id)
                .join(Tag, Tag.id == article_tags.c.tag_id)
                .where(Tag.name == tag)
            )
        )
    if q:
        pattern = f"%{q.strip()}%"
        stmt = stmt.where(or_(Article.title.ilike(pattern), Article.content.ilike(pattern)))
    return [serialize_article(a, cname) for a, cname in db.execute(stmt).all()]

def get_article(db: Session, article_id: int) -> Dict[str, Any]:
    a = db.get(Article, article_id)
    if a is None:
        raise NotFoundError(f"article {article_id} not found")
    cat = db.get(Category, a.category_id)
    return serialize_article(a, cat.name if cat else None)

def _validate(data: Dict[str, Any]) -> Dict[str, Any]:
    title = data.get("title")
    content = data.get("content")
    category_id = data.get("category_id")
    tags = data.get("tags") or []
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title, content and category are required")
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("title, content and category are required")
    if isinstance(category_id, bool) or not isinstance(category_id, int):
        raise ValidationError("title, content and category are required")
    if not isinstance(tags, list):
        raise ValidationError("tags must be a list")
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"title must be at most {MAX_TITLE_LENGTH} characters")
    return {"title": title, "content": content, "category_id": category_id, "tags": tags}

def _require_category(db: Session, category_id: int) -> None:
    if db.get(Category, category_id) is None:
        raise NotFoundError(f"category {category_id} not found")

def create_article(db: Session, data: Dict[str, Any]) -> int:
    clean = _validate(data)
    with atomic(db):
        _require_category(db, clean["category_id"])
        a = Article(title=clean["title"], content=clean["content"], category_id=clean["category_id"])
        a.tags = ensure_tags(db, clean["tags"])
        db.add(a)
        db.flush()
        new_id = a.id
    logger.info("article.create id=%s category=%s", new_id, clean["category_id"])
    return new_id

def update_article(db: Session, article_id: int, data: Dict[str, Any]) -> None:
    """Ersetzt Titel, Inhalt, Kategorie und die komplette Tag-Liste."""
    clean = _validate(data)
    with atomic(db):
        a = db.get(Article, article_id)
        if a is None:
            raise NotFoundError(f"article {article_id} not found")
        _require_category(db, clean["category_id"])
        a.title = clean["title"]
        a.content = clean["content"]
        a.category_id = clean["category_id"]
        a.tags = ensure_tags(db, clean["tags"])
        a.updated_at = utcnow()
    logger.info("article.update id=%s", article_id)

def delete_article(db: Session, article_id: int) -> None:
    with atomic(db):
        if db.get(Article, article_id) is None:
            raise NotFoundError(f"article {article_id} not found")
        db.execute(delete(article_tags).where(article_tags.c.article_id == article_id))
        db.execute(delete(Article).where(Article.id == article_id))
    logger.info("article.delete id=%s", article_id)
