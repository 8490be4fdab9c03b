# knowbase/services/transfer_service.py
"""JSON-Export und transaktionaler Import des kompletten Bestands."""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy import select, update, insert
from sqlalchemy.orm import Session
from knowbase.db import atomic
from knowbase.errors import ValidationError, NotFoundError, CycleError
from knowbase.models.article import Article
from knowbase.models.category import Category
from knowbase.models.tag import Tag, article_tags
from knowbase.services.category_service import clean_name, optional_int
from knowbase.services.cycle_guard import load_parent_map, would_create_cycle
from knowbase.services.article_service import MAX_TITLE_LENGTH
from knowbase.services.tag_service import clean_tag_name

logger = logging.getLogger(__name__)

# -------------------------------------------------
# Export
# -------------------------------------------------
def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None

def export_all(db: Session) -> Dict[str, Any]:
    categories = [c.to_dict() for c in db.execute(select(Category).order_by(Category.id)).scalars()]
    articles = [
        {
            "id": a.id,
            "title": a.title,
            "content": a.content,
            "category_id": a.category_id,
            "created_at": _iso(a.created_at),
            "updated_at": _iso(a.updated_at),
        }
        for a in db.execute(select(Article).order_by(Article.id)).scalars()
    ]
    tags = [{"id": t.id, "name": t.name} for t in db.execute(select(Tag).order_by(Tag.id)).scalars()]
    links = [
        {"article_id": r.article_id, "tag_id": r.tag_id}
        for r in db.execute(
            select(article_tags.c.article_id, article_tags.c.tag_id)
            .order_by(article_tags.c.article_id, article_tags.c.tag_id)
        )
    ]
    return {
        "categories": categories,
        "articles": articles,
        "tags": tags,
        "article_tags": links,
        "exported_at": datetime.now(timezone.utc).isoformat(),
    }

# -------------------------------------------------
# Import
# -------------------------------------------------
def _rows(payload: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    rows = payload.get(key) or []
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise ValidationError(f"'{key}' must be a list of objects")
    return rows

def _req_int(row: Dict[str, Any], key: str, table: str) -> int:
    value = optional_int(row.get(key), f"{table}.{key}")
    if value is None:
        raise ValidationError(f"{table}.{key} is required")
    return value

def _parse_ts(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise ValidationError(f"invalid timestamp: {value!r}")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"invalid timestamp: {value!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed

def _import_categories(db: Session, rows: List[Dict[str, Any]]) -> int:
    existing = set(db.execute(select(Category.id)).scalars().all())
    pending: List[tuple[int, Optional[int]]] = []
    for row in rows:
        cid = _req_int(row, "id", "categories")
        if cid in existing:
            continue
        existing.add(cid)
        db.add(Category(
            id=cid,
            name=clean_name(row.get("name")),
            parent_id=None,
            sort_order=optional_int(row.get("sort_order"), "categories.sort_order") or 0,
        ))
        pending.append((cid, optional_int(row.get("parent_id"), "categories.parent_id")))
    db.flush()

    # erst alle Zeilen, dann Eltern verknüpfen – Reihenfolge im Export egal
    parents = load_parent_map(db)
    for cid, pid in pending:
        if pid is None:
            continue
        if pid not in parents:
            raise NotFoundError(f"category {cid} references missing parent {pid}")
        if would_create_cycle(parents, cid, pid):
            raise CycleError(f"imported categories contain a cycle at {cid} -> {pid}")
        parents[cid] = pid
        db.execute(update(Category).where(Category.id == cid).values(parent_id=pid))
    return len(pending)

def _import_tags(db: Session, rows: List[Dict[str, Any]]) -> tuple[int, Dict[int, int]]:
    """Gibt (neu angelegt, Import-id -> echte id) zurück; gleiche Namen werden zusammengeführt."""
    by_name = {t.name: t.id for t in db.execute(select(Tag)).scalars()}
    by_id = set(by_name.values())
    id_map: Dict[int, int] = {}
    created = 0
    for row in rows:
        tid = _req_int(row, "id", "tags")
        name = row.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("tags.name is required")
        name = clean_tag_name(name)
        if name in by_name:
            id_map[tid] = by_name[name]
            continue
        if tid in by_id:
            # id schon vergeben, Name neu: neue id vergeben lassen
            t = Tag(name=name)
        else:
            t = Tag(id=tid, name=name)
        db.add(t)
        db.flush()
        by_name[name] = t.id
        by_id.add(t.id)
        id_map[tid] = t.id
        created += 1
    return created, id_map

def _import_articles(db: Session, rows: List[Dict[str, Any]]) -> int:
    existing = set(db.execute(select(Article.id)).scalars().all())
    categories = set(db.execute(select(Category.id)).scalars().all())
    created = 0
    for row in rows:
        aid = _req_int(row, "id", "articles")
        if aid in existing:
            continue
        category_id = _req_int(row, "category_id", "articles")
        if category_id not in categories:
            raise NotFoundError(f"article {aid} references missing category {category_id}")
        title, content = row.get("title"), row.get("content")
        if not isinstance(title, str) or not title.strip() or not isinstance(content, str):
            raise ValidationError(f"article {aid} needs title and content")
        title = title.strip()
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"article {aid} title must be at most {MAX_TITLE_LENGTH} characters")
        a = Article(id=aid, title=title, content=content, category_id=category_id)
        created_at = _parse_ts(row.get("created_at"))
        updated_at = _parse_ts(row.get("updated_at"))
        if created_at:
            a.created_at = created_at
        if updated_at or created_at:
            a.updated_at = updated_at or created_at
        db.add(a)
        existing.add(aid)
        created += 1
    db.flush()
    return created

def _import_links(db: Session, rows: List[Dict[str, Any]], tag_ids: Dict[int, int]) -> int:
    articles = set(db.execute(select(Article.id)).scalars().all())
    tags = set(db.execute(select(Tag.id)).scalars().all())
    present = {
        (r.article_id, r.tag_id)
        for r in db.execute(select(article_tags.c.article_id, article_tags.c.tag_id))
    }
    created = 0
    for row in rows:
        aid = _req_int(row, "article_id", "article_tags")
        raw_tid = _req_int(row, "tag_id", "article_tags")
        tid = tag_ids.get(raw_tid, raw_tid)
        if aid not in articles or tid not in tags:
            raise NotFoundError(f"article_tags row ({aid}, {raw_tid}) references missing rows")
        if (aid, tid) in present:
            continue
        db.execute(insert(article_tags).values(article_id=aid, tag_id=tid))
        present.add((aid, tid))
        created += 1
    return created

def import_all(db: Session, payload: Any) -> Dict[str, int]:
    """
    Importiert einen Export in einer Transaktion. Vorhandene ids werden
    übersprungen; jeder Fehler rollt den kompletten Import zurück.
    """
    if not isinstance(payload, dict):
        raise ValidationError("import payload must be a JSON object")
    category_rows = _rows(payload, "categories")
    tag_rows = _rows(payload, "tags")
    article_rows = _rows(payload, "articles")
    link_rows = _rows(payload, "article_tags")

    with atomic(db):
        counts = {"categories": _import_categories(db, category_rows)}
        counts["tags"], tag_ids = _import_tags(db, tag_rows)
        counts["articles"] = _import_articles(db, article_rows)
        counts["article_tags"] = _import_links(db, link_rows, tag_ids)
    logger.info(
        "transfer.import categories=%s tags=%s articles=%s article_tags=%s",
        counts["categories"], counts["tags"], counts["articles"], counts["article_tags"],
    )
    return counts
