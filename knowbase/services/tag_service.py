# knowbase/services/tag_service.py
from __future__ import annotations
from typing import Any, Dict, Iterable, List
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from knowbase.errors import ValidationError
from knowbase.models.tag import Tag, article_tags

MAX_TAG_LENGTH = 64  # = Tag.name String(64)

def list_tags(db: Session) -> List[Dict[str, Any]]:
    """Alle Tags mit Artikelanzahl; verwaiste Tags (count 0) bleiben sichtbar."""
    count = func.count(article_tags.c.article_id).label("count")
    rows = db.execute(
        select(Tag.id, Tag.name, count)
        .outerjoin(article_tags, article_tags.c.tag_id == Tag.id)
        .group_by(Tag.id, Tag.name)
        .order_by(count.desc(), Tag.name.asc())
    ).all()
    return [{"id": r.id, "name": r.name, "count": int(r.count)} for r in rows]

def clean_tag_name(name: str) -> str:
    name = name.strip()
    if len(name) > MAX_TAG_LENGTH:
        raise ValidationError(f"tag name must be at most {MAX_TAG_LENGTH} characters")
    return name

def normalize_tag_names(names: Iterable[Any]) -> List[str]:
    seen: set[str] = set()
    norm: List[str] = []
    for t in names:
        if not isinstance(t, str) or not t.strip():
            continue
        name = clean_tag_name(t)
        if name not in seen:
            seen.add(name)
            norm.append(name)
    return norm

def ensure_tags(db: Session, names: Iterable[Any]) -> List[Tag]:
    """Holt Tags per Name, legt fehlende an (ohne Commit – läuft in der Transaktion des Aufrufers)."""
    norm = normalize_tag_names(names)
    if not norm:
        return []
    existing = {t.name: t for t in db.execute(select(Tag).where(Tag.name.in_(norm))).scalars().all()}
    for name in norm:
        if name not in existing:
            t = Tag(name=name)
            db.add(t)
            db.flush()
            existing[name] = t
    return [existing[n] for n in norm]
