# knowbase/services/cycle_guard.py
from __future__ import annotations
from typing import Mapping, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session
from knowbase.models.category import Category


def load_parent_map(db: Session) -> dict[int, Optional[int]]:
    """id -> parent_id aller Kategorien (innerhalb der laufenden Transaktion lesen!)."""
    rows = db.execute(select(Category.id, Category.parent_id)).all()
    return {cid: pid for cid, pid in rows}


def would_create_cycle(
    parents: Mapping[int, Optional[int]],
    category_id: int,
    proposed_parent_id: Optional[int],
) -> bool:
    """
    True, wenn `category_id` unter `proposed_parent_id` gehängt einen Zyklus ergäbe.

    Läuft von `proposed_parent_id` die Vorfahren hoch. Trifft der Lauf auf
    `category_id`, auf einen bereits gesehenen Knoten oder dauert er länger als
    es Kategorien gibt, gilt das als Zyklus. Endet er an einer Wurzel (parent
    None oder unbekannte id), ist die Kante erlaubt.
    """
    if proposed_parent_id is None:
        return False
    if proposed_parent_id == category_id:
        return True

    limit = len(parents) + 1
    seen: set[int] = set()
    current: Optional[int] = proposed_parent_id
    steps = 0
    while current is not None:
        if current == category_id or current in seen:
            return True
        steps += 1
        if steps > limit:
            return True
        seen.add(current)
        current = parents.get(current)
    return False
