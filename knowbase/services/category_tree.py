# knowbase/services/category_tree.py
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping
from knowbase.errors import TreeBuildError

CategoryNode = Dict[str, Any]


def _sort_key(node: Mapping[str, Any]):
    return (node.get("sort_order") or 0, node.get("name") or "")


def build_forest(flat_categories: Iterable[Mapping[str, Any]]) -> List[CategoryNode]:
    """
    Baut aus einer flachen Kategorienliste den Wald (mehrere Wurzeln).

    Jeder Knoten ist eine Kopie des Eingabe-Dicts plus `children`; Geschwister
    sind nach (sort_order, name) sortiert. Wurzeln sind Einträge ohne parent_id
    oder mit einer parent_id, die in der Eingabe nicht vorkommt.
    Doppelte ids und von keiner Wurzel erreichbare Einträge (Zyklen) lösen
    TreeBuildError aus. Die Eingabe wird nicht verändert.
    """
    # Arena: id -> Knoten
    arena: Dict[int, CategoryNode] = {}
    for raw in flat_categories:
        cid = raw["id"]
        if cid in arena:
            raise TreeBuildError(f"duplicate category id {cid}")
        node = dict(raw)
        node["children"] = []
        arena[cid] = node

    # Adjazenz parent -> children, einmal aufgebaut
    roots: List[CategoryNode] = []
    children_of: Dict[int, List[CategoryNode]] = {}
    for node in arena.values():
        pid = node.get("parent_id")
        if pid is None or pid not in arena:
            roots.append(node)
        else:
            children_of.setdefault(pid, []).append(node)

    roots.sort(key=_sort_key)

    # Explizite Stack-Tiefensuche statt Rekursion
    visited: set[int] = set()
    stack: List[CategoryNode] = list(roots)
    while stack:
        node = stack.pop()
        if node["id"] in visited:
            raise TreeBuildError(f"category {node['id']} reached twice")
        visited.add(node["id"])
        kids = sorted(children_of.get(node["id"], []), key=_sort_key)
        node["children"] = kids
        stack.extend(kids)

    if len(visited) != len(arena):
        stuck = sorted(set(arena) - visited)
        raise TreeBuildError(f"category cycle detected among ids {stuck}")
    return roots

