from __future__ import annotations

import copy
import random
from typing import Any, Dict, List

import pytest

from knowbase.errors import TreeBuildError
from knowbase.services.category_tree import build_forest


def _cat(cid: int, name: str, parent_id: int | None, sort_order: int = 0) -> Dict[str, Any]:
    return {"id": cid, "name": name, "parent_id": parent_id, "sort_order": sort_order, "article_count": 0}


def _walk(forest: List[Dict[str, Any]]):
    """(node, depth) für alle Knoten, iterativ."""
    stack = [(node, 1) for node in forest]
    while stack:
        node, depth = stack.pop()
        yield node, depth
        stack.extend((child, depth + 1) for child in node["children"])


def _random_categories(seed: int, size: int) -> List[Dict[str, Any]]:
    rng = random.Random(seed)
    cats = []
    for cid in range(1, size + 1):
        parent = rng.choice([None, None] + [c["id"] for c in cats])
        cats.append(_cat(cid, f"cat-{rng.randint(0, 20)}", parent, rng.randint(0, 3)))
    rng.shuffle(cats)
    return cats


def test_scenario_root_child_grandchild() -> None:
    forest = build_forest([_cat(1, "Root", None), _cat(2, "Child", 1), _cat(3, "Grandchild", 2)])

    assert len(forest) == 1
    root = forest[0]
    assert root["name"] == "Root"
    assert [c["name"] for c in root["children"]] == ["Child"]
    child = root["children"][0]
    assert [c["name"] for c in child["children"]] == ["Grandchild"]
    assert child["children"][0]["children"] == []


@pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
def test_node_count_and_sibling_order(seed: int) -> None:
    cats = _random_categories(seed, 60)
    forest = build_forest(cats)

    nodes = [node for node, _ in _walk(forest)]
    assert len(nodes) == len(cats)
    assert sorted(n["id"] for n in nodes) == sorted(c["id"] for c in cats)

    def key(n):
        return (n["sort_order"], n["name"])

    assert [key(n) for n in forest] == sorted(key(n) for n in forest)
    for node in nodes:
        keys = [key(c) for c in node["children"]]
        assert keys == sorted(keys)
        assert all(c["parent_id"] == node["id"] for c in node["children"])


def test_depth_matches_longest_parent_chain() -> None:
    cats = [_cat(1, "a", None), _cat(2, "b", 1), _cat(3, "c", 2), _cat(4, "d", 1), _cat(5, "e", None)]
    forest = build_forest(cats)
    assert max(depth for _, depth in _walk(forest)) == 3


def test_deep_chain_does_not_recurse() -> None:
    size = 5000
    cats = [_cat(1, "n1", None)] + [_cat(i, f"n{i}", i - 1) for i in range(2, size + 1)]
    forest = build_forest(cats)
    assert max(depth for _, depth in _walk(forest)) == size


def test_multiple_roots_are_ordered_by_sort_order_then_name() -> None:
    forest = build_forest([_cat(1, "b", None, 1), _cat(2, "a", None, 1), _cat(3, "z", None, 0)])
    assert [n["name"] for n in forest] == ["z", "a", "b"]


def test_missing_parent_becomes_root() -> None:
    forest = build_forest([_cat(1, "orphan", 42), _cat(2, "root", None)])
    assert sorted(n["id"] for n in forest) == [1, 2]


def test_cycle_in_input_raises_instead_of_looping() -> None:
    cats = [_cat(1, "root", None), _cat(2, "x", 3), _cat(3, "y", 2)]
    with pytest.raises(TreeBuildError):
        build_forest(cats)


def test_self_parent_in_input_raises() -> None:
    with pytest.raises(TreeBuildError):
        build_forest([_cat(1, "self", 1)])


def test_duplicate_ids_raise() -> None:
    with pytest.raises(TreeBuildError):
        build_forest([_cat(1, "a", None), _cat(1, "b", None)])


def test_idempotent_and_input_untouched() -> None:
    cats = _random_categories(9, 30)
    snapshot = copy.deepcopy(cats)

    first = build_forest(cats)
    second = build_forest(cats)

    assert first == second
    assert cats == snapshot
    assert all("children" not in c for c in cats)


def test_empty_input() -> None:
    assert build_forest([]) == []
