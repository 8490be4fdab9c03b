# knowbase/blueprints/api/routes.py
from __future__ import annotations
from typing import Optional
from flask import Blueprint, current_app, jsonify, request
from knowbase.db import get_session
from knowbase.errors import ValidationError
from knowbase.blueprints import json_body
from knowbase.blueprints.auth.routes import require_login
from knowbase.services.tree_cache import TreeCache
from knowbase.services.category_tree import build_forest
from knowbase.services.category_service import (
    list_categories,
    create_category,
    update_category,
    delete_category,
)
from knowbase.services.article_service import (
    list_articles,
    get_article,
    create_article,
    update_article,
    delete_article,
)
from knowbase.services.tag_service import list_tags
from knowbase.services.transfer_service import export_all, import_all

api_bp = Blueprint("api", __name__)
api_bp.before_request(require_login)

# -----------------------
# Helpers
# -----------------------
def _tree_cache() -> TreeCache:
    return current_app.extensions["knowbase.tree_cache"]

def _int_arg(name: str, required: bool = True) -> Optional[int]:
    raw = request.args.get(name)
    if raw is None or not raw.strip():
        if required:
            raise ValidationError(f"'{name}' query parameter is required")
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"'{name}' query parameter must be an integer")

def _no_cache(resp):
    resp.headers["Cache-Control"] = "no-cache"
    return resp

# -----------------------
# Kategorien
# -----------------------
def _load_forest():
    db = get_session()
    try:
        return build_forest(list_categories(db))
    finally:
        db.close()

@api_bp.get("/categories")
def api_list_categories():
    return _no_cache(jsonify(_tree_cache().get_or_build(_load_forest)))

@api_bp.post("/categories")
def api_create_category():
    data = json_body()
    db = get_session()
    try:
        new_id = create_category(db, data.get("name"), data.get("parent_id"), data.get("sort_order", 0))
    finally:
        db.close()
    _tree_cache().invalidate()
    return jsonify({"success": True, "id": new_id})

@api_bp.put("/categories")
def api_update_category():
    cat_id = _int_arg("id")
    data = json_body()
    db = get_session()
    try:
        changes = update_category(db, cat_id, data.get("name"), data.get("parent_id"), data.get("sort_order"))
    finally:
        db.close()
    _tree_cache().invalidate()
    return jsonify({"success": True, "changes": changes})

@api_bp.delete("/categories")
def api_delete_category():
    cat_id = _int_arg("id")
    db = get_session()
    try:
        deleted = delete_category(db, cat_id)
    finally:
        db.close()
    _tree_cache().invalidate()
    return jsonify({"success": True, "deleted_articles": deleted})

# -----------------------
# Artikel
# -----------------------
@api_bp.get("/articles")
def api_articles():
    article_id = _int_arg("id", required=False)
    db = get_session()
    try:
        if article_id is not None:
            return _no_cache(jsonify(get_article(db, article_id)))
        items = list_articles(
            db,
            category_id=_int_arg("category", required=False),
            tag=(request.args.get("tag") or "").strip() or None,
            q=(request.args.get("q") or "").strip() or None,
        )
        return _no_cache(jsonify(items))
    finally:
        db.close()

@api_bp.post("/articles")
def api_create_article():
    data = json_body()
    db = get_session()
    try:
        new_id = create_article(db, data)
    finally:
        db.close()
    # article_count im Baum hat sich geändert
    _tree_cache().invalidate()
    return jsonify({"success": True, "id": new_id})

@api_bp.put("/articles")
def api_update_article():
    article_id = _int_arg("id")
    data = json_body()
    db = get_session()
    try:
        update_article(db, article_id, data)
    finally:
        db.close()
    _tree_cache().invalidate()
    return jsonify({"success": True})

@api_bp.delete("/articles")
def api_delete_article():
    article_id = _int_arg("id")
    db = get_session()
    try:
        delete_article(db, article_id)
    finally:
        db.close()
    _tree_cache().invalidate()
    return jsonify({"success": True})

# -----------------------
# Tags
# -----------------------
@api_bp.get("/tags")
def api_list_tags():
    db = get_session()
    try:
        return _no_cache(jsonify(list_tags(db)))
    finally:
        db.close()

# -----------------------
# Export / Import
# -----------------------
@api_bp.get("/export")
def api_export():
    db = get_session()
    try:
        resp = jsonify(export_all(db))
    finally:
        db.close()
    resp.headers["Content-Disposition"] = "attachment; filename=knowbase-export.json"
    return _no_cache(resp)

@api_bp.post("/import")
def api_import():
    data = request.get_json(silent=True)
    db = get_session()
    try:
        counts = import_all(db, data)
    finally:
        db.close()
    _tree_cache().invalidate()
    return jsonify({"success": True, "imported": counts})
