import logging
from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from knowbase.db import get_session

logger = logging.getLogger(__name__)

meta_bp = Blueprint("meta", __name__, url_prefix="")

@meta_bp.get("/health")
def health():
    db = get_session()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("health.database.failed")
        return jsonify({"status": "error", "database": "unavailable"}), 503
    finally:
        db.close()
    return jsonify({"status": "ok", "database": "ok"}), 200
