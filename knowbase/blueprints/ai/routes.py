from flask import Blueprint, current_app, jsonify
from knowbase.blueprints import json_body
from knowbase.blueprints.auth.routes import require_login
from knowbase.services import ai_service

ai_bp = Blueprint("ai", __name__)
ai_bp.before_request(require_login)

@ai_bp.post("/generate")
def ai_generate():
    data = json_body()
    return jsonify(ai_service.generate(current_app.config, data.get("prompt"), data.get("context", "")))

@ai_bp.post("/summarize")
def ai_summarize():
    data = json_body()
    return jsonify(ai_service.summarize(current_app.config, data.get("content")))
