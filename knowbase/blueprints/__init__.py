from flask import request
from knowbase.errors import ValidationError


def json_body(required: bool = True) -> dict:
    """JSON-Objekt aus dem Request; Listen/Skalare sind ein 400."""
    data = request.get_json(silent=True)
    if data is None and not required:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    return data
