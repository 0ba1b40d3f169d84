# --- storefront/utils/api.py ---
from flask import jsonify, request


def api_error(message, data=None):
    return {"error": message, **(data or {})}


# unified response helpers
def ok(data, status=200):
    resp = jsonify(data)
    resp.status_code = status
    return resp


def iso(dt):
    return dt.isoformat() if dt else None


def json_body():
    """The request's JSON object, or {} for a missing, malformed or non-object body."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
