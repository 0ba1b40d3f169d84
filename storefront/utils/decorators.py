# ------- storefront/utils/decorators.py -------
from functools import wraps
from flask import g, jsonify
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from ..errors import Unauthorized
from .api import api_error


def _resolve_user_id():
    verify_jwt_in_request()
    uid = get_jwt_identity()
    try:
        return int(uid)
    except (TypeError, ValueError):
        raise Unauthorized("Invalid token") from None


def auth_required(fn):
    """Reject the request with 401 unless it carries a bearer token for a user id."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        g.user_id = _resolve_user_id()
        return fn(*args, **kwargs)
    return wrapper


def current_user_id() -> int:
    uid = g.get("user_id")
    if uid is None:
        raise Unauthorized()
    return uid


def register_jwt_handlers(jwt):
    @jwt.unauthorized_loader
    def _missing_token(reason):
        return jsonify(api_error("Unauthorized")), 401

    @jwt.invalid_token_loader
    def _invalid_token(reason):
        return jsonify(api_error("Invalid token")), 401

    @jwt.expired_token_loader
    def _expired_token(jwt_header, jwt_payload):
        return jsonify(api_error("Token has expired")), 401
