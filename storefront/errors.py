# --- storefront/errors.py ---
"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``register_error_handlers`` turns them into
``{"error": message}`` responses with the status each class carries.
"""
from flask import jsonify
from werkzeug.exceptions import HTTPException

from .utils.api import api_error


class ApiError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


# 400
class ValidationError(ApiError):
    status_code = 400
    default_message = "Invalid request"


# 404
class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class ProductNotFound(NotFound):
    default_message = "Product not found"


class OrderNotFound(NotFound):
    default_message = "Order not found"


class CouponNotFound(NotFound):
    default_message = "Coupon not found"


# 401
class Unauthorized(ApiError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidCredential(Unauthorized):
    default_message = "Invalid credentials"


# 400, business rule violations
class StateConflict(ApiError):
    status_code = 400
    default_message = "Conflict"


class EmailTaken(StateConflict):
    default_message = "User already exists"


class InsufficientStock(StateConflict):
    default_message = "Insufficient stock"


class InvalidStateTransition(StateConflict):
    default_message = "Invalid order status transition"


class CouponAlreadyApplied(StateConflict):
    default_message = "Order already has a coupon applied"


class CouponInactive(StateConflict):
    default_message = "Coupon is not active"


class CouponNotYetValid(StateConflict):
    default_message = "Coupon is not yet valid"


class CouponExpired(StateConflict):
    default_message = "Coupon has expired"


class OrderBelowMinimum(StateConflict):
    default_message = "Order amount is below the coupon minimum"


class CouponUsageLimitReached(StateConflict):
    default_message = "Coupon has reached maximum usage limit"


class CouponUserLimitReached(StateConflict):
    default_message = "You have already used this coupon the maximum number of times"


# 500
class InternalFault(ApiError):
    status_code = 500


class InvalidDiscountConfiguration(InternalFault):
    default_message = "Invalid coupon discount configuration"


GENERIC_FAULT_MESSAGE = "Internal server error"


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(e):
        if e.status_code >= 500:
            # never echo internal detail to the caller
            app.logger.error("internal fault: %s", e.message)
            return jsonify(api_error(GENERIC_FAULT_MESSAGE)), e.status_code
        return jsonify(api_error(e.message)), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify(api_error(e.description or e.name)), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        app.logger.exception("unhandled error: %s", e)
        return jsonify(api_error(GENERIC_FAULT_MESSAGE)), 500
