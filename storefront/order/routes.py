# storefront/order/routes.py

from . import bp
from ..extensions import db
from ..services import coupon_service, order_service
from ..utils.api import json_body, ok
from ..utils.decorators import auth_required, current_user_id


@bp.post("")
@auth_required
def create_order():
    payload = json_body()
    order = order_service.create_order(db.session, current_user_id(), payload.get("items"))
    resp = ok(order.as_api(), 201)
    resp.headers["X-Order-Id"] = str(order.id)
    return resp


@bp.get("")
@auth_required
def list_orders():
    orders = order_service.get_user_orders(db.session, current_user_id())
    return ok([o.as_api() for o in orders])


@bp.post("/<int(max=2147483647):order_id>/cancel")
@auth_required
def cancel_order(order_id: int):
    order_service.cancel_order(db.session, current_user_id(), order_id)
    return ok({"message": "Order cancelled successfully"})


@bp.post("/<int(max=2147483647):order_id>/apply-coupon")
@auth_required
def apply_coupon(order_id: int):
    payload = json_body()
    order, discount = coupon_service.apply_coupon_to_order(
        db.session, current_user_id(), order_id, payload.get("couponCode")
    )
    return ok({"order": order.as_api(), "discount": discount})
