# storefront/coupon/routes.py

from . import bp
from ..extensions import db
from ..services import coupon_service
from ..utils.api import json_body, ok
from ..utils.decorators import auth_required


@bp.get("")
def list_coupons():
    coupons = coupon_service.get_active_coupons(db.session)
    return ok([c.as_api() for c in coupons])


@bp.post("")
@auth_required
def create_coupon():
    data = json_body()
    coupon = coupon_service.create_coupon_from_payload(db.session, data)
    return ok(coupon.as_api(), 201)
