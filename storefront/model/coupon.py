# --- storefront/model/coupon.py ---

from ..extensions import db
from ..utils.api import iso
from ..utils.money import to_json_money
from ..utils.parse import utcnow

PERCENTAGE = "percentage"
FIXED = "fixed"
DISCOUNT_TYPES = (PERCENTAGE, FIXED)


class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)

    # "percentage" or "fixed"
    discount_type = db.Column(db.String(16), nullable=False, default=PERCENTAGE)
    discount_value = db.Column(db.Numeric(12, 2), nullable=False)

    # Optional constraints
    min_order_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    max_discount_amount = db.Column(db.Numeric(12, 2), nullable=True)  # caps percentage discounts
    valid_from = db.Column(db.DateTime, nullable=True)
    valid_until = db.Column(db.DateTime, nullable=True)
    max_uses = db.Column(db.Integer, nullable=True)           # global usage cap
    max_uses_per_user = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    usages = db.relationship("CouponUsage", back_populates="coupon", lazy="select")

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "discount_type": self.discount_type,
            "discount_value": to_json_money(self.discount_value),
            "min_order_amount": to_json_money(self.min_order_amount),
            "max_discount_amount": to_json_money(self.max_discount_amount),
            "valid_from": iso(self.valid_from),
            "valid_until": iso(self.valid_until),
            "max_uses": self.max_uses,
            "max_uses_per_user": self.max_uses_per_user,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
        }


class CouponUsage(db.Model):
    """One row per redeemed coupon; audit trail and the basis for cap counting."""
    __tablename__ = "coupon_usage"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_coupon_usage_order"),
        db.Index("ix_coupon_usage_coupon_user", "coupon_id", "user_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    coupon = db.relationship("Coupon", back_populates="usages")
