# storefront/model/order.py
from sqlalchemy.orm import validates

from ..extensions import db
from ..errors import InvalidStateTransition
from ..utils.api import iso
from ..utils.money import D, round_money, to_json_money
from ..utils.parse import utcnow

PENDING = "pending"
COMPLETED = "completed"
CANCELLED = "cancelled"
ORDER_STATUSES = (PENDING, COMPLETED, CANCELLED)

# pending is the only non-terminal state
_ALLOWED_TRANSITIONS = {
    PENDING: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
}


class Order(db.Model):
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # selectin keeps the eager load out of the locking SELECT ... FOR UPDATE
    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id.asc()",
    )

    @validates("status")
    def _check_transition(self, key, new_status):
        if new_status not in ORDER_STATUSES:
            raise InvalidStateTransition(f"Unknown order status '{new_status}'")
        current = self.status
        if current is None or current == new_status:
            return new_status
        if new_status not in _ALLOWED_TRANSITIONS.get(current, set()):
            raise InvalidStateTransition(f"Cannot move order from {current} to {new_status}")
        return new_status

    def as_api(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "total_amount": to_json_money(self.total_amount),
            "status": self.status,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "items": [i.as_api() for i in self.items],
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # reference only; the product may later be soft-deleted or repriced
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)  # unit price snapshot
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def line_total(self):
        return round_money(D(self.price) * int(self.quantity or 0))

    def as_api(self):
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price": to_json_money(self.price),
            "total": to_json_money(self.line_total),
        }
