# storefront/services/order_service.py
"""Order placement and cancellation.

Every mutating function here runs as one transaction on the session it is
given: it commits once at the end and rolls back on any exception, so stock,
orders and order items never change partially.
"""
import logging

from sqlalchemy import case, func

from ..errors import (
    InsufficientStock,
    InvalidStateTransition,
    OrderNotFound,
    ProductNotFound,
    ValidationError,
)
from ..model import CANCELLED, COMPLETED, PENDING, CouponUsage, Order, OrderItem, Product
from ..utils.money import D, MONEY_LIMIT, ZERO, round_money, to_json_money
from ..utils.parse import parse_int

logger = logging.getLogger(__name__)


def normalize_items(items):
    """Validate the ``[{productId, quantity}]`` payload into (product_id, quantity) pairs."""
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    lines = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        try:
            product_id = parse_int(item.get("productId"), f"items[{idx}].productId", minimum=1)
            quantity = parse_int(item.get("quantity"), f"items[{idx}].quantity", minimum=1)
        except ValueError as e:
            raise ValidationError(str(e)) from None
        lines.append((product_id, quantity))
    return lines


def lock_products_query(session, product_ids):
    # fixed lock order keeps concurrent orders over the same products from deadlocking
    return (
        session.query(Product)
        .filter(Product.id.in_(sorted(set(product_ids))))
        .order_by(Product.id)
        .with_for_update()
    )


def _lock_products(session, product_ids):
    return {p.id: p for p in lock_products_query(session, product_ids).all()}


def owned_order_query(session, user_id, order_id, *, lock=False):
    q = session.query(Order).filter(Order.id == order_id, Order.user_id == user_id)
    if lock:
        q = q.with_for_update()
    return q


def get_owned_order(session, user_id, order_id, *, lock=False):
    order = owned_order_query(session, user_id, order_id, lock=lock).first()
    if order is None:
        raise OrderNotFound()
    return order


def create_order(session, user_id, items):
    lines = normalize_items(items)

    try:
        pmap = _lock_products(session, [pid for pid, _ in lines])

        order = Order(user_id=user_id, status=PENDING, total_amount=ZERO)
        total = D(0)
        for product_id, quantity in lines:
            p = pmap.get(product_id)
            if p is None or p.is_deleted:
                raise ProductNotFound(f"Product {product_id} not found")
            if p.stock < quantity:
                raise InsufficientStock(
                    f"Insufficient stock for product {p.name}. "
                    f"Available: {p.stock}, Requested: {quantity}"
                )

            p.stock = p.stock - quantity
            line_total = D(p.price) * quantity
            total += line_total
            order.items.append(OrderItem(product_id=p.id, quantity=quantity, price=D(p.price)))

        total = round_money(total)
        if total >= MONEY_LIMIT:
            raise ValidationError(f"Order total must be < {MONEY_LIMIT}")
        order.total_amount = total
        session.add(order)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info("order %s created for user %s: %d item(s), total=%s",
                order.id, user_id, len(lines), order.total_amount)
    return order


def get_user_orders(session, user_id):
    return (
        session.query(Order)
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def cancel_order(session, user_id, order_id):
    try:
        order = get_owned_order(session, user_id, order_id, lock=True)
        if order.status != PENDING:
            raise InvalidStateTransition("Can only cancel pending orders")

        pmap = _lock_products(session, [i.product_id for i in order.items])
        for item in order.items:
            p = pmap[item.product_id]
            p.stock = p.stock + item.quantity

        order.status = CANCELLED
        discounted = session.query(CouponUsage.id).filter(CouponUsage.order_id == order.id).first()
        session.commit()
    except Exception:
        session.rollback()
        raise

    if discounted is not None:
        # TODO: decide whether cancelling should release the coupon usage and restore the discount
        logger.warning("order %s cancelled with a coupon applied; usage record kept", order_id)
    logger.info("order %s cancelled by user %s", order_id, user_id)
    return order


def order_stats(session):
    row = session.query(
        func.count(Order.id),
        func.sum(case((Order.status == PENDING, 1), else_=0)),
        func.sum(case((Order.status == COMPLETED, 1), else_=0)),
        func.sum(case((Order.status == CANCELLED, 1), else_=0)),
        func.sum(Order.total_amount),
        func.avg(Order.total_amount),
    ).one()
    total, pending, completed, cancelled, revenue, average = row
    return {
        "total_orders": int(total or 0),
        "pending_orders": int(pending or 0),
        "completed_orders": int(completed or 0),
        "cancelled_orders": int(cancelled or 0),
        "total_revenue": to_json_money(revenue or 0),
        "average_order_value": to_json_money(average or 0),
    }
