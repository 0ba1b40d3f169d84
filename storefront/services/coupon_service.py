# storefront/services/coupon_service.py
import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import (
    CouponAlreadyApplied,
    CouponExpired,
    CouponInactive,
    CouponNotFound,
    CouponNotYetValid,
    CouponUsageLimitReached,
    CouponUserLimitReached,
    InvalidDiscountConfiguration,
    InvalidStateTransition,
    OrderBelowMinimum,
    ValidationError,
)
from ..model import DISCOUNT_TYPES, FIXED, PENDING, PERCENTAGE, Coupon, CouponUsage
from ..utils.money import D, ZERO, parse_money, round_money, to_json_money
from ..utils.parse import parse_bool, parse_iso8601, parse_opt_int, utcnow
from .order_service import get_owned_order

logger = logging.getLogger(__name__)

# PostgreSQL names the constraint, SQLite names the column
_DUPLICATE_USAGE_MARKERS = ("uq_coupon_usage_order", "coupon_usage.order_id")


def _is_duplicate_usage(exc: IntegrityError):
    message = str(exc.orig)
    return any(marker in message for marker in _DUPLICATE_USAGE_MARKERS)


def compute_discount(coupon: Coupon, total_amount):
    """Return ``(discount, new_total)`` for applying ``coupon`` to ``total_amount``.

    Percentage discounts are capped by ``max_discount_amount``; fixed
    discounts never exceed the total. The discount is rounded to cents
    half-up before it is subtracted.
    """
    total = D(total_amount)
    value = D(coupon.discount_value)
    if coupon.discount_type == PERCENTAGE:
        raw = total * value / D(100)
        if coupon.max_discount_amount is not None and raw > D(coupon.max_discount_amount):
            raw = D(coupon.max_discount_amount)
    elif coupon.discount_type == FIXED:
        raw = min(value, total)
    else:
        raise InvalidDiscountConfiguration(
            f"coupon {coupon.id} has unknown discount type {coupon.discount_type!r}"
        )

    discount = round_money(raw)
    new_total = round_money(total - discount)
    if discount < 0 or new_total < 0:
        raise InvalidDiscountConfiguration(
            f"coupon {coupon.id} yields discount {discount} on total {total}"
        )
    return discount, new_total


def lock_coupon_query(session, code):
    # the coupon row lock serialises usage counting for this code
    return session.query(Coupon).filter(Coupon.code == code).with_for_update()


def _check_window(coupon: Coupon, now):
    if coupon.valid_from is not None and now < coupon.valid_from:
        raise CouponNotYetValid()
    if coupon.valid_until is not None and now > coupon.valid_until:
        raise CouponExpired()


def _check_caps(session, coupon: Coupon, user_id):
    if coupon.max_uses is not None:
        used = session.query(func.count(CouponUsage.id)).filter(CouponUsage.coupon_id == coupon.id).scalar()
        if used >= coupon.max_uses:
            raise CouponUsageLimitReached()

    if coupon.max_uses_per_user is not None:
        used_by_user = (
            session.query(func.count(CouponUsage.id))
            .filter(CouponUsage.coupon_id == coupon.id, CouponUsage.user_id == user_id)
            .scalar()
        )
        if used_by_user >= coupon.max_uses_per_user:
            raise CouponUserLimitReached()


def apply_coupon_to_order(session, user_id, order_id, coupon_code):
    if not isinstance(coupon_code, str) or not coupon_code.strip():
        raise ValidationError("couponCode is required")
    coupon_code = coupon_code.strip()

    try:
        order = get_owned_order(session, user_id, order_id, lock=True)
        if order.status != PENDING:
            raise InvalidStateTransition("Can only apply coupons to pending orders")

        if session.query(CouponUsage.id).filter(CouponUsage.order_id == order.id).first() is not None:
            raise CouponAlreadyApplied()

        coupon = lock_coupon_query(session, coupon_code).first()
        if coupon is None:
            raise CouponNotFound()
        if not coupon.is_active:
            raise CouponInactive()
        _check_window(coupon, utcnow())

        original_total = D(order.total_amount)
        minimum = D(coupon.min_order_amount or 0)
        if original_total < minimum:
            raise OrderBelowMinimum(
                f"Order amount must be at least ${minimum}. Current amount: ${original_total}"
            )

        _check_caps(session, coupon, user_id)

        discount, new_total = compute_discount(coupon, original_total)

        order.total_amount = new_total
        session.add(CouponUsage(
            coupon_id=coupon.id,
            user_id=user_id,
            order_id=order.id,
            discount_amount=discount,
        ))
        session.commit()
    except IntegrityError as e:
        session.rollback()
        if not _is_duplicate_usage(e):
            raise
        # lost the race against another application to the same order
        raise CouponAlreadyApplied() from None
    except Exception:
        session.rollback()
        raise

    logger.info("coupon %s applied to order %s by user %s: %s -> %s",
                coupon_code, order_id, user_id, original_total, new_total)
    summary = {
        "code": coupon_code,
        "amount": to_json_money(discount),
        "originalTotal": to_json_money(original_total),
        "newTotal": to_json_money(new_total),
    }
    return order, summary


def get_active_coupons(session):
    now = utcnow()
    return (
        session.query(Coupon)
        .filter(Coupon.is_active.is_(True))
        .filter(or_(Coupon.valid_until.is_(None), Coupon.valid_until > now))
        .order_by(Coupon.created_at.desc(), Coupon.id.desc())
        .all()
    )


def create_coupon_from_payload(session, data: dict):
    code = data.get("code")
    code = code.strip() if isinstance(code, str) else ""
    if not code:
        raise ValidationError("code is required")
    if len(code) > 64:
        raise ValidationError("code must be at most 64 characters")

    discount_type = str(data.get("discount_type") or "").lower().strip()
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError("discount_type must be 'percentage' or 'fixed'")

    description = data.get("description")
    if description is not None and not isinstance(description, str):
        raise ValidationError("description must be a string")

    try:
        discount_value = parse_money(data.get("discount_value"), "discount_value")
        min_order_amount = parse_money(data.get("min_order_amount"), "min_order_amount", required=False)
        max_discount_amount = parse_money(data.get("max_discount_amount"), "max_discount_amount", allow_none=True)
        max_uses = parse_opt_int(data.get("max_uses"), "max_uses", minimum=1)
        max_uses_per_user = parse_opt_int(data.get("max_uses_per_user"), "max_uses_per_user", minimum=1)
        valid_from = parse_iso8601(data.get("valid_from"), "valid_from")
        valid_until = parse_iso8601(data.get("valid_until"), "valid_until")
    except ValueError as e:
        raise ValidationError(str(e)) from None

    if discount_value <= ZERO:
        raise ValidationError("discount_value must be > 0")
    if discount_type == PERCENTAGE and discount_value > D(100):
        raise ValidationError("percentage discount_value must be <= 100")
    if valid_from and valid_until and valid_until < valid_from:
        raise ValidationError("valid_until must not be before valid_from")

    # unique case-insensitive
    existing = session.query(Coupon.id).filter(func.lower(Coupon.code) == code.lower()).first()
    if existing:
        raise ValidationError("Coupon code already exists")

    c = Coupon(
        code=code,
        description=description,
        discount_type=discount_type,
        discount_value=discount_value,
        min_order_amount=min_order_amount,
        max_discount_amount=max_discount_amount,
        valid_from=valid_from,
        valid_until=valid_until,
        max_uses=max_uses,
        max_uses_per_user=max_uses_per_user,
        is_active=parse_bool(data.get("is_active"), True),
    )
    try:
        session.add(c)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationError("Coupon code already exists") from None
    except Exception:
        session.rollback()
        raise
    logger.info("coupon %s created (%s %s)", c.code, c.discount_type, c.discount_value)
    return c
