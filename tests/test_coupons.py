"""Coupon creation, listing and application to orders."""
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError

from storefront.errors import (
    CouponAlreadyApplied,
    CouponUserLimitReached,
    InvalidDiscountConfiguration,
    ValidationError,
)
from storefront.model import Coupon, CouponUsage, Order
from storefront.services import coupon_service, order_service
from storefront.utils.parse import utcnow


def _order(session, user_id, product_id, quantity=1):
    return order_service.create_order(session, user_id, [{"productId": product_id, "quantity": quantity}]).id


def _apply(client, headers, order_id, code):
    return client.post(f"/orders/{order_id}/apply-coupon", json={"couponCode": code}, headers=headers)


def _total(session, order_id):
    session.expire_all()
    return session.get(Order, order_id).total_amount


# --- discount arithmetic ------------------------------------------------------

def _coupon(discount_type, value, cap=None):
    return Coupon(id=1, code="X", discount_type=discount_type,
                  discount_value=Decimal(value), max_discount_amount=None if cap is None else Decimal(cap))


def test_percentage_discount_is_capped():
    assert coupon_service.compute_discount(_coupon("percentage", "20", "15.00"), Decimal("100.00")) == (
        Decimal("15.00"), Decimal("85.00"))


def test_percentage_discount_under_cap():
    assert coupon_service.compute_discount(_coupon("percentage", "10", "15.00"), Decimal("100.00")) == (
        Decimal("10.00"), Decimal("90.00"))


def test_percentage_rounds_half_up():
    # 18.76 * 12.5% = 2.345
    discount, new_total = coupon_service.compute_discount(_coupon("percentage", "12.5"), Decimal("18.76"))
    assert discount == Decimal("2.35")
    assert new_total == Decimal("16.41")


def test_fixed_discount_never_exceeds_total():
    assert coupon_service.compute_discount(_coupon("fixed", "25.00"), Decimal("10.00")) == (
        Decimal("10.00"), Decimal("0.00"))


def test_unknown_discount_type_is_internal_fault():
    with pytest.raises(InvalidDiscountConfiguration):
        coupon_service.compute_discount(_coupon("bogus", "5"), Decimal("10.00"))


def test_negative_total_is_internal_fault():
    with pytest.raises(InvalidDiscountConfiguration):
        coupon_service.compute_discount(_coupon("percentage", "150"), Decimal("10.00"))


# --- applying over HTTP -------------------------------------------------------

def test_apply_percentage_coupon(client, session, alice, products, make_coupon):
    make_coupon("SAVE20", discount_value=20, max_discount_amount="15.00")
    order_id = _order(session, alice[0], products["big"])

    resp = _apply(client, alice[1], order_id, "SAVE20")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["discount"] == {"code": "SAVE20", "amount": "15.00", "originalTotal": "100.00", "newTotal": "85.00"}
    assert body["order"]["total_amount"] == "85.00"
    assert body["order"]["items"][0]["total"] == "100.00"

    usage = CouponUsage.query.filter_by(order_id=order_id).one()
    assert usage.user_id == alice[0]
    assert usage.discount_amount == Decimal("15.00")


def test_apply_fixed_coupon_larger_than_total(client, session, alice, products, make_coupon):
    make_coupon("TENOFF", discount_type="fixed", discount_value="25.00")
    order_id = _order(session, alice[0], products["kettle"])

    body = _apply(client, alice[1], order_id, "TENOFF").get_json()
    assert body["discount"]["amount"] == "10.00"
    assert body["discount"]["newTotal"] == "0.00"
    assert _total(session, order_id) == Decimal("0.00")


def test_second_coupon_on_same_order(client, session, alice, products, make_coupon):
    make_coupon("SAVE20")
    make_coupon("FIVE", discount_type="fixed", discount_value=5)
    order_id = _order(session, alice[0], products["big"])
    assert _apply(client, alice[1], order_id, "SAVE20").status_code == 200

    resp = _apply(client, alice[1], order_id, "FIVE")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Order already has a coupon applied"}
    assert _total(session, order_id) == Decimal("80.00")


def test_per_user_limit(client, session, alice, bob, products, make_coupon):
    make_coupon("ONCE", max_uses_per_user=1)
    first = _order(session, alice[0], products["mug"])
    second = _order(session, alice[0], products["mug"])
    bobs = _order(session, bob[0], products["mug"])

    assert _apply(client, alice[1], first, "ONCE").status_code == 200
    resp = _apply(client, alice[1], second, "ONCE")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "You have already used this coupon the maximum number of times"}
    assert _total(session, second) == Decimal("25.00")

    assert _apply(client, bob[1], bobs, "ONCE").status_code == 200


def test_global_limit(client, session, alice, bob, products, make_coupon):
    make_coupon("FIRST", max_uses=1)
    a = _order(session, alice[0], products["mug"])
    b = _order(session, bob[0], products["mug"])
    assert _apply(client, alice[1], a, "FIRST").status_code == 200

    resp = _apply(client, bob[1], b, "FIRST")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Coupon has reached maximum usage limit"}


def test_below_minimum(client, session, alice, products, make_coupon):
    make_coupon("BIGSPEND", min_order_amount="50.00")
    order_id = _order(session, alice[0], products["mug"])

    resp = _apply(client, alice[1], order_id, "BIGSPEND")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Order amount must be at least $50.00. Current amount: $25.00"}


def test_minimum_is_inclusive(client, session, alice, products, make_coupon):
    make_coupon("EXACT", min_order_amount="25.00")
    order_id = _order(session, alice[0], products["mug"])
    assert _apply(client, alice[1], order_id, "EXACT").status_code == 200


@pytest.mark.parametrize("fields, message", [
    ({"is_active": False}, "Coupon is not active"),
    ({"valid_from": "2999-01-01T00:00:00Z"}, "Coupon is not yet valid"),
    ({"valid_until": "2000-01-01T00:00:00Z"}, "Coupon has expired"),
])
def test_inactive_and_out_of_window(client, session, alice, products, make_coupon, fields, message):
    make_coupon("WINDOW", **fields)
    order_id = _order(session, alice[0], products["mug"])
    resp = _apply(client, alice[1], order_id, "WINDOW")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": message}
    assert CouponUsage.query.count() == 0


def test_open_window_bounds(client, session, alice, products, make_coupon):
    now = utcnow()
    make_coupon("NOW", valid_from=(now - timedelta(days=1)).isoformat(),
                valid_until=(now + timedelta(days=1)).isoformat())
    order_id = _order(session, alice[0], products["mug"])
    assert _apply(client, alice[1], order_id, "NOW").status_code == 200


def test_checks_run_in_order(client, session, alice, products, make_coupon):
    # inactive AND expired: the active flag is checked first
    make_coupon("OLD", is_active=False, valid_until="2000-01-01T00:00:00")
    order_id = _order(session, alice[0], products["mug"])
    assert _apply(client, alice[1], order_id, "OLD").get_json() == {"error": "Coupon is not active"}

    # a cancelled order fails on status before the coupon is even looked up
    order_service.cancel_order(session, alice[0], order_id)
    resp = _apply(client, alice[1], order_id, "DOES-NOT-EXIST")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Can only apply coupons to pending orders"}


def test_unknown_coupon_and_foreign_order(client, session, alice, bob, products, make_coupon):
    make_coupon("SAVE20")
    order_id = _order(session, alice[0], products["mug"])
    resp = _apply(client, alice[1], order_id, "NOPE")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Coupon not found"}

    resp = _apply(client, bob[1], order_id, "SAVE20")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Order not found"}


def test_missing_coupon_code(client, session, alice, products):
    order_id = _order(session, alice[0], products["mug"])
    resp = client.post(f"/orders/{order_id}/apply-coupon", json={}, headers=alice[1])
    assert resp.status_code == 400


def test_broken_coupon_is_a_generic_500(client, session, alice, products):
    session.add(Coupon(code="BROKEN", discount_type="bogus", discount_value=Decimal("5")))
    session.commit()
    order_id = _order(session, alice[0], products["mug"])

    resp = _apply(client, alice[1], order_id, "BROKEN")
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Internal server error"}
    assert _total(session, order_id) == Decimal("25.00")
    assert CouponUsage.query.count() == 0


def test_cancel_keeps_coupon_usage(client, session, alice, products, make_coupon, stock_of):
    make_coupon("SAVE20")
    order_id = _order(session, alice[0], products["mug"], 2)
    _apply(client, alice[1], order_id, "SAVE20")

    assert client.post(f"/orders/{order_id}/cancel", headers=alice[1]).status_code == 200
    assert stock_of(products["mug"]) == 10
    assert CouponUsage.query.filter_by(order_id=order_id).count() == 1
    assert _total(session, order_id) == Decimal("40.00")


def test_service_raises_taxonomy(session, alice, products, make_coupon):
    make_coupon("ONCE", max_uses_per_user=1)
    first = _order(session, alice[0], products["mug"])
    second = _order(session, alice[0], products["mug"])

    order, summary = coupon_service.apply_coupon_to_order(session, alice[0], first, "ONCE")
    assert summary["amount"] == "5.00"
    assert order.total_amount == Decimal("20.00")
    with pytest.raises(CouponAlreadyApplied):
        coupon_service.apply_coupon_to_order(session, alice[0], first, "ONCE")
    with pytest.raises(CouponUserLimitReached):
        coupon_service.apply_coupon_to_order(session, alice[0], second, "ONCE")


def test_one_usage_row_per_order(session, alice, products, make_coupon):
    coupon = make_coupon("SAVE20")
    order_id = _order(session, alice[0], products["mug"])
    session.add_all([
        CouponUsage(coupon_id=coupon.id, user_id=alice[0], order_id=order_id, discount_amount=Decimal("1")),
        CouponUsage(coupon_id=coupon.id, user_id=alice[0], order_id=order_id, discount_amount=Decimal("1")),
    ])
    with pytest.raises(IntegrityError) as exc:
        session.commit()
    session.rollback()
    assert coupon_service._is_duplicate_usage(exc.value)


def _negative_total(coupon, total_amount):
    return Decimal(total_amount), Decimal("-1.00")


def test_other_integrity_errors_are_not_reported_as_duplicates(session, alice, products, make_coupon, monkeypatch):
    make_coupon("SAVE20")
    order_id = _order(session, alice[0], products["mug"])
    monkeypatch.setattr(coupon_service, "compute_discount", _negative_total)

    with pytest.raises(IntegrityError) as exc:
        coupon_service.apply_coupon_to_order(session, alice[0], order_id, "SAVE20")
    assert not coupon_service._is_duplicate_usage(exc.value)
    assert _total(session, order_id) == Decimal("25.00")
    assert CouponUsage.query.count() == 0


def test_check_constraint_failure_is_a_generic_500(client, session, alice, products, make_coupon, monkeypatch):
    make_coupon("SAVE20")
    order_id = _order(session, alice[0], products["mug"])
    monkeypatch.setattr(coupon_service, "compute_discount", _negative_total)

    resp = _apply(client, alice[1], order_id, "SAVE20")
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Internal server error"}


def test_coupon_lock_query_selects_for_update(session):
    sql = str(coupon_service.lock_coupon_query(session, "SAVE20").statement.compile(dialect=postgresql.dialect()))
    assert sql.rstrip().endswith("FOR UPDATE")


# --- creating and listing -----------------------------------------------------

def test_create_coupon_endpoint(client, alice):
    resp = client.post("/coupons", headers=alice[1], json={
        "code": "WELCOME",
        "description": "10% off",
        "discount_type": "percentage",
        "discount_value": 10,
        "max_discount_amount": 20,
        "max_uses": 100,
        "max_uses_per_user": 1,
        "valid_until": "2999-12-31T23:59:59Z",
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["code"] == "WELCOME"
    assert body["is_active"] is True
    assert body["min_order_amount"] == "0.00"
    assert body["valid_until"] == "2999-12-31T23:59:59"


def test_create_coupon_rejects_values_beyond_the_columns(client, alice):
    resp = client.post("/coupons", headers=alice[1], json={
        "code": "HUGE", "discount_type": "percentage", "discount_value": 10, "max_uses": 10**20,
    })
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "max_uses must be <= 2147483647"}

    resp = client.post("/coupons", headers=alice[1], json={
        "code": "HUGE", "discount_type": "fixed", "discount_value": "10000000000",
    })
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "discount_value must be < 10000000000"}
    assert Coupon.query.count() == 0


def test_create_coupon_requires_caller(client):
    assert client.post("/coupons", json={"code": "X"}).status_code == 401


@pytest.mark.parametrize("fields", [
    {"discount_type": "bogo"},
    {"discount_value": 0},
    {"discount_value": 101},
    {"discount_value": "ten"},
    {"min_order_amount": -1},
    {"max_uses": 0},
    {"max_uses_per_user": "many"},
    {"valid_from": "yesterday"},
    {"valid_from": "2030-01-02T00:00:00", "valid_until": "2030-01-01T00:00:00"},
    {"max_uses": 10**20},
    {"max_uses_per_user": 2**31},
    {"discount_type": "fixed", "discount_value": 10**10},
    {"min_order_amount": 10**12},
    {"max_discount_amount": "1e30"},
])
def test_create_coupon_validation(make_coupon, fields):
    with pytest.raises(ValidationError):
        make_coupon("BAD", **fields)


def test_duplicate_code_is_case_insensitive(make_coupon):
    make_coupon("SAVE20")
    with pytest.raises(ValidationError):
        make_coupon("save20")


def test_list_active_coupons(client, make_coupon):
    make_coupon("OLD", valid_until="2000-01-01T00:00:00")
    make_coupon("OFF", is_active=False)
    make_coupon("A")
    make_coupon("B", valid_until="2999-01-01T00:00:00")

    resp = client.get("/coupons")
    assert resp.status_code == 200
    assert [c["code"] for c in resp.get_json()] == ["B", "A"]


def test_create_coupon_requires_code(session):
    with pytest.raises(ValidationError):
        coupon_service.create_coupon_from_payload(session, {"code": "  ", "discount_type": "fixed", "discount_value": 1})
