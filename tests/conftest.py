"""Pytest fixtures for the storefront API."""

import pytest

from storefront import create_app
from storefront.config import TestConfig
from storefront.extensions import db
from storefront.model import Product
from storefront.services import catalog_service, coupon_service


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'test.db'}"

    app = create_app(_Config)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def register(client):
    """Register + log in a user; returns (user_id, bearer headers)."""
    def _register(email, password="secret123", name=None):
        resp = client.post("/register", json={"email": email, "password": password, "name": name})
        assert resp.status_code == 201, resp.get_json()
        login = client.post("/login", json={"email": email, "password": password})
        assert login.status_code == 200, login.get_json()
        token = login.get_json()["token"]
        return resp.get_json()["id"], {"Authorization": f"Bearer {token}"}
    return _register


@pytest.fixture
def alice(register):
    return register("alice@example.com", name="Alice")


@pytest.fixture
def bob(register):
    return register("bob@example.com", name="Bob")


@pytest.fixture
def products(session):
    mug = catalog_service.create_product(session, "Latte Mug", "350 ml", "25.00", 10)
    kettle = catalog_service.create_product(session, "Kettle", None, "10.00", 5)
    big = catalog_service.create_product(session, "Espresso Machine", None, "100.00", 3)
    retired = catalog_service.create_product(session, "Old Grinder", None, "40.00", 7)
    catalog_service.soft_delete_product(session, retired.id)
    return {"mug": mug.id, "kettle": kettle.id, "big": big.id, "retired": retired.id}


@pytest.fixture
def make_coupon(session):
    def _make(code="SAVE20", **fields):
        payload = {"code": code, "discount_type": "percentage", "discount_value": 20}
        payload.update(fields)
        return coupon_service.create_coupon_from_payload(session, payload)
    return _make


@pytest.fixture
def stock_of(session):
    """Fresh stock read, bypassing anything cached in the test's session."""
    def _stock(product_id):
        session.expire_all()
        return session.get(Product, product_id).stock
    return _stock
