# storefront/services/catalog_service.py
import logging

from ..errors import ProductNotFound, ValidationError
from ..model import Product
from ..utils.money import parse_money
from ..utils.parse import parse_int, utcnow

logger = logging.getLogger(__name__)


def _live_products(session):
    return session.query(Product).filter(Product.deleted_at.is_(None))


def list_products(session):
    return _live_products(session).order_by(Product.created_at.desc(), Product.id.desc()).all()


def get_product(session, product_id, *, lock=False):
    q = _live_products(session).filter(Product.id == product_id)
    if lock:
        q = q.with_for_update()
    product = q.first()
    if product is None:
        raise ProductNotFound(f"Product {product_id} not found")
    return product


def create_product(session, name, description=None, price=None, stock=None):
    name = (name or "").strip() if isinstance(name, str) else ""
    if not name:
        raise ValidationError("name is required")
    if len(name) > 255:
        raise ValidationError("name must be at most 255 characters")
    if description is not None and not isinstance(description, str):
        raise ValidationError("description must be a string")
    try:
        price = parse_money(price, "price")
        stock = parse_int(stock, "stock", minimum=0)
    except ValueError as e:
        raise ValidationError(str(e)) from None

    product = Product(name=name, description=description, price=price, stock=stock)
    try:
        session.add(product)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("product %s created: %r price=%s stock=%s", product.id, name, price, stock)
    return product


def set_stock(session, product_id, stock):
    """Overwrite a product's stock with an absolute value."""
    try:
        stock = parse_int(stock, "stock", minimum=0)
    except ValueError as e:
        raise ValidationError(str(e)) from None

    try:
        product = get_product(session, product_id, lock=True)
        previous = product.stock
        product.stock = stock
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("product %s stock set %s -> %s", product_id, previous, stock)
    return product


def soft_delete_product(session, product_id):
    try:
        product = get_product(session, product_id, lock=True)
        product.deleted_at = utcnow()
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("product %s soft-deleted", product_id)
    return product
