
from . import bp
from ..extensions import db
from ..services import catalog_service
from ..utils.api import json_body, ok
from ..utils.decorators import auth_required


# GET /products
@bp.get("")
def list_products():
    products = catalog_service.list_products(db.session)
    return ok([p.as_api() for p in products])


# POST /products
@bp.post("")
@auth_required
def create_product():
    data = json_body()
    product = catalog_service.create_product(
        db.session,
        name=data.get("name"),
        description=data.get("description"),
        price=data.get("price"),
        stock=data.get("stock"),
    )
    return ok(product.as_api(), 201)


# PATCH /products/<id>/stock
@bp.patch("/<int(max=2147483647):pid>/stock")
@auth_required
def update_stock(pid):
    data = json_body()
    product = catalog_service.set_stock(db.session, pid, data.get("stock"))
    return ok(product.as_api())


# DELETE /products/<id>
@bp.delete("/<int(max=2147483647):pid>")
@auth_required
def delete_product(pid):
    catalog_service.soft_delete_product(db.session, pid)
    return ok({"message": "Product deleted successfully"})
