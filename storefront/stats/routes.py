from . import bp
from ..extensions import db
from ..services import order_service
from ..utils.api import ok
from ..utils.decorators import auth_required


@bp.get("/orders")
@auth_required
def order_stats():
    return ok(order_service.order_stats(db.session))
