import logging

from flask import Flask, jsonify

from .config import Config
from .extensions import db, jwt, cors, migrate


def create_app(config=None):
    """Build the Flask app.

    ``config`` may be a config class (see ``storefront.config``) or a mapping
    of overrides applied on top of ``Config``.
    """
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_object(Config)
    if isinstance(config, dict):
        app.config.update(config)
    elif config is not None:
        app.config.from_object(config)
    Config.init_app(app)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/*": {"origins": app.config["CORS_ORIGINS"]}})
    migrate.init_app(app, db)

    from .errors import register_error_handlers
    from .utils.decorators import register_jwt_handlers
    register_error_handlers(app)
    register_jwt_handlers(jwt)

    # Register blueprints
    from .auth import bp as auth_bp; app.register_blueprint(auth_bp)
    from .product import bp as product_bp; app.register_blueprint(product_bp)
    from .order import bp as order_bp; app.register_blueprint(order_bp)
    from .coupon import bp as coupon_bp; app.register_blueprint(coupon_bp)
    from .stats import bp as stats_bp; app.register_blueprint(stats_bp)

    from .cli import register_cli
    register_cli(app)

    @app.get("/")
    def health():
        return jsonify(ok=True, msg="API running")

    with app.app_context():
        from . import model  # noqa: F401  (registers tables)
        db.create_all()
        app.logger.debug("routes: %s", sorted(r.rule for r in app.url_map.iter_rules()))

    return app
