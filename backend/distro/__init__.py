# backend/distro/__init__.py
import logging

from flask import Flask, jsonify

from .config import Config
from .errors import DistroError
from .extensions import db, migrate


def configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("distro").setLevel(level)


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.catalog import catalog_bp
    from .routes.schemes import schemes_bp
    from .routes.distributors import distributors_bp
    from .routes.orders import orders_bp
    from .routes.returns import returns_bp
    from .routes.stock import stock_bp
    from .routes.transfers import transfers_bp
    from .routes.wallet import wallet_bp
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(schemes_bp)
    app.register_blueprint(distributors_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(notifications_bp)

    @app.errorhandler(DistroError)
    def handle_distro_error(error: DistroError):
        db.session.rollback()
        return jsonify(error.to_dict()), error.status

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
