# backend/stockroom/__init__.py
from flask import Flask, request, jsonify, current_app
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import StockroomError, error_payload
from .extensions import db, migrate


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(StockroomError)
    def handle_stockroom_error(exc):
        return jsonify(error_payload(exc)), exc.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({"error": exc.description, "type": exc.name.upper().replace(" ", "_")}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        db.session.rollback()
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error", "type": "INTERNAL_ERROR"}), 500


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.forecasts import forecasts_bp
    from .routes.supplier_requests import supplier_requests_bp
    from .routes.purchase_orders import purchase_orders_bp
    from .routes.goods_received import goods_received_bp
    from .routes.supplier_invoices import supplier_invoices_bp
    from .routes.inventory import inventory_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(forecasts_bp)
    app.register_blueprint(supplier_requests_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(goods_received_bp)
    app.register_blueprint(supplier_invoices_bp)
    app.register_blueprint(inventory_bp)

    register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
