# Overview: Application factory; wires config, extensions, blueprints, error handlers, and CLI.

from flask import Flask, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import ServiceError
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        # Applied before db.init_app: the engine is built from this config
        app.config.update(test_config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.events import SqlEventPublisher
    app.extensions["event_publisher"] = app.config.get("EVENT_PUBLISHER") or SqlEventPublisher(db.session)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.locations import stores_bp, sites_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.requests import requests_bp
    from .routes.notifications import notifications_bp
    from .routes.audit import audit_bp
    from .routes.dashboard import dashboard_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(stores_bp)
    app.register_blueprint(sites_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(requests_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(dashboard_bp)

    @app.errorhandler(ServiceError)
    def handle_service_error(exc: ServiceError):
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return jsonify({"error": exc.description, "code": exc.name.upper().replace(" ", "_")}), exc.code
        db.session.rollback()
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
