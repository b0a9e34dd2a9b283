# backend/inventory_analytics/__init__.py
from flask import Flask

from .config import Config
from .extensions import db


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # app.logger is the "inventory_analytics" logger; service loggers propagate to it
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Resolve the SQL dialect once; an unknown or mismatched value stops the app from starting
    from .services.analytics_sql import QUERIES_KEY, queries_for
    from .services.dialect_service import (
        EXTENSION_KEY,
        DialectDetector,
        check_database_backend,
        resolve_dialect,
    )

    detector = DialectDetector(resolve_dialect(app.config.get("ANALYTICS_SQL_DIALECT")))
    check_database_backend(detector, app.config["SQLALCHEMY_DATABASE_URI"])
    app.extensions[EXTENSION_KEY] = detector
    app.extensions[QUERIES_KEY] = queries_for(detector)

    # Initialize extensions
    db.init_app(app)

    # Import models so metadata is complete before create_all()
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.analytics import analytics_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(analytics_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    app.logger.info("Analytics SQL dialect: %s", detector.dialect.value)
    return app
