# backend/infopos/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate, event_bus


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before extensions read the config
    if config_overrides:
        app.config.update(config_overrides)

    logging.getLogger("infopos").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    event_bus.init_app(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from . import tenant_context
    tenant_context.init_app(app)

    from .events.consumers import register_consumers
    register_consumers(event_bus)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.sales import sales_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(reports_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
