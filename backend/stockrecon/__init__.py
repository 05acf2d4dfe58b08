# backend/stockrecon/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    logging.getLogger(__name__).setLevel(app.config["LOG_LEVEL"])
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Service graph, one per app (no module-level singletons)
    from .services import build_services
    app.extensions["stockrecon"] = build_services(config=app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.units import units_bp
    from .routes.stock import stock_bp
    from .routes.integrity import integrity_bp
    from .routes.acquisitions import acquisitions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(units_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(integrity_bp)
    app.register_blueprint(acquisitions_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
