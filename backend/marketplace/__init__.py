# backend/marketplace/__init__.py
from logging.config import dictConfig

from flask import Flask, jsonify

from .config import Config
from .extensions import db, migrate, object_store, catalog_cache


def configure_logging(level: str) -> None:
    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "loggers": {
            "marketplace": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
        },
    })


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    object_store.init_app(app)
    catalog_cache.init_app(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401
    from .services import ledger_service  # noqa: F401  (registers append-only guards)

    # Register blueprints
    from .routes.bulk_upload import bulk_upload_bp

    app.register_blueprint(bulk_upload_bp)

    @app.errorhandler(413)
    def request_too_large(error):
        return jsonify({"error": "File too large"}), 413

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
