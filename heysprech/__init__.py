import logging

from flask import Flask
from flask_migrate import Migrate
from .extensions import db, processing

migrate = Migrate()


def create_app(config_object='config.Config', overrides=None, redis_connection=None):
    """App factory shared by the web layer, RQ workers and scripts.

    ``overrides`` is applied on top of ``config_object``; tests use it to
    point at in-memory SQLite and a temporary DATA_DIR, and pass a fake
    ``redis_connection``.
    """
    app = Flask(__name__)
    app.config.from_object(config_object)
    if overrides:
        app.config.update(overrides)

    level = app.config.get('LOG_LEVEL', 'INFO')
    app.logger.setLevel(logging.getLevelName(level) if isinstance(level, str) else level)

    db.init_app(app)
    migrate.init_app(app, db, directory=app.config.get('MIGRATIONS_DIR', 'alembic'))
    processing.init_app(app, connection=redis_connection)

    # register models on the metadata for migrations and create_all
    from . import models  # noqa: F401

    return app
