from flask_sqlalchemy import SQLAlchemy
from redis import Redis
from flask import current_app


class ProcessingExtension:
    """Builds the app's ProcessingQueue from config and keeps it on
    ``app.extensions`` so jobs, scripts and collaborators share one instance
    per app rather than a module global.
    """

    key = 'processing_queue'

    def init_app(self, app, connection=None):
        # lazy import: services.queue pulls in rq and the job module path
        from .services.queue import ProcessingQueue, QueueSettings

        if connection is None:
            connection = Redis.from_url(app.config.get("REDIS_URL"))
        settings = QueueSettings.from_mapping(app.config)
        app.extensions[self.key] = ProcessingQueue(
            connection, settings, logger=app.logger, app_config=app.config,
        )

    @property
    def queue(self):
        try:
            return current_app.extensions[self.key]
        except KeyError:
            raise RuntimeError('ProcessingExtension is not initialised for this app') from None


db = SQLAlchemy()
processing = ProcessingExtension()
