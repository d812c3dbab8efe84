"""
app/utils/logging.py
───────────────────
Configures logging for the POS app: rotating file + stdout.

app.logger is the "app" logger, so module loggers under app.* (the
checkout engine included) propagate into the same handlers.
"""
import os
import logging
from logging.handlers import RotatingFileHandler
from flask import has_request_context, request


class RequestFormatter(logging.Formatter):
    """
    Formatter that injects request info (URL, remote address)
    into log lines when a request context is available.
    """
    def format(self, record):
        if has_request_context():
            record.url = request.url
            record.remote_addr = request.remote_addr
        else:
            record.url = None
            record.remote_addr = None
        return super().format(record)


def setup_logging(app):
    """
    Configure rotating file logging: logs/app.log
    Max size: 5MB
    Backup count: 5 files
    Format: timestamp | level | module | remote addr | url | message
    """
    handlers = []
    level = str(app.config.get('LOG_LEVEL', 'INFO')).upper()

    # 1. File logger — skipped when the filesystem is read-only
    if not app.testing:
        log_dir = app.config.get('LOG_DIR') or os.path.join(app.root_path, '..', 'logs')
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, 'app.log'),
                maxBytes=5 * 1024 * 1024,
                backupCount=5
            )
        except OSError:
            file_handler = None
        if file_handler is not None:
            file_handler.setFormatter(RequestFormatter(
                '%(asctime)s | %(levelname)s | %(name)s | %(remote_addr)s | %(url)s | %(message)s'
            ))
            file_handler.setLevel(level)
            handlers.append(file_handler)

    # 2. Stdout logger (container / cloud logs)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
    ))
    stream_handler.setLevel(level)
    handlers.append(stream_handler)

    for handler in handlers:
        app.logger.addHandler(handler)
    app.logger.setLevel(level)

    app.logger.info("POS checkout service startup")
