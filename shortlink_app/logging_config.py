"""
Logging setup for the shortlink service.

All modules log through ``logging.getLogger(__name__)``, so a single handler on
the package logger covers the app, the workers and the stores.
"""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stream handler to the package logger (safe to call twice)."""
    logger = logging.getLogger("shortlink_app")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger
