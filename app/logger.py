"""Process logger setup shared by the API service and the hash generator."""

import logging

__all__ = ["setup_logger"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(name: str, env: str = "development") -> logging.Logger:
    """Configure the named logger once; later calls return it unchanged."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG if env in ("development", "local") else logging.INFO)
    return logger
