"""Logging setup."""

import logging

LOGGER_NAME = "fridge_share"


def configure_logging(level: int = logging.INFO) -> None:
    """Attach one stream handler to the package logger; repeat calls are no-ops."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
