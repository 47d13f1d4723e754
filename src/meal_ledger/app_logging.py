"""Logging configuration helpers."""

import logging

_QUIET_LOGGERS = ("httpx", "httpcore", "hpack")


def configure_logging(level: str = "INFO") -> None:
    """Install one stream handler on the package logger.

    The HTTP client loggers are raised to WARNING; the Supabase client
    would otherwise log every request line.
    """
    logger = logging.getLogger("meal_ledger")
    logger.setLevel(level.upper())
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
