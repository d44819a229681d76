"""Logging configuration for the automacro daemon and CLI."""
import logging
import os
from ..utils.config import SETTINGS

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(level_name: str = None) -> int:
    """Explicit name, then settings, then AUTOMACRO_LOGLEVEL; unknown names mean INFO."""
    name = level_name or getattr(SETTINGS, "log_level", None) or os.environ.get("AUTOMACRO_LOGLEVEL", "INFO")
    return getattr(logging, name.upper(), logging.INFO)


def setup_logger(level_name: str = None) -> logging.Logger:
    level = resolve_level(level_name)

    # Level lives on the root so every automacro.* logger follows it
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)

    logger = logging.getLogger("automacro.daemon")
    logger.setLevel(level)
    return logger
