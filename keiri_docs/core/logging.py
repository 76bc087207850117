import sys

from loguru import logger

from .config import settings


def setup_logging():
    """Configure the loguru stderr sink once for the application."""
    level = "DEBUG" if settings.app_env == "dev" else "INFO"
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message} | {extra}",
    )
    logger.info("Logging configured", app=settings.app_name, env=settings.app_env, level=level)
    return logger
