"""
Logging configuration for the storefront service.

A single package logger writes to stdout; modules ask for children through
get_logger().
"""
import logging
import sys

from storefront.core.config import settings

logger = logging.getLogger("storefront")
logger.setLevel(settings.LOG_LEVEL)

if not logger.handlers:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(settings.LOG_LEVEL)
    console_handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(console_handler)

logger.propagate = False


def get_logger(name: str = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Optional name for the logger (appended to 'storefront')
    """
    if name:
        return logging.getLogger(f"storefront.{name}")
    return logger
