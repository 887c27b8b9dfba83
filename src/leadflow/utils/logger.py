"""
Logging setup for leadflow scripts.
"""
import logging
import os
from typing import Optional

from leadflow.config import get_settings


def setup_logger(name: str = "leadflow", level: Optional[str] = None) -> logging.Logger:
    """
    Set up the package logger.

    Args:
        name: Logger name
        level: Overrides the configured log level (e.g. "DEBUG")

    Returns:
        Configured logger instance
    """
    settings = get_settings()

    log_dir = os.path.dirname(settings.log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, (level or settings.log_level).upper()))

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    file_handler = logging.FileHandler(settings.log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if level else logging.INFO)
    console_handler.setFormatter(formatter)

    logger.handlers.clear()
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger
