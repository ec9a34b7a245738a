"""Logging configuration helpers."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from config.settings import LoggingConfig


def configure_logging(logging_config: LoggingConfig) -> None:
    """Configure root logging from a LoggingConfig section.

    Args:
        logging_config: Logging section of the application config
    """
    level = getattr(logging, logging_config.level.upper(), logging.INFO)
    handlers = [logging.StreamHandler()]

    if logging_config.file_path:
        Path(logging_config.file_path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            logging_config.file_path,
            maxBytes=logging_config.max_file_size,
            backupCount=logging_config.backup_count
        ))

    logging.basicConfig(
        level=level,
        format=logging_config.format,
        handlers=handlers,
        force=True
    )
