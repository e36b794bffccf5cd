"""Logging configuration for the existinfra package."""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Set up a logger with the specified name and log level.

    Args:
        name: The name of the logger
        level: The logging level (default: logging.INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Don't add handlers if they're already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    return logger


def configure_logging(settings=None, debug: bool = False) -> logging.Logger:
    """Configure the ``existinfra`` logger hierarchy from settings.

    Args:
        settings: Settings instance (its ``logging`` section is used)
        debug: Force DEBUG level

    Returns:
        The root ``existinfra`` logger
    """
    level_name = settings.logging.level if settings is not None else "INFO"
    level = logging.DEBUG if debug else getattr(logging, level_name.upper(), logging.INFO)
    logger = setup_logger("existinfra", level)

    if settings is not None and settings.logging.file:
        log_file = Path(settings.logging.file).expanduser().absolute()
        if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=log_file,
                maxBytes=settings.logging.max_size_mb * 1024 * 1024,
                backupCount=settings.logging.backup_count
            )
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(file_handler)
            logger.debug(f"Logging to file: {log_file}")

    # Disable debug logging for noisy libraries
    if not debug:
        logging.getLogger('paramiko').setLevel(logging.WARNING)
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('kubernetes').setLevel(logging.WARNING)

    return logger
