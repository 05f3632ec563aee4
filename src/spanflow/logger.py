"""Centralized logging configuration for spanflow."""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = (
    '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
)
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Library root logger; silent until configure_logging() is called
logger = logging.getLogger('spanflow')
logger.addHandler(logging.NullHandler())


def configure_logging(
    level: int = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """Attach console (and optional file) handlers to the spanflow logger.

    Parameters
    ----------
    level : int
        Console log level (default: INFO)
    log_file : str or Path, optional
        Also write DEBUG-level records to this file

    Returns
    -------
    logging.Logger
        The configured ``spanflow`` logger
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # Replace handlers from a previous call
    for handler in list(logger.handlers):
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)
            handler.close()

    logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = None):
    """Get a logger instance.

    Parameters
    ----------
    name : str, optional
        Logger name (typically __name__). If None, returns root spanflow logger.

    Returns
    -------
    logging.Logger
        Logger inside the ``spanflow`` hierarchy
    """
    if name:
        if name == 'spanflow' or name.startswith('spanflow.'):
            return logging.getLogger(name)
        return logging.getLogger(f'spanflow.{name}')
    return logger
