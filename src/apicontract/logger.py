"""Centralised logging for contract runs."""

import logging
import os
from logging.handlers import RotatingFileHandler

import colorlog

# httpx logs every request at INFO, which drowns the per-operation results
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(verbose: bool = False) -> None:
    """Configure the root logger once.

    Console output is colourised with colorlog; a rotating file handler is
    added when CONTRACT_LOG_FILE is set.

    Args:
        verbose: Force DEBUG level regardless of CONTRACT_LOG_LEVEL

    Raises:
        ValueError: If the level or rotation settings are invalid
    """
    log_level = "DEBUG" if verbose else os.getenv('CONTRACT_LOG_LEVEL', 'INFO').upper()
    log_file = os.getenv('CONTRACT_LOG_FILE')
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"Invalid CONTRACT_LOG_LEVEL: {log_level!r}")
    try:
        max_bytes = int(os.getenv('LOG_FILE_MAX_BYTES', '10485760'))  # 10 MB
        backup_count = int(os.getenv('LOG_FILE_BACKUP_COUNT', '5'))
    except ValueError as e:
        raise ValueError(f"Invalid log file rotation setting: {e}") from None

    root = logging.getLogger()
    root.setLevel(log_level)

    if not root.hasHandlers():
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(
            colorlog.ColoredFormatter(
                "%(log_color)s%(levelname)s:%(name)s:%(message)s",
                log_colors={
                    'DEBUG': 'bold_blue',
                    'INFO': 'bold_green',
                    'WARNING': 'bold_yellow',
                    'ERROR': 'bold_red',
                    'CRITICAL': 'bold_purple'
                }
            )
        )
        root.addHandler(console_handler)

        if log_file:
            file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
            file_handler.setFormatter(
                logging.Formatter(
                    '%(asctime)s - %(name)s - %(levelname)s - %(message)s - (%(filename)s:%(lineno)d)'
                )
            )
            root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)
