import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _error_log_path(log_file: str) -> str:
    root, ext = os.path.splitext(log_file)
    return f"{root}.error{ext or '.log'}"


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure the root logger once for the whole service.

    Console output always goes to stderr. When ``log_file`` is given every
    record is also written there, and ERROR records are additionally copied
    to a sibling file (``rooms.log`` -> ``rooms.error.log``).
    """
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    # Drop handlers from a previous call so reconfiguring does not duplicate lines
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        error_handler = logging.FileHandler(_error_log_path(log_file))
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        root_logger.addHandler(error_handler)

    # Keep third-party chatter out of debug sessions
    logging.getLogger("redis").setLevel(max(level, logging.WARNING))

    root_logger.debug(f"Logging configured: level={logging.getLevelName(level)}, file={log_file}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
