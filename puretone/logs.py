from __future__ import annotations
import logging
from typing import Optional

from .paths import get_log_file_path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configura il logger 'puretone': file di log più stderr."""
    logger = logging.getLogger("puretone")
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    formatter = logging.Formatter(LOG_FORMAT)
    try:
        file_handler = logging.FileHandler(log_file or get_log_file_path(), encoding="utf-8")
    except OSError as exc:
        logger.warning("File di log non disponibile: %s", exc)
    else:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(logging.WARNING)
    logger.addHandler(stream_handler)
    return logger
