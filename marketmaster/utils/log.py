# marketmaster/utils/log.py
import logging

from ..config import settings

_configured = False


def get_logger(name: str = "marketmaster") -> logging.Logger:
    global _configured
    if not _configured:
        level = (settings.LOG_LEVEL or "INFO").upper()
        logging.basicConfig(
            format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
            level=getattr(logging, level, logging.INFO),
        )
        _configured = True
    return logging.getLogger(name)
