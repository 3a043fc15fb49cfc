import logging
import sys

from party_market.config import settings


def setup_logging() -> logging.Logger:
    logger = logging.getLogger("party_market")
    if logger.handlers:
        return logger
    handler = logging.StreamHandler(sys.stdout)
    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    handler.setFormatter(fmt)
    logger.addHandler(handler)
    logger.setLevel(settings.LOG_LEVEL.upper())
    return logger
