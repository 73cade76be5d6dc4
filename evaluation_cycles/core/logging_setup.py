import os
import sys

from loguru import logger


def setup_logging() -> None:
    from evaluation_cycles.core.config import settings

    logger.remove()
    logger.add(sys.stdout, level=settings.LOG_LEVEL)

    if settings.LOG_PATH:
        log_dir = os.path.dirname(settings.LOG_PATH)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        logger.add(settings.LOG_PATH, rotation="10 MB", level=settings.LOG_LEVEL)
