"""
Logging configuration for the attendance backend
"""
import logging
import sys
from typing import Optional

from attendance_api.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure Python logging for the API and the sweep script

    Sets up:
    - Console handler on stdout
    - Level from `level` when given, else settings.LOG_LEVEL
    - Quieter uvicorn access logs; SQL statements only at DEBUG
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ],
        force=True,
    )

    logging.getLogger("attendance_api").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if log_level <= logging.DEBUG else logging.WARNING
    )

    logger = logging.getLogger(__name__)
    logger.info("Logging configured: level=%s env=%s tz=%s", level_name, settings.APP_ENV, settings.BUSINESS_TIMEZONE)
