"""
Logging configuration for HR Leave Service
"""
import logging
import sys
from typing import Optional
from hr_leave.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure the root logger once for the API process or a batch script.

    - stdout handler, level from settings.LOG_LEVEL unless overridden
    - uvicorn access log and SQLAlchemy engine kept at WARNING, except that
      SQL statements are echoed when running at DEBUG
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if log_level == logging.DEBUG else logging.WARNING
    )

    logging.getLogger(__name__).info(
        "Logging configured: level=%s, env=%s, ledger_max_retries=%s",
        level_name, settings.APP_ENV, settings.LEDGER_MAX_RETRIES,
    )
