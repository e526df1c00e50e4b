"""
Logging configuration
"""

import logging
import sys
from typing import Optional
from core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Per-request and per-record logs from these are noise next to job logs
NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "httpx", "apscheduler")


def setup_logging(level: Optional[str] = None):
    """Configure root logging once; `level` overrides LOG_LEVEL (scripts pass --log-level)"""
    level_name = (level or settings.LOG_LEVEL).upper()

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(f"Logging configured at {level_name} level")
