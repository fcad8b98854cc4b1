"""
Logging setup - rotating file log plus console, with noisy libraries quieted
"""
import logging
import os
from logging.handlers import RotatingFileHandler

from .config import settings


def setup_logging(level: int = logging.INFO, log_dir: str = None) -> None:
    """Configure the root logger once for the API process and the scheduler"""
    log_dir = log_dir or settings.LOGS_PATH
    os.makedirs(log_dir, exist_ok=True)

    # 50MB per file, keep 7 files
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, "colocacion.log"),
        maxBytes=50 * 1024 * 1024,
        backupCount=7,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    ))

    # Quiet noisy loggers before configuring root
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logging.basicConfig(level=level, handlers=[file_handler, console_handler], force=True)
