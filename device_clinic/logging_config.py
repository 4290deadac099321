"""
Device Clinic - Logging Configuration

Console plus a rotating log file. Parsers log which vendor path they took at
DEBUG; the file handler is what keeps those for later troubleshooting.
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from .config import BASE_DIR, LOG_FILE, LOG_LEVEL

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"

# Chatty libraries held at WARNING
QUIET_LOGGERS = ("multipart", "pypdf", "sqlalchemy.engine", "uvicorn.access")


def configure_logging(level: str = LOG_LEVEL, log_file: Optional[str] = LOG_FILE) -> Optional[Path]:
    """
    Install handlers on the root logger, replacing any from a previous call.

    An empty log_file disables the file handler. Returns the log file path.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    console_handler.setLevel(logging.INFO)
    root_logger.addHandler(console_handler)

    log_path = None
    if log_file:
        log_path = Path(BASE_DIR) / log_file
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_path,
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.info(f"📝 Logging at {level} to {log_path or 'console only'}")
    return log_path
