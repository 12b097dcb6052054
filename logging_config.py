import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at DEBUG
QUIET_LOGGERS = ("asyncio", "websockets", "uvicorn.access")


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure the root logger with a console handler and an optional file handler.

    Safe to call more than once; existing handlers are replaced.
    """
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).debug(f"Logging configured: level={logging.getLevelName(level)}, file={log_file}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
