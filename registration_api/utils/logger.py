import logging
from logging.handlers import TimedRotatingFileHandler
import os
from typing import Optional


logger = logging.getLogger("registration_api")
logger.setLevel(logging.INFO)

formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def setup_logger(
    log_path: Optional[str] = None,
    log_filename: str = "registration_api.log",
    level: str = "INFO",
) -> logging.Logger:
    """
    Attach a handler to the package logger.

    Logs rotate at midnight when a log path is given, otherwise they go to stderr.
    Calling this twice does not add a second handler.
    """
    logger.setLevel(level.upper())
    if logger.handlers:
        return logger

    if log_path:
        if not os.path.exists(log_path):
            try:
                os.makedirs(log_path, exist_ok=True)
            except PermissionError:
                log_path = "./logs/api/"
                os.makedirs(log_path, exist_ok=True)
        handler = TimedRotatingFileHandler(
            os.path.join(log_path, log_filename), when="midnight", interval=1, encoding="utf-8"
        )
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger
