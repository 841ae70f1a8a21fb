"""
Logging setup for the kiosk
"""
import os
import logging
from logging.handlers import RotatingFileHandler

LOGGER_NAME = "theater_kiosk"

DEFAULT_CONFIG = {
    "level": "INFO",
    "file": "logs/kiosk.log",
    "max_size": 1048576,  # 1MB
    "backup_count": 3
}

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL
}


def setup_logger(settings=None, to_file: bool = True) -> logging.Logger:
    """Configure the application logger from settings (or defaults)."""
    log_config = dict(DEFAULT_CONFIG)
    if settings is not None:
        log_config["level"] = settings.log_level
        log_config["file"] = settings.log_file

    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.setLevel(LOG_LEVELS.get(str(log_config["level"]).upper(), logging.INFO))

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if to_file and log_config["file"]:
        try:
            log_dir = os.path.dirname(log_config["file"])
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_config["file"],
                maxBytes=log_config["max_size"],
                backupCount=log_config["backup_count"]
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.error(f"Failed to set up file logging: {str(e)}")

    return logger
