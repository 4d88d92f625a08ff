# src/cabin_khojo/utils/logger.py

import logging
import os
from cabin_khojo.config import get_config

def setup_logger(name):
    """Set up logger with console and optional file output."""

    config = get_config()
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    # Prevent duplicate handlers when modules are re-imported
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(console_handler)

    if config.LOG_DIR:
        try:
            os.makedirs(config.LOG_DIR, exist_ok=True)
            file_handler = logging.FileHandler(os.path.join(config.LOG_DIR, "cabin_khojo.log"))
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Could not create log file: {e}")

    return logger
