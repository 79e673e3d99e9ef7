"""
Logging configuration for the booth engine.

Console output always; rotating files when ``LOG_DIR`` is set.
"""
import os
import logging
import logging.handlers
from typing import Optional

from boothcore.config import settings


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> None:
    """Configure the root logger with console and rotating file handlers"""
    level_name = (level or settings.LOG_LEVEL).upper()
    log_dir = log_dir if log_dir is not None else settings.LOG_DIR

    root_logger = logging.getLogger()
    root_logger.setLevel(level_name)

    # Clear existing handlers
    root_logger.handlers = []
    device_logger = logging.getLogger('boothcore.devices')
    device_logger.handlers = []

    # Detailed formatter with file, line, and function information
    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d in %(funcName)s()] - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Console formatter (less detailed for readability)
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level_name)
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

        main_file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, 'boothcore.log'),
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        main_file_handler.setLevel(level_name)
        main_file_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(main_file_handler)

        # ERROR and above, rejected transitions included
        error_file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, 'boothcore_errors.log'),
            maxBytes=5*1024*1024,  # 5MB
            backupCount=5,
            encoding='utf-8'
        )
        error_file_handler.setLevel(logging.ERROR)
        error_file_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(error_file_handler)

        # Lock gateway traffic gets its own file
        device_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, 'devices.log'),
            maxBytes=20*1024*1024,  # 20MB
            backupCount=3,
            encoding='utf-8'
        )
        device_handler.setLevel(logging.DEBUG)
        device_handler.setFormatter(detailed_formatter)
        device_logger.addHandler(device_handler)

    # Quiet noisy libraries
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Logging initialized at %s", level_name)
