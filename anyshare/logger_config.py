import logging
import sys
from pathlib import Path

from anyshare import config


def setup_logger():
    logger = logging.getLogger("anyshare")
    # Already configured by another module
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)

    logs_dir = Path(config.LOG_DIR)
    logs_dir.mkdir(parents=True, exist_ok=True)

    file_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    )

    file_handler = logging.FileHandler(logs_dir / "anyshare.log")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(console_formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger
