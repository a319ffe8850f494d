"""
Central logging configuration for tile-dither.

Console output always, rotating log files when a log directory is given.
"""

import logging
import sys
import os
from logging.handlers import RotatingFileHandler
from datetime import datetime
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'


def setup_logging(
    log_level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = None,
    log_prefix: str = 'tile_dither',
    stream=None
):
    """
    Configure the root logger

    Args:
        log_level: Logging level, int or name (default: INFO)
        log_dir: Directory for log files, no file logging if None
        log_prefix: Prefix for log file names
        stream: Console stream (default: sys.stdout)

    Returns:
        The root logger
    """
    if isinstance(log_level, str):
        log_level = logging.getLevelName(log_level.upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO

    logger = logging.getLogger()
    logger.setLevel(log_level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    console_handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = os.path.join(log_dir, f"{log_prefix}_{timestamp}.log")

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10 MB
            backupCount=5
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logging.getLogger('astropy').setLevel(logging.WARNING)

    return logger
