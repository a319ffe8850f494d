"""
Error handling for the tile-dither runner.

Wraps failures of tile processing into ProcessingError subclasses that log
themselves on creation.
"""

import functools
import logging
import traceback
from typing import Callable, Optional

from tile_dither_backend.quantize_randoms import DitherTableError


class ProcessingError(Exception):
    """Base class for processing errors"""
    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error
        self.log_error()

    def log_error(self):
        logger = logging.getLogger('ProcessingError')
        logger.error(f"Processing Error: {self}")
        if self.original_error:
            logger.error(f"Original Error: {self.original_error!r}")

class ConfigurationError(ProcessingError):
    """Invalid tile geometry or configuration"""
    pass

class DitherConsistencyError(ProcessingError):
    """Dither table self-check failed; never retried"""
    pass

class MemoryManagementError(ProcessingError):
    """Out of memory while processing tiles"""
    pass

def robust_processing(func: Callable) -> Callable:
    """
    Decorator mapping failures to ProcessingError subclasses

    Args:
        func: Function to wrap

    Returns:
        Wrapped function
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__)
        try:
            return func(*args, **kwargs)
        except ProcessingError:
            raise
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration in {func.__name__}: {e}", original_error=e) from e
        except DitherTableError as e:
            raise DitherConsistencyError(f"Dither table inconsistent: {e}", original_error=e) from e
        except MemoryError as e:
            logger.error(f"Memory Error in {func.__name__}: {e}")
            raise MemoryManagementError(f"Not enough memory: {e}", original_error=e) from e
        except Exception as e:
            logger.error(f"Unexpected error in {func.__name__}: {e}")
            logger.error(traceback.format_exc())
            raise ProcessingError(f"Unexpected processing error: {e}", original_error=e) from e
    return wrapper

def log_exception(func: Callable) -> Callable:
    """
    Decorator logging exceptions before re-raising them
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__)
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Error in {func.__name__}: {e}")
            logger.debug(traceback.format_exc())
            raise
    return wrapper
