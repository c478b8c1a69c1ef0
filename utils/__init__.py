"""
Utility package for the count-model LOO analysis.

This package provides logging, decorators, file and results handling.
"""

from utils.logging_utils import logger, LoggingManager, log_step
from utils.file_utils import ensure_dir_exists
from utils.decorators import timed, log_errors

__all__ = [
    'logger', 'LoggingManager', 'ensure_dir_exists',
    'log_step', 'timed', 'log_errors'
]
