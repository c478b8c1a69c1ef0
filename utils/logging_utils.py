#!/usr/bin/env python3
"""
Logging utilities for the count-regression LOO analysis.

This module provides:
1. Consistent logging setup across the application
2. A decorator for structured step logging
3. Helper methods for common logging patterns (dicts, frames, warnings)
"""
import logging
import os
import sys
import functools
import time
from typing import Dict, Any, Optional, Callable, TypeVar, Iterable

# Type variables for callable
F = TypeVar('F', bound=Callable[..., Any])

APP_LOGGER_NAME = 'Count_LOO'


class LoggerProvider:
    """
    Provides centralized access to the application logger.

    All components share the same logger instance; ``LoggingManager``
    swaps it out when logging is reconfigured.
    """
    _logger = None

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get the application logger instance.

        Returns:
            The application logger
        """
        if cls._logger is None:
            cls._logger = logging.getLogger(APP_LOGGER_NAME)
            if not cls._logger.handlers:
                handler = logging.StreamHandler(sys.stdout)
                formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
                handler.setFormatter(formatter)
                cls._logger.addHandler(handler)
                cls._logger.setLevel(logging.INFO)

        return cls._logger


def get_logger() -> logging.Logger:
    """Get the application logger."""
    return LoggerProvider.get_logger()


# Initialize logger for module-level functions to use
logger = get_logger()


def log_step(step_name: str = None) -> Callable[[F], F]:
    """
    Decorator to log the start and end of a step with timing information.

    Can be used with or without a step name:

    @log_step
    def my_func():
        ...

    @log_step("Fitting models")
    def my_func():
        ...

    Args:
        step_name: Optional name of the processing step. If None, function name is used.

    Returns:
        Decorated function that logs step start and end
    """
    def decorator(func: F) -> F:
        name = step_name if isinstance(step_name, str) else func.__name__

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = logger

            log.info(f"Starting step: {name}")
            start_time = time.time()

            success = False
            try:
                result = func(*args, **kwargs)
                success = True
            except Exception as e:
                log.error(f"Error in step {name}: {str(e)}")
                raise
            finally:
                elapsed = time.time() - start_time
                status = "completed successfully" if success else "failed"
                log.info(f"Step {name} {status} in {elapsed:.2f} seconds")

            return result

        return wrapper

    # Handle case where decorator is used without arguments: @log_step
    if callable(step_name):
        func, step_name = step_name, None
        return decorator(func)

    return decorator


class LoggingManager:
    """
    Manages logging configuration and provides utility methods for logging.
    """

    @staticmethod
    def setup_logging(
        logger_name: str = APP_LOGGER_NAME,
        log_level: Any = logging.INFO,
        log_file: Optional[str] = None,
        log_format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ) -> logging.Logger:
        """
        Set up logging configuration.

        Args:
            logger_name: Name of the logger
            log_level: Logging level as int or name (default: INFO)
            log_file: Path to log file (if None, logs to console only)
            log_format: Format string for log messages

        Returns:
            Configured logger instance
        """
        if isinstance(log_level, str):
            log_level = getattr(logging, log_level.upper(), logging.INFO)

        log = logging.getLogger(logger_name)
        log.setLevel(log_level)

        if log.handlers:
            log.handlers.clear()

        formatter = logging.Formatter(log_format)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        log.addHandler(console_handler)

        if log_file:
            os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            log.addHandler(file_handler)

        # Update the main logger in LoggerProvider
        LoggerProvider._logger = log

        return log

    @staticmethod
    def log_warnings(log: logging.Logger, title: str, warnings: Iterable[Any]) -> int:
        """
        Log a batch of diagnostic warnings under a common title.

        Args:
            log: Logger instance
            title: Prefix identifying where the warnings came from
            warnings: Iterable of warning records (anything with a str())

        Returns:
            Number of warnings logged
        """
        count = 0
        for warning in warnings:
            log.warning(f"{title}: {warning}")
            count += 1
        return count

    @staticmethod
    def log_dataframe_info(
        log: logging.Logger,
        df_name: str,
        df: Any,
        include_stats: bool = False
    ) -> None:
        """
        Log information about a pandas DataFrame.

        Args:
            log: Logger instance
            df_name: Name of the DataFrame
            df: The pandas DataFrame
            include_stats: Whether to include basic statistics
        """
        log.info(f"DataFrame '{df_name}' shape: {df.shape}")
        log.info(f"DataFrame '{df_name}' columns: {list(df.columns)}")

        na_counts = df.isna().sum()
        if na_counts.sum() > 0:
            log.info(f"DataFrame '{df_name}' NA counts:\n{na_counts[na_counts > 0]}")

        if include_stats:
            log.info(f"DataFrame '{df_name}' statistics:\n{df.describe().to_string()}")

    @staticmethod
    def log_dict(
        log: logging.Logger,
        title: str,
        data: Dict[str, Any],
        level: str = 'info'
    ) -> None:
        """
        Log a dictionary with a title.

        Args:
            log: Logger instance
            title: Title for the log entry
            data: Dictionary to log
            level: Log level ('debug', 'info', 'warning', 'error')
        """
        log_method = getattr(log, level.lower())
        formatted_data = "\n".join([f"  {k}: {v}" for k, v in data.items()])
        log_method(f"{title}:\n{formatted_data}")
