"""Structured logging for turn index/query runs."""
import logging
import pathlib
from datetime import datetime
from functools import wraps
from typing import Any, Callable, TypeVar

from rich.logging import RichHandler

from advisory_engine.app.settings import settings

T = TypeVar("T")

# One log file per run type per process (all methods in one run share it)
_log_files: dict[str, pathlib.Path] = {}
_loggers_setup: set[str] = set()


def _get_log_file(run_type: str) -> pathlib.Path:
    """Get log file path for a run type ('index' or 'query') with timestamp."""
    if run_type not in _log_files:
        log_dir = pathlib.Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        _log_files[run_type] = log_dir / f"turns_{run_type}_{timestamp}.log"
    return _log_files[run_type]


def _setup_file_logger(run_type: str, logger_name: str) -> logging.Logger:
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.INFO)

    if logger_name not in _loggers_setup:
        logger.handlers.clear()

        log_file = _get_log_file(run_type)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

        console_handler = RichHandler(rich_tracebacks=True)
        console_handler.setLevel(logging.INFO)
        logger.addHandler(console_handler)
        logger.propagate = False

        _loggers_setup.add(logger_name)
        logger.info(f"Log file created: {log_file}")

    return logger


def get_turn_logger(run_type: str = "query") -> logging.Logger:
    """
    Get the logger used for custom messages within index/query runs.

    Args:
        run_type: 'index' or 'query' - determines log file name
    """
    return _setup_file_logger(run_type, f"turns_{run_type}")


def log_method_entry(run_type: str = "query"):
    """
    Decorator logging 'module:method is entered' / 'is exited' around a call.

    Keyword arguments are logged except anything that looks like a secret or
    an embedding vector.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            module_name = func.__module__.split(".")[-1]
            method_name = func.__name__
            logger = get_turn_logger(run_type)

            logger.info(f"{module_name}:{method_name} is entered")
            safe_kwargs = {
                k: v
                for k, v in kwargs.items()
                if "key" not in k.lower() and "embedding" not in k.lower() and k != "turn"
            }
            if safe_kwargs:
                logger.info(f"{module_name}:{method_name} called with kwargs: {safe_kwargs}")

            try:
                result = func(*args, **kwargs)
                logger.info(f"{module_name}:{method_name} is exited")
                return result
            except Exception as exc:
                logger.error(f"{module_name}:{method_name} failed with error: {exc}", exc_info=True)
                raise

        return wrapper
    return decorator
