"""Stage timing for the survival report.

Durations go to the performance log through ``log_performance``, so the
per-stage cost of a run can be read from ``performance_*.log`` alone.

Example:
    >>> from survival_report.timing import log_execution_time, Timer
    >>>
    >>> @log_execution_time()
    ... def prepare_dataset(config):
    ...     ...
    >>> with Timer(logger, "Attrition diagram"):
    ...     render_attrition_diagram(result, path)
"""
import time
import functools
import logging
from typing import Callable, Optional

from survival_report.logging_config import log_performance


class Timer:
    """Context manager timing one report stage.

    Failures are logged with the elapsed time and then propagate.

    Example:
        >>> with Timer(logger, "Kaplan-Meier plot"):
        ...     plot_km(fitters, path)
        INFO     | Starting: Kaplan-Meier plot
        INFO     | Completed: Kaplan-Meier plot | duration_sec=0.41
    """

    def __init__(self, logger: logging.Logger, description: str):
        self.logger = logger
        self.description = description
        self.start_time: Optional[float] = None
        self.duration: Optional[float] = None

    def __enter__(self):
        self.logger.info(f"Starting: {self.description}")
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = self.elapsed()
        if exc_type is not None:
            self.logger.error(
                f"{self.description} failed after {self.duration:.2f}s: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )
            return False

        log_performance(self.logger, f"Completed: {self.description}",
                        duration_sec=round(self.duration, 3))
        return False

    def elapsed(self) -> float:
        """Seconds since the stage started, 0.0 before entering."""
        if self.start_time is None:
            return 0.0
        return time.perf_counter() - self.start_time


def log_execution_time(logger: Optional[logging.Logger] = None):
    """Decorator timing every call of a stage function.

    Args:
        logger: Logger to use; defaults to the decorated function's module logger

    Returns:
        Decorator. Exceptions raised by the function are logged and re-raised.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with Timer(logger or logging.getLogger(func.__module__), func.__name__):
                return func(*args, **kwargs)

        return wrapper
    return decorator
