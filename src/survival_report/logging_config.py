"""Centralized logging configuration for the survival report.

This module provides:
- Console plus file logging under ``<output_dir>/logs/``
- A dedicated performance log for stage timings and cohort counts
- Warning capture and categorization for library warnings (lifelines, matplotlib)
- Progress tracking across ordered steps

Example:
    >>> from survival_report.logging_config import setup_logging, log_performance
    >>> logger = setup_logging(output_dir="data/outputs/sample")
    >>> logger.info("Starting report")
    >>> log_performance(logger, "Attrition computed", initial_n=228, final_n=183)
"""
import logging
import sys
import warnings
from pathlib import Path
from datetime import datetime
from typing import Optional
from contextlib import contextmanager


LOGGER_NAME = "survival_report"

LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
PERFORMANCE_FORMAT = '%(asctime)s | %(message)s'
CONSOLE_FORMAT = '%(levelname)-8s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class PerformanceFilter(logging.Filter):
    """Pass only records tagged with ``is_performance``."""

    def filter(self, record):
        return getattr(record, 'is_performance', False)


class WarningErrorFilter(logging.Filter):
    """Pass only WARNING and above."""

    def filter(self, record):
        return record.levelno >= logging.WARNING


def _file_handler(
    path: Path,
    level: int,
    fmt: str,
    log_filter: Optional[logging.Filter] = None,
) -> logging.FileHandler:
    handler = logging.FileHandler(path, mode='w', encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=DATE_FORMAT))
    if log_filter is not None:
        handler.addFilter(log_filter)
    return handler


def setup_logging(
    output_dir: str = "data/outputs/sample",
    log_level: int = logging.INFO,
    console_output: bool = True
) -> logging.Logger:
    """Configure the ``survival_report`` logger.

    Creates in ``{output_dir}/logs/``:
    - main_{timestamp}.log: all messages
    - performance_{timestamp}.log: stage timings and cohort counts only
    - warnings_{timestamp}.log: warnings and errors only

    Calling it again replaces the previous handlers.

    Args:
        output_dir: Report output directory; logs go in its ``logs`` subfolder
        log_level: Console level (file logs always capture DEBUG)
        console_output: Whether to also log to stdout

    Returns:
        Configured package logger
    """
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_dir = Path(output_dir) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for old in list(logger.handlers):
        old.close()
        logger.removeHandler(old)
    logger.propagate = False

    if console_output:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(log_level)
        console.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT))
        logger.addHandler(console)

    logger.addHandler(_file_handler(log_dir / f"main_{stamp}.log", logging.DEBUG, LOG_FORMAT))
    logger.addHandler(_file_handler(
        log_dir / f"performance_{stamp}.log", logging.INFO, PERFORMANCE_FORMAT, PerformanceFilter()
    ))
    logger.addHandler(_file_handler(
        log_dir / f"warnings_{stamp}.log", logging.WARNING, LOG_FORMAT, WarningErrorFilter()
    ))

    logger.info(f"Writing logs to {log_dir.absolute()}")
    return logger


def log_performance(logger: logging.Logger, message: str, **kwargs):
    """Log a message to both the main and performance logs.

    Example:
        >>> log_performance(logger, "Kaplan-Meier fitted", groups=2, events=165)
        # Output: "Kaplan-Meier fitted | groups=2 | events=165"
    """
    parts = [message] + [f"{k}={v}" for k, v in kwargs.items()]
    logger.info(" | ".join(parts), extra={'is_performance': True})


class WarningLogger:
    """Routes library warnings to a logger, tagged by category.

    Categories:
    - estimation: lifelines statistical and approximation warnings
    - numerical: overflow, division and invalid value warnings
    - data: missing values, censoring and ties
    - plotting: font, layout and backend warnings
    - other: anything else
    """

    WARNING_CATEGORIES = {
        'estimation': ['StatisticalWarning', 'ApproximationWarning', 'did not converge'],
        'numerical': ['overflow', 'underflow', 'invalid value', 'divide by zero'],
        'data': ['missing values', 'nan', 'censor', 'ties'],
        'plotting': ['tight_layout', 'font', 'glyph', 'backend'],
    }

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.counts = dict.fromkeys(list(self.WARNING_CATEGORIES) + ['other'], 0)

    def categorize_warning(self, message: str, category_name: str = "") -> str:
        text = f"{category_name} {message}".lower()
        for category, keywords in self.WARNING_CATEGORIES.items():
            if any(kw.lower() in text for kw in keywords):
                return category
        return 'other'

    def log_warning(self, message: str, category: Optional[str] = None):
        category = category or self.categorize_warning(message)
        self.counts[category] += 1
        self.logger.warning(f"[{category.upper()}] {message}")

    def summary(self) -> dict:
        """Counts per category, omitting empty categories."""
        return {k: v for k, v in self.counts.items() if v}


@contextmanager
def capture_warnings(logger: logging.Logger):
    """Log Python warnings raised inside the block instead of printing them.

    Yields:
        WarningLogger holding per-category counts

    Example:
        >>> with capture_warnings(logger) as warning_logger:
        ...     kmf.fit(durations, events)
        >>> warning_logger.summary()
        {'data': 1}
    """
    warning_logger = WarningLogger(logger)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            yield warning_logger
        finally:
            for w in caught:
                category = warning_logger.categorize_warning(str(w.message), w.category.__name__)
                warning_logger.log_warning(str(w.message), category)

    summary = warning_logger.summary()
    if summary:
        logger.info("Warning summary: " + ", ".join(f"{k}={v}" for k, v in summary.items()))


class ProgressLogger:
    """Logs progress across a fixed number of ordered steps.

    Example:
        >>> progress = ProgressLogger(logger, total=4, desc="Applying criteria")
        >>> progress.update(1, metrics={'remaining': 227})
        # Output: "Applying criteria: 1/4 (25.0%) | remaining=227"
    """

    def __init__(
        self,
        logger: logging.Logger,
        total: int,
        desc: str,
        log_interval: int = 1
    ):
        self.logger = logger
        self.total = total
        self.desc = desc
        self.log_interval = max(log_interval, 1)
        self.current = 0

    def update(self, n: int = 1, metrics: Optional[dict] = None):
        self.current += n
        if self.current % self.log_interval and self.current != self.total:
            return

        pct = 100.0 * self.current / self.total if self.total else 100.0
        parts = [f"{self.desc}: {self.current}/{self.total} ({pct:.1f}%)"]
        if metrics:
            parts.append(", ".join(
                f"{k}={v:.4f}" if isinstance(v, float) else f"{k}={v}" for k, v in metrics.items()
            ))
        self.logger.info(" | ".join(parts))
