"""
Structured logging for jobtracker.

Console and daily file output plus counters for monitoring scrape health:
HTTP requests, retries, AI calls, reused extractions and change outcomes.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json

OUTCOMES = ("unseen", "changed", "unchanged", "not_found", "company_scraped", "school_page")


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring scraper performance.
    """

    def __init__(
        self,
        name: str = "jobtracker",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers

        self.metrics = {
            "http_requests": 0,
            "retries": 0,
            "ai_calls": 0,
            "extractions_reused": 0,
            "scrapes_attempted": 0,
            "scrapes_successful": 0,
            "scrapes_failed": 0,
            "outcomes": {outcome: 0 for outcome in OUTCOMES},
            "errors_by_type": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"jobtracker_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def set_level(self, level: str):
        """Change the logger and console threshold; the file handler keeps DEBUG."""
        numeric = getattr(logging, level.upper())
        self.logger.setLevel(numeric)
        for handler in self.logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(numeric)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def exception(self, message: str, **kwargs):
        """Log error message with the active exception's traceback."""
        if kwargs:
            message = f"{message} | Context: {json.dumps(kwargs, default=str)}"
        self.logger.exception(message)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_http_request(self):
        self.metrics["http_requests"] += 1

    def record_retry(self):
        self.metrics["retries"] += 1

    def record_ai_call(self):
        self.metrics["ai_calls"] += 1

    def record_extraction_reused(self):
        self.metrics["extractions_reused"] += 1

    def record_scrape_attempt(self):
        self.metrics["scrapes_attempted"] += 1

    def record_scrape_success(self, outcome: str):
        """Record a finished scrape and its change-detection outcome."""
        self.metrics["scrapes_successful"] += 1
        self.metrics["outcomes"][outcome] = self.metrics["outcomes"].get(outcome, 0) + 1

    def record_scrape_failure(self, error_type: str):
        """Record scraping failure."""
        self.metrics["scrapes_failed"] += 1
        if error_type not in self.metrics["errors_by_type"]:
            self.metrics["errors_by_type"][error_type] = 0
        self.metrics["errors_by_type"][error_type] += 1

    def get_metrics(self) -> dict:
        """Return a copy of the current metrics with the success rate filled in."""
        metrics_copy = json.loads(json.dumps(self.metrics))
        attempts = metrics_copy["scrapes_attempted"]
        metrics_copy["success_rate"] = (
            round(metrics_copy["scrapes_successful"] / attempts, 3) if attempts else 0
        )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        total_attempts = metrics["scrapes_attempted"]
        total_successes = metrics["scrapes_successful"]
        overall_rate = round(metrics["success_rate"] * 100, 1)

        self.info("=== Scraping Session Metrics ===")
        self.info(f"HTTP Requests: {metrics['http_requests']} (retries: {metrics['retries']})")
        self.info(f"AI Calls: {metrics['ai_calls']} (reused extractions: {metrics['extractions_reused']})")
        self.info(f"Scrapes: {total_successes}/{total_attempts} ({overall_rate}% success)")

        if any(metrics["outcomes"].values()):
            self.info("Outcomes:")
            for outcome, count in metrics["outcomes"].items():
                self.info(f"  {outcome}: {count}")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "jobtracker",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
