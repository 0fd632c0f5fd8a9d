"""
Performance monitoring utilities for the hurricane prediction game
Provides a timing context manager for scoring work and the per-request hooks
"""

import time

from flask import current_app, g, has_app_context, has_request_context, request

from hurricane_game.utils.logging_config import get_logger

logger = get_logger(__name__)


def _slow_threshold(default):
    if has_app_context():
        return current_app.config.get("SLOW_OPERATION_THRESHOLD", default)
    return default


class PerformanceMonitor:
    """Context manager for monitoring performance of code blocks"""

    def __init__(self, operation_name, log_threshold=None):
        self.operation_name = operation_name
        self.log_threshold = log_threshold
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.time()
        duration = self.end_time - self.start_time
        threshold = (
            self.log_threshold
            if self.log_threshold is not None
            else _slow_threshold(1.0)
        )

        if exc_type:
            logger.error(
                f"Operation '{self.operation_name}' failed after {duration:.3f}s: {exc_val}"
            )
        elif duration > threshold:
            logger.warning(
                f"Slow operation '{self.operation_name}' took {duration:.3f}s "
                f"(threshold: {threshold}s)"
            )
        else:
            logger.debug(
                f"Operation '{self.operation_name}' completed in {duration:.3f}s"
            )

        # Request-level aggregation; scheduler ticks run outside a request
        if has_request_context():
            metrics = g.setdefault("performance_metrics", [])
            metrics.append(
                {
                    "operation": self.operation_name,
                    "duration": duration,
                    "success": exc_type is None,
                }
            )

        return False


def track_request_performance():
    """Track overall request performance"""
    g.request_start_time = time.time()


def log_request_performance(response):
    """Log request performance summary"""
    if not hasattr(g, "request_start_time"):
        return response

    total_duration = time.time() - g.request_start_time

    threshold = current_app.config.get("SLOW_REQUEST_THRESHOLD", 2.0)
    if total_duration > threshold:
        logger.warning(
            f"Slow request: {request.method} {request.path} "
            f"took {total_duration:.2f}s (threshold: {threshold}s)"
        )

        for metric in g.get("performance_metrics", []):
            logger.info(
                f"  - {metric['operation']}: {metric['duration']:.3f}s "
                f"({'success' if metric['success'] else 'failed'})"
            )

    return response
