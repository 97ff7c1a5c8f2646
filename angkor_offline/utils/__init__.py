"""Angkor Offline utilities."""

from .logging import get_logger, setup_logging, setup_logging_from_dict
from .metrics import MetricsConfig, OfflineMetrics, SimpleMetrics
from .retry import RetryConfig, retry_async

__all__ = [
    "get_logger",
    "setup_logging",
    "setup_logging_from_dict",
    "MetricsConfig",
    "OfflineMetrics",
    "SimpleMetrics",
    "RetryConfig",
    "retry_async",
]
