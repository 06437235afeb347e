"""
Observability module - Logging, Metrics, and Tracing.
"""

from iap_manager.observability.logging import get_logger, log_context, setup_logging
from iap_manager.observability.metrics import metrics
from iap_manager.observability.tracing import setup_tracing, trace_operation

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
    "trace_operation",
]
