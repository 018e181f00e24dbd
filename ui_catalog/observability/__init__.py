"""Observability layer - logging and metrics."""

from ui_catalog.observability.logging import setup_logging
from ui_catalog.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
