"""
Observability hooks for the Gate Access platform.
Integrates logging, metrics, and tracing behind one manager.
"""

from typing import Optional

from .logging import get_logger, set_request_id, set_user_context
from .metrics import MetricsCollector, get_metrics_collector
from .tracing import add_span_attributes, add_span_event


class ObservabilityManager:
    """Centralized observability manager for services."""

    def __init__(self, service_name: str, metrics: Optional[MetricsCollector] = None):
        self.service_name = service_name
        self.metrics = metrics or get_metrics_collector(service_name)
        self.logger = get_logger(f"{service_name}.observability")

    def trace_request(self, request_id: Optional[str] = None, user_id: Optional[str] = None):
        """Set up request context for logs and the current span."""
        if request_id:
            set_request_id(request_id)
        if user_id:
            set_user_context(user_id)

        add_span_attributes(request_id=request_id, user_id=user_id)

    def log_error(self, error_type: str, error_message: str, **kwargs):
        """Log an internal fault with full context."""
        self.logger.error(
            "Error occurred",
            error_type=error_type,
            error_message=error_message,
            **kwargs
        )

        self.metrics.record_error(error_type)
        add_span_event("error", error_type=error_type, error_message=error_message)

    def log_business_event(self, event_type: str, **kwargs):
        """Log a lifecycle event with full context."""
        self.logger.info(
            "Business event",
            event_type=event_type,
            **kwargs
        )

        self.metrics.record_business_event(event_type)
        add_span_event("business_event", event_type=event_type, **kwargs)


def get_observability_manager(service_name: str, **kwargs) -> ObservabilityManager:
    """Get an observability manager for a service."""
    return ObservabilityManager(service_name, **kwargs)
