"""Prometheus metrics for gateway observability.

Metrics Defined:
- gateway_deliveries_total: Counter of deliveries by event type and outcome
- gateway_handler_failures_total: Counter of handler failures by event type
- gateway_token_refreshes_total: Counter of token exchanges by result
- gateway_token_refresh_duration_seconds: Histogram of exchange latency

The MetricsEventEmitter integrates with the event emission system to
update metrics from gateway events.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from .emitter import EventEmitter
from .models import EventType, GatewayEvent

logger = logging.getLogger(__name__)


# Token endpoint latency, from a fast cache-adjacent response to the
# exchange timeout
DEFAULT_DURATION_BUCKETS = (
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
)


class GatewayMetrics:
    """Container for all gateway Prometheus metrics.

    Supports custom registries for testing.

    Example:
        >>> metrics = GatewayMetrics(registry=CollectorRegistry())
        >>> metrics.record_delivery("issues", "accepted")
        >>> metrics.record_token_refresh(success=True, duration_seconds=0.3)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize gateway metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.deliveries_total = Counter(
            "gateway_deliveries_total",
            "Total number of webhook deliveries by outcome",
            labelnames=["event_type", "outcome"],
            registry=self.registry,
        )

        self.handler_failures_total = Counter(
            "gateway_handler_failures_total",
            "Total number of handler failures",
            labelnames=["event_type"],
            registry=self.registry,
        )

        self.token_refreshes_total = Counter(
            "gateway_token_refreshes_total",
            "Total number of installation token exchanges",
            labelnames=["result"],
            registry=self.registry,
        )

        self.token_refresh_duration_seconds = Histogram(
            "gateway_token_refresh_duration_seconds",
            "Time spent exchanging installation tokens in seconds",
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_delivery(self, event_type: str, outcome: str) -> None:
        self.deliveries_total.labels(event_type=event_type, outcome=outcome).inc()

    def record_handler_failure(self, event_type: str) -> None:
        self.handler_failures_total.labels(event_type=event_type).inc()

    def record_token_refresh(
        self,
        success: bool,
        duration_seconds: Optional[float] = None,
    ) -> None:
        """Record one token exchange.

        Args:
            success: Whether the exchange produced a token.
            duration_seconds: Exchange latency, if measured.
        """
        result = "success" if success else "failure"
        self.token_refreshes_total.labels(result=result).inc()
        if duration_seconds is not None:
            self.token_refresh_duration_seconds.observe(duration_seconds)


# Global metrics instance for the default registry
_default_metrics: Optional[GatewayMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> GatewayMetrics:
    """Get or create the gateway metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.
    """
    global _default_metrics

    if registry is not None:
        return GatewayMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = GatewayMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus metrics output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - DELIVERY_ACCEPTED / DELIVERY_REJECTED: deliveries_total
    - HANDLER_FAILED: handler_failures_total
    - TOKEN_REFRESHED / TOKEN_REFRESH_FAILED: token refresh counter and
      duration histogram
    """

    def __init__(
        self,
        metrics: Optional[GatewayMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> GatewayMetrics:
        return self._metrics

    async def emit(self, event: GatewayEvent) -> None:
        try:
            webhook_event = str(event.details.get("webhook_event", "unknown"))
            if event.event_type == EventType.DELIVERY_ACCEPTED:
                self._metrics.record_delivery(webhook_event, "accepted")
            elif event.event_type == EventType.DELIVERY_REJECTED:
                self._metrics.record_delivery(webhook_event, "rejected")
            elif event.event_type == EventType.HANDLER_FAILED:
                self._metrics.record_handler_failure(webhook_event)
            elif event.event_type in (
                EventType.TOKEN_REFRESHED,
                EventType.TOKEN_REFRESH_FAILED,
            ):
                self._metrics.record_token_refresh(
                    success=event.event_type == EventType.TOKEN_REFRESHED,
                    duration_seconds=event.details.get("duration_seconds"),
                )
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={"event_type": event.event_type.value, "subject": event.subject},
            )
