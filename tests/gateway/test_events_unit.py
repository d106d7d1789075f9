"""Unit tests for gateway event emitters and Prometheus metrics."""

import asyncio
import logging

from prometheus_client import CollectorRegistry

from src.gateway.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
)
from src.gateway.events.metrics import (
    GatewayMetrics,
    MetricsEventEmitter,
    generate_metrics_output,
)
from src.gateway.events.models import EventType, GatewayEvent


def run_async(coro):
    return asyncio.run(coro)


def _event(event_type: EventType, **details) -> GatewayEvent:
    return GatewayEvent(event_type=event_type, subject="delivery-1", details=details)


class BrokenEmitter(EventEmitter):
    async def emit(self, event: GatewayEvent) -> None:
        raise RuntimeError("sink down")


class CountingEmitter(EventEmitter):
    def __init__(self):
        self.count = 0

    async def emit(self, event: GatewayEvent) -> None:
        self.count += 1


class TestGatewayEvent:
    def test_log_dict_flattens_details(self):
        event = _event(EventType.DELIVERY_REJECTED, reason="bad signature")
        data = event.to_log_dict()

        assert data["event_type"] == "delivery_rejected"
        assert data["subject"] == "delivery-1"
        assert data["reason"] == "bad signature"
        assert "timestamp" in data


class TestEmitters:
    def test_logging_emitter_uses_level_per_type(self, caplog):
        emitter = LoggingEventEmitter(logger_name="gateway.test.events")
        with caplog.at_level(logging.INFO, logger="gateway.test.events"):
            run_async(emitter.emit(_event(EventType.DELIVERY_ACCEPTED)))
            run_async(emitter.emit(_event(EventType.HANDLER_FAILED)))

        levels = [r.levelno for r in caplog.records]
        assert levels == [logging.INFO, logging.ERROR]

    def test_composite_isolates_failing_sink(self):
        counting = CountingEmitter()
        composite = CompositeEventEmitter([BrokenEmitter(), counting])

        run_async(composite.emit(_event(EventType.DELIVERY_ACCEPTED)))

        assert counting.count == 1

    def test_null_emitter_discards(self):
        run_async(NullEventEmitter().emit(_event(EventType.DELIVERY_ACCEPTED)))

    def test_factory_defaults_to_logging(self):
        assert isinstance(create_event_emitter(), LoggingEventEmitter)

    def test_factory_builds_composite_for_multiple_sinks(self):
        emitter = create_event_emitter([EventSinkType.LOGGING, EventSinkType.METRICS])

        assert isinstance(emitter, CompositeEventEmitter)

    def test_factory_single_sink_is_not_wrapped(self):
        assert isinstance(create_event_emitter([EventSinkType.METRICS]), MetricsEventEmitter)


class TestMetrics:
    def test_events_update_counters(self):
        registry = CollectorRegistry()
        emitter = MetricsEventEmitter(metrics=GatewayMetrics(registry=registry))

        async def scenario():
            await emitter.emit(_event(EventType.DELIVERY_ACCEPTED, webhook_event="issues"))
            await emitter.emit(_event(EventType.DELIVERY_REJECTED, webhook_event="issues"))
            await emitter.emit(_event(EventType.HANDLER_FAILED, webhook_event="issues"))
            await emitter.emit(_event(EventType.TOKEN_REFRESHED, duration_seconds=0.2))
            await emitter.emit(_event(EventType.TOKEN_REFRESH_FAILED, duration_seconds=0.4))

        run_async(scenario())

        def value(name, **labels):
            return registry.get_sample_value(name, labels)

        assert value("gateway_deliveries_total", event_type="issues", outcome="accepted") == 1
        assert value("gateway_deliveries_total", event_type="issues", outcome="rejected") == 1
        assert value("gateway_handler_failures_total", event_type="issues") == 1
        assert value("gateway_token_refreshes_total", result="success") == 1
        assert value("gateway_token_refreshes_total", result="failure") == 1
        assert value("gateway_token_refresh_duration_seconds_count") == 2

    def test_metrics_output_is_prometheus_text(self):
        registry = CollectorRegistry()
        GatewayMetrics(registry=registry).record_delivery("ping", "accepted")

        output = generate_metrics_output(registry).decode("utf-8")

        assert 'gateway_deliveries_total{event_type="ping",outcome="accepted"} 1.0' in output
