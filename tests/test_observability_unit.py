"""Unit tests for structured logging and the metrics collector."""

import json
import logging
import sys

from outreach_core.observability.logging import (
    JsonFormatter,
    RequestContext,
    StructuredLogger,
    get_logger,
)
from outreach_core.observability.metrics import (
    DELIVERY_DURATION_MS,
    WEBHOOKS_RECEIVED,
    MetricsCollector,
)


def _record(level=logging.INFO, msg="webhook resolved", exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="outreach_core.domain.services.resolver",
        level=level,
        pathname="resolver.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestJsonFormatter:
    """Tests for the JSON log formatter."""

    def test_basic_fields(self):
        parsed = json.loads(JsonFormatter().format(_record()))

        assert parsed["message"] == "webhook resolved"
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "outreach_core.domain.services.resolver"
        assert parsed["service"] == "outreach-ledger"
        assert "source" not in parsed

    def test_extra_fields_become_top_level_keys(self):
        record = _record()
        record.correlation_id = "c0ffee"
        record.routing_key = "abc123"

        parsed = json.loads(JsonFormatter().format(record))

        assert parsed["correlation_id"] == "c0ffee"
        assert parsed["routing_key"] == "abc123"

    def test_unserializable_extra_is_stringified(self):
        record = _record()
        record.payload = object()

        parsed = json.loads(JsonFormatter().format(record))

        assert parsed["payload"].startswith("<object object")

    def test_warning_carries_source_and_exception(self):
        try:
            raise ValueError("redis down")
        except ValueError:
            exc_info = sys.exc_info()

        parsed = json.loads(
            JsonFormatter().format(_record(logging.WARNING, "publish failed", exc_info))
        )

        assert parsed["source"]["line"] == 42
        assert "ValueError: redis down" in parsed["exception"]


class TestRequestContext:
    """Tests for per-delivery log context."""

    def test_only_set_fields_are_included(self):
        context = RequestContext(correlation_id="c0ffee", attempt=0, extra={"contact_id": 101})

        assert context.to_dict() == {
            "correlation_id": "c0ffee",
            "attempt": 0,
            "contact_id": 101,
        }

    def test_context_is_merged_into_log_line(self, caplog):
        logger = StructuredLogger("outreach_core.tests")

        with caplog.at_level(logging.INFO, logger="outreach_core.tests"):
            logger.info(
                "delivery attempt",
                context=RequestContext(correlation_id="c0ffee", routing_key="abc123"),
                event_kind="invite_sent",
            )

        record = caplog.records[-1]
        assert record.correlation_id == "c0ffee"
        assert record.routing_key == "abc123"
        assert record.event_kind == "invite_sent"

    def test_get_logger_is_cached(self):
        assert get_logger("outreach_core.tests") is get_logger("outreach_core.tests")


class TestMetricsCollector:
    """Tests for the in-process metrics collector."""

    def test_labelled_counters_are_separate(self):
        metrics = MetricsCollector()

        metrics.increment(WEBHOOKS_RECEIVED)
        metrics.increment(WEBHOOKS_RECEIVED, labels={"outcome": "failed"})
        metrics.increment(WEBHOOKS_RECEIVED)

        assert metrics.get(WEBHOOKS_RECEIVED) == 2
        assert metrics.get(WEBHOOKS_RECEIVED, labels={"outcome": "failed"}) == 1
        assert metrics.get("never_recorded") == 0

    def test_snapshot_holds_counters_and_histograms(self):
        metrics = MetricsCollector()
        metrics.increment(WEBHOOKS_RECEIVED)
        with metrics.timed(DELIVERY_DURATION_MS):
            pass

        snapshot = metrics.get_all()

        assert set(snapshot) == {"counters", "histograms"}
        assert snapshot["histograms"][DELIVERY_DURATION_MS]["count"] == 1

    def test_reset(self):
        metrics = MetricsCollector()
        metrics.increment(WEBHOOKS_RECEIVED)

        metrics.reset()

        assert metrics.get_all() == {"counters": {}, "histograms": {}}
