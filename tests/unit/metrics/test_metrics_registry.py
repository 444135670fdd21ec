"""Unit tests for metrics registry."""

from __future__ import annotations

from antz_discovery.metrics import registry

EXPECTED_CACHE_SIZE = 12
EXPECTED_KNOWN_DEVICES = 3


def _has_sample(metric, labels: dict[str, str]) -> bool:
    return any(s.labels == labels for s in metric.collect()[0].samples)


class TestDecodeMetrics:
    """Tests for receive and decode metrics."""

    def test_record_message_received(self) -> None:
        registry.record_message_received("asset")
        assert _has_sample(registry.antz_messages_received_total, {"profile": "asset"})

    def test_record_decode_error(self) -> None:
        registry.record_decode_error("trailer_underflow")
        assert _has_sample(registry.antz_decode_errors_total, {"reason": "trailer_underflow"})

    def test_record_event_emitted(self) -> None:
        registry.record_event_emitted("location")
        assert _has_sample(registry.antz_events_emitted_total, {"kind": "location"})

    def test_record_event_suppressed(self) -> None:
        registry.record_event_suppressed("implausible_bpm")
        assert _has_sample(registry.antz_events_suppressed_total, {"reason": "implausible_bpm"})

    def test_record_dispatch_latency(self) -> None:
        registry.record_dispatch_latency(0.002)
        samples = list(registry.antz_dispatch_latency_seconds.collect()[0].samples)
        count = next(s for s in samples if s.name.endswith("_count"))
        assert count.value >= 1


class TestRequestMetrics:
    """Tests for page request metrics."""

    def test_record_page_request(self) -> None:
        registry.record_page_request(0x50, "ok")
        assert _has_sample(registry.antz_page_requests_total, {"page": "0x50", "outcome": "ok"})

    def test_record_request_attempt(self) -> None:
        registry.record_request_attempt(2, "failed")
        assert _has_sample(registry.antz_request_attempts_total, {"attempt_number": "2", "outcome": "failed"})

    def test_record_dedup_hit(self) -> None:
        registry.record_dedup_hit(0x11)
        assert _has_sample(registry.antz_request_dedup_hits_total, {"page": "0x11"})

    def test_record_dedup_cache_size(self) -> None:
        registry.record_dedup_cache_size(EXPECTED_CACHE_SIZE)
        samples = list(registry.antz_request_dedup_cache_size.collect()[0].samples)
        assert samples[0].value == EXPECTED_CACHE_SIZE


class TestLifecycleMetrics:
    """Tests for device, channel and publish metrics."""

    def test_record_known_devices(self) -> None:
        registry.record_known_devices(EXPECTED_KNOWN_DEVICES)
        samples = list(registry.antz_known_devices.collect()[0].samples)
        assert samples[0].value == EXPECTED_KNOWN_DEVICES

    def test_record_channel_setup(self) -> None:
        registry.record_channel_setup("paired", "ok")
        assert _has_sample(registry.antz_channel_setup_total, {"kind": "paired", "outcome": "ok"})

    def test_record_publish(self) -> None:
        registry.record_publish("skipped")
        assert _has_sample(registry.antz_publish_total, {"outcome": "skipped"})
