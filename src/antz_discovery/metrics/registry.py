"""Prometheus metrics registry for ANT discovery."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

antz_messages_received_total: Final = Counter(  # type: ignore[assignment]
    "antz_messages_received_total",
    "Total broadcast messages received",
    ["profile"],
)

antz_decode_errors_total: Final = Counter(  # type: ignore[assignment]
    "antz_decode_errors_total",
    "Total messages that failed to decode",
    ["reason"],
)

antz_events_emitted_total: Final = Counter(  # type: ignore[assignment]
    "antz_events_emitted_total",
    "Total decoded events emitted",
    ["kind"],
)

antz_events_suppressed_total: Final = Counter(  # type: ignore[assignment]
    "antz_events_suppressed_total",
    "Total decoded events suppressed before output",
    ["reason"],
)

antz_page_requests_total: Final = Counter(  # type: ignore[assignment]
    "antz_page_requests_total",
    "Total request-data-page commands",
    ["page", "outcome"],
)

antz_request_attempts_total: Final = Counter(  # type: ignore[assignment]
    "antz_request_attempts_total",
    "Total acknowledged send attempts for page requests",
    ["attempt_number", "outcome"],
)

antz_request_dedup_hits_total: Final = Counter(  # type: ignore[assignment]
    "antz_request_dedup_hits_total",
    "Total page requests skipped because they were already issued",
    ["page"],
)

antz_request_dedup_cache_size: Final = Gauge(  # type: ignore[assignment]
    "antz_request_dedup_cache_size",
    "Current number of (device, page) request keys",
)

antz_known_devices: Final = Gauge(  # type: ignore[assignment]
    "antz_known_devices",
    "Devices seen since start",
)

antz_channel_setup_total: Final = Counter(  # type: ignore[assignment]
    "antz_channel_setup_total",
    "Total channel open attempts",
    ["kind", "outcome"],
)

antz_publish_total: Final = Counter(  # type: ignore[assignment]
    "antz_publish_total",
    "Total MQTT publish attempts",
    ["outcome"],
)

antz_dispatch_latency_seconds: Final = Histogram(  # type: ignore[assignment]
    "antz_dispatch_latency_seconds",
    "Time spent decoding and dispatching one broadcast message",
    buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9410) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_message_received(profile: str) -> None:
    antz_messages_received_total.labels(profile=profile).inc()  # type: ignore[no-untyped-call]


def record_decode_error(reason: str) -> None:
    antz_decode_errors_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_event_emitted(kind: str) -> None:
    antz_events_emitted_total.labels(kind=kind).inc()  # type: ignore[no-untyped-call]


def record_event_suppressed(reason: str) -> None:
    antz_events_suppressed_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_page_request(page: int, outcome: str) -> None:
    """Record the final outcome of one page request ("ok" or "failed")."""
    antz_page_requests_total.labels(page=f"0x{page:02X}", outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_request_attempt(attempt_number: int, outcome: str) -> None:
    antz_request_attempts_total.labels(
        attempt_number=str(attempt_number), outcome=outcome,
    ).inc()  # type: ignore[no-untyped-call]


def record_dedup_hit(page: int) -> None:
    antz_request_dedup_hits_total.labels(page=f"0x{page:02X}").inc()  # type: ignore[no-untyped-call]


def record_dedup_cache_size(size: int) -> None:
    antz_request_dedup_cache_size.set(size)  # type: ignore[no-untyped-call]


def record_known_devices(count: int) -> None:
    antz_known_devices.set(count)  # type: ignore[no-untyped-call]


def record_channel_setup(kind: str, outcome: str) -> None:
    antz_channel_setup_total.labels(kind=kind, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_publish(outcome: str) -> None:
    antz_publish_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_dispatch_latency(seconds: float) -> None:
    antz_dispatch_latency_seconds.observe(seconds)  # type: ignore[no-untyped-call]
