"""Tests for structured events and StatsD metrics."""

from __future__ import annotations

import json
import logging

import pytest

from pi_finder.observability import Observability, StatsdBackend, get_observability
from pi_finder.settings import get_settings


class _FakeSocket:
    def __init__(self) -> None:
        self.sent: list[tuple[bytes, tuple[str, int]]] = []

    def sendto(self, payload: bytes, address: tuple[str, int]) -> None:
        self.sent.append((payload, address))


class _RecordingBackend:
    def __init__(self) -> None:
        self.counters: list[tuple[str, float, dict | None]] = []
        self.timings: list[tuple[str, float, dict | None]] = []

    def increment(self, metric, *, value, tags):
        self.counters.append((metric, value, tags))

    def record_timing(self, metric, *, value_ms, tags):
        self.timings.append((metric, value_ms, tags))


def _structured_settings():
    settings = get_settings()
    return settings.model_copy(
        update={"observability": settings.observability.model_copy(update={"structured_logging": True})}
    )


def test_statsd_lines_carry_prefix_and_sorted_tags() -> None:
    sock = _FakeSocket()
    backend = StatsdBackend("127.0.0.1", 8125, "pi_finder", sock=sock)

    backend.increment("trial_meta.batches", value=2, tags={"status": "ok", "batches": "2"})
    backend.record_timing("trial_meta.fetch", value_ms=12.5, tags=None)

    assert [payload for payload, _ in sock.sent] == [
        b"pi_finder.trial_meta.batches:2|c|#batches:2,status:ok",
        b"pi_finder.trial_meta.fetch:12.5|ms",
    ]
    assert sock.sent[0][1] == ("127.0.0.1", 8125)


def test_metrics_drop_empty_tags_and_skip_without_backend() -> None:
    backend = _RecordingBackend()
    observability = Observability(settings=get_settings(), component="test", metrics_backend=backend)

    observability.increment("hits", tags={"status": None})
    observability.record_timing("latency", 3.0, tags={"route": "results"})
    Observability(settings=get_settings()).increment("ignored")

    assert backend.counters == [("hits", 1.0, None)]
    assert backend.timings == [("latency", 3.0, {"route": "results"})]


def test_structured_events_are_json(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("tests.observability")
    observability = Observability(settings=_structured_settings(), component="reconciler", logger=logger)

    with caplog.at_level(logging.INFO, logger="tests.observability"):
        observability.emit_event("reconcile.completed", mode="filtered", total=3)

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "reconcile.completed"
    assert payload["component"] == "reconciler"
    assert payload["service"] == "pi-finder-api"
    assert payload["mode"] == "filtered"
    assert payload["total"] == 3


def test_get_observability_without_statsd_host_has_no_backend() -> None:
    observability = get_observability(component="trial_metadata", settings=get_settings())

    assert observability.component == "trial_metadata"
    assert observability._metrics is None
