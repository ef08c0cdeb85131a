"""Logging setup, structured events, and StatsD metrics for pi_finder."""

from __future__ import annotations

import json
import logging
import socket
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Mapping, Protocol

from pi_finder.settings import Settings, get_settings

_LOGGER = logging.getLogger("pi_finder.observability")
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(settings: Settings | None = None) -> None:
    """Apply the configured log level to the root logger."""

    resolved = settings or get_settings()
    level = getattr(logging, resolved.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    logging.getLogger("pi_finder").setLevel(level)


class MetricsBackend(Protocol):
    """Sink for counters and timings."""

    def increment(self, metric: str, *, value: float, tags: Mapping[str, str] | None) -> None: ...

    def record_timing(self, metric: str, *, value_ms: float, tags: Mapping[str, str] | None) -> None: ...


class StatsdBackend:
    """Fire-and-forget StatsD client over UDP (DogStatsD tag syntax)."""

    def __init__(self, host: str, port: int, prefix: str = "", *, sock: socket.socket | None = None) -> None:
        self.address = (host, port)
        self.prefix = prefix
        self._socket = sock or socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def increment(self, metric: str, *, value: float, tags: Mapping[str, str] | None) -> None:
        self._send(metric, value, "c", tags)

    def record_timing(self, metric: str, *, value_ms: float, tags: Mapping[str, str] | None) -> None:
        self._send(metric, value_ms, "ms", tags)

    def format_line(self, metric: str, value: float, metric_type: str, tags: Mapping[str, str] | None) -> str:
        name = f"{self.prefix}.{metric}" if self.prefix else metric
        line = f"{name}:{_format_number(value)}|{metric_type}"
        if tags:
            line += "|#" + ",".join(f"{key}:{val}" for key, val in sorted(tags.items()))
        return line

    def _send(self, metric: str, value: float, metric_type: str, tags: Mapping[str, str] | None) -> None:
        try:
            self._socket.sendto(self.format_line(metric, value, metric_type, tags).encode("utf-8"), self.address)
        except OSError:
            _LOGGER.debug("StatsD send failed for metric %s", metric, exc_info=True)


class Observability:
    """Structured events plus optional metrics for one component.

    Events are logged as JSON when ``observability.structured_logging`` is on,
    otherwise as ``event | payload`` lines. Metrics are dropped when no backend
    is configured.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        component: str | None = None,
        metrics_backend: MetricsBackend | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.component = component or "core"
        self._logger = logger or _LOGGER
        self._structured_logging = bool(settings.observability.structured_logging)
        self._metrics = metrics_backend

    def emit_event(self, event: str, **fields: Any) -> None:
        payload = {
            "event": event,
            "component": self.component,
            "service": self.settings.observability.service_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **fields,
        }
        if self._structured_logging:
            self._logger.info(json.dumps(payload, default=str))
        else:
            self._logger.info("%s | %s", event, payload)

    def increment(self, metric: str, *, value: float = 1.0, tags: Mapping[str, str] | None = None) -> None:
        if self._metrics is not None:
            self._metrics.increment(metric, value=value, tags=_clean_tags(tags))

    def record_timing(self, metric: str, value_ms: float, *, tags: Mapping[str, str] | None = None) -> None:
        if self._metrics is not None:
            self._metrics.record_timing(metric, value_ms=value_ms, tags=_clean_tags(tags))


@lru_cache(maxsize=4)
def _statsd_backend(host: str, port: int, prefix: str) -> StatsdBackend:
    return StatsdBackend(host, port, prefix)


def get_observability(*, component: str | None = None, settings: Settings | None = None) -> Observability:
    """Return an :class:`Observability` for ``component``; one UDP socket is shared per StatsD target."""

    resolved = settings or get_settings()
    config = resolved.observability
    backend = _statsd_backend(config.statsd_host, config.statsd_port, config.statsd_prefix) if config.statsd_host else None
    return Observability(settings=resolved, component=component, metrics_backend=backend)


def _clean_tags(tags: Mapping[str, Any] | None) -> Mapping[str, str] | None:
    if not tags:
        return None
    cleaned = {str(key): str(value) for key, value in tags.items() if value is not None}
    return cleaned or None


def _format_number(value: float) -> str:
    return f"{value:.6f}".rstrip("0").rstrip(".") or "0"


__all__ = ["MetricsBackend", "Observability", "StatsdBackend", "configure_logging", "get_observability"]
