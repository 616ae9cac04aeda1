"""Lookup events as structured log lines, cache and upstream metrics over StatsD."""

from __future__ import annotations

import json
import logging
import socket
import threading
from datetime import datetime, timezone
from typing import Any, Mapping

from kyc.settings import Settings, get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_LOGGER = logging.getLogger("kyc.observability")
_STATSD_LOCK = threading.Lock()
_STATSD: "StatsdClient | None" = None

Tags = Mapping[str, Any]


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging at the level declared in settings."""

    resolved = settings or get_settings()
    level_name = (resolved.runtime.log_level or "INFO").upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)


def format_statsd_payload(
    prefix: str,
    metric: str,
    value: float,
    *,
    metric_type: str,
    tags: Tags | None = None,
) -> str:
    """Render a DogStatsD-style datagram, e.g. ``kyc.cache.hit:1|c|#tier:volatile``."""

    name = f"{prefix}.{metric}" if prefix else metric
    number = f"{value:.6f}".rstrip("0").rstrip(".") or "0"
    payload = f"{name}:{number}|{metric_type}"
    if tags:
        payload += "|#" + ",".join(f"{key}:{tags[key]}" for key in sorted(tags))
    return payload


class StatsdClient:
    """Fire-and-forget UDP sender for counters and timings."""

    def __init__(self, host: str, port: int, prefix: str) -> None:
        self.prefix = prefix
        self._address = (host, port)
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def increment(self, metric: str, *, value: float, tags: Tags | None) -> None:
        self._send(format_statsd_payload(self.prefix, metric, value, metric_type="c", tags=tags))

    def record_timing(self, metric: str, *, value_ms: float, tags: Tags | None) -> None:
        self._send(format_statsd_payload(self.prefix, metric, value_ms, metric_type="ms", tags=tags))

    def _send(self, payload: str) -> None:
        try:
            self._socket.sendto(payload.encode("utf-8"), self._address)
        except OSError:
            _LOGGER.debug("StatsD send failed: %s", payload, exc_info=True)


class Observability:
    """Per-component handle for lookup events and metrics.

    Events are always logged. Metrics are dropped unless a StatsD host is
    configured.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        component: str | None = None,
        metrics_backend: StatsdClient | None = None,
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
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **fields,
        }
        if self._structured_logging:
            self._logger.info(json.dumps(payload, default=str))
        else:
            self._logger.info("%s | %s", event, payload)

    def increment(self, metric: str, *, value: float = 1.0, tags: Tags | None = None) -> None:
        if self._metrics:
            self._metrics.increment(metric, value=value, tags=_drop_empty_tags(tags))

    def record_timing(self, metric: str, value_ms: float, *, tags: Tags | None = None) -> None:
        if self._metrics:
            self._metrics.record_timing(metric, value_ms=value_ms, tags=_drop_empty_tags(tags))


def get_observability(*, component: str | None = None, settings: Settings | None = None) -> Observability:
    """Return an :class:`Observability` sharing the process-wide StatsD client."""

    resolved = settings or get_settings()
    return Observability(settings=resolved, component=component, metrics_backend=_shared_statsd(resolved))


def reset_observability_cache() -> None:
    """Forget the shared StatsD client (used in tests)."""

    global _STATSD
    with _STATSD_LOCK:
        _STATSD = None


def _shared_statsd(settings: Settings) -> StatsdClient | None:
    global _STATSD
    with _STATSD_LOCK:
        if _STATSD is None and settings.observability.statsd_host:
            _STATSD = StatsdClient(
                settings.observability.statsd_host,
                settings.observability.statsd_port,
                settings.observability.statsd_prefix,
            )
        return _STATSD


def _drop_empty_tags(tags: Tags | None) -> dict[str, str] | None:
    if not tags:
        return None
    kept = {str(key): str(value) for key, value in tags.items() if value is not None}
    return kept or None


__all__ = [
    "Observability",
    "StatsdClient",
    "configure_logging",
    "format_statsd_payload",
    "get_observability",
    "reset_observability_cache",
]
