from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable

from flask import g, has_request_context, request


logger = logging.getLogger("painel")

# Upper bounds of the response-time histogram, in milliseconds.
LATENCY_LIMITS_MS = (10, 50, 100, 250, 500, 1000, 2500)

_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; ``extra`` fields are copied to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if has_request_context():
            payload["request_id"] = ensure_request_id()
            payload["method"] = request.method
            payload["path"] = request.path
        else:
            payload["request_id"] = str(getattr(record, "request_id", "") or "n/a")

        for key, value in vars(record).items():
            if key in _RECORD_ATTRIBUTES or key.startswith("_") or key in payload:
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_json_logging(app) -> None:
    if not bool(app.config.get("LOG_JSON", True)):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).strip().upper(), logging.INFO))
    app.logger.handlers = []
    app.logger.propagate = True


def ensure_request_id() -> str:
    request_id = getattr(g, "request_id", None)
    if not request_id:
        request_id = str(request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
        g.request_id = request_id
    return request_id


@dataclass
class _RouteStats:
    requests: int = 0
    errors: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0


class PanelMetrics:
    """In-process counters for HTTP traffic and for the panel views users open."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._routes: Dict[str, _RouteStats] = {}
        self._latency: Counter = Counter()
        self._views: Counter = Counter()
        self._filters: Counter = Counter()

    def observe_http(self, method: str, route: str, status_code: int, elapsed_ms: float) -> None:
        elapsed = max(0.0, float(elapsed_ms))
        bucket = next((f"<={limit}" for limit in LATENCY_LIMITS_MS if elapsed <= limit), f">{LATENCY_LIMITS_MS[-1]}")
        with self._lock:
            stats = self._routes.setdefault(f"{method} {route}", _RouteStats())
            stats.requests += 1
            stats.total_ms += elapsed
            stats.max_ms = max(stats.max_ms, elapsed)
            if status_code >= 400:
                stats.errors += 1
            self._latency[bucket] += 1

    def observe_view(self, view: str, active_filters: Iterable[str]) -> None:
        with self._lock:
            self._views[view] += 1
            self._filters.update(active_filters)

    def snapshot(self) -> dict:
        with self._lock:
            routes = [
                {
                    "route": route,
                    "requests": stats.requests,
                    "errors": stats.errors,
                    "avg_latency_ms": round(stats.total_ms / stats.requests, 2) if stats.requests else 0.0,
                    "max_latency_ms": round(stats.max_ms, 2),
                }
                for route, stats in self._routes.items()
            ]
            routes.sort(key=lambda item: item["requests"], reverse=True)
            return {
                "requests_total": sum(stats.requests for stats in self._routes.values()),
                "errors_total": sum(stats.errors for stats in self._routes.values()),
                "by_route": routes,
                "latency_ms": dict(self._latency),
                "views": dict(sorted(self._views.items())),
                "filters_used": dict(sorted(self._filters.items())),
            }

    def reset(self) -> None:
        with self._lock:
            self._routes.clear()
            self._latency.clear()
            self._views.clear()
            self._filters.clear()


_METRICS = PanelMetrics()


def mark_request_start() -> None:
    g.request_started_at = time.perf_counter()


def observe_response(response):
    started = getattr(g, "request_started_at", None)
    elapsed_ms = (time.perf_counter() - started) * 1000.0 if started else 0.0
    route = request.url_rule.rule if request.url_rule is not None else "unmatched"
    _METRICS.observe_http(request.method, route, response.status_code, elapsed_ms)
    response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"
    return response


def observe_view(
    record_type: str,
    view: str,
    active_filters: Iterable[str],
    total: int,
    kind: str | None = None,
) -> None:
    """Counts one dashboard, report or digest build and logs the filters behind it."""
    name = ".".join(part for part in (record_type, view, kind) if part)
    filters = list(active_filters)
    _METRICS.observe_view(name, filters)
    logger.info("view_built", extra={"view": name, "filters": filters, "records": total})


def metrics_snapshot() -> dict:
    return _METRICS.snapshot()


def reset_metrics_for_tests() -> None:
    _METRICS.reset()
