from __future__ import annotations

import logging
import math
import threading
import time
from typing import Dict, List

from flask import current_app, request, session

from painel.errors import RateLimitError


logger = logging.getLogger("painel")

LOGIN_PATH = "/api/auth/login"

# Every response is JSON or an attachment download; nothing is meant to be framed or scripted.
_API_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Cross-Origin-Resource-Policy": "same-origin",
}


class SlidingWindowLimiter:
    """Remembers hit times per key and refuses once ``limit`` fall inside the window."""

    def __init__(self, max_keys: int = 10_000) -> None:
        self._lock = threading.Lock()
        self._hits: Dict[str, List[float]] = {}
        self._max_keys = max_keys

    def hit(self, key: str, limit: int, window_seconds: int) -> int:
        """Records one hit and returns 0 when allowed, else the seconds to wait."""
        now = time.monotonic()
        horizon = now - window_seconds
        with self._lock:
            recent = [stamp for stamp in self._hits.get(key, ()) if stamp > horizon]
            if len(recent) >= limit:
                self._hits[key] = recent
                return max(1, math.ceil(recent[0] - horizon))
            recent.append(now)
            self._hits[key] = recent
            if len(self._hits) > self._max_keys:
                self._hits = {name: stamps for name, stamps in self._hits.items() if stamps[-1] > horizon}
            return 0

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


_REQUESTS = SlidingWindowLimiter()
_LOGINS = SlidingWindowLimiter()


def _client_address() -> str:
    return str(request.remote_addr or "").strip() or "unknown"


def _login_key() -> str:
    payload = request.get_json(silent=True)
    email = payload.get("email") if isinstance(payload, dict) else request.form.get("email")
    return f"{_client_address()}|{str(email or '').strip().lower()}"


def enforce_rate_limit() -> None:
    config = current_app.config
    if not config.get("RATE_LIMIT_ENABLED", True) or request.method == "OPTIONS" or request.path == "/health":
        return

    window = max(1, int(config.get("RATE_LIMIT_WINDOW_SECONDS") or 60))
    if request.path == LOGIN_PATH and request.method == "POST":
        retry_after = _LOGINS.hit(_login_key(), max(1, int(config.get("LOGIN_RATE_LIMIT_ATTEMPTS") or 10)), window)
        scope = "login"
    else:
        owner = str(session.get("user_email") or "").strip().lower() or _client_address()
        retry_after = _REQUESTS.hit(owner, max(1, int(config.get("RATE_LIMIT_MAX_REQUESTS") or 300)), window)
        scope = "api"
    if retry_after:
        logger.warning("rate_limited", extra={"scope": scope, "retry_after": retry_after})
        raise RateLimitError(retry_after)


def apply_security_headers(response):
    if not current_app.config.get("SECURITY_HEADERS_ENABLED", True):
        return response
    for name, value in _API_HEADERS.items():
        response.headers.setdefault(name, value)
    if request.path.startswith("/api/"):
        # Record data is per owner and must not be kept by shared caches.
        response.headers["Cache-Control"] = "no-store"
    if request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


def reset_rate_limiter_for_tests() -> None:
    _REQUESTS.reset()
    _LOGINS.reset()
