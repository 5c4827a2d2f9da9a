"""
Simple in-memory rate limiter.

Enabled by RATE_LIMIT_ENABLED (default: 1). Donation intents are limited by
RATE_LIMIT_DONATION_PER_WINDOW per RATE_LIMIT_WINDOW_SECONDS (default: 5 per
15 minutes) per client IP.
"""

from __future__ import annotations
import logging
import time
from collections import defaultdict, deque
from functools import wraps
from threading import Lock

from flask import jsonify, request

logger = logging.getLogger(__name__)

_lock = Lock()
_hits: dict[str, deque] = defaultdict(deque)


def _clean_old(ts: deque, window: int, now: float) -> None:
    cutoff = now - window
    while ts and ts[0] < cutoff:
        ts.popleft()


def is_rate_limited(key: str, limit: int, window: int) -> bool:
    """Return True if the key has exceeded the limit within the window."""
    if limit <= 0:
        return False
    now = time.time()
    with _lock:
        ts = _hits[key]
        _clean_old(ts, window, now)
        if len(ts) >= limit:
            return True
        ts.append(now)
        return False


def reset() -> None:
    with _lock:
        _hits.clear()


def rate_limit_key() -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def donation_rate_limit(key_prefix: str = "donation"):
    """Limit a route using the donation window from Settings."""

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            from donations_api.container import current_services

            settings = current_services().settings
            if not settings.rate_limit_enabled:
                return fn(*args, **kwargs)
            key = f"{key_prefix}:{rate_limit_key()}"
            window = settings.rate_limit_window_seconds
            if is_rate_limited(key, settings.rate_limit_donation_per_window, window):
                logger.warning("rate limit hit key=%s", key)
                return (
                    jsonify(
                        {
                            "error": "RATE_LIMITED",
                            "message": "Too many donation attempts, please try again later.",
                            "retry_after": window,
                        }
                    ),
                    429,
                )
            return fn(*args, **kwargs)

        return wrapper

    return decorator
