# astroproxy/utils/ratelimit.py
from __future__ import annotations

"""
Token-bucket rate limiter for Flask views.

Every chart request can fan out into a couple of dozen paid upstream calls,
and Nominatim allows roughly one request per second per client, so both
outbound-heavy routes sit behind this.

Features
- Per-client buckets, scoped per route by default
- Client address comes from request.remote_addr; ProxyFix in main.py resolves
  it from X-Forwarded-For, so a raw header cannot pick the bucket
- Thread-safe (per-process) via RLock
- X-RateLimit-* headers, Retry-After on 429
- Env toggles (read per request, so tests and ops can flip them live):
    ASTROPROXY_RL_DISABLE    -> disable limiter entirely
    ASTROPROXY_RL_ALLOWLIST  -> comma-separated client IPs to skip
"""

import math
import os
import time
from dataclasses import dataclass
from functools import wraps
from threading import RLock
from typing import Any, Callable, Dict, Optional, Set

from flask import jsonify, make_response, request

__all__ = ["rate_limit", "ip_key", "endpoint_key", "reset_buckets"]

_buckets: Dict[str, "Bucket"] = {}
_lock = RLock()
_last_cleanup = 0.0


def _disabled() -> bool:
    return os.getenv("ASTROPROXY_RL_DISABLE", "0").lower() in ("1", "true", "yes", "on")


def _allowlist() -> Set[str]:
    return {s.strip() for s in os.getenv("ASTROPROXY_RL_ALLOWLIST", "").split(",") if s.strip()}


# ───────────────────────── key functions ─────────────────────────
def _client_ip(req) -> str:
    return req.remote_addr or "anon"


def ip_key(req) -> str:
    """Bucket per client IP (no route scoping)."""
    return _client_ip(req)


def endpoint_key(req) -> str:
    """Bucket per client IP + endpoint."""
    return f"{_client_ip(req)}:{(req.endpoint or req.path) or '*'}"



# ───────────────────────── bucket ─────────────────────────
@dataclass
class Bucket:
    tokens: float
    capacity: float
    rate: float       # tokens per second
    ts: float         # last refill (monotonic)
    limit: int        # advertised per-minute limit

    def refill(self, now: float) -> None:
        if now > self.ts:
            self.tokens = min(self.capacity, self.tokens + (now - self.ts) * self.rate)
            self.ts = now


def _evict_idle(now: float) -> None:
    """Drop full buckets idle for a few minutes so memory stays bounded."""
    global _last_cleanup
    if now - _last_cleanup < 30.0:
        return
    _last_cleanup = now
    stale = [k for k, b in _buckets.items() if b.tokens >= b.capacity and now - b.ts > 180.0]
    for k in stale:
        _buckets.pop(k, None)


def reset_buckets() -> None:
    with _lock:
        _buckets.clear()


def _limited_response(b: Bucket, retry_after: int):
    resp = make_response(jsonify({
        "ok": False,
        "error": "rate_limited",
        "details": {"retry_after_seconds": retry_after},
    }), 429)
    resp.headers["Retry-After"] = str(retry_after)
    resp.headers["X-RateLimit-Limit"] = str(b.limit)
    resp.headers["X-RateLimit-Remaining"] = "0"
    resp.headers["X-RateLimit-Reset"] = str(retry_after)
    return resp


# ───────────────────────── decorator ─────────────────────────
def rate_limit(
    max_per_minute: int,
    key_fn: Optional[Callable[[Any], str]] = None,
):
    """
    Args:
        max_per_minute: steady rate (tokens/min).
        key_fn: function(request) -> bucket id; defaults to endpoint_key.

    On exhaustion returns 429
        {"ok": False, "error": "rate_limited", "details": {"retry_after_seconds": N}}
    """
    if max_per_minute <= 0:
        raise ValueError("max_per_minute must be > 0")

    limit = int(max_per_minute)
    capacity = float(limit)
    rate = limit / 60.0

    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            if _disabled() or request.method in ("HEAD", "OPTIONS"):
                return f(*args, **kwargs)

            key = str((key_fn or endpoint_key)(request))
            allow = _allowlist()
            if key in allow or key.split(":", 1)[0] in allow:
                return f(*args, **kwargs)

            now = time.monotonic()
            with _lock:
                _evict_idle(now)
                b = _buckets.get(key)
                if b is None:
                    b = _buckets[key] = Bucket(tokens=capacity, capacity=capacity, rate=rate, ts=now, limit=limit)
                else:
                    b.refill(now)

                if b.tokens + 1e-12 < 1.0:
                    return _limited_response(b, max(1, math.ceil((1.0 - b.tokens) / b.rate)))
                b.tokens -= 1.0
                remaining = max(0, int(b.tokens))

            resp = make_response(f(*args, **kwargs))
            resp.headers.setdefault("X-RateLimit-Limit", str(limit))
            resp.headers["X-RateLimit-Remaining"] = str(remaining)
            return resp

        return wrapper

    return decorator
