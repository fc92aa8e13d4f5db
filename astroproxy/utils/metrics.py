# astroproxy/utils/metrics.py
from __future__ import annotations

"""
Prometheus metrics shared by the app, the resolver and the geocoder.
Names are part of the dashboard contract; keep them stable.
"""

from typing import Final

from prometheus_client import Counter, Gauge, Histogram

MET_REQUESTS: Final = Counter("astroproxy_requests_total", "API requests", ["route"])
REQ_LATENCY: Final = Histogram("astroproxy_request_seconds", "API request latency", ["route"])

UPSTREAM_ATTEMPTS: Final = Counter(
    "astroproxy_upstream_attempts_total",
    "Chart API attempts by outcome",
    ["outcome", "transport"],
)
UPSTREAM_LATENCY: Final = Histogram(
    "astroproxy_upstream_seconds",
    "Chart API attempt latency",
    ["transport"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0),
)
RESOLUTIONS: Final = Counter(
    "astroproxy_resolutions_total",
    "Chart resolutions by outcome",
    ["outcome", "house_system"],
)
ATTEMPTS_PER_RESOLUTION: Final = Histogram(
    "astroproxy_attempts_per_resolution",
    "Upstream calls needed per resolution",
    buckets=(1, 2, 3, 5, 8, 13, 21, 34),
)
GEOCODE_CACHE: Final = Counter("astroproxy_geocode_cache_total", "Geocoder cache lookups", ["result"])
GAUGE_APP_UP: Final = Gauge("astroproxy_app_up", "1 if app is running")
