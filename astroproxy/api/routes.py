# astroproxy/api/routes.py
"""
astroproxy API routes
- Chart (resolver over the upstream chart API)
- Location lookup (upstream) and place search (Nominatim)
- Ops: /api/health, /api/test, /api/config, /__debug/routes

Notes:
- Fatal resolver errors (configuration, exhausted search, cancellation) are
  raised as ChartProxyError and rendered by the app-level handler in main.py.
- Validation errors are answered here with the same envelope as the rest of
  the API: {"ok": false, "error": "validation_error", "details": [...]}
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import Blueprint, current_app, jsonify, request

from astroproxy.core.errors import UpstreamUnavailable, ValidationError
from astroproxy.core.geocoding import coordinates
from astroproxy.core.presentation import chart_to_dict
from astroproxy.core.resolver import DeadlineToken
from astroproxy.core.validators import parse_birth_query
from astroproxy.utils.ratelimit import ip_key, rate_limit
from astroproxy.version import VERSION

log = logging.getLogger(__name__)
api = Blueprint("api", __name__)

# ── per-endpoint rate-limit caps (calls per minute, env-overridable) ───────────
_RL = lambda k, d: int(os.getenv(k, str(d)))
RL_CHART    = _RL("ASTROPROXY_RL_CHART_PER_MIN",    12)
RL_LOCATION = _RL("ASTROPROXY_RL_LOCATION_PER_MIN", 30)
RL_GEOCODE  = _RL("ASTROPROXY_RL_GEOCODE_PER_MIN",  60)
RL_DEBUG    = _RL("ASTROPROXY_RL_DEBUG_PER_MIN",     6)


# ───────────────────────── helpers ─────────────────────────
def _services() -> Dict[str, Any]:
    return current_app.extensions["astroproxy"]


def _json_error(code: str, details: Any = None, http: int = 400, message: Optional[str] = None):
    out: Dict[str, Any] = {"ok": False, "error": code}
    if message is not None:
        out["message"] = message
    if details is not None:
        out["details"] = details
    return jsonify(out), http


def _body_json() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def _has_coordinates(body: Dict[str, Any]) -> bool:
    has_lat = any(body.get(k) not in (None, "") for k in ("latitude", "lat"))
    has_lon = any(body.get(k) not in (None, "") for k in ("longitude", "lng", "lon"))
    return has_lat and has_lon


def _fill_coordinates(body: Dict[str, Any]) -> Dict[str, Any]:
    """Place name without coordinates: take the first settlement from the geocoder."""
    if _has_coordinates(body):
        return body
    place = body.get("location") or body.get("place")
    if not isinstance(place, str) or not place.strip():
        return body
    hits = _services()["geocoder"].search(place, limit=1)
    if not hits:
        raise ValidationError({"loc": ["location"], "msg": f"place not found: {place}", "type": "value_error.location"})
    lat, lon = coordinates(hits[0])
    log.info("chart: coordinates for '%s' from geocoder: %.4f, %.4f", place, lat, lon)
    return {**body, "latitude": lat, "longitude": lon}


# ───────────────────────── health / ops ─────────────────────────
@api.get("/api/health")
def health():
    return jsonify({"ok": True, "status": "up", "version": VERSION}), 200


@api.get("/api/test")
def status_probe():
    """Deployment probe: is the credential wired in? (length only, never the value)"""
    key = _services()["settings"].api_key
    return jsonify({
        "status": "ok",
        "has_api_key": bool(key),
        "api_key_length": len(key) if key else 0,
        "environment": os.getenv("APP_ENV") or os.getenv("FLASK_ENV") or "production",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }), 200


@api.get("/api/config")
@rate_limit(RL_DEBUG)
def config_info():
    return jsonify({"ok": True, "resolver": _services()["settings"].summary(), "version": VERSION}), 200


@api.get("/__debug/routes")
@rate_limit(RL_DEBUG)
def debug_routes():
    rules = []
    for r in current_app.url_map.iter_rules():
        if r.endpoint == "static":
            continue
        methods = sorted(m for m in r.methods if m not in {"HEAD", "OPTIONS"})
        rules.append({"rule": str(r), "methods": methods, "endpoint": r.endpoint})
    rules.sort(key=lambda x: x["rule"])
    return jsonify({"ok": True, "routes": rules}), 200


# ───────────────────────── chart ─────────────────────────
@api.post("/api/chart")
@rate_limit(RL_CHART)
def chart():
    svc = _services()
    settings = svc["settings"]
    settings.require_api_key()

    try:
        body = _fill_coordinates(_body_json())
        query = parse_birth_query(body, default_language=settings.language)
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)

    cancel = DeadlineToken(settings.total_budget_seconds) if settings.total_budget_seconds else None
    result = svc["resolver"].resolve(query, cancel=cancel)

    data = chart_to_dict(result, query.language)
    data["date"] = query.date_unix
    data["location"] = {"latitude": query.latitude, "longitude": query.longitude}
    return jsonify({
        "ok": True,
        "data": data,
        "status": result.status,
        "cost": result.cost,
        "warnings": list(result.warnings),
    }), 200


# ───────────────────────── location / geocoding ─────────────────────────
@api.get("/api/location")
@rate_limit(RL_LOCATION)
def location():
    query = (request.args.get("query") or "").strip()
    if not query:
        return _json_error("validation_error", [{"loc": ["query"], "msg": "Query parameter is required", "type": "value_error.missing"}], 400)
    svc = _services()
    svc["settings"].require_api_key()
    try:
        data = svc["client"].location(query)
    except UpstreamUnavailable as e:
        log.warning("location lookup for '%s' failed: %s", query, e.message)
        return _json_error("upstream_unavailable", None, 502, message="Failed to fetch location data")
    return jsonify(data), 200


@api.get("/api/geocode")
@rate_limit(RL_GEOCODE, ip_key)
def geocode():
    q = (request.args.get("q") or request.args.get("query") or "").strip()
    try:
        limit = int(request.args.get("limit", 5))
    except ValueError:
        return _json_error("validation_error", [{"loc": ["limit"], "msg": "limit must be an integer", "type": "type_error.integer"}], 400)
    try:
        hits = _services()["geocoder"].search(q, limit=limit)
    except UpstreamUnavailable as e:
        log.warning("geocode for '%s' failed: %s", q, e.message)
        return _json_error("upstream_unavailable", None, 502, message=e.message)
    return jsonify({"ok": True, "query": q, "results": [h.to_dict() for h in hits]}), 200
