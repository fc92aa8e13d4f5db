# astroproxy/core/validators.py
from __future__ import annotations

import math
import re
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from astroproxy.core.constants import MAJOR_PLANETS, PLANET_ALIASES, SUPPORTED_LANGUAGES
from astroproxy.core.errors import ValidationError
from astroproxy.core.models import BirthQuery

__all__ = ["parse_birth_query", "parse_date", "parse_time", "parse_latlon", "parse_planets"]

# Upstream refuses dates outside roughly 1800..2400; keep a conservative window.
MIN_UNIX = -5_364_662_400   # 1800-01-01T00:00:00Z
MAX_UNIX = 13_569_465_600   # 2400-01-01T00:00:00Z


# ───────────────────────── helpers ─────────────────────────

def _err(loc: List[str] | str, msg: str, typ: str = "value_error") -> Dict[str, Any]:
    return {"loc": [loc] if isinstance(loc, str) else loc, "msg": msg, "type": typ}

def _as_float(v: Any) -> Optional[float]:
    if isinstance(v, bool) or v is None:
        return None
    try:
        x = float(v)
    except (TypeError, ValueError):
        return None
    return x if math.isfinite(x) else None

def _first_present(body: Dict[str, Any], *keys: str) -> Tuple[Optional[str], Any]:
    for k in keys:
        if k in body and body[k] not in (None, ""):
            return k, body[k]
    return None, None


# ───────────────────────── atomic parsers ─────────────────────────

_TIME_RE = re.compile(r"^\s*(?P<h>\d{1,2}):(?P<m>\d{2})(?::(?P<s>\d{2}))?\s*$")

def parse_date(s: Any, loc: str = "birth_date") -> date:
    try:
        return datetime.strptime(str(s).strip(), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(_err(loc, "date must be 'YYYY-MM-DD'", "value_error.date"))

def parse_time(s: Any, loc: str = "birth_time") -> time:
    m = _TIME_RE.match(str(s or ""))
    if not m:
        raise ValidationError(_err(loc, "time must be 'HH:MM' or 'HH:MM:SS'", "value_error.time"))
    hh, mm, ss = int(m.group("h")), int(m.group("m")), int(m.group("s") or 0)
    if not (0 <= hh <= 23 and 0 <= mm <= 59 and 0 <= ss <= 59):
        raise ValidationError(_err(loc, "time fields out of range", "value_error.time"))
    return time(hh, mm, ss)

def parse_timezone(s: Any, loc: str = "timezone") -> ZoneInfo:
    try:
        return ZoneInfo(str(s or "UTC").strip() or "UTC")
    except Exception:
        raise ValidationError(_err(loc, "must be a valid IANA zone like 'America/Sao_Paulo'", "value_error.timezone"))

def parse_unix_seconds(v: Any, loc: str = "date") -> int:
    f = _as_float(v)
    if f is None:
        raise ValidationError(_err(loc, "date must be Unix seconds (integer)", "type_error.integer"))
    if f != int(f):
        raise ValidationError(_err(loc, "date must be whole seconds", "value_error.integer"))
    n = int(f)
    if not (MIN_UNIX <= n < MAX_UNIX):
        raise ValidationError(_err(loc, "date outside supported range (1800..2400)", "value_error.range"))
    return n

def parse_latlon(lat: Any, lon: Any, lat_key: str = "latitude", lon_key: str = "longitude") -> Tuple[float, float]:
    lat_f = _as_float(lat); lon_f = _as_float(lon)
    if lat_f is None or lon_f is None:
        raise ValidationError(_err([lat_key, lon_key], "latitude/longitude must be finite numbers", "type_error.float"))
    if not (-90.0 <= lat_f <= 90.0):
        raise ValidationError(_err(lat_key, "latitude must be between -90 and 90", "value_error.range"))
    if not (-180.0 <= lon_f <= 180.0):
        raise ValidationError(_err(lon_key, "longitude must be between -180 and 180", "value_error.range"))
    return lat_f, lon_f

def parse_planets(v: Any, loc: str = "planets") -> Tuple[str, ...]:
    """
    Accept a list of ids or a pipe/comma separated string. Case-insensitive,
    Portuguese names allowed. Order preserved, duplicates dropped.
    """
    if v is None or v == [] or v == "":
        return MAJOR_PLANETS
    if isinstance(v, str):
        items = [p for p in re.split(r"[|,]", v)]
    elif isinstance(v, (list, tuple)):
        items = list(v)
    else:
        raise ValidationError(_err(loc, "planets must be a list or a delimited string", "type_error.list"))

    out: List[str] = []
    unknown: List[str] = []
    for raw in items:
        if not isinstance(raw, str):
            raise ValidationError(_err(loc, "planet ids must be strings", "type_error.str"))
        key = raw.strip().lower()
        if not key:
            continue
        key = PLANET_ALIASES.get(key, key)
        if key not in MAJOR_PLANETS:
            unknown.append(raw)
        elif key not in out:
            out.append(key)
    if unknown:
        raise ValidationError(_err(loc, f"unknown planet id(s): {', '.join(unknown)}", "value_error.planet"))
    if not out:
        raise ValidationError(_err(loc, "at least one planet is required", "value_error.planet"))
    return tuple(out)

def parse_language(v: Any, default: str = "pt") -> str:
    lang = str(v or default).strip().lower()
    # 'pt-BR' → 'pt'
    lang = lang.split("-", 1)[0].split("_", 1)[0]
    if lang not in SUPPORTED_LANGUAGES:
        raise ValidationError(_err("language", f"language must be one of {', '.join(SUPPORTED_LANGUAGES)}", "value_error.language"))
    return lang


# ───────────────────────── payload parser ─────────────────────────

def _unix_from_civil(body: Dict[str, Any]) -> int:
    d_key, d_val = _first_present(body, "birth_date", "birthDate")
    t_key, t_val = _first_present(body, "birth_time", "birthTime")
    if d_key is None:
        raise ValidationError(_err("date", "field required (Unix seconds or birth_date + birth_time)", "value_error.missing"))
    d = parse_date(d_val, d_key)
    t = parse_time(t_val, t_key or "birth_time") if t_key else time(12, 0, 0)
    tz = parse_timezone(body.get("timezone") or body.get("tz"))
    local = datetime.combine(d, t).replace(tzinfo=tz)
    return parse_unix_seconds(int(local.timestamp()))

def parse_birth_query(body: Any, *, default_language: str = "pt") -> BirthQuery:
    """
    Build an immutable BirthQuery from a JSON body.

    Accepted shapes:
      { date: <unix seconds>, latitude, longitude, planets?, language? }
      { birth_date: 'YYYY-MM-DD', birth_time: 'HH:MM', timezone?: IANA, lat, lng, ... }

    Raises ValidationError listing the first offending field.
    """
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")

    if body.get("date") not in (None, ""):
        date_unix = parse_unix_seconds(body["date"])
    else:
        date_unix = _unix_from_civil(body)

    lat_key, lat = _first_present(body, "latitude", "lat")
    lon_key, lon = _first_present(body, "longitude", "lng", "lon")
    if lat_key is None or lon_key is None:
        raise ValidationError(_err(["latitude", "longitude"], "field required", "value_error.missing"))
    latitude, longitude = parse_latlon(lat, lon, lat_key, lon_key)

    planets = parse_planets(body.get("planets"))
    language = parse_language(body.get("language") or body.get("lang"), default_language)
    return BirthQuery(
        date_unix=date_unix,
        latitude=latitude,
        longitude=longitude,
        planets=planets,
        language=language,
    )
