# astroproxy/core/settings.py
from __future__ import annotations

"""
Resolver settings.

The upstream contract (house parameter names, planet-list encoding, date
encoding, minimum valid planets) is undocumented and has changed under us
more than once, so all of it lives in configuration and is validated here.

Defaults mirror the combination order that has historically worked best:
    house systems: placidus, koch, equal, whole_sign, campanus, regiomontanus  (param 'houses')
    planet formats: query:pipe, query:comma, query:repeated
"""

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

from astroproxy.core.constants import (
    DATE_ENCODINGS,
    DISPLAY_FIELDS,
    HOUSE_PARAMETER_NAMES,
    HOUSE_SYSTEM_ALIASES,
    HOUSE_SYSTEM_VALUES,
    PLANET_STYLES,
    PLANET_TRANSPORTS,
    SUPPORTED_LANGUAGES,
)
from astroproxy.core.errors import ConfigurationError
from astroproxy.core.models import HouseSystemCandidate, PlanetFormat

DEFAULT_BASE_URL = "https://api.astrologico.org/v1"
DEFAULT_TIMEOUT_SECONDS = 12.0
MIN_TIMEOUT_SECONDS = 1.0
MAX_TIMEOUT_SECONDS = 60.0
DEFAULT_MIN_VALID_PLANETS = 8

DEFAULT_HOUSE_SYSTEMS: Tuple[HouseSystemCandidate, ...] = tuple(
    HouseSystemCandidate("houses", v) for v in HOUSE_SYSTEM_VALUES
)
DEFAULT_PLANET_FORMATS: Tuple[PlanetFormat, ...] = (
    PlanetFormat("query", "pipe"),
    PlanetFormat("query", "comma"),
    PlanetFormat("query", "repeated"),
)


@dataclass(frozen=True)
class ResolverSettings:
    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    min_valid_planets: int = DEFAULT_MIN_VALID_PLANETS
    house_systems: Tuple[HouseSystemCandidate, ...] = DEFAULT_HOUSE_SYSTEMS
    planet_formats: Tuple[PlanetFormat, ...] = DEFAULT_PLANET_FORMATS
    display: Tuple[str, ...] = DISPLAY_FIELDS
    date_encoding: str = "unix"
    language: str = "pt"
    houseless_fallback: bool = True
    total_budget_seconds: Optional[float] = None
    user_agent: str = "astroproxy/0.1"
    extra_hints: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def combinations(self) -> int:
        n = len(self.house_systems) * len(self.planet_formats)
        if self.houseless_fallback:
            n += len(self.planet_formats)
        return n

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("API key not configured (set ASTROLOGICO_API_KEY)")
        return self.api_key

    def summary(self) -> dict:
        """Non-secret view for /api/config."""
        return {
            "base_url": self.base_url,
            "has_api_key": bool(self.api_key),
            "timeout_seconds": self.timeout_seconds,
            "min_valid_planets": self.min_valid_planets,
            "house_systems": [c.label for c in self.house_systems],
            "planet_formats": [f.label for f in self.planet_formats],
            "display": list(self.display),
            "date_encoding": self.date_encoding,
            "language": self.language,
            "houseless_fallback": self.houseless_fallback,
            "total_budget_seconds": self.total_budget_seconds,
            "max_attempts": self.combinations,
        }

    @classmethod
    def from_config(cls, cfg: Any, *, user_agent: Optional[str] = None) -> "ResolverSettings":
        cfg = cfg or {}
        upstream = cfg.get("upstream") or {}
        resolver = cfg.get("resolver") or {}

        kwargs: dict = {
            "base_url": str(upstream.get("base_url") or DEFAULT_BASE_URL).rstrip("/"),
            "api_key": str(upstream.get("api_key") or "").strip(),
            "timeout_seconds": parse_timeout(resolver.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
            "min_valid_planets": parse_min_valid(resolver.get("min_valid_planets", DEFAULT_MIN_VALID_PLANETS)),
            "house_systems": parse_house_systems(resolver.get("house_systems")),
            "planet_formats": parse_planet_formats(resolver.get("planet_formats")),
            "display": parse_display(resolver.get("display")),
            "date_encoding": _choice(resolver.get("date_encoding", "unix"), DATE_ENCODINGS, "date_encoding"),
            "language": _choice(resolver.get("language", "pt"), SUPPORTED_LANGUAGES, "language"),
            "houseless_fallback": _truthy(resolver.get("houseless_fallback", True)),
            "total_budget_seconds": parse_budget(resolver.get("total_budget_seconds")),
            "extra_hints": tuple(str(h) for h in (resolver.get("hints") or [])),
        }
        if user_agent:
            kwargs["user_agent"] = user_agent
        return cls(**kwargs)


# ───────────────────────── parsers ─────────────────────────

def _truthy(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in ("1", "true", "yes", "on")

def _choice(v: Any, allowed: Iterable[str], name: str) -> str:
    s = str(v).strip().lower()
    if s not in allowed:
        raise ConfigurationError(f"{name} must be one of {', '.join(allowed)}; got '{v}'")
    return s

def parse_timeout(v: Any) -> float:
    try:
        t = float(v)
    except (TypeError, ValueError):
        raise ConfigurationError(f"timeout_seconds must be a number; got '{v}'")
    if not (MIN_TIMEOUT_SECONDS <= t <= MAX_TIMEOUT_SECONDS):
        raise ConfigurationError(
            f"timeout_seconds must be between {MIN_TIMEOUT_SECONDS:g} and {MAX_TIMEOUT_SECONDS:g}"
        )
    return t

def parse_budget(v: Any) -> Optional[float]:
    """Overall wall-clock cap for one resolution; None/0 means attempts × timeout only."""
    if v in (None, "", 0, "0"):
        return None
    try:
        t = float(v)
    except (TypeError, ValueError):
        raise ConfigurationError(f"total_budget_seconds must be a number; got '{v}'")
    if t <= 0:
        raise ConfigurationError("total_budget_seconds must be > 0")
    return t

def parse_min_valid(v: Any) -> int:
    try:
        n = int(v)
    except (TypeError, ValueError):
        raise ConfigurationError(f"min_valid_planets must be an integer; got '{v}'")
    if n < 1:
        raise ConfigurationError("min_valid_planets must be >= 1")
    return n

def _normalize_system(value: str) -> str:
    s = value.strip().lower()
    s = HOUSE_SYSTEM_ALIASES.get(s, s)
    if s not in HOUSE_SYSTEM_VALUES:
        raise ConfigurationError(f"unsupported house system '{value}'")
    return s

def _candidate(item: Any) -> HouseSystemCandidate:
    # "placidus" | "house_system:koch" | ["system", "equal"] | {"parameter": ..., "value": ...}
    if isinstance(item, dict):
        param = str(item.get("parameter") or item.get("parameter_name") or "houses")
        value = str(item.get("value") or item.get("system_value") or "")
    elif isinstance(item, (list, tuple)) and len(item) == 2:
        param, value = str(item[0]), str(item[1])
    elif isinstance(item, str):
        param, _, value = item.rpartition(":")
        param = param or "houses"
    else:
        raise ConfigurationError(f"cannot parse house-system candidate {item!r}")
    param = param.strip().lower()
    if param not in HOUSE_PARAMETER_NAMES:
        raise ConfigurationError(f"house parameter must be one of {', '.join(HOUSE_PARAMETER_NAMES)}; got '{param}'")
    return HouseSystemCandidate(param, _normalize_system(value))

def _split_list(raw: Any) -> List[Any]:
    if isinstance(raw, str):
        raw = raw.strip()
        if raw.startswith("["):
            try:
                return list(json.loads(raw))
            except ValueError as e:
                raise ConfigurationError(f"invalid JSON list: {e}") from e
        return [x.strip() for x in raw.split(",") if x.strip()]
    return list(raw)

def _dedupe(seq: Iterable[Any]) -> Tuple[Any, ...]:
    seen: set = set()
    out: List[Any] = []
    for s in seq:
        if s not in seen:
            seen.add(s)
            out.append(s)
    return tuple(out)

def parse_house_systems(raw: Any) -> Tuple[HouseSystemCandidate, ...]:
    if raw in (None, "", []):
        return DEFAULT_HOUSE_SYSTEMS
    out = _dedupe(_candidate(x) for x in _split_list(raw))
    if not out:
        raise ConfigurationError("house_systems must not be empty")
    return out

def _planet_format(item: Any) -> PlanetFormat:
    if isinstance(item, dict):
        transport, style = str(item.get("transport", "query")), str(item.get("style", "pipe"))
    elif isinstance(item, str):
        transport, _, style = item.rpartition(":")
        transport = transport or "query"
    else:
        raise ConfigurationError(f"cannot parse planet format {item!r}")
    return PlanetFormat(
        _choice(transport, PLANET_TRANSPORTS, "planet format transport"),
        _choice(style, PLANET_STYLES, "planet format style"),
    )

def parse_planet_formats(raw: Any) -> Tuple[PlanetFormat, ...]:
    if raw in (None, "", []):
        return DEFAULT_PLANET_FORMATS
    out = _dedupe(_planet_format(x) for x in _split_list(raw))
    if not out:
        raise ConfigurationError("planet_formats must not be empty")
    return out

def parse_display(raw: Any) -> Tuple[str, ...]:
    if raw in (None, "", []):
        return DISPLAY_FIELDS
    out = _dedupe(_choice(x, DISPLAY_FIELDS, "display field") for x in _split_list(raw))
    return out
