# astroproxy/core/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from astroproxy.core.constants import MAJOR_PLANETS, NO_HOUSE_SYSTEM, STYLE_DELIMITERS


@dataclass(frozen=True)
class BirthQuery:
    date_unix: int
    latitude: float
    longitude: float
    planets: Tuple[str, ...] = MAJOR_PLANETS
    language: str = "pt"

    def as_utc_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.date_unix, tz=timezone.utc)


@dataclass(frozen=True)
class HouseSystemCandidate:
    parameter_name: str
    system_value: str

    @property
    def is_houseless(self) -> bool:
        return self.system_value == NO_HOUSE_SYSTEM

    @property
    def label(self) -> str:
        if self.is_houseless:
            return NO_HOUSE_SYSTEM
        return f"{self.parameter_name}={self.system_value}"


NO_HOUSES = HouseSystemCandidate(parameter_name="", system_value=NO_HOUSE_SYSTEM)


@dataclass(frozen=True)
class PlanetFormat:
    """How the planet list travels: GET query string or POST JSON body; pipe/comma/repeated."""
    transport: str = "query"
    style: str = "pipe"

    @property
    def delimiter(self) -> Optional[str]:
        return STYLE_DELIMITERS.get(self.style)

    @property
    def label(self) -> str:
        return f"{self.transport}:{self.style}"


@dataclass(frozen=True)
class UpstreamRequest:
    method: str
    path: str
    params: Tuple[Tuple[str, str], ...] = ()
    json_body: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    text: str
    payload: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass
class Attempt:
    house_system: str
    parameter: str
    planet_format: str
    outcome: str = "pending"
    status_code: Optional[int] = None
    detail: Optional[str] = None
    elapsed_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "house_system": self.house_system,
            "parameter": self.parameter,
            "planet_format": self.planet_format,
            "outcome": self.outcome,
            "status_code": self.status_code,
            "detail": self.detail,
            "elapsed_ms": round(self.elapsed_ms, 1),
        }


@dataclass(frozen=True)
class PlanetResult:
    longitude: Optional[float] = None
    latitude: Optional[float] = None
    sign: Optional[str] = None
    house: Optional[int] = None
    error: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return self.error is None

    @classmethod
    def from_upstream(cls, raw: Any) -> "PlanetResult":
        if not isinstance(raw, dict):
            return cls(error="malformed planet entry")
        if "error" in raw:
            return cls(error=str(raw.get("error") or "error"))
        known = {"longitude", "latitude", "sign", "house", "error"}
        return cls(
            longitude=_opt_float(raw.get("longitude")),
            latitude=_opt_float(raw.get("latitude")),
            sign=(str(raw["sign"]).lower() if raw.get("sign") is not None else None),
            house=_opt_int(raw.get("house")),
            extra=MappingProxyType({k: v for k, v in raw.items() if k not in known}),
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        out: Dict[str, Any] = dict(self.extra)
        out.update({
            "longitude": self.longitude,
            "latitude": self.latitude,
            "sign": self.sign,
            "house": self.house,
        })
        return out


@dataclass(frozen=True)
class ChartResult:
    planets: Mapping[str, PlanetResult]
    houses: Mapping[str, Any]
    house_system_used: str
    planet_format_used: str
    warnings: Tuple[str, ...] = ()
    attempts: int = 0
    metadata: Any = None
    status: str = "OK"
    cost: float = 0

    @property
    def valid_planets(self) -> List[str]:
        return [k for k, p in self.planets.items() if p.valid]

    @property
    def failed_planets(self) -> List[str]:
        return [k for k, p in self.planets.items() if not p.valid]


def _opt_float(v: Any) -> Optional[float]:
    try:
        return None if v is None else float(v)
    except (TypeError, ValueError):
        return None


def _opt_int(v: Any) -> Optional[int]:
    try:
        return None if v is None else int(v)
    except (TypeError, ValueError):
        return None
