# astroproxy/core/presentation.py
from __future__ import annotations

import math
from typing import Any, Dict, Optional, Tuple

from astroproxy.core.constants import (
    PLANET_LABELS,
    SIGN_LABELS,
    SIGN_SYMBOLS,
    SUPPORTED_LANGUAGES,
    ZODIAC_SIGNS,
)
from astroproxy.core.models import ChartResult, PlanetResult


def _lang(language: Optional[str]) -> str:
    lang = (language or "pt").lower()
    return lang if lang in SUPPORTED_LANGUAGES else "en"


def _wrap360(x: float) -> float:
    v = float(x) % 360.0
    return 0.0 if abs(v) < 1e-12 else v


def sign_from_longitude(longitude: float) -> str:
    return ZODIAC_SIGNS[int(_wrap360(longitude) // 30.0) % 12]


def degree_minute(longitude: float) -> Tuple[int, int]:
    """Degree within the sign and arc-minute, both truncated."""
    within = _wrap360(longitude) % 30.0
    # epsilon absorbs float noise in the minute product
    deg, minute = divmod(int(math.floor(within * 60.0 + 1e-9)), 60)
    if deg >= 30:
        return 29, 59
    return deg, minute


def planet_label(planet_id: str, language: Optional[str] = "pt") -> str:
    return PLANET_LABELS[_lang(language)].get(planet_id.lower(), planet_id)


def sign_label(sign: str, language: Optional[str] = "pt") -> str:
    return SIGN_LABELS[_lang(language)].get(sign.lower(), sign)


def effective_sign(p: PlanetResult) -> Optional[str]:
    if p.sign:
        return p.sign
    if p.longitude is not None:
        return sign_from_longitude(p.longitude)
    return None


def describe_planet(planet_id: str, p: PlanetResult, language: Optional[str] = "pt") -> str:
    """e.g. 'Sol 8°34' Touro ♉ (casa 10)' / 'Sun 8°34' Taurus ♉ (house 10)'."""
    name = planet_label(planet_id, language)
    if not p.valid:
        return f"{name}: {p.error}"
    sign = effective_sign(p)
    if p.longitude is None or sign is None:
        return name
    deg, minute = degree_minute(p.longitude)
    text = f"{name} {deg}°{minute:02d}' {sign_label(sign, language)} {SIGN_SYMBOLS.get(sign, '')}".rstrip()
    if p.house is not None:
        word = "casa" if _lang(language) == "pt" else "house"
        text += f" ({word} {p.house})"
    return text


def planet_to_dict(planet_id: str, p: PlanetResult, language: Optional[str] = "pt") -> Dict[str, Any]:
    out = p.to_dict()
    if p.valid:
        sign = effective_sign(p)
        out["sign"] = sign
        out["label"] = describe_planet(planet_id, p, language)
    return out


def chart_to_dict(result: ChartResult, language: Optional[str] = "pt") -> Dict[str, Any]:
    return {
        "planets": {k: planet_to_dict(k, p, language) for k, p in result.planets.items()},
        "houses": dict(result.houses),
        "house_system_used": result.house_system_used,
        "planet_format_used": result.planet_format_used,
        "warnings": list(result.warnings),
        "attempts": result.attempts,
        "metadata": result.metadata,
        "status": result.status,
        "cost": result.cost,
    }
