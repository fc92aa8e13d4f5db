# astroproxy/core/constants.py
# -*- coding: utf-8 -*-
"""
Core constants for the chart proxy

Purpose
-------
Single source of truth for:
- planet identifiers (canonical order, upstream spelling)
- house-system values and the parameter names the upstream has been seen to accept
- planet-list encodings and display fields
- zodiac signs and localized labels (pt / en)

Design
------
- Pure-Python, no external dependencies.
- Safe to import from any module.
- Constants are immutable by convention.
"""

from __future__ import annotations
from typing import Dict, Final, Tuple

__all__ = [
    # planets
    "MAJOR_PLANETS", "PLANET_ALIASES",
    # houses
    "HOUSE_PARAMETER_NAMES", "HOUSE_SYSTEM_VALUES", "HOUSE_SYSTEM_ALIASES", "NO_HOUSE_SYSTEM",
    # planet formats
    "PLANET_TRANSPORTS", "PLANET_STYLES", "STYLE_DELIMITERS",
    # display / dates
    "DISPLAY_FIELDS", "DATE_ENCODINGS",
    # zodiac
    "ZODIAC_SIGNS", "PLANET_LABELS", "SIGN_LABELS", "SIGN_SYMBOLS", "SUPPORTED_LANGUAGES",
]

# ── planets ──────────────────────────────────────────────────────────────────
# Lower-case ids internally; the upstream is sent the upper-case spelling.
MAJOR_PLANETS: Final[Tuple[str, ...]] = (
    "sun", "moon", "mercury", "venus", "mars",
    "jupiter", "saturn", "uranus", "neptune", "pluto",
)

# Portuguese spellings show up in form submissions from the pt-BR front-end.
PLANET_ALIASES: Final[Dict[str, str]] = {
    "sol": "sun",
    "lua": "moon",
    "mercurio": "mercury",
    "mercúrio": "mercury",
    "vênus": "venus",
    "marte": "mars",
    "júpiter": "jupiter",
    "saturno": "saturn",
    "urano": "uranus",
    "netuno": "neptune",
    "plutão": "pluto",
    "plutao": "pluto",
}

# ── houses ───────────────────────────────────────────────────────────────────
HOUSE_PARAMETER_NAMES: Final[Tuple[str, ...]] = ("houses", "house_system", "system")

HOUSE_SYSTEM_VALUES: Final[Tuple[str, ...]] = (
    "placidus", "koch", "equal", "whole_sign", "campanus", "regiomontanus",
)

HOUSE_SYSTEM_ALIASES: Final[Dict[str, str]] = {
    "whole": "whole_sign",
    "whole-sign": "whole_sign",
    "wholesign": "whole_sign",
    "equal_house": "equal",
}

# Tag used when the chart was obtained without any house parameter.
NO_HOUSE_SYSTEM: Final[str] = "none"

# ── planet-list formats ──────────────────────────────────────────────────────
PLANET_TRANSPORTS: Final[Tuple[str, ...]] = ("query", "body")
PLANET_STYLES: Final[Tuple[str, ...]] = ("pipe", "comma", "repeated")
STYLE_DELIMITERS: Final[Dict[str, str]] = {"pipe": "|", "comma": ","}

# ── display / dates ──────────────────────────────────────────────────────────
DISPLAY_FIELDS: Final[Tuple[str, ...]] = ("longitude", "latitude", "sign", "house")
DATE_ENCODINGS: Final[Tuple[str, ...]] = ("unix", "components")

# ── zodiac ───────────────────────────────────────────────────────────────────
ZODIAC_SIGNS: Final[Tuple[str, ...]] = (
    "aries", "taurus", "gemini", "cancer", "leo", "virgo",
    "libra", "scorpio", "sagittarius", "capricorn", "aquarius", "pisces",
)

SUPPORTED_LANGUAGES: Final[Tuple[str, ...]] = ("pt", "en")

PLANET_LABELS: Final[Dict[str, Dict[str, str]]] = {
    "pt": {
        "sun": "Sol", "moon": "Lua", "mercury": "Mercúrio", "venus": "Vênus",
        "mars": "Marte", "jupiter": "Júpiter", "saturn": "Saturno",
        "uranus": "Urano", "neptune": "Netuno", "pluto": "Plutão",
    },
    "en": {
        "sun": "Sun", "moon": "Moon", "mercury": "Mercury", "venus": "Venus",
        "mars": "Mars", "jupiter": "Jupiter", "saturn": "Saturn",
        "uranus": "Uranus", "neptune": "Neptune", "pluto": "Pluto",
    },
}

SIGN_LABELS: Final[Dict[str, Dict[str, str]]] = {
    "pt": {
        "aries": "Áries", "taurus": "Touro", "gemini": "Gêmeos", "cancer": "Câncer",
        "leo": "Leão", "virgo": "Virgem", "libra": "Libra", "scorpio": "Escorpião",
        "sagittarius": "Sagitário", "capricorn": "Capricórnio",
        "aquarius": "Aquário", "pisces": "Peixes",
    },
    "en": {s: s.capitalize() for s in ZODIAC_SIGNS},
}

SIGN_SYMBOLS: Final[Dict[str, str]] = {
    "aries": "♈", "taurus": "♉", "gemini": "♊", "cancer": "♋",
    "leo": "♌", "virgo": "♍", "libra": "♎", "scorpio": "♏",
    "sagittarius": "♐", "capricorn": "♑", "aquarius": "♒", "pisces": "♓",
}
