# astroproxy/core/geocoding.py
from __future__ import annotations

"""
Place search for the birth-location autocomplete (OpenStreetMap Nominatim).

Results are cached per process in a bounded LRU keyed by the normalized query
("  São   Paulo " and "são paulo" share an entry). Only settlement-like hits
are returned. Nominatim's usage policy requires an identifying User-Agent and
at most one request per second per client, so the route in front of this is
rate limited and repeated keystrokes mostly hit the cache.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests

from astroproxy.core.errors import UpstreamUnavailable
from astroproxy.utils.cache import LRUCache
from astroproxy.utils.metrics import GEOCODE_CACHE

log = logging.getLogger(__name__)

DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
MIN_QUERY_LENGTH = 2
MAX_LIMIT = 10

_SETTLEMENT_TYPES = frozenset({"city", "town", "village", "municipality"})
_SETTLEMENT_CLASSES = frozenset({"place", "boundary"})


@dataclass(frozen=True)
class LocationSuggestion:
    place_id: str
    display_name: str
    lat: float
    lon: float
    type: str = ""
    klass: str = ""
    address: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_nominatim(cls, item: Dict[str, Any]) -> "LocationSuggestion":
        return cls(
            place_id=str(item.get("place_id", "")),
            display_name=str(item.get("display_name", "")),
            lat=float(item["lat"]),
            lon=float(item["lon"]),
            type=str(item.get("type", "")),
            klass=str(item.get("class", "")),
            address={k: str(v) for k, v in (item.get("address") or {}).items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "place_id": self.place_id,
            "display_name": self.display_name,
            "name": format_location_name(self),
            "latitude": self.lat,
            "longitude": self.lon,
            "type": self.type,
            "class": self.klass,
            "country_code": self.address.get("country_code"),
        }


def normalize_query(q: str) -> str:
    return " ".join((q or "").split()).lower()


def is_settlement(item: Dict[str, Any]) -> bool:
    return item.get("type") in _SETTLEMENT_TYPES or item.get("class") in _SETTLEMENT_CLASSES


def format_location_name(s: LocationSuggestion) -> str:
    """'City, State, Country', falling back to Nominatim's display_name."""
    a = s.address
    if not a:
        return s.display_name
    city = a.get("city") or a.get("town") or a.get("village")
    parts = [p for p in (city, a.get("state"), a.get("country")) if p]
    return ", ".join(parts) or s.display_name


def coordinates(s: LocationSuggestion) -> Tuple[float, float]:
    return float(s.lat), float(s.lon)


class NominatimGeocoder:
    def __init__(
        self,
        base_url: str = DEFAULT_NOMINATIM_URL,
        *,
        user_agent: str = "astroproxy",
        accept_language: str = "pt-BR,pt,en",
        cache_capacity: int = 50,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url
        self.user_agent = user_agent
        self.accept_language = accept_language
        self.timeout = float(timeout)
        self.cache = LRUCache(cache_capacity)
        self.session = session or requests.Session()

    def search(self, query: str, limit: int = 5) -> List[LocationSuggestion]:
        key = normalize_query(query)
        if len(key) < MIN_QUERY_LENGTH:
            return []
        limit = max(1, min(int(limit), MAX_LIMIT))

        cached = self.cache.get(key)
        if cached is not None:
            GEOCODE_CACHE.labels(result="hit").inc()
            return list(cached[:limit])
        GEOCODE_CACHE.labels(result="miss").inc()

        params = {
            "q": key,
            "format": "json",
            "addressdetails": "1",
            "limit": str(MAX_LIMIT),
            "accept-language": self.accept_language,
            "featureType": "settlement",
        }
        try:
            resp = self.session.get(
                self.base_url,
                params=params,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise UpstreamUnavailable(f"geocoder timed out after {self.timeout:g}s") from e
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"geocoder network error: {type(e).__name__}") from e

        if resp.status_code != 200:
            raise UpstreamUnavailable(f"geocoder returned HTTP {resp.status_code}", status_code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamUnavailable("geocoder returned a non-JSON body") from e
        if not isinstance(data, list):
            raise UpstreamUnavailable("geocoder returned an unexpected payload")

        results: List[LocationSuggestion] = []
        for item in data:
            if not isinstance(item, dict) or not is_settlement(item):
                continue
            try:
                results.append(LocationSuggestion.from_nominatim(item))
            except (KeyError, TypeError, ValueError):
                log.debug("skipping geocoder item without coordinates: %r", item.get("place_id"))
            if len(results) >= MAX_LIMIT:
                break

        self.cache.set(key, tuple(results))
        log.info("geocode '%s': %d settlement(s)", key, len(results))
        return results[:limit]
