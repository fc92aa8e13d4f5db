# astroproxy/core/shapes.py
from __future__ import annotations

"""
Request-shape builders.

One combination = (HouseSystemCandidate, PlanetFormat). Each builds exactly one
UpstreamRequest. The API key is *not* added here; the client appends it so it
never ends up in attempt records or logs.

Query transport (GET /chart):
    date=<unix> | year=&month=&day=&hour=&minute=
    lat=&lng=
    planets=SUN|MOON...          (pipe)
    planets=SUN,MOON...          (comma)
    planets=SUN&planets=MOON...  (repeated)
    <houses|house_system|system>=<value>     (omitted for the houseless fallback)
    display=longitude|latitude|sign|house    (delimiter follows the planet style)
    language=pt

Body transport (POST /chart):
    {"date": ..., "location": {"lat": ..., "lng": ...},
     "planets": "SUN|MOON" | ["SUN", "MOON"],
     "houses": {"type": "placidus"}, "display": [...], "language": "pt"}
"""

from typing import Any, Dict, List, Sequence, Tuple

from astroproxy.core.models import BirthQuery, HouseSystemCandidate, PlanetFormat, UpstreamRequest

CHART_PATH = "/chart"


def upstream_planet_ids(query: BirthQuery) -> List[str]:
    return [p.upper() for p in query.planets]


def display_fields(base: Sequence[str], candidate: HouseSystemCandidate) -> List[str]:
    fields = list(base)
    if candidate.is_houseless:
        fields = [f for f in fields if f != "house"]
    return fields


def _date_params(query: BirthQuery, encoding: str) -> List[Tuple[str, str]]:
    if encoding == "components":
        dt = query.as_utc_datetime()
        return [
            ("year", str(dt.year)), ("month", str(dt.month)), ("day", str(dt.day)),
            ("hour", str(dt.hour)), ("minute", str(dt.minute)),
        ]
    return [("date", str(query.date_unix))]


def _join(items: Sequence[str], fmt: PlanetFormat) -> str:
    # 'repeated' only changes how planets travel; other lists fall back to pipes
    return (fmt.delimiter or "|").join(items)


def build_query_request(
    query: BirthQuery,
    candidate: HouseSystemCandidate,
    fmt: PlanetFormat,
    *,
    display: Sequence[str],
    date_encoding: str = "unix",
) -> UpstreamRequest:
    params: List[Tuple[str, str]] = _date_params(query, date_encoding)
    params += [("lat", repr(query.latitude)), ("lng", repr(query.longitude))]

    planets = upstream_planet_ids(query)
    if fmt.style == "repeated":
        params += [("planets", p) for p in planets]
    else:
        params.append(("planets", _join(planets, fmt)))

    if not candidate.is_houseless:
        params.append((candidate.parameter_name, candidate.system_value))

    params.append(("display", _join(display_fields(display, candidate), fmt)))
    params.append(("language", query.language))
    return UpstreamRequest(method="GET", path=CHART_PATH, params=tuple(params))


def build_body_request(
    query: BirthQuery,
    candidate: HouseSystemCandidate,
    fmt: PlanetFormat,
    *,
    display: Sequence[str],
    date_encoding: str = "unix",
) -> UpstreamRequest:
    body: Dict[str, Any] = {k: (int(v) if v.lstrip("-").isdigit() else v) for k, v in _date_params(query, date_encoding)}
    body["location"] = {"lat": query.latitude, "lng": query.longitude}

    planets = upstream_planet_ids(query)
    body["planets"] = planets if fmt.style == "repeated" else _join(planets, fmt)

    if not candidate.is_houseless:
        body[candidate.parameter_name] = {"type": candidate.system_value}

    body["display"] = display_fields(display, candidate)
    body["language"] = query.language
    return UpstreamRequest(method="POST", path=CHART_PATH, json_body=body)


def build_request(
    query: BirthQuery,
    candidate: HouseSystemCandidate,
    fmt: PlanetFormat,
    *,
    display: Sequence[str],
    date_encoding: str = "unix",
) -> UpstreamRequest:
    if fmt.transport == "body":
        return build_body_request(query, candidate, fmt, display=display, date_encoding=date_encoding)
    return build_query_request(query, candidate, fmt, display=display, date_encoding=date_encoding)
