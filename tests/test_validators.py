from __future__ import annotations

import pytest

from astroproxy.core.constants import MAJOR_PLANETS
from astroproxy.core.errors import ValidationError
from astroproxy.core.validators import (
    parse_birth_query,
    parse_language,
    parse_latlon,
    parse_planets,
    parse_time,
)

BASE = {"date": 799162200, "latitude": -23.5505, "longitude": -46.6333}


def _loc(exc):
    return exc.value.errors()[0]["loc"]


def test_unix_body_defaults():
    q = parse_birth_query(BASE)
    assert q.date_unix == 799162200
    assert (q.latitude, q.longitude) == (-23.5505, -46.6333)
    assert q.planets == MAJOR_PLANETS
    assert q.language == "pt"


def test_civil_date_with_zone_matches_unix():
    q = parse_birth_query({
        "birth_date": "1995-04-29",
        "birth_time": "10:30",
        "timezone": "America/Sao_Paulo",
        "lat": "-23.5505",
        "lng": "-46.6333",
    })
    assert q.date_unix == 799162200
    assert q.latitude == -23.5505


def test_civil_date_without_time_defaults_to_noon_utc():
    q = parse_birth_query({"birthDate": "1995-04-29", "lat": 0, "lon": 0})
    assert q.date_unix == 799156800


def test_date_string_digits_accepted():
    assert parse_birth_query({**BASE, "date": "799162200"}).date_unix == 799162200


@pytest.mark.parametrize("bad", [1.5, "yesterday", True, -10_000_000_000])
def test_bad_unix_dates(bad):
    with pytest.raises(ValidationError) as exc:
        parse_birth_query({**BASE, "date": bad})
    assert _loc(exc) == ["date"]


def test_missing_date():
    with pytest.raises(ValidationError) as exc:
        parse_birth_query({"latitude": 1, "longitude": 2})
    assert exc.value.errors()[0]["type"] == "value_error.missing"


def test_missing_coordinates():
    with pytest.raises(ValidationError) as exc:
        parse_birth_query({"date": 799162200, "latitude": 10})
    assert _loc(exc) == ["latitude", "longitude"]


@pytest.mark.parametrize("lat,lon,loc", [(91, 0, ["latitude"]), (0, -181, ["longitude"]), ("x", 0, ["latitude", "longitude"])])
def test_coordinate_ranges(lat, lon, loc):
    with pytest.raises(ValidationError) as exc:
        parse_latlon(lat, lon)
    assert _loc(exc) == loc


def test_planets_string_aliases_and_dedupe():
    assert parse_planets("Sol|lua, SUN") == ("sun", "moon")
    assert parse_planets(["Marte", "júpiter"]) == ("mars", "jupiter")
    assert parse_planets(None) == MAJOR_PLANETS


def test_unknown_planet_is_rejected():
    with pytest.raises(ValidationError) as exc:
        parse_planets(["sun", "chiron"])
    assert "chiron" in exc.value.errors()[0]["msg"]


def test_planets_wrong_type():
    with pytest.raises(ValidationError):
        parse_planets({"sun": True})


def test_language():
    assert parse_language("pt-BR") == "pt"
    assert parse_language(None, "en") == "en"
    with pytest.raises(ValidationError):
        parse_language("fr")


def test_time_out_of_range():
    with pytest.raises(ValidationError):
        parse_time("24:10")


def test_unknown_timezone():
    with pytest.raises(ValidationError) as exc:
        parse_birth_query({"birth_date": "1995-04-29", "timezone": "Mars/Olympus", "lat": 0, "lng": 0})
    assert _loc(exc) == ["timezone"]


def test_body_must_be_object():
    with pytest.raises(ValidationError) as exc:
        parse_birth_query(["not", "a", "dict"])
    assert exc.value.to_dict()["error"] == "validation_error"
