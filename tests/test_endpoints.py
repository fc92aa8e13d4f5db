from __future__ import annotations

import base64

from astroproxy.core.errors import UpstreamUnavailable

from fakes import FakeChartClient, FakeGeocoder, error_response, ok_response, params_of

CHART_BODY = {"date": 799162200, "latitude": -23.5505, "longitude": -46.6333}


def test_health_routes(http):
    for path in ("/health", "/healthz"):
        rv = http.get(path)
        assert rv.status_code == 200
        assert rv.get_json()["status"] == "ok"
    assert http.get("/api/health").get_json()["status"] == "up"
    assert http.get("/").get_json()["service"] == "astroproxy"


def test_status_probe_reports_key_length_only(http):
    rv = http.get("/api/test")
    data = rv.get_json()
    assert rv.status_code == 200
    assert data["status"] == "ok"
    assert data["has_api_key"] is True
    assert data["api_key_length"] == len("test-key")
    assert "test-key" not in rv.get_data(as_text=True)
    assert "timestamp" in data


def test_config_endpoint_hides_key(http):
    rv = http.get("/api/config")
    assert rv.status_code == 200
    assert rv.get_json()["resolver"]["max_attempts"] == 21
    assert "test-key" not in rv.get_data(as_text=True)


def test_chart_success(make_app, fake_client):
    fake_client.script = [error_response(400), ok_response(failed=("pluto",))]
    rv = make_app().test_client().post("/api/chart", json={**CHART_BODY, "language": "en"})
    assert rv.status_code == 200
    body = rv.get_json()
    assert body["ok"] is True
    assert body["warnings"] == ["pluto"]
    assert body["cost"] == 1
    data = body["data"]
    assert data["house_system_used"] == "placidus"
    assert data["planet_format_used"] == "query:comma"
    assert data["attempts"] == 2
    assert data["date"] == 799162200
    assert data["location"] == {"latitude": -23.5505, "longitude": -46.6333}
    assert data["planets"]["sun"]["label"].startswith("Sun 8°30'")
    assert data["planets"]["pluto"] == {"error": "Planet not available"}


def test_chart_validation_error(http, fake_client):
    rv = http.post("/api/chart", json={"date": 799162200, "latitude": 123, "longitude": 0})
    assert rv.status_code == 400
    body = rv.get_json()
    assert body["ok"] is False
    assert body["error"] == "validation_error"
    assert body["details"][0]["loc"] == ["latitude"]
    assert fake_client.requests == []


def test_chart_body_must_be_json_object(http):
    rv = http.post("/api/chart", data="not json", content_type="text/plain")
    assert rv.status_code == 400
    assert rv.get_json()["error"] == "validation_error"


def test_chart_without_api_key(make_app, fake_client):
    rv = make_app(api_key="").test_client().post("/api/chart", json=CHART_BODY)
    assert rv.status_code == 500
    assert rv.get_json()["error"] == "configuration_error"
    assert fake_client.requests == []


def test_chart_exhausted(make_app):
    client = FakeChartClient(default=error_response(400, "Invalid house system"))
    rv = make_app(client=client).test_client().post("/api/chart", json=CHART_BODY)
    assert rv.status_code == 502
    body = rv.get_json()
    assert body["ok"] is False
    assert body["error"] == "exhausted_search"
    assert body["message"] == "All house systems failed"
    assert body["last_error"] == "HTTP 400: Invalid house system"
    assert len(body["attempts"]) == 21
    assert "none" in body["tried_systems"]
    assert body["hints"]


def test_chart_cancelled_when_budget_runs_out(make_app, monkeypatch):
    class _Expired:
        def __init__(self, budget):
            self.budget = budget

        def is_set(self):
            return True

    monkeypatch.setattr("astroproxy.api.routes.DeadlineToken", _Expired)
    client = FakeChartClient()
    rv = make_app(client=client, total_budget_seconds=5).test_client().post("/api/chart", json=CHART_BODY)
    assert rv.status_code == 503
    assert rv.get_json()["error"] == "resolution_cancelled"
    assert client.requests == []


def test_chart_geocodes_place_name(http, fake_client, fake_geocoder):
    fake_client.script = [ok_response()]
    rv = http.post("/api/chart", json={"date": 799162200, "location": "São Paulo"})
    assert rv.status_code == 200
    assert fake_geocoder.queries == ["São Paulo"]
    sent = params_of(fake_client.requests[0])
    assert sent["lat"] == ["-23.5505"]
    assert sent["lng"] == ["-46.6333"]


def test_chart_unknown_place(http):
    rv = http.post("/api/chart", json={"date": 799162200, "location": "Atlantis"})
    assert rv.status_code == 400
    assert rv.get_json()["details"][0]["loc"] == ["location"]


def test_location_proxy(make_app):
    client = FakeChartClient(locations={"Recife": {"locations": [{"name": "Recife"}]}})
    http = make_app(client=client).test_client()

    assert http.get("/api/location").status_code == 400
    rv = http.get("/api/location?query=Recife")
    assert rv.status_code == 200
    assert rv.get_json() == {"locations": [{"name": "Recife"}]}

    client.locations["Nowhere"] = UpstreamUnavailable("API Error: 500", status_code=500)
    rv = http.get("/api/location?query=Nowhere")
    assert rv.status_code == 502
    assert rv.get_json()["message"] == "Failed to fetch location data"


def test_geocode(http):
    rv = http.get("/api/geocode", query_string={"q": "São Paulo", "limit": 3})
    assert rv.status_code == 200
    results = rv.get_json()["results"]
    assert results[0]["name"] == "São Paulo, São Paulo, Brasil"
    assert results[0]["latitude"] == -23.5505
    assert http.get("/api/geocode?q=x&limit=abc").status_code == 400


def test_geocode_upstream_down(make_app):
    geo = FakeGeocoder(error=UpstreamUnavailable("geocoder returned HTTP 503", status_code=503))
    rv = make_app(geocoder=geo).test_client().get("/api/geocode?q=Lisboa")
    assert rv.status_code == 502
    assert rv.get_json()["error"] == "upstream_unavailable"


def test_debug_routes(http):
    rules = {r["rule"] for r in http.get("/__debug/routes").get_json()["routes"]}
    assert {"/api/chart", "/api/location", "/api/geocode", "/metrics"} <= rules


def test_not_found_envelope(http):
    rv = http.get("/api/nope")
    assert rv.status_code == 404
    assert rv.get_json()["error"] == "http_error"


def test_metrics_requires_basic_auth(http, monkeypatch):
    monkeypatch.setenv("METRICS_USER", "prom")
    monkeypatch.setenv("METRICS_PASS", "pw")
    assert http.get("/metrics").status_code == 401

    token = base64.b64encode(b"prom:pw").decode()
    rv = http.get("/metrics", headers={"Authorization": f"Basic {token}"})
    assert rv.status_code == 200
    assert b"astroproxy_requests_total" in rv.data
