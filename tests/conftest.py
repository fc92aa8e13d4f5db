from __future__ import annotations

"""
Pytest configuration for the astroproxy suite.

- Registers Hypothesis profiles for local dev and CI.
- Freezes the process TZ to UTC (civil birth times always carry an IANA zone).
- Provides resolver settings, a fake upstream and a Flask app wired to fakes.
- Keeps rate-limit buckets from leaking between tests.
"""

import os
from typing import Any, Dict

import pytest
from hypothesis import HealthCheck, settings

from astroproxy.core.settings import ResolverSettings
from astroproxy.main import create_app
from astroproxy.utils.ratelimit import reset_buckets

from fakes import DripServer, FakeChartClient, FakeGeocoder, SAO_PAULO

TEST_API_KEY = "test-key"


# ──────────────────────────────────────────────────────────────────────────────
# Hypothesis profiles
# ──────────────────────────────────────────────────────────────────────────────
settings.register_profile(
    "dev",
    settings(
        deadline=None,
        max_examples=60,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    ),
)
settings.register_profile(
    "ci",
    settings(
        deadline=None,
        max_examples=120,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    ),
)

_profile = (
    "ci"
    if (os.getenv("CI") or os.getenv("GITHUB_ACTIONS"))
    else os.getenv("HYPOTHESIS_PROFILE", "dev")
)
settings.load_profile(_profile)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: mark test as slow")


def pytest_report_header(config: pytest.Config) -> str:
    return f"Hypothesis profile: '{_profile}'"


# ──────────────────────────────────────────────────────────────────────────────
# Global fixtures
# ──────────────────────────────────────────────────────────────────────────────

@pytest.fixture(scope="session", autouse=True)
def freeze_tz_env():
    prev = os.environ.get("TZ")
    os.environ["TZ"] = "UTC"
    try:
        yield
    finally:
        if prev is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = prev


@pytest.fixture(autouse=True)
def _fresh_rate_limits():
    reset_buckets()
    yield
    reset_buckets()


@pytest.fixture(params=["headers", "body"])
def drip_server(request):
    """Local upstream that never finishes its response (header or body phase)."""
    server = DripServer(interval=0.1, phase=request.param).start()
    try:
        yield server
    finally:
        server.close()


@pytest.fixture
def resolver_settings() -> ResolverSettings:
    return ResolverSettings(base_url="https://api.test/v1", api_key=TEST_API_KEY)


def make_config(**resolver: Any) -> Dict[str, Any]:
    return {
        "upstream": {"base_url": "https://api.test/v1", "api_key": resolver.pop("api_key", TEST_API_KEY)},
        "resolver": resolver,
        "geocoding": {},
    }


@pytest.fixture
def fake_client() -> FakeChartClient:
    return FakeChartClient()


@pytest.fixture
def fake_geocoder() -> FakeGeocoder:
    return FakeGeocoder({"são paulo": [SAO_PAULO]})


@pytest.fixture
def make_app(monkeypatch, fake_client, fake_geocoder):
    """Factory: make_app(client=..., **resolver_overrides) -> Flask app with limiter off."""
    monkeypatch.setenv("ASTROPROXY_RL_DISABLE", "1")

    def _make(client=None, geocoder=None, **resolver):
        app = create_app(
            make_config(**resolver),
            client=client or fake_client,
            geocoder=geocoder or fake_geocoder,
        )
        app.testing = True
        return app

    return _make


@pytest.fixture
def http(make_app):
    return make_app().test_client()
