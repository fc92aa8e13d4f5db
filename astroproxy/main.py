# astroproxy/main.py
from __future__ import annotations

import logging
import os
from secrets import compare_digest
from time import perf_counter
from typing import Any, Dict, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from astroproxy.api.routes import api as api_bp
from astroproxy.core.errors import ChartProxyError
from astroproxy.core.geocoding import DEFAULT_NOMINATIM_URL, NominatimGeocoder
from astroproxy.core.resolver import ChartResolver
from astroproxy.core.settings import ResolverSettings
from astroproxy.core.upstream import AstrologicoClient
from astroproxy.utils.config import load_config
from astroproxy.utils.metrics import GAUGE_APP_UP, MET_REQUESTS, REQ_LATENCY
from astroproxy.version import USER_AGENT, VERSION

_TRACKED_ROUTES = ("/", "/health", "/healthz", "/metrics")


# ───────────────────────── helpers: logging & errors ─────────────────────────
def _configure_logging(app: Flask) -> None:
    gerr = logging.getLogger("gunicorn.error")
    if gerr.handlers:
        app.logger.handlers = gerr.handlers
        app.logger.setLevel(gerr.level)
        root = logging.getLogger("astroproxy")
        root.handlers = gerr.handlers
        root.setLevel(gerr.level)
    else:
        logging.basicConfig(
            level=os.environ.get("LOG_LEVEL", "INFO"),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


def _register_errors(app: Flask) -> None:
    @app.errorhandler(ChartProxyError)
    def _domain(e: ChartProxyError):
        level = logging.ERROR if e.http_status >= 500 else logging.WARNING
        app.logger.log(level, "%s at %s %s: %s", e.code, request.method, request.path, e.message)
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        app.logger.warning("HTTP %s at %s %s: %s", e.code, request.method, request.path, e.description)
        return jsonify(
            ok=False,
            error="http_error",
            code=e.code,
            name=e.name,
            message=e.description,
            path=request.path,
        ), e.code

    @app.errorhandler(Exception)
    def _any(e: Exception):
        # full traceback to the log only; the client gets a message string
        app.logger.exception("UNHANDLED %s at %s %s", type(e).__name__, request.method, request.path)
        return jsonify(
            ok=False,
            error="internal_error",
            message="Internal server error",
            path=request.path,
        ), 500


# ───────────────────────── health & metrics ─────────────────────────
def _register_health(app: Flask) -> None:
    @app.route("/", methods=["GET"])
    def root():
        return jsonify(ok=True, service="astroproxy", health="/health", version=VERSION), 200

    @app.route("/health", methods=["GET"])
    @app.route("/healthz", methods=["GET"])
    def health():
        return jsonify(ok=True, status="ok"), 200

    @app.get("/favicon.ico")
    def _noop_favicon():
        return ("", 204)


def _metrics_auth_ok() -> bool:
    """Basic auth against METRICS_USER / METRICS_PASS; closed when either is unset."""
    user, pw = os.getenv("METRICS_USER", ""), os.getenv("METRICS_PASS", "")
    auth = request.authorization
    if not (user and pw and auth is not None and auth.type == "basic"):
        return False
    return compare_digest((auth.username or "").encode(), user.encode()) and compare_digest(
        (auth.password or "").encode(), pw.encode()
    )


def _register_metrics(app: Flask) -> None:
    @app.before_request
    def _before():
        p = request.path or ""
        if p.startswith("/api/") or p in _TRACKED_ROUTES:
            MET_REQUESTS.labels(route=p).inc()
            request.environ["astroproxy.t0"] = perf_counter()

    @app.after_request
    def _after(resp):
        t0 = request.environ.get("astroproxy.t0")
        if t0 is not None:
            REQ_LATENCY.labels(route=request.path).observe(perf_counter() - t0)
        return resp

    @app.route("/metrics", methods=["GET"])
    def metrics_endpoint():
        if not _metrics_auth_ok():
            return Response("Unauthorized", 401, {"WWW-Authenticate": 'Basic realm="metrics"'})
        GAUGE_APP_UP.set(1.0)
        return Response(generate_latest(REGISTRY), mimetype=CONTENT_TYPE_LATEST)


# ───────────────────────── services ─────────────────────────
def build_services(cfg: Any, *, client=None, geocoder=None) -> Dict[str, Any]:
    """Wire settings → upstream client → resolver, plus the geocoder."""
    settings = ResolverSettings.from_config(cfg, user_agent=USER_AGENT)
    if client is None:
        client = AstrologicoClient(
            settings.base_url,
            settings.api_key,
            settings.timeout_seconds,
            user_agent=settings.user_agent,
        )
    if geocoder is None:
        geo_cfg = (cfg or {}).get("geocoding") or {}
        geocoder = NominatimGeocoder(
            str(geo_cfg.get("base_url") or DEFAULT_NOMINATIM_URL),
            user_agent=os.getenv("GEOCODER_UA", USER_AGENT),
            cache_capacity=int(geo_cfg.get("cache_capacity", 50)),
            timeout=float(geo_cfg.get("timeout_seconds", 10)),
        )
    return {
        "config": cfg,
        "settings": settings,
        "client": client,
        "resolver": ChartResolver(client, settings),
        "geocoder": geocoder,
    }


# ───────────────────────── app factory ─────────────────────────
def create_app(cfg: Optional[Any] = None, *, client=None, geocoder=None) -> Flask:
    app = Flask(__name__)
    app.json.sort_keys = False
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore

    _configure_logging(app)

    if cfg is None:
        cfg = load_config()
    app.extensions["astroproxy"] = build_services(cfg, client=client, geocoder=geocoder)

    GAUGE_APP_UP.set(1.0)

    _register_health(app)
    _register_errors(app)
    _register_metrics(app)
    app.register_blueprint(api_bp)

    # CORS for the browser front-end
    allowed_origin = os.environ.get("CORS_ALLOW_ORIGIN") or "*"
    CORS(
        app,
        resources={r"/.*": {"origins": allowed_origin}},
        supports_credentials=False,
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=600,
    )

    settings = app.extensions["astroproxy"]["settings"]
    if not settings.api_key:
        app.logger.warning("ASTROLOGICO_API_KEY is not set; /api/chart and /api/location will answer 500")
    app.logger.info(
        "App initialized; version=%s upstream=%s combinations=%d min_valid=%d timeout=%ss",
        VERSION, settings.base_url, settings.combinations, settings.min_valid_planets, settings.timeout_seconds,
    )
    return app


# ───────────────────────── app instance ─────────────────────────
app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
