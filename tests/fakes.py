"""
Test doubles for the upstream chart API, the geocoder and requests sessions.

Everything here is deterministic and offline; the resolver and the routes
only see the small surface they actually call.
"""

from __future__ import annotations

import json
import socketserver
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from astroproxy.core.constants import MAJOR_PLANETS
from astroproxy.core.geocoding import LocationSuggestion
from astroproxy.core.models import UpstreamRequest, UpstreamResponse


# ───────────────────────── chart payloads ─────────────────────────

def chart_payload(
    planets: Sequence[str] = MAJOR_PLANETS,
    failed: Iterable[str] = (),
    houses: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Upstream-like chart body; planets listed in `failed` carry an error entry."""
    failed = set(failed)
    out: Dict[str, Any] = {}
    for i, p in enumerate(planets):
        if p in failed:
            out[p.upper()] = {"error": "Planet not available"}
        else:
            out[p.upper()] = {"longitude": 30.0 * i + 8.5, "latitude": 0.25, "house": i % 12 + 1}
    return {
        "status": "OK",
        "planets": out,
        "houses": houses if houses is not None else {"1": 12.5, "10": 275.0},
        "cost": 1,
    }


def ok_response(**kwargs) -> UpstreamResponse:
    payload = chart_payload(**kwargs)
    return UpstreamResponse(status_code=200, text=json.dumps(payload), payload=payload)


def error_response(status_code: int = 400, text: str = "Invalid parameters") -> UpstreamResponse:
    return UpstreamResponse(status_code=status_code, text=text, payload=None)


def params_of(request: UpstreamRequest) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    for k, v in request.params:
        out.setdefault(k, []).append(v)
    return out


# ───────────────────────── chart client ─────────────────────────

class FakeChartClient:
    """
    Records every request. Answers come from `responder(request)` if given,
    otherwise from `script` in order, then `default`. An exception instance
    in either place is raised instead of returned.
    """

    def __init__(
        self,
        script: Optional[Iterable[Any]] = None,
        *,
        responder: Optional[Callable[[UpstreamRequest], Any]] = None,
        default: Any = None,
        locations: Optional[Dict[str, Any]] = None,
    ):
        self.script = list(script or [])
        self.responder = responder
        self.default = default if default is not None else error_response()
        self.locations = locations or {}
        self.requests: List[UpstreamRequest] = []
        self.location_queries: List[str] = []

    def chart(self, request: UpstreamRequest) -> UpstreamResponse:
        self.requests.append(request)
        if self.responder is not None:
            answer = self.responder(request)
        elif self.script:
            answer = self.script.pop(0)
        else:
            answer = self.default
        if isinstance(answer, BaseException):
            raise answer
        return answer

    def describe(self, request: UpstreamRequest) -> str:
        return f"{request.method} {request.path}"

    def location(self, query: str) -> Dict[str, Any]:
        self.location_queries.append(query)
        answer = self.locations.get(query, {"locations": []})
        if isinstance(answer, BaseException):
            raise answer
        return answer


# ───────────────────────── geocoder ─────────────────────────

SAO_PAULO = LocationSuggestion(
    place_id="298285",
    display_name="São Paulo, Região Sudeste, Brasil",
    lat=-23.5505,
    lon=-46.6333,
    type="city",
    klass="place",
    address={"city": "São Paulo", "state": "São Paulo", "country": "Brasil", "country_code": "br"},
)


class FakeGeocoder:
    def __init__(self, results: Optional[Dict[str, List[LocationSuggestion]]] = None, error: Optional[Exception] = None):
        self.results = results or {}
        self.error = error
        self.queries: List[str] = []

    def search(self, query: str, limit: int = 5) -> List[LocationSuggestion]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.results.get(query.strip().lower(), []))[:limit]


# ───────────────────────── requests doubles ─────────────────────────

class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = b"", *, url: str = "", encoding: str = "utf-8"):
        if isinstance(body, (dict, list)):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode(encoding)
        self.status_code = status_code
        self.content = body
        self.url = url
        self.encoding = encoding
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def json(self):
        return json.loads(self.content.decode(self.encoding))

    def close(self):
        self.closed = True


class FakeSession:
    """Stands in for requests.Session; `answers` are returned (or raised) in order."""

    def __init__(self, *answers: Any):
        self.answers = list(answers)
        self.calls: List[Dict[str, Any]] = []

    def _next(self):
        answer = self.answers.pop(0) if self.answers else FakeResponse(200, {})
        if isinstance(answer, BaseException):
            raise answer
        return answer

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        return self._next()

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)


# ───────────────────────── stalling HTTP server ─────────────────────────

class _DripHandler(socketserver.BaseRequestHandler):
    def handle(self):
        server: "DripServer" = self.server  # type: ignore[assignment]
        try:
            self.request.recv(65536)
            self.request.sendall(b"HTTP/1.1 200 OK\r\n")
            if server.phase == "body":
                self.request.sendall(b"Content-Type: application/json\r\nContent-Length: 100000\r\n\r\n{")
            n = 0
            while not server.stop.wait(server.interval):
                n += 1
                self.request.sendall(b" " if server.phase == "body" else f"X-Drip-{n}: {n}\r\n".encode())
        except OSError:
            return


class DripServer(socketserver.ThreadingTCPServer):
    """
    Local HTTP server that answers the status line and then sends one more
    byte-sized piece every `interval` seconds, forever: header lines
    (phase="headers") or body bytes (phase="body"). Every single read
    succeeds well inside any per-read timeout.
    """

    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, interval: float = 0.1, phase: str = "headers"):
        super().__init__(("127.0.0.1", 0), _DripHandler)
        self.interval = interval
        self.phase = phase
        self.stop = threading.Event()

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def start(self) -> "DripServer":
        threading.Thread(target=self.serve_forever, name="drip-server", daemon=True).start()
        return self

    def close(self) -> None:
        self.stop.set()
        self.shutdown()
        self.server_close()
