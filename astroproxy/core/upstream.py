# astroproxy/core/upstream.py
from __future__ import annotations

"""
Thin client for the Astrologico HTTP API.

- One requests.Session per client (connection reuse); no retries at this
  layer: the resolver owns the search order.
- Each call is bounded by `timeout` seconds of wall clock. requests only
  applies its timeout per socket operation, so a server dripping header lines
  could hold a call open indefinitely; the call therefore runs on a daemon
  worker thread and the caller stops waiting at the deadline. The response is
  closed on expiry and the body loop checks the same deadline. An abandoned
  worker exits when its socket read fails.
- The API key is appended here and masked in every log line.
"""

import json
import logging
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

import requests

from astroproxy.core.errors import ConfigurationError, UpstreamUnavailable
from astroproxy.core.models import UpstreamRequest, UpstreamResponse

log = logging.getLogger(__name__)

_CHUNK = 16 * 1024
MAX_BODY_BYTES = 2 * 1024 * 1024


def mask_secret(text: str, secret: str) -> str:
    if not secret or not text:
        return text
    return text.replace(secret, "HIDDEN")


class AstrologicoClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float,
        *,
        user_agent: str = "astroproxy",
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = float(timeout)
        self.user_agent = user_agent
        self.session = session or requests.Session()

    # ───────────────────────── helpers ─────────────────────────
    def _headers(self, with_body: bool = False) -> Dict[str, str]:
        h = {"Accept": "application/json", "User-Agent": self.user_agent}
        if with_body:
            h["Content-Type"] = "application/json"
        return h

    def _mask(self, text: str) -> str:
        return mask_secret(text, self.api_key)

    def _read_body(self, resp: requests.Response, deadline: float) -> str:
        chunks: List[bytes] = []
        size = 0
        for chunk in resp.iter_content(chunk_size=_CHUNK):
            if time.monotonic() > deadline:
                raise UpstreamUnavailable(f"timed out after {self.timeout:g}s while reading response")
            if not chunk:
                continue
            chunks.append(chunk)
            size += len(chunk)
            if size > MAX_BODY_BYTES:
                raise UpstreamUnavailable("response body too large")
        raw = b"".join(chunks)
        try:
            return raw.decode(resp.encoding or "utf-8", errors="replace")
        except LookupError:
            # unknown charset in Content-Type
            return raw.decode("utf-8", errors="replace")

    def _fetch(
        self,
        method: str,
        url: str,
        params: List[Tuple[str, str]],
        json_body: Optional[Dict[str, Any]],
        deadline: float,
        slot: Dict[str, Any],
    ) -> Tuple[int, str]:
        """Blocking request + body read. Runs on the attempt worker thread."""
        try:
            resp = self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._headers(with_body=json_body is not None),
                timeout=self.timeout,
                stream=True,
            )
        except requests.Timeout as e:
            raise UpstreamUnavailable(f"timed out after {self.timeout:g}s") from e
        except requests.RequestException as e:
            raise UpstreamUnavailable(self._mask(f"network error: {type(e).__name__}: {e}")) from e

        slot["resp"] = resp
        try:
            log.debug("%s %s -> %s", method, self._mask(getattr(resp, "url", url) or url), resp.status_code)
            try:
                text = self._read_body(resp, deadline)
            except requests.RequestException as e:
                raise UpstreamUnavailable(self._mask(f"error reading response: {type(e).__name__}: {e}")) from e
        finally:
            resp.close()
        return int(resp.status_code), text

    def _send(
        self,
        method: str,
        path: str,
        params: List[Tuple[str, str]],
        json_body: Optional[Dict[str, Any]] = None,
    ) -> UpstreamResponse:
        if not self.api_key:
            raise ConfigurationError("API key not configured (set ASTROLOGICO_API_KEY)")
        url = f"{self.base_url}{path}"
        params = list(params) + [("key", self.api_key)]
        deadline = time.monotonic() + self.timeout

        slot: Dict[str, Any] = {}
        done = threading.Event()

        def _work() -> None:
            try:
                slot["result"] = self._fetch(method, url, params, json_body, deadline, slot)
            except Exception as e:
                slot["error"] = e
            finally:
                done.set()

        threading.Thread(target=_work, name="astrologico-attempt", daemon=True).start()
        if not done.wait(max(0.0, deadline - time.monotonic())):
            resp = slot.get("resp")
            if resp is not None:
                resp.close()
            log.debug("%s %s abandoned at the %ss deadline", method, path, f"{self.timeout:g}")
            raise UpstreamUnavailable(f"timed out after {self.timeout:g}s")
        if "error" in slot:
            raise slot["error"]
        if "result" not in slot:
            raise UpstreamUnavailable("attempt ended without a response")
        status_code, text = slot["result"]

        payload: Any = None
        if text:
            try:
                payload = json.loads(text)
            except ValueError:
                payload = None
        return UpstreamResponse(status_code=status_code, text=self._mask(text), payload=payload)

    # ───────────────────────── public API ─────────────────────────
    def chart(self, request: UpstreamRequest) -> UpstreamResponse:
        return self._send(request.method, request.path, list(request.params), request.json_body)

    def location(self, query: str) -> Dict[str, Any]:
        """Proxy for GET /location?query=... (upstream place lookup)."""
        resp = self._send("GET", "/location", [("query", query)])
        if not resp.ok:
            raise UpstreamUnavailable(f"API Error: {resp.status_code}", status_code=resp.status_code)
        if not isinstance(resp.payload, dict):
            raise UpstreamUnavailable("location lookup returned a non-JSON body", status_code=resp.status_code)
        return resp.payload

    def describe(self, request: UpstreamRequest) -> str:
        """Loggable one-liner for an attempt (no credential)."""
        qs = "&".join(f"{k}={v}" for k, v in request.params)
        body = f" body={json.dumps(request.json_body, separators=(',', ':'))}" if request.json_body else ""
        return f"{request.method} {self.base_url}{request.path}{'?' + qs if qs else ''}{body}"
