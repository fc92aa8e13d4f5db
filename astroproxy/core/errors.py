# astroproxy/core/errors.py
from __future__ import annotations

"""
Error taxonomy for the chart proxy.

Fatal for the request (escape to the caller):
    ConfigurationError, ValidationError, ExhaustedSearch, ResolutionCancelled
Non-fatal inside the resolver loop (recorded as "last error", search continues):
    UpstreamRejected, UpstreamUnavailable, InsufficientData

Anything else is an internal error and is handled by the app-level error handler.
"""

from typing import Any, Dict, List, Optional, Union


class ChartProxyError(Exception):
    """Base class; carries a stable machine code and an HTTP status for routes."""
    code: str = "chart_proxy_error"
    http_status: int = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.code, "message": self.message}


class ConfigurationError(ChartProxyError):
    """Missing upstream credential or unusable resolver settings."""
    code = "configuration_error"
    http_status = 500


class ValidationError(ChartProxyError, ValueError):
    """Structured validator error (has .errors(), same shape as pydantic-style loc/msg/type)."""
    code = "validation_error"
    http_status = 400

    def __init__(self, details: Union[str, Dict[str, Any], List[Dict[str, Any]]]):
        if isinstance(details, str):
            self._details: List[Dict[str, Any]] = [{"loc": [], "msg": details, "type": "value_error"}]
        elif isinstance(details, dict):
            self._details = [details]
        else:
            self._details = list(details)
        msg = self._details[0]["msg"] if self._details else "validation_error"
        super().__init__(msg)

    def errors(self) -> List[Dict[str, Any]]:
        return list(self._details)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.code, "details": self.errors()}


# ───────────────────────── non-fatal (per attempt) ─────────────────────────
class AttemptFailure(ChartProxyError):
    """A single combination did not produce a usable chart."""
    outcome: str = "failed"
    http_status = 502


class UpstreamRejected(AttemptFailure):
    """Upstream answered 4xx for this request shape."""
    code = "upstream_rejected"
    outcome = "rejected"

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {body}".strip())


class UpstreamUnavailable(AttemptFailure):
    """Timeout, connection failure, or a 5xx from upstream."""
    code = "upstream_unavailable"
    outcome = "unavailable"

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class InsufficientData(AttemptFailure):
    """2xx answer, but the planets collection is missing or too many planets carry errors."""
    code = "insufficient_data"
    outcome = "insufficient"

    def __init__(self, message: str, valid: int = 0, required: int = 0):
        self.valid = valid
        self.required = required
        super().__init__(message)


class MalformedResponse(InsufficientData):
    """2xx answer without a recognizable planets mapping (or not JSON at all)."""
    code = "malformed_response"
    outcome = "malformed"


# ───────────────────────── fatal (per request) ─────────────────────────
class ExhaustedSearch(ChartProxyError):
    """No combination, including the houseless fallback, produced a chart."""
    code = "exhausted_search"
    http_status = 502

    def __init__(
        self,
        last_error: Optional[str],
        attempts: List[Dict[str, Any]],
        tried_systems: List[str],
        hints: Optional[List[str]] = None,
    ):
        self.last_error = last_error
        self.attempts = attempts
        self.tried_systems = tried_systems
        self.hints = list(hints or [])
        super().__init__("All house systems failed")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "error": self.code,
            "message": self.message,
            "last_error": self.last_error,
            "tried_systems": list(self.tried_systems),
            "attempts": list(self.attempts),
            "hints": list(self.hints),
        }


class ResolutionCancelled(ChartProxyError):
    """Caller withdrew interest before the search finished."""
    code = "resolution_cancelled"
    http_status = 503
