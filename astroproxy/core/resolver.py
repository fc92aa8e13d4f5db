# astroproxy/core/resolver.py
from __future__ import annotations

"""
Chart Request Resolver.

Maps a BirthQuery to a ChartResult by walking a fixed, declared list of
request shapes against the upstream chart API and stopping at the first one
that yields enough valid planets.

Search order (deterministic):
    for house candidate in settings.house_systems:        # primary key
        for planet format in settings.planet_formats:     # secondary key
            attempt
    then, if enabled, the houseless pass:
        for planet format in settings.planet_formats:
            attempt without any house parameter, display without 'house'

Per attempt:
    timeout / connection error / 5xx  → UpstreamUnavailable  (recorded, continue)
    4xx                               → UpstreamRejected     (recorded, continue)
    2xx without planets mapping       → MalformedResponse    (recorded, continue)
    2xx, valid planets < required     → InsufficientData     (recorded, continue)
    2xx, valid planets ≥ required     → ChartResult          (stop)

Exhausting the list raises ExhaustedSearch with the last error text and the
full attempt log. Nothing is remembered between resolutions: every call
starts from the top, and a resolver instance holds no per-call state, so one
instance can serve concurrent requests.
"""

import logging
from time import perf_counter
from types import MappingProxyType
from typing import Any, Dict, List, Optional, Protocol, Tuple

from astroproxy.core.constants import NO_HOUSE_SYSTEM
from astroproxy.core.errors import (
    AttemptFailure,
    ExhaustedSearch,
    InsufficientData,
    MalformedResponse,
    ResolutionCancelled,
    UpstreamRejected,
    UpstreamUnavailable,
)
from astroproxy.core.models import (
    NO_HOUSES,
    Attempt,
    BirthQuery,
    ChartResult,
    HouseSystemCandidate,
    PlanetFormat,
    PlanetResult,
    UpstreamRequest,
    UpstreamResponse,
)
from astroproxy.core.settings import ResolverSettings
from astroproxy.core.shapes import build_request
from astroproxy.utils.metrics import (
    ATTEMPTS_PER_RESOLUTION,
    RESOLUTIONS,
    UPSTREAM_ATTEMPTS,
    UPSTREAM_LATENCY,
)

log = logging.getLogger(__name__)

HOUSELESS_WARNING = "no_house_system"

BASE_HINTS: Tuple[str, ...] = (
    "Check that ASTROLOGICO_API_KEY is valid and has remaining credit.",
    "Confirm the accepted house parameter/value with the upstream API and set ASTROPROXY_HOUSE_SYSTEMS.",
    "Try another planet-list encoding via ASTROPROXY_PLANET_FORMATS (query:pipe, query:comma, query:repeated, body:*).",
)


class ChartClient(Protocol):
    def chart(self, request: UpstreamRequest) -> UpstreamResponse: ...
    def describe(self, request: UpstreamRequest) -> str: ...


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


class DeadlineToken:
    """Cancel token that trips once `budget` seconds have passed since creation."""

    def __init__(self, budget: float, clock=perf_counter):
        self._clock = clock
        self.deadline = clock() + float(budget)

    def is_set(self) -> bool:
        return self._clock() >= self.deadline


Combination = Tuple[HouseSystemCandidate, PlanetFormat]


class ChartResolver:
    def __init__(self, client: ChartClient, settings: ResolverSettings):
        self.client = client
        self.settings = settings

    # ───────────────────────── plan ─────────────────────────
    def plan(self) -> List[Combination]:
        s = self.settings
        combos: List[Combination] = [(c, f) for c in s.house_systems for f in s.planet_formats]
        if s.houseless_fallback:
            combos += [(NO_HOUSES, f) for f in s.planet_formats]
        return combos

    def required_valid(self, query: BirthQuery) -> int:
        # Asking for three planets cannot be held to a threshold of eight.
        return max(1, min(self.settings.min_valid_planets, len(query.planets)))

    # ───────────────────────── evaluation ─────────────────────────
    def evaluate(
        self,
        resp: UpstreamResponse,
        candidate: HouseSystemCandidate,
        fmt: PlanetFormat,
        required: int,
        attempt_no: int,
    ) -> ChartResult:
        code = resp.status_code
        if 400 <= code < 500:
            raise UpstreamRejected(code, resp.text)
        if not resp.ok:
            raise UpstreamUnavailable(f"HTTP {code}: {resp.text}".strip(), status_code=code)

        payload = resp.payload
        planets_raw = payload.get("planets") if isinstance(payload, dict) else None
        if not isinstance(planets_raw, dict) or not planets_raw:
            raise MalformedResponse("response has no planets collection")

        planets: Dict[str, PlanetResult] = {
            str(k).lower(): PlanetResult.from_upstream(v) for k, v in planets_raw.items()
        }
        failed = [k for k, p in planets.items() if not p.valid]
        valid = len(planets) - len(failed)
        if valid < required:
            raise InsufficientData(
                f"only {valid} of {len(planets)} planets valid (need {required})",
                valid=valid,
                required=required,
            )

        warnings = list(failed)
        houses: Dict[str, Any] = {}
        if candidate.is_houseless:
            warnings.append(HOUSELESS_WARNING)
        elif isinstance(payload.get("houses"), dict):
            houses = dict(payload["houses"])

        return ChartResult(
            planets=MappingProxyType(planets),
            houses=MappingProxyType(houses),
            house_system_used=candidate.system_value if not candidate.is_houseless else NO_HOUSE_SYSTEM,
            planet_format_used=fmt.label,
            warnings=tuple(warnings),
            attempts=attempt_no,
            metadata=payload.get("metadata"),
            status=str(payload.get("status") or "OK"),
            cost=payload.get("cost") or 0,
        )

    # ───────────────────────── search ─────────────────────────
    def resolve(self, query: BirthQuery, cancel: Optional[CancelToken] = None) -> ChartResult:
        s = self.settings
        required = self.required_valid(query)
        attempts: List[Attempt] = []
        last_error: Optional[str] = None

        for candidate, fmt in self.plan():
            if cancel is not None and cancel.is_set():
                RESOLUTIONS.labels(outcome="cancelled", house_system="-").inc()
                raise ResolutionCancelled(f"cancelled after {len(attempts)} attempt(s)")

            req = build_request(query, candidate, fmt, display=s.display, date_encoding=s.date_encoding)
            attempt = Attempt(
                house_system=candidate.system_value,
                parameter=candidate.parameter_name or "-",
                planet_format=fmt.label,
            )
            attempts.append(attempt)
            log.info("chart attempt %d: %s [%s]", len(attempts), self.client.describe(req), candidate.label)

            t0 = perf_counter()
            try:
                resp = self.client.chart(req)
                attempt.status_code = resp.status_code
                result = self.evaluate(resp, candidate, fmt, required, len(attempts))
            except AttemptFailure as e:
                attempt.elapsed_ms = (perf_counter() - t0) * 1000.0
                attempt.outcome = e.outcome
                attempt.detail = e.message
                last_error = e.message
                UPSTREAM_ATTEMPTS.labels(outcome=e.outcome, transport=fmt.transport).inc()
                UPSTREAM_LATENCY.labels(transport=fmt.transport).observe(attempt.elapsed_ms / 1000.0)
                log.warning(
                    "chart attempt %d (%s, %s) failed: %s: %s",
                    len(attempts), candidate.label, fmt.label, e.code, e.message,
                )
                continue

            attempt.elapsed_ms = (perf_counter() - t0) * 1000.0
            attempt.outcome = "ok"
            UPSTREAM_ATTEMPTS.labels(outcome="ok", transport=fmt.transport).inc()
            UPSTREAM_LATENCY.labels(transport=fmt.transport).observe(attempt.elapsed_ms / 1000.0)
            RESOLUTIONS.labels(outcome="success", house_system=result.house_system_used).inc()
            ATTEMPTS_PER_RESOLUTION.observe(len(attempts))
            log.info(
                "chart resolved with %s/%s after %d attempt(s); %d valid planets, warnings=%s",
                result.house_system_used, fmt.label, len(attempts),
                len(result.valid_planets), list(result.warnings),
            )
            return result

        RESOLUTIONS.labels(outcome="exhausted", house_system="-").inc()
        ATTEMPTS_PER_RESOLUTION.observe(len(attempts))
        log.error("chart search exhausted after %d attempt(s); last error: %s", len(attempts), last_error)
        raise ExhaustedSearch(
            last_error=last_error,
            attempts=[a.to_dict() for a in attempts],
            tried_systems=self._tried_systems(),
            hints=self._hints(attempts),
        )

    def _tried_systems(self) -> List[str]:
        out: List[str] = []
        for candidate, _ in self.plan():
            if candidate.label not in out:
                out.append(candidate.label)
        return out

    def _hints(self, attempts: List[Attempt]) -> List[str]:
        hints = list(BASE_HINTS)
        if attempts and all(a.outcome == "unavailable" for a in attempts):
            hints.insert(0, "The chart API did not answer; check network access and ASTROPROXY_TIMEOUT_SECONDS.")
        elif any(a.outcome == "insufficient" for a in attempts):
            hints.insert(0, "The chart API answered but too few planets were valid; consider ASTROPROXY_MIN_VALID_PLANETS.")
        hints.extend(self.settings.extra_hints)
        return hints
