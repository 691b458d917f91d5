from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import aiohttp

from .config import FETCH_RETRIES, REQUEST_TIMEOUT, logger


class FetchError(Exception):
    """Base class for every failure surfaced by the fetch gateway."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class Unreachable(FetchError):
    """Transport failure: connection refused, DNS, TLS, timeout."""


class MalformedEnvelope(FetchError):
    """The body is not the expected envelope (bad JSON, redirect page, missing field)."""


class UpstreamError(FetchError):
    """The API answered with an explicit error. Retrying will not help."""

    def __init__(self, code: str, message: str = "", url: str = ""):
        super().__init__(message or f"API error: {code}", url)
        self.code = code


class EntityNotFound(UpstreamError):
    """A well-formed lookup returned no record for the requested entity."""

    def __init__(self, message: str = "not found", url: str = ""):
        super().__init__("not_found", message, url)


class Exhausted(FetchError):
    """Retry budget spent on transient failures."""

    def __init__(self, attempts: int, last_error: FetchError, url: str = ""):
        super().__init__(f"Gave up after {attempts} attempts: {last_error}", url)
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class EndpointSpec:
    """Describes one remote call and the envelope it must return.

    ``key`` names the top-level array the payload lives in. When ``key`` is
    None the envelope is a flat object and ``required`` lists the fields it
    must carry.
    """
    url: str
    key: Optional[str] = None
    params: Optional[Dict[str, str]] = None
    required: Tuple[str, ...] = field(default_factory=tuple)
    label: str = "API"


def build_headers() -> Dict[str, str]:
    return {
        "accept": "application/json",
        "user-agent": "auraxbot/1.0 (+https://github.com/auraxbot)",
        "pragma": "no-cache",
        "cache-control": "no-cache",
    }


def make_session() -> aiohttp.ClientSession:
    timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
    return aiohttp.ClientSession(
        timeout=timeout,
        headers=build_headers(),
        trust_env=True,
    )


def check_envelope(payload: Any, endpoint: EndpointSpec) -> Any:
    """Validate a decoded body and return the part the caller asked for."""
    if not isinstance(payload, dict):
        raise MalformedEnvelope(f"{endpoint.label} returned {type(payload).__name__}, expected an object", endpoint.url)

    if "error" in payload:
        error = payload["error"]
        if error == "service_unavailable":
            raise UpstreamError("service_unavailable", f"{endpoint.label} currently unavailable", endpoint.url)
        raise UpstreamError(str(error), f"{endpoint.label} error: {error}", endpoint.url)

    if "errorCode" in payload:
        code = str(payload["errorCode"])
        message = payload.get("errorMessage")
        if message:
            raise UpstreamError(code, f"{endpoint.label} server error: {message}", endpoint.url)
        raise UpstreamError(code, f"{endpoint.label} error: {code}", endpoint.url)

    if endpoint.key is not None:
        value = payload.get(endpoint.key)
        if not isinstance(value, list):
            raise MalformedEnvelope(f"{endpoint.label} response is missing '{endpoint.key}'", endpoint.url)
        return value

    missing = [name for name in endpoint.required if name not in payload]
    if missing:
        raise MalformedEnvelope(f"{endpoint.label} response is missing {', '.join(missing)}", endpoint.url)
    return payload


async def _request_once(session: aiohttp.ClientSession, endpoint: EndpointSpec) -> Any:
    try:
        async with session.get(endpoint.url, params=endpoint.params) as r:
            if r.status != 200:
                txt = await r.text(errors="replace")
                logger.warning(f"{endpoint.label} HTTP {r.status} for {endpoint.url}")
                raise UpstreamError(f"HTTP {r.status}", f"HTTP {r.status} for {endpoint.url} :: {txt[:180]}", endpoint.url)
            try:
                payload = await r.json(content_type=None)
            except ValueError as e:
                # Census silently redirects to an HTML landing page when it is down
                raise MalformedEnvelope(f"{endpoint.label} unavailable: redirect or non-JSON body", endpoint.url) from e
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise Unreachable(f"{endpoint.label} unreachable: {type(e).__name__} {e}", endpoint.url) from e
    return check_envelope(payload, endpoint)


async def fetch(session: aiohttp.ClientSession, endpoint: EndpointSpec, retries: int = FETCH_RETRIES) -> Any:
    """Fetch and validate ``endpoint``.

    Transport and envelope failures are re-issued immediately, up to
    ``retries`` times beyond the first attempt. An explicit API error is
    raised on the spot.
    """
    last_error: Optional[FetchError] = None
    attempts = retries + 1
    for attempt in range(1, attempts + 1):
        logger.debug(f"{endpoint.label} request ({attempt}/{attempts}): {endpoint.url}")
        try:
            return await _request_once(session, endpoint)
        except (Unreachable, MalformedEnvelope) as e:
            last_error = e
            logger.debug(f"{endpoint.label} attempt {attempt}/{attempts} failed: {e}")
    logger.warning(f"{endpoint.label} exhausted {attempts} attempts for {endpoint.url}: {last_error}")
    raise Exhausted(attempts, last_error, endpoint.url)
