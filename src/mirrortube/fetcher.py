"""Failover fetch across the mirror pool.

One logical request is tried against the preferred mirror first, then
against every other pool member in pool order. The first mirror that
answers with a 2xx JSON body is promoted to preferred.
``attempts_per_endpoint`` bounds the tries against one mirror before
moving on, and defaults to one.

Every attempt runs under a single overall deadline. httpx timeouts bound
each connect and each socket read separately, so a mirror trickling bytes
would otherwise hold the request open indefinitely.
"""

from __future__ import annotations

import asyncio
from itertools import chain
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mirrortube.exceptions import AllEndpointsUnavailable, MirrorTubeError

if TYPE_CHECKING:
    from collections.abc import Callable

    from mirrortube.pool import EndpointPool

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_DEFAULT_TIMEOUT = 10.0

# Everything a single mirror can do wrong: transport errors, non-2xx status
# (HTTPStatusError) and undecodable bodies (json.JSONDecodeError).
RECOVERABLE_ERRORS: tuple[type[Exception], ...] = (
    httpx.HTTPError,
    httpx.InvalidURL,
    ValueError,
)


def describe_failure(exc: Exception) -> str:
    """Return a short, log-friendly description of a per-mirror failure."""
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    if isinstance(exc, ValueError) and not isinstance(exc, httpx.HTTPError):
        return "invalid JSON body"
    return f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__


def build_url(endpoint: str, path: str) -> str:
    """Join a mirror base URL and a relative request path."""
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{endpoint}{path}"


# ---------------------------------------------------------------------------
# Deadline-bounded requests
# ---------------------------------------------------------------------------


async def _request_within(
    method: str,
    url: str,
    deadline: float,
    headers: dict[str, str] | None,
    transport: httpx.AsyncBaseTransport | None,
) -> httpx.Response:
    try:
        async with asyncio.timeout(deadline):
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(deadline),
                headers=headers,
                transport=transport,
                follow_redirects=True,
            ) as client:
                return await client.request(method, url)
    except TimeoutError as exc:
        msg = f"No complete response from {url} within {deadline}s"
        raise httpx.TimeoutException(msg) from exc


def request_within(
    method: str,
    url: str,
    deadline: float,
    *,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.Response:
    """Issue one request and abandon it once ``deadline`` seconds have passed.

    The deadline covers the whole exchange (connect, headers and body). Must
    be called from synchronous code, outside a running event loop.

    Args:
        method: HTTP method.
        url: Absolute request URL.
        deadline: Overall limit in seconds.
        headers: Optional request headers.
        transport: Optional transport, e.g. ``httpx.MockTransport`` in tests.

    Returns:
        The fully read response.

    Raises:
        httpx.TimeoutException: If the deadline passes first.
        httpx.HTTPError: On any other transport failure.
    """
    return asyncio.run(_request_within(method, url, deadline, headers, transport))


# ---------------------------------------------------------------------------
# Failover fetcher
# ---------------------------------------------------------------------------


class ResilientFetcher:
    """Execute one logical GET against the pool with automatic failover.

    Attributes:
        timeout: Default per-attempt deadline in seconds.
        attempts_per_endpoint: Tries against one mirror before moving on.
    """

    def __init__(
        self,
        timeout: float = _DEFAULT_TIMEOUT,
        attempts_per_endpoint: int = 1,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._headers = {"Accept": "application/json"}
        if user_agent:
            self._headers["User-Agent"] = user_agent
        self._transport = transport
        self.timeout = timeout
        self.attempts_per_endpoint = max(1, attempts_per_endpoint)

    def fetch(
        self,
        path: str,
        pool: EndpointPool,
        timeout: float | None = None,
        parse: Callable[[Any], Any] | None = None,
    ) -> Any:
        """Fetch ``path`` from the preferred mirror, failing over as needed.

        Args:
            path: Relative request path, e.g. ``/trending?region=US``.
            pool: The endpoint pool to draw mirrors from.
            timeout: Per-attempt deadline override in seconds.
            parse: Optional callable applied to each mirror's body. A
                :class:`MirrorTubeError` it raises rejects that mirror's
                answer and moves on to the next mirror.

        Returns:
            The decoded JSON body, unchanged in structure, or ``parse``'s
            result for it.

        Raises:
            AllEndpointsUnavailable: If no pool member answered.
            MirrorTubeError: The last rejection from ``parse`` when mirrors
                answered but every answer was rejected.
        """
        per_attempt = timeout if timeout is not None else self.timeout
        preferred = pool.preferred()
        candidates = chain(
            (preferred,),
            (member for member in pool.members() if member != preferred),
        )
        errors: dict[str, str] = {}
        rejection: MirrorTubeError | None = None

        for member in candidates:
            log = logger.warning if member == preferred else logger.debug
            try:
                data = self._attempt(member, path, per_attempt)
            except RECOVERABLE_ERRORS as exc:
                errors[member] = describe_failure(exc)
                log("endpoint_failed", endpoint=member, path=path, error=errors[member])
                continue

            if parse is not None:
                try:
                    data = parse(data)
                except MirrorTubeError as exc:
                    errors[member] = str(exc)
                    rejection = exc
                    log("endpoint_rejected", endpoint=member, path=path, error=str(exc))
                    continue

            if member != preferred:
                pool.promote(member)
                logger.info(
                    "endpoint_recovered",
                    endpoint=member,
                    path=path,
                    failed=len(errors),
                )
            return data

        if rejection is not None:
            logger.warning("all_endpoints_rejected", path=path, attempted=len(errors))
            raise rejection

        logger.error("all_endpoints_failed", path=path, attempted=len(errors))
        raise AllEndpointsUnavailable(path, attempted=len(errors), errors=errors)

    def _attempt(self, endpoint: str, path: str, timeout: float) -> Any:
        retrying = Retrying(
            retry=retry_if_exception_type(RECOVERABLE_ERRORS),
            stop=stop_after_attempt(self.attempts_per_endpoint),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            reraise=True,
        )
        return retrying(self._get_json, build_url(endpoint, path), timeout)

    def _get_json(self, url: str, timeout: float) -> Any:
        response = request_within(
            "GET", url, timeout, headers=self._headers, transport=self._transport
        )
        response.raise_for_status()
        return response.json()
