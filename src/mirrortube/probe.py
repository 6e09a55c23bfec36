"""Startup mirror selection with a short per-probe deadline.

Mirrors are probed one at a time in pool order, so the worst case is
bounded by ``timeout * pool size``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx
import structlog

from mirrortube.fetcher import build_url, describe_failure, request_within

if TYPE_CHECKING:
    from mirrortube.pool import EndpointPool

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

DEFAULT_PROBE_PATH = "/trending?region=US"
DEFAULT_PROBE_TIMEOUT = 1.5


@dataclass(frozen=True, slots=True)
class ProbeResult:
    """Outcome of one existence check against one mirror."""

    endpoint: str
    ok: bool
    elapsed_seconds: float
    status_code: int | None = None
    error: str = ""


class ProbeSelector:
    """Pick a usable starting mirror cheaply."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    def probe(
        self,
        endpoint: str,
        probe_path: str = DEFAULT_PROBE_PATH,
        per_probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> ProbeResult:
        """Issue a HEAD request to one mirror, bounded overall by ``per_probe_timeout``."""
        started = time.monotonic()
        try:
            response = request_within(
                "HEAD",
                build_url(endpoint, probe_path),
                per_probe_timeout,
                transport=self._transport,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return ProbeResult(
                endpoint=endpoint,
                ok=False,
                elapsed_seconds=time.monotonic() - started,
                error=describe_failure(exc),
            )

        return ProbeResult(
            endpoint=endpoint,
            ok=response.is_success,
            elapsed_seconds=time.monotonic() - started,
            status_code=response.status_code,
            error="" if response.is_success else f"HTTP {response.status_code}",
        )

    def select_initial(
        self,
        pool: EndpointPool,
        probe_path: str = DEFAULT_PROBE_PATH,
        per_probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> str:
        """Probe mirrors in pool order and promote the first that answers.

        Never raises for unreachable mirrors: when every probe fails, the
        pool's preferred endpoint is left untouched and returned.

        Args:
            pool: The endpoint pool to probe.
            probe_path: Lightweight relative path to request.
            per_probe_timeout: Deadline for each probe in seconds.

        Returns:
            The pool's preferred endpoint after probing.
        """
        for endpoint in pool.members():
            result = self.probe(endpoint, probe_path, per_probe_timeout)
            if result.ok:
                pool.promote(endpoint)
                logger.info(
                    "probe_selected",
                    endpoint=endpoint,
                    elapsed=round(result.elapsed_seconds, 3),
                )
                return endpoint

            logger.debug(
                "probe_failed",
                endpoint=endpoint,
                error=result.error,
                elapsed=round(result.elapsed_seconds, 3),
            )

        preferred = pool.preferred()
        logger.warning("probe_exhausted", attempted=len(pool), preferred=preferred)
        return preferred
