"""Ordered pool of interchangeable mirror endpoints with a preferred pointer.

The pool is the only shared mutable state in the client. Membership is
replaced wholesale by :meth:`EndpointPool.configure`; the preferred pointer
moves via :meth:`EndpointPool.promote` whenever a non-preferred mirror
answers. Failing mirrors are never evicted, so they remain eligible on the
next fetch.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import structlog

from mirrortube.exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def normalize_endpoint(url: str) -> str:
    """Strip surrounding whitespace and trailing slashes from a base URL."""
    return url.strip().rstrip("/")


class PoolMembers:
    """Restartable view over the pool's endpoints in pool order.

    Each iteration reads the pool's current membership, so a view obtained
    before a reconfiguration reflects the new endpoints afterwards.
    """

    __slots__ = ("_pool",)

    def __init__(self, pool: EndpointPool) -> None:
        self._pool = pool

    def __iter__(self) -> Iterator[str]:
        yield from self._pool._snapshot()

    def __len__(self) -> int:
        return len(self._pool._snapshot())

    def __contains__(self, endpoint: object) -> bool:
        return endpoint in self._pool._snapshot()


class EndpointPool:
    """Holds candidate mirror base URLs and the currently preferred one.

    Access to the endpoint tuple and the preferred pointer is serialized
    with a lock; the last successful promotion wins.
    """

    def __init__(self, endpoints: Iterable[str]) -> None:
        """Initialize the pool.

        Args:
            endpoints: Ordered mirror base URLs.

        Raises:
            ConfigurationError: If ``endpoints`` is empty.
        """
        self._lock = threading.Lock()
        self._endpoints: tuple[str, ...] = ()
        self._preferred = ""
        self.configure(endpoints)

    def configure(self, endpoints: Iterable[str]) -> None:
        """Replace the pool and reset the preferred endpoint to the first one.

        Duplicate entries are collapsed, keeping the first occurrence.

        Raises:
            ConfigurationError: If no usable endpoint is given.
        """
        cleaned: list[str] = []
        for url in endpoints:
            normalized = normalize_endpoint(url)
            if normalized and normalized not in cleaned:
                cleaned.append(normalized)

        if not cleaned:
            msg = "Endpoint pool requires at least one base URL"
            raise ConfigurationError(msg)

        with self._lock:
            self._endpoints = tuple(cleaned)
            self._preferred = cleaned[0]

        logger.info("pool_configured", count=len(cleaned), preferred=cleaned[0])

    def preferred(self) -> str:
        """Return the endpoint currently believed most likely to succeed."""
        with self._lock:
            return self._preferred

    def promote(self, endpoint: str) -> None:
        """Make ``endpoint`` the preferred one.

        Silently ignored when ``endpoint`` is not a pool member.
        """
        normalized = normalize_endpoint(endpoint)
        with self._lock:
            if normalized not in self._endpoints:
                return
            previous = self._preferred
            self._preferred = normalized

        if previous != normalized:
            logger.info("endpoint_promoted", previous=previous, preferred=normalized)

    def members(self) -> PoolMembers:
        """Return a lazy, restartable sequence over all endpoints in order."""
        return PoolMembers(self)

    def __len__(self) -> int:
        return len(self._snapshot())

    def __contains__(self, endpoint: object) -> bool:
        if not isinstance(endpoint, str):
            return False
        return normalize_endpoint(endpoint) in self._snapshot()

    def __repr__(self) -> str:
        return f"EndpointPool(size={len(self)}, preferred={self.preferred()!r})"

    def _snapshot(self) -> tuple[str, ...]:
        with self._lock:
            return self._endpoints
