"""Centralized exception hierarchy for the mirrortube package.

All domain-specific exceptions inherit from ``MirrorTubeError`` so
callers can catch the entire family with a single ``except`` clause.
Transport errors at a single mirror never appear here: they are
recovered inside the failover loop.
"""

from __future__ import annotations


class MirrorTubeError(Exception):
    """Base exception for all mirrortube errors."""


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class ConfigurationError(MirrorTubeError):
    """Raised when the endpoint pool is configured with no endpoints."""


# ---------------------------------------------------------------------------
# Fetch errors
# ---------------------------------------------------------------------------


class AllEndpointsUnavailable(MirrorTubeError):
    """Raised when every pool member failed for one logical fetch.

    Attributes:
        path: The relative request path that was attempted.
        attempted: Number of endpoints that were tried.
        errors: Mapping of endpoint -> short failure description.
    """

    def __init__(
        self,
        path: str,
        attempted: int,
        errors: dict[str, str] | None = None,
    ) -> None:
        self.path = path
        self.attempted = attempted
        self.errors = dict(errors or {})
        super().__init__(f"All {attempted} endpoints failed for {path}")


# ---------------------------------------------------------------------------
# Stream errors
# ---------------------------------------------------------------------------


class NoPlayableStream(MirrorTubeError):
    """Raised when a video offers no stream tier this client can play."""

    def __init__(self, video_id: str | None = None) -> None:
        self.video_id = video_id
        if video_id:
            super().__init__(f"No playable stream for video {video_id}")
        else:
            super().__init__("No playable stream")
