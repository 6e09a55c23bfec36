"""Request facade tying the pool, failover fetcher and negotiator together.

Each public method is one logical request: it runs through
:class:`ResilientFetcher` against the owned :class:`EndpointPool` and hands
the raw JSON to the normalizer or the stream negotiator.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

import structlog

from mirrortube.config import Settings
from mirrortube.exceptions import AllEndpointsUnavailable
from mirrortube.fetcher import ResilientFetcher
from mirrortube.logging import request_logging_context
from mirrortube.models import StreamDescriptor, VideoSummary
from mirrortube.negotiator import StreamNegotiator
from mirrortube.normalizer import (
    normalize_listing,
    normalize_search,
    normalize_video_details,
    parse_video_url,
)
from mirrortube.pool import EndpointPool
from mirrortube.probe import ProbeSelector

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    import httpx

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# Static sample content for when every mirror is down
FALLBACK_VIDEOS: tuple[VideoSummary, ...] = (
    VideoSummary(
        id="jfKfPfyJRdk",
        title="lofi hip hop radio - beats to relax/study to",
        channel_title="Lofi Girl",
        thumbnail_url="https://i.ytimg.com/vi/jfKfPfyJRdk/hqdefault.jpg",
        view_count_text="LIVE",
    ),
    VideoSummary(
        id="4xDzrJKXOOY",
        title="synthwave radio - beats to chill/game to",
        channel_title="Lofi Girl",
        thumbnail_url="https://i.ytimg.com/vi/4xDzrJKXOOY/hqdefault.jpg",
        view_count_text="LIVE",
    ),
    VideoSummary(
        id="kPa7bsKwL-c",
        title="Classical Piano Music for Brain Power",
        channel_title="HALIDONMUSIC",
        thumbnail_url="https://i.ytimg.com/vi/kPa7bsKwL-c/hqdefault.jpg",
        duration_seconds=10540,
        view_count_text="9M",
    ),
    VideoSummary(
        id="5qap5aO4i9A",
        title="lofi hip hop radio - beats to sleep/chill to",
        channel_title="Lofi Girl",
        thumbnail_url="https://i.ytimg.com/vi/5qap5aO4i9A/hqdefault.jpg",
        view_count_text="LIVE",
    ),
)


class MirrorClient:
    """High-level client for trending, search and stream lookups."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        pool: EndpointPool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        negotiator: StreamNegotiator | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.pool = pool or EndpointPool(self.settings.pool.endpoints)
        self.fetcher = ResilientFetcher(
            timeout=self.settings.fetch.listing_timeout,
            attempts_per_endpoint=self.settings.fetch.attempts_per_endpoint,
            user_agent=self.settings.fetch.user_agent,
            transport=transport,
        )
        self.prober = ProbeSelector(transport=transport)
        self.negotiator = negotiator or StreamNegotiator()

    # -----------------------------------------------------------------------
    # Pool management
    # -----------------------------------------------------------------------

    def start(self) -> str:
        """Seed the preferred mirror by probing, if enabled. Returns it."""
        if not self.settings.pool.probe_on_startup:
            return self.pool.preferred()
        return self.select_mirror()

    def select_mirror(self) -> str:
        """Probe the pool now and return the preferred mirror afterwards."""
        return self.prober.select_initial(
            self.pool,
            probe_path=self.settings.pool.probe_path,
            per_probe_timeout=self.settings.pool.probe_timeout,
        )

    def reconfigure(self, endpoints: Iterable[str]) -> None:
        """Replace the mirror pool, e.g. after the user edits their settings."""
        self.pool.configure(endpoints)

    # -----------------------------------------------------------------------
    # Requests
    # -----------------------------------------------------------------------

    def trending(self, region: str | None = None) -> list[VideoSummary]:
        """Return the trending listing for ``region``.

        Raises:
            AllEndpointsUnavailable: If no mirror answered.
        """
        region = (region or self.settings.fetch.region).upper()
        with request_logging_context("trending", region=region):
            data = self._fetch_listing(f"/trending?{urlencode({'region': region})}")
            return normalize_listing(data)

    def popular_or_fallback(self, region: str | None = None) -> list[VideoSummary]:
        """Like :meth:`trending`, but degrade to static sample content."""
        try:
            videos = self.trending(region)
        except AllEndpointsUnavailable:
            logger.warning("trending_fallback", reason="all_endpoints_failed")
            return list(FALLBACK_VIDEOS)
        if not videos:
            logger.warning("trending_fallback", reason="empty_listing")
            return list(FALLBACK_VIDEOS)
        return videos

    def search(self, query: str) -> list[VideoSummary]:
        """Search videos; a pasted YouTube URL resolves to that one video.

        Raises:
            AllEndpointsUnavailable: If no mirror answered the search.
        """
        with request_logging_context("search", query=query):
            search_term = query.strip()
            direct_id = parse_video_url(search_term)
            if direct_id:
                try:
                    return [self.video(direct_id)]
                except AllEndpointsUnavailable:
                    logger.info("direct_lookup_failed", video_id=direct_id)
                    search_term = direct_id
                except LookupError:
                    search_term = direct_id

            params = urlencode({"q": search_term, "filter": "videos"})
            data = self._fetch_listing(f"/search?{params}")
            return normalize_search(data)

    def video(self, video_id: str) -> VideoSummary:
        """Look up one video's summary via its stream-listing endpoint.

        Raises:
            AllEndpointsUnavailable: If no mirror answered.
            LookupError: If the response carried no usable title.
        """
        data = self._fetch_streams(video_id)
        summary = normalize_video_details(video_id, data)
        if summary is None:
            msg = f"No details for video {video_id}"
            raise LookupError(msg)
        return summary

    def stream(self, video_id: str) -> StreamDescriptor:
        """Resolve the best playable stream for ``video_id``.

        A mirror whose answer offers no usable tier is skipped like a failed
        one, so the next mirror gets a chance.

        Raises:
            AllEndpointsUnavailable: If no mirror answered.
            NoPlayableStream: If mirrors answered but none offered a usable tier.
        """
        with request_logging_context("stream", video_id=video_id):
            return self._fetch_streams(
                video_id,
                parse=partial(self.negotiator.negotiate, video_id=video_id),
            )

    def _fetch_listing(self, path: str) -> Any:
        return self.fetcher.fetch(
            path, self.pool, timeout=self.settings.fetch.listing_timeout
        )

    def _fetch_streams(
        self, video_id: str, parse: Callable[[Any], Any] | None = None
    ) -> Any:
        return self.fetcher.fetch(
            f"/streams/{quote(video_id, safe='')}",
            self.pool,
            timeout=self.settings.fetch.stream_timeout,
            parse=parse,
        )
