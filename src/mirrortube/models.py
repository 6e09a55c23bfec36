"""Domain value objects returned to callers."""

from __future__ import annotations

from dataclasses import dataclass

HLS_MIME_TYPE = "application/x-mpegURL"


@dataclass(frozen=True, slots=True)
class VideoSummary:
    """One video in a trending or search listing.

    ``duration_seconds`` and ``view_count_text`` are ``None`` when the
    mirror did not report them; they are never defaulted to zero.
    """

    id: str
    title: str
    channel_title: str = ""
    thumbnail_url: str = ""
    duration_seconds: int | None = None
    view_count_text: str | None = None


@dataclass(frozen=True, slots=True)
class StreamDescriptor:
    """Resolved locator and format metadata needed to start playback.

    The ``url`` is issued by the mirror and may expire; do not cache it
    beyond the request that produced it.
    """

    url: str
    mime_type: str
    quality_label: str
    is_audio_only: bool = False

    @property
    def is_adaptive(self) -> bool:
        return self.mime_type == HLS_MIME_TYPE
