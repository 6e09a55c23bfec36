"""Pick the single best playable stream from a per-video response.

Preference is an ordered list of :class:`StreamRule` values evaluated in
sequence; the first rule whose ``select`` finds a candidate wins. Adding a
tier is a matter of inserting a rule.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from mirrortube.exceptions import NoPlayableStream
from mirrortube.models import HLS_MIME_TYPE, StreamDescriptor

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

AUTO_QUALITY = "Auto"
AUDIO_ONLY_QUALITY = "Audio Only"

# Container families every mainstream player can decode
_PROGRESSIVE_FORMATS = {"MPEG-4"}
_AUDIO_FORMATS = {"MPEG-4": "audio/mp4", "WEBM": "audio/webm"}


@dataclass(frozen=True, slots=True)
class StreamRule:
    """One tier of the stream preference table.

    Attributes:
        name: Tier name used in logs.
        select: Returns the matching raw candidate, or ``None``.
        build: Turns the matched candidate into a descriptor.
    """

    name: str
    select: Callable[[dict[str, Any]], Any]
    build: Callable[[Any], StreamDescriptor]


def _streams(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = data.get(key)
    if not isinstance(value, list):
        return []
    return [
        item
        for item in value
        if isinstance(item, dict) and isinstance(item.get("url"), str) and item["url"]
    ]


def _select_hls(data: dict[str, Any]) -> str | None:
    hls = data.get("hls")
    return hls if isinstance(hls, str) and hls else None


def _select_progressive(data: dict[str, Any]) -> dict[str, Any] | None:
    for stream in _streams(data, "videoStreams"):
        if stream.get("format") in _PROGRESSIVE_FORMATS and not stream.get("videoOnly"):
            return stream
    return None


def _select_audio(data: dict[str, Any]) -> dict[str, Any] | None:
    for stream in _streams(data, "audioStreams"):
        if stream.get("format") in _AUDIO_FORMATS:
            return stream
    return None


DEFAULT_RULES: tuple[StreamRule, ...] = (
    StreamRule(
        name="adaptive",
        select=_select_hls,
        build=lambda url: StreamDescriptor(
            url=url, mime_type=HLS_MIME_TYPE, quality_label=AUTO_QUALITY
        ),
    ),
    StreamRule(
        name="progressive",
        select=_select_progressive,
        build=lambda stream: StreamDescriptor(
            url=stream["url"],
            mime_type="video/mp4",
            quality_label=str(stream.get("quality") or ""),
        ),
    ),
    StreamRule(
        name="audio",
        select=_select_audio,
        build=lambda stream: StreamDescriptor(
            url=stream["url"],
            mime_type=_AUDIO_FORMATS[stream["format"]],
            quality_label=AUDIO_ONLY_QUALITY,
            is_audio_only=True,
        ),
    ),
)


class StreamNegotiator:
    """Evaluate stream rules in order against one raw per-video response."""

    def __init__(self, rules: Sequence[StreamRule] = DEFAULT_RULES) -> None:
        self.rules = tuple(rules)

    def negotiate(self, data: Any, video_id: str | None = None) -> StreamDescriptor:
        """Return the descriptor from the first matching rule.

        Raises:
            NoPlayableStream: If no rule matches; callers should skip the
                video rather than treat this as fatal.
        """
        if isinstance(data, dict):
            for rule in self.rules:
                candidate = rule.select(data)
                if candidate is None:
                    continue
                descriptor = rule.build(candidate)
                logger.debug(
                    "stream_negotiated",
                    video_id=video_id,
                    tier=rule.name,
                    mime_type=descriptor.mime_type,
                )
                return descriptor

        raise NoPlayableStream(video_id)
