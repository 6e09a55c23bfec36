"""Map heterogeneous mirror JSON into :class:`VideoSummary` values.

Mirrors and API revisions disagree on envelopes and field names, so every
function here degrades instead of raising: unknown envelopes become empty
listings, and entries without an identifier or title are dropped.
"""

from __future__ import annotations

import math
import re
from typing import Any
from urllib.parse import parse_qs, urlparse

import structlog

from mirrortube.models import VideoSummary

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{6,64}$")
_YOUTUBE_HOST_RE = re.compile(r"youtu\.?be|youtube\.com", re.IGNORECASE)

# Path segments that precede a bare video id
_ID_PATH_PREFIXES = {"shorts", "embed", "live", "v"}

# Envelope keys that wrap an entry list, in lookup order
_ENVELOPE_KEYS = ("items", "videos", "relatedStreams", "content")

# Search result types that denote a playable video
_VIDEO_TYPES = {"video", "stream"}


# ---------------------------------------------------------------------------
# Identifier extraction
# ---------------------------------------------------------------------------


def extract_video_id(url: str) -> str | None:
    """Isolate the video identifier from a watch-URL-shaped string.

    Handles ``/watch?v=<id>``, ``/shorts/<id>``, ``/embed/<id>`` and bare
    identifiers. Returns ``None`` when nothing id-shaped is found.
    """
    candidate = url.strip()
    if not candidate:
        return None
    if _VIDEO_ID_RE.match(candidate):
        return candidate

    parsed = urlparse(candidate)
    video_values = parse_qs(parsed.query).get("v")
    if video_values and _VIDEO_ID_RE.match(video_values[0]):
        return video_values[0]

    segments = [segment for segment in parsed.path.split("/") if segment]
    if (
        len(segments) >= 2
        and segments[-2] in _ID_PATH_PREFIXES
        and _VIDEO_ID_RE.match(segments[-1])
    ):
        return segments[-1]
    return None


def parse_video_url(query: str) -> str | None:
    """Return the video id when ``query`` is a YouTube watch, short or shorts URL.

    Plain search text returns ``None``.
    """
    text = query.strip()
    if not _YOUTUBE_HOST_RE.search(text):
        return None

    parsed = urlparse(text if "://" in text else f"https://{text}")
    host = (parsed.hostname or "").lower()

    if host.endswith("youtu.be"):
        candidate = parsed.path.lstrip("/").split("/")[0]
    elif "v" in parse_qs(parsed.query):
        candidate = parse_qs(parsed.query)["v"][0]
    elif "/shorts/" in parsed.path:
        candidate = parsed.path.split("/shorts/", 1)[1].split("/")[0]
    else:
        return None

    return candidate if _VIDEO_ID_RE.match(candidate) else None


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------


def _coerce_count(value: Any) -> int | None:
    """Return a non-negative integer, or ``None`` when absent or unusable."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        number = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        return None
    # Piped reports -1 for live streams and unknown counts
    return number if number >= 0 else None


def _text(entry: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _entry_id(entry: dict[str, Any]) -> str | None:
    for key in ("id", "videoId"):
        value = entry.get(key)
        if isinstance(value, str) and _VIDEO_ID_RE.match(value):
            return value
    url = entry.get("url")
    if isinstance(url, str):
        return extract_video_id(url)
    return None


# ---------------------------------------------------------------------------
# Entry and envelope normalization
# ---------------------------------------------------------------------------


def normalize_entry(entry: Any) -> VideoSummary | None:
    """Map one listing entry, or return ``None`` if it lacks an id or title."""
    if not isinstance(entry, dict):
        return None

    video_id = _entry_id(entry)
    title = _text(entry, "title")
    if not video_id or not title:
        logger.debug("entry_dropped", has_id=bool(video_id), has_title=bool(title))
        return None

    views = _coerce_count(entry.get("views"))
    return VideoSummary(
        id=video_id,
        title=title,
        channel_title=_text(entry, "uploaderName", "uploader"),
        thumbnail_url=_text(entry, "thumbnail", "thumbnailUrl"),
        duration_seconds=_coerce_count(entry.get("duration")),
        view_count_text=str(views) if views is not None else None,
    )


def _unwrap(data: Any) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in _ENVELOPE_KEYS:
            items = data.get(key)
            if isinstance(items, list):
                return items
    return []


def normalize_listing(data: Any) -> list[VideoSummary]:
    """Normalize a trending-style response into video summaries.

    Accepts a bare list or an object wrapping the list under ``items``
    (or another known envelope key); anything else yields ``[]``.
    """
    summaries = [normalize_entry(entry) for entry in _unwrap(data)]
    return [summary for summary in summaries if summary is not None]


def normalize_search(data: Any) -> list[VideoSummary]:
    """Normalize a search response, keeping only video-typed entries.

    Entries without a ``type`` field are kept; channels and playlists are
    dropped.
    """
    entries = [
        entry
        for entry in _unwrap(data)
        if isinstance(entry, dict)
        and str(entry.get("type", "video")).lower() in _VIDEO_TYPES
    ]
    return normalize_listing(entries)


def normalize_video_details(video_id: str, details: Any) -> VideoSummary | None:
    """Build a summary from a per-video (stream lookup) response."""
    if not isinstance(details, dict):
        return None
    title = _text(details, "title")
    if not title:
        return None

    views = _coerce_count(details.get("views"))
    return VideoSummary(
        id=video_id,
        title=title,
        channel_title=_text(details, "uploader", "uploaderName"),
        thumbnail_url=_text(details, "thumbnailUrl", "thumbnail"),
        duration_seconds=_coerce_count(details.get("duration")),
        view_count_text=str(views) if views is not None else None,
    )
