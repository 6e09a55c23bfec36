"""Shared pytest fixtures for the mirrortube test suite."""

from __future__ import annotations

import logging
import socketserver
import threading
import time
from typing import TYPE_CHECKING, Any

import pytest
import structlog

from mirrortube.config import FetchSettings, PoolSettings, Settings
from mirrortube.pool import EndpointPool

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

MIRROR_A = "https://a.mirror.test"
MIRROR_B = "https://b.mirror.test"
MIRROR_C = "https://c.mirror.test"
MIRRORS = [MIRROR_A, MIRROR_B, MIRROR_C]


@pytest.fixture(autouse=True)
def _reset_structlog() -> None:
    """Reset structlog state between tests."""
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


@pytest.fixture()
def pool() -> EndpointPool:
    """Return a three-mirror pool with A preferred."""
    return EndpointPool(MIRRORS)


@pytest.fixture()
def settings() -> Settings:
    """Return settings pointing at the test mirrors, with probing off."""
    return Settings(
        pool=PoolSettings(
            endpoints=list(MIRRORS), probe_timeout=0.5, probe_on_startup=False
        ),
        fetch=FetchSettings(listing_timeout=2.0, stream_timeout=3.0),
    )


# ---------------------------------------------------------------------------
# Sample mirror payloads
# ---------------------------------------------------------------------------


@pytest.fixture()
def trending_payload() -> list[dict[str, Any]]:
    """Return a bare-list trending response with two videos."""
    return [
        {
            "url": "/watch?v=dQw4w9WgXcQ",
            "type": "stream",
            "title": "Never Gonna Give You Up",
            "thumbnail": "https://img.test/dQw4w9WgXcQ.jpg",
            "uploaderName": "Rick Astley",
            "duration": 213,
            "views": 1500000000,
        },
        {
            "url": "/watch?v=9bZkp7q19f0",
            "type": "stream",
            "title": "Gangnam Style",
            "thumbnail": "https://img.test/9bZkp7q19f0.jpg",
            "uploaderName": "officialpsy",
            "duration": 252,
            "views": 5000000000,
        },
    ]


@pytest.fixture()
def streams_payload() -> dict[str, Any]:
    """Return a per-video response offering all three stream tiers."""
    return {
        "title": "Never Gonna Give You Up",
        "uploader": "Rick Astley",
        "thumbnailUrl": "https://img.test/dQw4w9WgXcQ.jpg",
        "duration": 213,
        "views": 1500000000,
        "hls": "https://cdn.test/manifest/dQw4w9WgXcQ.m3u8",
        "videoStreams": [
            {
                "url": "https://cdn.test/v/720-video-only.mp4",
                "format": "MPEG-4",
                "quality": "720p",
                "videoOnly": True,
            },
            {
                "url": "https://cdn.test/v/360.mp4",
                "format": "MPEG-4",
                "quality": "360p",
                "videoOnly": False,
            },
        ],
        "audioStreams": [
            {
                "url": "https://cdn.test/a/opus.webm",
                "format": "WEBM",
                "quality": "160 kbps",
            }
        ],
    }


# ---------------------------------------------------------------------------
# Local socket mirrors
# ---------------------------------------------------------------------------


_PROXY_VARS = (
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "ALL_PROXY",
    "http_proxy",
    "https_proxy",
    "all_proxy",
)


class _MirrorServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True
    block_on_close = False

    def __init__(self, handler: type[socketserver.BaseRequestHandler]) -> None:
        super().__init__(("127.0.0.1", 0), handler)
        self.stopping = threading.Event()


class _TrickleHandler(socketserver.BaseRequestHandler):
    """Send a status line, then one header byte at a time, forever."""

    server: _MirrorServer

    def handle(self) -> None:
        self.request.recv(65536)
        try:
            self.request.sendall(b"HTTP/1.1 200 OK\r\n")
            while not self.server.stopping.is_set():
                self.request.sendall(b"X")
                time.sleep(0.1)
        except OSError:
            return


class _HealthyHandler(socketserver.BaseRequestHandler):
    """Answer every request with an empty JSON list."""

    def handle(self) -> None:
        request = self.request.recv(65536)
        head = (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: application/json\r\n"
            b"Content-Length: 2\r\n"
            b"Connection: close\r\n\r\n"
        )
        body = b"" if request.startswith(b"HEAD") else b"[]"
        self.request.sendall(head + body)


@pytest.fixture()
def local_mirror(monkeypatch: pytest.MonkeyPatch) -> Iterator[Callable[..., str]]:
    """Start real local mirrors; ``trickle=True`` never finishes its headers."""
    for name in _PROXY_VARS:
        monkeypatch.delenv(name, raising=False)

    servers: list[_MirrorServer] = []

    def start(trickle: bool = False) -> str:
        server = _MirrorServer(_TrickleHandler if trickle else _HealthyHandler)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        host, port = server.server_address[:2]
        return f"http://{host}:{port}"

    yield start

    for server in servers:
        server.stopping.set()
        server.shutdown()
        server.server_close()
