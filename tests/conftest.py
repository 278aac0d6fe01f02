"""Pytest configuration and test helpers."""

from __future__ import annotations

import asyncio
import copy
import sys
from pathlib import Path
from typing import Any

import httpx
import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.config import Settings  # noqa: E402
from app.models import Channel, Snapshot  # noqa: E402
from app.services.catalog_cache import CatalogCache  # noqa: E402
from app.services.catalog_service import CatalogService  # noqa: E402

RAW_URL = "https://raw.example.com/channels/raw"
API_URL = "https://api.example.com/contents/channels/raw"

COUNTRIES_METADATA: dict[str, Any] = {
    "US": {"country": "United States", "hasChannels": True},
    "DE": {"country": "Germany", "hasChannels": True},
}
COUNTRY_FILES: dict[str, list[dict[str, Any]]] = {
    "us.json": [
        {
            "nanoid": "abc123",
            "name": "News1",
            "iptv_urls": ["https://cdn.example.com/news1.m3u8"],
            "youtube_urls": [],
            "language": "eng",
            "country": "us",
        },
        {
            "nanoid": "def456",
            "name": "Toons",
            "iptv_urls": [],
            "youtube_urls": ["https://www.youtube-nocookie.com/embed/dQw4w9WgXcQ"],
            "language": "eng",
            "country": "us",
        },
        {
            "nanoid": "ghi789",
            "name": "Weather Now",
            "iptv_urls": None,
            "language": None,
            "country": "us",
        },
    ],
    "de.json": [
        {
            "nanoid": "jkl012",
            "name": "Nachrichten",
            "iptv_urls": ["https://cdn.example.com/de1.m3u8"],
            "youtube_urls": [],
            "language": "deu",
            "country": "de",
        },
    ],
}
CATEGORY_FILES: dict[str, list[dict[str, Any]]] = {
    "news.json": [{"nanoid": "abc123"}, {"nanoid": "jkl012"}],
    "kids.json": [{"nanoid": "def456", "name": "Toons"}],
    "all-channels.json": [{"nanoid": "not-a-real-channel"}],
}


class FakeClock:
    """Manually advanced replacement for ``time.monotonic``."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """In-memory TV Garden repository served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.countries_metadata = copy.deepcopy(COUNTRIES_METADATA)
        self.country_files = copy.deepcopy(COUNTRY_FILES)
        self.category_files = copy.deepcopy(CATEGORY_FILES)
        self.failures: dict[str, int] = {}
        self.malformed: set[str] = set()
        self.gate: asyncio.Event | None = None
        self.gated_path = "/categories"
        self.reached_gate: asyncio.Event | None = None
        self.requests: list[str] = []

    def count(self, suffix: str) -> int:
        return sum(1 for url in self.requests if url.endswith(suffix))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)

        if self.gate is not None and url.endswith(self.gated_path):
            if self.reached_gate is not None:
                self.reached_gate.set()
            await self.gate.wait()

        for suffix, status in self.failures.items():
            if url.endswith(suffix):
                return httpx.Response(status, json={"message": "failure"})
        for suffix in self.malformed:
            if url.endswith(suffix):
                return httpx.Response(200, text="<html>not json</html>")

        if url == f"{RAW_URL}/countries_metadata.json":
            return httpx.Response(200, json=self.countries_metadata)
        if url == f"{API_URL}/countries":
            return httpx.Response(200, json=self._listing(self.country_files))
        if url == f"{API_URL}/categories":
            return httpx.Response(200, json=self._listing(self.category_files))
        for directory, files in (
            ("countries", self.country_files),
            ("categories", self.category_files),
        ):
            prefix = f"{RAW_URL}/{directory}/"
            if url.startswith(prefix) and url[len(prefix):] in files:
                return httpx.Response(200, json=files[url[len(prefix):]])
        return httpx.Response(404, json={"message": "Not Found"})

    @staticmethod
    def _listing(files: dict[str, Any]) -> list[dict[str, Any]]:
        return [
            {"name": name, "path": f"channels/raw/{name}", "type": "file"}
            for name in files
        ]

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object pointed at the fake upstream."""

    base: dict[str, Any] = {
        "SOURCE_RAW_URL": RAW_URL,
        "SOURCE_API_URL": API_URL,
        "SITE_URL": "https://tv.garden",
        "REFRESH_MODE": "lazy",
        "CACHE_TTL": 3600,
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_settings():
    return build_settings


class StaticCache(CatalogCache):
    """Cache stub that always serves the same snapshot."""

    def __init__(self, snapshot: Snapshot) -> None:
        # Deliberately skip super().__init__ to avoid touching the network.
        self._snapshot = snapshot
        self.ensure_calls = 0
        self.last_error = None

    async def ensure_fresh(self) -> Snapshot:  # type: ignore[override]
        self.ensure_calls += 1
        return self._snapshot

    def is_stale(self, snapshot: Snapshot | None = None) -> bool:  # type: ignore[override]
        return False


SAMPLE_SNAPSHOT = Snapshot(
    countries={"us": "United States", "de": "Germany"},
    catalogs={"us": ("abc123", "def456", "ghi789"), "de": ("jkl012", "mno345")},
    channels={
        "abc123": Channel(id="abc123", name="News1", country="us", category="news"),
        "def456": Channel(
            id="def456",
            name="Toons",
            country="us",
            language="eng",
            playback_urls=("https://cdn.example.com/toons.m3u8",),
            alternate_urls=(
                "https://www.youtube-nocookie.com/embed/dQw4w9WgXcQ",
                "https://www.youtube.com/embed/live_stream?channel=UCknLrEdhRCp1aegoMqRaCZg",
            ),
            category="kids",
        ),
        "ghi789": Channel(id="ghi789", name="Weather Now", country="us"),
        "jkl012": Channel(id="jkl012", name="Nachrichten", country="de", category="news"),
        "mno345": Channel(id="mno345", name="Kanal Zwei", country="de", category="news"),
    },
    refreshed_at=0.0,
    version=1,
)


@pytest.fixture
def sample_snapshot() -> Snapshot:
    return SAMPLE_SNAPSHOT


@pytest.fixture
def make_service():
    """Return a factory building a catalog service over a fixed snapshot."""

    def factory(snapshot: Snapshot = SAMPLE_SNAPSHOT) -> CatalogService:
        return CatalogService(build_settings(), StaticCache(snapshot))

    return factory
