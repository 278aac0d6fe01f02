"""Client for the TV Garden channel list published on GitHub."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from ..config import Settings
from ..models import ChannelRecord, CountryRecord, DirectoryEntry

logger = logging.getLogger(__name__)

COUNTRIES_METADATA_FILE = "countries_metadata.json"
COUNTRIES_DIR = "countries"
CATEGORIES_DIR = "categories"

_COUNTRY_METADATA = TypeAdapter(dict[str, CountryRecord])
_DIRECTORY = TypeAdapter(list[DirectoryEntry])
_CHANNELS = TypeAdapter(list[ChannelRecord])


class RefreshError(RuntimeError):
    """Base class for failures that abort a catalog refresh."""


class SourceFetchError(RefreshError):
    """The upstream source could not be reached or answered with an error."""


class SourceFormatError(RefreshError):
    """The upstream source returned a document we cannot interpret."""


class SourceIntegrityError(RefreshError):
    """Upstream documents reference channels that do not exist."""


class TVGardenClient:
    """Thin wrapper around the raw file host and the contents API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client
        self._raw_base = str(settings.source_raw_url).rstrip("/")
        self._api_base = str(settings.source_api_url).rstrip("/")
        self._semaphore = asyncio.Semaphore(settings.fetch_concurrency)

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": f"{self._settings.app_name} (tvgardenio)",
        }

    async def fetch_countries(self) -> dict[str, str]:
        """Return a mapping of lowercase country code to display name."""

        payload = await self._get_json(f"{self._raw_base}/{COUNTRIES_METADATA_FILE}")
        records = self._validate(_COUNTRY_METADATA, payload, COUNTRIES_METADATA_FILE)
        return {
            code.lower(): record.country or code.upper()
            for code, record in records.items()
        }

    async def list_country_files(self) -> list[str]:
        return await self._list_directory(COUNTRIES_DIR)

    async def list_category_files(self) -> list[str]:
        return await self._list_directory(CATEGORIES_DIR)

    async def fetch_country_channels(self, filename: str) -> list[ChannelRecord]:
        return await self._fetch_channels(f"{COUNTRIES_DIR}/{filename}")

    async def fetch_category_channels(self, filename: str) -> list[ChannelRecord]:
        return await self._fetch_channels(f"{CATEGORIES_DIR}/{filename}")

    async def _list_directory(self, directory: str) -> list[str]:
        payload = await self._get_json(f"{self._api_base}/{directory}")
        entries = self._validate(_DIRECTORY, payload, directory)
        return [entry.name for entry in entries if entry.type == "file"]

    async def _fetch_channels(self, path: str) -> list[ChannelRecord]:
        payload = await self._get_json(f"{self._raw_base}/{path}")
        return self._validate(_CHANNELS, payload, path)

    async def _get_json(self, url: str) -> Any:
        try:
            async with self._semaphore:
                response = await self._client.get(url, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceFetchError(
                f"{url} answered with HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceFetchError(
                f"Request to {url} failed: {exc.__class__.__name__}"
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise SourceFormatError(f"{url} did not return valid JSON") from exc

    @staticmethod
    def _validate(adapter: TypeAdapter[Any], payload: Any, source: str) -> Any:
        try:
            return adapter.validate_python(payload)
        except ValidationError as exc:
            logger.debug("Validation errors for %s: %s", source, exc.errors())
            raise SourceFormatError(
                f"Unexpected document structure in {source}"
            ) from exc
