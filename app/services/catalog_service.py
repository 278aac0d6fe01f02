"""Catalog and meta assembly over the cached channel directory."""

from __future__ import annotations

import logging
from typing import Any

from ..config import Settings
from ..models import (
    CatalogSummary,
    Channel,
    ItemStub,
    PlayableItem,
    Snapshot,
    StreamTarget,
)
from ..utils import extract_youtube_id, parse_extra, strip_namespace
from .catalog_cache import CatalogCache

logger = logging.getLogger(__name__)


class CatalogIntegrityError(RuntimeError):
    """A published catalog references a channel missing from the snapshot."""


class ItemNotFoundError(KeyError):
    """No channel with the requested id exists in the snapshot."""


class CatalogService:
    """Answers catalog and meta queries from the current snapshot."""

    def __init__(self, settings: Settings, cache: CatalogCache):
        self._settings = settings
        self._cache = cache
        self._site_base = settings.site_base_url

    @property
    def cache(self) -> CatalogCache:
        return self._cache

    async def start(self) -> None:
        await self._cache.start()

    async def stop(self) -> None:
        await self._cache.stop()

    async def list_catalogs(self) -> list[CatalogSummary]:
        """Return one catalog per country along with its genre options."""

        snapshot = await self._cache.ensure_fresh()
        summaries: list[CatalogSummary] = []
        for country_id, channel_ids in snapshot.catalogs.items():
            genres = {
                channel.category
                for channel in self._channels_for(snapshot, country_id, channel_ids)
                if channel.category
            }
            summaries.append(
                CatalogSummary(
                    country_id=country_id,
                    display_name=snapshot.countries.get(country_id)
                    or country_id.upper(),
                    genre_options=tuple(sorted(genres)),
                )
            )
        return summaries

    async def list_items(
        self, country_id: str, genre: str | None = None
    ) -> list[ItemStub]:
        """Return the channels of a country, optionally limited to one genre."""

        snapshot = await self._cache.ensure_fresh()
        channel_ids = snapshot.catalogs.get(country_id)
        if channel_ids is None:
            return []
        return [
            ItemStub(id=channel.id, name=channel.name, category=channel.category)
            for channel in self._channels_for(snapshot, country_id, channel_ids)
            if not genre or channel.category == genre
        ]

    async def resolve_item(self, channel_id: str) -> PlayableItem:
        """Return full playable metadata for a channel.

        Raises :class:`ItemNotFoundError` when the channel is unknown.
        """

        snapshot = await self._cache.ensure_fresh()
        channel = snapshot.channels.get(channel_id)
        if channel is None:
            raise ItemNotFoundError(channel_id)
        return PlayableItem(
            id=channel.id,
            name=channel.name,
            language=channel.language,
            country=channel.country,
            website=f"{self._site_base}/{channel.country}/{channel.id}",
            streams=self._build_streams(channel),
        )

    async def manifest_catalogs(self) -> list[dict[str, Any]]:
        return [summary.to_manifest_entry() for summary in await self.list_catalogs()]

    async def get_catalog_payload(
        self, content_type: str, catalog_id: str, extra: str | None = None
    ) -> dict[str, Any]:
        """Return the Stremio catalog payload for a namespaced country id."""

        country_id = strip_namespace(catalog_id)
        if country_id is None:
            logger.debug("Ignoring catalog request for foreign id %s", catalog_id)
            return {"metas": []}
        genre = parse_extra(extra).get("genre")
        items = await self.list_items(country_id, genre)
        return {"metas": [item.to_meta_preview(content_type) for item in items]}

    async def get_meta_payload(
        self, content_type: str, item_id: str
    ) -> dict[str, Any]:
        """Return the Stremio meta payload for a namespaced channel id."""

        channel_id = strip_namespace(item_id)
        if channel_id is None:
            logger.debug("Ignoring meta request for foreign id %s", item_id)
            return {"meta": {}}
        try:
            item = await self.resolve_item(channel_id)
        except ItemNotFoundError:
            logger.debug("Meta requested for unknown channel %s", channel_id)
            return {"meta": {}}
        return {"meta": item.to_meta(content_type)}

    def status(self) -> dict[str, Any]:
        snapshot = self._cache.snapshot
        return {
            "version": snapshot.version,
            "countries": len(snapshot.catalogs),
            "channels": len(snapshot.channels),
            "stale": self._cache.is_stale(snapshot),
            "lastError": self._cache.last_error,
        }

    @staticmethod
    def _channels_for(
        snapshot: Snapshot, country_id: str, channel_ids: tuple[str, ...]
    ) -> list[Channel]:
        channels: list[Channel] = []
        for channel_id in channel_ids:
            channel = snapshot.channels.get(channel_id)
            if channel is None:
                raise CatalogIntegrityError(
                    f"Catalog {country_id!r} references unknown channel {channel_id!r}"
                )
            channels.append(channel)
        return channels

    @staticmethod
    def _build_streams(channel: Channel) -> tuple[StreamTarget, ...]:
        streams = [StreamTarget(url=url) for url in channel.playback_urls]
        for url in channel.alternate_urls:
            video_id = extract_youtube_id(url)
            if video_id is None:
                logger.debug(
                    "Skipping unrecognised video URL %s for channel %s", url, channel.id
                )
                continue
            streams.append(StreamTarget(yt_id=video_id))
        return tuple(streams)
