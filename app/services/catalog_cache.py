"""Time-limited in-memory cache of the TV Garden channel directory."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import replace
from typing import Any, Callable, Coroutine

from ..config import Settings
from ..models import Channel, ChannelRecord, Snapshot
from ..utils import strip_json_suffix
from .tvgarden import (
    RefreshError,
    SourceFormatError,
    SourceIntegrityError,
    TVGardenClient,
)

logger = logging.getLogger(__name__)

ALL_CHANNELS_FILE = "all-channels.json"


class CatalogCache:
    """Owns the published snapshot and is the only code that replaces it.

    Readers call :meth:`ensure_fresh` and work with the snapshot it returns.
    A refresh builds a complete new snapshot off to the side and publishes it
    with a single assignment, so a reader never sees tables from two
    different refreshes. Only one refresh runs at a time; callers arriving
    while it runs await the same task.
    """

    def __init__(
        self,
        settings: Settings,
        client: TVGardenClient,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings
        self._client = client
        self._clock = clock
        self._ttl = settings.cache_ttl_seconds
        self._retry_delay = settings.refresh_retry_seconds
        self._snapshot = Snapshot()
        self._inflight: asyncio.Task[bool] | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self.last_error: str | None = None

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def is_stale(self, snapshot: Snapshot | None = None) -> bool:
        current = snapshot if snapshot is not None else self._snapshot
        if current.refreshed_at is None:
            return True
        return self._clock() - current.refreshed_at >= self._ttl

    def seconds_until_stale(self) -> float:
        """Return how long the timer loop may sleep before the next attempt."""

        refreshed_at = self._snapshot.refreshed_at
        if refreshed_at is None:
            return float(self._retry_delay)
        remaining = self._ttl - (self._clock() - refreshed_at)
        if remaining <= 0:
            return float(self._retry_delay)
        return remaining

    async def start(self) -> None:
        """Launch the background refresh loop when running in timer mode."""

        if self._settings.refresh_mode != "timer":
            return
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def stop(self) -> None:
        """Stop the background refresh loop and abandon any running refresh."""

        for task in (self._refresh_task, self._inflight):
            if task is None or task.done():
                continue
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._refresh_task = None
        self._inflight = None

    async def ensure_fresh(self) -> Snapshot:
        """Refresh the snapshot if it has expired and return the current one.

        Upstream failures are logged and leave the previous snapshot in place.
        """

        if not self.is_stale():
            return self._snapshot
        await self._join_refresh()
        return self._snapshot

    async def refresh(self) -> bool:
        """Run a refresh attempt regardless of staleness."""

        return await self._join_refresh()

    async def _join_refresh(self) -> bool:
        task = self._inflight
        if task is None or task.done():
            task = asyncio.create_task(self._run_refresh())
            self._inflight = task
            task.add_done_callback(self._clear_inflight)
        # Shielded so a cancelled request does not abort the shared refresh.
        return await asyncio.shield(task)

    def _clear_inflight(self, task: asyncio.Task[bool]) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _refresh_loop(self) -> None:
        while True:
            try:
                await self.ensure_fresh()
            except Exception as exc:  # pragma: no cover - background safety net
                logger.exception("Scheduled refresh failed: %s", exc)
            await asyncio.sleep(self.seconds_until_stale())

    async def _run_refresh(self) -> bool:
        base = self._snapshot
        logger.info("Refreshing TV Garden channel directory")
        try:
            candidate = await self._build_snapshot(base.version + 1)
        except RefreshError as exc:
            self.last_error = str(exc)
            logger.warning(
                "Channel directory refresh failed: %s",
                exc,
                exc_info=self._settings.dev_logging,
            )
            return False

        if self._snapshot.version != base.version:
            logger.warning(
                "Discarding refresh v%s: snapshot moved on to v%s",
                candidate.version,
                self._snapshot.version,
            )
            return False

        self._snapshot = candidate
        self.last_error = None
        logger.info(
            "Published channel directory v%s: %s countries, %s catalogs, %s channels",
            candidate.version,
            len(candidate.countries),
            len(candidate.catalogs),
            len(candidate.channels),
        )
        return True

    async def _build_snapshot(self, version: int) -> Snapshot:
        countries = await self._client.fetch_countries()
        catalogs, channels = await self._load_countries()
        channels = await self._apply_categories(channels)

        snapshot = Snapshot(
            countries=countries,
            catalogs=catalogs,
            channels=channels,
            refreshed_at=self._clock(),
            version=version,
        )
        dangling = snapshot.dangling_references()
        if dangling:
            country, channel_id = dangling[0]
            raise SourceIntegrityError(
                f"Catalog {country!r} references unknown channel {channel_id!r}"
                f" ({len(dangling)} dangling references)"
            )
        return snapshot

    async def _load_countries(
        self,
    ) -> tuple[dict[str, tuple[str, ...]], dict[str, Channel]]:
        filenames = await self._client.list_country_files()
        codes = [self._stem(filename).lower() for filename in filenames]
        batches = await self._fetch_all(
            [self._client.fetch_country_channels(filename) for filename in filenames]
        )

        catalogs: dict[str, list[str]] = {}
        channels: dict[str, Channel] = {}
        for code, records in zip(codes, batches):
            channel_ids = catalogs.setdefault(code, [])
            for record in records:
                channel_ids.append(record.id)
                channels[record.id] = record.to_channel(code)
        return (
            {code: tuple(channel_ids) for code, channel_ids in catalogs.items()},
            channels,
        )

    async def _apply_categories(
        self, channels: dict[str, Channel]
    ) -> dict[str, Channel]:
        filenames = [
            filename
            for filename in await self._client.list_category_files()
            if filename != ALL_CHANNELS_FILE
        ]
        categories = [self._stem(filename) for filename in filenames]
        batches = await self._fetch_all(
            [self._client.fetch_category_channels(filename) for filename in filenames]
        )

        for category, records in zip(categories, batches):
            for record in records:
                channel = channels.get(record.id)
                if channel is None:
                    raise SourceIntegrityError(
                        f"Category {category!r} references unknown channel {record.id!r}"
                    )
                channels[record.id] = replace(channel, category=category)
        return channels

    @staticmethod
    async def _fetch_all(
        fetches: list[Coroutine[Any, Any, list[ChannelRecord]]],
    ) -> list[list[ChannelRecord]]:
        """Run fetches concurrently; the first failure cancels the rest."""

        tasks = [asyncio.create_task(fetch) for fetch in fetches]
        if not tasks:
            return []
        try:
            done, pending = await asyncio.wait(
                tasks, return_when=asyncio.FIRST_EXCEPTION
            )
            if pending:
                failed = next(task for task in done if task.exception() is not None)
                raise failed.exception()  # type: ignore[misc]
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        return [task.result() for task in tasks]

    @staticmethod
    def _stem(filename: str) -> str:
        try:
            return strip_json_suffix(filename)
        except ValueError as exc:
            raise SourceFormatError(str(exc)) from exc
