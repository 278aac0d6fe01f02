"""Models describing upstream records, the cached snapshot and Stremio payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .utils import add_namespace

DEFAULT_TYPE = "TVGarden"
RELEASED_EPOCH = "1970-01-01T00:00:00.000Z"


class CountryRecord(BaseModel):
    """One entry of the upstream ``countries_metadata.json`` document."""

    model_config = ConfigDict(extra="ignore")

    country: str = ""

    @field_validator("country", mode="before")
    @classmethod
    def _none_to_empty(cls, value: object) -> object:
        return "" if value is None else value


class DirectoryEntry(BaseModel):
    """A file listed by the GitHub contents API."""

    model_config = ConfigDict(extra="ignore")

    name: str
    type: str = "file"


class ChannelRecord(BaseModel):
    """A channel as published in the per-country and per-category files."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("nanoid", "id"), min_length=1)
    name: str = ""
    country: str = ""
    language: str = ""
    playback_urls: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("iptv_urls", "playback_urls"),
    )
    alternate_urls: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("youtube_urls", "alternate_urls"),
    )

    @field_validator("name", "country", "language", mode="before")
    @classmethod
    def _coerce_text(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("playback_urls", "alternate_urls", mode="before")
    @classmethod
    def _coerce_urls(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value else []
        return value

    def to_channel(self, fallback_country: str) -> "Channel":
        return Channel(
            id=self.id,
            name=self.name,
            country=(self.country or fallback_country).lower(),
            language=self.language,
            playback_urls=tuple(url for url in self.playback_urls if url),
            alternate_urls=tuple(url for url in self.alternate_urls if url),
        )


@dataclass(frozen=True, slots=True)
class Channel:
    """A playable channel stored in the snapshot."""

    id: str
    name: str
    country: str
    language: str = ""
    playback_urls: tuple[str, ...] = ()
    alternate_urls: tuple[str, ...] = ()
    category: str | None = None


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Countries, catalogs and channels as of one successful refresh."""

    countries: Mapping[str, str] = field(default_factory=dict)
    catalogs: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    channels: Mapping[str, Channel] = field(default_factory=dict)
    refreshed_at: float | None = None
    version: int = 0

    @property
    def is_empty(self) -> bool:
        return self.refreshed_at is None

    def dangling_references(self) -> list[tuple[str, str]]:
        """Return ``(country, channel_id)`` pairs missing from the channel table."""

        return [
            (country, channel_id)
            for country, channel_ids in self.catalogs.items()
            for channel_id in channel_ids
            if channel_id not in self.channels
        ]


@dataclass(frozen=True, slots=True)
class CatalogSummary:
    """A country catalog with the genres available inside it."""

    country_id: str
    display_name: str
    genre_options: tuple[str, ...] = ()

    def to_manifest_entry(self, content_type: str = DEFAULT_TYPE) -> dict[str, Any]:
        return {
            "type": content_type,
            "id": add_namespace(self.country_id),
            "name": self.display_name,
            "extra": [{"name": "genre", "options": list(self.genre_options)}],
        }


@dataclass(frozen=True, slots=True)
class ItemStub:
    """Catalog listing entry for one channel."""

    id: str
    name: str
    category: str | None = None

    def to_meta_preview(self, content_type: str) -> dict[str, Any]:
        return {"id": add_namespace(self.id), "type": content_type, "name": self.name}


@dataclass(frozen=True, slots=True)
class StreamTarget:
    """A single playable source, either a direct URL or a YouTube video."""

    url: str | None = None
    yt_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        if self.yt_id:
            return {"ytId": self.yt_id}
        return {"url": self.url, "behaviorHints": {"notWebReady": True}}


@dataclass(frozen=True, slots=True)
class PlayableItem:
    """Full metadata for one channel, ready to be served as a Stremio meta."""

    id: str
    name: str
    language: str
    country: str
    website: str
    streams: tuple[StreamTarget, ...] = ()

    def to_meta(self, content_type: str) -> dict[str, Any]:
        """Return the Stremio meta object with a single live video."""

        meta_id = add_namespace(self.id)
        video_id = f"{meta_id}:1:1"
        return {
            "id": meta_id,
            "type": content_type,
            "name": self.name,
            "videos": [
                {
                    "id": video_id,
                    "title": self.name,
                    "released": RELEASED_EPOCH,
                    "streams": [stream.to_payload() for stream in self.streams],
                }
            ],
            "language": self.language,
            "country": self.country,
            "website": self.website,
            "behaviorHints": {"defaultVideoId": video_id},
        }
