"""Utility helpers for the TVGardenio service."""

from __future__ import annotations

import re
from urllib.parse import parse_qs


ID_PREFIX = "tvgarden:"
JSON_SUFFIX = ".json"

# Video ids are 10-11 url-safe characters closing the URL, after "/" or "=".
YOUTUBE_ID_RE = re.compile(r"[/=]([A-Za-z0-9_-]{10,11})/?$")


def add_namespace(token: str) -> str:
    """Return the externally visible id for an internal token."""

    return f"{ID_PREFIX}{token}"


def strip_namespace(external_id: str | None) -> str | None:
    """Return the internal token, or ``None`` when the id is not ours."""

    if not external_id or not external_id.startswith(ID_PREFIX):
        return None
    token = external_id[len(ID_PREFIX):]
    return token or None


def strip_json_suffix(filename: str) -> str:
    """Return ``filename`` without its ``.json`` suffix.

    Raises ``ValueError`` when the suffix is missing or nothing precedes it.
    """

    if not filename.endswith(JSON_SUFFIX):
        raise ValueError(f"Expected a {JSON_SUFFIX} file name, got {filename!r}")
    stem = filename[: -len(JSON_SUFFIX)]
    if not stem:
        raise ValueError(f"Empty file name stem in {filename!r}")
    return stem


def extract_youtube_id(url: str) -> str | None:
    """Return the YouTube video id that ends ``url``, if there is one."""

    if not url:
        return None
    match = YOUTUBE_ID_RE.search(url.strip())
    if not match:
        return None
    return match.group(1)


def parse_extra(raw: str | None) -> dict[str, str]:
    """Parse a Stremio ``extra`` path segment such as ``genre=news``."""

    if not raw:
        return {}
    parsed = parse_qs(raw, keep_blank_values=False)
    return {key: values[-1] for key, values in parsed.items() if values}
