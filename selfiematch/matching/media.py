"""Event media collections and asynchronous image loading."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Union
from urllib.parse import unquote, urlparse

import httpx
import numpy as np

from selfiematch.io_utils import decode_image
from selfiematch.types import MEDIA_IMAGE, MediaItem

LOGGER = logging.getLogger("selfiematch.matching.media")


class ImageLoader(Protocol):
    async def load(self, item: MediaItem) -> np.ndarray:
        ...


def media_item_from_dict(entry: Mapping[str, Any], index: int = 0) -> MediaItem:
    url = entry.get("url")
    if not url:
        raise ValueError(f"Media entry {index} has no url")
    item_id = entry.get("id") or entry.get("_id") or entry.get("publicId") or str(index)
    size = entry.get("size")
    return MediaItem(
        id=str(item_id),
        url=str(url),
        type=str(entry.get("type") or MEDIA_IMAGE).lower(),
        original_name=entry.get("originalName") or entry.get("original_name"),
        size=int(size) if size is not None else None,
        format=entry.get("format"),
    )


def parse_media_items(payload: Union[Mapping[str, Any], List[Mapping[str, Any]]]) -> List[MediaItem]:
    """Parse an event document (``mediaFiles`` key) or a bare list of media entries."""
    if isinstance(payload, Mapping):
        entries = payload.get("mediaFiles") or payload.get("media_files") or []
    else:
        entries = payload
    items: List[MediaItem] = []
    for index, entry in enumerate(entries):
        try:
            items.append(media_item_from_dict(entry, index))
        except ValueError as exc:
            LOGGER.warning("Skipping media entry: %s", exc)
    return items


def filter_images(items: Iterable[MediaItem]) -> List[MediaItem]:
    return [item for item in items if item.is_image]


def _local_path(url: str, base_dir: Optional[Path]) -> Optional[Path]:
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        return None
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    path = Path(url)
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path


class HttpImageLoader:
    """Fetches media by URL with httpx; plain paths and file:// URLs are read from disk."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        base_dir: Optional[Path] = None,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(follow_redirects=True, timeout=timeout)
        self.base_dir = base_dir

    async def load(self, item: MediaItem) -> np.ndarray:
        path = _local_path(item.url, self.base_dir)
        if path is not None:
            data = await asyncio.to_thread(path.read_bytes)
        else:
            response = await self.client.get(item.url)
            response.raise_for_status()
            data = response.content
        return await asyncio.to_thread(decode_image, data)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "HttpImageLoader":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def media_summary(items: Iterable[MediaItem]) -> Dict[str, int]:
    """Count media entries per type."""
    counts: Dict[str, int] = {}
    for item in items:
        counts[item.type] = counts.get(item.type, 0) + 1
    return counts
