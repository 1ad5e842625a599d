import cv2
import httpx
import numpy as np
import pytest

from selfiematch.io_utils import ImageDecodeError
from selfiematch.matching.media import (
    HttpImageLoader,
    filter_images,
    media_summary,
    parse_media_items,
)
from selfiematch.types import MediaItem


def encoded_png(value: int = 120) -> bytes:
    ok, buffer = cv2.imencode(".png", np.full((12, 16, 3), value, dtype=np.uint8))
    assert ok
    return buffer.tobytes()


def test_parse_event_document():
    payload = {
        "mediaFiles": [
            {"_id": "m1", "url": "https://cdn.example.com/a.jpg", "type": "image", "originalName": "a.jpg"},
            {"publicId": "m2", "url": "https://cdn.example.com/b.mp4", "type": "VIDEO", "size": "2048"},
            {"id": "m3", "type": "image"},
        ]
    }
    items = parse_media_items(payload)
    assert [item.id for item in items] == ["m1", "m2"]
    assert items[0].original_name == "a.jpg"
    assert items[1].type == "video"
    assert items[1].size == 2048


def test_parse_bare_list_defaults_to_images():
    items = parse_media_items([{"url": "photos/1.jpg"}, {"url": "photos/2.jpg"}])
    assert [item.id for item in items] == ["0", "1"]
    assert all(item.is_image for item in items)


def test_filter_and_summary():
    items = [
        MediaItem(id="1", url="a.jpg"),
        MediaItem(id="2", url="b.mp4", type="video"),
        MediaItem(id="3", url="c.pdf", type="document"),
        MediaItem(id="4", url="d.jpg"),
    ]
    assert [item.id for item in filter_images(items)] == ["1", "4"]
    assert media_summary(items) == {"image": 2, "video": 1, "document": 1}


@pytest.mark.asyncio
async def test_http_loader_fetches_and_decodes():
    requested = []

    def handler(request):
        requested.append(str(request.url))
        return httpx.Response(200, content=encoded_png(), headers={"content-type": "image/png"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        loader = HttpImageLoader(client=client)
        image = await loader.load(MediaItem(id="1", url="https://cdn.example.com/1.png"))

    assert image.shape == (12, 16, 3)
    assert int(image[0, 0, 0]) == 120
    assert requested == ["https://cdn.example.com/1.png"]


@pytest.mark.asyncio
async def test_http_loader_raises_on_missing_media():
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    async with httpx.AsyncClient(transport=transport) as client:
        loader = HttpImageLoader(client=client)
        with pytest.raises(httpx.HTTPStatusError):
            await loader.load(MediaItem(id="1", url="https://cdn.example.com/gone.jpg"))


@pytest.mark.asyncio
async def test_http_loader_rejects_undecodable_payload():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html></html>"))
    async with httpx.AsyncClient(transport=transport) as client:
        loader = HttpImageLoader(client=client)
        with pytest.raises(ImageDecodeError):
            await loader.load(MediaItem(id="1", url="https://cdn.example.com/page.jpg"))


@pytest.mark.asyncio
async def test_loader_reads_relative_and_file_urls(tmp_path):
    (tmp_path / "local.png").write_bytes(encoded_png(60))
    async with HttpImageLoader(base_dir=tmp_path) as loader:
        relative = await loader.load(MediaItem(id="1", url="local.png"))
        absolute = await loader.load(MediaItem(id="2", url=(tmp_path / "local.png").as_uri()))
    assert int(relative[0, 0, 0]) == 60
    assert np.array_equal(relative, absolute)
