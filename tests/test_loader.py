"""
Tests for the bounded asynchronous image loader.
"""

import base64

import pytest
from PIL import Image

from offerkit.errors import LoadError, LoadTimeoutError
from offerkit.loader import ImageLoader, decode_image
from tests.conftest import make_image_bytes


URL = "https://images.test/photo.png"


class TestDecode:

    def test_decodes_png(self):
        image = decode_image(make_image_bytes(size=(30, 20)))
        assert image.size == (30, 20)

    def test_garbage_raises_load_error(self):
        with pytest.raises(LoadError):
            decode_image(b"definitely not an image")


class TestImageLoader:

    @pytest.mark.asyncio
    async def test_loads_over_http(self, image_server):
        image_server.add(URL, make_image_bytes(size=(64, 48)))
        loader = ImageLoader(transport=image_server.transport)

        image = await loader.load(URL)

        assert image.size == (64, 48)
        assert image_server.requests == [URL]

    @pytest.mark.asyncio
    async def test_http_error_is_load_error(self, image_server):
        loader = ImageLoader(transport=image_server.transport)

        with pytest.raises(LoadError) as exc_info:
            await loader.load("https://images.test/missing.png")

        assert exc_info.value.details['status'] == 404

    @pytest.mark.asyncio
    async def test_non_image_response_is_load_error(self, image_server):
        image_server.add(URL, b"<html>blocked</html>", content_type='text/html')
        loader = ImageLoader(transport=image_server.transport)

        with pytest.raises(LoadError):
            await loader.load(URL)

    @pytest.mark.asyncio
    async def test_timeout(self, image_server):
        image_server.add(URL, make_image_bytes(), delay=0.5)
        loader = ImageLoader(timeout_ms=5000, transport=image_server.transport)

        with pytest.raises(LoadTimeoutError) as exc_info:
            await loader.load(URL, timeout_ms=50)

        assert exc_info.value.details['timeout_ms'] == 50

    @pytest.mark.asyncio
    async def test_empty_url(self):
        with pytest.raises(LoadError):
            await ImageLoader().load("")

    @pytest.mark.asyncio
    async def test_data_url(self):
        payload = base64.b64encode(make_image_bytes(size=(8, 8))).decode()
        image = await ImageLoader().load(f"data:image/png;base64,{payload}")
        assert image.size == (8, 8)

    @pytest.mark.asyncio
    async def test_local_path(self, temp_work_dir):
        path = temp_work_dir / "logo.png"
        path.write_bytes(make_image_bytes(size=(10, 12)))

        image = await ImageLoader().load(str(path))
        assert image.size == (10, 12)

        with pytest.raises(LoadError):
            await ImageLoader().load(str(temp_work_dir / "absent.png"))

    @pytest.mark.asyncio
    async def test_load_source_accepts_images_and_bytes(self):
        loader = ImageLoader()
        original = Image.new('RGB', (5, 5))

        assert await loader.load_source(original) is original
        decoded = await loader.load_source(make_image_bytes(size=(7, 7)))
        assert decoded.size == (7, 7)
