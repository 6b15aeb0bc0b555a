"""
Asynchronous image loading with a bounded wait.

Every load is an awaited fetch-and-decode raced against a timer. A load that
outlives its bound raises LoadTimeoutError; a failed fetch, a response that
is not an image, or undecodable bytes raise LoadError. Each call opens its
own HTTP client so concurrent loads never share state.
"""

import asyncio
import base64
import io
from pathlib import Path
from typing import Optional, Union

import httpx
from PIL import Image, UnidentifiedImageError
from loguru import logger

from offerkit.errors import LoadError, LoadTimeoutError


DEFAULT_TIMEOUT_MS = 5000
USER_AGENT = "Mozilla/5.0 (compatible; OfferKit/1.0)"

ImageSource = Union[str, bytes, Image.Image]


def decode_image(data: bytes, source: str = "<bytes>") -> Image.Image:
    """Decode raw bytes into a fully loaded PIL image."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise LoadError(
            f"Could not decode image from {source}: {e}",
            details={'source': source, 'size_bytes': len(data)}
        )
    return image


def _decode_data_url(url: str) -> bytes:
    header, _, payload = url.partition(',')
    if ';base64' not in header:
        raise LoadError("Only base64 data URLs are supported", details={'source': header})
    try:
        return base64.b64decode(payload)
    except (ValueError, TypeError) as e:
        raise LoadError(f"Malformed data URL: {e}", details={'source': header})


class ImageLoader:
    """Fetches and decodes images from URLs, data URLs or local paths."""

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS, transport: httpx.AsyncBaseTransport = None):
        self.timeout_ms = timeout_ms
        self.transport = transport

    async def load(self, url: str, timeout_ms: Optional[int] = None) -> Image.Image:
        """Load and decode ``url`` within ``timeout_ms`` milliseconds."""
        if not url:
            raise LoadError("No image URL given")

        bound = timeout_ms if timeout_ms is not None else self.timeout_ms
        try:
            return await asyncio.wait_for(self._load(url), timeout=bound / 1000)
        except asyncio.TimeoutError:
            logger.warning(f"Image load timed out after {bound}ms: {url[:120]}")
            raise LoadTimeoutError(url[:200], bound)

    async def load_source(self, source: ImageSource, timeout_ms: Optional[int] = None) -> Image.Image:
        """Accept an already decoded image, raw bytes, or anything ``load`` takes."""
        if isinstance(source, Image.Image):
            return source
        if isinstance(source, (bytes, bytearray)):
            return await asyncio.to_thread(decode_image, bytes(source))
        return await self.load(source, timeout_ms)

    async def _load(self, url: str) -> Image.Image:
        data = await self._read(url)
        return await asyncio.to_thread(decode_image, data, url[:120])

    async def _read(self, url: str) -> bytes:
        if url.startswith('data:'):
            return _decode_data_url(url)

        if url.startswith(('http://', 'https://')):
            return await self._fetch(url)

        path = Path(url[len('file://'):] if url.startswith('file://') else url)
        if not path.is_file():
            raise LoadError(f"Image file not found: {path}", details={'path': str(path)})
        return await asyncio.to_thread(path.read_bytes)

    async def _fetch(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                follow_redirects=True,
                headers={'User-Agent': USER_AGENT},
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise LoadError(
                f"Image request failed with status {e.response.status_code}",
                details={'url': url, 'status': e.response.status_code}
            )
        except httpx.HTTPError as e:
            raise LoadError(f"Image request failed: {e}", details={'url': url})

        content_type = response.headers.get('content-type', '')
        if content_type and not content_type.startswith(('image/', 'application/octet-stream')):
            # pixels we cannot read back must not become a blank region downstream
            raise LoadError(
                f"Source did not return an image ({content_type})",
                details={'url': url, 'content_type': content_type}
            )

        logger.debug(f"Fetched {len(response.content):,} bytes from {url[:120]}")
        return response.content
