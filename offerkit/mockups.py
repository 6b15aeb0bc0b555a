"""
Mockup generation workflow.

Validates an uploaded logo, stores it, composites it onto the product photo
and stores the result. The logo itself is required; if only the mockup
cannot be stored the logo URL is handed back in its place.
"""

import asyncio
import io
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Iterable, Optional

from PIL import Image, UnidentifiedImageError
from loguru import logger

from offerkit.compositor import ImageCompositor
from offerkit.errors import FileTooLargeError, InvalidImageFormatError, PersistError
from offerkit.loader import ImageSource
from offerkit.models import CompositeResult, PlacementPreset, ProductRecord, StorageKeyPolicy
from offerkit.storage import BlobStore


MAX_LOGO_SIZE = 5 * 1024 * 1024
ALLOWED_LOGO_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".gif")


def epoch_millis() -> int:
    return int(time.time() * 1000)


def validate_logo_upload(filename: str, content_type: str, data: bytes,
                         max_size: int = MAX_LOGO_SIZE,
                         allowed_extensions: Iterable[str] = ALLOWED_LOGO_EXTENSIONS) -> str:
    """
    Reject a logo upload before any storage or canvas work.

    Returns the file extension to store the logo under.
    """
    if not content_type or not content_type.startswith('image/'):
        raise InvalidImageFormatError(filename, content_type)

    if len(data) > max_size:
        raise FileTooLargeError(filename, len(data) / (1024 * 1024), max_size / (1024 * 1024))

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning(f"Logo {filename} failed to decode: {e}")
        raise InvalidImageFormatError(filename, content_type)

    ext = PurePosixPath(filename or '').suffix.lstrip('.').lower()
    if not ext:
        ext = content_type.split('/', 1)[1].split('+', 1)[0].lower() or 'png'

    allowed = {e.lower() if e.startswith('.') else f".{e.lower()}" for e in allowed_extensions}
    if f".{ext}" not in allowed:
        logger.warning(f"Logo {filename} has unsupported type .{ext}")
        raise InvalidImageFormatError(filename, content_type)
    return ext


def logo_file_name(product_id: str, ext: str, millis: int) -> str:
    return f"logo_{product_id}_{millis}.{ext}"


def mockup_file_name(product_id: str, policy: StorageKeyPolicy, millis: int) -> str:
    if policy == StorageKeyPolicy.OVERWRITE_BY_PRODUCT:
        return f"{product_id}-mockup.png"
    return f"mockup_{product_id}_{millis}.png"


@dataclass(frozen=True)
class MockupResult:
    logo_url: str
    mockup_url: str
    degraded: bool
    composite: Optional[CompositeResult] = None

    def to_dict(self):
        return {'logo_url': self.logo_url, 'mockup_url': self.mockup_url, 'degraded': self.degraded}


class MockupService:
    """Stores logos and the mockups generated from them."""

    def __init__(self,
                 compositor: ImageCompositor,
                 store: BlobStore,
                 logo_bucket: str = "Logos",
                 mockup_bucket: str = "Mockups",
                 max_logo_size: int = MAX_LOGO_SIZE,
                 allowed_extensions: Iterable[str] = ALLOWED_LOGO_EXTENSIONS,
                 clock: Callable[[], int] = epoch_millis):
        self.compositor = compositor
        self.store = store
        self.logo_bucket = logo_bucket
        self.mockup_bucket = mockup_bucket
        self.max_logo_size = max_logo_size
        self.allowed_extensions = tuple(allowed_extensions)
        self.clock = clock

    async def upload_logo(self, product_id: str, filename: str, content_type: str, data: bytes) -> str:
        """Validate and store a logo; returns its public URL."""
        ext = validate_logo_upload(filename, content_type, data, self.max_logo_size, self.allowed_extensions)
        name = logo_file_name(product_id, ext, self.clock())

        url = await asyncio.to_thread(
            self.store.upload_and_get_url, self.logo_bucket, name, data, content_type, False
        )
        logger.info(f"Stored logo for {product_id} as {self.logo_bucket}/{name}")
        return url

    async def create_mockup(self,
                            product: ProductRecord,
                            logo_url: str,
                            placement=None,
                            policy=None,
                            logo: Optional[ImageSource] = None,
                            overlay_size: int = None,
                            knockout: bool = False) -> MockupResult:
        """
        Composite the logo onto the product photo and store the result.

        ``logo`` may carry the already uploaded bytes so they are not fetched
        again; otherwise ``logo_url`` is loaded. Overlay load failures
        propagate and nothing is stored.
        """
        policy = StorageKeyPolicy.parse(policy)
        placement = PlacementPreset.parse(placement)

        composite = await self.compositor.composite(
            product.image_url,
            logo if logo is not None else logo_url,
            placement,
            overlay_size=overlay_size,
            knockout=knockout,
        )

        name = mockup_file_name(product.id, policy, self.clock())
        try:
            url = await asyncio.to_thread(
                self.store.upload_and_get_url,
                self.mockup_bucket, name, composite.image_bytes, composite.content_type,
                policy == StorageKeyPolicy.OVERWRITE_BY_PRODUCT,
            )
        except PersistError as e:
            logger.warning(f"Could not store mockup for {product.id}, falling back to logo URL: {e}")
            return MockupResult(logo_url=logo_url, mockup_url=logo_url, degraded=True, composite=composite)

        logger.info(f"Stored mockup for {product.id} as {self.mockup_bucket}/{name} ({policy.value})")
        return MockupResult(logo_url=logo_url, mockup_url=url, degraded=False, composite=composite.with_url(url))

    async def process_upload(self, product: ProductRecord, filename: str, content_type: str, data: bytes,
                             placement=None, policy=None, knockout: bool = False) -> MockupResult:
        """Full upload flow: store the logo, then build the mockup from the same bytes."""
        logo_url = await self.upload_logo(product.id, filename, content_type, data)
        return await self.create_mockup(product, logo_url, placement, policy, logo=data, knockout=knockout)
