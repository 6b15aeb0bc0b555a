"""
Mockup compositor for the offer toolkit.

This module handles:
- Drawing a product photo (or a flat neutral fill) onto a fixed canvas
- Placing a logo at one of the named placement presets
- Optional white knock-out of logos exported without transparency
- Encoding the composite as PNG
"""

import asyncio
import io
from typing import Optional, Tuple

import numpy as np
from PIL import Image, ImageColor
from loguru import logger

from offerkit.errors import EncodeError, LoadError
from offerkit.loader import ImageLoader, ImageSource
from offerkit.models import CompositeResult, PlacementPreset


DEFAULT_CANVAS_SIZE = (400, 400)
DEFAULT_OVERLAY_SIZE = 80
DEFAULT_INSET = 20
NEUTRAL_FILL = '#f0f0f0'
KNOCKOUT_THRESHOLD = 240


def placement_origin(placement,
                     canvas_size: Tuple[int, int] = DEFAULT_CANVAS_SIZE,
                     overlay_size: int = DEFAULT_OVERLAY_SIZE,
                     inset: int = DEFAULT_INSET) -> Tuple[int, int]:
    """
    Top-left pixel of the overlay square for a placement preset.

    Corners sit ``inset`` pixels from the canvas edges, center is centred,
    anything unrecognised is top-left. The result is clamped so the square
    never leaves the canvas.
    """
    preset = PlacementPreset.parse(placement)
    width, height = canvas_size
    far_x = width - overlay_size - inset
    far_y = height - overlay_size - inset

    if preset == PlacementPreset.TOP_RIGHT:
        x, y = far_x, inset
    elif preset == PlacementPreset.BOTTOM_LEFT:
        x, y = inset, far_y
    elif preset == PlacementPreset.BOTTOM_RIGHT:
        x, y = far_x, far_y
    elif preset == PlacementPreset.CENTER:
        x, y = (width - overlay_size) // 2, (height - overlay_size) // 2
    else:
        x, y = inset, inset

    x = max(0, min(x, width - overlay_size))
    y = max(0, min(y, height - overlay_size))
    return x, y


def knockout_white(image: Image.Image, threshold: int = KNOCKOUT_THRESHOLD) -> Image.Image:
    """Make near-white pixels transparent."""
    rgba = np.array(image.convert('RGBA'))
    mask = (rgba[:, :, 0] > threshold) & (rgba[:, :, 1] > threshold) & (rgba[:, :, 2] > threshold)
    rgba[mask, 3] = 0
    return Image.fromarray(rgba, 'RGBA')


def encode_png(image: Image.Image) -> bytes:
    """Encode an image losslessly as PNG."""
    try:
        buffer = io.BytesIO()
        image.save(buffer, format='PNG', optimize=True)
        return buffer.getvalue()
    except (OSError, ValueError) as e:
        raise EncodeError(f"Failed to encode composite: {e}", details={'mode': image.mode, 'size': image.size})


class ImageCompositor:
    """Composites a logo onto a product photo."""

    def __init__(self,
                 loader: ImageLoader = None,
                 canvas_size: Tuple[int, int] = DEFAULT_CANVAS_SIZE,
                 overlay_size: int = DEFAULT_OVERLAY_SIZE,
                 inset: int = DEFAULT_INSET,
                 fill_color: str = NEUTRAL_FILL):
        self.loader = loader or ImageLoader()
        self.canvas_size = tuple(canvas_size)
        self.overlay_size = overlay_size
        self.inset = inset
        self.fill_color = ImageColor.getrgb(fill_color)

    def create_canvas(self, canvas_size: Tuple[int, int]) -> Image.Image:
        """New RGBA canvas in the neutral fill colour."""
        return Image.new('RGBA', canvas_size, self.fill_color + (255,))

    async def _load_background(self, background: Optional[ImageSource]) -> Optional[Image.Image]:
        if background is None or background == '':
            return None
        try:
            return await self.loader.load_source(background)
        except LoadError as e:
            logger.warning(f"Background failed to load, using neutral fill: {e}")
            return None

    async def composite(self,
                        background: Optional[ImageSource],
                        overlay: ImageSource,
                        placement=None,
                        canvas_size: Tuple[int, int] = None,
                        overlay_size: int = None,
                        knockout: bool = False) -> CompositeResult:
        """
        Draw ``overlay`` over ``background`` and return the encoded PNG.

        A missing or unloadable background becomes a flat fill. The overlay
        is required: its LoadError propagates and nothing is produced.
        """
        canvas_size = tuple(canvas_size or self.canvas_size)
        overlay_size = overlay_size or self.overlay_size

        bg_image = await self._load_background(background)
        logo = await self.loader.load_source(overlay)

        canvas = self.create_canvas(canvas_size)
        if bg_image is not None:
            # stretched to the canvas, same as the browser canvas drawImage
            bg = bg_image.convert('RGBA').resize(canvas_size, Image.Resampling.LANCZOS)
            canvas = Image.alpha_composite(canvas, bg)

        logo = logo.convert('RGBA')
        if knockout:
            logo = knockout_white(logo)
        logo = logo.resize((overlay_size, overlay_size), Image.Resampling.LANCZOS)

        x, y = placement_origin(placement, canvas_size, overlay_size, self.inset)
        layer = Image.new('RGBA', canvas_size, (0, 0, 0, 0))
        layer.paste(logo, (x, y))
        result = Image.alpha_composite(canvas, layer)

        data = await asyncio.to_thread(encode_png, result)
        logger.info(
            f"Composited {overlay_size}px logo at ({x}, {y}) on {canvas_size} canvas "
            f"[{PlacementPreset.parse(placement).value}], {len(data):,} bytes"
        )
        return CompositeResult(image_bytes=data, width=canvas_size[0], height=canvas_size[1])
