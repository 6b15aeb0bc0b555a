"""
Product view URL resolution.

Derives the four-angle (Front/Right/Back/Left) image URLs from one product
photo URL. Catalog photos follow the pattern

    https://images.nwgmedia.com/preview/{folder_id}/{article}_{color}_{slug}_{view}.jpg

where {view} is either the short token (F/R/B/L) or the long one
(Front/Right/Back/Left). Resolution is pure string work; the fallback from
short to long URL happens when a consumer actually loads the image.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from PIL import Image, ImageDraw, ImageFont
from loguru import logger

from offerkit.errors import LoadError, NotFoundError
from offerkit.models import AngleImage, AngleImageSet, ProductRecord, VIEW_ORDER


PREVIEW_HOST = "https://images.nwgmedia.com/preview"

VIEW_SUFFIX_RE = re.compile(r"_(F|B|L|R|Front|Back|Left|Right)\.jpg$", re.IGNORECASE)
COLOR_TOKEN_RE = re.compile(r"(_|-)\d{1,3}(_|-)")
FOLDER_RE = re.compile(r"/preview/\d+/")

VIEW_LABELS_SV = {
    "Front": "Framsida",
    "Right": "Höger sida",
    "Back": "Baksida",
    "Left": "Vänster sida",
}

PLACEHOLDER_SIZE = (512, 512)


def strip_view_suffix(url: str) -> str:
    """Remove a trailing _<view>.jpg suffix, if any."""
    return VIEW_SUFFIX_RE.sub("", url or "")


def normalize_view(view: str) -> Optional[str]:
    """Map 'front', 'F', 'FRONT' etc. to the canonical label."""
    if not view:
        return None
    token = view.strip().lower()
    for label in VIEW_ORDER:
        if token in (label.lower(), label[0].lower()):
            return label
    return None


def short_url(clean_base: str, view: str) -> str:
    return f"{clean_base}_{view[0].upper()}.jpg"


def long_url(clean_base: str, view: str) -> str:
    return f"{clean_base}_{view}.jpg"


def resolve(base_url: str, views: Iterable[str] = None) -> AngleImageSet:
    """
    Compute the angle image set for a product photo URL.

    Any existing view suffix is stripped first, so resolving any of the
    generated URLs yields the same set. Views come back in the fixed order
    Front, Right, Back, Left regardless of the order requested. An empty
    base URL gives an empty set.
    """
    if not base_url:
        return AngleImageSet(base="")

    clean_base = strip_view_suffix(base_url.strip())

    if views is None:
        wanted = set(VIEW_ORDER)
    else:
        wanted = set()
        for view in views:
            label = normalize_view(view)
            if label:
                wanted.add(label)
            else:
                logger.debug(f"Ignoring unknown view label: {view!r}")

    images = [
        AngleImage(label=label, short=short_url(clean_base, label), long=long_url(clean_base, label))
        for label in VIEW_ORDER
        if label in wanted
    ]
    return AngleImageSet(base=clean_base, images=images)


def base_url_from_catalog_row(folder_id: str, article_number: str, color_code: str, slug: str) -> str:
    """Build the suffix-less photo URL from a product_images row."""
    if not folder_id or not article_number or not color_code or not slug:
        logger.warning(
            f"Incomplete image row: folder={folder_id!r} article={article_number!r} "
            f"color={color_code!r} slug={slug!r}"
        )
        return ""
    return f"{PREVIEW_HOST}/{folder_id}/{article_number}_{color_code}_{slug}"


def apply_variant(base_url: str, color_code: str = None, folder_id: str = None) -> str:
    """Swap the colour token and preview folder of a photo URL for a variant."""
    url = strip_view_suffix(base_url)
    if color_code:
        url = COLOR_TOKEN_RE.sub(lambda m: f"{m.group(1)}{color_code}{m.group(2)}", url, count=1)
    if folder_id:
        url = FOLDER_RE.sub(f"/preview/{folder_id}/", url, count=1)
    return url


def variant_base_url(product: ProductRecord, color: str = None, color_code: str = None,
                     folder_id: str = None, base_url: str = None) -> str:
    """
    Photo base URL for one colour of a product.

    A named colour selects the matching variant: its own photo when it has
    one, otherwise its colour code and folder swapped into the main photo.
    A product without any photo gets the URL built from folder, colour code
    and slug, the way catalog image rows are.
    """
    base_url = base_url or product.image_url or ''
    if color:
        variant = product.variant(color)
        if variant is None:
            raise NotFoundError(
                f"Product {product.id} has no colour {color!r}",
                details={'article_number': product.id, 'colors': [v.color for v in product.variants]}
            )
        if variant.image_url:
            return strip_view_suffix(variant.image_url)
        color_code = color_code or variant.color_code
        folder_id = folder_id or variant.folder_id

    if not base_url:
        return base_url_from_catalog_row(folder_id, product.id, color_code, product.slug)
    return apply_variant(base_url, color_code, folder_id)


def view_label_sv(view: str) -> str:
    """Swedish caption for a view label."""
    return VIEW_LABELS_SV.get(view, view)


@dataclass
class ViewImage:
    """A loaded view, or the placeholder drawn when neither URL loaded"""
    label: str
    image: Image.Image
    url: Optional[str] = None

    @property
    def is_placeholder(self) -> bool:
        return self.url is None


def placeholder_glyph(label: str, size=PLACEHOLDER_SIZE) -> Image.Image:
    """Grey tile with the view name, shown when no photo exists."""
    tile = Image.new('RGB', size, (245, 245, 245))
    draw = ImageDraw.Draw(tile)
    draw.rectangle([0, 0, size[0] - 1, size[1] - 1], outline=(220, 220, 220), width=2)

    font = ImageFont.load_default()
    for text, y in ((label, size[1] // 2 - 14), ("Ingen bild", size[1] // 2 + 4)):
        bbox = draw.textbbox((0, 0), text, font=font)
        x = (size[0] - (bbox[2] - bbox[0])) // 2
        draw.text((x, y), text, fill=(160, 160, 160), font=font)

    return tile


async def load_view_image(loader, angle: AngleImage, timeout_ms: int = None) -> ViewImage:
    """
    Load one view: short URL first, the long URL once on failure, then a
    placeholder glyph. Never raises for load failures.
    """
    for url in (angle.short, angle.long):
        try:
            image = await loader.load(url, timeout_ms)
            return ViewImage(label=angle.label, image=image, url=url)
        except LoadError as e:
            logger.debug(f"View {angle.label} not available at {url}: {e}")

    logger.info(f"No image for view {angle.label}, using placeholder")
    return ViewImage(label=angle.label, image=placeholder_glyph(angle.label))
