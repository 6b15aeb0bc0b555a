"""
Domain models for the offer toolkit.

Product records and quote line items arrive from outside (catalog lookups,
JSON request bodies) and are validated with pydantic. Values computed
internally (angle image sets, composites, placements) are plain dataclasses.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel, Field, field_validator


VIEW_ORDER = ["Front", "Right", "Back", "Left"]


class Variant(BaseModel):
    """A colour variant of a product with its own photo"""
    color: str
    image_url: Optional[str] = None
    color_code: Optional[str] = None
    folder_id: Optional[str] = None


class ProductRecord(BaseModel):
    """Product as returned by the catalog lookup"""
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    price_ex_vat: Optional[float] = None
    image_url: Optional[str] = None
    slug: Optional[str] = None
    variants: List[Variant] = []
    angle_images: Dict[str, str] = {}

    model_config = {'frozen': True}

    @field_validator('price_ex_vat')
    @classmethod
    def _price_not_negative(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value < 0:
            raise ValueError("price_ex_vat must be non-negative")
        return value

    @property
    def has_price(self) -> bool:
        return self.price_ex_vat is not None

    @property
    def price_or_zero(self) -> float:
        return self.price_ex_vat or 0.0

    def variant(self, color: str) -> Optional[Variant]:
        """Find a variant by colour name or colour code, ignoring case."""
        wanted = (color or '').strip().lower()
        for variant in self.variants:
            if wanted and wanted in (variant.color.lower(), (variant.color_code or '').lower()):
                return variant
        return None


def coerce_quantity(value) -> int:
    """Coerce user input to a quantity of at least one."""
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        try:
            qty = int(value)
        except (ValueError, OverflowError):
            return 1
        return max(1, qty)
    if isinstance(value, str):
        text = value.strip()
        try:
            qty = int(text)
        except ValueError:
            try:
                qty = int(float(text))
            except (ValueError, OverflowError):
                return 1
        return max(1, qty)
    return 1


class QuoteLineItem(BaseModel):
    """One product entry within a quote"""
    product: ProductRecord
    quantity: int = 1
    logo_url: Optional[str] = None
    mockup_url: Optional[str] = None
    selected_views: List[str] = Field(default_factory=list)

    @field_validator('quantity', mode='before')
    @classmethod
    def _coerce_quantity(cls, value) -> int:
        return coerce_quantity(value)

    @property
    def product_id(self) -> str:
        return self.product.id

    @property
    def display_image_url(self) -> Optional[str]:
        """Mockup when one exists, otherwise the plain product photo."""
        return self.mockup_url or self.product.image_url


class Quote:
    """Ordered collection of line items keyed by product id.

    Insertion order is the row order of the generated document.
    """

    def __init__(self, items: List[QuoteLineItem] = None):
        self._items: Dict[str, QuoteLineItem] = {}
        for item in items or []:
            self.add(item.product, item.quantity, logo_url=item.logo_url,
                     mockup_url=item.mockup_url, selected_views=item.selected_views)

    def add(self, product: ProductRecord, quantity=1, **extra) -> QuoteLineItem:
        """Add a product, or increase the quantity of an existing line."""
        existing = self._items.get(product.id)
        if existing is not None:
            quantity = existing.quantity + coerce_quantity(quantity)
            item = existing.model_copy(update={'quantity': quantity, **extra})
        else:
            item = QuoteLineItem(product=product, quantity=quantity, **extra)
        self._items[product.id] = item
        return item

    def update(self, product_id: str, **changes) -> QuoteLineItem:
        """Update a line in place; raises KeyError for unknown products."""
        current = self._items[product_id]
        if 'quantity' in changes:
            changes['quantity'] = coerce_quantity(changes['quantity'])
        item = current.model_copy(update=changes)
        self._items[product_id] = item
        return item

    def remove(self, product_id: str) -> None:
        self._items.pop(product_id, None)

    def clear(self) -> None:
        self._items.clear()

    @property
    def items(self) -> List[QuoteLineItem]:
        return list(self._items.values())

    def totals(self, tax_rate: float = None, unit_price=None):
        """Subtotal, tax and total of the current lines at base price unless ``unit_price`` is given."""
        from offerkit.pricing import DEFAULT_TAX_RATE, document_totals
        return document_totals(self.items, DEFAULT_TAX_RATE if tax_rate is None else tax_rate, unit_price)

    def total_ex_vat(self) -> float:
        return self.totals().subtotal_ex_tax

    def total_inc_vat(self, tax_rate: float = None) -> float:
        return self.totals(tax_rate).total_inc_tax

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[QuoteLineItem]:
        return iter(self.items)

    def __contains__(self, product_id: str) -> bool:
        return product_id in self._items


class PlacementPreset(str, Enum):
    """Named logo positions on the mockup canvas"""
    TOP_LEFT = 'top-left'
    TOP_RIGHT = 'top-right'
    BOTTOM_LEFT = 'bottom-left'
    BOTTOM_RIGHT = 'bottom-right'
    CENTER = 'center'

    @classmethod
    def parse(cls, value) -> 'PlacementPreset':
        """Parse a preset name; unspecified or unknown values mean top-left."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.TOP_LEFT
        normalized = str(value).strip().lower().replace('_', '-')
        for preset in cls:
            if preset.value == normalized:
                return preset
        return cls.TOP_LEFT


class StorageKeyPolicy(str, Enum):
    """How a generated mockup is named in blob storage"""
    OVERWRITE_BY_PRODUCT = 'overwrite-by-product'
    APPEND_TIMESTAMPED = 'append-timestamped'

    @classmethod
    def parse(cls, value) -> 'StorageKeyPolicy':
        if isinstance(value, cls):
            return value
        normalized = str(value or '').strip().lower().replace('_', '-')
        for policy in cls:
            if policy.value == normalized:
                return policy
        return cls.APPEND_TIMESTAMPED


@dataclass(frozen=True)
class AngleImage:
    """One product view with its short- and long-suffix URLs"""
    label: str
    short: str
    long: str


@dataclass(frozen=True)
class AngleImageSet:
    """Candidate URLs for the requested views of one product photo"""
    base: str
    images: List[AngleImage] = field(default_factory=list)

    def get(self, label: str) -> Optional[AngleImage]:
        for image in self.images:
            if image.label.lower() == label.lower():
                return image
        return None

    @property
    def labels(self) -> List[str]:
        return [image.label for image in self.images]

    def to_dict(self) -> Dict:
        return {
            'base': self.base,
            'images': [
                {'label': img.label, 'short': img.short, 'long': img.long}
                for img in self.images
            ]
        }

    def __iter__(self) -> Iterator[AngleImage]:
        return iter(self.images)

    def __len__(self) -> int:
        return len(self.images)

    def __bool__(self) -> bool:
        return bool(self.images)


@dataclass(frozen=True)
class CompositeResult:
    """An encoded mockup image and, once persisted, its retrieval URL"""
    image_bytes: bytes
    width: int
    height: int
    content_type: str = 'image/png'
    url: Optional[str] = None

    def with_url(self, url: str) -> 'CompositeResult':
        return replace(self, url=url)
