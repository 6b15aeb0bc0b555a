"""
Product catalog lookup.

Fetches one product by article number from the remote assortment API and
normalizes it into a ProductRecord. A lookup is a single attempt: anything
other than a 2xx response carrying at least one product is "not found".
"""

import asyncio
import re
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from offerkit.errors import (
    InvalidArticleNumberError, LoadError, LoadTimeoutError, NotFoundError
)
from offerkit.models import ProductRecord, Variant


ARTICLE_NUMBER_RE = re.compile(r"^\d{6,}$")
MIN_QUERY_LENGTH = 6
ANGLE_NAMES = {'front': 'Front', 'back': 'Back', 'left': 'Left', 'right': 'Right'}


def validate_article_number(raw) -> str:
    """Trim and check an article number: digits only, at least six of them."""
    article = str(raw if raw is not None else '').strip()
    if not ARTICLE_NUMBER_RE.match(article):
        raise InvalidArticleNumberError(article)
    return article


def build_media_url(file_name: str, media_host: str = "https://media.nwgmedia.com/") -> str:
    return f"{media_host}{quote(file_name, safe='')}.jpg"


def _first_picture(product: Dict) -> Optional[str]:
    image = product.get('image') or {}
    if image.get('fileName'):
        return image['fileName']

    pictures = product.get('pictures') or []
    for picture in pictures:
        if picture.get('type') == 'Productpicture' and picture.get('angle') == 'front' and picture.get('fileName'):
            return picture['fileName']
    if pictures and pictures[0].get('fileName'):
        return pictures[0]['fileName']
    return None


def _price(product: Dict) -> Optional[float]:
    price = product.get('price') or {}
    for key in ('retail', 'exVat'):
        value = (price.get(key) or {}).get('num')
        if value:
            return float(value)
    return None


def _variant(variation: Dict, media_host: str) -> Variant:
    code = variation.get('colorCode') or variation.get('color_code')
    folder = variation.get('folder_id') or variation.get('folderId')
    image_url = variation.get('image_url')
    if not image_url and (variation.get('image') or {}).get('fileName'):
        image_url = build_media_url(variation['image']['fileName'], media_host)
    return Variant(
        color=variation.get('color') or variation.get('name') or '',
        color_code=str(code) if code else None,
        folder_id=str(folder) if folder else None,
        image_url=image_url or None,
    )


def product_from_payload(payload: Dict[str, Any], media_host: str = "https://media.nwgmedia.com/") -> ProductRecord:
    """
    Build a ProductRecord from a catalog product.

    Accepts either the raw assortment shape (productNumber, productName,
    pictures, ...) or an already normalized record.
    """
    if 'productNumber' not in payload and 'productName' not in payload:
        data = dict(payload)
        if 'variations' in data and 'variants' not in data:
            data['variants'] = data.pop('variations')
        return ProductRecord.model_validate(data)

    file_name = _first_picture(payload)

    angle_images = {}
    for picture in payload.get('pictures') or []:
        angle = ANGLE_NAMES.get(str(picture.get('angle') or '').lower())
        if picture.get('type') == 'Productpicture' and angle and picture.get('fileName'):
            angle_images[angle] = build_media_url(picture['fileName'], media_host)

    categories = (payload.get('filters') or {}).get('category') or []
    category = categories[0] if categories else payload.get('category') or None
    brand = payload.get('productBrandName') or payload.get('brand')
    name = payload.get('productName') or payload.get('name') or ''

    if brand and name:
        description = f"En högkvalitativ {category or 'produkt'} från {brand}, perfekt för profilering."
    else:
        description = "Högkvalitativ produkt perfekt för profilering."

    variants = [_variant(v, media_host) for v in payload.get('variations') or []]

    return ProductRecord(
        id=str(payload.get('productNumber') or payload.get('id')),
        name=name,
        brand=brand,
        category=category,
        description=description,
        price_ex_vat=_price(payload),
        image_url=build_media_url(file_name, media_host) if file_name else None,
        slug=payload.get('slug') or None,
        variants=variants,
        angle_images=angle_images,
    )


class CatalogClient:
    """Single-attempt client for the product assortment API"""

    def __init__(self,
                 base_url: str = "https://commerce.gateway.nwg.se/assortment/sv",
                 context_id: str = None,
                 timeout_s: float = 10.0,
                 media_host: str = "https://media.nwgmedia.com/",
                 transport: httpx.AsyncBaseTransport = None):
        self.base_url = base_url.rstrip('/')
        self.context_id = context_id
        self.timeout_s = timeout_s
        self.media_host = media_host
        self.transport = transport

    @classmethod
    def from_config(cls, config, transport=None) -> 'CatalogClient':
        return cls(
            base_url=config.CATALOG_BASE_URL,
            context_id=config.CATALOG_CONTEXT_ID,
            timeout_s=config.CATALOG_TIMEOUT_S,
            media_host=config.CATALOG_MEDIA_HOST,
            transport=transport,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self.context_id:
            headers['contextid'] = self.context_id
        return headers

    async def fetch_product(self, article_number: str) -> ProductRecord:
        article = validate_article_number(article_number)
        url = f"{self.base_url}/products"

        logger.info(f"Looking up article {article}")
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout_s) as client:
                response = await client.get(url, params={'products': article}, headers=self._headers())
        except httpx.TimeoutException:
            raise LoadTimeoutError(url, int(self.timeout_s * 1000))
        except httpx.HTTPError as e:
            raise LoadError(f"Catalog request failed: {e}", details={'url': url})

        if not response.is_success:
            logger.warning(f"Catalog returned {response.status_code} for {article}")
            raise NotFoundError(
                f"Product {article} not found",
                details={'article_number': article, 'status': response.status_code}
            )

        try:
            data = response.json()
        except ValueError:
            raise LoadError("Catalog returned invalid JSON", details={'url': url})

        if isinstance(data, dict) and data.get('error'):
            raise NotFoundError(
                f"Product {article} not found",
                details={'article_number': article, 'error': data.get('error'), 'details': data.get('details')}
            )

        products = data if isinstance(data, list) else (data.get('products') if isinstance(data, dict) else None)
        if not products:
            raise NotFoundError(f"Product {article} not found", details={'article_number': article})

        product = product_from_payload(products[0], self.media_host)
        logger.info(f"Found {product.id}: {product.name}")
        return product


class SearchSession:
    """
    Guards one search box against duplicate and stale lookups.

    Every search takes the next sequence number and becomes the newest
    request. A query already in flight is not sent again; the caller awaits
    the existing request. When a response arrives it is handed back only if
    the newest request is still for the same query, otherwise it is dropped
    (``search`` returns None).
    """

    def __init__(self, client: CatalogClient, min_length: int = MIN_QUERY_LENGTH):
        self.client = client
        self.min_length = min_length
        self.sequence = 0
        self.latest_query: Optional[str] = None
        self._in_flight: Dict[str, asyncio.Task] = {}

    def _start(self, query: str) -> asyncio.Task:
        task = asyncio.ensure_future(self.client.fetch_product(query))
        self._in_flight[query] = task

        def _done(_task, query=query):
            if self._in_flight.get(query) is _task:
                del self._in_flight[query]

        task.add_done_callback(_done)
        return task

    def is_stale(self, query: str) -> bool:
        return query != self.latest_query

    async def search(self, query: str) -> Optional[ProductRecord]:
        query = (query or '').strip()
        if len(query) < self.min_length:
            return None

        self.sequence += 1
        seq = self.sequence
        self.latest_query = query
        task = self._in_flight.get(query) or self._start(query)

        try:
            result = await asyncio.shield(task)
        except (LoadError, NotFoundError):
            if self.is_stale(query):
                logger.warning(f"Discarding stale failure for {query!r} (request {seq}, current {self.sequence})")
                return None
            raise

        if self.is_stale(query):
            logger.warning(f"Discarding stale response for {query!r} (request {seq}, current {self.sequence})")
            return None
        return result
