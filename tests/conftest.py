"""
Pytest configuration and fixtures for Offer Kit tests.

Provides the Flask app and client, sample images generated with PIL, an
in-memory blob store and mock HTTP transports standing in for the image
hosts and the product catalog.
"""

import asyncio
import io
import json
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Tuple

import httpx
import pytest
from PIL import Image, ImageDraw

from offerkit import create_app
from offerkit.catalog import CatalogClient
from offerkit.loader import ImageLoader
from offerkit.models import ProductRecord, QuoteLineItem
from offerkit.storage import MemoryBlobStore


PREVIEW = "https://images.nwgmedia.com/preview/377113"
CATALOG_URL = "https://catalog.test/assortment/sv"


def make_image_bytes(size=(200, 200), color=(30, 90, 200), fmt='PNG', mode='RGB') -> bytes:
    img = Image.new(mode, size, color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def make_logo_bytes(size=(120, 120)) -> bytes:
    """Red disc on a white square, like a logo exported without transparency."""
    img = Image.new('RGB', size, (255, 255, 255))
    draw = ImageDraw.Draw(img)
    draw.ellipse([10, 10, size[0] - 10, size[1] - 10], fill=(220, 20, 20))
    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


class ImageServer:
    """Serves registered URLs through an httpx mock transport."""

    def __init__(self):
        self.routes: Dict[str, Tuple[int, bytes, str, float]] = {}
        self.requests = []

    def add(self, url, data, content_type='image/png', status=200, delay=0.0):
        self.routes[url] = (status, data, content_type, delay)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url not in self.routes:
            return httpx.Response(404, text="not found")
        status, data, content_type, delay = self.routes[url]
        if delay:
            await asyncio.sleep(delay)
        return httpx.Response(status, content=data, headers={'content-type': content_type})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class CatalogServer:
    """Answers catalog product queries from a dict of raw payloads."""

    def __init__(self):
        self.products: Dict[str, dict] = {}
        self.status_override = None
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_override:
            return httpx.Response(self.status_override, json={'error': 'upstream failure'})
        article = request.url.params.get('products')
        if article in self.products:
            return httpx.Response(200, json={'products': [self.products[article]]})
        return httpx.Response(200, json={'products': []})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def raw_catalog_product(article='1914706', price=149.0):
    return {
        'productNumber': article,
        'productName': 'Miami PRO Roundneck',
        'productBrandName': 'Clique',
        'price': {'retail': {'num': price}},
        'image': {'fileName': f'{article}_Miami_PRO_Roundneck'},
        'pictures': [
            {'type': 'Productpicture', 'angle': 'front', 'fileName': f'{article}_front'},
            {'type': 'Productpicture', 'angle': 'back', 'fileName': f'{article}_back'},
            {'type': 'Environment', 'angle': 'left', 'fileName': f'{article}_env'},
        ],
        'filters': {'category': ['T-shirts']},
        'variations': [{'color': 'Navy', 'colorCode': '58', 'folder_id': '400000'}, {'name': 'Grey'}],
    }


@pytest.fixture
def temp_work_dir():
    """Create a temporary work directory for test processing."""
    temp_dir = Path(tempfile.mkdtemp())
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def image_server():
    return ImageServer()


@pytest.fixture
def catalog_server():
    server = CatalogServer()
    server.products['1914706'] = raw_catalog_product()
    return server


@pytest.fixture
def loader(image_server):
    return ImageLoader(timeout_ms=1000, transport=image_server.transport)


@pytest.fixture
def catalog_client(catalog_server):
    return CatalogClient(base_url=CATALOG_URL, context_id='test-context', transport=catalog_server.transport)


@pytest.fixture
def memory_store():
    return MemoryBlobStore()


@pytest.fixture
def product_png():
    return make_image_bytes(color=(30, 90, 200))


@pytest.fixture
def logo_png():
    return make_logo_bytes()


@pytest.fixture
def product(image_server, product_png):
    """Product whose photo is served by the image server."""
    url = f"{PREVIEW}/1914706_Navy_Miami_Front.jpg"
    image_server.add(url, product_png, content_type='image/jpeg')
    return ProductRecord(
        id='1914706',
        name='Miami PRO Roundneck',
        category='T-shirts',
        brand='Clique',
        price_ex_vat=100.0,
        image_url=url,
    )


@pytest.fixture
def line_item(product):
    return QuoteLineItem(product=product, quantity=3)


@pytest.fixture
def app(temp_work_dir, memory_store, loader, catalog_client):
    """Create and configure a test Flask application."""
    app = create_app('testing', {
        'TESTING': True,
        'SECRET_KEY': 'test-key',
        'STORAGE_ROOT': str(temp_work_dir / 'storage'),
        'LOG_FILE': str(temp_work_dir / 'logs' / 'app.log'),
        'DEBUG': False,
    }, store=memory_store, loader=loader, catalog=catalog_client)

    yield app


@pytest.fixture
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()


@pytest.fixture
def offer_payload(product):
    return {
        'customer_name': 'Åre Golfklubb AB',
        'items': [{'product': json.loads(product.model_dump_json()), 'quantity': 3}],
        'margin_percent': 25,
    }
