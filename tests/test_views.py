"""
Tests for product view URL resolution and the view loading fallback.
"""

import pytest

from offerkit.errors import LoadError, NotFoundError
from offerkit.models import AngleImage, ProductRecord, Variant, VIEW_ORDER
from offerkit.views import (
    apply_variant, base_url_from_catalog_row, load_view_image, long_url, placeholder_glyph,
    resolve, strip_view_suffix, variant_base_url, view_label_sv
)
from tests.conftest import PREVIEW, make_image_bytes


BASE = f"{PREVIEW}/ABC123"


class TestResolve:

    def test_front_scenario(self):
        result = resolve(f"{BASE}_Front.jpg")

        assert result.base == BASE
        front = result.get('Front')
        assert front.short == f"{BASE}_F.jpg"
        assert front.long == f"{BASE}_Front.jpg"

    def test_fixed_order(self):
        result = resolve(BASE, views=['left', 'Front', 'B'])
        assert result.labels == ['Front', 'Back', 'Left']

    def test_default_is_all_four(self):
        assert resolve(BASE).labels == VIEW_ORDER

    @pytest.mark.parametrize('suffix', ['F', 'R', 'B', 'L', 'Front', 'Right', 'Back', 'Left', 'front', 'BACK'])
    def test_round_trip_any_suffix(self, suffix):
        assert resolve(f"{BASE}_{suffix}.jpg") == resolve(BASE)

    @pytest.mark.parametrize('view', VIEW_ORDER)
    def test_round_trip_generated_urls(self, view):
        clean = resolve(BASE)
        assert resolve(long_url(BASE, view)) == clean
        assert resolve(clean.get(view).short) == clean

    def test_short_and_long_differ_only_in_token(self):
        for angle in resolve(BASE):
            assert angle.short.replace(f"_{angle.label[0]}.jpg", "") == angle.long.replace(f"_{angle.label}.jpg", "")

    @pytest.mark.parametrize('empty', ['', None])
    def test_empty_base(self, empty):
        result = resolve(empty)
        assert len(result) == 0
        assert result.base == ""

    def test_unknown_views_ignored(self):
        assert resolve(BASE, views=['top', 'Front']).labels == ['Front']

    def test_other_suffixes_untouched(self):
        assert strip_view_suffix(f"{BASE}_X.jpg") == f"{BASE}_X.jpg"
        assert strip_view_suffix(f"{BASE}_Front.png") == f"{BASE}_Front.png"


class TestCatalogRowsAndVariants:

    def test_base_url_from_row(self):
        url = base_url_from_catalog_row('377113', '1914706', '58', 'Miami_PRO_Roundneck')
        assert url == "https://images.nwgmedia.com/preview/377113/1914706_58_Miami_PRO_Roundneck"

    def test_incomplete_row(self):
        assert base_url_from_catalog_row('377113', '1914706', '', 'slug') == ""

    def test_apply_variant_swaps_color_and_folder(self):
        url = "https://images.nwgmedia.com/preview/377113/1914706_58_Miami_Front.jpg"
        assert apply_variant(url, color_code='91', folder_id='400000') == \
            "https://images.nwgmedia.com/preview/400000/1914706_91_Miami"

    def test_apply_variant_without_changes_only_strips_suffix(self):
        assert apply_variant(f"{BASE}_R.jpg") == BASE

    def variant_product(self, **kwargs):
        fields = {
            'id': '1914706',
            'name': 'Miami PRO Roundneck',
            'image_url': f"{PREVIEW}/1914706_99_Miami_Front.jpg",
            'variants': [
                Variant(color='Navy', color_code='58', folder_id='400000'),
                Variant(color='White', image_url=f"{PREVIEW}/1914706_01_Miami_Back.jpg"),
            ],
        }
        fields.update(kwargs)
        return ProductRecord(**fields)

    def test_variant_code_and_folder_applied_to_photo(self):
        url = variant_base_url(self.variant_product(), color='navy')
        assert url == "https://images.nwgmedia.com/preview/400000/1914706_58_Miami"

    def test_variant_with_own_photo(self):
        assert variant_base_url(self.variant_product(), color='White') == f"{PREVIEW}/1914706_01_Miami"

    def test_variant_by_color_code(self):
        assert variant_base_url(self.variant_product(), color='58').endswith("/400000/1914706_58_Miami")

    def test_unknown_color(self):
        with pytest.raises(NotFoundError):
            variant_base_url(self.variant_product(), color='Purple')

    def test_no_color_uses_product_photo(self):
        assert variant_base_url(self.variant_product()) == f"{PREVIEW}/1914706_99_Miami"

    def test_product_without_photo_uses_catalog_row(self):
        product = self.variant_product(image_url=None, slug='Miami_PRO_Roundneck')
        assert variant_base_url(product, color='Navy') == \
            "https://images.nwgmedia.com/preview/400000/1914706_58_Miami_PRO_Roundneck"

    def test_swedish_labels(self):
        assert [view_label_sv(v) for v in VIEW_ORDER] == ['Framsida', 'Höger sida', 'Baksida', 'Vänster sida']
        assert view_label_sv('Top') == 'Top'


class StubLoader:
    """Fails for every URL not in ``available``."""

    def __init__(self, available):
        self.available = set(available)
        self.calls = []

    async def load(self, url, timeout_ms=None):
        self.calls.append(url)
        if url in self.available:
            from offerkit.loader import decode_image
            return decode_image(make_image_bytes())
        raise LoadError(f"missing {url}")


class TestLoadViewImage:
    angle = AngleImage(label='Back', short=f"{BASE}_B.jpg", long=f"{BASE}_Back.jpg")

    @pytest.mark.asyncio
    async def test_short_url_first(self):
        loader = StubLoader([self.angle.short, self.angle.long])
        view = await load_view_image(loader, self.angle)

        assert view.url == self.angle.short
        assert loader.calls == [self.angle.short]

    @pytest.mark.asyncio
    async def test_falls_back_to_long_once(self):
        loader = StubLoader([self.angle.long])
        view = await load_view_image(loader, self.angle)

        assert view.url == self.angle.long
        assert loader.calls == [self.angle.short, self.angle.long]

    @pytest.mark.asyncio
    async def test_placeholder_after_two_failures(self):
        loader = StubLoader([])
        view = await load_view_image(loader, self.angle)

        assert view.is_placeholder
        assert view.label == 'Back'
        assert len(loader.calls) == 2

    def test_placeholder_glyph_size(self):
        assert placeholder_glyph('Front').size == (512, 512)
