"""
Tests for the domain models: product records, line items and the quote.
"""

import pytest
from pydantic import ValidationError as SchemaError

from offerkit.models import (
    AngleImageSet, CompositeResult, PlacementPreset, ProductRecord, Quote,
    QuoteLineItem, StorageKeyPolicy, Variant, coerce_quantity
)
from offerkit.pricing import document_totals, margin_percent_pricer


def make_product(pid='1914706', price=100.0, **kwargs):
    return ProductRecord(id=pid, name=f"Product {pid}", price_ex_vat=price, **kwargs)


class TestProductRecord:

    def test_negative_price_rejected(self):
        with pytest.raises(SchemaError):
            make_product(price=-1)

    def test_absent_price(self):
        product = make_product(price=None)

        assert not product.has_price
        assert product.price_or_zero == 0.0

    def test_immutable(self):
        product = make_product()
        with pytest.raises(SchemaError):
            product.name = "Changed"

    def test_variant_by_name_or_code(self):
        product = make_product(variants=[
            Variant(color='Navy', color_code='58'),
            Variant(color='Grey'),
        ])

        assert product.variant('navy').color_code == '58'
        assert product.variant(' 58 ').color == 'Navy'
        assert product.variant('Grey').color_code is None
        assert product.variant('Red') is None
        assert product.variant('') is None


class TestQuantityCoercion:

    @pytest.mark.parametrize('value, expected', [
        (3, 3), (0, 1), (-4, 1), ("7", 7), ("2.9", 2), ("abc", 1),
        (None, 1), (True, 1), (2.5, 2), ("", 1),
    ])
    def test_coerce(self, value, expected):
        assert coerce_quantity(value) == expected

    def test_line_item_coerces(self):
        item = QuoteLineItem(product=make_product(), quantity="-2")
        assert item.quantity == 1

    def test_display_image_prefers_mockup(self):
        item = QuoteLineItem(product=make_product(image_url="https://x/p.jpg"), mockup_url="https://x/m.png")
        assert item.display_image_url == "https://x/m.png"

        plain = QuoteLineItem(product=make_product(image_url="https://x/p.jpg"))
        assert plain.display_image_url == "https://x/p.jpg"


class TestQuote:

    def test_insertion_order_is_row_order(self):
        quote = Quote()
        quote.add(make_product('222222'))
        quote.add(make_product('111111'))

        assert [item.product_id for item in quote] == ['222222', '111111']

    def test_add_existing_increases_quantity(self):
        quote = Quote()
        product = make_product()
        quote.add(product, 2)
        item = quote.add(product, 3)

        assert len(quote) == 1
        assert item.quantity == 5

    def test_update_in_place(self):
        quote = Quote()
        quote.add(make_product('111111'))
        quote.add(make_product('222222'))

        quote.update('111111', quantity=0, mockup_url="https://x/m.png")

        first = quote.items[0]
        assert first.product_id == '111111'
        assert first.quantity == 1
        assert first.mockup_url == "https://x/m.png"

    def test_update_unknown_raises(self):
        with pytest.raises(KeyError):
            Quote().update('999999', quantity=2)

    def test_remove_and_clear(self):
        quote = Quote()
        quote.add(make_product('111111'))
        quote.add(make_product('222222'))

        quote.remove('111111')
        assert '111111' not in quote
        assert '222222' in quote

        quote.clear()
        assert len(quote) == 0

    def test_totals(self):
        quote = Quote()
        quote.add(make_product('111111', 100.0), 2)
        quote.add(make_product('222222', None), 5)

        assert quote.total_ex_vat() == pytest.approx(200.0)
        assert quote.total_inc_vat() == pytest.approx(250.0)
        assert quote.total_inc_vat(0.12) == pytest.approx(224.0)

    def test_totals_match_document_totals(self):
        quote = Quote()
        quote.add(make_product('111111', 100.0), 3)
        quote.add(make_product('222222', 49.9), 7)
        pricer = margin_percent_pricer(25)

        assert quote.totals(0.25, pricer) == document_totals(quote.items, 0.25, pricer)
        assert quote.totals(0.25, pricer).total_inc_tax == pytest.approx((375 + 7 * 49.9 * 1.25) * 1.25)


class TestEnums:

    @pytest.mark.parametrize('value, expected', [
        (None, PlacementPreset.TOP_LEFT),
        ('', PlacementPreset.TOP_LEFT),
        ('bogus', PlacementPreset.TOP_LEFT),
        ('BOTTOM_RIGHT', PlacementPreset.BOTTOM_RIGHT),
        ('center', PlacementPreset.CENTER),
        (PlacementPreset.TOP_RIGHT, PlacementPreset.TOP_RIGHT),
    ])
    def test_placement_parse(self, value, expected):
        assert PlacementPreset.parse(value) == expected

    def test_policy_parse(self):
        assert StorageKeyPolicy.parse('overwrite_by_product') == StorageKeyPolicy.OVERWRITE_BY_PRODUCT
        assert StorageKeyPolicy.parse(None) == StorageKeyPolicy.APPEND_TIMESTAMPED


class TestValueObjects:

    def test_empty_angle_set_is_falsy(self):
        assert not AngleImageSet(base="")
        assert AngleImageSet(base="").to_dict() == {'base': "", 'images': []}

    def test_composite_with_url_returns_new_result(self):
        result = CompositeResult(image_bytes=b"png", width=400, height=400)
        persisted = result.with_url("https://x/m.png")

        assert result.url is None
        assert persisted.url == "https://x/m.png"
        assert persisted.image_bytes == b"png"
