"""
Price calculations for offer documents.

Pure numeric transforms on floats: base price -> price with margin ->
tax-inclusive price -> line total -> document totals. Formatting for display
is kept separate and never feeds back into the numbers.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from offerkit.models import QuoteLineItem


DEFAULT_TAX_RATE = 0.25
PRICE_ON_REQUEST = "Pris på förfrågan"

# sv-SE groups thousands with a no-break space and uses a decimal comma
THOUSANDS_SEP = " "
DECIMAL_SEP = ","


def unit_price_with_margin_percent(price_ex_vat: float, margin_percent: float) -> float:
    """Markup as a percentage: 100 with 25 gives 125."""
    return price_ex_vat * (1 + margin_percent / 100)


def unit_price_with_multiplier(price_ex_vat: float, multiplier: float) -> float:
    """Markup as a factor: 100 with 1.5 gives 150."""
    return price_ex_vat * multiplier


def apply_tax(amount: float, tax_rate: float = DEFAULT_TAX_RATE) -> float:
    return amount * (1 + tax_rate)


def line_total(unit_price_inc_tax: float, quantity: int) -> float:
    return unit_price_inc_tax * quantity


@dataclass(frozen=True)
class DocumentTotals:
    subtotal_ex_tax: float
    tax_amount: float
    total_inc_tax: float
    tax_rate: float = DEFAULT_TAX_RATE


UnitPricer = Callable[[QuoteLineItem], float]


def base_unit_price(item: QuoteLineItem) -> float:
    """Price excluding tax with no margin; absent prices count as zero."""
    return item.product.price_or_zero


def margin_percent_pricer(margin_percent: float) -> UnitPricer:
    return lambda item: unit_price_with_margin_percent(item.product.price_or_zero, margin_percent)


def multiplier_pricer(multiplier: float) -> UnitPricer:
    return lambda item: unit_price_with_multiplier(item.product.price_or_zero, multiplier)


def document_totals(line_items: Iterable[QuoteLineItem],
                    tax_rate: float = DEFAULT_TAX_RATE,
                    unit_price: Optional[UnitPricer] = None) -> DocumentTotals:
    """
    Subtotal, tax and total for a set of line items.

    The tax-inclusive total is summed first; subtotal and tax are then
    derived back from it so many lines never accumulate per-line rounding.
    ``unit_price`` maps a line to its price excluding tax and defaults to
    the product's base price.
    """
    pricer = unit_price or base_unit_price
    total = sum(line_total(apply_tax(pricer(item), tax_rate), item.quantity) for item in line_items)
    subtotal = total / (1 + tax_rate)
    return DocumentTotals(
        subtotal_ex_tax=subtotal,
        tax_amount=total - subtotal,
        total_inc_tax=total,
        tax_rate=tax_rate,
    )


def format_money(amount: float, currency: str = "kr") -> str:
    """Format as Swedish currency, e.g. 1234.5 -> '1 234,50 kr'."""
    text = f"{amount:,.2f}"
    text = text.replace(",", "\0").replace(".", DECIMAL_SEP).replace("\0", THOUSANDS_SEP)
    return f"{text} {currency}" if currency else text


def format_price(amount: Optional[float], currency: str = "kr") -> str:
    """Like format_money, but absent prices read 'Pris på förfrågan'."""
    if amount is None:
        return PRICE_ON_REQUEST
    return format_money(amount, currency)


def format_tax_rate(tax_rate: float) -> str:
    percent = tax_rate * 100
    return f"{percent:g}%"
