"""
Offer document layout engine for the offer toolkit.

This module handles:
- Laying out header, customer, product, price, summary and terms sections
  on A4 pages with a running top-down cursor measured in millimetres
- Page breaks at fixed checkpoints (before each product block, table row,
  the totals block and the terms block)
- Embedding mockup and angle images under a bounded wait, skipping any
  image that fails to load
- Quote numbering, file naming and archiving the finished PDF
"""

import asyncio
import io
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import List, Optional

from PIL import Image
from loguru import logger
from pydantic import BaseModel, Field
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas as pdf_canvas

from offerkit.config import DEFAULT_TERMS
from offerkit.errors import LoadError, MissingCustomerNameError, PersistError, ValidationError
from offerkit.loader import ImageLoader
from offerkit.models import QuoteLineItem, VIEW_ORDER
from offerkit.pricing import (
    DEFAULT_TAX_RATE, DocumentTotals, apply_tax, base_unit_price, document_totals, format_money,
    format_price, format_tax_rate, line_total, margin_percent_pricer, multiplier_pricer
)
from offerkit.storage import BlobStore
from offerkit.views import ViewImage, load_view_image, normalize_view, placeholder_glyph, resolve, view_label_sv


PAGE_WIDTH, PAGE_HEIGHT = A4
PAGE_WIDTH_MM = 210
PAGE_HEIGHT_MM = 297

MARGIN = 20
TOP_MARGIN = 20
BOTTOM_LIMIT = PAGE_HEIGHT_MM - 20
FOOTER_Y = PAGE_HEIGHT_MM - 10
CONTENT_WIDTH = PAGE_WIDTH_MM - 2 * MARGIN

EMBED_TIMEOUT_MS = 5000
COMPANY_LOGO_TIMEOUT_MS = 2000

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

TEXT_COLOR = colors.HexColor("#2c3e50")
MUTED_COLOR = colors.HexColor("#646464")
RULE_COLOR = colors.HexColor("#3498db")
FILL_COLOR = colors.HexColor("#f0f0f0")
BORDER_COLOR = colors.HexColor("#e5e5e5")

# product block
IMAGE_SIZE = 60
DETAILS_X = 90
DETAILS_WIDTH = PAGE_WIDTH_MM - MARGIN - DETAILS_X
PRODUCT_BLOCK_HEIGHT = 70
PRODUCT_TEXT_BLOCK_HEIGHT = 40
SECTION_HEADING_HEIGHT = 10

# angle grid
GRID_PER_ROW = 2
GRID_CELL = 80
GRID_GAP = 10
GRID_ROW_HEIGHT = GRID_CELL + GRID_GAP + 5

# price table columns (x in mm)
COL_ARTICLE = 22
COL_NAME = 46
NAME_WIDTH = 56
COL_UNIT = 106
COL_QTY = 145
COL_TOTAL = 160
TABLE_HEADER_HEIGHT = 8
ROW_PADDING = 4
ROW_LINE_HEIGHT = 4.5
NAME_MAX_LINES = 2

SUMMARY_HEIGHT = 36
TERMS_LINE_HEIGHT = 5

SANITIZE_RE = re.compile(r"[^A-Za-z0-9]")


def quote_number(prefix: str = "OFF", millis: int = None) -> str:
    """Prefix plus the low six digits of the epoch milliseconds."""
    if millis is None:
        millis = int(time.time() * 1000)
    return f"{prefix}-{str(millis)[-6:]}"


def offer_filename(customer_name: str, number: str) -> str:
    return f"Offert_{SANITIZE_RE.sub('_', customer_name)}_{number}.pdf"


def wrap_lines(text: str, font: str, size: float, width_mm: float, max_lines: int = NAME_MAX_LINES) -> List[str]:
    """Wrap to ``width_mm``; anything past ``max_lines`` lines is dropped."""
    lines = simpleSplit(text or "", font, size, width_mm * mm)
    return lines[:max_lines] or [""]


def flatten_image(image: Image.Image) -> Image.Image:
    """RGB on white, for embedding."""
    if image.mode in ('RGBA', 'LA', 'P'):
        rgba = image.convert('RGBA')
        background = Image.new('RGB', rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[3])
        return background
    return image.convert('RGB')


class Section(IntEnum):
    HEADER = 1
    CUSTOMER = 2
    PRODUCT = 3
    PRICE = 4
    SUMMARY = 5
    TERMS = 6
    FINALIZED = 7


@dataclass
class DocumentCursor:
    """Vertical position (mm from page top) and 1-based page index."""
    top: float = TOP_MARGIN
    bottom: float = BOTTOM_LIMIT
    y: float = TOP_MARGIN
    page: int = 1

    @property
    def usable_height(self) -> float:
        return self.bottom - self.top

    def fits(self, height: float) -> bool:
        return self.y + height <= self.bottom

    def advance(self, height: float) -> None:
        self.y += height

    def new_page(self) -> None:
        self.page += 1
        self.y = self.top


class OfferRequest(BaseModel):
    """Everything needed to lay out one offer"""
    customer_name: str
    items: List[QuoteLineItem]
    margin_percent: Optional[float] = None
    margin_multiplier: Optional[float] = None
    tax_rate: Optional[float] = None
    selected_views: List[str] = Field(default_factory=list)

    def validate_for_layout(self) -> None:
        if not self.customer_name or not self.customer_name.strip():
            raise MissingCustomerNameError()
        if not self.items:
            raise ValidationError("The quote has no line items",
                                  suggestions=["Add at least one product to the quote"])
        if self.margin_percent is not None and self.margin_multiplier is not None:
            raise ValidationError(
                "Give either a margin percentage or a margin multiplier, not both",
                details={'margin_percent': self.margin_percent, 'margin_multiplier': self.margin_multiplier}
            )

    def unit_pricer(self):
        if self.margin_multiplier is not None:
            return multiplier_pricer(self.margin_multiplier)
        if self.margin_percent is not None:
            return margin_percent_pricer(self.margin_percent)
        return base_unit_price


@dataclass
class OfferDocument:
    filename: str
    pdf_bytes: bytes
    quote_number: str
    page_count: int
    totals: DocumentTotals
    archived_url: Optional[str] = None
    skipped_images: List[str] = field(default_factory=list)


class DocumentLayoutEngine:
    """
    Renders one offer onto a reportlab canvas.

    Sections are written strictly in order. Each section starts at the
    cursor and moves it down by what it drew. Page breaks are only taken
    at checkpoints, so a block that was allowed to start may run slightly
    past the bottom limit rather than be split.
    """

    def __init__(self,
                 pdf: pdf_canvas.Canvas,
                 loader: ImageLoader,
                 company_name: str = "Kosta Nada Profil AB",
                 company_logo: Optional[str] = None,
                 terms: List[str] = None,
                 embed_timeout_ms: int = EMBED_TIMEOUT_MS):
        self.pdf = pdf
        self.loader = loader
        self.company_name = company_name
        self.company_logo = company_logo
        self.terms = list(DEFAULT_TERMS if terms is None else terms)
        self.embed_timeout_ms = embed_timeout_ms

        self.cursor = DocumentCursor()
        self.section: Optional[Section] = None
        self.skipped_images: List[str] = []
        self.footer_text = ""

    # -- state machine -------------------------------------------------

    def enter(self, section: Section) -> None:
        if self.section is not None and (
            section < self.section or (section == self.section and section != Section.PRODUCT)
        ):
            raise RuntimeError(f"Cannot move from {self.section.name} to {section.name}")
        logger.debug(f"Section {section.name} at page {self.cursor.page}, y={self.cursor.y:.1f}mm")
        self.section = section

    def checkpoint(self, height: float) -> bool:
        """Break the page if ``height`` more millimetres would not fit."""
        if self.cursor.fits(height):
            return False
        self.page_break()
        return True

    def page_break(self) -> None:
        self._draw_footer()
        self.pdf.showPage()
        self.cursor.new_page()
        logger.debug(f"Page break, now on page {self.cursor.page}")

    # -- drawing primitives (mm, measured from the top) ----------------

    def text(self, x, y, value, size=10, bold=False, align="left", color=TEXT_COLOR):
        self.pdf.setFont(FONT_BOLD if bold else FONT, size)
        self.pdf.setFillColor(color)
        px, py = x * mm, PAGE_HEIGHT - y * mm
        value = str(value) if value is not None else ""
        if align == "center":
            self.pdf.drawCentredString(px, py, value)
        elif align == "right":
            self.pdf.drawRightString(px, py, value)
        else:
            self.pdf.drawString(px, py, value)

    def rect(self, x, y, width, height, fill_color=None, stroke_color=None):
        if fill_color is not None:
            self.pdf.setFillColor(fill_color)
        if stroke_color is not None:
            self.pdf.setStrokeColor(stroke_color)
            self.pdf.setLineWidth(0.5)
        self.pdf.rect(x * mm, PAGE_HEIGHT - (y + height) * mm, width * mm, height * mm,
                      fill=1 if fill_color is not None else 0,
                      stroke=1 if stroke_color is not None else 0)

    def hline(self, x1, x2, y, color=RULE_COLOR, width=0.5):
        self.pdf.setStrokeColor(color)
        self.pdf.setLineWidth(width)
        self.pdf.line(x1 * mm, PAGE_HEIGHT - y * mm, x2 * mm, PAGE_HEIGHT - y * mm)

    def draw_image(self, image: Image.Image, x, y, width, height, border=True):
        """Fit ``image`` centred in the box, keeping its aspect ratio."""
        if border:
            self.rect(x, y, width, height, fill_color=colors.white, stroke_color=BORDER_COLOR)
        self.pdf.drawImage(
            ImageReader(flatten_image(image)),
            x * mm, PAGE_HEIGHT - (y + height) * mm, width * mm, height * mm,
            preserveAspectRatio=True, anchor='c'
        )

    def _draw_footer(self):
        if self.footer_text:
            self.text(PAGE_WIDTH_MM / 2, FOOTER_Y, f"{self.footer_text} | Sida {self.cursor.page}",
                      size=8, align="center", color=MUTED_COLOR)

    # -- image loading -------------------------------------------------

    async def load_optional(self, url: str, timeout_ms: int = None) -> Optional[Image.Image]:
        """Load an embed; failures are logged and recorded, never raised."""
        try:
            return await self.loader.load(url, timeout_ms or self.embed_timeout_ms)
        except LoadError as e:
            logger.warning(f"Skipping image in offer: {e}")
            self.skipped_images.append(url)
            return None

    async def load_view(self, item: QuoteLineItem, label: str) -> ViewImage:
        direct = item.product.angle_images.get(label)
        if direct:
            image = await self.load_optional(direct)
            if image is not None:
                return ViewImage(label=label, image=image, url=direct)
            return ViewImage(label=label, image=placeholder_glyph(label))

        angle = resolve(item.product.image_url, [label]).get(label)
        if angle is None:
            return ViewImage(label=label, image=placeholder_glyph(label))

        view = await load_view_image(self.loader, angle, self.embed_timeout_ms)
        if view.is_placeholder:
            self.skipped_images.append(angle.long)
        return view

    # -- sections ------------------------------------------------------

    async def render_header(self, number: str, issued: str):
        self.enter(Section.HEADER)
        self.footer_text = f"{self.company_name} | Offert {number}"

        if self.company_logo:
            logo = await self.load_optional(self.company_logo, COMPANY_LOGO_TIMEOUT_MS)
            if logo is not None:
                self.draw_image(logo, MARGIN, 15, 20, 20, border=False)

        self.text(45, 25, self.company_name, size=16, bold=True)
        self.text(PAGE_WIDTH_MM / 2, 50, "OFFERT", size=24, bold=True, align="center")
        self.text(PAGE_WIDTH_MM / 2 - 25, 60, f"Datum: {issued}", size=10, align="center")
        self.text(PAGE_WIDTH_MM / 2 + 25, 60, f"Offertnummer: {number}", size=10, align="center")
        self.cursor.y = 70

    def render_customer(self, customer_name: str):
        self.enter(Section.CUSTOMER)
        y = self.cursor.y
        self.rect(MARGIN, y, CONTENT_WIDTH, 18, fill_color=colors.HexColor("#f8f9fa"), stroke_color=BORDER_COLOR)
        self.text(MARGIN + 4, y + 7, "Kund:", size=12, bold=True)
        self.text(MARGIN + 4, y + 14, customer_name, size=11)
        self.cursor.advance(26)

    async def render_product(self, item: QuoteLineItem, first: bool = False):
        self.enter(Section.PRODUCT)
        image_url = item.display_image_url
        block = PRODUCT_BLOCK_HEIGHT if image_url else PRODUCT_TEXT_BLOCK_HEIGHT

        self.checkpoint(block + (SECTION_HEADING_HEIGHT if first else 0))
        if first:
            self.text(MARGIN, self.cursor.y + 5, "Produktinformation", size=14, bold=True)
            self.cursor.advance(SECTION_HEADING_HEIGHT)

        y = self.cursor.y
        details_x = DETAILS_X if image_url else MARGIN
        if image_url:
            image = await self.load_optional(image_url)
            if image is not None:
                self.draw_image(image, MARGIN, y, IMAGE_SIZE, IMAGE_SIZE)

        product = item.product
        line_y = y + 8
        for line in wrap_lines(product.name, FONT_BOLD, 13, DETAILS_WIDTH if image_url else CONTENT_WIDTH):
            self.text(details_x, line_y, line, size=13, bold=True)
            line_y += 6
        line_y += 3

        details = [f"Artikelnummer: {product.id}"]
        if product.category:
            details.append(f"Kategori: {product.category}")
        if product.brand:
            details.append(f"Varumärke: {product.brand}")
        details.append(f"Antal: {item.quantity}")
        for line in details:
            self.text(details_x, line_y, line, size=10)
            line_y += 7

        self.cursor.advance(block)
        await self.render_angle_grid(item)

    async def render_angle_grid(self, item: QuoteLineItem):
        labels = []
        for view in item.selected_views:
            label = normalize_view(view)
            if label and label not in labels:
                labels.append(label)
        if not labels:
            return
        labels.sort(key=VIEW_ORDER.index)

        self.checkpoint(SECTION_HEADING_HEIGHT + GRID_ROW_HEIGHT)
        self.text(MARGIN, self.cursor.y + 5, "Produktvinklar", size=14, bold=True)
        self.cursor.advance(SECTION_HEADING_HEIGHT)

        for start in range(0, len(labels), GRID_PER_ROW):
            self.checkpoint(GRID_ROW_HEIGHT)
            y = self.cursor.y
            for col, label in enumerate(labels[start:start + GRID_PER_ROW]):
                x = MARGIN + col * (GRID_CELL + GRID_GAP)
                view = await self.load_view(item, label)
                self.draw_image(view.image, x, y, GRID_CELL, GRID_CELL)
                self.text(x + GRID_CELL / 2, y + GRID_CELL + 5, view_label_sv(label), size=9, align="center")
            self.cursor.advance(GRID_ROW_HEIGHT)

    def _draw_table_header(self):
        y = self.cursor.y
        self.rect(MARGIN, y, CONTENT_WIDTH, TABLE_HEADER_HEIGHT, fill_color=FILL_COLOR)
        for x, title in ((COL_ARTICLE, "Artikelnummer"), (COL_NAME, "Benämning"),
                         (COL_UNIT, "Pris/st (inkl. moms)"), (COL_QTY, "Antal"), (COL_TOTAL, "Totalpris")):
            self.text(x, y + 5.5, title, size=9, bold=True)
        self.cursor.advance(TABLE_HEADER_HEIGHT)

    def render_price_table(self, items: List[QuoteLineItem], unit_price, tax_rate: float):
        self.enter(Section.PRICE)

        for index, item in enumerate(items):
            name_lines = wrap_lines(item.product.name, FONT, 9, NAME_WIDTH)
            row_height = ROW_PADDING + ROW_LINE_HEIGHT * len(name_lines)

            if index == 0:
                self.checkpoint(SECTION_HEADING_HEIGHT + TABLE_HEADER_HEIGHT + row_height)
                self.text(MARGIN, self.cursor.y + 5, "Prissättning", size=14, bold=True)
                self.cursor.advance(SECTION_HEADING_HEIGHT)
                self._draw_table_header()
            elif self.checkpoint(row_height):
                self._draw_table_header()

            y = self.cursor.y
            if index % 2 == 1:
                self.rect(MARGIN, y, CONTENT_WIDTH, row_height, fill_color=colors.HexColor("#f8f9fa"))

            if item.product.has_price:
                unit_inc = apply_tax(unit_price(item), tax_rate)
                unit_text = format_money(unit_inc)
                total_text = format_money(line_total(unit_inc, item.quantity))
            else:
                unit_text = total_text = format_price(None)

            text_y = y + 5
            self.text(COL_ARTICLE, text_y, item.product.id, size=9)
            for offset, line in enumerate(name_lines):
                self.text(COL_NAME, text_y + offset * ROW_LINE_HEIGHT, line, size=9)
            self.text(COL_UNIT, text_y, unit_text, size=9)
            self.text(COL_QTY, text_y, item.quantity, size=9)
            self.text(COL_TOTAL, text_y, total_text, size=9)
            self.cursor.advance(row_height)

        self.cursor.advance(6)

    def render_summary(self, totals: DocumentTotals):
        self.enter(Section.SUMMARY)
        self.checkpoint(SUMMARY_HEIGHT)

        y = self.cursor.y
        self.hline(120, PAGE_WIDTH_MM - MARGIN, y)
        self.text(120, y + 8, "Subtotal (exkl. moms):", size=10)
        self.text(PAGE_WIDTH_MM - MARGIN, y + 8, format_money(totals.subtotal_ex_tax), size=10, align="right")
        self.text(120, y + 15, f"Moms ({format_tax_rate(totals.tax_rate)}):", size=10)
        self.text(PAGE_WIDTH_MM - MARGIN, y + 15, format_money(totals.tax_amount), size=10, align="right")
        self.hline(120, PAGE_WIDTH_MM - MARGIN, y + 19, width=0.3)
        self.text(120, y + 26, "TOTALT (inkl. moms):", size=11, bold=True)
        self.text(PAGE_WIDTH_MM - MARGIN, y + 26, format_money(totals.total_inc_tax), size=11, bold=True,
                  align="right")
        self.cursor.advance(SUMMARY_HEIGHT)

    def render_terms(self):
        self.enter(Section.TERMS)
        height = 7 + TERMS_LINE_HEIGHT * len(self.terms)
        self.checkpoint(height)

        y = self.cursor.y
        self.text(MARGIN, y + 4, "Villkor och bestämmelser:", size=10, bold=True, color=MUTED_COLOR)
        y += 10
        for term in self.terms:
            self.text(MARGIN, y, f"• {term}", size=9, color=MUTED_COLOR)
            y += TERMS_LINE_HEIGHT
        self.cursor.advance(height)

    def finalize(self) -> int:
        self.enter(Section.FINALIZED)
        self._draw_footer()
        self.pdf.showPage()
        self.pdf.save()
        return self.cursor.page

    async def render(self, request: OfferRequest, number: str, issued: str) -> DocumentTotals:
        """Lay out the whole offer and finalize the canvas."""
        unit_price = request.unit_pricer()
        tax_rate = DEFAULT_TAX_RATE if request.tax_rate is None else request.tax_rate
        items = list(request.items)
        if request.selected_views:
            items = [
                item if item.selected_views else item.model_copy(update={'selected_views': request.selected_views})
                for item in items
            ]

        await self.render_header(number, issued)
        self.render_customer(request.customer_name.strip())
        for index, item in enumerate(items):
            await self.render_product(item, first=index == 0)
        self.render_price_table(items, unit_price, tax_rate)

        totals = document_totals(items, tax_rate, unit_price)
        self.render_summary(totals)
        self.render_terms()
        self.finalize()
        return totals


class OfferDocumentBuilder:
    """Builds offer PDFs and archives a copy to blob storage."""

    def __init__(self,
                 loader: ImageLoader = None,
                 store: Optional[BlobStore] = None,
                 company_name: str = "Kosta Nada Profil AB",
                 company_logo: Optional[str] = None,
                 quote_prefix: str = "OFF",
                 terms: List[str] = None,
                 offer_bucket: str = "Offers",
                 embed_timeout_ms: int = EMBED_TIMEOUT_MS,
                 tax_rate: float = DEFAULT_TAX_RATE,
                 default_margin_percent: Optional[float] = None,
                 clock=None,
                 compress: bool = True):
        self.loader = loader or ImageLoader()
        self.store = store
        self.company_name = company_name
        self.company_logo = company_logo
        self.quote_prefix = quote_prefix
        self.terms = terms
        self.offer_bucket = offer_bucket
        self.embed_timeout_ms = embed_timeout_ms
        self.tax_rate = tax_rate
        self.default_margin_percent = default_margin_percent
        self.clock = clock or (lambda: int(time.time() * 1000))
        self.compress = compress

    @classmethod
    def from_config(cls, config, loader: ImageLoader = None, store: BlobStore = None) -> 'OfferDocumentBuilder':
        return cls(
            loader=loader or ImageLoader(config.IMAGE_TIMEOUT_MS),
            store=store,
            company_name=config.COMPANY_NAME,
            company_logo=config.COMPANY_LOGO,
            quote_prefix=config.QUOTE_PREFIX,
            terms=config.TERMS,
            offer_bucket=config.OFFER_BUCKET,
            embed_timeout_ms=config.IMAGE_TIMEOUT_MS,
            tax_rate=config.TAX_RATE,
            default_margin_percent=config.DEFAULT_MARGIN_PERCENT,
        )

    async def archive(self, filename: str, pdf_bytes: bytes) -> Optional[str]:
        """Store a copy of the finished offer; failures are logged only."""
        if self.store is None:
            return None
        try:
            url = await asyncio.to_thread(
                self.store.upload_and_get_url, self.offer_bucket, filename, pdf_bytes, "application/pdf", False
            )
        except PersistError as e:
            logger.warning(f"Could not archive {filename}: {e}")
            return None
        logger.info(f"Archived offer to {self.offer_bucket}/{filename}")
        return url

    def apply_defaults(self, request: OfferRequest) -> OfferRequest:
        """Fill in the tax rate and margin a request leaves open."""
        updates = {}
        if request.tax_rate is None:
            updates['tax_rate'] = self.tax_rate
        if (request.margin_percent is None and request.margin_multiplier is None
                and self.default_margin_percent is not None):
            updates['margin_percent'] = self.default_margin_percent
        return request.model_copy(update=updates) if updates else request

    async def generate(self, request: OfferRequest) -> OfferDocument:
        request.validate_for_layout()
        request = self.apply_defaults(request)

        millis = self.clock()
        number = quote_number(self.quote_prefix, millis)
        issued = datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d")

        buffer = io.BytesIO()
        pdf = pdf_canvas.Canvas(buffer, pagesize=A4, pageCompression=1 if self.compress else 0)
        pdf.setTitle(f"Offert {number}")
        pdf.setAuthor(self.company_name)

        engine = DocumentLayoutEngine(
            pdf, self.loader,
            company_name=self.company_name,
            company_logo=self.company_logo,
            terms=self.terms,
            embed_timeout_ms=self.embed_timeout_ms,
        )
        totals = await engine.render(request, number, issued)
        pdf_bytes = buffer.getvalue()

        filename = offer_filename(request.customer_name.strip(), number)
        logger.info(
            f"Generated {filename}: {len(request.items)} line(s), {engine.cursor.page} page(s), "
            f"total {format_money(totals.total_inc_tax)}"
        )
        if engine.skipped_images:
            logger.warning(f"{len(engine.skipped_images)} image(s) left out of {filename}")

        archived_url = await self.archive(filename, pdf_bytes)
        return OfferDocument(
            filename=filename,
            pdf_bytes=pdf_bytes,
            quote_number=number,
            page_count=engine.cursor.page,
            totals=totals,
            archived_url=archived_url,
            skipped_images=list(engine.skipped_images),
        )
