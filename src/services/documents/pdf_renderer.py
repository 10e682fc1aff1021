"""
Invoice and Receipt Rendering

Documents are drawn directly on a reportlab canvas and returned as PDF
bytes. Three documents exist:
- sale invoice: line items, total, previous due, paid and net due
- payment receipt: previous due, amount received and remaining due
- customer statement: the customer's full history with signed due deltas

Branding (store name, address, phone, accent color, logo) comes from the
account's StoreSettings. The logo is passed in as bytes; fetching it from
its URL is the caller's job.

NOTE: The built-in Helvetica font has no Bengali glyphs. Set
PDF_FONT_PATH to a TTF font (e.g. Hind Siliguri) to render Bengali names.
StoreSettings.font is a CSS font-family for web invoices and is not read
here; reportlab needs a font file, not a family name.
"""

from datetime import datetime, timezone
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

import structlog
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from src.config import get_settings
from src.models.ledger import (
    Customer,
    StoreSettings,
    Transaction,
    TransactionKind,
    to_money,
)

logger = structlog.get_logger(__name__)

MARGIN = 40
LINE = 14
CUSTOM_FONT = "InvoiceFont"

KIND_LABELS = {
    TransactionKind.SALE: "Sale",
    TransactionKind.PAYMENT: "Payment",
    TransactionKind.OPENING_BALANCE: "Opening balance",
    TransactionKind.IMPORTED: "Imported",
}


class DocumentRenderError(Exception):
    """A PDF could not be produced."""
    pass


class _Page:
    """Cursor over a canvas that starts a new page when it runs out of room."""

    def __init__(self, pdf: canvas.Canvas, font: str, bold_font: str):
        self.pdf = pdf
        self.font = font
        self.bold_font = bold_font
        self.width, self.height = A4
        self.y = self.height - MARGIN

    def down(self, amount: float = LINE) -> None:
        self.y -= amount
        if self.y < MARGIN:
            self.pdf.showPage()
            self.y = self.height - MARGIN

    def text(self, x: float, value: str, size: int = 10, bold: bool = False) -> None:
        self.pdf.setFont(self.bold_font if bold else self.font, size)
        self.pdf.drawString(x, self.y, value)

    def right(self, x: float, value: str, size: int = 10, bold: bool = False) -> None:
        self.pdf.setFont(self.bold_font if bold else self.font, size)
        self.pdf.drawRightString(x, self.y, value)

    def rule(self, color=None) -> None:
        if color is not None:
            self.pdf.setStrokeColor(color)
        self.pdf.line(MARGIN, self.y, self.width - MARGIN, self.y)


class PdfRenderer:
    """
    Renders invoices, receipts and statements.

    Usage:
        renderer = PdfRenderer(store_settings)
        pdf = renderer.render_invoice(transaction, previous_due=Decimal("500"))
    """

    def __init__(
        self,
        store: StoreSettings,
        logo: Optional[bytes] = None,
        currency: Optional[str] = None,
        font_path: Optional[str] = None,
        tz: Optional[ZoneInfo] = None,
    ):
        app = get_settings().app
        self._store = store
        self._logo = logo
        self._currency = currency or app.currency_symbol
        self._tz = tz or ZoneInfo(app.report_timezone)
        self._font, self._bold_font = self._register_font(font_path or app.pdf_font_path)

    @staticmethod
    def _register_font(font_path: Optional[str]) -> tuple[str, str]:
        if not font_path:
            return "Helvetica", "Helvetica-Bold"
        if not Path(font_path).exists():
            raise DocumentRenderError(f"Font file not found: {font_path}")
        if CUSTOM_FONT not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(TTFont(CUSTOM_FONT, font_path))
        return CUSTOM_FONT, CUSTOM_FONT

    # -------------------------------------------------------------------------
    # Formatting
    # -------------------------------------------------------------------------

    def money(self, amount: Decimal) -> str:
        return f"{self._currency} {to_money(amount):,.2f}"

    def signed(self, amount: Decimal) -> str:
        sign = "+" if amount > 0 else ""
        return f"{sign}{to_money(amount):,.2f}"

    def local_date(self, moment: datetime) -> str:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self._tz).strftime("%d %b %Y")

    # -------------------------------------------------------------------------
    # Shared sections
    # -------------------------------------------------------------------------

    def _header(self, page: _Page, title: str) -> None:
        accent = HexColor(self._store.color)
        text_x = MARGIN

        if self._logo:
            try:
                image = ImageReader(BytesIO(self._logo))
                page.pdf.drawImage(
                    image,
                    MARGIN,
                    page.y - 36,
                    width=48,
                    height=48,
                    preserveAspectRatio=True,
                    mask="auto",
                )
                text_x = MARGIN + 60
            except Exception as e:
                logger.warning("logo_not_drawn", error=str(e))

        page.pdf.setFillColor(accent)
        page.text(text_x, self._store.name, size=18, bold=True)
        page.right(page.width - MARGIN, title, size=14, bold=True)
        page.pdf.setFillColor(HexColor("#1e293b"))
        page.down()
        if self._store.address:
            page.text(text_x, self._store.address, size=9)
            page.down(12)
        if self._store.phone:
            page.text(text_x, f"Phone: {self._store.phone}", size=9)
            page.down(12)
        page.down(10)
        page.rule(accent)
        page.down(20)

    def _party(self, page: _Page, name: str, phone: str, reference: str, moment: datetime) -> None:
        page.text(MARGIN, "Bill to", size=9)
        page.right(page.width - MARGIN, f"No: {reference}", size=9)
        page.down()
        page.text(MARGIN, name or "-", size=12, bold=True)
        page.right(page.width - MARGIN, f"Date: {self.local_date(moment)}", size=9)
        page.down()
        if phone:
            page.text(MARGIN, phone, size=9)
            page.down()
        page.down(10)

    def _summary_line(self, page: _Page, label: str, value: str, bold: bool = False) -> None:
        page.right(page.width - MARGIN - 110, label, bold=bold)
        page.right(page.width - MARGIN, value, bold=bold)
        page.down()

    def _finish(self, pdf: canvas.Canvas, buffer: BytesIO) -> bytes:
        pdf.showPage()
        pdf.save()
        return buffer.getvalue()

    def _canvas(self, title: str) -> tuple[canvas.Canvas, BytesIO, _Page]:
        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=A4)
        pdf.setTitle(title)
        pdf.setAuthor(self._store.name)
        return pdf, buffer, _Page(pdf, self._font, self._bold_font)

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def render_invoice(
        self,
        transaction: Transaction,
        previous_due: Decimal = Decimal("0"),
    ) -> bytes:
        """
        Render a sale invoice.

        Args:
            transaction: A sale entry
            previous_due: The customer's due before this sale

        Returns:
            PDF bytes
        """
        if transaction.kind != TransactionKind.SALE:
            raise DocumentRenderError(f"Cannot render an invoice for a {transaction.kind.value} entry")

        try:
            pdf, buffer, page = self._canvas(f"Invoice {transaction.id}")
            self._header(page, "INVOICE")
            self._party(
                page,
                transaction.customer_name,
                transaction.customer_phone,
                transaction.id,
                transaction.date,
            )

            right = page.width - MARGIN
            page.text(MARGIN, "Item", bold=True)
            page.right(right - 200, "Qty", bold=True)
            page.right(right - 100, "Rate", bold=True)
            page.right(right, "Amount", bold=True)
            page.down(6)
            page.rule()
            page.down()

            for item in transaction.items:
                page.text(MARGIN, item.product_name or item.product_id)
                page.right(right - 200, str(item.quantity))
                page.right(right - 100, self.money(item.unit_selling_price))
                page.right(right, self.money(item.total_price))
                page.down()

            page.down(6)
            page.rule()
            page.down(LINE + 4)

            net_due = previous_due + transaction.due_amount
            self._summary_line(page, "Total", self.money(transaction.total_amount))
            self._summary_line(page, "Previous due", self.money(previous_due))
            self._summary_line(page, "Paid", f"(-) {self.money(transaction.paid_amount)}")
            self._summary_line(page, "Net due", self.money(net_due), bold=True)

            page.down(20)
            page.text(MARGIN, "Thank you for your business!", size=9)
            return self._finish(pdf, buffer)
        except DocumentRenderError:
            raise
        except Exception as e:
            raise DocumentRenderError(f"Failed to render invoice: {e}")

    def render_receipt(
        self,
        transaction: Transaction,
        previous_due: Decimal,
    ) -> bytes:
        """Render a receipt for a payment entry."""
        if transaction.kind != TransactionKind.PAYMENT:
            raise DocumentRenderError(f"Cannot render a receipt for a {transaction.kind.value} entry")

        try:
            pdf, buffer, page = self._canvas(f"Receipt {transaction.id}")
            self._header(page, "PAYMENT RECEIPT")
            self._party(
                page,
                transaction.customer_name,
                transaction.customer_phone,
                transaction.id,
                transaction.date,
            )

            page.text(MARGIN, "Amount received", size=11)
            page.pdf.setFillColor(HexColor("#059669"))
            page.right(page.width - MARGIN, self.money(transaction.paid_amount), size=16, bold=True)
            page.pdf.setFillColor(HexColor("#1e293b"))
            page.down(LINE * 2)

            self._summary_line(page, "Previous due", self.money(previous_due))
            self._summary_line(page, "Paid", f"(-) {self.money(transaction.paid_amount)}")
            self._summary_line(page, "Remaining due", self.money(previous_due + transaction.due_amount), bold=True)

            return self._finish(pdf, buffer)
        except DocumentRenderError:
            raise
        except Exception as e:
            raise DocumentRenderError(f"Failed to render receipt: {e}")

    def render_statement(
        self,
        customer: Customer,
        history: list[Transaction],
    ) -> bytes:
        """
        Render a customer's statement.

        History is printed in the order given (newest first, as returned by
        customer_history).
        """
        try:
            pdf, buffer, page = self._canvas(f"Statement {customer.name}")
            self._header(page, "STATEMENT")
            self._party(page, customer.name, customer.phone, customer.id, datetime.now(timezone.utc))

            right = page.width - MARGIN
            page.text(MARGIN, "Date", bold=True)
            page.text(MARGIN + 90, "Entry", bold=True)
            page.right(right - 200, "Bill", bold=True)
            page.right(right - 100, "Paid", bold=True)
            page.right(right, "Due", bold=True)
            page.down(6)
            page.rule()
            page.down()

            if not history:
                page.text(MARGIN, "No entries yet.", size=9)
                page.down()

            for entry in history:
                page.text(MARGIN, self.local_date(entry.date), size=9)
                page.text(MARGIN + 90, KIND_LABELS[entry.kind], size=9)
                page.right(right - 200, self.money(entry.total_amount) if entry.total_amount > 0 else "-", size=9)
                page.right(right - 100, self.money(entry.paid_amount), size=9)
                page.right(right, self.signed(entry.due_amount), size=9)
                page.down()

            page.down(6)
            page.rule()
            page.down(LINE + 4)
            self._summary_line(page, "Total due", self.money(customer.total_due), bold=True)

            return self._finish(pdf, buffer)
        except Exception as e:
            raise DocumentRenderError(f"Failed to render statement: {e}")
