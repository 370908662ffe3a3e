"""
Document Engine — printable PDFs built from collated order rows.

Documents:
  - technical_card  production sheet: rows with dimensions and quantities, no prices
  - invoice         dealer invoice: dealer header, priced rows, total to pay
  - receipt         cash receipt: priced rows, paid total

Rows come from collation_engine.collate_for_printing. Rendering returns the PDF
bytes; save() writes them under DOWNLOAD_DIR and returns the path.
"""
import io
import logging
import os
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from app.models.pricing_models import Dealer, Order
from app.services.collation_engine import PrintRow, summarize
from app.services.money import format_money

logger = logging.getLogger("sash-documents")

DOWNLOAD_DIR = os.getenv("DOWNLOAD_DIR", "/tmp/downloads")
DEFAULT_COMPANY_NAME = os.getenv("COMPANY_NAME", "Window Coverings Workshop")
# TTF with Cyrillic glyphs; the built-in Helvetica has none
PDF_FONT_PATH = os.getenv("PDF_FONT_PATH", "")

_FONT_REGULAR = "Helvetica"
_FONT_BOLD = "Helvetica-Bold"


class DocumentType(str, Enum):
    TECHNICAL_CARD = "technical_card"
    INVOICE = "invoice"
    RECEIPT = "receipt"


_TITLES = {
    DocumentType.TECHNICAL_CARD: "Техническая карта",
    DocumentType.INVOICE: "Счет",
    DocumentType.RECEIPT: "Квитанция",
}


def _fonts() -> tuple:
    """(regular, bold) font names, registering PDF_FONT_PATH once if configured."""
    if not PDF_FONT_PATH:
        return _FONT_REGULAR, _FONT_BOLD
    from reportlab.pdfbase import pdfmetrics
    from reportlab.pdfbase.ttfonts import TTFont
    if "DocFont" not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(TTFont("DocFont", PDF_FONT_PATH))
    return "DocFont", "DocFont"


def _draw_header(c, page_w, page_h, company_name: str, title: str, fonts: tuple):
    from reportlab.lib.units import cm
    regular, bold = fonts
    c.setFillColorRGB(0.08, 0.08, 0.12)
    c.rect(0, page_h - 2.5*cm, page_w, 2.5*cm, fill=1, stroke=0)
    c.setFillColorRGB(1, 1, 1)
    c.setFont(bold, 13)
    c.drawString(1.5*cm, page_h - 1.3*cm, company_name)
    c.setFont(regular, 9)
    c.drawString(1.5*cm, page_h - 1.9*cm, title)
    c.setFillColorRGB(0, 0, 0)


def _draw_footer(c, page_w, page_num: int, fonts: tuple):
    from reportlab.lib.units import cm
    c.setFillColorRGB(0.5, 0.5, 0.5)
    c.setFont(fonts[0], 7)
    c.drawRightString(page_w - 1.5*cm, 0.8*cm, f"{page_num}")
    c.setStrokeColorRGB(0.7, 0.7, 0.7)
    c.line(1.5*cm, 1.2*cm, page_w - 1.5*cm, 1.2*cm)
    c.setStrokeColorRGB(0, 0, 0)


class DocumentEngine:

    def __init__(self, company_settings: Optional[Dict[str, Any]] = None):
        cs = company_settings or {}
        self.company_name = cs.get("company_name", DEFAULT_COMPANY_NAME)
        self.currency = cs.get("currency", "₸")

    def render(
        self,
        order: Order,
        rows: List[PrintRow],
        doc_type: DocumentType,
        dealer: Optional[Dealer] = None,
    ) -> bytes:
        from reportlab.pdfgen import canvas as rl_canvas
        from reportlab.lib.pagesizes import A4
        from reportlab.lib.units import cm

        doc_type = DocumentType(doc_type)
        fonts = _fonts()
        regular, bold = fonts
        show_prices = doc_type is not DocumentType.TECHNICAL_CARD
        title = f"{_TITLES[doc_type]} #{order.order_number or '-'}"

        buffer = io.BytesIO()
        page_w, page_h = A4
        c = rl_canvas.Canvas(buffer, pagesize=A4)
        c.setTitle(title)

        def new_page() -> float:
            _draw_header(c, page_w, page_h, self.company_name, title, fonts)
            _draw_footer(c, page_w, c.getPageNumber(), fonts)
            return page_h - 3.5*cm

        y = new_page()
        c.setFont(bold, 14)
        c.drawString(1.5*cm, y, title)
        y -= 0.7*cm
        c.setFont(regular, 9)
        order_date = order.date or date.today()
        c.drawString(1.5*cm, y, f"Дата: {order_date.strftime('%d.%m.%Y')}")
        if doc_type is DocumentType.INVOICE:
            y -= 0.5*cm
            dealer_text = dealer.full_name if dealer else "-"
            if dealer and dealer.phone:
                dealer_text += f", {dealer.phone}"
            c.drawString(1.5*cm, y, f"Дилер: {dealer_text}")

        # Table
        y -= 1.0*cm
        columns = [(1.5*cm, "Позиция"), (10*cm, "Размер"), (13*cm, "Кол-во")]
        if show_prices:
            columns += [(15*cm, "Цена"), (17.5*cm, "Сумма")]
        c.setFont(bold, 9)
        for x, label in columns:
            c.drawString(x, y, label)
        y -= 0.2*cm
        c.line(1.5*cm, y, page_w - 1.5*cm, y)
        y -= 0.5*cm

        c.setFont(regular, 9)
        for row in rows:
            if y < 2.5*cm:
                c.showPage()
                y = new_page()
                c.setFont(regular, 9)
            c.drawString(1.5*cm, y, row.description[:60])
            c.drawString(10*cm, y, row.dimensions or "")
            c.drawString(13*cm, y, f"{format(row.quantity.normalize(), 'f')} {row.unit}")
            if show_prices:
                c.drawString(15*cm, y, format_money(row.unit_price, "") if row.unit_price is not None else "-")
                c.drawString(17.5*cm, y, format_money(row.line_total, "") if row.line_total is not None else "-")
            y -= 0.5*cm

        totals = summarize(rows)
        y -= 0.5*cm
        c.setFont(bold, 11)
        c.drawString(1.5*cm, y, f"Всего: {format(totals['total_quantity'].normalize(), 'f')}")
        if show_prices:
            label = "Итого к оплате" if doc_type is DocumentType.INVOICE else "Оплачено"
            c.drawRightString(page_w - 1.5*cm, y, f"{label}: {format_money(order.sale_price, self.currency)}")
            if any(r.price_is_estimated for r in rows):
                y -= 0.5*cm
                c.setFont(regular, 7)
                c.setFillColorRGB(0.4, 0.4, 0.4)
                c.drawString(1.5*cm, y, "* цена за единицу рассчитана из суммы заказа")
        c.save()
        return buffer.getvalue()

    def save(
        self,
        order: Order,
        rows: List[PrintRow],
        doc_type: DocumentType,
        dealer: Optional[Dealer] = None,
    ) -> str:
        os.makedirs(DOWNLOAD_DIR, exist_ok=True)
        doc_type = DocumentType(doc_type)
        filename = f"{doc_type.value}_{order.order_number or order.id or 'draft'}.pdf"
        path = os.path.join(DOWNLOAD_DIR, filename)
        with open(path, "wb") as fh:
            fh.write(self.render(order, rows, doc_type, dealer))
        logger.info(f"Document written: {path}", extra={"order_id": order.id})
        return path
