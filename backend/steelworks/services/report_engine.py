"""
Report Engine — customer-facing quotation PDF.

Layout (A4, reportlab canvas):
  - Branded header bar and page footer on every page
  - Quote details (number, revision, dates, subject) beside the customer block
  - Main lines table with subtotal
  - Optional extras table (priced per line, excluded from the total)
  - Grand total and overall margin, then notes

The PDF is built in memory and returned as bytes for the HTTP response.
"""
import io
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, List, Optional

from steelworks.config import COMPANY_NAME, COMPANY_STRAPLINE
from steelworks.services.pricing_engine import PricingEngine, default_pricing_engine

logger = logging.getLogger("steelworks-report")

VALIDITY_DAYS = 30
THEME_RGB = (0.12, 0.25, 0.69)      # #1e40af
MUTED_RGB = (0.42, 0.45, 0.50)
TEXT_RGB = (0.08, 0.08, 0.12)

# Column x positions in cm, right edges for numeric columns
_COL_DESC = 1.5
_COL_QTY = 10.6
_COL_UNIT = 12.8
_COL_MARGIN = 14.4
_COL_RATE = 16.7
_COL_TOTAL = 19.5


def fmt_gbp(value: Any) -> str:
    return f"£{float(value or 0):,.2f}"


def _fmt_date(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.strftime("%d/%m/%Y")
    return ""


# ── PDF helpers ───────────────────────────────────────────────────────────────

def _draw_header(c, page_w, page_h, company_name: str = None, strapline: str = None):
    from reportlab.lib.units import cm
    c.setFillColorRGB(*THEME_RGB)
    c.rect(0, page_h - 2.6*cm, page_w, 2.6*cm, fill=1, stroke=0)
    c.setFillColorRGB(1, 1, 1)
    c.setFont("Helvetica-Bold", 16)
    c.drawCentredString(page_w / 2, page_h - 1.4*cm, company_name or COMPANY_NAME)
    c.setFont("Helvetica", 9)
    c.drawCentredString(page_w / 2, page_h - 2.0*cm, strapline or COMPANY_STRAPLINE)
    c.setFillColorRGB(0, 0, 0)


def _draw_footer(c, page_w, page_num: int, company_name: str = None, strapline: str = None):
    from reportlab.lib.units import cm
    c.setStrokeColorRGB(0.9, 0.91, 0.92)
    c.line(1.5*cm, 1.4*cm, page_w - 1.5*cm, 1.4*cm)
    c.setFillColorRGB(0.61, 0.64, 0.69)
    c.setFont("Helvetica", 7)
    c.drawCentredString(page_w / 2, 1.0*cm,
                        f"{company_name or COMPANY_NAME} | {strapline or COMPANY_STRAPLINE}")
    c.drawCentredString(page_w / 2, 0.6*cm,
                        f"This quotation is valid for {VALIDITY_DAYS} days unless otherwise stated.")
    c.drawRightString(page_w - 1.5*cm, 0.6*cm, f"Page {page_num}")
    c.setFillColorRGB(0, 0, 0)


class QuoteReportEngine:

    def __init__(
        self,
        company_name: Optional[str] = None,
        strapline: Optional[str] = None,
        pricing_engine: PricingEngine = default_pricing_engine,
    ):
        self.company_name = company_name or COMPANY_NAME
        self.strapline = strapline or COMPANY_STRAPLINE
        self.pricing = pricing_engine

    def render_quote_pdf(self, quote: Any, lines: List[Any], customer: Any = None) -> bytes:
        """
        Render a quote with its lines. ``lines`` should already be ordered
        (main lines first); optional lines are split out here regardless.
        """
        from reportlab.pdfgen import canvas as rl_canvas
        from reportlab.lib.pagesizes import A4
        from reportlab.lib.units import cm

        buffer = io.BytesIO()
        page_w, page_h = A4
        c = rl_canvas.Canvas(buffer, pagesize=A4)
        c.setTitle(f"Quotation {quote.quote_number}")

        main_lines = [line for line in lines if not line.is_optional]
        optional_lines = [line for line in lines if line.is_optional]

        def new_page():
            c.showPage()
            self._page_chrome(c, page_w, page_h)
            return page_h - 3.6*cm

        self._page_chrome(c, page_w, page_h)
        y = page_h - 3.8*cm

        # Title + details
        c.setFillColorRGB(*THEME_RGB)
        c.setFont("Helvetica-Bold", 16)
        c.drawString(_COL_DESC*cm, y, "QUOTATION")
        y -= 0.8*cm

        created = quote.created_at or datetime.now()
        valid_until = quote.valid_until or (created + timedelta(days=VALIDITY_DAYS))
        details = [
            f"Quote Number: {quote.quote_number}",
            f"Revision: {quote.revision_number or 0}",
            f"Date: {_fmt_date(created)}",
            f"Valid Until: {_fmt_date(valid_until)}",
        ]
        if quote.subject:
            details.append(f"Subject: {quote.subject}")

        top_y = y
        c.setFillColorRGB(*TEXT_RGB)
        c.setFont("Helvetica", 10)
        for text in details:
            c.drawString(_COL_DESC*cm, y, text)
            y -= 0.45*cm

        if customer is not None:
            cy = top_y
            c.setFont("Helvetica-Bold", 10)
            c.drawString(11*cm, cy, "Customer:")
            c.setFont("Helvetica", 10)
            for text in (customer.name, customer.address, customer.email, customer.phone):
                if text:
                    cy -= 0.45*cm
                    c.drawString(11*cm, cy, str(text)[:60])
            y = min(y, cy - 0.45*cm)

        y -= 0.6*cm

        # Main lines
        y = self._draw_table_header(c, page_w, y)
        for line in main_lines:
            if y < 3*cm:
                y = self._draw_table_header(c, page_w, new_page())
            y = self._draw_line(c, line, y)

        totals = self.pricing.summarize_lines(lines)
        c.setStrokeColorRGB(*THEME_RGB)
        c.line(_COL_DESC*cm, y, page_w - 1.5*cm, y)
        y -= 0.5*cm
        c.setFillColorRGB(*THEME_RGB)
        c.setFont("Helvetica-Bold", 10)
        c.drawString(_COL_DESC*cm, y, "SUBTOTAL")
        c.drawRightString(_COL_TOTAL*cm, y, fmt_gbp(totals["total_sell"]))
        y -= 0.9*cm

        # Optional extras
        if optional_lines:
            if y < 4*cm:
                y = new_page()
            c.setFillColorRGB(*TEXT_RGB)
            c.setFont("Helvetica-Bold", 12)
            c.drawString(_COL_DESC*cm, y, "Optional Extras")
            y -= 0.5*cm
            y = self._draw_table_header(c, page_w, y)
            for line in optional_lines:
                if y < 3*cm:
                    y = self._draw_table_header(c, page_w, new_page())
                y = self._draw_line(c, line, y)
            y -= 0.4*cm

        # Grand total
        if y < 4*cm:
            y = new_page()
        c.setStrokeColorRGB(*THEME_RGB)
        c.setLineWidth(2)
        c.line(_COL_DESC*cm, y, page_w - 1.5*cm, y)
        c.setLineWidth(1)
        y -= 0.7*cm
        c.setFillColorRGB(*THEME_RGB)
        c.setFont("Helvetica-Bold", 14)
        c.drawString(_COL_DESC*cm, y, "TOTAL (Excl. VAT)")
        c.drawRightString(_COL_TOTAL*cm, y, fmt_gbp(totals["total_sell"]))
        y -= 0.5*cm
        c.setFillColorRGB(*MUTED_RGB)
        c.setFont("Helvetica", 9)
        c.drawString(_COL_DESC*cm, y, f"Overall Margin: {float(totals['overall_margin']):.1f}%")

        if quote.notes:
            y -= 1.0*cm
            if y < 3*cm:
                y = new_page()
            c.setFillColorRGB(*TEXT_RGB)
            c.setFont("Helvetica-Bold", 10)
            c.drawString(_COL_DESC*cm, y, "Notes:")
            c.setFont("Helvetica", 9)
            for text in str(quote.notes).splitlines():
                y -= 0.45*cm
                if y < 2*cm:
                    y = new_page()
                c.drawString(_COL_DESC*cm, y, text[:110])

        c.save()
        pdf = buffer.getvalue()
        logger.info(
            "Rendered quote PDF (%d lines, %d bytes)", len(lines), len(pdf),
            extra={"quote_id": getattr(quote, "id", None)},
        )
        return pdf

    # ── Drawing pieces ────────────────────────────────────────────────────────

    def _page_chrome(self, c, page_w, page_h):
        _draw_header(c, page_w, page_h, self.company_name, self.strapline)
        _draw_footer(c, page_w, c.getPageNumber(), self.company_name, self.strapline)

    def _draw_table_header(self, c, page_w, y):
        from reportlab.lib.units import cm
        c.setStrokeColorRGB(0.9, 0.91, 0.92)
        c.line(_COL_DESC*cm, y, page_w - 1.5*cm, y)
        y -= 0.45*cm
        c.setFillColorRGB(*MUTED_RGB)
        c.setFont("Helvetica-Bold", 8)
        c.drawString(_COL_DESC*cm, y, "DESCRIPTION")
        c.drawRightString(_COL_QTY*cm, y, "QTY")
        c.drawRightString(_COL_UNIT*cm, y, "UNIT COST")
        c.drawRightString(_COL_MARGIN*cm, y, "MARGIN")
        c.drawRightString(_COL_RATE*cm, y, "UNIT SELL")
        c.drawRightString(_COL_TOTAL*cm, y, "TOTAL")
        y -= 0.25*cm
        c.line(_COL_DESC*cm, y, page_w - 1.5*cm, y)
        return y - 0.45*cm

    def _draw_line(self, c, line, y):
        from reportlab.lib.units import cm
        unit_sell = self.pricing.compute_unit_sell_price(line.unit_cost, line.margin_percent)
        margin = Decimal(str(line.margin_percent or 0))

        c.setFillColorRGB(*TEXT_RGB)
        c.setFont("Helvetica", 9)
        c.drawString(_COL_DESC*cm, y, str(line.description)[:48])
        c.drawRightString(_COL_QTY*cm, y, f"{line.quantity} {line.units or ''}".strip())
        c.drawRightString(_COL_UNIT*cm, y, fmt_gbp(line.unit_cost))
        c.drawRightString(_COL_MARGIN*cm, y, f"{float(margin):.0f}%")
        c.drawRightString(_COL_RATE*cm, y, fmt_gbp(unit_sell))
        c.setFont("Helvetica-Bold", 9)
        c.drawRightString(_COL_TOTAL*cm, y, fmt_gbp(line.sell_price))
        if line.dimensions:
            y -= 0.38*cm
            c.setFillColorRGB(*MUTED_RGB)
            c.setFont("Helvetica", 8)
            c.drawString(_COL_DESC*cm, y, str(line.dimensions)[:60])
        return y - 0.55*cm
