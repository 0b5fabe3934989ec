"""
test_report_engine.py — Quote PDF rendering.

The renderer only reads attributes, so plain namespaces stand in for ORM rows.
"""

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from steelworks.services.report_engine import QuoteReportEngine, fmt_gbp


def _quote(**overrides):
    fields = dict(
        id="q-1",
        quote_number="Q-1001",
        revision_number=0,
        subject="Mezzanine floor",
        notes="Price excludes builder's work.\nDelivery to site included.",
        created_at=datetime(2025, 1, 6, 9, 0),
        valid_until=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _line(description, unit_cost, margin, sell, quantity=1, optional=False, dimensions=None):
    return SimpleNamespace(
        description=description,
        dimensions=dimensions,
        quantity=quantity,
        units="nr",
        unit_cost=Decimal(str(unit_cost)),
        margin_percent=Decimal(str(margin)),
        cost_total=Decimal(str(unit_cost)) * quantity,
        sell_price=Decimal(str(sell)),
        is_optional=optional,
    )


@pytest.fixture
def customer_row():
    return SimpleNamespace(
        name="Northgate Construction Ltd",
        address="1 Quay Street, Hull",
        email="buying@northgate.example",
        phone=None,
    )


class TestQuotePdf:

    def test_renders_pdf_bytes(self, customer_row):
        lines = [
            _line("Steel beam UB 305x165x40", 1000, 30, 1425, dimensions="6.0 m"),
            _line("Column UC 203x203x46", 750, 25, 1000),
            _line("Galvanising", 2000, 25, 2675, optional=True),
        ]
        pdf = QuoteReportEngine().render_quote_pdf(_quote(), lines, customer_row)
        assert pdf.startswith(b"%PDF")
        assert len(pdf) > 1000

    def test_renders_without_customer_or_lines(self):
        pdf = QuoteReportEngine(company_name="Acme Steel", strapline="Fabricators").render_quote_pdf(
            _quote(notes=None, subject=None), [], None,
        )
        assert pdf.startswith(b"%PDF")

    def test_long_quote_spills_onto_more_pages(self, customer_row):
        lines = [_line(f"Bracket {i}", 100, 30, 150) for i in range(120)]
        short = QuoteReportEngine().render_quote_pdf(_quote(), lines[:2], customer_row)
        long = QuoteReportEngine().render_quote_pdf(_quote(), lines, customer_row)
        assert long.count(b"/Type /Page") > short.count(b"/Type /Page")

    def test_explicit_valid_until(self, customer_row):
        pdf = QuoteReportEngine().render_quote_pdf(
            _quote(valid_until=date(2025, 2, 28)), [_line("Plate", 50, 40, 75)], customer_row,
        )
        assert pdf.startswith(b"%PDF")


class TestFormatting:

    @pytest.mark.parametrize("value, expected", [
        (Decimal("1425"), "£1,425.00"),
        (0, "£0.00"),
        (None, "£0.00"),
        (1234567.891, "£1,234,567.89"),
    ])
    def test_fmt_gbp(self, value, expected):
        assert fmt_gbp(value) == expected
