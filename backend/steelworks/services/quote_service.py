"""
Quote service — persistence around the PricingEngine.

Every line write (create, update, delete) re-derives the line's cost_total
and sell_price and then recomputes the parent quote's aggregates inside the
same transaction, so a committed quote always matches its lines.
"""
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from steelworks.config import (
    MARGIN_LIMIT,
    MONEY_LIMIT,
    QUOTE_NUMBER_START,
    UNIT_OPTIONS,
)
from steelworks.models.orm_models import CatalogueItem, Quote, QuoteLine
from steelworks.services.audit import log_audit, log_changes
from steelworks.services.errors import (
    InvalidValueError,
    MarginBelowFloorError,
    NotFoundError,
    ValidationMissingError,
)
from steelworks.services.pricing_engine import (
    PricingEngine,
    bounded_int,
    default_pricing_engine,
    ensure_within,
    parse_number_or,
)

logger = logging.getLogger("steelworks-quotes")

_QUOTE_NUMBER_RE = re.compile(r"^Q-(\d+)$")

# Fields whose change forces cost_total / sell_price to be re-derived
PRICING_FIELDS = ("quantity", "unit_cost", "margin_percent")

# Plain attributes copied from a request payload onto a line
_TEXT_FIELDS = ("description", "dimensions", "product_id", "catalogue_item_id")

_NO_DEVIATION = {"deviates": False, "percentage": 0, "direction": "none"}

# quotes.overall_margin is Numeric(8, 4)
_MARGIN_PLACES = Decimal("0.0001")


def _money(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_quote_or_404(db: AsyncSession, quote_id: str) -> Quote:
    quote = await db.get(Quote, quote_id)
    if quote is None:
        raise NotFoundError("Quote not found")
    return quote


async def get_line_or_404(db: AsyncSession, quote_id: str, line_id: str) -> QuoteLine:
    result = await db.execute(
        select(QuoteLine).where(QuoteLine.id == line_id, QuoteLine.quote_id == quote_id)
    )
    line = result.scalar_one_or_none()
    if line is None:
        raise NotFoundError("Quote line not found")
    return line


async def list_quote_lines(db: AsyncSession, quote_id: str) -> List[QuoteLine]:
    """Main lines first, then optional extras; each group by sort_order then age."""
    result = await db.execute(
        select(QuoteLine)
        .where(QuoteLine.quote_id == quote_id)
        .order_by(QuoteLine.is_optional, QuoteLine.sort_order, QuoteLine.created_at)
    )
    return list(result.scalars().all())


async def next_quote_number(db: AsyncSession) -> str:
    """Q-1001 for the first quote, then one past the highest number issued."""
    result = await db.execute(select(Quote.quote_number))
    highest = QUOTE_NUMBER_START - 1
    for (number,) in result.all():
        match = _QUOTE_NUMBER_RE.match(number or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"Q-{highest + 1:04d}"


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

async def recalculate_quote_totals(
    db: AsyncSession,
    quote_id: str,
    engine: PricingEngine = default_pricing_engine,
) -> Quote:
    """
    Recompute total_cost / total_sell / overall_margin from every line.

    Full recomputation, never incremental; running it twice changes nothing.
    """
    quote = await get_quote_or_404(db, quote_id)
    await db.flush()
    lines = await list_quote_lines(db, quote_id)
    totals = engine.summarize_lines(lines)
    totals["overall_margin"] = totals["overall_margin"].quantize(
        _MARGIN_PLACES, rounding=ROUND_HALF_UP
    )
    ensure_within("total_cost", totals["total_cost"], MONEY_LIMIT)
    ensure_within("total_sell", totals["total_sell"], MONEY_LIMIT)
    ensure_within("overall_margin", totals["overall_margin"], MARGIN_LIMIT)

    quote.total_cost = totals["total_cost"]
    quote.total_sell = totals["total_sell"]
    quote.overall_margin = totals["overall_margin"]
    quote.updated_at = datetime.now(timezone.utc)
    await db.flush()

    logger.debug(
        "Quote totals: cost=%s sell=%s margin=%.2f%%",
        totals["total_cost"], totals["total_sell"], totals["overall_margin"],
        extra={"quote_id": quote_id},
    )
    return quote


# ---------------------------------------------------------------------------
# Line writes
# ---------------------------------------------------------------------------

def _check_units(units: Any) -> str:
    units = str(units or "").strip() or "nr"
    if units not in UNIT_OPTIONS:
        raise InvalidValueError(f"Unknown units '{units}'", extra={"allowed": list(UNIT_OPTIONS)})
    return units


def _sort_order(value: Any) -> int:
    return bounded_int("sort_order", value, 0)


def _enforce_floor(
    engine: PricingEngine, quote_id: str, margin: Decimal, override: bool
) -> None:
    try:
        engine.enforce_margin_floor(margin, override=override)
    except MarginBelowFloorError:
        logger.info("Margin %s%% rejected (below floor)", margin, extra={"quote_id": quote_id})
        raise
    if override and engine.check_margin_floor(margin)["below_floor"]:
        logger.warning("Margin %s%% accepted under override", margin, extra={"quote_id": quote_id})


async def create_quote_line(
    db: AsyncSession,
    quote_id: str,
    payload: Mapping[str, Any],
    user: Any = None,
    engine: PricingEngine = default_pricing_engine,
) -> QuoteLine:
    await get_quote_or_404(db, quote_id)

    description = (payload.get("description") or "").strip()
    if not description:
        raise ValidationMissingError("description is required")

    priced = engine.price_line(
        payload.get("unit_cost"), payload.get("quantity"), payload.get("margin_percent")
    )
    override = bool(payload.get("margin_override"))
    _enforce_floor(engine, quote_id, priced["margin_percent"], override)

    line = QuoteLine(
        quote_id=quote_id,
        product_id=payload.get("product_id") or None,
        catalogue_item_id=payload.get("catalogue_item_id") or None,
        description=description,
        dimensions=payload.get("dimensions") or None,
        units=_check_units(payload.get("units")),
        is_optional=bool(payload.get("is_optional")),
        sort_order=_sort_order(payload.get("sort_order")),
        margin_override=override,
        **priced,
    )
    db.add(line)
    await db.flush()

    log_audit(
        db, user, "CREATE", "QuoteLine", line.id,
        metadata={
            "quote_id": quote_id,
            "description": description,
            "sell_price": str(priced["sell_price"]),
            "margin_override": override,
        },
    )
    await recalculate_quote_totals(db, quote_id, engine)
    return line


def _snapshot(line: QuoteLine) -> Dict[str, Any]:
    return {
        "description": line.description,
        "dimensions": line.dimensions,
        "product_id": line.product_id,
        "catalogue_item_id": line.catalogue_item_id,
        "units": line.units,
        "quantity": line.quantity,
        "unit_cost": line.unit_cost,
        "margin_percent": line.margin_percent,
        "cost_total": line.cost_total,
        "sell_price": line.sell_price,
        "is_optional": line.is_optional,
        "margin_override": line.margin_override,
        "sort_order": line.sort_order,
    }


async def update_quote_line(
    db: AsyncSession,
    quote_id: str,
    line_id: str,
    payload: Mapping[str, Any],
    user: Any = None,
    engine: PricingEngine = default_pricing_engine,
) -> QuoteLine:
    """
    Partial update. Any pricing field in the payload re-derives cost_total and
    sell_price from the merged values. The floor check runs on the resulting
    margin with the payload's margin_override, falling back to the stored flag.
    """
    line = await get_line_or_404(db, quote_id, line_id)
    before = _snapshot(line)

    if "description" in payload:
        description = (payload.get("description") or "").strip()
        if not description:
            raise ValidationMissingError("description is required")
        payload = {**payload, "description": description}

    override = (
        bool(payload["margin_override"]) if "margin_override" in payload
        else bool(line.margin_override)
    )

    priced = None
    if any(field in payload for field in PRICING_FIELDS):
        priced = engine.price_line(
            payload.get("unit_cost", line.unit_cost),
            payload.get("quantity", line.quantity),
            payload.get("margin_percent", line.margin_percent),
        )
        _enforce_floor(engine, quote_id, priced["margin_percent"], override)
    else:
        _enforce_floor(engine, quote_id, parse_number_or(line.margin_percent, 0), override)

    for field in _TEXT_FIELDS:
        if field in payload:
            value = payload[field]
            setattr(line, field, value if field == "description" else (value or None))
    if "units" in payload:
        line.units = _check_units(payload["units"])
    if "is_optional" in payload:
        line.is_optional = bool(payload["is_optional"])
    if "sort_order" in payload:
        line.sort_order = _sort_order(payload["sort_order"])
    line.margin_override = override
    if priced is not None:
        for field, value in priced.items():
            setattr(line, field, value)
    line.updated_at = datetime.now(timezone.utc)
    await db.flush()

    log_changes(db, user, "QuoteLine", line.id, before, _snapshot(line))
    await recalculate_quote_totals(db, quote_id, engine)
    return line


async def delete_quote_line(
    db: AsyncSession,
    quote_id: str,
    line_id: str,
    user: Any = None,
    engine: PricingEngine = default_pricing_engine,
) -> Quote:
    line = await get_line_or_404(db, quote_id, line_id)
    log_audit(
        db, user, "DELETE", "QuoteLine", line.id,
        metadata={"quote_id": quote_id, "description": line.description},
    )
    await db.delete(line)
    await db.flush()
    return await recalculate_quote_totals(db, quote_id, engine)


# ---------------------------------------------------------------------------
# Advisory cost deviation
# ---------------------------------------------------------------------------

async def cost_deviations(
    db: AsyncSession,
    lines: List[QuoteLine],
    engine: PricingEngine = default_pricing_engine,
) -> Dict[str, Dict[str, Any]]:
    """Deviation against the catalogue guide cost for each line, keyed by line id."""
    item_ids = {line.catalogue_item_id for line in lines if line.catalogue_item_id}
    guides: Dict[str, Any] = {}
    if item_ids:
        result = await db.execute(
            select(CatalogueItem.id, CatalogueItem.guide_unit_cost)
            .where(CatalogueItem.id.in_(item_ids))
        )
        guides = {item_id: guide for item_id, guide in result.all()}

    out = {}
    for line in lines:
        guide = guides.get(line.catalogue_item_id)
        out[line.id] = (
            engine.check_cost_deviation(line.unit_cost, guide)
            if guide is not None else dict(_NO_DEVIATION)
        )
    return out


async def cost_deviation_for_line(
    db: AsyncSession,
    line: QuoteLine,
    engine: PricingEngine = default_pricing_engine,
) -> Dict[str, Any]:
    return (await cost_deviations(db, [line], engine))[line.id]


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

def serialize_line(
    line: QuoteLine,
    deviation: Optional[Dict[str, Any]] = None,
    engine: PricingEngine = default_pricing_engine,
) -> Dict[str, Any]:
    return {
        "id": line.id,
        "quote_id": line.quote_id,
        "product_id": line.product_id,
        "catalogue_item_id": line.catalogue_item_id,
        "description": line.description,
        "dimensions": line.dimensions,
        "quantity": line.quantity,
        "units": line.units,
        "unit_cost": _money(line.unit_cost),
        "unit_sell_price": _money(engine.compute_unit_sell_price(line.unit_cost, line.margin_percent)),
        "cost_total": _money(line.cost_total),
        "margin_percent": _money(line.margin_percent),
        "sell_price": _money(line.sell_price),
        "is_optional": bool(line.is_optional),
        "margin_override": bool(line.margin_override),
        "sort_order": line.sort_order,
        "cost_deviation": deviation or dict(_NO_DEVIATION),
    }


def serialize_quote(quote: Quote) -> Dict[str, Any]:
    return {
        "id": quote.id,
        "quote_number": quote.quote_number,
        "customer_id": quote.customer_id,
        "project_id": quote.project_id,
        "subject": quote.subject,
        "notes": quote.notes,
        "status": quote.status,
        "revision_number": quote.revision_number,
        "valid_until": quote.valid_until.isoformat() if quote.valid_until else None,
        "date_submitted": quote.date_submitted.isoformat() if quote.date_submitted else None,
        "total_cost": _money(quote.total_cost),
        "total_sell": _money(quote.total_sell),
        "overall_margin": round(float(quote.overall_margin or 0), 2),
        "created_by_id": quote.created_by_id,
        "created_at": quote.created_at.isoformat() if quote.created_at else None,
        "updated_at": quote.updated_at.isoformat() if quote.updated_at else None,
    }
