"""
Quote routes — quotes, quote lines and the quote PDF.

Line writes go through services.quote_service so that cost_total, sell_price
and the quote aggregates are always re-derived server-side.
"""
import logging
from datetime import date, datetime, timezone
from typing import Optional, Union
from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from steelworks.config import QUOTE_STATUSES
from steelworks.db import get_db
from steelworks.api.deps import require_permission
from steelworks.models.orm_models import Customer, Project, Quote, QuoteLine, User
from steelworks.services import quote_service
from steelworks.services.audit import log_audit, log_changes
from steelworks.services.errors import InvalidValueError, NotFoundError, ValidationMissingError
from steelworks.services.report_engine import QuoteReportEngine

router = APIRouter(prefix="/api/quotes", tags=["Quotes"])
logger = logging.getLogger("steelworks-quotes")

# Numeric request fields arrive as JSON numbers or strings; both are coerced
NumberLike = Union[int, float, str, None]


class QuoteCreateRequest(BaseModel):
    customer_id: Optional[str] = None
    project_id: Optional[str] = None
    subject: Optional[str] = None
    notes: Optional[str] = None
    valid_until: Optional[date] = None


class QuoteUpdateRequest(BaseModel):
    status: Optional[str] = None
    subject: Optional[str] = None
    notes: Optional[str] = None
    valid_until: Optional[date] = None
    recalculate: bool = False


class QuoteLineRequest(BaseModel):
    description: Optional[str] = None
    dimensions: Optional[str] = None
    quantity: NumberLike = None
    units: Optional[str] = None
    unit_cost: NumberLike = None
    margin_percent: NumberLike = None
    is_optional: Optional[bool] = None
    sort_order: NumberLike = None
    margin_override: Optional[bool] = None
    product_id: Optional[str] = None
    catalogue_item_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

@router.get("")
async def list_quotes(
    status: Optional[str] = None,
    _: User = Depends(require_permission("quotes:read")),
    db: AsyncSession = Depends(get_db),
):
    line_counts = (
        select(QuoteLine.quote_id, func.count(QuoteLine.id).label("line_count"))
        .group_by(QuoteLine.quote_id)
        .subquery()
    )
    query = (
        select(Quote, Customer.name, line_counts.c.line_count)
        .join(Customer, Quote.customer_id == Customer.id, isouter=True)
        .join(line_counts, line_counts.c.quote_id == Quote.id, isouter=True)
        .order_by(Quote.updated_at.desc())
    )
    if status:
        query = query.where(Quote.status == status)
    result = await db.execute(query)
    return [
        {
            **quote_service.serialize_quote(quote),
            "customer_name": customer_name,
            "line_count": line_count or 0,
        }
        for quote, customer_name, line_count in result.all()
    ]


@router.post("", status_code=201)
async def create_quote(
    req: QuoteCreateRequest,
    user: User = Depends(require_permission("quotes:create")),
    db: AsyncSession = Depends(get_db),
):
    if not req.customer_id:
        raise ValidationMissingError("customer_id is required")
    if await db.get(Customer, req.customer_id) is None:
        raise NotFoundError("Customer not found")
    if req.project_id and await db.get(Project, req.project_id) is None:
        raise NotFoundError("Project not found")

    quote = Quote(
        quote_number=await quote_service.next_quote_number(db),
        customer_id=req.customer_id,
        project_id=req.project_id or None,
        subject=req.subject or None,
        notes=req.notes or None,
        valid_until=req.valid_until,
        created_by_id=user.id,
    )
    db.add(quote)
    await db.flush()
    log_audit(db, user, "CREATE", "Quote", quote.id, metadata={"quote_number": quote.quote_number})
    await db.commit()
    logger.info("Quote %s created", quote.quote_number, extra={"quote_id": quote.id})
    return quote_service.serialize_quote(quote)


@router.get("/{quote_id}")
async def get_quote(
    quote_id: str,
    _: User = Depends(require_permission("quotes:read")),
    db: AsyncSession = Depends(get_db),
):
    quote = await quote_service.get_quote_or_404(db, quote_id)
    lines = await quote_service.list_quote_lines(db, quote_id)
    deviations = await quote_service.cost_deviations(db, lines)
    customer = await db.get(Customer, quote.customer_id)
    project = await db.get(Project, quote.project_id) if quote.project_id else None
    return {
        **quote_service.serialize_quote(quote),
        "customer": {"id": customer.id, "name": customer.name} if customer else None,
        "project": (
            {"id": project.id, "project_number": project.project_number, "name": project.name}
            if project else None
        ),
        "lines": [quote_service.serialize_line(line, deviations[line.id]) for line in lines],
    }


@router.patch("/{quote_id}")
async def update_quote(
    quote_id: str,
    req: QuoteUpdateRequest,
    user: User = Depends(require_permission("quotes:edit")),
    db: AsyncSession = Depends(get_db),
):
    quote = await quote_service.get_quote_or_404(db, quote_id)
    changes = req.model_dump(exclude_unset=True, exclude={"recalculate"})

    if "status" in changes and changes["status"] not in QUOTE_STATUSES:
        raise InvalidValueError(
            f"Unknown quote status '{changes['status']}'",
            extra={"allowed": list(QUOTE_STATUSES)},
        )

    before = {field: getattr(quote, field) for field in changes}
    for field, value in changes.items():
        setattr(quote, field, value)
    if changes.get("status") == "SUBMITTED":
        quote.date_submitted = datetime.now(timezone.utc)
    quote.updated_at = datetime.now(timezone.utc)
    log_changes(db, user, "Quote", quote.id, before, changes)

    if req.recalculate:
        await quote_service.recalculate_quote_totals(db, quote_id)
    await db.commit()
    return quote_service.serialize_quote(quote)


@router.delete("/{quote_id}")
async def delete_quote(
    quote_id: str,
    user: User = Depends(require_permission("quotes:delete")),
    db: AsyncSession = Depends(get_db),
):
    quote = await quote_service.get_quote_or_404(db, quote_id)
    log_audit(db, user, "DELETE", "Quote", quote.id, metadata={"quote_number": quote.quote_number})
    await db.execute(delete(QuoteLine).where(QuoteLine.quote_id == quote_id))
    await db.delete(quote)
    await db.commit()
    return {"success": True}


@router.get("/{quote_id}/pdf")
async def quote_pdf(
    quote_id: str,
    _: User = Depends(require_permission("quotes:read")),
    db: AsyncSession = Depends(get_db),
):
    quote = await quote_service.get_quote_or_404(db, quote_id)
    lines = await quote_service.list_quote_lines(db, quote_id)
    customer = await db.get(Customer, quote.customer_id)
    pdf_bytes = QuoteReportEngine().render_quote_pdf(quote, lines, customer)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{quote.quote_number}.pdf"'},
    )


# ---------------------------------------------------------------------------
# Quote lines
# ---------------------------------------------------------------------------

@router.get("/{quote_id}/lines")
async def list_lines(
    quote_id: str,
    _: User = Depends(require_permission("quotes:read")),
    db: AsyncSession = Depends(get_db),
):
    await quote_service.get_quote_or_404(db, quote_id)
    lines = await quote_service.list_quote_lines(db, quote_id)
    deviations = await quote_service.cost_deviations(db, lines)
    return [quote_service.serialize_line(line, deviations[line.id]) for line in lines]


def _line_response(quote: Quote, line: QuoteLine, deviation: dict) -> dict:
    return {
        **quote_service.serialize_line(line, deviation),
        "quote": quote_service.serialize_quote(quote),
    }


@router.post("/{quote_id}/lines", status_code=201)
async def create_line(
    quote_id: str,
    req: QuoteLineRequest,
    user: User = Depends(require_permission("quotes:edit")),
    db: AsyncSession = Depends(get_db),
):
    line = await quote_service.create_quote_line(
        db, quote_id, req.model_dump(exclude_unset=True), user
    )
    deviation = await quote_service.cost_deviation_for_line(db, line)
    quote = await quote_service.get_quote_or_404(db, quote_id)
    await db.commit()
    return _line_response(quote, line, deviation)


@router.patch("/{quote_id}/lines/{line_id}")
async def update_line(
    quote_id: str,
    line_id: str,
    req: QuoteLineRequest,
    user: User = Depends(require_permission("quotes:edit")),
    db: AsyncSession = Depends(get_db),
):
    line = await quote_service.update_quote_line(
        db, quote_id, line_id, req.model_dump(exclude_unset=True), user
    )
    deviation = await quote_service.cost_deviation_for_line(db, line)
    quote = await quote_service.get_quote_or_404(db, quote_id)
    await db.commit()
    return _line_response(quote, line, deviation)


@router.delete("/{quote_id}/lines/{line_id}")
async def delete_line(
    quote_id: str,
    line_id: str,
    user: User = Depends(require_permission("quotes:edit")),
    db: AsyncSession = Depends(get_db),
):
    quote = await quote_service.delete_quote_line(db, quote_id, line_id, user)
    await db.commit()
    return {"success": True, "quote": quote_service.serialize_quote(quote)}
