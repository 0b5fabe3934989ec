"""
Capacity routes — department capacities and the load heatmap.

GET /api/capacity/load is read-only and recomputed on every request from the
current product schedule; nothing is cached.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Union
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from steelworks.config import DEFAULT_WEEKS_TO_SHOW, MAX_WEEKS_TO_SHOW, WEEKLY_HOURS_LIMIT
from steelworks.db import get_db
from steelworks.api.deps import require_permission
from steelworks.models.orm_models import DepartmentCapacity, Product, Project, User
from steelworks.services.audit import log_audit, log_changes
from steelworks.services.capacity_engine import DEPARTMENTS, DEPARTMENT_KEYS, CapacityAggregator
from steelworks.services.errors import InvalidValueError, ValidationMissingError
from steelworks.services.pricing_engine import bounded_int, bounded_pennies, parse_number_or

router = APIRouter(prefix="/api/capacity", tags=["Capacity"])
logger = logging.getLogger("steelworks-capacity")

aggregator = CapacityAggregator()


class CapacityUpsertRequest(BaseModel):
    department: Optional[str] = None
    display_name: Optional[str] = None
    hours_per_week: Union[int, float, str, None] = None
    headcount: Union[int, float, str, None] = None
    notes: Optional[str] = None


def serialize_capacity(cap: DepartmentCapacity) -> dict:
    return {
        "id": cap.id,
        "department": cap.department,
        "display_name": cap.display_name,
        "hours_per_week": float(cap.hours_per_week or 0),
        "headcount": cap.headcount,
        "notes": cap.notes,
        "updated_at": cap.updated_at.isoformat() if cap.updated_at else None,
    }


@router.get("")
async def list_capacities(
    _: User = Depends(require_permission("reports:read")),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(DepartmentCapacity).order_by(DepartmentCapacity.department))
    return [serialize_capacity(c) for c in result.scalars().all()]


@router.post("")
async def upsert_capacity(
    req: CapacityUpsertRequest,
    user: User = Depends(require_permission("settings:admin")),
    db: AsyncSession = Depends(get_db),
):
    if not req.department or not req.display_name or req.hours_per_week in (None, ""):
        raise ValidationMissingError("department, display_name, and hours_per_week are required")
    if req.department not in DEPARTMENT_KEYS:
        raise InvalidValueError(
            f"Unknown department '{req.department}'", extra={"allowed": list(DEPARTMENT_KEYS)}
        )

    hours_per_week = bounded_pennies(
        "hours_per_week", max(parse_number_or(req.hours_per_week, 0), Decimal("0")),
        WEEKLY_HOURS_LIMIT,
    )
    headcount = max(bounded_int("headcount", req.headcount, 1), 1)

    values = {
        "display_name": req.display_name,
        "hours_per_week": hours_per_week,
        "headcount": headcount,
        "notes": req.notes,
    }

    result = await db.execute(
        select(DepartmentCapacity).where(DepartmentCapacity.department == req.department)
    )
    cap = result.scalar_one_or_none()
    if cap is None:
        cap = DepartmentCapacity(department=req.department, **values)
        db.add(cap)
        await db.flush()
        log_audit(db, user, "CREATE", "DepartmentCapacity", cap.id,
                  metadata={"department": req.department, "hours_per_week": str(values["hours_per_week"])})
    else:
        before = {field: getattr(cap, field) for field in values}
        for field, value in values.items():
            setattr(cap, field, value)
        log_changes(db, user, "DepartmentCapacity", cap.id, before, values)
    await db.commit()
    logger.info("Capacity for %s set to %s h/week", req.department, values["hours_per_week"])
    return serialize_capacity(cap)


@router.get("/load")
async def capacity_load(
    weeks: Optional[str] = None,
    start: Optional[str] = None,
    _: User = Depends(require_permission("reports:read")),
    db: AsyncSession = Depends(get_db),
):
    """
    Heatmap payload: per department, per Monday-aligned week, the spread load
    against capacity, plus products that have dates but no hours.
    """
    n_weeks = int(min(max(parse_number_or(weeks, DEFAULT_WEEKS_TO_SHOW), 1), MAX_WEEKS_TO_SHOW))

    reference = date.today()
    if start:
        try:
            reference = date.fromisoformat(start[:10])
        except ValueError:
            raise InvalidValueError(f"start must be an ISO date, got '{start}'")

    scheduled = []
    for dept in DEPARTMENTS:
        scheduled.append(getattr(Product, dept.hours_field).is_not(None))
        scheduled.append(getattr(Product, dept.start_field).is_not(None))

    result = await db.execute(
        select(Product)
        .join(Project, Product.project_id == Project.id)
        .where(or_(*scheduled))
        .options(selectinload(Product.project))
        .order_by(Project.project_number, Product.part_code)
    )
    products = list(result.scalars().all())

    cap_result = await db.execute(select(DepartmentCapacity))
    capacities = list(cap_result.scalars().all())

    return aggregator.build_report(products, capacities, reference, n_weeks)
