"""
Catalogue routes — standard parts with a guide unit cost.

The guide cost is the benchmark the quote screen compares entered unit costs
against (advisory deviation flag).
"""
from typing import Optional, Union
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from steelworks.config import MONEY_LIMIT
from steelworks.db import get_db
from steelworks.api.deps import require_permission
from steelworks.models.orm_models import CatalogueItem, Product, QuoteLine, User
from steelworks.services.audit import log_audit, log_changes
from steelworks.services.errors import InvalidValueError, NotFoundError, ValidationMissingError
from steelworks.services.pricing_engine import bounded_pennies, parse_number_or

router = APIRouter(prefix="/api/catalogue", tags=["Catalogue"])


class CatalogueItemRequest(BaseModel):
    part_code: Optional[str] = None
    description: Optional[str] = None
    guide_unit_cost: Union[int, float, str, None] = None
    active: Optional[bool] = None


def _guide_cost(value):
    """Blank or zero clears the guide cost, otherwise coerce to pence."""
    cost = bounded_pennies("guide_unit_cost", parse_number_or(value, 0), MONEY_LIMIT)
    return cost if cost > 0 else None


def serialize_item(item: CatalogueItem, product_count: int = 0) -> dict:
    return {
        "id": item.id,
        "part_code": item.part_code,
        "description": item.description,
        "guide_unit_cost": float(item.guide_unit_cost) if item.guide_unit_cost is not None else None,
        "active": bool(item.active),
        "product_count": product_count,
    }


async def _get_item_or_404(db: AsyncSession, item_id: str) -> CatalogueItem:
    item = await db.get(CatalogueItem, item_id)
    if item is None:
        raise NotFoundError("Catalogue item not found")
    return item


async def _ensure_unique_part_code(db: AsyncSession, part_code: str, exclude_id: str = None):
    query = select(CatalogueItem.id).where(CatalogueItem.part_code == part_code)
    if exclude_id:
        query = query.where(CatalogueItem.id != exclude_id)
    if (await db.execute(query)).first():
        raise InvalidValueError(f"Part code '{part_code}' already exists")


@router.get("")
async def list_items(
    active_only: bool = False,
    _: User = Depends(require_permission("catalogue:read")),
    db: AsyncSession = Depends(get_db),
):
    counts = (
        select(Product.catalogue_item_id, func.count(Product.id).label("n"))
        .group_by(Product.catalogue_item_id)
        .subquery()
    )
    query = (
        select(CatalogueItem, counts.c.n)
        .join(counts, counts.c.catalogue_item_id == CatalogueItem.id, isouter=True)
        .order_by(CatalogueItem.part_code)
    )
    if active_only:
        query = query.where(CatalogueItem.active.is_(True))
    result = await db.execute(query)
    return [serialize_item(item, n or 0) for item, n in result.all()]


@router.post("", status_code=201)
async def create_item(
    req: CatalogueItemRequest,
    user: User = Depends(require_permission("catalogue:edit")),
    db: AsyncSession = Depends(get_db),
):
    part_code = (req.part_code or "").strip()
    description = (req.description or "").strip()
    if not part_code or not description:
        raise ValidationMissingError("part_code and description are required")
    await _ensure_unique_part_code(db, part_code)

    item = CatalogueItem(
        part_code=part_code,
        description=description,
        guide_unit_cost=_guide_cost(req.guide_unit_cost),
        active=True if req.active is None else req.active,
    )
    db.add(item)
    await db.flush()
    log_audit(db, user, "CREATE", "CatalogueItem", item.id, metadata={"part_code": part_code})
    await db.commit()
    return serialize_item(item)


@router.patch("/{item_id}")
async def update_item(
    item_id: str,
    req: CatalogueItemRequest,
    user: User = Depends(require_permission("catalogue:edit")),
    db: AsyncSession = Depends(get_db),
):
    item = await _get_item_or_404(db, item_id)
    changes = req.model_dump(exclude_unset=True)

    if "part_code" in changes:
        changes["part_code"] = (changes["part_code"] or "").strip()
        if not changes["part_code"]:
            raise ValidationMissingError("part_code cannot be blank")
        await _ensure_unique_part_code(db, changes["part_code"], exclude_id=item.id)
    if "description" in changes:
        changes["description"] = (changes["description"] or "").strip()
        if not changes["description"]:
            raise ValidationMissingError("description cannot be blank")
    if "guide_unit_cost" in changes:
        changes["guide_unit_cost"] = _guide_cost(changes["guide_unit_cost"])
    if "active" in changes:
        changes["active"] = bool(changes["active"])

    before = {field: getattr(item, field) for field in changes}
    for field, value in changes.items():
        setattr(item, field, value)
    log_changes(db, user, "CatalogueItem", item.id, before, changes)
    await db.commit()
    return serialize_item(item)


@router.delete("/{item_id}")
async def delete_item(
    item_id: str,
    user: User = Depends(require_permission("catalogue:edit")),
    db: AsyncSession = Depends(get_db),
):
    item = await _get_item_or_404(db, item_id)
    log_audit(db, user, "DELETE", "CatalogueItem", item.id, metadata={"part_code": item.part_code})
    # Products and quote lines keep their copy of the data; only the link goes
    for model in (Product, QuoteLine):
        await db.execute(
            update(model).where(model.catalogue_item_id == item.id).values(catalogue_item_id=None)
        )
    await db.delete(item)
    await db.commit()
    return {"success": True}
