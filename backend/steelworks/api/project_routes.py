"""
Customer, project and product routes.

Products carry the per-department schedule (planned start, target date,
completion date, estimated hours) that the capacity heatmap reads.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Union
from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from steelworks.config import HOURS_LIMIT, PROJECT_NUMBER_START, PROJECT_STATUSES
from steelworks.db import get_db
from steelworks.api.deps import require_permission
from steelworks.models.orm_models import CatalogueItem, Customer, Product, Project, User
from steelworks.services.audit import log_audit, log_changes
from steelworks.services.capacity_engine import DEPARTMENTS, schedule_rag
from steelworks.services.errors import InvalidValueError, NotFoundError, ValidationMissingError
from steelworks.services.pricing_engine import bounded_pennies, parse_number_or, parse_quantity

customers_router = APIRouter(prefix="/api/customers", tags=["Customers"])
router = APIRouter(prefix="/api/projects", tags=["Projects"])
products_router = APIRouter(prefix="/api/products", tags=["Products"])

PRODUCT_DEPARTMENTS = ("PLANNING",) + tuple(d.key for d in DEPARTMENTS) + ("COMPLETE",)

# Schedule PATCH accepts exactly these keys, converted by type
DATE_FIELDS = frozenset(
    f for d in DEPARTMENTS for f in (d.start_field, d.end_field, d.done_field)
)
HOURS_FIELDS = frozenset(d.hours_field for d in DEPARTMENTS)
TEXT_FIELDS = frozenset({"part_code", "description"})


class CustomerRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class ProjectRequest(BaseModel):
    name: Optional[str] = None
    customer_id: Optional[str] = None
    project_status: Optional[str] = None
    target_completion: Optional[date] = None


class ProductRequest(BaseModel):
    part_code: Optional[str] = None
    description: Optional[str] = None
    quantity: Union[int, float, str, None] = None
    catalogue_item_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Serialisers
# ---------------------------------------------------------------------------

def serialize_customer(c: Customer) -> dict:
    return {"id": c.id, "name": c.name, "email": c.email, "phone": c.phone, "address": c.address}


def serialize_project(p: Project, customer_name: Optional[str] = None) -> dict:
    return {
        "id": p.id,
        "project_number": p.project_number,
        "name": p.name,
        "customer_id": p.customer_id,
        "customer_name": customer_name,
        "project_status": p.project_status,
        "target_completion": p.target_completion.isoformat() if p.target_completion else None,
        "schedule_rag": schedule_rag(p.target_completion),
    }


def serialize_product(p: Product) -> dict:
    out: Dict[str, Any] = {
        "id": p.id,
        "project_id": p.project_id,
        "catalogue_item_id": p.catalogue_item_id,
        "part_code": p.part_code,
        "description": p.description,
        "quantity": p.quantity,
        "current_department": p.current_department,
    }
    rag = {}
    for dept in DEPARTMENTS:
        for field in (dept.start_field, dept.end_field, dept.done_field):
            value = getattr(p, field)
            out[field] = value.isoformat() if value else None
        hours = getattr(p, dept.hours_field)
        out[dept.hours_field] = float(hours) if hours is not None else None
        # Finished work is never late
        if getattr(p, dept.done_field) is None:
            rag[dept.key] = schedule_rag(getattr(p, dept.end_field))
        else:
            rag[dept.key] = None
    out["schedule_rag"] = rag
    return out


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

@customers_router.get("")
async def list_customers(
    _: User = Depends(require_permission("customers:read")),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Customer).order_by(Customer.name))
    return [serialize_customer(c) for c in result.scalars().all()]


@customers_router.post("", status_code=201)
async def create_customer(
    req: CustomerRequest,
    user: User = Depends(require_permission("customers:create")),
    db: AsyncSession = Depends(get_db),
):
    name = (req.name or "").strip()
    if not name:
        raise ValidationMissingError("name is required")
    customer = Customer(
        name=name,
        email=req.email or None,
        phone=req.phone or None,
        address=req.address or None,
    )
    db.add(customer)
    await db.flush()
    log_audit(db, user, "CREATE", "Customer", customer.id, metadata={"name": name})
    await db.commit()
    return serialize_customer(customer)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

async def _next_project_number(db: AsyncSession) -> str:
    result = await db.execute(select(Project.project_number))
    highest = PROJECT_NUMBER_START - 1
    for (number,) in result.all():
        if number and number.isdigit():
            highest = max(highest, int(number))
    return str(highest + 1)


@router.get("")
async def list_projects(
    _: User = Depends(require_permission("projects:read")),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Project, Customer.name)
        .join(Customer, Project.customer_id == Customer.id, isouter=True)
        .order_by(Project.project_number)
    )
    return [serialize_project(p, customer_name) for p, customer_name in result.all()]


@router.post("", status_code=201)
async def create_project(
    req: ProjectRequest,
    user: User = Depends(require_permission("projects:create")),
    db: AsyncSession = Depends(get_db),
):
    name = (req.name or "").strip()
    if not name:
        raise ValidationMissingError("name is required")
    status = req.project_status or "OPPORTUNITY"
    if status not in PROJECT_STATUSES:
        raise InvalidValueError(f"Unknown project status '{status}'",
                                extra={"allowed": list(PROJECT_STATUSES)})
    customer = None
    if req.customer_id:
        customer = await db.get(Customer, req.customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")

    project = Project(
        project_number=await _next_project_number(db),
        name=name,
        customer_id=req.customer_id or None,
        project_status=status,
        target_completion=req.target_completion,
    )
    db.add(project)
    await db.flush()
    log_audit(db, user, "CREATE", "Project", project.id,
              metadata={"project_number": project.project_number})
    await db.commit()
    return serialize_project(project, customer.name if customer else None)


async def _get_project_or_404(db: AsyncSession, project_id: str) -> Project:
    project = await db.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project not found")
    return project


@router.get("/{project_id}/products")
async def list_project_products(
    project_id: str,
    _: User = Depends(require_permission("products:read")),
    db: AsyncSession = Depends(get_db),
):
    await _get_project_or_404(db, project_id)
    result = await db.execute(
        select(Product).where(Product.project_id == project_id).order_by(Product.part_code)
    )
    return [serialize_product(p) for p in result.scalars().all()]


@router.post("/{project_id}/products", status_code=201)
async def create_product(
    project_id: str,
    req: ProductRequest,
    user: User = Depends(require_permission("products:edit")),
    db: AsyncSession = Depends(get_db),
):
    await _get_project_or_404(db, project_id)

    part_code = (req.part_code or "").strip()
    description = (req.description or "").strip()
    if req.catalogue_item_id:
        item = await db.get(CatalogueItem, req.catalogue_item_id)
        if item is None:
            raise NotFoundError("Catalogue item not found")
        part_code = part_code or item.part_code
        description = description or item.description
    if not part_code or not description:
        raise ValidationMissingError("part_code and description are required")

    product = Product(
        project_id=project_id,
        catalogue_item_id=req.catalogue_item_id or None,
        part_code=part_code,
        description=description,
        quantity=parse_quantity(req.quantity),
        current_department="PLANNING",
    )
    db.add(product)
    await db.flush()
    log_audit(db, user, "CREATE", "Product", product.id,
              metadata={"project_id": project_id, "part_code": part_code})
    await db.commit()
    return serialize_product(product)


# ---------------------------------------------------------------------------
# Product schedule
# ---------------------------------------------------------------------------

def _parse_date_field(field: str, value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise InvalidValueError(f"{field} must be an ISO date, got '{value}'")


def _parse_hours_field(value: Any):
    """Blank clears the estimate; unparseable or negative input becomes 0."""
    if value in (None, ""):
        return None
    return bounded_pennies(
        "estimated_hours", max(parse_number_or(value, 0), Decimal("0")), HOURS_LIMIT
    )


def _schedule_changes(body: Dict[str, Any]) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for key, value in body.items():
        if key in DATE_FIELDS:
            data[key] = _parse_date_field(key, value)
        elif key in HOURS_FIELDS:
            data[key] = _parse_hours_field(value)
        elif key in TEXT_FIELDS:
            if not value:
                raise ValidationMissingError(f"{key} cannot be blank")
            data[key] = str(value)
        elif key == "current_department":
            if value not in PRODUCT_DEPARTMENTS:
                raise InvalidValueError(f"Unknown department '{value}'",
                                        extra={"allowed": list(PRODUCT_DEPARTMENTS)})
            data[key] = value
        elif key == "quantity":
            data[key] = parse_quantity(value)
        elif key == "catalogue_item_id":
            data[key] = value or None
    return data


@products_router.patch("/{product_id}/schedule")
async def update_product_schedule(
    product_id: str,
    body: Dict[str, Any] = Body(...),
    user: User = Depends(require_permission("products:edit")),
    db: AsyncSession = Depends(get_db),
):
    """
    Field-typed partial update: date fields take ISO dates, hours fields take
    numbers (blank clears), unknown keys are ignored.
    """
    product = await db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")

    changes = _schedule_changes(body)
    if not changes:
        raise ValidationMissingError("No valid fields to update")

    before = {field: getattr(product, field) for field in changes}
    for field, value in changes.items():
        setattr(product, field, value)
    log_changes(db, user, "Product", product.id, before, changes)
    await db.commit()
    return serialize_product(product)


@products_router.get("/{product_id}")
async def get_product(
    product_id: str,
    _: User = Depends(require_permission("products:read")),
    db: AsyncSession = Depends(get_db),
):
    product = await db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return serialize_product(product)

