"""ORM Models for Steelworks Operations — SQLAlchemy 2.0"""
import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Integer, Numeric, DateTime, Date,
    ForeignKey, Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from steelworks.db import Base


def gen_uuid():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


# ── AUTH ──────────────────────────────────────────────────────────────────────
class User(Base):
    __tablename__ = "users"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(Text, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    # ADMIN | ESTIMATOR | PROJECT_COORDINATOR | DESIGNER | PRODUCTION_MANAGER | VIEWER
    role: Mapped[str] = mapped_column(String(30), nullable=False, default="VIEWER")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# ── CUSTOMERS & PROJECTS ──────────────────────────────────────────────────────
class Customer(Base):
    __tablename__ = "customers"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    address: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Project(Base):
    __tablename__ = "projects"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    project_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("customers.id"))
    # OPPORTUNITY | QUOTATION | DESIGN | MANUFACTURE | INSTALLATION | REVIEW | COMPLETE
    project_status: Mapped[str] = mapped_column(String(30), default="OPPORTUNITY")
    target_completion: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    customer: Mapped[Optional["Customer"]] = relationship("Customer")
    products: Mapped[list["Product"]] = relationship("Product", back_populates="project")


# ── CATALOGUE ─────────────────────────────────────────────────────────────────
class CatalogueItem(Base):
    __tablename__ = "catalogue_items"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    part_code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # Benchmark cost used for the advisory deviation check on quote lines
    guide_unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# ── PRODUCTS (per-department schedule) ────────────────────────────────────────
class Product(Base):
    __tablename__ = "products"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    catalogue_item_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("catalogue_items.id"))
    part_code: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    current_department: Mapped[str] = mapped_column(String(30), default="PLANNING")
    # Design
    design_planned_start: Mapped[Optional[date]] = mapped_column(Date)
    design_target_date: Mapped[Optional[date]] = mapped_column(Date)
    design_completion_date: Mapped[Optional[date]] = mapped_column(Date)
    design_estimated_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    # Ops
    ops_planned_start: Mapped[Optional[date]] = mapped_column(Date)
    ops_target_date: Mapped[Optional[date]] = mapped_column(Date)
    ops_completion_date: Mapped[Optional[date]] = mapped_column(Date)
    ops_estimated_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    # Production
    production_planned_start: Mapped[Optional[date]] = mapped_column(Date)
    production_target_date: Mapped[Optional[date]] = mapped_column(Date)
    production_completion_date: Mapped[Optional[date]] = mapped_column(Date)
    production_estimated_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    # Installation
    install_planned_start: Mapped[Optional[date]] = mapped_column(Date)
    install_target_date: Mapped[Optional[date]] = mapped_column(Date)
    install_completion_date: Mapped[Optional[date]] = mapped_column(Date)
    install_estimated_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    project: Mapped["Project"] = relationship("Project", back_populates="products")


# ── QUOTES ────────────────────────────────────────────────────────────────────
class Quote(Base):
    __tablename__ = "quotes"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    quote_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    customer_id: Mapped[str] = mapped_column(String(36), ForeignKey("customers.id"), nullable=False)
    project_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("projects.id"))
    subject: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    # DRAFT | SUBMITTED | WON | LOST
    status: Mapped[str] = mapped_column(String(20), default="DRAFT")
    revision_number: Mapped[int] = mapped_column(Integer, default=0)
    valid_until: Mapped[Optional[date]] = mapped_column(Date)
    date_submitted: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    # Derived from non-optional lines on every line write, never hand-edited
    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    total_sell: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    overall_margin: Mapped[Decimal] = mapped_column(Numeric(8, 4), default=Decimal("0"))
    created_by_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    lines: Mapped[list["QuoteLine"]] = relationship(
        "QuoteLine", back_populates="quote", cascade="all, delete-orphan", passive_deletes=True
    )


class QuoteLine(Base):
    __tablename__ = "quote_lines"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    quote_id: Mapped[str] = mapped_column(String(36), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("products.id"))
    catalogue_item_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("catalogue_items.id"))
    description: Mapped[str] = mapped_column(Text, nullable=False)
    dimensions: Mapped[Optional[str]] = mapped_column(String(255))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    units: Mapped[str] = mapped_column(String(10), default="nr")
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    cost_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    margin_percent: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=Decimal("0"))
    sell_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    is_optional: Mapped[bool] = mapped_column(Boolean, default=False)
    margin_override: Mapped[bool] = mapped_column(Boolean, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    quote: Mapped["Quote"] = relationship("Quote", back_populates="lines")
    __table_args__ = (Index("ix_quote_lines_quote_order", "quote_id", "is_optional", "sort_order"),)


# ── CAPACITY ──────────────────────────────────────────────────────────────────
class DepartmentCapacity(Base):
    __tablename__ = "department_capacities"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    department: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # Flat weekly rate; no calendar variation
    hours_per_week: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    headcount: Mapped[int] = mapped_column(Integer, default=1)  # informational only
    notes: Mapped[Optional[str]] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ── AUDIT ─────────────────────────────────────────────────────────────────────
class AuditLog(Base):
    __tablename__ = "audit_logs"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    user_id: Mapped[Optional[str]] = mapped_column(String(36))
    user_name: Mapped[Optional[str]] = mapped_column(String(255))
    action: Mapped[str] = mapped_column(String(10), nullable=False)  # CREATE | UPDATE | DELETE
    entity: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    field: Mapped[Optional[str]] = mapped_column(String(100))
    old_value: Mapped[Optional[str]] = mapped_column(Text)
    new_value: Mapped[Optional[str]] = mapped_column(Text)
    metadata_json: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
