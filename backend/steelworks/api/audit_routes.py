"""Audit log query — newest first, optionally narrowed to one entity."""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from steelworks.db import get_db
from steelworks.api.deps import require_permission
from steelworks.models.orm_models import AuditLog, User
from steelworks.services.audit import serialize_audit
from steelworks.services.pricing_engine import parse_number_or

router = APIRouter(prefix="/api/audit", tags=["Audit"])

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


@router.get("")
async def list_audit_entries(
    entity: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: Optional[str] = None,
    _: User = Depends(require_permission("audit:read")),
    db: AsyncSession = Depends(get_db),
):
    take = int(min(max(parse_number_or(limit, DEFAULT_LIMIT), 1), MAX_LIMIT))

    query = select(AuditLog).order_by(AuditLog.created_at.desc()).limit(take)
    if entity:
        query = query.where(AuditLog.entity == entity)
    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)
    result = await db.execute(query)
    return [serialize_audit(entry) for entry in result.scalars().all()]
