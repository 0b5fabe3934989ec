"""
Audit trail — who changed what, field by field.

Rows are only added to the caller's session; they commit or roll back with
the write they describe.
"""
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from steelworks.models.orm_models import AuditLog

logger = logging.getLogger("steelworks-audit")

AUDIT_ACTIONS = ("CREATE", "UPDATE", "DELETE")


def _as_text(value: Any) -> Optional[str]:
    """Stable string form so 100, 100.0 and Decimal("100.00") compare equal."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return format(Decimal(str(value)).normalize(), "f")
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _actor(user: Any) -> Dict[str, Optional[str]]:
    if user is None:
        return {"user_id": None, "user_name": None}
    return {
        "user_id": getattr(user, "id", None),
        "user_name": getattr(user, "full_name", None) or getattr(user, "email", None),
    }


def log_audit(
    db: AsyncSession,
    user: Any,
    action: str,
    entity: str,
    entity_id: str,
    field: Optional[str] = None,
    old_value: Any = None,
    new_value: Any = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")
    entry = AuditLog(
        **_actor(user),
        action=action,
        entity=entity,
        entity_id=entity_id,
        field=field,
        old_value=_as_text(old_value),
        new_value=_as_text(new_value),
        metadata_json=json.dumps(metadata, default=str) if metadata else None,
    )
    db.add(entry)
    return entry


def log_changes(
    db: AsyncSession,
    user: Any,
    entity: str,
    entity_id: str,
    old: Dict[str, Any],
    new: Dict[str, Any],
) -> List[AuditLog]:
    """One UPDATE row per key in ``new`` whose value differs from ``old``."""
    entries = []
    for key, new_value in new.items():
        old_value = old.get(key)
        if _as_text(old_value) == _as_text(new_value):
            continue
        entries.append(
            log_audit(db, user, "UPDATE", entity, entity_id,
                      field=key, old_value=old_value, new_value=new_value)
        )
    if entries:
        logger.debug("Audited %d change(s) on %s %s", len(entries), entity, entity_id)
    return entries


def serialize_audit(entry: AuditLog) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "user_name": entry.user_name,
        "action": entry.action,
        "entity": entry.entity,
        "entity_id": entry.entity_id,
        "field": entry.field,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "metadata": json.loads(entry.metadata_json) if entry.metadata_json else None,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }
