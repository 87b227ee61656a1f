"""
zeclub.services.admin_service — Audit Trail Helpers
====================================================

Every admin mutation records a row in ``admin_log`` inside the same
transaction as the change itself:

  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSON
  5. Commit
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from zeclub.database.models import AdminLog

logger = logging.getLogger(__name__)


def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_table: str,
    target_id: int | str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=str(target_id) if target_id is not None else None,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def get_audit_log(
    session: Session,
    *,
    target_table: str | None = None,
    limit: int = 100,
) -> list[dict]:
    """Most recent audit rows, newest first."""
    query = select(AdminLog).order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
    if target_table:
        query = query.where(AdminLog.target_table == target_table)
    rows = session.scalars(query.limit(limit)).all()
    return [
        {
            "id": r.id,
            "actorId": r.actor_id,
            "actionType": r.action_type,
            "targetTable": r.target_table,
            "targetId": r.target_id,
            "before": r.before_snapshot,
            "after": r.after_snapshot,
            "reason": r.reason,
            "timestamp": r.timestamp.isoformat() if r.timestamp else None,
        }
        for r in rows
    ]
