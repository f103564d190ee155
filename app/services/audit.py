"""
Change capture: every mutation the Gatekeeper permits is recorded with the
acting principal.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.change_record import ChangeRecord

log = structlog.get_logger()


def snapshot(instance) -> dict:
    """JSON-safe copy of a row's column values."""
    return instance.model_dump(mode="json")


async def record_change(
    session: AsyncSession,
    *,
    table_name: str,
    record_id: str,
    org_id: Optional[uuid.UUID],
    actor_id: uuid.UUID,
    action: str,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    comment: Optional[str] = None,
) -> ChangeRecord:
    record = ChangeRecord(
        table_name=table_name,
        record_id=record_id,
        org_id=org_id,
        actor_id=actor_id,
        action=action,
        before=before,
        after=after,
        comment=comment,
    )
    session.add(record)
    await session.flush()
    log.info(
        "change.recorded",
        table=table_name,
        record_id=record_id,
        action=action,
        actor_id=str(actor_id),
    )
    return record
