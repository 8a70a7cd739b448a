"""
Agendo Backend — Usage Accounting
Counts billable appointments inside the current billing window.
"""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointment import Appointment, BILLABLE_STATUSES


@dataclass
class Usage:
    used: int
    remaining: Optional[int]  # None = unlimited
    limit: Optional[int]  # None = unlimited

    @property
    def exhausted(self) -> bool:
        return self.remaining is not None and self.remaining <= 0

    def as_dict(self) -> dict:
        return asdict(self)


def derive_usage(used: int, limit: Optional[int]) -> Usage:
    """Apply the plan limit to a usage count. Zero or missing limit is unlimited."""
    if not limit or limit <= 0:
        return Usage(used=used, remaining=None, limit=None)
    return Usage(used=used, remaining=max(limit - used, 0), limit=limit)


async def count_usage(
    db: AsyncSession,
    user_id: int,
    starts_at: datetime,
    expires_at: datetime,
) -> int:
    """Billable appointments created in [starts_at, expires_at)."""
    result = await db.execute(
        select(func.count(Appointment.id)).where(
            Appointment.user_id == user_id,
            Appointment.status.in_(BILLABLE_STATUSES),
            Appointment.created_at >= starts_at,
            Appointment.created_at < expires_at,
        )
    )
    return result.scalar() or 0


async def compute_usage(
    db: AsyncSession,
    user_id: int,
    starts_at: Optional[datetime],
    expires_at: Optional[datetime],
    limit: Optional[int],
) -> Usage:
    """Usage for the window; recomputed on every call since the window can move."""
    used = 0
    if starts_at and expires_at:
        used = await count_usage(db, user_id, starts_at, expires_at)
    return derive_usage(used, limit)
