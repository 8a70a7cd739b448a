"""
Agendo Backend — Subscription Repository
Lookups and guarded status transitions for subscription records.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.subscription import ENTITLED_STATUSES, Subscription, SubscriptionStatus
from app.models.user import User
from app.services.status import can_transition, is_terminal

logger = logging.getLogger(__name__)

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Some backends hand datetimes back without tzinfo; they are stored as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def find_current(
    db: AsyncSession,
    user_id: int,
    statuses: Iterable[str] = ENTITLED_STATUSES,
) -> Optional[Subscription]:
    """Newest subscription of the user in one of `statuses`."""
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.user_id == user_id,
            Subscription.status.in_(list(statuses)),
        )
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_pending_linked(db: AsyncSession, user_id: int, limit: int = 5) -> List[Subscription]:
    """Newest pending checkouts of the user that have a remote subscription."""
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.user_id == user_id,
            Subscription.status == SubscriptionStatus.PENDING.value,
            Subscription.mp_subscription_id.is_not(None),
        )
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def find_by_remote_id(db: AsyncSession, mp_subscription_id: str) -> Optional[Subscription]:
    result = await db.execute(
        select(Subscription).where(Subscription.mp_subscription_id == mp_subscription_id)
    )
    return result.scalar_one_or_none()


async def lock_user(db: AsyncSession, user_id: int) -> Optional[User]:
    """Row-lock the user so concurrent checkouts for them run one at a time."""
    result = await db.execute(select(User).where(User.id == user_id).with_for_update())
    return result.scalar_one_or_none()


async def supersede_entitled(
    db: AsyncSession,
    user_id: int,
    exclude_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """Cancel every entitled subscription of the user, ending it now."""
    now = now or utcnow()
    query = (
        select(Subscription)
        .where(
            Subscription.user_id == user_id,
            Subscription.status.in_(ENTITLED_STATUSES),
        )
        .with_for_update()
    )
    if exclude_id is not None:
        query = query.where(Subscription.id != exclude_id)
    result = await db.execute(query)
    superseded = result.scalars().all()

    for subscription in superseded:
        subscription.status = SubscriptionStatus.CANCELED.value
        subscription.expires_at = now
    if superseded:
        # must reach the database before another row of the user turns entitled
        await db.flush()
        logger.info(f"Superseded {len(superseded)} subscription(s) of user {user_id}")
    return len(superseded)


async def transition(
    db: AsyncSession,
    subscription: Subscription,
    target: SubscriptionStatus,
    now: Optional[datetime] = None,
) -> bool:
    """
    Move the subscription to `target` if the lifecycle allows it.
    Entering an entitled status first cancels the user's other entitled rows.
    """
    current = subscription.status
    if current == target.value:
        return False
    if not can_transition(current, target.value):
        logger.warning(
            f"Subscription {subscription.id}: transition {current} -> {target.value} not allowed, skipped"
        )
        return False

    if target.value in ENTITLED_STATUSES:
        await supersede_entitled(db, subscription.user_id, exclude_id=subscription.id, now=now)

    subscription.status = target.value
    await db.flush()
    logger.info(f"Subscription {subscription.id}: {current} -> {target.value}")
    return True


async def expire_if_due(db: AsyncSession, subscription: Subscription, now: Optional[datetime] = None) -> bool:
    """Lazy expiry: a live subscription past its expiry becomes canceled."""
    now = now or utcnow()
    expires_at = as_utc(subscription.expires_at)
    if is_terminal(subscription.status) or expires_at is None or expires_at > now:
        return False
    subscription.status = SubscriptionStatus.CANCELED.value
    await db.flush()
    logger.info(f"Subscription {subscription.id} expired at {expires_at.isoformat()}")
    return True
