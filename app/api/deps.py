"""
Agendo Backend — Shared API Dependencies
Provider gateway and subscription/quota gates for feature endpoints.
"""
import logging

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import ForbiddenError
from app.core.security import get_current_user
from app.models.subscription import Subscription
from app.models.user import User
from app.services.mercadopago import SubscriptionGateway, build_gateway
from app.services.plans import get_plan_limit
from app.services.reconciliation import load_entitled
from app.services.subscriptions import as_utc
from app.services.usage import Usage, compute_usage

logger = logging.getLogger(__name__)


def get_gateway() -> SubscriptionGateway:
    return build_gateway(settings.provider_config())


async def require_active_subscription(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Subscription:
    """Newest entitled subscription of the caller, or 403."""
    subscription = await load_entitled(db, current_user.id)
    if subscription is None:
        await db.commit()
        logger.warning(f"User {current_user.id} has no active subscription")
        raise ForbiddenError("No active subscription. Subscribe or renew to continue.")
    return subscription


async def get_current_usage(
    subscription: Subscription = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
) -> Usage:
    plan = await subscription.awaitable_attrs.plan
    limit = get_plan_limit(plan.key, plan.monthly_limit) if plan else None
    return await compute_usage(
        db,
        subscription.user_id,
        as_utc(subscription.starts_at),
        as_utc(subscription.expires_at),
        limit,
    )


async def require_quota(usage: Usage = Depends(get_current_usage)) -> Usage:
    if usage.exhausted:
        raise ForbiddenError(f"Plan limit reached ({usage.limit} appointments this cycle)")
    return usage
