"""
Agendo Backend — Subscription Reconciliation
Keeps local subscription records in step with Mercado Pago.

Mercado Pago is the source of truth. Webhooks only tell us *which*
subscription to look at; the state itself is always re-fetched, so replayed
or out-of-order notifications converge on the same result.
"""
import logging
import math
from datetime import datetime
from typing import Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.user import User
from app.services.mercadopago import SubscriptionGateway
from app.services.payloads import (
    extract_notification,
    extract_period,
    extract_remote_id,
    first_value,
    select_checkout_url,
)
from app.services.plans import get_plan_by_key, get_plan_limit
from app.services.status import is_terminal, map_remote_status
from app.services.subscriptions import (
    as_utc,
    expire_if_due,
    find_by_remote_id,
    find_current,
    find_pending_linked,
    lock_user,
    supersede_entitled,
    transition,
    utcnow,
)
from app.services.usage import compute_usage

logger = logging.getLogger(__name__)

PAYMENT_TOPICS = {"payment"}
SUBSCRIPTION_TOPICS = {"preapproval", "subscription_preapproval"}
PAYMENT_SUBSCRIPTION_FIELDS = ("preapproval_id", "metadata.preapproval_id", "subscription_id")

LEGACY_MESSAGE = (
    "Your subscription is not linked to Mercado Pago. "
    "Choose a plan to migrate to the new billing process."
)
PENDING_MESSAGE = "Subscription awaiting payment confirmation."


# ── Remote state ─────────────────────────────────────────────────────────────
async def apply_remote_state(
    db: AsyncSession,
    subscription: Subscription,
    remote: Mapping,
    now: Optional[datetime] = None,
) -> bool:
    """
    Copy the canonical remote state onto the local record.
    Returns True if anything changed. Unknown remote statuses leave the
    local status alone.
    """
    if is_terminal(subscription.status):
        return False

    changed = False
    starts_at, expires_at = extract_period(remote)
    if starts_at and as_utc(subscription.starts_at) != starts_at:
        subscription.starts_at = starts_at
        changed = True
    if expires_at and as_utc(subscription.expires_at) != expires_at:
        subscription.expires_at = expires_at
        changed = True

    mapped = map_remote_status(remote.get("status"))
    if mapped is None:
        logger.info(
            f"Subscription {subscription.id}: unmapped remote status {remote.get('status')!r}, status kept"
        )
    elif await transition(db, subscription, mapped, now=now):
        changed = True

    if changed:
        await db.flush()
    return changed


async def reconcile(
    db: AsyncSession,
    gateway: SubscriptionGateway,
    subscription: Subscription,
    now: Optional[datetime] = None,
) -> bool:
    """
    Fetch the remote subscription and apply it. A remote 404 means the
    subscription was terminated and the local record is canceled.
    Returns True if the local record changed.
    """
    remote_id = subscription.mp_subscription_id
    if not remote_id or is_terminal(subscription.status):
        return False

    try:
        remote = await gateway.get_subscription(remote_id)
    except ProviderError as e:
        if not e.is_not_found:
            raise
        logger.warning(f"Subscription {subscription.id}: remote {remote_id} not found, canceling locally")
        return await transition(db, subscription, SubscriptionStatus.CANCELED, now=now)

    if not isinstance(remote, Mapping):
        logger.warning(f"Subscription {subscription.id}: unexpected remote payload for {remote_id}")
        return False
    return await apply_remote_state(db, subscription, remote, now=now)


async def reconcile_remote_id(
    db: AsyncSession,
    gateway: SubscriptionGateway,
    mp_subscription_id: str,
) -> str:
    subscription = await find_by_remote_id(db, mp_subscription_id)
    if subscription is None:
        logger.warning(f"Notification for unknown subscription {mp_subscription_id}")
        return "unknown"
    changed = await reconcile(db, gateway, subscription)
    return "updated" if changed else "unchanged"


async def process_notification(
    db: AsyncSession,
    gateway: SubscriptionGateway,
    body: Optional[Mapping],
    query: Optional[Mapping] = None,
) -> str:
    """
    Handle one webhook delivery. Only the topic and resource id are read;
    everything else comes from the provider.
    """
    topic, resource_id = extract_notification(body, query)
    logger.info(f"Mercado Pago notification: topic={topic} id={resource_id}")
    if not resource_id:
        return "ignored"

    if topic in PAYMENT_TOPICS:
        try:
            payment = await gateway.get_payment(resource_id)
        except ProviderError as e:
            if not e.is_not_found:
                raise
            logger.warning(f"Payment {resource_id} not found on Mercado Pago")
            return "ignored"
        mp_subscription_id = first_value(payment, PAYMENT_SUBSCRIPTION_FIELDS)
        if not mp_subscription_id:
            logger.info(f"Payment {resource_id} is not related to a subscription")
            return "ignored"
    elif topic is None or topic in SUBSCRIPTION_TOPICS:
        mp_subscription_id = resource_id
    else:
        logger.info(f"Ignoring Mercado Pago topic {topic}")
        return "ignored"

    return await reconcile_remote_id(db, gateway, mp_subscription_id)


# ── Checkout ─────────────────────────────────────────────────────────────────
async def create_checkout(
    db: AsyncSession,
    gateway: SubscriptionGateway,
    user: User,
    plan_key: str,
    back_url: Optional[str] = None,
) -> dict:
    """
    Start a Mercado Pago subscription for `plan_key` and record it as pending.
    Any entitled subscription of the user is superseded in the same
    transaction, under a lock on the user row.
    """
    config = gateway.config
    if not config.webhook_url:
        logger.error("MERCADO_PAGO_WEBHOOK_URL is not set")
        raise ConfigurationError("Webhook URL is not configured")
    if not plan_key or not str(plan_key).strip():
        raise ValidationError("plan_key is required")

    plan = await get_plan_by_key(db, plan_key)
    if not plan or not plan.mp_plan_id:
        raise NotFoundError("Plan not found or not linked to Mercado Pago")

    payload = {
        "preapproval_plan_id": plan.mp_plan_id,
        "payer_email": user.email,
        "notification_url": config.webhook_url,
        "external_reference": str(user.id),
    }
    redirect_back = back_url or config.back_url
    if redirect_back:
        payload["back_url"] = redirect_back

    response = await gateway.create_subscription(payload)
    mp_subscription_id = extract_remote_id(response)
    if not mp_subscription_id:
        logger.error(f"Mercado Pago preapproval response without id: {response}")
        raise ProviderError("Failed to create subscription checkout on Mercado Pago")
    checkout_url = select_checkout_url(response, config.mode)
    if not checkout_url:
        logger.error(f"Mercado Pago preapproval {mp_subscription_id} has no checkout URL ({config.mode})")
        raise ConfigurationError("Mercado Pago returned no checkout URL")

    now = utcnow()
    await lock_user(db, user.id)
    await supersede_entitled(db, user.id, now=now)

    subscription = Subscription(
        user_id=user.id,
        plan_id=plan.id,
        mp_plan_id=plan.mp_plan_id,
        mp_subscription_id=mp_subscription_id,
        status=SubscriptionStatus.PENDING.value,
        plan_name=plan.name,
        plan_amount=plan.price,
        plan_currency=config.currency,
        plan_frequency=plan.frequency,
        plan_frequency_type=plan.frequency_type,
    )
    db.add(subscription)
    await db.flush()
    logger.info(f"Subscription {subscription.id} pending for user {user.id} (remote {mp_subscription_id})")

    return {
        "checkout_url": checkout_url,
        "subscription_id": subscription.id,
        "mp_subscription_id": mp_subscription_id,
    }


# ── Subscription management ──────────────────────────────────────────────────
async def load_entitled(db: AsyncSession, user_id: int, now: Optional[datetime] = None) -> Optional[Subscription]:
    """Newest entitled subscription, after the lazy expiry check."""
    subscription = await find_current(db, user_id)
    if subscription is not None and await expire_if_due(db, subscription, now=now):
        return None
    return subscription


async def _require_entitled(db: AsyncSession, user_id: int, detail: str) -> Subscription:
    subscription = await load_entitled(db, user_id)
    if subscription is None:
        # keep a lazy expiry that just happened
        await db.commit()
        raise NotFoundError(detail)
    return subscription


async def cancel_renewal(db: AsyncSession, gateway: SubscriptionGateway, user: User) -> Subscription:
    """
    Stop automatic renewal. Access continues until the end of the cycle.
    A subscription without a remote id cannot be paused and is canceled.
    """
    subscription = await _require_entitled(db, user.id, "Active subscription not found")

    if not subscription.mp_subscription_id:
        await transition(db, subscription, SubscriptionStatus.CANCELED)
        await db.commit()
        raise ConflictError(
            "Your subscription is not linked to Mercado Pago. Subscribe again to manage it."
        )

    await gateway.update_subscription(subscription.mp_subscription_id, {"status": "paused"})
    await transition(db, subscription, SubscriptionStatus.ACTIVE_UNTIL_END_OF_CYCLE)
    return subscription


async def update_payment_method(
    db: AsyncSession,
    gateway: SubscriptionGateway,
    user: User,
    card_token: str,
) -> Subscription:
    """Send a tokenized card to Mercado Pago. Local status is not touched."""
    if not card_token or not str(card_token).strip():
        raise ValidationError("card_token is required")

    subscription = await _require_entitled(db, user.id, "Active subscription not found for update")
    if not subscription.mp_subscription_id:
        raise ConflictError(
            "Subscription not found on Mercado Pago. Create a new subscription to update the card."
        )

    await gateway.update_subscription(
        subscription.mp_subscription_id, {"card_token_id": str(card_token).strip()}
    )
    logger.info(f"Payment method updated for subscription {subscription.id}")
    return subscription


# ── My subscription ──────────────────────────────────────────────────────────
def days_left(expires_at: Optional[datetime], now: datetime) -> Optional[int]:
    if expires_at is None:
        return None
    seconds = (as_utc(expires_at) - now).total_seconds()
    return max(math.ceil(seconds / 86400), 0)


def _plan_view(subscription: Subscription, plan, limit: Optional[int]) -> dict:
    if plan is not None:
        return {
            "key": plan.key,
            "name": plan.name,
            "monthly_limit": limit,
            "mp_plan_id": subscription.mp_plan_id,
            "planless": False,
        }
    return {
        "name": subscription.plan_name or "Active subscription",
        "amount": float(subscription.plan_amount) if subscription.plan_amount is not None else None,
        "currency": subscription.plan_currency,
        "frequency": subscription.plan_frequency,
        "frequency_type": subscription.plan_frequency_type,
        "planless": True,
    }


async def get_my_subscription(
    db: AsyncSession,
    gateway: SubscriptionGateway,
    user: User,
    now: Optional[datetime] = None,
) -> dict:
    """
    Reconcile, expire, then describe the user's current subscription.
    Pending checkouts are synced first so a payment whose webhook never
    arrived still activates. An entitled subscription always wins over a
    newer pending checkout.
    """
    now = now or utcnow()
    reconciled = set()
    for pending in reversed(await find_pending_linked(db, user.id)):
        await reconcile(db, gateway, pending, now=now)
        reconciled.add(pending.id)

    subscription = await find_current(db, user.id)
    if subscription is None:
        subscription = await find_current(db, user.id, (SubscriptionStatus.PENDING.value,))
    if subscription is None:
        return {"has_active": False}

    if subscription.id not in reconciled:
        await reconcile(db, gateway, subscription, now=now)
    await expire_if_due(db, subscription, now=now)

    if is_terminal(subscription.status):
        return {"has_active": False}
    if not subscription.mp_subscription_id:
        return {"has_active": False, "legacy_subscription": True, "message": LEGACY_MESSAGE}
    if subscription.status == SubscriptionStatus.PENDING.value:
        return {"has_active": False, "pending": True, "message": PENDING_MESSAGE}

    plan = await subscription.awaitable_attrs.plan
    limit = get_plan_limit(plan.key, plan.monthly_limit) if plan else None
    usage = await compute_usage(db, user.id, as_utc(subscription.starts_at), as_utc(subscription.expires_at), limit)

    return {
        "has_active": True,
        "renewal_cancelled": subscription.status == SubscriptionStatus.ACTIVE_UNTIL_END_OF_CYCLE.value,
        "plan": _plan_view(subscription, plan, usage.limit),
        "subscription": {
            "id": subscription.id,
            "status": subscription.status,
            "starts_at": as_utc(subscription.starts_at),
            "expires_at": as_utc(subscription.expires_at),
            "days_left": days_left(subscription.expires_at, now),
            "mp_subscription_id": subscription.mp_subscription_id,
        },
        "usage": usage.as_dict(),
    }
