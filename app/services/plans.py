"""
Agendo Backend — Plan Catalog
Plan limits, listing and registration of plans with Mercado Pago.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError, ProviderError, ValidationError
from app.models.plan import Plan
from app.services.mercadopago import SubscriptionGateway
from app.services.payloads import extract_remote_id

logger = logging.getLogger(__name__)

DEFAULT_FREQUENCY = 1
DEFAULT_FREQUENCY_TYPE = "months"


def get_plan_limit(
    plan_key: Optional[str],
    stored_limit: Optional[int],
    overrides: Optional[Dict[str, int]] = None,
) -> int:
    """Operator override for the plan key if configured, else the stored limit."""
    if overrides is None:
        overrides = settings.PLAN_LIMIT_OVERRIDES
    if plan_key and plan_key.lower() in overrides:
        return int(overrides[plan_key.lower()])
    return int(stored_limit or 0)


def normalize_key(key) -> str:
    return str(key or "").strip().lower()


async def get_plan_by_key(db: AsyncSession, key: str, active_only: bool = True) -> Optional[Plan]:
    query = select(Plan).where(Plan.key == normalize_key(key))
    if active_only:
        query = query.where(Plan.is_active.is_(True))
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_active_plans(db: AsyncSession) -> List[Plan]:
    result = await db.execute(
        select(Plan).where(Plan.is_active.is_(True)).order_by(Plan.id.asc())
    )
    return list(result.scalars().all())


async def register_plan(
    db: AsyncSession,
    gateway: SubscriptionGateway,
    key: str,
    name: str,
    price,
    frequency: Optional[int] = None,
    frequency_type: Optional[str] = None,
    monthly_limit: int = 0,
) -> Plan:
    """
    Create the plan on Mercado Pago and link the local record to it.
    A plan that is already linked is never overwritten.
    """
    normalized_key = normalize_key(key)
    if not normalized_key or not (name or "").strip():
        raise ValidationError("Key, name and price are required for the plan")
    try:
        amount = Decimal(str(price))
    except (InvalidOperation, ValueError):
        raise ValidationError("Plan price must be a number")
    if amount <= 0:
        raise ValidationError("Plan price must be positive")

    existing = await get_plan_by_key(db, normalized_key, active_only=False)
    if existing and existing.mp_plan_id:
        raise ConflictError("Plan already exists and is linked to Mercado Pago")

    plan_frequency = int(frequency or DEFAULT_FREQUENCY)
    plan_frequency_type = frequency_type or DEFAULT_FREQUENCY_TYPE

    payload = {
        "reason": name,
        "auto_recurring": {
            "frequency": plan_frequency,
            "frequency_type": plan_frequency_type,
            "transaction_amount": float(amount),
            "currency_id": gateway.config.currency,
        },
    }
    response = await gateway.create_plan(payload)
    mp_plan_id = extract_remote_id(response)
    if not mp_plan_id:
        logger.error(f"Mercado Pago plan response without id: {response}")
        raise ProviderError("Failed to create plan on Mercado Pago")

    plan = existing
    if plan is None:
        plan = Plan(key=normalized_key, name=name, monthly_limit=monthly_limit or 0)
        db.add(plan)
    plan.mp_plan_id = mp_plan_id
    plan.price = amount
    plan.frequency = plan_frequency
    plan.frequency_type = plan_frequency_type
    await db.flush()
    await db.refresh(plan)

    logger.info(f"Plan '{plan.key}' linked to Mercado Pago plan {mp_plan_id}")
    return plan
