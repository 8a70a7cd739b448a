"""
Agendo Backend — Billing Routes
Plan catalog and Mercado Pago subscription management endpoints.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_gateway
from app.core.config import settings
from app.core.database import get_db
from app.core.security import get_current_user, require_admin
from app.models.user import User
from app.schemas.schemas import (
    CancelRenewalResponse,
    CheckoutRequest,
    CheckoutResponse,
    MessageResponse,
    MySubscriptionResponse,
    PaymentMethodRequest,
    PlanCreate,
    PlanCreatedResponse,
    PlanResponse,
)
from app.services.mercadopago import SubscriptionGateway
from app.services.plans import get_plan_limit, list_active_plans, register_plan
from app.services.reconciliation import (
    cancel_renewal,
    create_checkout,
    get_my_subscription,
    update_payment_method,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/config",
    summary="Get billing config",
    description="Get the current Mercado Pago mode.",
)
async def get_billing_config():
    return {
        "mode": settings.billing_mode,
        "sandbox": settings.is_sandbox,
        "currency": settings.MERCADO_PAGO_CURRENCY,
    }


@router.get(
    "/plans",
    response_model=List[PlanResponse],
    summary="List plans",
    description="List the plans currently offered.",
)
async def list_plans(db: AsyncSession = Depends(get_db)):
    plans = await list_active_plans(db)
    return [
        PlanResponse(
            key=plan.key,
            name=plan.name,
            price=float(plan.price) if plan.price is not None else None,
            frequency=plan.frequency,
            frequency_type=plan.frequency_type,
            monthly_limit=get_plan_limit(plan.key, plan.monthly_limit),
        )
        for plan in plans
    ]


@router.post(
    "/plans",
    response_model=PlanCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a plan",
    description="Create a plan on Mercado Pago and link it locally. Admin only.",
)
async def create_plan(
    request: PlanCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    gateway: SubscriptionGateway = Depends(get_gateway),
):
    plan = await register_plan(
        db,
        gateway,
        key=request.key,
        name=request.name,
        price=request.price,
        frequency=request.frequency,
        frequency_type=request.frequency_type,
        monthly_limit=request.monthly_limit,
    )
    logger.info(f"Admin {admin.id} registered plan '{plan.key}'")
    return PlanCreatedResponse(
        message="Plan created successfully.",
        id=plan.id,
        key=plan.key,
        name=plan.name,
        mp_plan_id=plan.mp_plan_id,
    )


@router.post(
    "/subscriptions",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create subscription checkout",
    description="Start a Mercado Pago subscription and return the checkout URL.",
)
async def create_subscription(
    request: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: SubscriptionGateway = Depends(get_gateway),
):
    checkout = await create_checkout(
        db,
        gateway,
        current_user,
        plan_key=request.plan_key,
        back_url=request.back_url,
    )
    return CheckoutResponse(**checkout)


@router.get(
    "/subscriptions/me",
    response_model=MySubscriptionResponse,
    summary="Get my subscription",
    description="Current subscription, synchronized with Mercado Pago, with usage for this cycle.",
)
async def read_my_subscription(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: SubscriptionGateway = Depends(get_gateway),
):
    return MySubscriptionResponse(**await get_my_subscription(db, gateway, current_user))


@router.put(
    "/subscriptions/me/cancel-renewal",
    response_model=CancelRenewalResponse,
    summary="Cancel automatic renewal",
    description="Stop renewal on Mercado Pago. Access continues until the end of the cycle.",
)
async def cancel_my_renewal(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: SubscriptionGateway = Depends(get_gateway),
):
    subscription = await cancel_renewal(db, gateway, current_user)
    return CancelRenewalResponse(
        message="Automatic renewal canceled. Your access continues until the end of the current cycle.",
        expires_at=subscription.expires_at,
    )


@router.put(
    "/subscriptions/me/payment-method",
    response_model=MessageResponse,
    summary="Update payment method",
    description="Replace the card used by the subscription with a Mercado Pago card token.",
)
async def update_my_payment_method(
    request: PaymentMethodRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: SubscriptionGateway = Depends(get_gateway),
):
    await update_payment_method(db, gateway, current_user, request.card_token)
    return MessageResponse(message="Payment method updated successfully.")
