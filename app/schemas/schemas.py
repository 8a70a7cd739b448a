"""
Agendo Backend — Pydantic Schemas
Request/response models for plans, subscriptions and usage.
"""
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field


# ── Plans ────────────────────────────────────────────────────────────────────
class PlanCreate(BaseModel):
    key: str = Field(min_length=1, description="Stable plan identifier, e.g. bronze")
    name: str = Field(min_length=1)
    price: float = Field(gt=0, description="Amount charged every cycle")
    frequency: Optional[int] = Field(default=None, ge=1, description="Cycle length (default 1)")
    frequency_type: Optional[str] = Field(default=None, description="days or months (default months)")
    monthly_limit: int = Field(default=0, ge=0, description="Appointments per cycle, 0 = unlimited")


class PlanResponse(BaseModel):
    key: str
    name: str
    price: Optional[float]
    frequency: Optional[int]
    frequency_type: Optional[str]
    monthly_limit: int

    class Config:
        from_attributes = True


class PlanCreatedResponse(BaseModel):
    message: str
    id: int
    key: str
    name: str
    mp_plan_id: str


# ── Subscription ─────────────────────────────────────────────────────────────
class CheckoutRequest(BaseModel):
    plan_key: str = Field(description="Plan to subscribe to")
    back_url: Optional[str] = Field(default=None, description="Where Mercado Pago sends the payer back")


class CheckoutResponse(BaseModel):
    message: str = "Subscription checkout created. Redirect user to complete payment."
    checkout_url: str
    subscription_id: int
    mp_subscription_id: str


class PaymentMethodRequest(BaseModel):
    card_token: str = Field(description="Card token produced by the Mercado Pago SDK")


class CancelRenewalResponse(BaseModel):
    message: str
    expires_at: Optional[datetime]


class MessageResponse(BaseModel):
    message: str


class UsageResponse(BaseModel):
    used: int
    remaining: Optional[int] = Field(description="None when the plan is unlimited")
    limit: Optional[int] = Field(description="None when the plan is unlimited")


class SubscriptionPlanView(BaseModel):
    name: str
    planless: bool = False
    key: Optional[str] = None
    monthly_limit: Optional[int] = None
    mp_plan_id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    frequency: Optional[int] = None
    frequency_type: Optional[str] = None


class SubscriptionPeriodView(BaseModel):
    id: int
    status: str
    starts_at: Optional[datetime]
    expires_at: Optional[datetime]
    days_left: Optional[int]
    mp_subscription_id: Optional[str]


class MySubscriptionResponse(BaseModel):
    has_active: bool
    pending: bool = False
    legacy_subscription: bool = False
    renewal_cancelled: bool = False
    message: Optional[str] = None
    plan: Optional[SubscriptionPlanView] = None
    subscription: Optional[SubscriptionPeriodView] = None
    usage: Optional[UsageResponse] = None


# ── Appointments ─────────────────────────────────────────────────────────────
class AppointmentCreate(BaseModel):
    customer_name: Optional[str] = None
    scheduled_for: Optional[datetime] = None


class AppointmentResponse(BaseModel):
    id: int
    customer_name: Optional[str]
    status: str
    scheduled_for: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class AppointmentCreatedResponse(BaseModel):
    appointment: AppointmentResponse
    usage: UsageResponse


class AppointmentList(BaseModel):
    items: List[AppointmentResponse]


# ── Webhooks ─────────────────────────────────────────────────────────────────
class WebhookAck(BaseModel):
    status: str = "ok"
    result: str
