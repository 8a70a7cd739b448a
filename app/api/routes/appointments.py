"""
Agendo Backend — Appointment Routes
Appointments consume plan quota; creation is gated by the subscription.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_usage, require_quota
from app.core.database import get_db
from app.core.security import get_current_user
from app.models.appointment import Appointment
from app.models.user import User
from app.schemas.schemas import (
    AppointmentCreate,
    AppointmentCreatedResponse,
    AppointmentList,
    AppointmentResponse,
    UsageResponse,
)
from app.services.usage import Usage, derive_usage

router = APIRouter()


@router.get(
    "/usage",
    response_model=UsageResponse,
    summary="Get usage",
    description="Appointments used and remaining in the current billing cycle.",
)
async def read_usage(usage: Usage = Depends(get_current_usage)):
    return UsageResponse(**usage.as_dict())


@router.get("", response_model=AppointmentList, summary="List appointments")
async def list_appointments(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Appointment)
        .where(Appointment.user_id == current_user.id)
        .order_by(Appointment.created_at.desc())
        .limit(100)
    )
    items = result.scalars().all()
    return AppointmentList(items=[AppointmentResponse.model_validate(a) for a in items])


@router.post(
    "",
    response_model=AppointmentCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create appointment",
    description="Book an appointment. Requires an active subscription with quota left.",
)
async def create_appointment(
    request: AppointmentCreate,
    usage: Usage = Depends(require_quota),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    appointment = Appointment(
        user_id=current_user.id,
        customer_name=request.customer_name,
        scheduled_for=request.scheduled_for,
        status="pending",
    )
    db.add(appointment)
    await db.flush()
    await db.refresh(appointment)

    updated = derive_usage(usage.used + 1, usage.limit)
    return AppointmentCreatedResponse(
        appointment=AppointmentResponse.model_validate(appointment),
        usage=UsageResponse(**updated.as_dict()),
    )
