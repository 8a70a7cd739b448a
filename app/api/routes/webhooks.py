"""
Agendo Backend — Mercado Pago Webhook
Provider notifications. The body is only used to find which subscription to
re-fetch; it is never trusted as subscription state.
"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_gateway
from app.core.database import get_db
from app.schemas.schemas import WebhookAck
from app.services.mercadopago import SubscriptionGateway
from app.services.reconciliation import process_notification

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/mercadopago", response_model=WebhookAck, include_in_schema=False)
async def mercadopago_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: SubscriptionGateway = Depends(get_gateway),
):
    """
    Always 200 once the payload parses, even for ids we do not know, so the
    provider stops retrying. Provider or internal failures propagate as 5xx
    and the provider retries later.
    """
    raw = await request.body()
    body = {}
    if raw.strip():
        try:
            body = json.loads(raw)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid payload")
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")

    result = await process_notification(db, gateway, body, dict(request.query_params))
    return WebhookAck(result=result)
