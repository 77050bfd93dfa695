"""Payment-provider webhook receivers.

Both endpoints read the raw body for signature verification and are exempt
from tenant and bearer resolution.  A verified delivery is always
acknowledged with 200; only a signature failure answers 400.
"""

from __future__ import annotations

import logging

from commerce_core.billing.events import WebhookChannel
from fastapi import APIRouter, Request

from commerce_api.dependencies import IngestionDep
from commerce_api.schemas import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_SIGNATURE_HEADER = "stripe-signature"


@router.post("/stripe", response_model=WebhookAck)
async def receive_platform_webhook(request: Request, ingestion: IngestionDep) -> WebhookAck:
    """Platform subscription events."""
    payload = await request.body()
    ack = await ingestion.ingest(payload, request.headers.get(_SIGNATURE_HEADER), WebhookChannel.PLATFORM)
    return WebhookAck.model_validate(ack)


@router.post("/connect", response_model=WebhookAck)
async def receive_connect_webhook(request: Request, ingestion: IngestionDep) -> WebhookAck:
    """Connected-account and course-checkout events."""
    payload = await request.body()
    ack = await ingestion.ingest(payload, request.headers.get(_SIGNATURE_HEADER), WebhookChannel.CONNECT)
    return WebhookAck.model_validate(ack)
