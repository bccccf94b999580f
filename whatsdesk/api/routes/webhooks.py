"""Webhook endpoint for the channel provider."""

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError

from whatsdesk.api.dependencies import ServicesDep, WebhookAuthDep
from whatsdesk.models import InboundEvent

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/whatsapp")
async def whatsapp_webhook(
    request: Request,
    services: ServicesDep,
    _: WebhookAuthDep,
) -> dict[str, Any]:
    """Accept an inbound message event and process it in the background.

    The provider gets a 200 for every well-formed JSON body so it never
    retries; events that are not inbound messages are ignored.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body must be JSON")

    try:
        event = InboundEvent.model_validate(payload)
    except PydanticValidationError as e:
        logger.info("Ignoring webhook payload", errors=e.error_count())
        return {"status": "ignored"}

    services.pipeline.dispatch(event)

    logger.debug(
        "Webhook event accepted",
        channel_provider_id=event.channel_provider_id,
        sender=event.sender,
    )
    return {"status": "accepted"}
