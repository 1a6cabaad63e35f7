"""WhatsApp Cloud API webhook route handlers."""

import hmac
import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from agent.services.conversation_service import ConversationService
from api.dependencies import get_conversation_service
from api.models.whatsapp_webhook import WhatsAppWebhookPayload
from shared.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/whatsapp")
async def verify_whatsapp_webhook(request: Request) -> PlainTextResponse:
    """
    Meta webhook verification handshake.

    Echoes hub.challenge when hub.mode is "subscribe" and hub.verify_token
    matches WHATSAPP_VERIFY_TOKEN.

    Raises:
        HTTPException 403: wrong mode or token
    """
    settings = get_settings()
    mode = request.query_params.get("hub.mode")
    token = request.query_params.get("hub.verify_token") or ""
    challenge = request.query_params.get("hub.challenge") or ""

    if mode == "subscribe" and hmac.compare_digest(token, settings.WHATSAPP_VERIFY_TOKEN):
        logger.info("WhatsApp webhook verified")
        return PlainTextResponse(challenge)

    logger.warning(f"WhatsApp webhook verification failed from IP: {request.client.host}")
    raise HTTPException(status_code=403, detail="Forbidden")


@router.post("/whatsapp")
async def receive_whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    service: Annotated[ConversationService, Depends(get_conversation_service)],
) -> PlainTextResponse:
    """
    Receive WhatsApp message events.

    Acknowledges immediately with EVENT_RECEIVED and runs the conversation
    transition in a background task, so Meta never times out waiting for the
    bot. Payloads without a processable message (status callbacks, media)
    are acknowledged with OK.

    Raises:
        HTTPException 400: body is not a WhatsApp webhook payload
    """
    body = await request.body()
    logger.debug(f"Raw webhook payload: {body[:2000]!r}")

    try:
        payload = WhatsAppWebhookPayload.model_validate_json(body)
    except Exception as e:
        logger.error(f"Failed to parse webhook payload: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=f"Invalid payload format: {str(e)}")

    message = payload.to_inbound_message()
    if message is None:
        return PlainTextResponse("OK")

    logger.info(
        f"WhatsApp message received | kind={message.kind.value}",
        extra={"caller_phone": message.phone},
    )
    background_tasks.add_task(service.handle_message, message)
    return PlainTextResponse("EVENT_RECEIVED")
