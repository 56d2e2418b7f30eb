from fastapi import APIRouter, BackgroundTasks, Request, Response
from fastapi.responses import PlainTextResponse
import logging

from app.core.exceptions import StorageUnavailable, UpstreamUnavailable
from app.models.message import HistoryEntry, InboundMessage
from app.services.whatsapp_service import WhatsAppSendError, WhatsAppService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])

@router.get("/webhook")
async def verify_webhook(request: Request):
    gateway: WhatsAppService = request.app.state.gateway
    params = request.query_params
    challenge = gateway.verify_webhook(
        params.get("hub.mode"),
        params.get("hub.verify_token"),
        params.get("hub.challenge")
    )
    if challenge is None:
        return Response(status_code=403)
    return PlainTextResponse(challenge)

@router.post("/webhook")
async def receive_webhook(request: Request, background_tasks: BackgroundTasks):
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return Response(status_code=400)
    if not isinstance(payload, dict) or not WhatsAppService.is_whatsapp_payload(payload):
        return Response(status_code=404)

    messages = WhatsAppService.parse_webhook(payload)
    if messages:
        background_tasks.add_task(process_messages, request.app.state, messages)
    return Response(status_code=200)

async def process_messages(state, messages):
    for message in messages:
        try:
            await process_inbound(state, message)
        except Exception as e:
            # One bad turn must not drop the rest of the batch
            logger.exception(f"Processing message from {message.user_id} failed: {e}")

async def process_inbound(state, message: InboundMessage):
    """Audit, dispatch, deliver, then log the outbound turn"""
    user_id = message.user_id

    try:
        await state.catalog.save_interaction(user_id, message.text, "received")
    except UpstreamUnavailable as e:
        logger.warning(f"Interaction audit failed for {user_id}: {e}")

    reply = await state.engine.handle(user_id, message.text)

    try:
        await state.gateway.send_reply(user_id, reply)
    except WhatsAppSendError as e:
        logger.error(f"Reply to {user_id} was not delivered: {e}")
        return

    try:
        await state.store.append_history(user_id, HistoryEntry.sent(reply.content))
    except StorageUnavailable as e:
        logger.warning(f"Outbound history append failed for {user_id}: {e}")
