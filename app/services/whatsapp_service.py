import asyncio
import aiohttp
import logging
from typing import Any, Dict, List, Optional

from app.models.message import InboundMessage
from app.models.reply import ButtonSetReply, Reply, SelectableListReply, TextReply
from app.utils.helpers import truncate_text

logger = logging.getLogger(__name__)

# WhatsApp Cloud API limits for interactive messages
MAX_BUTTONS = 3
MAX_BUTTON_TITLE = 20
MAX_LIST_ROWS = 10
MAX_ROW_TITLE = 24
MAX_ROW_DESCRIPTION = 72
MAX_SECTION_TITLE = 24

class WhatsAppSendError(Exception):
    pass

class WhatsAppService:
    """Channel gateway: webhook parsing and outbound delivery over the Cloud API"""

    def __init__(
        self,
        phone_number_id: str,
        access_token: str,
        verify_token: str = "",
        api_url: str = "https://graph.facebook.com/v17.0",
        timeout: float = 10.0
    ):
        self.phone_number_id = phone_number_id
        self.access_token = access_token
        self.verify_token = verify_token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_settings(cls, settings) -> "WhatsAppService":
        return cls(
            phone_number_id=settings.whatsapp_phone_number_id,
            access_token=settings.whatsapp_access_token,
            verify_token=settings.whatsapp_verify_token,
            api_url=settings.whatsapp_api_url,
            timeout=settings.whatsapp_timeout
        )

    async def initialize(self):
        if not self.phone_number_id or not self.access_token:
            logger.warning("WhatsApp credentials not configured; replies will not be delivered")
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json"
            }
        )

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None

    def verify_webhook(self, mode: Optional[str], token: Optional[str], challenge: Optional[str]) -> Optional[str]:
        """Returns the challenge to echo back, or None when verification fails"""
        if mode == "subscribe" and token and token == self.verify_token:
            logger.info("Webhook verified")
            return challenge or ""
        logger.warning("Webhook verification rejected")
        return None

    @staticmethod
    def is_whatsapp_payload(payload: Dict[str, Any]) -> bool:
        return payload.get("object") == "whatsapp_business_account"

    @staticmethod
    def parse_webhook(payload: Dict[str, Any]) -> List[InboundMessage]:
        messages: List[InboundMessage] = []
        for entry in payload.get("entry") or []:
            for change in entry.get("changes") or []:
                for raw in (change.get("value") or {}).get("messages") or []:
                    sender = raw.get("from")
                    if not sender:
                        continue
                    text = _extract_text(raw)
                    if text is None:
                        logger.debug(f"Ignoring unsupported message type {raw.get('type')} from {sender}")
                        continue
                    messages.append(InboundMessage(user_id=sender, text=text, message_id=raw.get("id")))
        return messages

    def build_payload(self, to: str, reply: Reply) -> Dict[str, Any]:
        if isinstance(reply, TextReply):
            body: Dict[str, Any] = {"type": "text", "text": {"body": reply.content}}
        elif isinstance(reply, ButtonSetReply):
            body = {
                "type": "interactive",
                "interactive": {
                    "type": "button",
                    "body": {"text": reply.content},
                    "action": {
                        "buttons": [
                            {
                                "type": "reply",
                                "reply": {"id": option.id, "title": truncate_text(option.label, MAX_BUTTON_TITLE)}
                            }
                            for option in reply.options[:MAX_BUTTONS]
                        ]
                    }
                }
            }
        elif isinstance(reply, SelectableListReply):
            body = {
                "type": "interactive",
                "interactive": {
                    "type": "list",
                    "body": {"text": reply.content},
                    "action": {
                        "button": "Select an option",
                        "sections": self._build_sections(reply)
                    }
                }
            }
        else:
            raise ValueError(f"Unsupported reply type: {type(reply).__name__}")

        return {"messaging_product": "whatsapp", "to": to, **body}

    @staticmethod
    def _build_sections(reply: SelectableListReply) -> List[Dict[str, Any]]:
        sections = []
        remaining = MAX_LIST_ROWS
        for section in reply.sections:
            rows = []
            for row in section.rows[:remaining]:
                item = {"id": row.id, "title": truncate_text(row.label, MAX_ROW_TITLE)}
                if row.detail:
                    item["description"] = truncate_text(row.detail, MAX_ROW_DESCRIPTION)
                rows.append(item)
            remaining -= len(rows)
            if rows:
                sections.append({"title": truncate_text(section.title, MAX_SECTION_TITLE), "rows": rows})
            if remaining <= 0:
                break
        return sections

    async def send_reply(self, to: str, reply: Reply) -> Dict[str, Any]:
        if self.session is None:
            raise WhatsAppSendError("WhatsApp client is not initialized")

        url = f"{self.api_url}/{self.phone_number_id}/messages"
        try:
            async with self.session.post(url, json=self.build_payload(to, reply)) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    logger.error(f"WhatsApp API returned {response.status} sending to {to}: {error_text[:200]}")
                    raise WhatsAppSendError(f"WhatsApp API returned status {response.status}")
                data = await response.json()
                logger.info(f"{reply.type} reply sent to {to}")
                return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error sending WhatsApp message to {to}: {e}")
            raise WhatsAppSendError(str(e)) from e


def _extract_text(raw: Dict[str, Any]) -> Optional[str]:
    message_type = raw.get("type")
    if message_type == "text":
        return (raw.get("text") or {}).get("body", "")
    if message_type == "interactive":
        interactive = raw.get("interactive") or {}
        selected = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return selected.get("id")
    if message_type == "button":
        return (raw.get("button") or {}).get("payload")
    return None
