from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional
import logging

from app.config.responses import BotResponses
from app.core import replies
from app.core.session_store import SessionStore
from app.models.reply import Reply
from app.models.session import (
    AwaitingSearchSession, BrowsingFaqSession, IdleSession, UserSession
)
from app.services.airtable_service import AirtableService

logger = logging.getLogger(__name__)

class Command(str, Enum):
    START = "start"
    PRODUCTS = "products"
    FAQ = "faq"
    SUPPORT = "support"

@dataclass
class Transition:
    reply: Reply
    # None leaves the stored session untouched
    session: Optional[UserSession] = None

@dataclass
class CommandContext:
    user_id: str
    store: SessionStore
    catalog: AirtableService

CommandHandler = Callable[[CommandContext], Awaitable[Transition]]

async def handle_start(ctx: CommandContext) -> Transition:
    # Drop stale context and history before answering, not just the state
    await ctx.store.clear(ctx.user_id)
    return Transition(reply=replies.root_menu(BotResponses.WELCOME), session=IdleSession())

async def handle_products(ctx: CommandContext) -> Transition:
    return Transition(reply=replies.text(BotResponses.SEARCH_PROMPT), session=AwaitingSearchSession())

async def handle_faq(ctx: CommandContext) -> Transition:
    faqs = await ctx.catalog.get_faqs()
    if not faqs:
        return Transition(reply=replies.text(BotResponses.NO_FAQS), session=IdleSession())
    return Transition(reply=replies.faq_list(faqs), session=BrowsingFaqSession.from_faqs(faqs))

async def handle_support(ctx: CommandContext) -> Transition:
    return Transition(reply=replies.text(BotResponses.SUPPORT_CONTACT))

COMMAND_HANDLERS: Dict[Command, CommandHandler] = {
    Command.START: handle_start,
    Command.PRODUCTS: handle_products,
    Command.FAQ: handle_faq,
    Command.SUPPORT: handle_support,
}

_unhandled = set(Command) - set(COMMAND_HANDLERS)
if _unhandled:
    raise RuntimeError(f"Commands without a handler: {sorted(c.value for c in _unhandled)}")

def lookup(normalized_text: str) -> Optional[CommandHandler]:
    try:
        command = Command(normalized_text)
    except ValueError:
        return None
    logger.debug(f"Command matched: {command.value}")
    return COMMAND_HANDLERS[command]
