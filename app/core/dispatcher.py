from typing import Awaitable, Callable, Dict, Optional
import logging

from app.config.responses import BotResponses
from app.core import commands, replies
from app.core.commands import CommandContext, Transition
from app.core.exceptions import MalformedSession, StorageUnavailable, UpstreamUnavailable
from app.core.session_store import SessionStore
from app.models.message import HistoryEntry
from app.models.reply import Reply
from app.models.session import (
    AwaitingSearchSession,
    BrowsingFaqSession,
    CollectingFeedbackSession,
    ConversationState,
    IdleSession,
    ShowingResultsSession,
    UserSession,
)
from app.services.airtable_service import AirtableService
from app.utils.helpers import normalize_text

logger = logging.getLogger(__name__)

StateHandler = Callable[[str, UserSession, str], Awaitable[Optional[Transition]]]

class DispatchEngine:
    """Maps one inbound message to a reply and a session mutation.

    Nothing is cached between calls: every dispatch reads the session from
    the store and writes the result back. Concurrent dispatches for the same
    user are not serialized, so the later write wins and the other
    transition is lost.
    """

    def __init__(self, store: SessionStore, catalog: AirtableService):
        self.store = store
        self.catalog = catalog
        self.state_handlers: Dict[ConversationState, StateHandler] = {
            ConversationState.IDLE: self._on_idle,
            ConversationState.AWAITING_PRODUCT_SEARCH: self._on_awaiting_search,
            ConversationState.SHOWING_PRODUCTS: self._on_showing_results,
            ConversationState.COLLECTING_FEEDBACK: self._on_collecting_feedback,
            ConversationState.FAQ_BROWSING: self._on_browsing_faq,
        }

    async def handle(self, user_id: str, raw_text: str) -> Reply:
        """Never raises; every failure degrades to a text apology"""
        try:
            return await self._dispatch(user_id, raw_text or "")
        except StorageUnavailable as e:
            logger.error(f"Session store unavailable while handling {user_id}: {e}")
        except UpstreamUnavailable as e:
            logger.error(f"Record store unavailable while handling {user_id}: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error handling message from {user_id}: {e}")
        return replies.text(BotResponses.TECHNICAL_ERROR)

    async def _dispatch(self, user_id: str, raw_text: str) -> Reply:
        await self._record_received(user_id, raw_text)
        session = await self._load_session(user_id)

        logger.info(f"{user_id} | state={session.state.value} | msg={raw_text[:80]!r}")

        handler = commands.lookup(normalize_text(raw_text))
        if handler:
            transition = await handler(CommandContext(user_id, self.store, self.catalog))
        else:
            transition = await self.state_handlers[session.state](user_id, session, raw_text)

        if transition is None:
            logger.info(f"Unresolved input from {user_id} in state {session.state.value}")
            return replies.text(BotResponses.NOT_UNDERSTOOD)

        if transition.session is not None:
            await self.store.put(user_id, transition.session)
            if transition.session.state != session.state:
                logger.info(f"{user_id} | {session.state.value} -> {transition.session.state.value}")
        return transition.reply

    async def _record_received(self, user_id: str, raw_text: str):
        try:
            await self.store.append_history(user_id, HistoryEntry.received(raw_text))
        except StorageUnavailable as e:
            logger.warning(f"History append failed for {user_id}, continuing: {e}")

    async def _load_session(self, user_id: str) -> UserSession:
        try:
            session = await self.store.get(user_id)
        except MalformedSession as e:
            logger.warning(f"{e}; starting over from IDLE")
            session = None
        return session or IdleSession()

    async def _on_idle(self, user_id: str, session: IdleSession, raw_text: str) -> Transition:
        return Transition(reply=replies.root_menu(), session=IdleSession())

    async def _on_awaiting_search(self, user_id: str, session: AwaitingSearchSession, raw_text: str) -> Transition:
        products = await self.catalog.search_products(raw_text)
        if not products:
            return Transition(reply=replies.text(BotResponses.NO_PRODUCTS))
        return Transition(
            reply=replies.product_results(products),
            session=ShowingResultsSession.from_results(products)
        )

    async def _on_showing_results(
        self, user_id: str, session: ShowingResultsSession, raw_text: str
    ) -> Optional[Transition]:
        product = session.products.get(raw_text.strip())
        if product is None:
            return None
        return Transition(
            reply=replies.product_detail(product),
            session=CollectingFeedbackSession(product_id=product.id)
        )

    async def _on_collecting_feedback(
        self, user_id: str, session: CollectingFeedbackSession, raw_text: str
    ) -> Transition:
        await self.catalog.save_feedback(user_id, raw_text)
        logger.info(f"Feedback recorded for {user_id} on product {session.product_id}")
        return Transition(reply=replies.text(BotResponses.FEEDBACK_THANKS), session=IdleSession())

    async def _on_browsing_faq(
        self, user_id: str, session: BrowsingFaqSession, raw_text: str
    ) -> Optional[Transition]:
        faq = session.faqs.get(raw_text.strip())
        if faq is None:
            return None
        return Transition(reply=replies.faq_answer(faq), session=IdleSession())
