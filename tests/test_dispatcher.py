import asyncio
import json
import pytest
from unittest.mock import AsyncMock, Mock

from app.config.responses import BotResponses
from app.core.dispatcher import DispatchEngine
from app.core.exceptions import StorageUnavailable, UpstreamUnavailable
from app.core.session_store import SessionStore
from app.models.message import HistoryEntry
from app.models.reply import ButtonSetReply, SelectableListReply, TextReply
from app.models.session import (
    AwaitingSearchSession,
    BrowsingFaqSession,
    CollectingFeedbackSession,
    ConversationState,
    IdleSession,
    ShowingResultsSession,
)

USER = "+1555"

class TestFirstContact:
    """Users without a session"""

    @pytest.mark.asyncio
    async def test_first_message_gets_root_menu(self, engine, store):
        reply = await engine.handle(USER, "hello")

        assert isinstance(reply, ButtonSetReply)
        assert reply.content == BotResponses.MENU_PROMPT
        assert [option.id for option in reply.options] == ["products", "faq", "support"]
        session = await store.get(USER)
        assert session.state == ConversationState.IDLE

    @pytest.mark.asyncio
    async def test_inbound_message_is_logged(self, engine, store):
        await engine.handle(USER, "hello")

        history = await store.get_history(USER)
        assert len(history) == 1
        assert history[0].content == "hello"
        assert history[0].direction.value == "received"


class TestProductScenario:
    """Search, select, feedback"""

    @pytest.mark.asyncio
    async def test_products_then_search(self, engine, store, catalog, red_shoes):
        reply = await engine.handle(USER, "products")

        assert isinstance(reply, TextReply)
        assert reply.content.startswith("What product are you looking for?")
        assert (await store.get(USER)).state == ConversationState.AWAITING_PRODUCT_SEARCH

        catalog.search_products.return_value = [red_shoes]
        reply = await engine.handle(USER, "red shoes")

        catalog.search_products.assert_awaited_once_with("red shoes")
        session = await store.get(USER)
        assert session.state == ConversationState.SHOWING_PRODUCTS
        assert list(session.products.values()) == [red_shoes]
        assert isinstance(reply, SelectableListReply)
        assert len(reply.sections) == 1
        assert [row.label for row in reply.sections[0].rows] == ["Red Shoes - $20"]
        assert reply.sections[0].rows[0].id == "rec1"

    @pytest.mark.asyncio
    async def test_search_with_no_results_keeps_state(self, engine, store, catalog):
        await store.put(USER, AwaitingSearchSession())
        catalog.search_products.return_value = []

        reply = await engine.handle(USER, "unicorn saddle")

        assert reply == TextReply(content=BotResponses.NO_PRODUCTS)
        assert (await store.get(USER)).state == ConversationState.AWAITING_PRODUCT_SEARCH

    @pytest.mark.asyncio
    async def test_result_set_keyed_by_id_in_catalog_order(self, engine, store, catalog, red_shoes, blue_hat):
        await store.put(USER, AwaitingSearchSession())
        catalog.search_products.return_value = [blue_hat, red_shoes]

        reply = await engine.handle(USER, "gear")

        session = await store.get(USER)
        assert list(session.products) == ["rec2", "rec1"]
        assert [row.id for row in reply.sections[0].rows] == ["rec2", "rec1"]

    @pytest.mark.asyncio
    async def test_selecting_listed_product_collects_feedback(self, engine, store, red_shoes):
        await store.put(USER, ShowingResultsSession.from_results([red_shoes]))

        reply = await engine.handle(USER, "rec1")

        assert isinstance(reply, ButtonSetReply)
        assert "Product: Red Shoes" in reply.content
        assert [option.id for option in reply.options] == ["yes", "no"]
        session = await store.get(USER)
        assert session == CollectingFeedbackSession(product_id="rec1", updated_at=session.updated_at)

    @pytest.mark.asyncio
    async def test_selecting_unknown_product_falls_through(self, engine, store, red_shoes):
        await store.put(USER, ShowingResultsSession.from_results([red_shoes]))
        before = await store.get(USER)

        reply = await engine.handle(USER, "rec999")

        assert reply == TextReply(content=BotResponses.NOT_UNDERSTOOD)
        assert await store.get(USER) == before

    @pytest.mark.asyncio
    async def test_feedback_is_recorded_and_returns_to_idle(self, engine, store, catalog):
        await store.put(USER, CollectingFeedbackSession(product_id="rec1"))

        reply = await engine.handle(USER, "yes")

        catalog.save_feedback.assert_awaited_once_with(USER, "yes")
        assert reply == TextReply(content=BotResponses.FEEDBACK_THANKS)
        assert (await store.get(USER)).state == ConversationState.IDLE


class TestFaqFlow:

    @pytest.mark.asyncio
    async def test_faq_command_lists_questions(self, engine, store, catalog, faqs):
        catalog.get_faqs.return_value = faqs

        reply = await engine.handle(USER, "faq")

        assert isinstance(reply, SelectableListReply)
        assert [row.label for row in reply.sections[0].rows] == [faq.question for faq in faqs]
        session = await store.get(USER)
        assert isinstance(session, BrowsingFaqSession)
        assert list(session.faqs) == ["recFaq1", "recFaq2"]

    @pytest.mark.asyncio
    async def test_selecting_faq_answers_and_returns_to_idle(self, engine, store, faqs):
        await store.put(USER, BrowsingFaqSession.from_faqs(faqs))

        reply = await engine.handle(USER, "recFaq2")

        assert reply == TextReply(content="Q: How do returns work?\n\nA: Within 30 days of delivery.")
        assert (await store.get(USER)).state == ConversationState.IDLE

    @pytest.mark.asyncio
    async def test_selecting_unknown_faq_falls_through(self, engine, store, faqs):
        await store.put(USER, BrowsingFaqSession.from_faqs(faqs))

        reply = await engine.handle(USER, "what?")

        assert reply == TextReply(content=BotResponses.NOT_UNDERSTOOD)
        assert (await store.get(USER)).state == ConversationState.FAQ_BROWSING

    @pytest.mark.asyncio
    async def test_empty_faq_catalog(self, engine, store, catalog):
        catalog.get_faqs.return_value = []

        reply = await engine.handle(USER, "faq")

        assert reply == TextReply(content=BotResponses.NO_FAQS)
        assert (await store.get(USER)).state == ConversationState.IDLE


class TestCommands:
    """Commands pre-empt whatever state the user is in"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("session", [
        IdleSession(),
        AwaitingSearchSession(),
        ShowingResultsSession(products={}),
        CollectingFeedbackSession(product_id="rec1"),
        BrowsingFaqSession(faqs={}),
    ], ids=lambda s: s.state.value)
    async def test_start_resets_from_every_state(self, engine, store, session):
        await store.put(USER, session)
        for i in range(3):
            await store.append_history(USER, HistoryEntry.received(f"earlier {i}"))

        reply = await engine.handle(USER, "start")

        assert isinstance(reply, ButtonSetReply)
        assert reply.content == BotResponses.WELCOME
        assert (await store.get(USER)).state == ConversationState.IDLE
        assert await store.get_history(USER) == []

    @pytest.mark.asyncio
    async def test_commands_are_case_insensitive(self, engine, store, red_shoes):
        await store.put(USER, ShowingResultsSession.from_results([red_shoes]))

        reply = await engine.handle(USER, "  PRODUCTS ")

        assert reply.content == BotResponses.SEARCH_PROMPT
        assert (await store.get(USER)).state == ConversationState.AWAITING_PRODUCT_SEARCH

    @pytest.mark.asyncio
    async def test_command_wins_over_feedback_collection(self, engine, store, catalog):
        await store.put(USER, CollectingFeedbackSession(product_id="rec1"))

        await engine.handle(USER, "Start")

        catalog.save_feedback.assert_not_awaited()
        assert (await store.get(USER)).state == ConversationState.IDLE

    @pytest.mark.asyncio
    async def test_support_leaves_session_untouched(self, engine, store):
        await store.put(USER, AwaitingSearchSession())

        reply = await engine.handle(USER, "support")

        assert reply == TextReply(content=BotResponses.SUPPORT_CONTACT)
        assert (await store.get(USER)).state == ConversationState.AWAITING_PRODUCT_SEARCH


class TestFailureHandling:
    """The engine always answers, never raises"""

    @pytest.fixture
    def failing_store(self):
        store = Mock(spec=SessionStore)
        store.get = AsyncMock(return_value=None)
        store.put = AsyncMock()
        store.append_history = AsyncMock()
        store.clear = AsyncMock()
        return store

    @pytest.mark.asyncio
    async def test_upstream_failure_leaves_state_unmutated(self, engine, store, catalog):
        await store.put(USER, AwaitingSearchSession())
        catalog.search_products.side_effect = UpstreamUnavailable("airtable down")

        reply = await engine.handle(USER, "red shoes")

        assert reply == TextReply(content=BotResponses.TECHNICAL_ERROR)
        assert (await store.get(USER)).state == ConversationState.AWAITING_PRODUCT_SEARCH

    @pytest.mark.asyncio
    async def test_feedback_write_failure_keeps_collecting(self, engine, store, catalog):
        await store.put(USER, CollectingFeedbackSession(product_id="rec1"))
        catalog.save_feedback.side_effect = UpstreamUnavailable("airtable down")

        reply = await engine.handle(USER, "loved it")

        assert reply == TextReply(content=BotResponses.TECHNICAL_ERROR)
        assert (await store.get(USER)).state == ConversationState.COLLECTING_FEEDBACK

    @pytest.mark.asyncio
    async def test_storage_failure_returns_apology(self, failing_store, catalog):
        failing_store.get.side_effect = StorageUnavailable("redis down")
        engine = DispatchEngine(failing_store, catalog)

        reply = await engine.handle(USER, "hello")

        assert reply == TextReply(content=BotResponses.TECHNICAL_ERROR)
        failing_store.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_history_append_failure_is_not_fatal(self, failing_store, catalog):
        failing_store.append_history.side_effect = StorageUnavailable("redis down")
        engine = DispatchEngine(failing_store, catalog)

        reply = await engine.handle(USER, "hello")

        assert isinstance(reply, ButtonSetReply)
        failing_store.put.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_malformed_session_starts_over_from_idle(self, engine, store):
        store._sessions[USER] = (json.dumps({"state": "SHOWING_PRODUCTS"}), float("inf"))

        reply = await engine.handle(USER, "rec1")

        assert isinstance(reply, ButtonSetReply)
        assert (await store.get(USER)).state == ConversationState.IDLE

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_apology(self, engine, store, catalog):
        await store.put(USER, AwaitingSearchSession())
        catalog.search_products.side_effect = RuntimeError("boom")

        reply = await engine.handle(USER, "red shoes")

        assert reply == TextReply(content=BotResponses.TECHNICAL_ERROR)


class TestStateTable:

    def test_every_state_has_a_handler(self, engine):
        assert set(engine.state_handlers) == set(ConversationState)

    @pytest.mark.asyncio
    async def test_history_stays_bounded_across_dispatches(self, engine, store):
        for i in range(55):
            await engine.handle(USER, f"message {i}")

        history = await store.get_history(USER, limit=100)
        assert len(history) == 50
        assert history[0].content == "message 54"

    @pytest.mark.asyncio
    async def test_users_are_independent(self, engine, store, catalog, red_shoes):
        await store.put("+1", AwaitingSearchSession())
        await store.put("+2", CollectingFeedbackSession(product_id="rec1"))
        catalog.search_products.return_value = [red_shoes]

        await asyncio.gather(
            engine.handle("+1", "shoes"),
            engine.handle("+2", "great"),
            engine.handle("+3", "hi"),
        )

        assert (await store.get("+1")).state == ConversationState.SHOWING_PRODUCTS
        assert (await store.get("+2")).state == ConversationState.IDLE
        assert (await store.get("+3")).state == ConversationState.IDLE
