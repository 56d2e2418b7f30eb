import pytest
from unittest.mock import AsyncMock, Mock

from app.core.dispatcher import DispatchEngine
from app.core.session_store import InMemorySessionStore
from app.models.catalog import Faq, Product
from app.services.airtable_service import AirtableService

@pytest.fixture
def store():
    """Fresh in-memory session store"""
    return InMemorySessionStore()

@pytest.fixture
def catalog():
    """Record store double with empty defaults"""
    catalog = Mock(spec=AirtableService)
    catalog.search_products = AsyncMock(return_value=[])
    catalog.get_products = AsyncMock(return_value=[])
    catalog.get_faqs = AsyncMock(return_value=[])
    catalog.save_feedback = AsyncMock(return_value={"id": "recFeedback"})
    catalog.save_interaction = AsyncMock(return_value={"id": "recInteraction"})
    catalog.get_interactions = AsyncMock(return_value=[])
    return catalog

@pytest.fixture
def engine(store, catalog):
    return DispatchEngine(store, catalog)

@pytest.fixture
def red_shoes():
    return Product(id="rec1", name="Red Shoes", price=20, description="Comfortable red running shoes")

@pytest.fixture
def blue_hat():
    return Product(id="rec2", name="Blue Hat", price=12.5, description="")

@pytest.fixture
def faqs():
    return [
        Faq(id="recFaq1", question="Do you ship abroad?", answer="Yes, to most countries."),
        Faq(id="recFaq2", question="How do returns work?", answer="Within 30 days of delivery."),
    ]
