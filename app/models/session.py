from pydantic import BaseModel, Field, TypeAdapter
from typing import Annotated, Dict, Literal, Union
from datetime import datetime
from enum import Enum

from app.models.catalog import Product, Faq

class ConversationState(str, Enum):
    IDLE = "IDLE"
    AWAITING_PRODUCT_SEARCH = "AWAITING_PRODUCT_SEARCH"
    SHOWING_PRODUCTS = "SHOWING_PRODUCTS"
    COLLECTING_FEEDBACK = "COLLECTING_FEEDBACK"
    FAQ_BROWSING = "FAQ_BROWSING"

class _SessionBase(BaseModel):
    updated_at: datetime = Field(default_factory=datetime.now)

class IdleSession(_SessionBase):
    state: Literal[ConversationState.IDLE] = ConversationState.IDLE

class AwaitingSearchSession(_SessionBase):
    state: Literal[ConversationState.AWAITING_PRODUCT_SEARCH] = ConversationState.AWAITING_PRODUCT_SEARCH

class ShowingResultsSession(_SessionBase):
    state: Literal[ConversationState.SHOWING_PRODUCTS] = ConversationState.SHOWING_PRODUCTS
    # Keyed by record id, in the order the catalog returned them
    products: Dict[str, Product]

    @classmethod
    def from_results(cls, products) -> "ShowingResultsSession":
        return cls(products={product.id: product for product in products})

class CollectingFeedbackSession(_SessionBase):
    state: Literal[ConversationState.COLLECTING_FEEDBACK] = ConversationState.COLLECTING_FEEDBACK
    product_id: str

class BrowsingFaqSession(_SessionBase):
    state: Literal[ConversationState.FAQ_BROWSING] = ConversationState.FAQ_BROWSING
    faqs: Dict[str, Faq]

    @classmethod
    def from_faqs(cls, faqs) -> "BrowsingFaqSession":
        return cls(faqs={faq.id: faq for faq in faqs})

UserSession = Annotated[
    Union[
        IdleSession,
        AwaitingSearchSession,
        ShowingResultsSession,
        CollectingFeedbackSession,
        BrowsingFaqSession,
    ],
    Field(discriminator="state"),
]

session_adapter = TypeAdapter(UserSession)

def dump_session(session: UserSession) -> str:
    return session.model_dump_json()

def load_session(raw) -> UserSession:
    """Parses a stored blob; raises pydantic.ValidationError on shape mismatch."""
    return session_adapter.validate_json(raw)
