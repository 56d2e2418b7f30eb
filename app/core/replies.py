"""Pure shaping of catalog rows into reply descriptors.

Row order always follows the order the record store returned; nothing
here sorts or filters.
"""
from typing import Iterable, List, Tuple

from app.config.responses import BotResponses
from app.models.catalog import Faq, Product
from app.models.reply import (
    ButtonOption, ButtonSetReply, ListRow, ListSection, SelectableListReply, TextReply
)
from app.utils.helpers import format_price

def text(content: str) -> TextReply:
    return TextReply(content=content)

def buttons(content: str, options: Iterable[Tuple[str, str]]) -> ButtonSetReply:
    return ButtonSetReply(
        content=content,
        options=[ButtonOption(id=option_id, label=label) for option_id, label in options]
    )

def root_menu(content: str = BotResponses.MENU_PROMPT) -> ButtonSetReply:
    return buttons(content, BotResponses.MENU_OPTIONS)

def product_label(product: Product) -> str:
    return f"{product.name} - {format_price(product.price)}"

def product_results(products: Iterable[Product]) -> SelectableListReply:
    rows: List[ListRow] = [
        ListRow(id=product.id, label=product_label(product), detail=product.description or None)
        for product in products
    ]
    return SelectableListReply(
        content=BotResponses.RESULTS_INTRO,
        sections=[ListSection(title=BotResponses.RESULTS_SECTION, rows=rows)]
    )

def product_detail(product: Product) -> ButtonSetReply:
    content = (
        f"Product: {product.name}\n"
        f"Price: {format_price(product.price)}\n"
        f"Description: {product.description}\n\n"
        f"{BotResponses.PRODUCT_FOLLOW_UP}"
    )
    return buttons(content, BotResponses.FOLLOW_UP_OPTIONS)

def faq_list(faqs: Iterable[Faq]) -> SelectableListReply:
    rows = [ListRow(id=faq.id, label=faq.question) for faq in faqs]
    return SelectableListReply(
        content=BotResponses.FAQ_INTRO,
        sections=[ListSection(title=BotResponses.FAQ_SECTION, rows=rows)]
    )

def faq_answer(faq: Faq) -> TextReply:
    return text(f"Q: {faq.question}\n\nA: {faq.answer}")
