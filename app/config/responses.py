from typing import List, Tuple

class BotResponses:
    """Fixed bot copy, grouped by where it is used"""

    # Menu
    WELCOME = "Welcome! How can I help you today?"
    MENU_PROMPT = "I'm not sure how to help with that. Please select an option:"
    MENU_OPTIONS: List[Tuple[str, str]] = [
        ("products", "Browse Products"),
        ("faq", "FAQs"),
        ("support", "Contact Support"),
    ]

    # Product search
    SEARCH_PROMPT = "What product are you looking for? You can search by name, category, or description."
    NO_PRODUCTS = "No products found matching your search. Please try different keywords."
    RESULTS_INTRO = "Here are the products matching your search:"
    RESULTS_SECTION = "Search Results"
    PRODUCT_FOLLOW_UP = "Would you like to know more about this product?"
    FOLLOW_UP_OPTIONS: List[Tuple[str, str]] = [
        ("yes", "Yes, tell me more"),
        ("no", "No, thanks"),
    ]

    # Feedback
    FEEDBACK_THANKS = "Thank you for your feedback! Is there anything else I can help you with?"

    # FAQ
    FAQ_INTRO = "Select a question to view the answer:"
    FAQ_SECTION = "Frequently Asked Questions"
    NO_FAQS = "There are no FAQs available right now. Type 'start' to see the menu."

    # Support
    SUPPORT_CONTACT = (
        "Our support team is available Monday to Friday, 9 AM to 6 PM. "
        "You can reach us at support@yourbusiness.com or call +1-234-567-8900."
    )

    # Fallbacks
    NOT_UNDERSTOOD = "I didn't understand that. Please try again or select an option from the menu."
    TECHNICAL_ERROR = "Sorry, I encountered an error. Please try again later."
