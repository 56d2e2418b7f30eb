import re
from typing import Union

def normalize_text(text: str) -> str:
    if not text:
        return ""
    # Collapse inner whitespace so "  START " and "start" match the same command
    return re.sub(r'\s+', ' ', text).strip().casefold()

def format_price(value: Union[int, float, None]) -> str:
    if value is None:
        return "$0"
    if float(value).is_integer():
        return f"${int(value):,}"
    return f"${value:,.2f}"

def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix

def escape_formula_string(value: str) -> str:
    return value.replace('\\', '\\\\').replace('"', '\\"')
