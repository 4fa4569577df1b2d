"""Currency formatting for amounts kept in the smallest unit."""

import os


DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "INR")

# Largest amount accepted anywhere, in the smallest unit (₹10,000 crore).
# Keeps every stored sum well inside SQLite's 64-bit INTEGER.
MAX_AMOUNT = 10 ** 13

# Currency symbols for formatting
CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "CA$",
}


def format_currency(amount_minor: int, currency: str = DEFAULT_CURRENCY) -> str:
    """
    Format an amount in paise/cents as a currency string with symbol.

    Args:
        amount_minor: Amount in the smallest unit (e.g., 9999 for ₹99.99)
        currency: Currency code (e.g., "INR", "USD")

    Returns:
        Formatted string with symbol (e.g., "₹99.99", "-$12.34")
    """
    symbol = CURRENCY_SYMBOLS.get(currency, currency)
    amount = amount_minor / 100

    # For currencies like JPY that don't use decimal places
    if currency == "JPY":
        return f"{symbol}{amount:.0f}"

    # Handle negative amounts
    if amount < 0:
        return f"-{symbol}{abs(amount):.2f}"
    else:
        return f"{symbol}{amount:.2f}"


def to_major_units(amount_minor: int) -> str:
    """Plain decimal string without symbol, e.g. 12345 -> '123.45'."""
    sign = "-" if amount_minor < 0 else ""
    whole, frac = divmod(abs(amount_minor), 100)
    return f"{sign}{whole}.{frac:02d}"
