"""Symbol normalization between stored holdings and quote vendors.

Indian listings are stored under their bare NSE ticker (``HDFCBANK``) but
vendors only price them with an exchange suffix (``HDFCBANK.NS``).
"""

from __future__ import annotations

NSE_SYMBOLS = frozenset(
    {
        "ADANIPORTS", "AKZONOBEL", "APOLLOHOSP", "ASIANPAINT", "BAJAJ-AUTO",
        "BAJFINANCE", "BERGEPAINT", "BHARTIARTL", "BPCL", "BRITANNIA", "BSEL",
        "CIPLA", "COALINDIA", "DIVISLAB", "DRREDDY", "EICHERMOT", "GODREJCP",
        "GRASIM", "HAL", "HCLTECH", "HDFCBANK", "HEROMOTOCO", "HINDALCO",
        "HINDCOPPER", "HINDUNILVR", "ICICIBANK", "IEX", "INDIGO", "INDIGOPNTS",
        "INFY", "IOC", "ITC", "JSWSTEEL", "JUBLFOOD", "KOTAKBANK", "LT", "M&M",
        "MARUTI", "NESTLEIND", "NTPC", "ONGC", "PEL", "PIDILITIND", "POWERGRID",
        "RELIANCE", "SBIN", "SPICEJET", "SUNPHARMA", "TATACONSUM", "TATASTEEL",
        "TCS", "TECHM", "TITAN", "ULTRACEMCO", "WHIRLPOOL", "WIPRO",
    }
)


def to_provider_symbol(symbol: str) -> str:
    """Map a stored symbol to the form quote vendors expect."""
    if symbol.upper() in NSE_SYMBOLS:
        return f"{symbol.upper()}.NS"
    return symbol

