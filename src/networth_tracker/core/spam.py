"""Spam and dust filter applied to provider rows before they are stored."""

from decimal import Decimal

URL_INDICATORS = ("http", "https", ".com", ".net", ".org", ".io")

SPAM_PHRASES = (
    "visit ",
    "claim ",
    "rewards",
    "reward",
    "bonus",
    "gift",
    "airdrop",
    "notice",
    "urgent",
    "secure your funds",
)

DUST_THRESHOLD_USD = Decimal("1")


def is_junk(symbol: str | None, price_usd: Decimal | None, value_usd: Decimal | None) -> bool:
    """
    Decide whether a candidate holding row is spam or dust.

    Checks run in order and the first match wins: missing or non-positive
    price, a URL fragment in the symbol, a known airdrop-scam phrase in the
    symbol, then a value below the dust threshold.

    Parameters
    ----------
    symbol : str | None
        Token or ticker symbol as reported by the provider
    price_usd : Decimal | None
        Unit price in USD
    value_usd : Decimal | None
        Total value in USD, if known

    Returns
    -------
    bool
        True if the row should be dropped

    Examples
    --------
    >>> is_junk("VISIT-REWARDS.COM", Decimal("1"), Decimal("500"))
    True
    >>> is_junk("BTC", Decimal("50000"), Decimal("62500"))
    False

    """
    if price_usd is None or price_usd <= 0:
        return True

    lowered = (symbol or "").lower()
    if any(indicator in lowered for indicator in URL_INDICATORS):
        return True
    if any(phrase in lowered for phrase in SPAM_PHRASES):
        return True

    return value_usd is not None and value_usd < DUST_THRESHOLD_USD
