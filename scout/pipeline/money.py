"""
Monetary evidence extraction.

A currency token is a ``$`` amount with optional thousands separators,
decimals, magnitude suffix (k/m/b or thousand/million/billion/trillion),
a hyphenated range and an MRR/ARR qualifier::

    $2,300   $5k   $1.2 million   $5k-$10k MRR   $40,000 ARR

Shorthand tokens ("2.3k MRR", "$1.5M") are a weaker signal and are
normalized to carry a leading ``$``.
"""

import re
from typing import Optional

_AMOUNT = r"\$\s?\d+(?:,\d{3})*(?:\.\d+)?"
_SUFFIX = r"(?:\s?(?:thousand|million|billion|trillion)\b|\s?[kKmMbB]\b)?"
_QUALIFIER = r"(?:\s?(?:MRR|ARR)\b)?"

CURRENCY_RE = re.compile(
    _AMOUNT + _SUFFIX + r"(?:\s?-\s?" + _AMOUNT + _SUFFIX + r")?" + _QUALIFIER,
    re.IGNORECASE,
)

SHORTHAND_RE = re.compile(
    r"\$?\s?\d+(?:\.\d+)?\s?(?:[kKmMbB]|thousand|million|billion)\b" + _QUALIFIER,
    re.IGNORECASE,
)

FUNDING_TERMS = [
    r"funding",
    r"raised",
    r"valuation",
    r"capex",
    r"market cap",
    r"secondary markets?",
    r"venture",
    r"series[\s-]?[abc]",
    r"seed",
]

FUNDING_RE = re.compile(r"\b(?:" + "|".join(FUNDING_TERMS) + r")\b", re.IGNORECASE)


def find_currency_token(text: Optional[str]) -> Optional[str]:
    """First currency token in text, or None."""
    if not text:
        return None
    m = CURRENCY_RE.search(text)
    return m.group(0).strip() if m else None


def has_currency_token(text: Optional[str]) -> bool:
    return find_currency_token(text) is not None


def find_shorthand_token(text: Optional[str]) -> Optional[str]:
    """First shorthand amount ("2.3k", "1.5M MRR"), always starting with '$'."""
    if not text:
        return None
    m = SHORTHAND_RE.search(text)
    if not m:
        return None
    token = m.group(0).strip()
    return token if token.startswith("$") else f"${token}"


def find_money_token(text: Optional[str]) -> Optional[str]:
    """A currency token if present, else a shorthand token."""
    return find_currency_token(text) or find_shorthand_token(text)


def mentions_funding(text: Optional[str]) -> bool:
    """True if text talks about fundraising or valuations."""
    return bool(text) and FUNDING_RE.search(text) is not None

