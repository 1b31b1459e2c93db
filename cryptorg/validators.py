"""
Input validators for Cryptorg CLI parameters.

Every public function raises ``ValueError`` with a human-readable message
when validation fails.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Dict, Iterable, Optional, Tuple, Union

# Cryptorg pairs are written BASE-QUOTE, e.g. BTC-USDT.
_PAIR_RE = re.compile(r"^[A-Z0-9]{2,10}-[A-Z0-9]{2,10}$")
_EXCHANGE_RE = re.compile(r"^[a-z0-9_]{2,30}$")
_ATTR_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_\[\]]*$")


def validate_id(value: Union[str, int], name: str = "id") -> int:
    """Return *value* as a positive ``int`` or raise."""
    try:
        ident = int(str(value).strip())
    except ValueError:
        raise ValueError(f"Invalid {name} '{value}'. Must be a positive integer.")
    if ident <= 0:
        raise ValueError(f"{name} must be positive, got {ident}.")
    return ident


def validate_pair(pair: str) -> str:
    """
    Return the normalised pair or raise.

    ``btc/usdt``, ``BTC_USDT`` and ``btc-usdt`` all become ``BTC-USDT``.
    """
    normalised = re.sub(r"[/_]", "-", pair.strip().upper())
    if not _PAIR_RE.match(normalised):
        raise ValueError(
            f"Invalid pair '{pair}'. Expected BASE-QUOTE (e.g. BTC-USDT)."
        )
    return normalised


def validate_exchange(exchange: str) -> str:
    """Return the lowercased exchange name or raise."""
    exchange = exchange.strip().lower()
    if not _EXCHANGE_RE.match(exchange):
        raise ValueError(
            f"Invalid exchange '{exchange}'. "
            "Expected a lowercase identifier such as 'binance'."
        )
    return exchange


def validate_period(start: str, end: str) -> Tuple[str, str]:
    """
    Validate an analytics period.

    Both bounds must be ISO dates (``YYYY-MM-DD``) and *start* must not be
    after *end*.  Returns them unchanged as strings.
    """
    parsed = []
    for label, value in (("start", start), ("end", end)):
        try:
            parsed.append(date.fromisoformat(value.strip()))
        except ValueError:
            raise ValueError(f"Invalid {label} date '{value}'. Expected YYYY-MM-DD.")
    if parsed[0] > parsed[1]:
        raise ValueError(f"Period start {start} is after end {end}.")
    return parsed[0].isoformat(), parsed[1].isoformat()


def parse_attributes(items: Optional[Iterable[str]]) -> Dict[str, str]:
    """
    Turn ``KEY=VALUE`` strings into a form-field dict.

    Later duplicates override earlier ones.

    Raises
    ------
    ValueError
        If an item has no ``=`` or an invalid key.
    """
    attributes: Dict[str, str] = {}
    for item in items or ():
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not _ATTR_KEY_RE.match(key):
            raise ValueError(f"Invalid attribute '{item}'. Expected KEY=VALUE.")
        attributes[key] = value.strip()
    return attributes
