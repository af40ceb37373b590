"""
Conversion between integer cents and the pt-BR display format ("R$ 1.234,56").

Display only: sale arithmetic never leaves integer cents.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from bsm.domain.errors import ValidationError

CURRENCY_PREFIX = "R$"

_PRICE_RE = re.compile(r"^(-)?\s*(?:R\$)?\s*(\d{1,3}(?:\.\d{3})*|\d+)(?:,(\d{1,2}))?$")


def format_price(cents: int) -> str:
    if isinstance(cents, bool) or not isinstance(cents, int):
        raise ValidationError("Price must be an integer amount of cents.")
    sign = "-" if cents < 0 else ""
    units, rest = divmod(abs(cents), 100)
    grouped = f"{units:,}".replace(",", ".")
    return f"{sign}{CURRENCY_PREFIX} {grouped},{rest:02d}"


def parse_price(text: str) -> int:
    match = _PRICE_RE.match((text or "").strip())
    if not match:
        raise ValidationError(f"Invalid price: {text!r}")
    sign, units, fraction = match.groups()
    try:
        value = Decimal(units.replace(".", "")) * 100 + Decimal((fraction or "0").ljust(2, "0"))
    except InvalidOperation as e:
        raise ValidationError(f"Invalid price: {text!r}") from e
    cents = int(value)
    return -cents if sign else cents
