import math
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import bleach

CENT = Decimal("0.01")


def round_amount(value) -> Decimal:
    """Money is stored rounded to 2 decimals, half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal) -> int:
    return int(round_amount(value) * 100)


def percent_of(amount: Decimal, rate: Decimal) -> Decimal:
    return round_amount(Decimal(amount) * Decimal(rate) / Decimal(100))


def sanitize_input(value: Optional[str]) -> str:
    """Sanitize a user-supplied string for safe storage and display.

    - Strips HTML tags using bleach.clean(..., strip=True)
    - Removes obvious SQL metacharacters like '--' and ';'
    - Trims whitespace
    """
    if value is None:
        return ""
    # remove NULL bytes
    val = value.replace("\x00", "")
    # strip tags
    val = bleach.clean(val, tags=[], strip=True)
    # remove common SQL comment and statement separators
    val = re.sub(r"(--|;)", "", val)
    return val.strip()


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "store"


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }
