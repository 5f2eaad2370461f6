"""Runtime configuration for the marketplace (replaceable during tests/runtime)."""
import os
from decimal import Decimal
from typing import NamedTuple


class ConfigState(NamedTuple):
    jwt_secret: str
    jwt_exp_seconds: int
    commission_rate: Decimal
    tax_rate: Decimal
    free_shipping_threshold: Decimal
    shipping_price: Decimal
    min_withdrawal: Decimal
    currency: str
    log_level: str
    log_format: str


def load_from_env() -> ConfigState:
    return ConfigState(
        jwt_secret=os.getenv("JWT_SECRET", "dev-secret"),
        jwt_exp_seconds=int(os.getenv("JWT_EXP_SECONDS", str(60 * 60 * 24 * 7))),
        # percent of seller gross kept by the platform
        commission_rate=Decimal(os.getenv("COMMISSION_RATE", "15")),
        tax_rate=Decimal(os.getenv("TAX_RATE", "15")),
        free_shipping_threshold=Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "100")),
        shipping_price=Decimal(os.getenv("SHIPPING_PRICE", "10")),
        min_withdrawal=Decimal(os.getenv("MIN_WITHDRAWAL", "100")),
        currency=os.getenv("CURRENCY", "usd").lower(),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_format=os.getenv("LOG_FORMAT", "console").lower(),
    )


state = load_from_env()


def get_settings() -> ConfigState:
    return state


def override(**changes) -> ConfigState:
    """Replace selected settings, returning the previous state so callers can restore it."""
    global state
    previous = state
    state = state._replace(**changes)
    return previous


def restore(previous: ConfigState):
    global state
    state = previous
