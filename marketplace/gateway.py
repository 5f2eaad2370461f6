"""
Payment gateway seam.

Card/PayPal capture happens in the provider's client-side SDK; the server
only creates intents and issues refunds. ``MockPaymentGateway`` approves
everything and is what the app uses unless another gateway is installed
with ``set_gateway``.
"""
import secrets
import uuid
from typing import Any, Dict, Optional

from .log import get_logger

logger = get_logger(__name__)


class GatewayError(Exception):
    """Raised when the provider rejects a call."""


class PaymentGateway:
    """Interface every gateway implements."""

    def create_intent(self, amount_cents: int, currency: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Return ``{"id", "client_secret", "status"}`` for a new intent."""
        raise NotImplementedError

    def refund(self, payment_id: str, amount_cents: int) -> Dict[str, Any]:
        """Return ``{"id", "status"}`` for the refund."""
        raise NotImplementedError


class MockPaymentGateway(PaymentGateway):
    def __init__(self):
        self.intents: Dict[str, Dict[str, Any]] = {}
        self.refunds: Dict[str, Dict[str, Any]] = {}

    def create_intent(self, amount_cents: int, currency: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if amount_cents <= 0:
            raise GatewayError("amount must be positive")
        intent_id = f"pi_{uuid.uuid4().hex[:24]}"
        intent = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret_{secrets.token_hex(12)}",
            "status": "requires_confirmation",
            "amount": amount_cents,
            "currency": currency,
            "metadata": dict(metadata or {}),
        }
        self.intents[intent_id] = intent
        logger.info("gateway_intent_created", intent_id=intent_id, amount_cents=amount_cents, currency=currency)
        return intent

    def refund(self, payment_id: str, amount_cents: int) -> Dict[str, Any]:
        refund = {"id": f"re_{uuid.uuid4().hex[:24]}", "payment_id": payment_id, "amount": amount_cents, "status": "succeeded"}
        self.refunds[refund["id"]] = refund
        logger.info("gateway_refund_issued", payment_id=payment_id, amount_cents=amount_cents)
        return refund


_gateway: PaymentGateway = MockPaymentGateway()


def get_gateway() -> PaymentGateway:
    return _gateway


def set_gateway(gateway: PaymentGateway) -> PaymentGateway:
    """Install ``gateway`` and return the previous one."""
    global _gateway
    previous = _gateway
    _gateway = gateway
    return previous
