"""
Paystack gateway.

- Amounts travel in kobo (x100, integer).
- Webhooks: HMAC-SHA512 of the raw body keyed with the secret key, hex
  digest in the x-paystack-signature header.
- Outcome: "charge.success" is a success and "charge.failed" a failure;
  other events (disputes, transfers, ...) are ignored. Webhook amounts are
  converted back to naira for the settlement amount check.
"""
import hashlib
import hmac
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from config import settings
from domain.enums import GatewayName, PaymentOutcome
from domain.errors import GatewayError
from services.gateways import register_gateway
from services.gateways.base import (
    InitializeRequest,
    PaymentGateway,
    VerificationResult,
    WebhookEvent,
    from_minor_units,
    to_minor_units,
)

logger = logging.getLogger(__name__)

# data.status values from GET /transaction/verify/:reference
PAYSTACK_STATUS_MAP = {
    "success": PaymentOutcome.SUCCESS,
    "ongoing": PaymentOutcome.PENDING,
    "pending": PaymentOutcome.PENDING,
    "processing": PaymentOutcome.PENDING,
    "queued": PaymentOutcome.PENDING,
    "failed": PaymentOutcome.FAILED,
    "abandoned": PaymentOutcome.FAILED,
    "reversed": PaymentOutcome.FAILED,
}

# Webhook events that decide a charge; disputes and the rest are ignored.
PAYSTACK_OUTCOME_EVENTS = frozenset({"charge.success", "charge.failed"})


def _kobo_to_naira(value) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return from_minor_units(value)
    except (InvalidOperation, ValueError):
        return None


@register_gateway(GatewayName.PAYSTACK)
class PaystackGateway(PaymentGateway):
    signature_header = "x-paystack-signature"

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None, **kwargs):
        kwargs.setdefault("secret_key", settings.paystack_secret_key)
        kwargs.setdefault("base_url", settings.paystack_base_url)
        super().__init__(transport=transport, **kwargs)

    @property
    def name(self) -> GatewayName:
        return GatewayName.PAYSTACK

    async def initialize(self, request: InitializeRequest) -> str:
        payload = {
            "email": request.customer.email,
            "amount": to_minor_units(request.amount),
            "currency": request.currency,
            "reference": request.reference,
            "callback_url": request.redirect_url,
            "metadata": {
                **request.metadata,
                "customer_name": request.customer.name,
                "phone": request.customer.phone,
            },
        }
        data = await self._request("POST", "/transaction/initialize", json=payload)
        if not data.get("status"):
            raise GatewayError(data.get("message") or "Paystack initialization failed", gateway=self.name.value)

        url = self._data_object(data, "initialize").get("authorization_url")
        if not url:
            raise GatewayError(data.get("message") or "Paystack initialization failed", gateway=self.name.value)
        return url

    async def verify(self, reference: str, expected_amount: Decimal | None = None) -> VerificationResult:
        data = await self._request("GET", f"/transaction/verify/{reference}")
        if not data.get("status"):
            raise GatewayError(data.get("message") or "Paystack verification failed", gateway=self.name.value)

        tx = self._data_object(data, "verify")
        status = str(tx.get("status", "")).lower()
        outcome = PAYSTACK_STATUS_MAP.get(status, PaymentOutcome.FAILED)
        message = tx.get("gateway_response")

        if outcome == PaymentOutcome.SUCCESS and expected_amount is not None:
            paid = _kobo_to_naira(tx.get("amount"))
            if paid is None or paid < Decimal(expected_amount):
                logger.warning(f"Paystack {reference}: paid {paid} < expected {expected_amount}")
                outcome = PaymentOutcome.FAILED
                message = "Amount paid is less than the order total"

        return VerificationResult(outcome=outcome, raw_payload=tx, message=message)

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        if not self._secret_key:
            logger.error("PAYSTACK_SECRET_KEY not configured, rejecting webhook")
            return False
        if not signature:
            logger.warning("Paystack webhook received without signature header")
            return False

        expected = hmac.new(
            self._secret_key.encode("utf-8"),
            body,
            hashlib.sha512,
        ).hexdigest()
        return hmac.compare_digest(expected, signature.strip().lower())

    def parse_webhook(self, event: dict) -> Optional[WebhookEvent]:
        event_name = str(event.get("event", ""))
        if event_name not in PAYSTACK_OUTCOME_EVENTS:
            return None

        data = event.get("data") if isinstance(event.get("data"), dict) else {}
        reference = data.get("reference")
        if not reference:
            raise ValueError("Paystack webhook without data.reference")

        success = event_name == "charge.success"
        amount = _kobo_to_naira(data.get("amount"))
        if success and amount is None:
            raise ValueError(f"Paystack charge.success for {reference} without a usable amount")

        return WebhookEvent(
            reference=str(reference),
            success=success,
            raw_payload=data,
            amount=amount,
            currency=data.get("currency"),
        )
