"""
Flutterwave gateway.

- Amounts travel in naira (major units, no scaling).
- Webhooks: the verif-hash header must equal the configured secret hash.
- Outcome: status "successful" AND charged_amount >= amount.
"""
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
)

logger = logging.getLogger(__name__)

FLUTTERWAVE_STATUS_MAP = {
    "successful": PaymentOutcome.SUCCESS,
    "pending": PaymentOutcome.PENDING,
    "failed": PaymentOutcome.FAILED,
    "cancelled": PaymentOutcome.FAILED,
}


def _decimal(value) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def is_fully_charged(status: str | None, amount, charged_amount) -> bool:
    """Successful only when the customer was charged at least the amount asked for."""
    if status != "successful":
        return False
    if charged_amount is None or amount is None:
        return False
    return _decimal(charged_amount) >= _decimal(amount)


@register_gateway(GatewayName.FLUTTERWAVE)
class FlutterwaveGateway(PaymentGateway):
    signature_header = "verif-hash"

    def __init__(
        self,
        *,
        secret_hash: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs,
    ):
        kwargs.setdefault("secret_key", settings.flutterwave_secret_key)
        kwargs.setdefault("base_url", settings.flutterwave_base_url)
        super().__init__(transport=transport, **kwargs)
        self._secret_hash = secret_hash if secret_hash is not None else settings.flutterwave_secret_hash

    @property
    def name(self) -> GatewayName:
        return GatewayName.FLUTTERWAVE

    async def initialize(self, request: InitializeRequest) -> str:
        customizations = {"title": settings.checkout_title}
        if settings.checkout_logo_url:
            customizations["logo"] = settings.checkout_logo_url

        payload = {
            "tx_ref": request.reference,
            "amount": float(request.amount),
            "currency": request.currency,
            "redirect_url": request.redirect_url,
            "customer": {
                "email": request.customer.email,
                "phonenumber": request.customer.phone,
                "name": request.customer.name,
            },
            "customizations": customizations,
            "meta": request.metadata,
        }
        data = await self._request("POST", "/v3/payments", json=payload)
        if data.get("status") != "success":
            raise GatewayError(data.get("message") or "Flutterwave initialization failed", gateway=self.name.value)

        link = self._data_object(data, "initialize").get("link")
        if not link:
            raise GatewayError(data.get("message") or "Flutterwave initialization failed", gateway=self.name.value)
        return link

    async def verify(self, reference: str, expected_amount: Decimal | None = None) -> VerificationResult:
        data = await self._request(
            "GET",
            "/v3/transactions/verify_by_reference",
            params={"tx_ref": reference},
        )
        if data.get("status") != "success":
            raise GatewayError(data.get("message") or "Flutterwave verification failed", gateway=self.name.value)

        tx = self._data_object(data, "verify")
        status = str(tx.get("status", "")).lower()
        outcome = FLUTTERWAVE_STATUS_MAP.get(status, PaymentOutcome.FAILED)
        message = tx.get("processor_response")

        if outcome == PaymentOutcome.SUCCESS:
            if not is_fully_charged(status, tx.get("amount"), tx.get("charged_amount")):
                outcome = PaymentOutcome.FAILED
                message = "Charged amount is less than the amount requested"
            elif expected_amount is not None and _decimal(tx.get("amount")) < Decimal(expected_amount):
                logger.warning(f"Flutterwave {reference}: amount {tx.get('amount')} < expected {expected_amount}")
                outcome = PaymentOutcome.FAILED
                message = "Amount paid is less than the order total"

        return VerificationResult(outcome=outcome, raw_payload=tx, message=message)

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        if not self._secret_hash:
            logger.error("FLUTTERWAVE_SECRET_HASH not configured, rejecting webhook")
            return False
        if not signature:
            logger.warning("Flutterwave webhook received without verif-hash header")
            return False
        return hmac.compare_digest(self._secret_hash.encode("utf-8"), signature.encode("utf-8"))

    def parse_webhook(self, event: dict) -> Optional[WebhookEvent]:
        # Current payloads nest under "data"; legacy ones are flat with txRef.
        data = event.get("data") if isinstance(event.get("data"), dict) else {}
        reference = event.get("txRef") or data.get("tx_ref")
        if not reference:
            raise ValueError("Flutterwave webhook without tx_ref")

        status = event.get("status") or data.get("status")
        amount = event.get("amount", data.get("amount"))
        charged_amount = event.get("charged_amount", data.get("charged_amount"))
        currency = event.get("currency") or data.get("currency")

        return WebhookEvent(
            reference=str(reference),
            success=is_fully_charged(status, amount, charged_amount),
            raw_payload=event,
            amount=_decimal(amount) if amount is not None else None,
            currency=currency,
        )
