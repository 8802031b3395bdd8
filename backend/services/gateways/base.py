"""
Base payment gateway interface.

Every gateway adapter provides:
  - initialize(): create a hosted payment page, return its URL
  - verify(): ask the gateway what happened to a reference
  - verify_signature(): authenticate a webhook body
  - parse_webhook(): extract reference + outcome from the gateway's payload

The settlement service only ever sees the gateway-agnostic dataclasses below.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

import httpx

from config import settings
from domain.enums import GatewayName, PaymentOutcome
from domain.errors import GatewayError

logger = logging.getLogger(__name__)


# =============================================================================
# Gateway-Agnostic Data Classes
# =============================================================================

@dataclass
class GatewayCustomer:
    email: str
    name: str
    phone: str


@dataclass
class InitializeRequest:
    """Everything a gateway needs to open a hosted payment page."""
    reference: str
    amount: Decimal  # major units (naira)
    currency: str
    customer: GatewayCustomer
    redirect_url: str
    metadata: dict = field(default_factory=dict)


@dataclass
class VerificationResult:
    outcome: PaymentOutcome
    raw_payload: dict
    message: Optional[str] = None


@dataclass
class WebhookEvent:
    reference: str
    success: bool
    raw_payload: dict
    amount: Optional[Decimal] = None  # major units (naira), as paid
    currency: Optional[str] = None


def to_minor_units(amount: Decimal) -> int:
    """Naira → kobo (x100), rounded half-up to a whole number."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: Any) -> Decimal:
    """Kobo → naira."""
    return (Decimal(str(amount)) / 100).quantize(Decimal("0.01"))


# =============================================================================
# Base Gateway Interface
# =============================================================================

class PaymentGateway(ABC):
    """
    Abstract base class for payment gateways.

    HTTP calls go through _request(), which applies the configured timeout
    and turns transport errors, non-2xx responses and non-JSON bodies into
    GatewayError.
    """

    #: Header carrying the webhook signature
    signature_header: str = ""

    def __init__(
        self,
        *,
        secret_key: str,
        base_url: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout if timeout is not None else settings.gateway_timeout_seconds
        self._transport = transport

    @property
    @abstractmethod
    def name(self) -> GatewayName:
        """Return the gateway enum value."""
        pass

    @abstractmethod
    async def initialize(self, request: InitializeRequest) -> str:
        """
        Create a hosted payment page.

        Returns:
            The URL to redirect the customer to
        """
        pass

    @abstractmethod
    async def verify(self, reference: str, expected_amount: Decimal | None = None) -> VerificationResult:
        """
        Look up a reference at the gateway.

        If expected_amount is given, a reported success for less than that
        amount is downgraded to FAILED.
        """
        pass

    @abstractmethod
    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        """Authenticate a raw webhook body. Must fail closed when unconfigured."""
        pass

    @abstractmethod
    def parse_webhook(self, event: dict) -> Optional[WebhookEvent]:
        """
        Normalize a webhook payload.

        Returns None for events that do not concern a payment outcome.
        Raises ValueError when the payload lacks a reference.
        """
        pass

    # ── HTTP ────────────────────────────────────────────────────────

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self._secret_key:
            raise GatewayError(f"{self.name.value} is not configured", gateway=self.name.value)

        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"{self.name.value} {method} {path} timed out: {e}")
            raise GatewayError(f"{self.name.value} did not respond in time", gateway=self.name.value)
        except httpx.HTTPError as e:
            logger.error(f"{self.name.value} {method} {path} failed: {e}")
            raise GatewayError(f"Could not reach {self.name.value}", gateway=self.name.value)

        try:
            data = response.json()
        except ValueError:
            logger.error(f"{self.name.value} {method} {path} returned non-JSON (HTTP {response.status_code})")
            raise GatewayError(f"{self.name.value} returned a malformed response", gateway=self.name.value)

        if response.status_code >= 400:
            message = data.get("message") if isinstance(data, dict) else None
            logger.error(f"{self.name.value} {method} {path} → HTTP {response.status_code}: {message}")
            raise GatewayError(
                message or f"{self.name.value} rejected the request",
                gateway=self.name.value,
                details={"http_status": response.status_code},
            )

        if not isinstance(data, dict):
            raise GatewayError(f"{self.name.value} returned a malformed response", gateway=self.name.value)
        return data

    def _data_object(self, data: dict, action: str) -> dict:
        """Return `data["data"]`, which both gateways send as an object on success."""
        inner = data.get("data")
        if not isinstance(inner, dict):
            logger.error(f"{self.name.value} {action} response has no data object: {data!r}")
            raise GatewayError(
                data.get("message") or f"{self.name.value} returned a malformed response",
                gateway=self.name.value,
            )
        return inner
