"""
Checkout orchestrator — the client side of reserve → pay → confirm.

Phases:
    idle → submitting → ready → expired
                      ↘ error
submit() reserves at most once at a time (in-flight guard) and persists the
returned reservation so a restarted client resumes the countdown instead of
reserving again. confirm_return() asks the server to verify the payment when
the customer comes back from the gateway.
"""
import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

import httpx

from checkout_client.state import CheckoutForm, CheckoutState, CheckoutStateStore
from utils.clock import parse_iso_utc

logger = logging.getLogger(__name__)


class CheckoutPhase(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    READY = "ready"
    EXPIRED = "expired"
    ERROR = "error"


class ReturnStatus(str, Enum):
    VERIFYING = "verifying"
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"


class CheckoutError(Exception):
    """
    A checkout step failed.

    `code` is the server's error code (validation, inventory_issue,
    gateway_error, rate_limited, ...) or a client-side one: network,
    in_flight, expired.
    """

    def __init__(self, code: str, message: str, status_code: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class ReturnResult:
    def __init__(self, status: ReturnStatus, message: Optional[str] = None):
        self.status = status
        self.message = message

    def __repr__(self):
        return f"ReturnResult(status={self.status.value!r}, message={self.message!r})"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _error_from_response(response: httpx.Response) -> CheckoutError:
    try:
        error = response.json().get("error") or {}
    except ValueError:
        error = {}
    return CheckoutError(
        code=error.get("code") or "http_error",
        message=error.get("message") or f"Request failed (HTTP {response.status_code})",
        status_code=response.status_code,
        details=error.get("details") or {},
    )


class CheckoutOrchestrator:
    def __init__(
        self,
        base_url: str,
        store: CheckoutStateStore,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 20.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._base_url = base_url.rstrip("/")
        self._store = store
        self._transport = transport
        self._timeout = timeout
        self._clock = clock
        self._in_flight = False

        self.phase = CheckoutPhase.IDLE
        self.state: Optional[CheckoutState] = None
        self.error: Optional[CheckoutError] = None
        self.return_status: Optional[ReturnStatus] = None

        self._resume()

    def _resume(self):
        saved = self._store.active()
        if saved is None:
            return
        if saved.expires_at > self._clock():
            self.state = saved
            self.phase = CheckoutPhase.READY
            logger.info(f"Resumed checkout {saved.reference} ({self.seconds_left()}s left)")
        else:
            self._store.clear(saved.reference)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout, transport=self._transport)

    # ── Submit ──────────────────────────────────────────────────────

    async def submit(self, form: CheckoutForm) -> CheckoutState:
        """
        Reserve the cart and get the payment page URL.

        Returns the existing state unchanged while a reservation is live.

        Raises:
            CheckoutError: with the server's error code, or "in_flight" /
                "network" for client-side failures
        """
        if self._in_flight:
            raise CheckoutError("in_flight", "A checkout is already being submitted")
        if self.phase == CheckoutPhase.READY and self.state and self.seconds_left() > 0:
            return self.state

        self._in_flight = True
        self.phase = CheckoutPhase.SUBMITTING
        self.error = None
        try:
            async with self._client() as client:
                response = await client.post("/checkout", json=form.to_payload())
        except httpx.HTTPError as e:
            self._fail(CheckoutError("network", f"Could not reach the store: {e}"))
            raise self.error
        finally:
            self._in_flight = False

        if response.status_code != 200:
            self._fail(_error_from_response(response))
            raise self.error

        try:
            data = response.json()
            state = CheckoutState(
                reference=data["transaction_id"],
                payment_url=data["url"],
                expires_at=parse_iso_utc(data["expires_at"]),
                form=form,
                order_id=data.get("order_id"),
                amount=str(data.get("amount")),
                currency=data.get("currency"),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            self._fail(CheckoutError(
                "http_error",
                f"The store sent an unreadable checkout response: {e!r}",
                status_code=response.status_code,
            ))
            raise self.error

        self.state = state
        self._store.save(self.state)
        self.phase = CheckoutPhase.READY
        logger.info(f"Checkout {self.state.reference} ready, pay at {self.state.payment_url}")
        return self.state

    def _fail(self, error: CheckoutError):
        self.error = error
        self.phase = CheckoutPhase.ERROR
        logger.warning(f"Checkout failed: {error.code}: {error.message}")

    # ── Countdown ───────────────────────────────────────────────────

    def seconds_left(self) -> int:
        if not self.state:
            return 0
        remaining = (self.state.expires_at - self._clock()).total_seconds()
        return max(0, math.ceil(remaining))

    def tick(self) -> int:
        """Advance the countdown; expires the reservation once time is up."""
        remaining = self.seconds_left()
        if self.phase == CheckoutPhase.READY and remaining == 0:
            self._store.clear(self.state.reference)
            logger.info(f"Checkout {self.state.reference} expired")
            self.state = None
            self.phase = CheckoutPhase.EXPIRED
            self.error = CheckoutError("expired", "Your reservation timed out. Please start again.")
        return remaining

    # ── Return from gateway ─────────────────────────────────────────

    async def confirm_return(self, reference: Optional[str]) -> ReturnResult:
        """Verify the payment for `reference` after the gateway redirect."""
        if not reference:
            self.return_status = ReturnStatus.FAILED
            return ReturnResult(ReturnStatus.FAILED, "Missing transaction reference.")

        self.return_status = ReturnStatus.VERIFYING
        try:
            async with self._client() as client:
                response = await client.post("/payments/verify", json={"reference": reference})
        except httpx.HTTPError as e:
            self._clear(reference)
            self.return_status = ReturnStatus.FAILED
            return ReturnResult(ReturnStatus.FAILED, f"An error occurred while verifying your payment: {e}")

        if response.status_code != 200:
            error = _error_from_response(response)
            self._clear(reference)
            self.return_status = ReturnStatus.FAILED
            return ReturnResult(ReturnStatus.FAILED, error.message)

        data = response.json()
        status = data.get("status")
        if status == ReturnStatus.SUCCESS.value:
            self._clear(reference)
            self.return_status = ReturnStatus.SUCCESS
            return ReturnResult(ReturnStatus.SUCCESS, data.get("message"))
        if status == ReturnStatus.PENDING.value:
            self.return_status = ReturnStatus.PENDING
            return ReturnResult(ReturnStatus.PENDING, data.get("message"))

        self._clear(reference)
        self.return_status = ReturnStatus.FAILED
        return ReturnResult(ReturnStatus.FAILED, data.get("message") or "Your payment could not be confirmed.")

    def _clear(self, reference: str):
        self._store.clear(reference)
        if self.state and self.state.reference == reference:
            self.state = None
            self.phase = CheckoutPhase.IDLE

    # ── Start over ──────────────────────────────────────────────────

    def reset(self):
        """Forget the current checkout; the reservation itself is left for the reaper."""
        if self.state:
            self._store.clear(self.state.reference)
        self.state = None
        self.error = None
        self.return_status = None
        self.phase = CheckoutPhase.IDLE
