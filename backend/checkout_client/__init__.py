"""
Client-side checkout orchestration for the storefront API.

    store = CheckoutStateStore(Path("~/.storefront/checkout.json").expanduser())
    checkout = CheckoutOrchestrator("https://shop.example.com/api", store)
    state = await checkout.submit(form)       # redirect the customer to state.payment_url
    ...
    result = await checkout.confirm_return(reference_from_redirect)
"""
from checkout_client.orchestrator import (
    CheckoutError,
    CheckoutOrchestrator,
    CheckoutPhase,
    ReturnResult,
    ReturnStatus,
)
from checkout_client.state import CheckoutForm, CheckoutState, CheckoutStateStore

__all__ = [
    "CheckoutError",
    "CheckoutForm",
    "CheckoutOrchestrator",
    "CheckoutPhase",
    "CheckoutState",
    "CheckoutStateStore",
    "ReturnResult",
    "ReturnStatus",
]
