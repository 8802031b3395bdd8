"""
Pydantic request/response models for the storefront API.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from utils.clock import to_iso_utc


class ApiBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ── Checkout ────────────────────────────────────────────────────────

class CheckoutItem(ApiBase):
    product_id: int
    quantity: int


class CheckoutRequest(ApiBase):
    """
    Checkout form. Prices are never accepted from the client; quantities
    and required fields are validated by the reservation service.
    """
    email: str
    customer_name: str
    phone: str
    address: str
    items: List[CheckoutItem]
    gateway: Optional[str] = Field(None, description="paystack | flutterwave (defaults to DEFAULT_GATEWAY)")


class CheckoutResponse(ApiBase):
    transaction_id: str
    order_id: int
    amount: Decimal
    currency: str
    expires_at: datetime
    url: str
    gateway: str

    @field_serializer("expires_at")
    def _serialize_expires_at(self, value: datetime) -> str:
        return to_iso_utc(value)


# ── Verify ──────────────────────────────────────────────────────────

class VerifyRequest(ApiBase):
    reference: str = Field(..., min_length=1)


class VerifyResponse(ApiBase):
    status: str
    message: Optional[str] = None


# ── Cron ────────────────────────────────────────────────────────────

class CleanupResponse(ApiBase):
    abandoned_count: int


# ── Catalog ─────────────────────────────────────────────────────────

class ProductResponse(ApiBase):
    id: int
    slug: str
    name: str
    price: Decimal
    effective_price: Decimal
    stock: int
    discount_active: bool
    discount_type: Optional[str] = None
    discount_value: Decimal
