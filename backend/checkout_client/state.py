"""
Persisted checkout state.

A reservation that is still counting down survives a restart of the client:
the state is written to a small JSON file keyed by reservation reference,
with an "active" pointer to the one currently shown.

File layout:
    {"active": "<reference>" | null, "states": {"<reference>": {...}}}
"""
import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from utils.clock import parse_iso_utc

logger = logging.getLogger(__name__)


@dataclass
class CheckoutForm:
    email: str
    customer_name: str
    phone: str
    address: str
    items: list = field(default_factory=list)  # [{"product_id": int, "quantity": int}]
    gateway: Optional[str] = None

    def to_payload(self) -> dict:
        payload = asdict(self)
        if payload["gateway"] is None:
            payload.pop("gateway")
        return payload


@dataclass
class CheckoutState:
    reference: str
    payment_url: str
    expires_at: datetime  # aware UTC
    form: CheckoutForm
    order_id: Optional[int] = None
    amount: Optional[str] = None
    currency: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CheckoutState":
        return cls(
            reference=data["reference"],
            payment_url=data["payment_url"],
            expires_at=parse_iso_utc(data["expires_at"]),
            form=CheckoutForm(**data["form"]),
            order_id=data.get("order_id"),
            amount=data.get("amount"),
            currency=data.get("currency"),
        )


class CheckoutStateStore:
    """JSON-file store of CheckoutState values keyed by reference."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {"active": None, "states": {}}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Discarding unreadable checkout state at {self.path}: {e}")
            return {"active": None, "states": {}}
        data.setdefault("active", None)
        data.setdefault("states", {})
        return data

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".checkout-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def save(self, state: CheckoutState) -> None:
        """Store `state` and make it the active checkout."""
        data = self._read()
        data["states"][state.reference] = state.to_dict()
        data["active"] = state.reference
        self._write(data)

    def get(self, reference: str) -> Optional[CheckoutState]:
        raw = self._read()["states"].get(reference)
        return CheckoutState.from_dict(raw) if raw else None

    def active(self) -> Optional[CheckoutState]:
        data = self._read()
        reference = data["active"]
        if not reference or reference not in data["states"]:
            return None
        return CheckoutState.from_dict(data["states"][reference])

    def clear(self, reference: str) -> None:
        data = self._read()
        data["states"].pop(reference, None)
        if data["active"] == reference:
            data["active"] = None
        self._write(data)
