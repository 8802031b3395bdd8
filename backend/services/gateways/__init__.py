"""
Payment gateway registry.

Gateways register themselves with @register_gateway; callers resolve one per
transaction with get_gateway(name). Settlement never needs to know which
gateway a transaction used.
"""
import logging
from typing import Dict, List, Type

from domain.enums import GatewayName
from domain.errors import ValidationError

logger = logging.getLogger(__name__)

# Registry of gateway implementations
_GATEWAY_REGISTRY: Dict[GatewayName, Type["PaymentGateway"]] = {}


def register_gateway(gateway_name: GatewayName):
    """
    Decorator to register a gateway implementation.

    Usage:
        @register_gateway(GatewayName.PAYSTACK)
        class PaystackGateway(PaymentGateway):
            ...
    """
    def decorator(cls):
        _GATEWAY_REGISTRY[gateway_name] = cls
        logger.debug(f"Registered gateway: {gateway_name.value} -> {cls.__name__}")
        return cls
    return decorator


def get_gateway(name: str | GatewayName, **kwargs) -> "PaymentGateway":
    """
    Instantiate the gateway registered under `name`.

    Extra keyword arguments (e.g. transport=httpx.MockTransport(...)) are
    passed to the gateway constructor.
    """
    try:
        gateway_name = GatewayName(name)
    except ValueError:
        raise ValidationError(f"Unknown payment gateway '{name}'", field="gateway")

    gateway_cls = _GATEWAY_REGISTRY.get(gateway_name)
    if not gateway_cls:
        raise ValidationError(f"No implementation registered for gateway '{gateway_name.value}'", field="gateway")
    return gateway_cls(**kwargs)


def get_registered_gateways() -> List[GatewayName]:
    return list(_GATEWAY_REGISTRY.keys())


# Import gateways to trigger registration
# These imports must be at the bottom to avoid circular imports
from services.gateways.base import PaymentGateway  # noqa: E402
from services.gateways.paystack import PaystackGateway  # noqa: E402, F401
from services.gateways.flutterwave import FlutterwaveGateway  # noqa: E402, F401
